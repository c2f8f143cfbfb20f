import hashlib
import shutil
from pathlib import Path

import pytest

from msunify import DataFile
from msunify.core.source import BRUKER_FILE_FORMAT, THERMO_NATIVE_ID_FORMAT, THERMO_RAW_FILE_FORMAT
from msunify.exceptions import DecoderUnavailable, MalformedRecord
from msunify.io import ConversionOptions, ConversionResult, FormatId, convert_files_batch
from msunify.io.readers import proteowizard
from msunify.utils import ParallelMode


@pytest.fixture
def fake_converter(monkeypatch, mzml_142):
    """Replace msconvert with a copy of the 142-scan mzML; records every conversion."""
    calls = []

    def convert(input_path, output_dir, sif_path, apptainer_path, options):
        output_path = Path(output_dir) / f"{Path(input_path).stem}.mzML"
        shutil.copyfile(mzml_142, output_path)
        calls.append((Path(input_path), Path(output_dir), options))
        return ConversionResult(input_path=Path(input_path), output_path=output_path, success=True)

    monkeypatch.setattr(
        proteowizard, "require_converter",
        lambda sif_path=None: (Path("/usr/bin/apptainer"), Path("/opt/pwiz.sif")),
    )
    monkeypatch.setattr(proteowizard, "_convert_single_file", convert)
    return calls


@pytest.fixture
def raw_file(tmp_path):
    path = tmp_path / "vendor" / "run01.raw"
    path.parent.mkdir()
    path.write_bytes(b"not really a raw file")
    return path


def test_thermo_raw_is_read_through_conversion(fake_converter, raw_file, scans_142):
    data = DataFile(raw_file).load_all_static_data()
    assert data.format_id is FormatId.THERMO_RAW
    assert data.num_spectra == 142
    assert [s.native_id for s in data] == [s.native_id for s in scans_142]
    assert data.get_one_based_scan(2).parent_scan_number == 1
    (converted, output_dir, _), = fake_converter
    assert converted == raw_file
    assert output_dir.name.startswith("msunify_")
    # the temporary conversion is removed once decoding is done
    assert not output_dir.exists()


def test_source_describes_the_vendor_file(fake_converter, raw_file):
    data = DataFile(raw_file).load_all_static_data()
    source = data.get_source_file()
    assert source.name == "run01.raw"
    assert source.file_format == THERMO_RAW_FILE_FORMAT
    assert source.native_id_format == THERMO_NATIVE_ID_FORMAT
    assert source.checksum_value == hashlib.sha1(raw_file.read_bytes()).hexdigest()


def test_source_file_needs_no_conversion(fake_converter, raw_file):
    source = DataFile(raw_file).get_source_file()
    assert source.name == "run01.raw"
    assert fake_converter == []


def test_dynamic_connection_keeps_conversion_until_closed(fake_converter, raw_file):
    data = DataFile(raw_file)
    with data.dynamic_connection():
        (_, output_dir, _), = fake_converter
        assert output_dir.exists()
        assert data.get_one_based_scan_from_dynamic_connection(142).scan_number == 142
        assert data.get_one_based_scan_from_dynamic_connection(143) is None
    assert not output_dir.exists()


def test_bruker_folder(fake_converter, tmp_path):
    folder = tmp_path / "acquisition.d"
    folder.mkdir()
    (folder / "analysis.tdf").write_bytes(b"")
    data = DataFile(folder).load_all_static_data()
    assert data.format_id is FormatId.BRUKER_D
    assert data.num_spectra == 142
    source = data.get_source_file()
    assert source.file_format == BRUKER_FILE_FORMAT
    # folders have no checksum
    assert source.checksum_value is None


def test_export_of_a_vendor_file(fake_converter, raw_file, tmp_path):
    data = DataFile(raw_file)
    output = data.export_snip_as_mzml(1, 10)
    assert output == raw_file.parent / "run01_snip_1-10.mzML"
    assert DataFile(output).get_source_file().file_format == THERMO_RAW_FILE_FORMAT


def test_missing_apptainer(monkeypatch, raw_file):
    monkeypatch.setattr(proteowizard, "find_apptainer", lambda: None)
    with pytest.raises(DecoderUnavailable, match="Apptainer"):
        DataFile(raw_file).load_all_static_data()


def test_missing_image(monkeypatch, raw_file):
    monkeypatch.setattr(proteowizard, "find_apptainer", lambda: Path("/usr/bin/apptainer"))
    monkeypatch.setattr(proteowizard, "find_sif_file", lambda: None)
    with pytest.raises(DecoderUnavailable, match="SIF"):
        DataFile(raw_file).initiate_dynamic_connection()


def test_failed_conversion(monkeypatch, raw_file):
    directories = []

    def fail(input_path, output_dir, sif_path, apptainer_path, options):
        directories.append(Path(output_dir))
        return ConversionResult(input_path, None, False, error_message="msconvert failed: boom")

    monkeypatch.setattr(
        proteowizard, "require_converter",
        lambda sif_path=None: (Path("/usr/bin/apptainer"), Path("/opt/pwiz.sif")),
    )
    monkeypatch.setattr(proteowizard, "_convert_single_file", fail)
    with pytest.raises(MalformedRecord, match="boom") as excinfo:
        DataFile(raw_file).load_all_static_data()
    assert excinfo.value.path == raw_file
    assert not directories[0].exists()


def test_conversion_options():
    assert ConversionOptions().to_msconvert_args() == ["--mzML", "--64", "--zlib"]
    args = ConversionOptions(
        precision=32,
        compression="none",
        ms_levels=(1, 2),
        peak_picking=True,
        peak_picking_ms_levels=(1, 2),
        rt_range=(60.0, 120.0),
        extra_args=("--simAsSpectra",),
    ).to_msconvert_args()
    assert args == [
        "--mzML", "--32",
        "--filter", "msLevel 1 2",
        "--filter", "peakPicking vendor msLevel=1-2",
        "--filter", "scanTime [1.0,2.0]",
        "--simAsSpectra",
    ]


def test_batch_conversion_keeps_input_order(fake_converter, tmp_path):
    inputs = []
    for name in ("c.raw", "a.raw", "b.raw"):
        path = tmp_path / name
        path.write_bytes(b"")
        inputs.append(path)
    progress = []
    results = convert_files_batch(
        inputs,
        tmp_path / "converted",
        parallel_mode=ParallelMode.NONE,
        progress_callback=lambda done, total, result: progress.append((done, total)),
    )
    assert [result.input_path for result in results] == inputs
    assert all(result.success for result in results)
    assert [result.output_path.name for result in results] == ["c.mzML", "a.mzML", "b.mzML"]
    assert progress == [(1, 3), (2, 3), (3, 3)]


def test_batch_conversion_of_nothing(monkeypatch, tmp_path):
    monkeypatch.setattr(proteowizard, "find_apptainer", lambda: None)
    assert convert_files_batch([], tmp_path) == []
