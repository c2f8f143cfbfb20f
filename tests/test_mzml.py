import base64
import hashlib
import re
from dataclasses import replace

import numpy as np
import pytest
from lxml import etree

from conftest import build_scans
from msunify import DataFile
from msunify.core import ActivationType, Polarity, Spectrum, SpectrumType
from msunify.core.source import THERMO_NATIVE_ID_FORMAT, THERMO_RAW_FILE_FORMAT
from msunify.exceptions import ConnectionNotOpen, MalformedRecord, ScanNumberingInvariantViolation
from msunify.io import FormatId, MzMLReader, read_mzml, resolve, write_mzml
from msunify.io.readers import read_mzml_source_file

MZML_NS = {"mz": "http://psi.hupo.org/ms/mzml"}


def test_written_file_is_well_formed(mzml_142):
    root = etree.parse(str(mzml_142)).getroot()
    assert etree.QName(root).localname == "indexedmzML"
    spectra = root.findall(".//mz:spectrum", MZML_NS)
    assert len(spectra) == 142
    assert root.find(".//mz:spectrumList", MZML_NS).get("count") == "142"


def test_index_offsets_point_at_spectra(mzml_142):
    data = mzml_142.read_bytes()
    root = etree.fromstring(data)
    offsets = root.findall(".//mz:index[@name='spectrum']/mz:offset", MZML_NS)
    assert len(offsets) == 142
    for offset in offsets:
        position = int(offset.text)
        assert data[position:position + len("<spectrum ")] == b"<spectrum "
        head = data[position:position + 400].decode("utf-8")
        assert f'id="{offset.get("idRef")}"' in head

    index_list_offset = int(root.find("mz:indexListOffset", MZML_NS).text)
    assert data[index_list_offset:].startswith(b"<indexList")


def test_file_checksum_covers_everything_before_it(mzml_142):
    data = mzml_142.read_bytes()
    marker = b"<fileChecksum>"
    end = data.index(marker) + len(marker)
    expected = hashlib.sha1(data[:end]).hexdigest()
    written = re.search(rb"<fileChecksum>([0-9a-f]{40})</fileChecksum>", data).group(1).decode()
    assert written == expected


def test_unindexed_output(mzml_142_unindexed):
    data = mzml_142_unindexed.read_bytes()
    assert b"<indexedmzML" not in data
    assert b"<fileChecksum>" not in data
    root = etree.fromstring(data)
    assert etree.QName(root).localname == "mzML"


@pytest.mark.parametrize("fixture", ["mzml_142", "mzml_142_unindexed"])
def test_round_trip_preserves_scans(request, scans_142, fixture):
    path = request.getfixturevalue(fixture)
    run = read_mzml(path)
    assert len(run) == len(scans_142)
    for original, decoded in zip(scans_142, run):
        assert decoded.scan_number == original.scan_number
        assert decoded.ms_level == original.ms_level
        assert decoded.is_centroid == original.is_centroid
        assert decoded.n_points == original.n_points
        assert decoded.native_id == original.native_id
        assert decoded.retention_time == pytest.approx(original.retention_time)
        assert decoded.polarity is Polarity.POSITIVE
        np.testing.assert_allclose(decoded.mz, original.mz)
        np.testing.assert_allclose(decoded.intensity, original.intensity)


def test_round_trip_preserves_precursors(mzml_142, scans_142):
    run = read_mzml(mzml_142)
    for original, decoded in zip(scans_142, run):
        if original.ms_level == 1:
            assert decoded.metadata.precursor is None
            assert decoded.metadata.filter_string == original.metadata.filter_string
            assert decoded.metadata.scan_window_upper == 2000.0
            assert decoded.metadata.injection_time == 10.0
            continue
        expected = original.metadata.precursor
        precursor = decoded.metadata.precursor
        assert precursor.mz == pytest.approx(expected.mz)
        assert precursor.charge == expected.charge
        assert precursor.intensity == pytest.approx(expected.intensity)
        assert precursor.activation_type is ActivationType.HCD
        assert precursor.collision_energy == 30.0
        assert precursor.isolation_window_lower == 1.0
        assert precursor.parent_scan_number == expected.parent_scan_number


def test_source_file_from_header(mzml_142):
    source = read_mzml_source_file(mzml_142)
    assert source.native_id_format == THERMO_NATIVE_ID_FORMAT
    assert source.file_format == THERMO_RAW_FILE_FORMAT
    assert source.checksum_value == "0123456789abcdef0123456789abcdef01234567"
    assert source.name == "sample.raw"
    assert source.id == "RAW1"


def test_random_access_in_any_order(mzml_142, scans_142):
    with MzMLReader(mzml_142) as reader:
        assert len(reader) == 142
        for scan_number in (142, 1, 77, 77, 2):
            spectrum = reader.get_one_based_scan(scan_number)
            assert spectrum.scan_number == scan_number
            assert spectrum.native_id == scans_142[scan_number - 1].native_id
        assert reader.get_one_based_scan(143) is None
        assert reader.get_one_based_scan(0) is None
        assert reader.get_one_based_scan(10).scan_number == 10


def test_fetch_requires_open_reader(mzml_142):
    reader = MzMLReader(mzml_142)
    with pytest.raises(ConnectionNotOpen):
        reader.get_one_based_scan(1)


def test_stale_index_falls_back_to_scanning(tmp_path, mzml_142, scans_142):
    data = mzml_142.read_bytes()
    # shift every spectrum without updating the index
    shifted = data.replace(b"<run ", b"<!-- padding padding padding -->\n<run ", 1)
    path = tmp_path / "shifted.mzML"
    path.write_bytes(shifted)
    with MzMLReader(path) as reader:
        assert len(reader) == 142
        assert reader.get_one_based_scan(100).native_id == scans_142[99].native_id


def test_multithreaded_decode_keeps_order(mzml_142):
    codec = resolve(FormatId.MZML)
    single, _ = codec.decode(mzml_142, max_threads=1)
    threaded, _ = codec.decode(mzml_142, max_threads=4)
    assert [s.native_id for s in single] == [s.native_id for s in threaded]
    assert [s.scan_number for s in threaded] == list(range(1, 143))


def test_minutes_are_converted_to_seconds(tmp_path, mzml_142_unindexed):
    text = mzml_142_unindexed.read_text(encoding="utf-8")
    text = text.replace(
        'accession="MS:1000016" name="scan start time" value="3.0" unitCvRef="UO" '
        'unitAccession="UO:0000010" unitName="second"',
        'accession="MS:1000016" name="scan start time" value="0.05" unitCvRef="UO" '
        'unitAccession="UO:0000031" unitName="minute"',
    )
    path = tmp_path / "minutes.mzML"
    path.write_text(text, encoding="utf-8")
    run = read_mzml(path)
    assert run[2].retention_time == pytest.approx(3.0)


def test_malformed_spectrum_reports_index(tmp_path, mzml_142_unindexed):
    text = mzml_142_unindexed.read_text(encoding="utf-8")
    broken = text.replace('name="ms level" value="2"', 'name="ms level" value="two"', 1)
    path = tmp_path / "broken.mzML"
    path.write_text(broken, encoding="utf-8")
    with pytest.raises(MalformedRecord) as excinfo:
        read_mzml(path)
    assert excinfo.value.index == 1
    assert excinfo.value.path == path


def test_writer_rejects_sparse_numbering(tmp_path, scans_142):
    with pytest.raises(ScanNumberingInvariantViolation):
        write_mzml(scans_142[1:], tmp_path / "bad.mzML")


def test_missing_native_ids_get_scan_ids(tmp_path):
    stripped = [
        Spectrum(mz=s.mz, intensity=s.intensity, metadata=replace(s.metadata, native_id=None))
        for s in build_scans(8)
    ]
    path = write_mzml(stripped, tmp_path / "ids.mzML")
    run = read_mzml(path)
    assert [s.native_id for s in run] == [f"scan={n}" for n in range(1, 9)]
    assert run[1].parent_scan_number == 1


def test_spectrum_types(mzml_142):
    run = read_mzml(mzml_142)
    assert run[0].metadata.spectrum_type is SpectrumType.PROFILE
    assert run[1].metadata.spectrum_type is SpectrumType.CENTROID


def test_corrupt_binary_payload_is_a_malformed_record(tmp_path, mzml_142_unindexed):
    text = mzml_142_unindexed.read_text(encoding="utf-8")
    not_zlib = base64.b64encode(b"these bytes are not zlib data").decode("ascii")
    broken = re.sub(r"<binary>[^<]*</binary>", f"<binary>{not_zlib}</binary>", text, count=1)
    path = tmp_path / "corrupt.mzML"
    path.write_text(broken, encoding="utf-8")
    with pytest.raises(MalformedRecord) as excinfo:
        DataFile(path).load_all_static_data()
    assert excinfo.value.index == 0
    assert excinfo.value.path == path
