import numpy as np
import pytest

from msunify import DataFile, read_data_file
from msunify.config import FilteringParams
from msunify.core.source import MGF_FILE_FORMAT, THERMO_NATIVE_ID_FORMAT
from msunify.exceptions import ConnectionNotOpen, DataFileNotFound, UnsupportedFormat
from msunify.io import FormatId, read_mzml


def test_static_load(mzml_142, scans_142):
    data = DataFile(mzml_142)
    assert data.format_id is FormatId.MZML
    assert not data.scans_loaded
    assert data.load_all_static_data() is data
    assert data.scans_loaded
    assert data.num_spectra == 142
    assert [s.scan_number for s in data] == list(range(1, 143))
    assert data.get_one_based_scan(0) is None
    assert data.get_one_based_scan(143) is None
    assert data.get_one_based_scan(7).native_id == scans_142[6].native_id
    assert len(data.get_ms1_scans()) == 36
    assert [s.scan_number for s in data.get_scans_in_index_range(3, 5)] == [3, 4, 5]
    assert [s.scan_number for s in data.get_scans_in_time_range(3.0, 6.0)] == [3, 4, 5]
    assert data.get_closest_one_based_spectrum_number(10.4) == 8


def test_scans_load_lazily(mzml_142):
    data = DataFile(mzml_142)
    assert len(data.get_all_scans_list()) == 142
    assert data.scans_loaded


def test_thread_count_never_changes_order(mzml_142):
    single = DataFile(mzml_142).load_all_static_data(max_threads=1)
    threaded = DataFile(mzml_142).load_all_static_data(max_threads=8)
    assert [s.native_id for s in single] == [s.native_id for s in threaded]
    for left, right in zip(single, threaded):
        np.testing.assert_array_equal(left.intensity, right.intensity)


def test_filtering_on_load(mzml_142):
    params = FilteringParams(max_peaks_per_scan=3)
    data = DataFile(mzml_142).load_all_static_data(filtering_params=params)
    assert max(s.n_points for s in data) == 3


def test_fetch_before_connecting(mzml_142):
    data = DataFile(mzml_142)
    with pytest.raises(ConnectionNotOpen):
        data.get_one_based_scan_from_dynamic_connection(1)
    # a static load does not open a connection
    data.load_all_static_data()
    with pytest.raises(ConnectionNotOpen):
        data.get_one_based_scan_from_dynamic_connection(1)


def test_dynamic_connection(mzml_142, scans_142):
    data = DataFile(mzml_142)
    data.initiate_dynamic_connection()
    try:
        assert data.is_connected
        assert data.get_one_based_scan_from_dynamic_connection(0) is None
        assert data.get_one_based_scan_from_dynamic_connection(143) is None
        for scan_number in (50, 3, 50, 142):
            scan = data.get_one_based_scan_from_dynamic_connection(scan_number)
            assert scan.scan_number == scan_number
            np.testing.assert_allclose(scan.mz, scans_142[scan_number - 1].mz)
        assert not data.scans_loaded
    finally:
        data.close_dynamic_connection()
    assert not data.is_connected


def test_dynamic_fetch_with_filtering(mzml_142):
    with DataFile(mzml_142) as data:
        scan = data.get_one_based_scan_from_dynamic_connection(
            2, FilteringParams(max_peaks_per_scan=1)
        )
        assert scan.n_points == 1


def test_close_is_idempotent_and_reopen_works(mzml_142):
    data = DataFile(mzml_142)
    data.close_dynamic_connection()
    data.initiate_dynamic_connection()
    data.close_dynamic_connection()
    data.close_dynamic_connection()
    with pytest.raises(ConnectionNotOpen):
        data.get_one_based_scan_from_dynamic_connection(1)
    with data.dynamic_connection():
        assert data.get_one_based_scan_from_dynamic_connection(1).scan_number == 1
    assert not data.is_connected


def test_file_is_released_after_close(mzml_142, tmp_path):
    data = DataFile(mzml_142)
    with data.dynamic_connection():
        data.get_one_based_scan_from_dynamic_connection(1)
    moved = mzml_142.rename(tmp_path / "moved.mzML")
    assert moved.exists()
    moved.unlink()
    assert not moved.exists()


def test_missing_file(tmp_path):
    data = DataFile(tmp_path / "missing.mzML")
    with pytest.raises(DataFileNotFound):
        data.load_all_static_data()
    with pytest.raises(DataFileNotFound):
        data.initiate_dynamic_connection()
    assert not data.is_connected


def test_result_files_are_rejected(psmtsv_file):
    with pytest.raises(UnsupportedFormat):
        DataFile(psmtsv_file)


def test_source_file_without_loading(mzml_142):
    data = DataFile(mzml_142)
    source = data.get_source_file()
    assert source.native_id_format == THERMO_NATIVE_ID_FORMAT
    assert source.name == "sample.raw"
    assert not data.scans_loaded


@pytest.mark.parametrize("write_index", [True, False])
def test_export_round_trip(mzml_142, tmp_path, scans_142, write_index):
    data = read_data_file(mzml_142)
    output = data.export_as_mzml(tmp_path / "export" / "copy.mzML", write_index=write_index)
    assert output.exists()
    assert (b"<indexedmzML" in output.read_bytes()) is write_index
    run = read_mzml(output)
    assert len(run) == 142
    for original, decoded in zip(scans_142, run):
        assert decoded.native_id == original.native_id
        assert decoded.parent_scan_number == original.parent_scan_number
        np.testing.assert_allclose(decoded.intensity, original.intensity)
    # the descriptor of the original source is carried over
    assert DataFile(output).get_source_file().name == "sample.raw"


def test_snip_first_scans(mzml_142, scans_142):
    output = DataFile(mzml_142).export_snip_as_mzml(1, 10)
    assert output.name == "sample_snip_1-10.mzML"
    assert output.parent == mzml_142.parent
    snipped = read_data_file(output)
    assert snipped.num_spectra == 10
    assert [s.scan_number for s in snipped] == list(range(1, 11))
    assert [s.native_id for s in snipped] == [s.native_id for s in scans_142[:10]]


def test_snip_last_scans(mzml_142, scans_142):
    output = DataFile(mzml_142).export_snip_as_mzml(141, 142)
    snipped = read_mzml(output)
    assert len(snipped) == 2
    assert snipped[0].native_id == scans_142[140].native_id
    # scan 142's precursor is scan 141, which is inside the range
    assert snipped[1].parent_scan_number == 1


@pytest.mark.parametrize("start, end", [(0, 10), (10, 9), (100, 143)])
def test_snip_out_of_range(mzml_142, start, end):
    with pytest.raises(ValueError):
        DataFile(mzml_142).export_snip_as_mzml(start, end)


def test_mgf_data_file(mgf_file):
    data = read_data_file(mgf_file)
    assert data.format_id is FormatId.MGF
    assert data.num_spectra == 3
    assert data.get_source_file().file_format == MGF_FILE_FORMAT
    with data.dynamic_connection():
        assert data.get_one_based_scan_from_dynamic_connection(2).native_id == "index=1"
    output = data.export_snip_as_mzml(2, 3)
    assert output.name == "spectra_snip_2-3.mzML"
    assert [s.ms_level for s in read_mzml(output)] == [2, 3]


def test_repr(mzml_142):
    data = DataFile(mzml_142)
    assert "not loaded" in repr(data)
    data.load_all_static_data()
    assert "142 scans" in repr(data)
