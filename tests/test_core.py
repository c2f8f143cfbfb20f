import math

import numpy as np
import pytest

from msunify.core import (
    ActivationType,
    LibrarySpectrum,
    MSRun,
    PrecursorInfo,
    ScanMetadata,
    Spectrum,
    TabularRecord,
    renumber_spectra,
    validate_numbering,
)
from msunify.exceptions import ScanNumberingInvariantViolation


def make_spectrum(scan_number, ms_level=1, parent=None, rt=0.0, native_id=None):
    precursor = None
    if ms_level > 1:
        precursor = PrecursorInfo(mz=500.0, charge=2, parent_scan_number=parent)
    metadata = ScanMetadata(
        scan_number=scan_number,
        ms_level=ms_level,
        retention_time=rt,
        precursor=precursor,
        native_id=native_id,
    )
    return Spectrum(
        mz=np.array([100.0, 200.0, 300.0]),
        intensity=np.array([10.0, 50.0, 20.0]),
        metadata=metadata,
    )


class TestSpectrum:
    def test_base_peak(self):
        spectrum = make_spectrum(1)
        assert spectrum.base_peak_mz == 200.0
        assert spectrum.base_peak_intensity == 50.0
        assert spectrum.mz_range == (100.0, 300.0)
        assert len(spectrum) == 3

    def test_mismatched_arrays(self):
        with pytest.raises(ValueError, match="same length"):
            Spectrum(
                mz=np.array([1.0, 2.0]),
                intensity=np.array([1.0]),
                metadata=ScanMetadata(scan_number=1, ms_level=1, retention_time=0.0),
            )

    def test_metadata_validation(self):
        with pytest.raises(ValueError):
            ScanMetadata(scan_number=0, ms_level=1, retention_time=0.0)
        with pytest.raises(ValueError):
            ScanMetadata(scan_number=1, ms_level=1, retention_time=-1.0)

    def test_renumbered_keeps_peaks(self):
        spectrum = make_spectrum(5, ms_level=2, parent=4)
        moved = spectrum.renumbered(2, 1)
        assert moved.scan_number == 2
        assert moved.parent_scan_number == 1
        assert moved.metadata.precursor.mz == 500.0
        assert spectrum.scan_number == 5

    def test_activation_from_name(self):
        assert ActivationType.from_name("hcd") is ActivationType.HCD
        assert ActivationType.from_name("EThcD") is ActivationType.ETHCD
        assert ActivationType.from_name("magic") is ActivationType.UNKNOWN
        assert ActivationType.from_name(None) is ActivationType.UNKNOWN


class TestNumbering:
    def test_dense_run_is_accepted(self, scans_142):
        run = MSRun(scans_142)
        assert len(run) == 142
        assert run.scan_numbers == list(range(1, 143))

    def test_gap_is_rejected(self):
        with pytest.raises(ScanNumberingInvariantViolation):
            MSRun([make_spectrum(1), make_spectrum(3)])

    def test_dangling_precursor_is_rejected(self):
        with pytest.raises(ScanNumberingInvariantViolation):
            validate_numbering([make_spectrum(1), make_spectrum(2, ms_level=2, parent=7)])

    def test_renumber_remaps_and_drops_references(self):
        spectra = [
            make_spectrum(10),
            make_spectrum(11, ms_level=2, parent=10),
            make_spectrum(12, ms_level=2, parent=3),
        ]
        renumbered = renumber_spectra(spectra)
        assert [s.scan_number for s in renumbered] == [1, 2, 3]
        assert renumbered[1].parent_scan_number == 1
        assert renumbered[2].parent_scan_number is None

    def test_renumber_rejects_duplicates(self):
        with pytest.raises(ScanNumberingInvariantViolation):
            renumber_spectra([make_spectrum(1), make_spectrum(1)])


class TestMSRun:
    def test_snip_start(self, scans_142):
        snipped = MSRun(scans_142).snip(1, 10)
        assert snipped.scan_numbers == list(range(1, 11))
        for spectrum in snipped:
            parent = spectrum.parent_scan_number
            assert parent is None or 1 <= parent <= 10

    def test_snip_end(self, scans_142):
        snipped = MSRun(scans_142).snip(141, 142)
        assert snipped.scan_numbers == [1, 2]
        assert snipped[0].ms_level == 1
        assert snipped[1].parent_scan_number == 1
        assert snipped[1].native_id == scans_142[141].native_id

    def test_snip_drops_references_leaving_the_range(self, scans_142):
        snipped = MSRun(scans_142).snip(2, 4)
        assert [s.parent_scan_number for s in snipped] == [None, None, None]

    @pytest.mark.parametrize("start, end", [(0, 5), (5, 4), (140, 143)])
    def test_snip_out_of_range(self, scans_142, start, end):
        with pytest.raises(ValueError):
            MSRun(scans_142).snip(start, end)

    def test_concatenate_offsets_references(self, scans_142):
        first = MSRun(scans_142[:8])
        second = MSRun(scans_142).snip(5, 12)
        merged = MSRun.concatenate([first, second])
        assert merged.scan_numbers == list(range(1, 17))
        # scan 2 of the second run points at its scan 1
        assert merged[9].parent_scan_number == 9

    def test_renumbered_and_validate(self, scans_142):
        run = MSRun(scans_142)
        run.validate_numbering()
        assert run.renumbered().scan_numbers == run.scan_numbers

    def test_access(self, scans_142):
        run = MSRun(scans_142)
        assert run.get_by_scan(0) is None
        assert run.get_by_scan(143) is None
        assert run.get_by_scan(5).scan_number == 5
        assert run.get_by_native_id(scans_142[9].native_id).scan_number == 10
        assert run.get_by_native_id("missing") is None
        assert [s.scan_number for s in run.get_scan_range(140, 200)] == [140, 141, 142]

    def test_time_queries(self, scans_142):
        run = MSRun(scans_142)
        assert run.rt_range == (0.0, 141 * 1.5)
        assert [s.scan_number for s in run.get_rt_range(3.0, 6.0)] == [3, 4, 5]
        assert run.closest_scan_number(10.4) == 8
        assert MSRun().closest_scan_number(10.0) is None

    def test_ms_levels(self, scans_142):
        counts = MSRun(scans_142).get_ms_level_counts()
        assert counts == {1: 36, 2: 106}
        assert len(list(MSRun(scans_142).iter_ms_level(1))) == 36

    def test_summary(self, scans_142):
        summary = MSRun(scans_142).summary()
        assert summary["n_spectra"] == 142
        assert MSRun().summary()["rt_range_seconds"] is None


class TestRecords:
    def test_tabular_record_is_ordered_mapping(self):
        record = TabularRecord({"b": 1, "a": "x", "c": None}, id_column="b")
        assert list(record) == ["b", "a", "c"]
        assert record.record_id == "1"
        assert record["c"] is None

    def test_nan_cells_compare_equal(self):
        left = TabularRecord({"score": math.nan, "n": 1})
        right = TabularRecord({"score": float("nan"), "n": 1})
        assert left == right

    def test_cell_types_matter(self):
        assert TabularRecord({"n": 1}) != TabularRecord({"n": 1.0})
        assert TabularRecord({"n": 1, "m": 2}) != TabularRecord({"m": 2, "n": 1})

    def test_library_comment_fields(self):
        entry = LibrarySpectrum("PEPTIDEK", 2, 464.73, comment="Parent=464.73 RT=10.5")
        assert entry.name == "PEPTIDEK/2"
        assert entry.retention_time == 10.5
        assert LibrarySpectrum.parent_from_comment(entry.comment) == 464.73
        assert LibrarySpectrum("X", 1, 1.0).retention_time is None
