"""
MSRun: the ordered scan collection owned by a data file.

Every collection msunify produces (load, snip, aggregate) is dense:
``run[i].scan_number == i + 1`` and every precursor reference points at
a scan of the same collection. The renumbering helpers here are the only
place that assigns scan numbers after decoding.
"""

from collections.abc import Iterable, Iterator, Sequence
from typing import Optional, overload

import numpy as np
from numpy.typing import NDArray

from .source import SourceDescriptor
from .spectrum import Spectrum
from ..exceptions import ScanNumberingInvariantViolation


def renumber_spectra(spectra: Sequence[Spectrum], offset: int = 0) -> list[Spectrum]:
    """
    Renumber spectra densely, keeping their relative order.

    Scan ``i`` of the input becomes ``offset + i + 1``. Precursor references
    that point at a scan of the input are rewritten to its new number;
    references to scans outside the input are dropped (set to None).

    Args:
        spectra: Spectra with unique scan numbers.
        offset: Number of scans preceding this block in the final collection.

    Returns:
        New list of renumbered spectra. Inputs are not modified.
    """
    old_to_new = {
        spectrum.scan_number: offset + idx + 1
        for idx, spectrum in enumerate(spectra)
    }
    if len(old_to_new) != len(spectra):
        raise ScanNumberingInvariantViolation(
            "Cannot renumber spectra with duplicate scan numbers"
        )
    renumbered = []
    for idx, spectrum in enumerate(spectra):
        parent = spectrum.parent_scan_number
        new_parent = old_to_new.get(parent) if parent is not None else None
        renumbered.append(spectrum.renumbered(offset + idx + 1, new_parent))
    return renumbered


def validate_numbering(spectra: Sequence[Spectrum]) -> None:
    """
    Check the dense numbering invariant.

    Raises:
        ScanNumberingInvariantViolation: On a gap, duplicate or dangling
            precursor reference.
    """
    n_spectra = len(spectra)
    for idx, spectrum in enumerate(spectra):
        if spectrum.scan_number != idx + 1:
            raise ScanNumberingInvariantViolation(
                f"Scan at position {idx} has number {spectrum.scan_number}, "
                f"expected {idx + 1}"
            )
        parent = spectrum.parent_scan_number
        if parent is not None and not 1 <= parent <= n_spectra:
            raise ScanNumberingInvariantViolation(
                f"Scan {spectrum.scan_number} references precursor scan {parent} "
                f"outside 1-{n_spectra}"
            )


class MSRun(Sequence[Spectrum]):
    """
    A dense, ordered collection of spectra with its source descriptor.

    MSRun implements the Sequence protocol in scan-number order and
    validates the numbering invariant on construction.

    Attributes:
        source: Source descriptor of the file the scans were decoded from.

    Example:
        >>> run = MSRun(spectra)
        >>> len(run.snip(1, 10))
        10
        >>> for spec in run.iter_ms_level(1):
        ...     print(spec.scan_number)
    """

    def __init__(
        self,
        spectra: Optional[list[Spectrum]] = None,
        source: Optional[SourceDescriptor] = None,
    ):
        """
        Initialize an MSRun.

        Args:
            spectra: Spectra numbered 1..N in order.
            source: Source descriptor.

        Raises:
            ScanNumberingInvariantViolation: If spectra are not dense.
        """
        self._spectra: list[Spectrum] = list(spectra) if spectra else []
        validate_numbering(self._spectra)
        self.source = source
        self._native_id_index: Optional[dict[str, int]] = None

    @classmethod
    def concatenate(
        cls,
        runs: Iterable[Sequence[Spectrum]],
        source: Optional[SourceDescriptor] = None,
    ) -> 'MSRun':
        """
        Merge several collections into one dense run.

        Runs are taken in the given order, scans in per-run order. Each
        run's precursor references are shifted with its scans.
        """
        merged: list[Spectrum] = []
        for run in runs:
            merged.extend(renumber_spectra(list(run), offset=len(merged)))
        return cls(merged, source=source)

    # -------------------------------------------------------------------------
    # Sequence protocol implementation
    # -------------------------------------------------------------------------

    @overload
    def __getitem__(self, index: int) -> Spectrum: ...

    @overload
    def __getitem__(self, index: slice) -> list[Spectrum]: ...

    def __getitem__(self, index: int | slice) -> Spectrum | list[Spectrum]:
        """Get spectrum by 0-based position."""
        return self._spectra[index]

    def __len__(self) -> int:
        return len(self._spectra)

    def __iter__(self) -> Iterator[Spectrum]:
        return iter(self._spectra)

    def __contains__(self, item: object) -> bool:
        """Check if spectrum or scan number is in run."""
        if isinstance(item, int):
            return 1 <= item <= len(self._spectra)
        if isinstance(item, Spectrum):
            return any(spec is item for spec in self._spectra)
        return False

    # -------------------------------------------------------------------------
    # Access methods
    # -------------------------------------------------------------------------

    def get_by_scan(self, scan_number: int) -> Optional[Spectrum]:
        """Spectrum with the given one-based scan number, None if out of range."""
        if not 1 <= scan_number <= len(self._spectra):
            return None
        return self._spectra[scan_number - 1]

    def get_by_native_id(self, native_id: str) -> Optional[Spectrum]:
        """First spectrum with the given native id, None if absent."""
        if self._native_id_index is None:
            self._native_id_index = {}
            for idx, spectrum in enumerate(self._spectra):
                if spectrum.native_id is not None:
                    self._native_id_index.setdefault(spectrum.native_id, idx)
        idx = self._native_id_index.get(native_id)
        return self._spectra[idx] if idx is not None else None

    def get_scan_range(self, first: int, last: int) -> list[Spectrum]:
        """
        Spectra with scan numbers in [first, last].

        Args:
            first: First scan number (inclusive).
            last: Last scan number (inclusive).
        """
        first = max(first, 1)
        return self._spectra[first - 1:max(last, 0)]

    def get_rt_range(self, rt_start: float, rt_end: float) -> list[Spectrum]:
        """
        Get spectra within a retention time range.

        Args:
            rt_start: Start retention time in seconds (inclusive).
            rt_end: End retention time in seconds (inclusive).
        """
        return [
            spec for spec in self._spectra
            if rt_start <= spec.retention_time <= rt_end
        ]

    def closest_scan_number(self, retention_time: float) -> Optional[int]:
        """Scan number whose retention time is closest, None for an empty run."""
        if not self._spectra:
            return None
        idx = int(np.argmin(np.abs(self.retention_times - retention_time)))
        return idx + 1

    def iter_ms_level(self, ms_level: int) -> Iterator[Spectrum]:
        """
        Iterate over spectra of a specific MS level.

        Args:
            ms_level: MS level to filter by (1, 2, etc.).
        """
        for spectrum in self._spectra:
            if spectrum.ms_level == ms_level:
                yield spectrum

    def validate_numbering(self) -> None:
        """Re-check the dense numbering invariant."""
        validate_numbering(self._spectra)

    def renumbered(self) -> 'MSRun':
        """Copy of the run numbered 1..N, precursor references remapped."""
        return MSRun(renumber_spectra(self._spectra), source=self.source)

    # -------------------------------------------------------------------------
    # Slicing
    # -------------------------------------------------------------------------

    def snip(self, start: int, end: int) -> 'MSRun':
        """
        Return scans ``start..end`` as a new dense run.

        Scans are renumbered 1..(end - start + 1). Precursor references to
        scans outside the range are dropped. Native ids are kept.

        Raises:
            ValueError: If the range is empty or outside 1..len(self).
        """
        if not 1 <= start <= end <= len(self._spectra):
            raise ValueError(
                f"Scan range {start}-{end} is not within 1-{len(self._spectra)}"
            )
        selected = self._spectra[start - 1:end]
        return MSRun(renumber_spectra(selected), source=self.source)

    # -------------------------------------------------------------------------
    # Properties and statistics
    # -------------------------------------------------------------------------

    @property
    def scan_numbers(self) -> list[int]:
        return [spec.scan_number for spec in self._spectra]

    @property
    def retention_times(self) -> NDArray[np.float64]:
        """Array of all retention times in seconds."""
        return np.array([spec.retention_time for spec in self._spectra], dtype=np.float64)

    @property
    def rt_range(self) -> tuple[float, float]:
        """
        Return (min_rt, max_rt) in seconds.

        Raises:
            ValueError: If run is empty.
        """
        if not self._spectra:
            raise ValueError("Cannot get rt_range of empty run")
        rts = self.retention_times
        return float(rts.min()), float(rts.max())

    def get_ms_level_counts(self) -> dict[int, int]:
        """Count spectra per MS level."""
        counts: dict[int, int] = {}
        for spec in self._spectra:
            counts[spec.ms_level] = counts.get(spec.ms_level, 0) + 1
        return counts

    def summary(self) -> dict:
        """
        Generate a summary of the run.

        Returns:
            Dictionary with run statistics.
        """
        summary = {
            'n_spectra': len(self),
            'ms_level_counts': self.get_ms_level_counts(),
            'rt_range_seconds': self.rt_range if self._spectra else None,
        }
        if self.source is not None:
            summary['source_file'] = self.source.name
            summary['file_format'] = self.source.file_format
            summary['native_id_format'] = self.source.native_id_format
        return summary

    def __repr__(self) -> str:
        ms_counts = self.get_ms_level_counts()
        ms_str = ", ".join(f"MS{k}:{v}" for k, v in sorted(ms_counts.items()))

        if self._spectra:
            rt_min, rt_max = self.rt_range
            rt_str = f"RT {rt_min:.1f}-{rt_max:.1f}s"
        else:
            rt_str = "empty"

        source = ""
        if self.source is not None and self.source.name:
            source = f", source={self.source.name}"

        return f"MSRun({len(self)} spectra, {ms_str}, {rt_str}{source})"
