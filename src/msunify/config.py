"""
Process-wide configuration for msunify.

Per-call options are frozen dataclasses. Module-level defaults are
created once at import and never mutated.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, slots=True)
class FilteringParams:
    """
    Peak filtering applied while decoding spectra.

    Attributes:
        min_ratio: Drop peaks whose intensity is below this fraction
            (0-1) of the scan's most intense peak.
        max_peaks_per_scan: Keep at most this many peaks, the most intense
            ones. When windows are configured the cap applies per window.
        apply_to_ms1_only: Leave MSn (n > 1) scans untouched.
        number_of_windows: Split the scan's m/z range into this many equal
            windows before applying max_peaks_per_scan.
        window_width_thomsons: Alternative to number_of_windows: split into
            windows of this width in Th.

    Example:
        >>> params = FilteringParams(min_ratio=0.01, max_peaks_per_scan=200)
        >>> params.is_noop
        False
    """
    min_ratio: Optional[float] = None
    max_peaks_per_scan: Optional[int] = None
    apply_to_ms1_only: bool = False
    number_of_windows: Optional[int] = None
    window_width_thomsons: Optional[float] = None

    def __post_init__(self) -> None:
        if self.min_ratio is not None and not 0.0 <= self.min_ratio <= 1.0:
            raise ValueError(f"min_ratio must be within [0, 1], got {self.min_ratio}")
        if self.max_peaks_per_scan is not None and self.max_peaks_per_scan < 1:
            raise ValueError(
                f"max_peaks_per_scan must be >= 1, got {self.max_peaks_per_scan}"
            )
        if self.number_of_windows is not None and self.number_of_windows < 1:
            raise ValueError(
                f"number_of_windows must be >= 1, got {self.number_of_windows}"
            )
        if self.window_width_thomsons is not None and self.window_width_thomsons <= 0:
            raise ValueError(
                f"window_width_thomsons must be > 0, got {self.window_width_thomsons}"
            )
        if self.number_of_windows is not None and self.window_width_thomsons is not None:
            raise ValueError("Set number_of_windows or window_width_thomsons, not both")

    @property
    def is_noop(self) -> bool:
        """True when no peak would ever be removed."""
        return self.min_ratio is None and self.max_peaks_per_scan is None

    def applies_to(self, ms_level: int) -> bool:
        """Whether filtering is applied to scans of this MS level."""
        if self.is_noop:
            return False
        return ms_level == 1 or not self.apply_to_ms1_only


DEFAULT_FILTERING = FilteringParams()
