"""
Unified spectrum representation.

A Spectrum is one scan as every decoder produces it: parallel m/z and
intensity arrays plus immutable ScanMetadata. Operations that change
numbering or peaks return new Spectrum objects and leave the source
untouched.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from .scan_metadata import Polarity, ScanMetadata, SpectrumType


@dataclass(slots=True, eq=False)
class Spectrum:
    """
    A single scan with its peak list and metadata.

    The m/z array is not required to be sorted; decoders keep the order
    found on disk.

    Attributes:
        mz: Array of m/z values.
        intensity: Array of intensity values, same length as mz.
        metadata: Scan metadata.

    Example:
        >>> import numpy as np
        >>> from msunify.core.scan_metadata import ScanMetadata
        >>>
        >>> metadata = ScanMetadata(scan_number=1, ms_level=1, retention_time=60.5)
        >>> spectrum = Spectrum(
        ...     mz=np.array([100.0, 150.0, 200.0]),
        ...     intensity=np.array([1000.0, 5000.0, 2500.0]),
        ...     metadata=metadata
        ... )
        >>> spectrum.n_points
        3
        >>> spectrum.base_peak_mz
        150.0
    """
    mz: NDArray[np.float64]
    intensity: NDArray[np.float64]
    metadata: ScanMetadata

    def __post_init__(self) -> None:
        """Validate spectrum data consistency."""
        self.mz = np.asarray(self.mz, dtype=np.float64)
        self.intensity = np.asarray(self.intensity, dtype=np.float64)
        if self.mz.ndim != 1:
            raise ValueError(f"mz must be 1-dimensional, got shape {self.mz.shape}")
        if self.intensity.ndim != 1:
            raise ValueError(f"intensity must be 1-dimensional, got shape {self.intensity.shape}")
        if len(self.mz) != len(self.intensity):
            raise ValueError(
                f"mz and intensity must have same length, "
                f"got {len(self.mz)} and {len(self.intensity)}"
            )

    @property
    def n_points(self) -> int:
        """Number of peaks in the spectrum."""
        return len(self.mz)

    @property
    def is_empty(self) -> bool:
        return self.n_points == 0

    @property
    def mz_range(self) -> tuple[float, float]:
        """
        Return (min_mz, max_mz).

        Raises:
            ValueError: If spectrum is empty.
        """
        if self.is_empty:
            raise ValueError("Cannot get mz_range of empty spectrum")
        return float(self.mz.min()), float(self.mz.max())

    @property
    def total_intensity(self) -> float:
        """Sum of all intensities."""
        return float(np.sum(self.intensity))

    @property
    def total_ion_current(self) -> float:
        """TIC from metadata, falling back to the summed intensities."""
        if self.metadata.total_ion_current is not None:
            return self.metadata.total_ion_current
        return self.total_intensity

    @property
    def base_peak_index(self) -> int:
        """Index of the most intense peak."""
        if self.is_empty:
            raise ValueError("Cannot get base_peak_index of empty spectrum")
        return int(np.argmax(self.intensity))

    @property
    def base_peak_mz(self) -> float:
        return float(self.mz[self.base_peak_index])

    @property
    def base_peak_intensity(self) -> float:
        return float(self.intensity[self.base_peak_index])

    @property
    def is_centroid(self) -> bool:
        return self.metadata.spectrum_type == SpectrumType.CENTROID

    @property
    def polarity(self) -> Polarity:
        return self.metadata.polarity

    @property
    def ms_level(self) -> int:
        return self.metadata.ms_level

    @property
    def retention_time(self) -> float:
        """Retention time in seconds."""
        return self.metadata.retention_time

    @property
    def scan_number(self) -> int:
        return self.metadata.scan_number

    @property
    def native_id(self) -> Optional[str]:
        return self.metadata.native_id

    @property
    def parent_scan_number(self) -> Optional[int]:
        return self.metadata.parent_scan_number

    def copy(self) -> 'Spectrum':
        """Create a deep copy of this spectrum."""
        return Spectrum(
            mz=self.mz.copy(),
            intensity=self.intensity.copy(),
            metadata=self.metadata,  # frozen
        )

    def with_peaks(
        self,
        mz: NDArray[np.float64],
        intensity: NDArray[np.float64],
    ) -> 'Spectrum':
        """Return a spectrum with the same metadata and new peak arrays."""
        return Spectrum(mz=mz, intensity=intensity, metadata=self.metadata)

    def renumbered(
        self,
        scan_number: int,
        parent_scan_number: Optional[int] = None,
    ) -> 'Spectrum':
        """
        Return a spectrum sharing the peak arrays with new numbering.

        Args:
            scan_number: New one-based scan number.
            parent_scan_number: New precursor reference, None to drop it.
        """
        return Spectrum(
            mz=self.mz,
            intensity=self.intensity,
            metadata=self.metadata.renumbered(scan_number, parent_scan_number),
        )

    def __len__(self) -> int:
        """Return number of peaks."""
        return self.n_points

    def __repr__(self) -> str:
        if self.is_empty:
            mz_range_str = "empty"
        else:
            mz_min, mz_max = self.mz_range
            mz_range_str = f"m/z {mz_min:.2f}-{mz_max:.2f}"

        return (
            f"Spectrum(scan={self.scan_number}, "
            f"MS{self.ms_level}, "
            f"RT={self.retention_time:.2f}s, "
            f"{self.n_points} points, "
            f"{mz_range_str})"
        )
