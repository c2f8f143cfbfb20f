"""
Scan metadata for unified spectra.

ScanMetadata holds everything the unified model tracks about one scan
apart from its peak arrays: numbering, acquisition context, precursor
selection for MSn scans and the decoder's native identifier. Instances
are frozen; renumbering produces new objects.
"""

from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Optional


class Polarity(Enum):
    """Ion polarity mode."""
    POSITIVE = auto()
    NEGATIVE = auto()
    UNKNOWN = auto()


class SpectrumType(Enum):
    """Spectrum data representation type."""
    PROFILE = auto()
    CENTROID = auto()
    UNKNOWN = auto()


class ActivationType(Enum):
    """Dissociation method for MS2+ scans."""
    CID = auto()      # Collision-Induced Dissociation
    HCD = auto()      # Higher-energy Collisional Dissociation
    ETD = auto()      # Electron Transfer Dissociation
    ECD = auto()      # Electron Capture Dissociation
    ETHCD = auto()    # ETD with supplemental HCD
    UVPD = auto()     # Ultraviolet Photodissociation
    IRMPD = auto()    # Infrared Multiphoton Dissociation
    PQD = auto()      # Pulsed Q Dissociation
    UNKNOWN = auto()

    @classmethod
    def from_name(cls, name: Optional[str]) -> 'ActivationType':
        """Look up by enum name (case-insensitive), UNKNOWN for anything else."""
        if not name:
            return cls.UNKNOWN
        return cls.__members__.get(name.strip().upper().replace('-', ''), cls.UNKNOWN)


@dataclass(frozen=True, slots=True)
class PrecursorInfo:
    """
    Selected precursor ion of an MSn scan.

    Attributes:
        mz: Selected ion m/z.
        charge: Charge state (None if unknown).
        intensity: Selected ion intensity (None if unknown).
        isolation_window_lower: Lower offset of the isolation window in Th.
        isolation_window_upper: Upper offset of the isolation window in Th.
        activation_type: Dissociation method.
        collision_energy: Collision energy value.
        parent_scan_number: One-based scan number of the scan the ion was
            selected from, in the same collection.
    """
    mz: float
    charge: Optional[int] = None
    intensity: Optional[float] = None
    isolation_window_lower: Optional[float] = None
    isolation_window_upper: Optional[float] = None
    activation_type: ActivationType = ActivationType.UNKNOWN
    collision_energy: Optional[float] = None
    parent_scan_number: Optional[int] = None

    @property
    def isolation_window_width(self) -> Optional[float]:
        """Total isolation window width in Th."""
        if self.isolation_window_lower is not None and self.isolation_window_upper is not None:
            return self.isolation_window_lower + self.isolation_window_upper
        return None


@dataclass(frozen=True, slots=True)
class ScanMetadata:
    """
    Metadata for a single scan.

    Attributes:
        scan_number: One-based position of the scan in its collection.
        ms_level: MS level (1 for MS1, 2 for MS2, etc.).
        retention_time: Retention time in seconds.
        polarity: Ion polarity mode.
        spectrum_type: Profile or centroid mode.
        scan_window_lower: Lower m/z limit of the scan range.
        scan_window_upper: Upper m/z limit of the scan range.
        total_ion_current: TIC reported by the decoder, None when unavailable.
        injection_time: Ion injection time in milliseconds.
        precursor: Selected ion for MSn scans.
        filter_string: Vendor scan filter string.
        native_id: Decoder-specific spectrum identifier, opaque to msunify.
        description: Free-text spectrum title (MGF TITLE, library name...).
        extras: Additional metadata not covered by standard fields.
    """
    scan_number: int
    ms_level: int
    retention_time: float  # seconds

    polarity: Polarity = Polarity.UNKNOWN
    spectrum_type: SpectrumType = SpectrumType.UNKNOWN

    scan_window_lower: Optional[float] = None
    scan_window_upper: Optional[float] = None

    total_ion_current: Optional[float] = None
    injection_time: Optional[float] = None  # milliseconds

    precursor: Optional[PrecursorInfo] = None

    filter_string: Optional[str] = None
    native_id: Optional[str] = None
    description: Optional[str] = None
    extras: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.scan_number < 1:
            raise ValueError(f"scan_number must be >= 1, got {self.scan_number}")
        if self.ms_level < 1:
            raise ValueError(f"ms_level must be >= 1, got {self.ms_level}")
        if self.retention_time < 0:
            raise ValueError(f"retention_time must be >= 0, got {self.retention_time}")

    @property
    def is_ms1(self) -> bool:
        return self.ms_level == 1

    @property
    def is_msn(self) -> bool:
        return self.ms_level > 1

    @property
    def retention_time_minutes(self) -> float:
        """Retention time in minutes."""
        return self.retention_time / 60.0

    @property
    def parent_scan_number(self) -> Optional[int]:
        """Precursor scan reference, None for MS1 or unresolved parents."""
        if self.precursor is None:
            return None
        return self.precursor.parent_scan_number

    def renumbered(
        self,
        scan_number: int,
        parent_scan_number: Optional[int] = None,
    ) -> 'ScanMetadata':
        """
        Return a copy with a new scan number and precursor reference.

        Args:
            scan_number: New one-based scan number.
            parent_scan_number: New precursor reference (None drops it).
        """
        precursor = self.precursor
        if precursor is not None and precursor.parent_scan_number != parent_scan_number:
            precursor = replace(precursor, parent_scan_number=parent_scan_number)
        return replace(self, scan_number=scan_number, precursor=precursor)
