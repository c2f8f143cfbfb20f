"""
Core data structures for msunify.

This module provides the format-agnostic model every decoder produces:

- Spectrum: One scan with m/z-intensity arrays
- ScanMetadata: Scan numbering and acquisition metadata
- PrecursorInfo: Selected ion information for MSn scans
- MSRun: A dense, ordered scan collection
- SourceDescriptor: File/instrument/checksum identity of a collection

Result file records:
- TabularRecord: One row of a result table
- LibrarySpectrum, LibraryPeak: MSP spectral library entries
- PufExperiment and friends: ProSight PUF experiments

Enums for categorical metadata:
- Polarity: Ion polarity (positive/negative)
- SpectrumType: Data mode (profile/centroid)
- ActivationType: Dissociation method
"""

from .scan_metadata import (
    ActivationType,
    Polarity,
    PrecursorInfo,
    ScanMetadata,
    SpectrumType,
)
from .spectrum import Spectrum
from .source import SourceDescriptor
from .run import MSRun, renumber_spectra, validate_numbering
from .filtering import filter_peaks
from .records import (
    LibraryPeak,
    LibrarySpectrum,
    PufAnalysis,
    PufExperiment,
    PufHit,
    PufHitList,
    PufIon,
    Record,
    TabularRecord,
)

__all__ = [
    # Main classes
    "Spectrum",
    "ScanMetadata",
    "PrecursorInfo",
    "MSRun",
    "SourceDescriptor",
    # Numbering and filtering
    "renumber_spectra",
    "validate_numbering",
    "filter_peaks",
    # Records
    "Record",
    "TabularRecord",
    "LibraryPeak",
    "LibrarySpectrum",
    "PufAnalysis",
    "PufExperiment",
    "PufHit",
    "PufHitList",
    "PufIon",
    # Enums
    "Polarity",
    "SpectrumType",
    "ActivationType",
]
