"""
msunify: one interface over mass spectrometry data and result files.

Spectral files (mzML, MGF, Thermo RAW and Bruker .d through ProteoWizard)
are read as dense, one-based scan collections, either eagerly or through
a random-access dynamic connection. Result files (PSM, feature and
quantification tables, MSP libraries, ProSight PUF) are read as records.

Example:
    >>> from msunify import DataFile, read_result_file
    >>> data = DataFile("sample.mzML").load_all_static_data()
    >>> data.export_snip_as_mzml(1, 10)
    >>> psms = read_result_file("search.psmtsv")
"""

__version__ = "0.1.0"

from .config import DEFAULT_FILTERING, FilteringParams
from .core import MSRun, SourceDescriptor, Spectrum
from .io import FormatId, classify
from .data_file import DataFile, read_data_file
from .result_file import ResultFile, read_result_file
from .directory import DataFileDirectory, ResultDirectory
from .exceptions import (
    CodecNotRegistered,
    ConnectionNotOpen,
    DataFileNotFound,
    DecoderUnavailable,
    DirectoryNotFound,
    EmptyFile,
    MalformedRecord,
    MsUnifyError,
    ScanNumberingInvariantViolation,
    UnsupportedFormat,
)

__all__ = [
    "__version__",
    # Files
    "DataFile",
    "ResultFile",
    "DataFileDirectory",
    "ResultDirectory",
    "read_data_file",
    "read_result_file",
    # Model
    "Spectrum",
    "MSRun",
    "SourceDescriptor",
    # Formats
    "FormatId",
    "classify",
    # Configuration
    "FilteringParams",
    "DEFAULT_FILTERING",
    # Errors
    "MsUnifyError",
    "DataFileNotFound",
    "DirectoryNotFound",
    "UnsupportedFormat",
    "EmptyFile",
    "ConnectionNotOpen",
    "MalformedRecord",
    "ScanNumberingInvariantViolation",
    "CodecNotRegistered",
    "DecoderUnavailable",
]
