"""
I/O module for reading and writing mass spectrometry files.

This module provides:

Classification:
- FormatId: Closed set of supported formats
- classify(): Map a path to its FormatId
- FORMATS: Read-only format table

Registry:
- FormatRegistry: FormatId -> codec
- resolve(): Codec instance for a FormatId

Codec contracts:
- SpectrumReader: Random-access handle onto a spectral file
- SpectrumFormat: Spectral decoder/encoder
- ResultFormat: Result record decoder/encoder

Importing this package registers every codec.
"""

from .formats import (
    FORMATS,
    FormatId,
    FormatInfo,
    FormatKind,
    classify,
    get_extension,
    get_format_info,
    is_spectral,
    with_extension,
)
from .base import ResultFormat, SpectrumFormat, SpectrumReader
from .registry import FormatRegistry, resolve
from .readers import (
    ConversionOptions,
    ConversionResult,
    MgfReader,
    MzMLReader,
    convert_files_batch,
    read_mgf,
    read_mzml,
    read_with_proteowizard,
)
from .writers import write_mgf, write_mzml
from . import results  # noqa: F401  (registers result codecs)

__all__ = [
    # Classification
    "FORMATS",
    "FormatId",
    "FormatInfo",
    "FormatKind",
    "classify",
    "get_extension",
    "get_format_info",
    "is_spectral",
    "with_extension",
    # Registry and contracts
    "FormatRegistry",
    "resolve",
    "SpectrumReader",
    "SpectrumFormat",
    "ResultFormat",
    # Readers / writers
    "MzMLReader",
    "MgfReader",
    "read_mzml",
    "read_mgf",
    "write_mzml",
    "write_mgf",
    # Vendor conversion
    "read_with_proteowizard",
    "convert_files_batch",
    "ConversionOptions",
    "ConversionResult",
]
