"""
Spectrum file readers.

Open formats:
- MzMLReader: mzML and indexedmzML files (lxml, byte-offset random access)
- MgfReader: Mascot generic format peak lists

Vendor formats (via ProteoWizard/Apptainer):
- ThermoRawReader: Thermo .raw files
- BrukerDReader: Bruker .d folders

Convenience functions:
- read_mzml(), read_mgf(): Load a file into an MSRun
- read_with_proteowizard(): Load vendor file via ProteoWizard
- convert_files_batch(): Batch convert vendor files with parallelization
"""

from .mzml import MzMLFormat, MzMLReader, read_mzml, read_mzml_source_file
from .mgf import MgfFormat, MgfReader, read_mgf
from .proteowizard import (
    BrukerDFormat,
    BrukerDReader,
    ConversionOptions,
    ConversionResult,
    ProteoWizardReader,
    ThermoRawFormat,
    ThermoRawReader,
    convert_files_batch,
    read_with_proteowizard,
)

__all__ = [
    # Readers
    "MzMLReader",
    "MgfReader",
    "ProteoWizardReader",
    "ThermoRawReader",
    "BrukerDReader",
    # Codecs
    "MzMLFormat",
    "MgfFormat",
    "ThermoRawFormat",
    "BrukerDFormat",
    # Convenience functions
    "read_mzml",
    "read_mzml_source_file",
    "read_mgf",
    "read_with_proteowizard",
    "convert_files_batch",
    # Options/Results
    "ConversionOptions",
    "ConversionResult",
]
