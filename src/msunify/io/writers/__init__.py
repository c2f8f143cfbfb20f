"""
Spectrum file writers.

- write_mzml(): mzML / indexedmzML with offsets and SHA-1 checksum
- write_mgf(): Mascot generic format
"""

from .mzml import write_mzml
from .mgf import write_mgf

__all__ = [
    "write_mzml",
    "write_mgf",
]
