"""
Result file codecs.

- TabularFormat and its per-format subclasses: PSM, feature and
  quantified peak tables (pandas)
- MspFormat: MSP spectral libraries
- PufFormat: ProSight PUF top-down results
"""

from .tabular import TableSchema, TabularFormat, format_cell, parse_cell
from .msp import MspFormat
from .puf import PufFormat

__all__ = [
    "TableSchema",
    "TabularFormat",
    "parse_cell",
    "format_cell",
    "MspFormat",
    "PufFormat",
]
