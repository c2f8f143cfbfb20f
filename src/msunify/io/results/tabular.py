"""
Tab/comma separated result tables.

Search-engine PSM tables, deconvolution feature tables and quantified
peak tables share one codec: each row becomes a TabularRecord whose
cells are typed on read (int, float, str, or None for an empty cell)
and formatted back losslessly on write. Formats differ only in their
TableSchema: separator, identifier column and an optional free-text
preamble before the header (TopPIC).
"""

import logging
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Optional

import pandas as pd

from ..base import ResultFormat, require_file
from ..formats import FormatId
from ..registry import FormatRegistry
from ...core import TabularRecord
from ...core.records import Cell
from ...exceptions import MalformedRecord


logger = logging.getLogger(__name__)

_INT = re.compile(r'^[+-]?\d+$')
_FLOAT = re.compile(
    r'^[+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|nan|inf|infinity)$',
    re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class TableSchema:
    """
    Layout of a result table.

    Attributes:
        separator: Column separator.
        id_columns: Candidate identifier columns, first present wins.
        header_prefix: When set, lines before the first line starting with
            this text are a preamble and are skipped.
    """
    separator: str
    id_columns: tuple[str, ...]
    header_prefix: Optional[str] = None


def parse_cell(text: str) -> Cell:
    """
    Type a cell: '' -> None, integers -> int, decimals -> float, else str.

    Example:
        >>> parse_cell("42"), parse_cell("0.5"), parse_cell("PEPTIDE"), parse_cell("")
        (42, 0.5, 'PEPTIDE', None)
    """
    if text == '':
        return None
    if _INT.match(text):
        return int(text)
    if _FLOAT.match(text):
        return float(text)
    return text


def format_cell(value: Cell) -> str:
    """Inverse of parse_cell."""
    if value is None:
        return ''
    if isinstance(value, float):
        return 'NaN' if math.isnan(value) else repr(value)
    return str(value)


class TabularFormat(ResultFormat):
    """Codec for one result table layout."""

    schema: ClassVar[TableSchema]

    def _header_row(self, path: Path) -> int:
        """0-based line number of the header."""
        if self.schema.header_prefix is None:
            return 0
        with open(path, 'r', encoding='utf-8-sig') as handle:
            for line_number, line in enumerate(handle):
                if line.startswith(self.schema.header_prefix):
                    return line_number
        raise MalformedRecord(f"Missing '{self.schema.header_prefix}' header line", path)

    def decode_records(self, path: Path | str) -> list[TabularRecord]:
        """Read every row of the table, in file order."""
        path = require_file(path)
        if path.stat().st_size == 0:
            return []
        try:
            frame = pd.read_csv(
                path,
                sep=self.schema.separator,
                dtype=str,
                na_filter=False,
                skiprows=self._header_row(path),
                index_col=False,
                encoding='utf-8-sig',
            )
        except pd.errors.EmptyDataError:
            return []
        except pd.errors.ParserError as e:
            raise MalformedRecord(f"Cannot parse table: {e}", path) from e

        columns = [str(column) for column in frame.columns]
        id_column = next((c for c in self.schema.id_columns if c in columns), None)
        records = [
            TabularRecord(
                {column: parse_cell(value) for column, value in zip(columns, row)},
                id_column=id_column,
            )
            for row in frame.itertuples(index=False, name=None)
        ]
        logger.debug(f"Read {len(records)} rows from {path.name}")
        return records

    def encode_records(self, records: Sequence[TabularRecord], path: Path | str) -> Path:
        """Write rows with the union of their columns, in first-seen order."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        columns: dict[str, None] = {}
        for record in records:
            for column in record:
                columns.setdefault(column, None)
        frame = pd.DataFrame(
            [[format_cell(record.get(column)) for column in columns] for record in records],
            columns=list(columns),
            dtype=str,
        )
        if not columns:
            path.write_text('', encoding='utf-8')
        else:
            frame.to_csv(path, sep=self.schema.separator, index=False, lineterminator='\n')
        logger.debug(f"Wrote {len(records)} rows to {path.name}")
        return path


@FormatRegistry.register(FormatId.PSMTSV)
class PsmTsvFormat(TabularFormat):
    schema = TableSchema('\t', ('Scan Number',))


@FormatRegistry.register(FormatId.MS1_FEATURE)
class Ms1FeatureFormat(TabularFormat):
    schema = TableSchema('\t', ('Feature_ID', 'ID'))


@FormatRegistry.register(FormatId.MS2_FEATURE)
class Ms2FeatureFormat(TabularFormat):
    schema = TableSchema('\t', ('Spec_ID', 'ID', 'Feature_ID'))


@FormatRegistry.register(FormatId.TOPFD_MZRT)
class TopFdMzRtFormat(TabularFormat):
    schema = TableSchema(',', ('ID',))


@FormatRegistry.register(FormatId.FLASHDECONV_TSV)
class FlashDeconvTsvFormat(TabularFormat):
    schema = TableSchema('\t', ('FeatureIndex',))


@FormatRegistry.register(FormatId.FLASHDECONV_MS1_TSV)
class FlashDeconvMs1TsvFormat(TabularFormat):
    schema = TableSchema('\t', ('Index',))


@FormatRegistry.register(FormatId.TOPPIC_PRSM)
class TopPicPrsmFormat(TabularFormat):
    """TopPIC PrSM table. The parameter preamble is skipped and not written back."""
    schema = TableSchema('\t', ('Prsm ID',), header_prefix='Data file name')


@FormatRegistry.register(FormatId.MSFRAGGER_PSM)
class MsFraggerPsmFormat(TabularFormat):
    schema = TableSchema('\t', ('Spectrum',))


@FormatRegistry.register(FormatId.FLASHLFQ_QUANTIFIED_PEAK)
class FlashLfqQuantifiedPeakFormat(TabularFormat):
    schema = TableSchema('\t', ('Full Sequence',))
