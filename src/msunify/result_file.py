"""Unified result file: search results, features, libraries and PUF files as records."""

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Optional

from .core import MSRun, Record
from .io import FormatId, ResultFormat, classify, resolve
from .io.base import require_file
from .io.formats import get_format_info, has_extension, is_spectral, with_extension
from .exceptions import UnsupportedFormat


logger = logging.getLogger(__name__)


class ResultFile:
    """
    One result file and its records.

    Two result files are equal when they have the same format and
    element-wise equal records, in order.

    Example:
        >>> psms = read_result_file("search.psmtsv")
        >>> len(psms)
        1204
        >>> psms.write_results("copy")   # writes copy.psmtsv
    """

    def __init__(self, path: Path | str, format_id: Optional[FormatId] = None):
        self.path = Path(path)
        self.format_id = format_id if format_id is not None else classify(self.path)
        if is_spectral(self.format_id):
            raise UnsupportedFormat(
                f"{self.format_id.name} is a spectral format, use DataFile", self.path
            )
        self._codec: ResultFormat = resolve(self.format_id)
        self._results: Optional[list[Record]] = None

    @property
    def supports_spectra(self) -> bool:
        return self._codec.supports_spectra

    def load_results(self) -> 'ResultFile':
        """
        Decode every record, replacing anything loaded before.

        Raises:
            DataFileNotFound: If the file does not exist.
            MalformedRecord: If a record cannot be parsed.
        """
        require_file(self.path)
        self._results = self._codec.decode_records(self.path)
        logger.info(f"Loaded {len(self._results)} {self.format_id.name} records from {self.path.name}")
        return self

    @property
    def results(self) -> list[Record]:
        """Records in file order, loading the file first if needed."""
        if self._results is None:
            self.load_results()
        return self._results

    def write_results(self, path: Path | str) -> Path:
        """
        Write the records with this file's codec.

        The canonical extension is appended when ``path`` does not end with
        one this package recognises.

        Returns:
            The path written.
        """
        path = Path(path)
        if not any(has_extension(path, format_id) for format_id in FormatId):
            path = with_extension(path, self.format_id)
        written = self._codec.encode_records(self.results, path)
        logger.info(f"Wrote {len(self.results)} {self.format_id.name} records to {written}")
        return written

    def to_spectra(self) -> MSRun:
        """
        Spectral view of the records, scans numbered 1..N.

        Raises:
            UnsupportedFormat: If the format has no spectral view.
        """
        return self._codec.to_spectra(self.results)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResultFile):
            return NotImplemented
        return self.format_id is other.format_id and self.results == other.results

    __hash__ = None

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[Record]:
        return iter(self.results)

    def __repr__(self) -> str:
        state = f"{len(self._results)} records" if self._results is not None else "not loaded"
        return f"ResultFile({self.path.name}, {get_format_info(self.format_id).description}, {state})"


def read_result_file(path: Path | str) -> ResultFile:
    """Classify and load a result file."""
    return ResultFile(path).load_results()
