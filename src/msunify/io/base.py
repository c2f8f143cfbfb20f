"""
Decoder/encoder contracts.

A format is handled by one codec object:

- SpectrumFormat: decodes files to scans (eagerly, or lazily through a
  SpectrumReader handle) and encodes scans back to disk.
- ResultFormat: decodes result files to records and encodes them back.

SpectrumReader is the random-access handle a dynamic connection holds.
Reading a record from disk is sequential I/O; turning it into a Spectrum
and filtering it is pure and may run on worker threads.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, ClassVar, Optional

from .formats import FormatId
from ..config import FilteringParams
from ..core import MSRun, Record, SourceDescriptor, Spectrum, filter_peaks
from ..exceptions import (
    ConnectionNotOpen,
    DataFileNotFound,
    MalformedRecord,
    MsUnifyError,
    UnsupportedFormat,
)


logger = logging.getLogger(__name__)


def require_file(path: Path | str) -> Path:
    """Return ``path`` as a Path, raising DataFileNotFound if it does not exist."""
    path = Path(path)
    if not path.exists():
        raise DataFileNotFound("File not found", path)
    return path


class SpectrumReader(ABC):
    """
    Random-access handle onto one spectral file.

    Scan ``n`` of a file is its n-th spectrum in file order; precursor
    references are resolved to that numbering by each reader.

    Example:
        >>> with MzMLReader("sample.mzML") as reader:
        ...     spectrum = reader.get_one_based_scan(5)
        ...     missing = reader.get_one_based_scan(10_000)  # None
    """

    format_id: ClassVar[FormatId]

    def __init__(self, path: Path | str):
        self.path = require_file(path)
        self._is_open = False

    @property
    def is_open(self) -> bool:
        return self._is_open

    @abstractmethod
    def open(self) -> 'SpectrumReader':
        """Acquire the underlying resource and build the spectrum index."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the underlying resource. Safe to call more than once."""
        ...

    def __enter__(self) -> 'SpectrumReader':
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _check_open(self) -> None:
        if not self._is_open:
            raise ConnectionNotOpen("Reader is not open", self.path)

    @abstractmethod
    def __len__(self) -> int:
        """Total number of spectra."""
        ...

    @property
    @abstractmethod
    def source_file(self) -> SourceDescriptor:
        """Source descriptor of the open file."""
        ...

    @abstractmethod
    def _read_record(self, index: int) -> Any:
        """Raw decoder record at a 0-based position."""
        ...

    @abstractmethod
    def _build_spectrum(self, record: Any, index: int) -> Spectrum:
        """Convert a raw record to a Spectrum numbered ``index + 1``."""
        ...

    def _iter_records(self) -> Iterator[Any]:
        """Raw records in file order."""
        for index in range(len(self)):
            yield self._read_record(index)

    def _decode(
        self,
        record: Any,
        index: int,
        filtering_params: Optional[FilteringParams],
    ) -> Spectrum:
        try:
            spectrum = self._build_spectrum(record, index)
        except MsUnifyError:
            raise
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise MalformedRecord(f"Cannot decode spectrum: {e}", self.path, index) from e
        if filtering_params is not None:
            spectrum = filter_peaks(spectrum, filtering_params)
        return spectrum

    def get_spectrum_by_index(
        self,
        index: int,
        filtering_params: Optional[FilteringParams] = None,
    ) -> Spectrum:
        """
        Decode the spectrum at a 0-based position.

        Raises:
            ConnectionNotOpen: If the reader is not open.
            IndexError: If index is out of range.
        """
        self._check_open()
        if index < 0 or index >= len(self):
            raise IndexError(f"Index {index} out of range (0-{len(self) - 1})")
        return self._decode(self._read_record(index), index, filtering_params)

    def get_one_based_scan(
        self,
        scan_number: int,
        filtering_params: Optional[FilteringParams] = None,
    ) -> Optional[Spectrum]:
        """Decode scan ``scan_number``, None when it is out of range."""
        self._check_open()
        if scan_number < 1 or scan_number > len(self):
            return None
        return self.get_spectrum_by_index(scan_number - 1, filtering_params)

    def read_all(
        self,
        filtering_params: Optional[FilteringParams] = None,
        max_threads: int = 1,
    ) -> list[Spectrum]:
        """
        Decode every spectrum.

        Records are read sequentially; conversion and filtering are spread
        over ``max_threads`` workers. The result is always in file order.
        """
        self._check_open()
        records = list(self._iter_records())

        def build(item: tuple[int, Any]) -> Spectrum:
            index, record = item
            return self._decode(record, index, filtering_params)

        if max_threads <= 1 or len(records) < 2:
            return [build(item) for item in enumerate(records)]
        with ThreadPoolExecutor(max_workers=max_threads) as executor:
            return list(executor.map(build, enumerate(records)))

    def __iter__(self) -> Iterator[Spectrum]:
        """Iterate over all spectra in file order."""
        self._check_open()
        for index, record in enumerate(self._iter_records()):
            yield self._decode(record, index, None)


class SpectrumFormat(ABC):
    """
    Codec for a spectral format.

    Subclasses set ``format_id`` and ``reader_class`` and implement
    ``encode`` (read-only formats raise UnsupportedFormat).
    """

    format_id: ClassVar[FormatId]
    reader_class: ClassVar[type[SpectrumReader]]

    @classmethod
    def is_available(cls) -> bool:
        """Whether the codec's dependencies are installed."""
        return True

    def open_random_access(self, path: Path | str) -> SpectrumReader:
        """Open a random-access handle. The caller owns it and must close it."""
        reader = self.reader_class(path)
        return reader.open()

    def fetch(
        self,
        handle: SpectrumReader,
        scan_number: int,
        filtering_params: Optional[FilteringParams] = None,
    ) -> Optional[Spectrum]:
        return handle.get_one_based_scan(scan_number, filtering_params)

    def close(self, handle: SpectrumReader) -> None:
        handle.close()

    def decode(
        self,
        path: Path | str,
        filtering_params: Optional[FilteringParams] = None,
        max_threads: int = 1,
    ) -> tuple[list[Spectrum], SourceDescriptor]:
        """
        Decode every scan of a file.

        Returns:
            (scans numbered 1..N in file order, source descriptor)
        """
        with self.reader_class(path) as reader:
            scans = reader.read_all(filtering_params, max_threads)
            return scans, reader.source_file

    def read_source_file(self, path: Path | str) -> SourceDescriptor:
        """Source descriptor without decoding the scans."""
        with self.reader_class(path) as reader:
            return reader.source_file

    @abstractmethod
    def encode(
        self,
        scans: Sequence[Spectrum],
        source: Optional[SourceDescriptor],
        path: Path | str,
        write_index: bool = True,
    ) -> Path:
        """Write scans to ``path`` and return the path written."""
        ...


class ResultFormat(ABC):
    """
    Codec for a result-record format.

    Formats whose records describe spectra (libraries, top-down
    identifications) set ``supports_spectra`` and implement
    ``_record_to_spectrum``.
    """

    format_id: ClassVar[FormatId]
    supports_spectra: ClassVar[bool] = False

    @classmethod
    def is_available(cls) -> bool:
        return True

    @abstractmethod
    def decode_records(self, path: Path | str) -> list[Record]:
        """Read every record of a file, in file order."""
        ...

    @abstractmethod
    def encode_records(self, records: Sequence[Record], path: Path | str) -> Path:
        """Write records to ``path`` and return the path written."""
        ...

    def _record_to_spectrum(self, record: Record, scan_number: int) -> Spectrum:
        raise UnsupportedFormat(f"{self.format_id.name} records have no spectral view")

    def to_spectra(self, records: Sequence[Record]) -> MSRun:
        """
        Spectral view of records: one MS2 scan per record, numbered 1..N.

        Raises:
            UnsupportedFormat: If the format has no spectral view.
        """
        if not self.supports_spectra:
            raise UnsupportedFormat(f"{self.format_id.name} records have no spectral view")
        return MSRun([
            self._record_to_spectrum(record, idx + 1)
            for idx, record in enumerate(records)
        ])
