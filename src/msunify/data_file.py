"""
Unified spectral data file.

A DataFile hides the on-disk format behind one interface with two modes
of access:

- Static: ``load_all_static_data`` decodes every scan into memory.
- Dynamic: ``initiate_dynamic_connection`` opens a random-access handle
  and ``get_one_based_scan_from_dynamic_connection`` decodes single scans
  on demand, without materialising the whole file.

Scans are always numbered 1..N in file order. At most one dynamic
connection is open per instance; it is released by
``close_dynamic_connection`` or by leaving a ``with`` block.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from .config import FilteringParams
from .core import MSRun, SourceDescriptor, Spectrum
from .io import FormatId, SpectrumFormat, SpectrumReader, classify, resolve
from .io.base import require_file
from .io.formats import get_extension, is_spectral
from .exceptions import ConnectionNotOpen, UnsupportedFormat
from .utils import clamp_threads, snip_path


logger = logging.getLogger(__name__)


class DataFile:
    """
    One spectral file (mzML, MGF, Thermo RAW, Bruker .d).

    Construction does not touch the file system beyond classifying the
    name; a missing file is reported by the first load or connection.

    Attributes:
        path: Path of the file.
        format_id: Format of the file.

    Example:
        >>> data = DataFile("sample.mzML").load_all_static_data()
        >>> data.num_spectra
        142
        >>> with data.dynamic_connection():
        ...     scan = data.get_one_based_scan_from_dynamic_connection(5)
    """

    def __init__(self, path: Path | str, format_id: Optional[FormatId] = None):
        self.path = Path(path)
        self.format_id = format_id if format_id is not None else classify(self.path)
        if not is_spectral(self.format_id):
            raise UnsupportedFormat(
                f"{self.format_id.name} is not a spectral format", self.path
            )
        self._codec: SpectrumFormat = resolve(self.format_id)
        self._run: Optional[MSRun] = None
        self._source: Optional[SourceDescriptor] = None
        self._handle: Optional[SpectrumReader] = None

    # -------------------------------------------------------------------------
    # Static access
    # -------------------------------------------------------------------------

    def load_all_static_data(
        self,
        filtering_params: Optional[FilteringParams] = None,
        max_threads: int = 1,
    ) -> 'DataFile':
        """
        Decode every scan into memory, replacing anything loaded before.

        Args:
            filtering_params: Optional peak filtering applied to each scan.
            max_threads: Worker threads for decoding. Never affects scan order.

        Returns:
            self

        Raises:
            DataFileNotFound: If the file does not exist.
            MalformedRecord: If a scan cannot be decoded.
        """
        require_file(self.path)
        threads = clamp_threads(max_threads)
        scans, source = self._codec.decode(self.path, filtering_params, threads)
        self._run = MSRun(scans, source=source)
        self._source = source
        logger.info(f"Loaded {len(scans)} scans from {self.path.name} ({threads} threads)")
        return self

    @property
    def scans_loaded(self) -> bool:
        return self._run is not None

    @property
    def scans(self) -> MSRun:
        """All scans, loading the file first if needed."""
        if self._run is None:
            self.load_all_static_data()
        return self._run

    def get_all_scans_list(self) -> list[Spectrum]:
        return list(self.scans)

    def get_source_file(self) -> SourceDescriptor:
        """
        Source descriptor of the file.

        Read from the header alone when nothing has been loaded yet.
        """
        if self._source is None:
            require_file(self.path)
            self._source = self._codec.read_source_file(self.path)
        return self._source

    @property
    def num_spectra(self) -> int:
        return len(self.scans)

    def get_one_based_scan(self, scan_number: int) -> Optional[Spectrum]:
        """Loaded scan by number, None when out of range."""
        return self.scans.get_by_scan(scan_number)

    def get_ms1_scans(self) -> list[Spectrum]:
        return list(self.scans.iter_ms_level(1))

    def get_scans_in_index_range(self, first: int, last: int) -> list[Spectrum]:
        """Scans numbered ``first..last`` inclusive."""
        return self.scans.get_scan_range(first, last)

    def get_scans_in_time_range(self, rt_start: float, rt_end: float) -> list[Spectrum]:
        """Scans with retention time (seconds) in ``[rt_start, rt_end]``."""
        return self.scans.get_rt_range(rt_start, rt_end)

    def get_closest_one_based_spectrum_number(self, retention_time: float) -> Optional[int]:
        return self.scans.closest_scan_number(retention_time)

    def __len__(self) -> int:
        return self.num_spectra

    def __iter__(self) -> Iterator[Spectrum]:
        return iter(self.scans)

    # -------------------------------------------------------------------------
    # Dynamic connection
    # -------------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._handle is not None

    def initiate_dynamic_connection(self) -> None:
        """
        Open a random-access handle, closing any handle already open.

        Raises:
            DataFileNotFound: If the file does not exist.
        """
        self.close_dynamic_connection()
        require_file(self.path)
        self._handle = self._codec.open_random_access(self.path)
        logger.debug(f"Opened dynamic connection to {self.path.name} ({len(self._handle)} scans)")

    def get_one_based_scan_from_dynamic_connection(
        self,
        scan_number: int,
        filtering_params: Optional[FilteringParams] = None,
    ) -> Optional[Spectrum]:
        """
        Decode one scan through the open connection.

        Returns:
            The scan, or None if ``scan_number`` is outside 1..N.

        Raises:
            ConnectionNotOpen: If no connection is open.
        """
        if self._handle is None:
            raise ConnectionNotOpen("Dynamic connection is not open", self.path)
        return self._codec.fetch(self._handle, scan_number, filtering_params)

    def close_dynamic_connection(self) -> None:
        """Release the handle. Safe to call when nothing is open."""
        if self._handle is None:
            return
        self._codec.close(self._handle)
        self._handle = None
        logger.debug(f"Closed dynamic connection to {self.path.name}")

    @contextmanager
    def dynamic_connection(self) -> Iterator['DataFile']:
        """Scope a dynamic connection to a ``with`` block."""
        self.initiate_dynamic_connection()
        try:
            yield self
        finally:
            self.close_dynamic_connection()

    def __enter__(self) -> 'DataFile':
        self.initiate_dynamic_connection()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close_dynamic_connection()

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def export_as_mzml(self, path: Path | str, write_index: bool = True) -> Path:
        """
        Write all scans as mzML.

        Args:
            path: Output path.
            write_index: Write indexedmzML (spectrum offsets and SHA-1 checksum).

        Returns:
            The path written.
        """
        run = self.scans
        return resolve(FormatId.MZML).encode(
            list(run), self.get_source_file(), path, write_index=write_index
        )

    def export_snip_as_mzml(self, start: int, end: int) -> Path:
        """
        Write scans ``start..end`` to ``<stem>_snip_<start>-<end>.mzML`` beside the file.

        Scans are renumbered from 1; precursor references leaving the range
        are dropped; native ids are kept.

        Raises:
            ValueError: Unless ``1 <= start <= end <= num_spectra``.
        """
        snipped = self.scans.snip(start, end)
        snipped.validate_numbering()
        output = snip_path(self.path, get_extension(self.format_id), start, end)
        return resolve(FormatId.MZML).encode(
            list(snipped), self.get_source_file(), output, write_index=True
        )

    def __repr__(self) -> str:
        state = f"{len(self._run)} scans" if self._run is not None else "not loaded"
        return f"DataFile({self.path.name}, {self.format_id.name}, {state})"


def read_data_file(
    path: Path | str,
    filtering_params: Optional[FilteringParams] = None,
    max_threads: int = 1,
) -> DataFile:
    """Classify and fully load a spectral file."""
    return DataFile(path).load_all_static_data(filtering_params, max_threads)
