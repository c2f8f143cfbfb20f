"""
Directory aggregators.

A directory of files in one format is treated as one logical file. The
aggregators own one single-file object per member and a merged view that
is rebuilt from scratch by every load:

- DataFileDirectory: spectral members, scans merged into one dense run.
- ResultDirectory: result members, records concatenated.

Members are the entries whose name ends with the format's canonical
extension, visited in lexicographic name order, so repeated loads of the
same content always merge in the same order.
"""

import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Optional

from .config import FilteringParams
from .core import MSRun, Record, Spectrum
from .data_file import DataFile
from .io import FormatId, classify, resolve
from .io.formats import has_extension, is_spectral
from .result_file import ResultFile
from .exceptions import DirectoryNotFound, EmptyFile, UnsupportedFormat


logger = logging.getLogger(__name__)


def list_member_paths(directory: Path, format_id: FormatId) -> list[Path]:
    """
    Entries of ``directory`` belonging to ``format_id``, sorted by name.

    Raises:
        DirectoryNotFound: If ``directory`` is not an existing directory.
    """
    if not directory.is_dir():
        raise DirectoryNotFound("Directory not found", directory)

    members = []
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        if not has_extension(entry, format_id):
            logger.debug(f"Skipping {entry.name}: not a {format_id.name} file")
            continue
        try:
            entry_format = classify(entry)
        except (UnsupportedFormat, EmptyFile) as e:
            logger.debug(f"Skipping {entry.name}: {e.message}")
            continue
        if entry_format is not format_id:
            logger.debug(f"Skipping {entry.name}: classified as {entry_format.name}")
            continue
        members.append(entry)
    return members


class DataFileDirectory:
    """
    A directory of spectral files read as one run.

    Example:
        >>> runs = DataFileDirectory("fractions/").load_all_static_data()
        >>> runs.num_spectra        # sum over members, numbered 1..N
        >>> runs.get_member("f01.mzML").num_spectra
    """

    def __init__(self, path: Path | str, format_id: FormatId = FormatId.MZML):
        self.path = Path(path)
        if not is_spectral(format_id):
            raise UnsupportedFormat(f"{format_id.name} is not a spectral format", self.path)
        self.format_id = format_id
        self._members: dict[str, DataFile] = {}
        self._scans: Optional[MSRun] = None

    def load_all_static_data(
        self,
        filtering_params: Optional[FilteringParams] = None,
        max_threads: int = 1,
    ) -> 'DataFileDirectory':
        """
        Load every member and merge their scans.

        Scans are renumbered 1..N across members, member by member; each
        member's precursor references are shifted with its scans. A member
        that fails to load fails the whole call.

        Raises:
            DirectoryNotFound: If the directory does not exist.
        """
        members = {
            entry.name: DataFile(entry, self.format_id).load_all_static_data(
                filtering_params, max_threads
            )
            for entry in list_member_paths(self.path, self.format_id)
        }
        self._members = members
        self._scans = MSRun.concatenate(member.scans for member in members.values())
        logger.info(
            f"Merged {len(self._scans)} scans from {len(members)} files in {self.path}"
        )
        return self

    @property
    def members(self) -> Mapping[str, DataFile]:
        """Loaded members by file name, in merge order."""
        return MappingProxyType(self._members)

    def get_member(self, name: str) -> Optional[DataFile]:
        return self._members.get(name)

    @property
    def scans(self) -> MSRun:
        if self._scans is None:
            self.load_all_static_data()
        return self._scans

    @property
    def num_spectra(self) -> int:
        return len(self.scans)

    def get_all_scans_list(self) -> list[Spectrum]:
        return list(self.scans)

    def __len__(self) -> int:
        return self.num_spectra

    def __iter__(self) -> Iterator[Spectrum]:
        return iter(self.scans)

    def write_results(self, directory: Path | str) -> list[Path]:
        """
        Write each member to ``directory`` under its own name and format.

        Returns:
            Paths written, in member order.
        """
        if self._scans is None:
            self.load_all_static_data()
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        codec = resolve(self.format_id)
        written = [
            codec.encode(list(member.scans), member.get_source_file(), directory / name)
            for name, member in self._members.items()
        ]
        logger.info(f"Wrote {len(written)} {self.format_id.name} files to {directory}")
        return written


class ResultDirectory:
    """
    A directory of result files read as one record list.

    Example:
        >>> pufs = ResultDirectory("top_down/", FormatId.PUF).load_results()
        >>> [r.record_id for r in pufs.results]
        ['953', '955', '956']
        >>> pufs.find_scan('955').metadata.precursor.mz
    """

    def __init__(self, path: Path | str, format_id: FormatId):
        self.path = Path(path)
        if is_spectral(format_id):
            raise UnsupportedFormat(f"{format_id.name} is a spectral format", self.path)
        self.format_id = format_id
        self._members: dict[str, ResultFile] = {}
        self._results: Optional[list[Record]] = None
        self._scans: Optional[MSRun] = None

    def load_results(self) -> 'ResultDirectory':
        """
        Load every member and concatenate their records in member order.

        Raises:
            DirectoryNotFound: If the directory does not exist.
        """
        members = {
            entry.name: ResultFile(entry, self.format_id).load_results()
            for entry in list_member_paths(self.path, self.format_id)
        }
        self._members = members
        self._results = [record for member in members.values() for record in member.results]
        self._scans = None
        logger.info(
            f"Merged {len(self._results)} records from {len(members)} files in {self.path}"
        )
        return self

    @property
    def members(self) -> Mapping[str, ResultFile]:
        return MappingProxyType(self._members)

    def get_member(self, name: str) -> Optional[ResultFile]:
        return self._members.get(name)

    @property
    def results(self) -> list[Record]:
        if self._results is None:
            self.load_results()
        return self._results

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[Record]:
        return iter(self.results)

    def write_results(self, directory: Path | str) -> list[Path]:
        """Write each member to ``directory`` under its own name."""
        if self._results is None:
            self.load_results()
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        written = [
            member.write_results(directory / name)
            for name, member in self._members.items()
        ]
        logger.info(f"Wrote {len(written)} {self.format_id.name} files to {directory}")
        return written

    def get_scans(self) -> MSRun:
        """
        Spectral view of the merged records, one scan per record, numbered 1..N.

        Raises:
            UnsupportedFormat: If the format has no spectral view.
        """
        if self._scans is None:
            self._scans = resolve(self.format_id).to_spectra(self.results)
        return self._scans

    def find_scan(self, native_id: str) -> Optional[Spectrum]:
        """Scan of the spectral view whose native id is ``native_id``."""
        return self.get_scans().get_by_native_id(native_id)
