"""
Records for non-spectral result files.

Three record families cover the supported result formats:

- TabularRecord: one row of a tab/comma separated result table
  (search engine PSMs, deconvolution features, quantified peaks)
- LibrarySpectrum: one entry of an MSP spectral library
- PufExperiment: one ms-ms_experiment of a ProSight PUF file

All records are immutable and compare by value. Each exposes
``record_id``, the identifier native to its format.
"""

import math
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Optional, Union

Cell = Union[int, float, str, None]


def _cells_equal(left: Cell, right: Cell) -> bool:
    if isinstance(left, float) and isinstance(right, float):
        if math.isnan(left) and math.isnan(right):
            return True
    return type(left) is type(right) and left == right


class TabularRecord(Mapping[str, Cell]):
    """
    One row of a result table.

    Behaves as a read-only mapping from column name to typed cell value,
    preserving column order. Empty cells are None. NaN cells compare equal
    to each other so that re-read tables compare equal to the original.

    Args:
        values: Column name -> cell value, in file column order.
        id_column: Column holding the record's native identifier.
    """

    __slots__ = ('_values', '_id_column')

    def __init__(self, values: Mapping[str, Cell], id_column: Optional[str] = None):
        self._values: dict[str, Cell] = dict(values)
        self._id_column = id_column

    def __getitem__(self, key: str) -> Cell:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    @property
    def columns(self) -> list[str]:
        return list(self._values)

    @property
    def record_id(self) -> Optional[str]:
        if self._id_column is None:
            return None
        value = self._values.get(self._id_column)
        return None if value is None else str(value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TabularRecord):
            return NotImplemented
        if list(self._values) != list(other._values):
            return False
        return all(
            _cells_equal(self._values[key], other._values[key])
            for key in self._values
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"TabularRecord(id={self.record_id!r}, {len(self)} columns)"


# -----------------------------------------------------------------------------
# Spectral library
# -----------------------------------------------------------------------------

_COMMENT_RT = re.compile(r'(?:^|\s)(?:iRT|RT)=([-+0-9.eE]+)')
_COMMENT_PARENT = re.compile(r'(?:^|\s)Parent=([-+0-9.eE]+)')


@dataclass(frozen=True, slots=True)
class LibraryPeak:
    """One annotated fragment peak of a library spectrum."""
    mz: float
    intensity: float
    annotation: Optional[str] = None


@dataclass(frozen=True, slots=True)
class LibrarySpectrum:
    """
    One MSP library entry.

    Attributes:
        sequence: Peptide (or compound) name, the part of ``Name:`` before '/'.
        charge: Precursor charge, the part of ``Name:`` after '/'.
        precursor_mz: Precursor m/z (``MW:`` line, else ``Parent=`` in the comment).
        comment: Raw ``Comment:`` line content.
        peaks: Fragment peaks in file order.
    """
    sequence: str
    charge: int
    precursor_mz: float
    comment: Optional[str] = None
    peaks: tuple[LibraryPeak, ...] = ()

    @property
    def name(self) -> str:
        return f"{self.sequence}/{self.charge}"

    @property
    def record_id(self) -> str:
        return self.name

    @property
    def retention_time(self) -> Optional[float]:
        """RT (or iRT) parsed from the comment, None when absent."""
        if not self.comment:
            return None
        match = _COMMENT_RT.search(self.comment)
        return float(match.group(1)) if match else None

    @staticmethod
    def parent_from_comment(comment: Optional[str]) -> Optional[float]:
        if not comment:
            return None
        match = _COMMENT_PARENT.search(comment)
        return float(match.group(1)) if match else None


# -----------------------------------------------------------------------------
# ProSight PUF
# -----------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class PufIon:
    """An intact or fragment ion of a PUF experiment."""
    id: Optional[str] = None
    mz_monoisotopic: Optional[float] = None
    mz_average: Optional[float] = None
    mass_monoisotopic: Optional[float] = None
    mass_average: Optional[float] = None
    intensity: Optional[float] = None

    @property
    def mz(self) -> Optional[float]:
        """Best available position: monoisotopic m/z, else monoisotopic mass."""
        if self.mz_monoisotopic:
            return self.mz_monoisotopic
        if self.mass_monoisotopic:
            return self.mass_monoisotopic
        return self.mz_average or self.mass_average


@dataclass(frozen=True, slots=True)
class PufHit:
    """One identification in a PUF hit list."""
    id: Optional[str] = None
    description: Optional[str] = None
    matching_gene_id: Optional[str] = None
    protein_form: Optional[str] = None
    sequence: Optional[str] = None
    sequence_length: Optional[int] = None
    theoretical_mass: Optional[float] = None
    mass_difference_da: Optional[float] = None
    mass_difference_ppm: Optional[float] = None
    p_score: Optional[str] = None
    expected: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PufHitList:
    intact_id: Optional[str] = None
    hits: tuple[PufHit, ...] = ()


@dataclass(frozen=True, slots=True)
class PufAnalysis:
    """
    One analysis of an experiment.

    ``search_parameters`` keeps the raw ``<search_parameters>`` element as
    serialized XML; msunify does not interpret it.
    """
    id: Optional[str] = None
    type: Optional[str] = None
    search_parameters: Optional[str] = None
    hit_lists: tuple[PufHitList, ...] = ()
    legend: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PufExperiment:
    """
    One ``ms-ms_experiment`` of a PUF file.

    Attributes:
        id: Experiment id, the record's native identifier.
        source: Source attribute (often the raw file name).
        comment: Free-text comment.
        fragmentation_method: Instrument fragmentation method (e.g. "HCD").
        ion_type: Fragment ion type (e.g. "BY").
        intacts: Precursor (intact) ions.
        fragments: Fragment ions.
        analyses: Search analyses with their hit lists.
    """
    id: Optional[str] = None
    source: Optional[str] = None
    comment: Optional[str] = None
    fragmentation_method: Optional[str] = None
    ion_type: Optional[str] = None
    intacts: tuple[PufIon, ...] = ()
    fragments: tuple[PufIon, ...] = ()
    analyses: tuple[PufAnalysis, ...] = field(default=())

    @property
    def record_id(self) -> Optional[str]:
        return self.id

    @property
    def precursor_mz(self) -> Optional[float]:
        """Position of the first intact ion."""
        return self.intacts[0].mz if self.intacts else None

    @property
    def precursor_intensity(self) -> Optional[float]:
        return self.intacts[0].intensity if self.intacts else None

    @property
    def hits(self) -> list[PufHit]:
        """All hits of all analyses, in file order."""
        return [
            hit
            for analysis in self.analyses
            for hit_list in analysis.hit_lists
            for hit in hit_list.hits
        ]

    @property
    def description(self) -> Optional[str]:
        """Description of the first hit, None when nothing was identified."""
        for hit in self.hits:
            if hit.description:
                return hit.description
        return None


Record = Union[TabularRecord, LibrarySpectrum, PufExperiment]
