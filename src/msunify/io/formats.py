"""
Format identifiers and path classification.

Every supported on-disk format has one FormatId and one canonical file
extension. ``classify`` maps a path to its FormatId from the file name;
only generic ``.tsv`` files, whose name alone is ambiguous, are
disambiguated from their first line.

The format table is built once at import and exposed read-only.
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from ..exceptions import DataFileNotFound, EmptyFile, UnsupportedFormat


logger = logging.getLogger(__name__)


class FormatKind(Enum):
    """What a format decodes to."""
    SPECTRA = auto()   # scans
    RESULTS = auto()   # result records


class FormatId(Enum):
    """Closed set of supported formats."""
    MZML = auto()
    MGF = auto()
    THERMO_RAW = auto()
    BRUKER_D = auto()
    PSMTSV = auto()
    MS1_FEATURE = auto()
    MS2_FEATURE = auto()
    TOPFD_MZRT = auto()
    FLASHDECONV_TSV = auto()
    FLASHDECONV_MS1_TSV = auto()
    TOPPIC_PRSM = auto()
    MSFRAGGER_PSM = auto()
    FLASHLFQ_QUANTIFIED_PEAK = auto()
    MSP = auto()
    PUF = auto()


@dataclass(frozen=True, slots=True)
class FormatInfo:
    """
    Static description of a format.

    Attributes:
        extension: Canonical file name suffix (case as usually written).
        kind: Whether the format holds scans or result records.
        description: Human readable name.
        writable: False for formats msunify can only read.
    """
    extension: str
    kind: FormatKind
    description: str
    writable: bool = True


FORMATS: Mapping[FormatId, FormatInfo] = MappingProxyType({
    FormatId.MZML: FormatInfo('.mzML', FormatKind.SPECTRA, 'mzML'),
    FormatId.MGF: FormatInfo('.mgf', FormatKind.SPECTRA, 'Mascot generic format'),
    FormatId.THERMO_RAW: FormatInfo('.raw', FormatKind.SPECTRA, 'Thermo RAW', writable=False),
    FormatId.BRUKER_D: FormatInfo('.d', FormatKind.SPECTRA, 'Bruker .d folder', writable=False),
    FormatId.PSMTSV: FormatInfo('.psmtsv', FormatKind.RESULTS, 'MetaMorpheus PSM table'),
    FormatId.MS1_FEATURE: FormatInfo('_ms1.feature', FormatKind.RESULTS, 'TopFD MS1 features'),
    FormatId.MS2_FEATURE: FormatInfo('_ms2.feature', FormatKind.RESULTS, 'MS2 features'),
    FormatId.TOPFD_MZRT: FormatInfo('.mzrt.csv', FormatKind.RESULTS, 'TopFD mz/rt table'),
    FormatId.FLASHDECONV_TSV: FormatInfo('.tsv', FormatKind.RESULTS, 'FLASHDeconv features'),
    FormatId.FLASHDECONV_MS1_TSV: FormatInfo('_ms1.tsv', FormatKind.RESULTS, 'FLASHDeconv MS1 masses'),
    FormatId.TOPPIC_PRSM: FormatInfo('_prsm.tsv', FormatKind.RESULTS, 'TopPIC PrSMs'),
    FormatId.MSFRAGGER_PSM: FormatInfo('psm.tsv', FormatKind.RESULTS, 'MSFragger PSMs'),
    FormatId.FLASHLFQ_QUANTIFIED_PEAK: FormatInfo(
        'QuantifiedPeaks.tsv', FormatKind.RESULTS, 'FlashLFQ quantified peaks'
    ),
    FormatId.MSP: FormatInfo('.msp', FormatKind.RESULTS, 'MSP spectral library'),
    FormatId.PUF: FormatInfo('.puf', FormatKind.RESULTS, 'ProSight PUF'),
})

# Suffixes that need the first line to pick a format
_SNIFFED_SUFFIX = '.tsv'

# Name suffix -> format, longest suffix first so compound extensions win
_SUFFIX_TABLE: tuple[tuple[str, FormatId], ...] = tuple(sorted(
    (
        (info.extension.lower(), format_id)
        for format_id, info in FORMATS.items()
        if info.extension.lower() != _SNIFFED_SUFFIX
    ),
    key=lambda item: len(item[0]),
    reverse=True,
))

# Generic suffixes recognised without a matching sub-format
_GENERIC_FAMILIES: Mapping[str, str] = MappingProxyType({
    '.feature': 'Feature',
    '.csv': 'Csv',
})

# First-line prefix -> format, for generic .tsv files
_TSV_HEADERS: tuple[tuple[str, FormatId], ...] = (
    ('File Name\tScan Number', FormatId.PSMTSV),
    ('File Name\tBase Sequence\tFull Sequence\tProtein Group', FormatId.FLASHLFQ_QUANTIFIED_PEAK),
    ('Spectrum\tSpectrum File', FormatId.MSFRAGGER_PSM),
    ('FeatureIndex\tFileName', FormatId.FLASHDECONV_TSV),
    ('Index\tFileName\tScanNum', FormatId.FLASHDECONV_MS1_TSV),
)


def get_format_info(format_id: FormatId) -> FormatInfo:
    """Static description of a format."""
    return FORMATS[format_id]


def get_extension(format_id: FormatId) -> str:
    """Canonical file name suffix of a format."""
    return FORMATS[format_id].extension


def is_spectral(format_id: FormatId) -> bool:
    """True for formats that decode to scans."""
    return FORMATS[format_id].kind is FormatKind.SPECTRA


def has_extension(path: Path | str, format_id: FormatId) -> bool:
    """Whether the file name ends with the format's canonical suffix (case-insensitive)."""
    return Path(path).name.lower().endswith(get_extension(format_id).lower())


def with_extension(path: Path | str, format_id: FormatId) -> Path:
    """Append the canonical suffix unless the name already carries it."""
    path = Path(path)
    if has_extension(path, format_id):
        return path
    return path.with_name(path.name + get_extension(format_id))


def _read_first_line(path: Path) -> str:
    if not path.exists():
        raise DataFileNotFound("File not found", path)
    with open(path, 'r', encoding='utf-8', errors='replace') as handle:
        line = handle.readline()
    if not line:
        raise EmptyFile("Tsv file is empty", path)
    return line.rstrip('\r\n').lstrip('\ufeff')


def _sniff_tsv(path: Path) -> FormatId:
    header = _read_first_line(path)
    for prefix, format_id in _TSV_HEADERS:
        if header.startswith(prefix):
            logger.debug(f"Classified {path.name} as {format_id.name} from header")
            return format_id
    raise UnsupportedFormat("Tsv file type not supported", path)


def classify(path: Path | str) -> FormatId:
    """
    Map a path to its format.

    The file name decides, case-insensitively, with compound suffixes
    (``_ms1.feature``, ``.mzrt.csv``...) taking precedence over single
    ones. A name ending in plain ``.tsv`` is resolved from the file's
    first line.

    Args:
        path: File (or ``.d`` folder) path.

    Returns:
        The FormatId of the file.

    Raises:
        UnsupportedFormat: Unknown suffix ("File type not supported"), or a
            generic feature/csv/tsv file no sub-format matches
            ("Feature file type not supported" etc.).
        EmptyFile: A ``.tsv`` file that needs sniffing has no lines.
        DataFileNotFound: A ``.tsv`` file that needs sniffing is missing.

    Example:
        >>> classify("sample_ms1.feature")
        <FormatId.MS1_FEATURE: 6>
    """
    path = Path(path)
    name = path.name.lower()

    for suffix, format_id in _SUFFIX_TABLE:
        if name.endswith(suffix):
            return format_id

    if name.endswith(_SNIFFED_SUFFIX):
        return _sniff_tsv(path)

    for suffix, family in _GENERIC_FAMILIES.items():
        if name.endswith(suffix):
            raise UnsupportedFormat(f"{family} file type not supported", path)

    raise UnsupportedFormat("File type not supported", path)
