"""
mzML reader using pyteomics.

``pyteomics.mzml.MzML`` builds a byte-offset index of the spectra by
scanning the file, so a stale or missing indexedmzML index never
misplaces a spectrum. Each fetch decodes one ``<spectrum>`` element into
a pyteomics dictionary; converting that dictionary into a Spectrum is
pure and may run on worker threads.
"""

import logging
import zlib
from pathlib import Path
from typing import ClassVar, Optional

import numpy as np
from lxml import etree
from pyteomics import mzml
from pyteomics.auxiliary import PyteomicsError

from ..base import SpectrumFormat, SpectrumReader, require_file
from ..formats import FormatId
from ..registry import FormatRegistry
from ...core import (
    ActivationType,
    MSRun,
    Polarity,
    PrecursorInfo,
    ScanMetadata,
    SourceDescriptor,
    Spectrum,
    SpectrumType,
)
from ...core.source import MZML_FILE_FORMAT, NO_NATIVE_ID_FORMAT
from ...exceptions import MalformedRecord


logger = logging.getLogger(__name__)

# Failures raised while pyteomics reads and decodes a spectrum element
_DECODE_ERRORS = (PyteomicsError, etree.LxmlError, zlib.error, ValueError, KeyError)

# Mapping of activation CV names to ActivationType
_ACTIVATION_MAP: dict[str, ActivationType] = {
    'collision-induced dissociation': ActivationType.CID,
    'low-energy collision-induced dissociation': ActivationType.CID,
    'beam-type collision-induced dissociation': ActivationType.HCD,
    'higher energy beam-type collision-induced dissociation': ActivationType.HCD,
    'electron transfer dissociation': ActivationType.ETD,
    'electron capture dissociation': ActivationType.ECD,
    'ultraviolet photodissociation': ActivationType.UVPD,
    'photodissociation': ActivationType.UVPD,
    'infrared multiphoton dissociation': ActivationType.IRMPD,
    'pulsed q dissociation': ActivationType.PQD,
}


def _local(tag) -> str:
    """Tag name without namespace."""
    return etree.QName(tag).localname


def _cv_params(element) -> dict[str, str]:
    """Direct cvParam/userParam children of a header element as name -> value."""
    params: dict[str, str] = {}
    for child in element:
        if isinstance(child.tag, str) and _local(child.tag) in ('cvParam', 'userParam'):
            params[child.get('name', '')] = child.get('value', '')
    return params


def _first(container: dict, list_key: str, item_key: str) -> dict:
    """First entry of a pyteomics ``{list_key: {item_key: [...]}}`` nesting."""
    items = container.get(list_key, {}).get(item_key, [])
    if isinstance(items, dict):
        return items
    return items[0] if items else {}


def _float_value(data: dict, *names: str) -> Optional[float]:
    for name in names:
        value = data.get(name)
        if value is not None and value != '':
            return float(value)
    return None


def _parse_activation_type(activation: dict) -> ActivationType:
    """Dissociation method from a pyteomics activation dictionary."""
    found = {_ACTIVATION_MAP[name] for name in activation if name in _ACTIVATION_MAP}
    if ActivationType.ETD in found and found & {ActivationType.HCD, ActivationType.CID}:
        return ActivationType.ETHCD
    for activation_type in _ACTIVATION_MAP.values():
        if activation_type in found:
            return activation_type
    return ActivationType.UNKNOWN


def _parse_polarity(spectrum_data: dict) -> Polarity:
    # valueless cvParams are present with an empty string
    if 'positive scan' in spectrum_data:
        return Polarity.POSITIVE
    if 'negative scan' in spectrum_data:
        return Polarity.NEGATIVE
    return Polarity.UNKNOWN


def _parse_spectrum_type(spectrum_data: dict) -> SpectrumType:
    if 'centroid spectrum' in spectrum_data:
        return SpectrumType.CENTROID
    if 'profile spectrum' in spectrum_data:
        return SpectrumType.PROFILE
    return SpectrumType.UNKNOWN


def _retention_time_seconds(scan_info: dict) -> float:
    """Scan start time in seconds; pyteomics keeps the unit in ``unit_info``."""
    rt = scan_info.get('scan start time')
    if rt is None or rt == '':
        return 0.0
    unit = getattr(rt, 'unit_info', None)
    seconds = float(rt)
    if unit in ('minute', 'min', 'UO:0000031'):
        seconds *= 60.0
    elif unit in ('millisecond', 'UO:0000028'):
        seconds /= 1000.0
    return seconds


def _as_float_array(values) -> np.ndarray:
    if values is None:
        return np.array([], dtype=np.float64)
    return np.asarray(values, dtype=np.float64)


class MzMLReader(SpectrumReader):
    """
    Random-access reader for mzML and indexedmzML files.

    Scan ``n`` is the n-th ``<spectrum>`` element of the file. Precursor
    ``spectrumRef`` attributes are resolved to that numbering; references
    to spectra absent from the file become None.

    Example:
        >>> with MzMLReader("sample.mzML") as reader:
        ...     for spectrum in reader:
        ...         print(spectrum.scan_number, spectrum.ms_level)
        ...
        ...     # Random access
        ...     spec = reader.get_one_based_scan(100)
    """

    format_id: ClassVar[FormatId] = FormatId.MZML

    def __init__(self, path: Path | str):
        """
        Initialize the mzML reader.

        Args:
            path: Path to an mzML file.
        """
        super().__init__(path)
        self._reader = None
        self._native_ids: list[str] = []
        self._id_to_index: dict[str, int] = {}
        self._source_file: Optional[SourceDescriptor] = None

    def open(self) -> 'MzMLReader':
        """Open the file with pyteomics and index its spectra."""
        if self._is_open:
            return self
        try:
            self._reader = mzml.MzML(str(self.path), use_index=True, huge_tree=True)
            self._build_index()
        except (PyteomicsError, etree.LxmlError) as e:
            self.close()
            raise MalformedRecord(f"Cannot index mzML file: {e}", self.path) from e
        self._is_open = True
        logger.debug(f"Opened {self.path.name} ({len(self._native_ids)} spectra)")
        return self

    def close(self) -> None:
        """Close the file."""
        if self._reader is not None:
            self._reader.close()
            self._reader = None
            logger.debug(f"Closed {self.path.name}")
        self._is_open = False

    def _build_index(self) -> None:
        """Spectrum native IDs in file order, from the pyteomics offset index."""
        # the index also holds chromatograms; only spectra are numbered
        self._native_ids = list(self._reader.index['spectrum'].keys())
        self._id_to_index = {native_id: idx for idx, native_id in enumerate(self._native_ids)}

    def __len__(self) -> int:
        return len(self._native_ids)

    @property
    def native_ids(self) -> list[str]:
        return list(self._native_ids)

    def _read_record(self, index: int) -> dict:
        """Decoded pyteomics dictionary of the index-th spectrum."""
        try:
            return self._reader.get_by_id(self._native_ids[index])
        except _DECODE_ERRORS as e:
            raise MalformedRecord(f"Cannot decode spectrum: {e}", self.path, index) from e

    def _build_spectrum(self, record: dict, index: int) -> Spectrum:
        """
        Convert a pyteomics spectrum dictionary into a Spectrum object.

        Args:
            record: Dictionary from pyteomics.
            index: Position in file (0-based).
        """
        ms_level = int(float(record['ms level'])) if 'ms level' in record else 1

        scan_info = _first(record, 'scanList', 'scan')
        window = _first(scan_info, 'scanWindowList', 'scanWindow')

        precursor = None
        if ms_level > 1:
            precursor = self._parse_precursor(record)

        filter_string = scan_info.get('filter string')
        title = record.get('spectrum title')
        metadata = ScanMetadata(
            scan_number=index + 1,
            ms_level=ms_level,
            retention_time=_retention_time_seconds(scan_info),
            polarity=_parse_polarity(record),
            spectrum_type=_parse_spectrum_type(record),
            scan_window_lower=_float_value(window, 'scan window lower limit'),
            scan_window_upper=_float_value(window, 'scan window upper limit'),
            total_ion_current=_float_value(record, 'total ion current'),
            injection_time=_float_value(scan_info, 'ion injection time'),
            precursor=precursor,
            filter_string=str(filter_string) if filter_string else None,
            native_id=record.get('id'),
            description=str(title) if title else None,
        )
        return Spectrum(
            mz=_as_float_array(record.get('m/z array')),
            intensity=_as_float_array(record.get('intensity array')),
            metadata=metadata,
        )

    def _parse_precursor(self, record: dict) -> Optional[PrecursorInfo]:
        """Parse the first precursor of a spectrum dictionary."""
        prec = _first(record, 'precursorList', 'precursor')
        if not prec:
            return None
        ion = _first(prec, 'selectedIonList', 'selectedIon')
        mz = _float_value(ion, 'selected ion m/z')
        if mz is None:
            return None
        charge = _float_value(ion, 'charge state')

        isolation = prec.get('isolationWindow', {})
        activation = prec.get('activation', {})

        parent_scan = None
        spectrum_ref = prec.get('spectrumRef')
        if spectrum_ref:
            parent_index = self._id_to_index.get(spectrum_ref)
            if parent_index is not None:
                parent_scan = parent_index + 1

        return PrecursorInfo(
            mz=mz,
            charge=int(charge) if charge is not None else None,
            intensity=_float_value(ion, 'peak intensity'),
            isolation_window_lower=_float_value(isolation, 'isolation window lower offset'),
            isolation_window_upper=_float_value(isolation, 'isolation window upper offset'),
            activation_type=_parse_activation_type(activation),
            collision_energy=_float_value(activation, 'collision energy'),
            parent_scan_number=parent_scan,
        )

    @property
    def source_file(self) -> SourceDescriptor:
        """Source descriptor from the mzML header."""
        if self._source_file is None:
            self._source_file = read_mzml_source_file(self.path)
        return self._source_file


def read_mzml_source_file(path: Path | str) -> SourceDescriptor:
    """
    Read the first sourceFile of an mzML header.

    Parsing stops at the ``<run>`` element, so the cost does not depend on
    the number of spectra. Files without a sourceFile get a descriptor
    pointing at the mzML file itself.
    """
    path = Path(path)
    native_id_format = NO_NATIVE_ID_FORMAT
    file_format = MZML_FILE_FORMAT
    checksum_algorithm = 'SHA-1'
    checksum_value = None
    source_id = None
    name = path.name
    uri = path.resolve().parent.as_uri()

    try:
        for event, element in etree.iterparse(str(path), events=('start', 'end')):
            tag = _local(element.tag)
            if event == 'start' and tag in ('run', 'spectrumList'):
                break
            if event == 'end' and tag == 'sourceFile':
                source_id = element.get('id')
                name = element.get('name', name)
                uri = element.get('location', uri)
                for param_name, value in _cv_params(element).items():
                    if 'nativeID format' in param_name:
                        native_id_format = param_name
                    elif param_name in ('SHA-1', 'MD5'):
                        checksum_algorithm = param_name
                        checksum_value = value or None
                    elif param_name.endswith('format'):
                        file_format = param_name
                break
    except etree.XMLSyntaxError as e:
        raise MalformedRecord(f"Invalid mzML header: {e}", path) from e

    return SourceDescriptor(
        native_id_format=native_id_format,
        file_format=file_format,
        checksum_algorithm=checksum_algorithm,
        checksum_value=checksum_value,
        uri=uri,
        name=name,
        id=source_id,
    )


@FormatRegistry.register(FormatId.MZML)
class MzMLFormat(SpectrumFormat):
    """mzML codec: MzMLReader for decoding, the indexedmzML writer for encoding."""

    reader_class = MzMLReader

    def read_source_file(self, path: Path | str) -> SourceDescriptor:
        return read_mzml_source_file(require_file(path))

    def encode(self, scans, source, path, write_index=True) -> Path:
        from ..writers.mzml import write_mzml
        return write_mzml(scans, path, source=source, write_index=write_index)


def read_mzml(path: Path | str) -> MSRun:
    """
    Convenience function to read an mzML file into an MSRun.

    Example:
        >>> run = read_mzml("sample.mzML")
        >>> print(f"Loaded {len(run)} spectra")
    """
    scans, source = MzMLFormat().decode(path)
    return MSRun(scans, source=source)
