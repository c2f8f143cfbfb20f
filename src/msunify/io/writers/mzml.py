"""
mzML writer.

Spectra are serialized one element at a time with lxml and streamed to
disk, so the byte offset of every ``<spectrum>`` is known when the index
is written. Indexed output follows the indexedmzML 1.1 wrapper: an
``<indexList>`` of spectrum offsets, ``<indexListOffset>`` and a SHA-1
``<fileChecksum>`` over every byte preceding the checksum value.
"""

import base64
import hashlib
import logging
import zlib
from collections.abc import Sequence
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional
from xml.sax.saxutils import escape

import numpy as np
from lxml import etree

from ...core import (
    ActivationType,
    Polarity,
    SourceDescriptor,
    Spectrum,
    SpectrumType,
    validate_numbering,
)
from ...core.source import MZML_FILE_FORMAT, NO_NATIVE_ID_FORMAT


logger = logging.getLogger(__name__)

MZML_NAMESPACE = 'http://psi.hupo.org/ms/mzml'
_XSI_NAMESPACE = 'http://www.w3.org/2001/XMLSchema-instance'
_MZML_SCHEMA = 'http://psi.hupo.org/ms/mzml http://psidev.info/files/ms/mzML/xsd/mzML1.1.0.xsd'
_INDEXED_SCHEMA = (
    'http://psi.hupo.org/ms/mzml http://psidev.info/files/ms/mzML/xsd/mzML1.1.2_idx.xsd'
)
_SOFTWARE_ID = 'msunify'
_PROCESSING_ID = 'msunify_conversion'
_INSTRUMENT_ID = 'IC1'

# CV name -> accession, for every term the writer emits
CV_ACCESSIONS: Mapping[str, str] = MappingProxyType({
    # spectrum
    'ms level': 'MS:1000511',
    'MS1 spectrum': 'MS:1000579',
    'MSn spectrum': 'MS:1000580',
    'positive scan': 'MS:1000130',
    'negative scan': 'MS:1000129',
    'centroid spectrum': 'MS:1000127',
    'profile spectrum': 'MS:1000128',
    'spectrum title': 'MS:1000796',
    'total ion current': 'MS:1000285',
    'base peak m/z': 'MS:1000504',
    'base peak intensity': 'MS:1000505',
    'lowest observed m/z': 'MS:1000528',
    'highest observed m/z': 'MS:1000527',
    # scan
    'no combination': 'MS:1000795',
    'scan start time': 'MS:1000016',
    'filter string': 'MS:1000512',
    'ion injection time': 'MS:1000927',
    'scan window lower limit': 'MS:1000501',
    'scan window upper limit': 'MS:1000500',
    # precursor
    'isolation window target m/z': 'MS:1000827',
    'isolation window lower offset': 'MS:1000828',
    'isolation window upper offset': 'MS:1000829',
    'selected ion m/z': 'MS:1000744',
    'charge state': 'MS:1000041',
    'peak intensity': 'MS:1000042',
    'collision energy': 'MS:1000045',
    'dissociation method': 'MS:1000044',
    'collision-induced dissociation': 'MS:1000133',
    'beam-type collision-induced dissociation': 'MS:1000422',
    'electron transfer dissociation': 'MS:1000598',
    'electron capture dissociation': 'MS:1000250',
    'ultraviolet photodissociation': 'MS:1003246',
    'infrared multiphoton dissociation': 'MS:1000262',
    'pulsed q dissociation': 'MS:1000599',
    # binary arrays
    '64-bit float': 'MS:1000523',
    'zlib compression': 'MS:1000574',
    'm/z array': 'MS:1000514',
    'intensity array': 'MS:1000515',
    # file description
    'no nativeID format': 'MS:1000824',
    'scan number only nativeID format': 'MS:1000776',
    'Thermo nativeID format': 'MS:1000768',
    'Bruker TDF nativeID format': 'MS:1002818',
    'multiple peak list nativeID format': 'MS:1000774',
    'mzML format': 'MS:1000584',
    'Mascot MGF format': 'MS:1001062',
    'Thermo RAW format': 'MS:1000563',
    'Bruker TDF format': 'MS:1002817',
    'SHA-1': 'MS:1000569',
    'instrument model': 'MS:1000031',
    'custom unreleased software tool': 'MS:1000799',
    'Conversion to mzML': 'MS:1000544',
})

# Unit name -> accession
UNIT_ACCESSIONS: Mapping[str, str] = MappingProxyType({
    'second': 'UO:0000010',
    'millisecond': 'UO:0000028',
    'electronvolt': 'UO:0000266',
    'm/z': 'MS:1000040',
    'number of detector counts': 'MS:1000131',
})

_ACTIVATION_TERMS: Mapping[ActivationType, tuple[str, ...]] = MappingProxyType({
    ActivationType.CID: ('collision-induced dissociation',),
    ActivationType.HCD: ('beam-type collision-induced dissociation',),
    ActivationType.ETD: ('electron transfer dissociation',),
    ActivationType.ECD: ('electron capture dissociation',),
    ActivationType.ETHCD: (
        'electron transfer dissociation',
        'beam-type collision-induced dissociation',
    ),
    ActivationType.UVPD: ('ultraviolet photodissociation',),
    ActivationType.IRMPD: ('infrared multiphoton dissociation',),
    ActivationType.PQD: ('pulsed q dissociation',),
    ActivationType.UNKNOWN: ('dissociation method',),
})


def _add_param(parent, name: str, value=None, unit: Optional[str] = None):
    """Append a cvParam (or a userParam for terms outside the CV table)."""
    accession = CV_ACCESSIONS.get(name)
    if accession is None:
        param = etree.SubElement(parent, 'userParam', name=name)
    else:
        param = etree.SubElement(parent, 'cvParam', cvRef=accession.split(':')[0],
                                 accession=accession, name=name)
    param.set('value', '' if value is None else str(value))
    if unit is not None:
        unit_accession = UNIT_ACCESSIONS[unit]
        param.set('unitCvRef', unit_accession.split(':')[0])
        param.set('unitAccession', unit_accession)
        param.set('unitName', unit)
    return param


def _encode_array(values: np.ndarray) -> str:
    raw = np.asarray(values, dtype='<f8').tobytes()
    return base64.b64encode(zlib.compress(raw)).decode('ascii')


def _add_binary_array(parent, values: np.ndarray, array_name: str, unit: str) -> None:
    encoded = _encode_array(values)
    array = etree.SubElement(parent, 'binaryDataArray', encodedLength=str(len(encoded)))
    _add_param(array, '64-bit float')
    _add_param(array, 'zlib compression')
    _add_param(array, array_name, unit=unit)
    binary = etree.SubElement(array, 'binary')
    binary.text = encoded


def _spectrum_ids(scans: Sequence[Spectrum]) -> list[str]:
    """Native id per scan; missing or repeated ids fall back to ``scan=N``."""
    ids: list[str] = []
    seen: set[str] = set()
    for spectrum in scans:
        native_id = spectrum.native_id
        if not native_id or native_id in seen:
            native_id = f"scan={spectrum.scan_number}"
        seen.add(native_id)
        ids.append(native_id)
    return ids


def build_spectrum_element(
    spectrum: Spectrum,
    index: int,
    spectrum_id: str,
    parent_id: Optional[str] = None,
):
    """
    Build the ``<spectrum>`` element of one scan.

    Args:
        spectrum: Scan to serialize.
        index: 0-based position in the spectrum list.
        spectrum_id: Value of the ``id`` attribute.
        parent_id: ``id`` of the precursor scan, if it is in the same file.
    """
    meta = spectrum.metadata
    element = etree.Element('spectrum', index=str(index), id=spectrum_id,
                            defaultArrayLength=str(spectrum.n_points))
    _add_param(element, 'ms level', meta.ms_level)
    _add_param(element, 'MS1 spectrum' if meta.ms_level == 1 else 'MSn spectrum')
    if meta.polarity is Polarity.POSITIVE:
        _add_param(element, 'positive scan')
    elif meta.polarity is Polarity.NEGATIVE:
        _add_param(element, 'negative scan')
    if meta.spectrum_type is SpectrumType.CENTROID:
        _add_param(element, 'centroid spectrum')
    elif meta.spectrum_type is SpectrumType.PROFILE:
        _add_param(element, 'profile spectrum')
    if meta.description:
        _add_param(element, 'spectrum title', meta.description)
    if meta.total_ion_current is not None:
        _add_param(element, 'total ion current', repr(float(meta.total_ion_current)))
    if not spectrum.is_empty:
        _add_param(element, 'base peak m/z', repr(spectrum.base_peak_mz), unit='m/z')
        _add_param(element, 'base peak intensity', repr(spectrum.base_peak_intensity),
                   unit='number of detector counts')
        low, high = spectrum.mz_range
        _add_param(element, 'lowest observed m/z', repr(low), unit='m/z')
        _add_param(element, 'highest observed m/z', repr(high), unit='m/z')

    scan_list = etree.SubElement(element, 'scanList', count='1')
    _add_param(scan_list, 'no combination')
    scan = etree.SubElement(scan_list, 'scan')
    _add_param(scan, 'scan start time', repr(float(meta.retention_time)), unit='second')
    if meta.filter_string:
        _add_param(scan, 'filter string', meta.filter_string)
    if meta.injection_time is not None:
        _add_param(scan, 'ion injection time', repr(float(meta.injection_time)),
                   unit='millisecond')
    if meta.scan_window_lower is not None and meta.scan_window_upper is not None:
        window_list = etree.SubElement(scan, 'scanWindowList', count='1')
        window = etree.SubElement(window_list, 'scanWindow')
        _add_param(window, 'scan window lower limit', repr(float(meta.scan_window_lower)),
                   unit='m/z')
        _add_param(window, 'scan window upper limit', repr(float(meta.scan_window_upper)),
                   unit='m/z')

    precursor = meta.precursor
    if precursor is not None:
        precursor_list = etree.SubElement(element, 'precursorList', count='1')
        prec = etree.SubElement(precursor_list, 'precursor')
        if parent_id is not None:
            prec.set('spectrumRef', parent_id)
        if (precursor.isolation_window_lower is not None
                or precursor.isolation_window_upper is not None):
            isolation = etree.SubElement(prec, 'isolationWindow')
            _add_param(isolation, 'isolation window target m/z', repr(float(precursor.mz)),
                       unit='m/z')
            if precursor.isolation_window_lower is not None:
                _add_param(isolation, 'isolation window lower offset',
                           repr(float(precursor.isolation_window_lower)), unit='m/z')
            if precursor.isolation_window_upper is not None:
                _add_param(isolation, 'isolation window upper offset',
                           repr(float(precursor.isolation_window_upper)), unit='m/z')
        ion_list = etree.SubElement(prec, 'selectedIonList', count='1')
        ion = etree.SubElement(ion_list, 'selectedIon')
        _add_param(ion, 'selected ion m/z', repr(float(precursor.mz)), unit='m/z')
        if precursor.charge is not None:
            _add_param(ion, 'charge state', precursor.charge)
        if precursor.intensity is not None:
            _add_param(ion, 'peak intensity', repr(float(precursor.intensity)),
                       unit='number of detector counts')
        activation = etree.SubElement(prec, 'activation')
        for term in _ACTIVATION_TERMS[precursor.activation_type]:
            _add_param(activation, term)
        if precursor.collision_energy is not None:
            _add_param(activation, 'collision energy', repr(float(precursor.collision_energy)),
                       unit='electronvolt')

    arrays = etree.SubElement(element, 'binaryDataArrayList', count='2')
    _add_binary_array(arrays, spectrum.mz, 'm/z array', 'm/z')
    _add_binary_array(arrays, spectrum.intensity, 'intensity array', 'number of detector counts')
    return element


def _header_elements(scans: Sequence[Spectrum], source: SourceDescriptor) -> list:
    """fileDescription through dataProcessingList."""
    from ... import __version__

    file_description = etree.Element('fileDescription')
    file_content = etree.SubElement(file_description, 'fileContent')
    levels = {spectrum.ms_level for spectrum in scans}
    if 1 in levels or not levels:
        _add_param(file_content, 'MS1 spectrum')
    if any(level > 1 for level in levels):
        _add_param(file_content, 'MSn spectrum')
    source_list = etree.SubElement(file_description, 'sourceFileList', count='1')
    source_file = etree.SubElement(
        source_list, 'sourceFile',
        id=source.id or 'SF1',
        name=source.name or '',
        location=source.uri or '',
    )
    _add_param(source_file, source.native_id_format)
    _add_param(source_file, source.file_format)
    if source.checksum_value:
        _add_param(source_file, source.checksum_algorithm, source.checksum_value)

    software_list = etree.Element('softwareList', count='1')
    software = etree.SubElement(software_list, 'software', id=_SOFTWARE_ID, version=__version__)
    _add_param(software, 'custom unreleased software tool', 'msunify')

    instrument_list = etree.Element('instrumentConfigurationList', count='1')
    instrument = etree.SubElement(instrument_list, 'instrumentConfiguration', id=_INSTRUMENT_ID)
    _add_param(instrument, 'instrument model')

    processing_list = etree.Element('dataProcessingList', count='1')
    processing = etree.SubElement(processing_list, 'dataProcessing', id=_PROCESSING_ID)
    method = etree.SubElement(processing, 'processingMethod', order='0',
                              softwareRef=_SOFTWARE_ID)
    _add_param(method, 'Conversion to mzML')

    return [file_description, software_list, instrument_list, processing_list]


def _cv_list() -> bytes:
    return (
        b'<cvList count="2">\n'
        b'<cv id="MS" fullName="Proteomics Standards Initiative Mass Spectrometry Ontology" '
        b'version="4.1.30" URI="https://raw.githubusercontent.com/HUPO-PSI/psi-ms-CV/master/psi-ms.obo"/>\n'
        b'<cv id="UO" fullName="Unit Ontology" version="09:04:2014" '
        b'URI="https://raw.githubusercontent.com/bio-ontology-research-group/unit-ontology/master/unit.obo"/>\n'
        b'</cvList>\n'
    )


def _serialize(element) -> bytes:
    return etree.tostring(element, encoding='utf-8', pretty_print=True)


def _attr(value: str) -> str:
    """Double-quoted, escaped attribute value."""
    return '"' + escape(value, {'"': '&quot;'}) + '"'


def write_mzml(
    scans: Sequence[Spectrum],
    path: Path | str,
    source: Optional[SourceDescriptor] = None,
    write_index: bool = True,
) -> Path:
    """
    Write scans to an mzML file.

    Scans must be numbered densely (1..N); precursor references are
    written as ``spectrumRef`` pointing at the parent scan's id. The file
    is written sequentially in a single pass.

    Args:
        scans: Scans to write, in order.
        path: Output path.
        source: Source descriptor for the sourceFile element. Defaults to
            a descriptor of the output file itself.
        write_index: Write indexedmzML (offsets and checksum).

    Returns:
        The path written.

    Raises:
        ScanNumberingInvariantViolation: If scans are not dense.
    """
    path = Path(path)
    validate_numbering(scans)
    if source is None:
        source = SourceDescriptor.for_path(path, NO_NATIVE_ID_FORMAT, MZML_FILE_FORMAT)

    ids = _spectrum_ids(scans)
    path.parent.mkdir(parents=True, exist_ok=True)
    offsets: list[tuple[str, int]] = []
    sha1 = hashlib.sha1()

    with open(path, 'wb') as handle:
        def emit(data: bytes) -> None:
            handle.write(data)
            sha1.update(data)

        emit(b'<?xml version="1.0" encoding="utf-8"?>\n')
        if write_index:
            emit(
                f'<indexedmzML xmlns="{MZML_NAMESPACE}" xmlns:xsi="{_XSI_NAMESPACE}" '
                f'xsi:schemaLocation="{_INDEXED_SCHEMA}">\n'.encode('utf-8')
            )
            emit(f'<mzML xmlns="{MZML_NAMESPACE}" version="1.1.0" '
                 f'id={_attr(path.stem)}>\n'.encode('utf-8'))
        else:
            emit(
                f'<mzML xmlns="{MZML_NAMESPACE}" xmlns:xsi="{_XSI_NAMESPACE}" '
                f'xsi:schemaLocation="{_MZML_SCHEMA}" version="1.1.0" '
                f'id={_attr(path.stem)}>\n'.encode('utf-8')
            )
        emit(_cv_list())
        for element in _header_elements(scans, source):
            emit(_serialize(element))
        emit(
            f'<run id={_attr(path.stem)} defaultInstrumentConfigurationRef="{_INSTRUMENT_ID}" '
            f'defaultSourceFileRef={_attr(source.id or "SF1")}>\n'.encode('utf-8')
        )
        emit(f'<spectrumList count="{len(scans)}" '
             f'defaultDataProcessingRef="{_PROCESSING_ID}">\n'.encode('utf-8'))

        for index, spectrum in enumerate(scans):
            parent = spectrum.parent_scan_number
            parent_id = ids[parent - 1] if parent is not None else None
            element = build_spectrum_element(spectrum, index, ids[index], parent_id)
            offsets.append((ids[index], handle.tell()))
            emit(_serialize(element))

        emit(b'</spectrumList>\n</run>\n</mzML>\n')

        if write_index:
            index_offset = handle.tell()
            emit(b'<indexList count="1">\n<index name="spectrum">\n')
            for spectrum_id, offset in offsets:
                emit(f'<offset idRef={_attr(spectrum_id)}>{offset}</offset>\n'.encode('utf-8'))
            emit(b'</index>\n</indexList>\n')
            emit(f'<indexListOffset>{index_offset}</indexListOffset>\n'.encode('utf-8'))
            emit(b'<fileChecksum>')
            handle.write(f'{sha1.hexdigest()}</fileChecksum>\n</indexedmzML>\n'.encode('utf-8'))

    logger.info(f"Wrote {len(scans)} spectra to {path}")
    return path
