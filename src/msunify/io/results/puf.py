"""
ProSight PUF codec.

A PUF file is an XML ``<data_set>`` of ``<ms-ms_experiment>`` elements.
Each experiment holds its instrument data (fragmentation method, intact
and fragment ion lists) and zero or more search analyses with hit lists.

Search parameters are kept as the raw XML of their element. Elements
absent from the file read as None and are not written back.
"""

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Optional

import numpy as np
from lxml import etree

from ..base import ResultFormat, require_file
from ..formats import FormatId
from ..registry import FormatRegistry
from ...core import (
    ActivationType,
    PrecursorInfo,
    PufAnalysis,
    PufExperiment,
    PufHit,
    PufHitList,
    PufIon,
    ScanMetadata,
    Spectrum,
    SpectrumType,
)
from ...exceptions import MalformedRecord


logger = logging.getLogger(__name__)

PUF_VERSION = '1.1'

_ION_FIELDS = ('mz_monoisotopic', 'mz_average', 'mass_monoisotopic', 'mass_average', 'intensity')
_HIT_TEXT_FIELDS = ('description', 'matching_gene_id', 'protein_form', 'sequence',
                    'p_score', 'expected')
_HIT_FLOAT_FIELDS = ('theoretical_mass', 'mass_difference_da', 'mass_difference_ppm')


def _text(element, tag: str) -> Optional[str]:
    child = element.find(tag)
    if child is None or child.text is None:
        return None
    return child.text.strip()


def _float(element, tag: str) -> Optional[float]:
    text = _text(element, tag)
    return float(text) if text else None


def _parse_ion(element) -> PufIon:
    return PufIon(id=element.get('id'), **{name: _float(element, name) for name in _ION_FIELDS})


def _parse_hit(element) -> PufHit:
    length = _text(element, 'sequence_length')
    return PufHit(
        id=element.get('id'),
        sequence_length=int(length) if length else None,
        **{name: _text(element, name) for name in _HIT_TEXT_FIELDS},
        **{name: _float(element, name) for name in _HIT_FLOAT_FIELDS},
    )


def _parse_analysis(element) -> PufAnalysis:
    search_parameters = element.find('search_parameters')
    hit_lists = []
    results = element.find('results')
    if results is not None:
        for hit_list in results.findall('hit_list'):
            hit_lists.append(PufHitList(
                intact_id=hit_list.get('intact_id'),
                hits=tuple(_parse_hit(hit) for hit in hit_list.findall('hit')),
            ))
    return PufAnalysis(
        id=element.get('id'),
        type=element.get('type'),
        search_parameters=(
            etree.tostring(search_parameters, encoding='unicode', with_tail=False)
            if search_parameters is not None else None
        ),
        hit_lists=tuple(hit_lists),
        legend=_text(element, 'legend'),
    )


def parse_experiment(element) -> PufExperiment:
    """Build a PufExperiment from an ``<ms-ms_experiment>`` element."""
    instrument = element.find('instrument_data')
    intacts: tuple[PufIon, ...] = ()
    fragments: tuple[PufIon, ...] = ()
    fragmentation_method = ion_type = None
    if instrument is not None:
        fragmentation_method = _text(instrument, 'fragmentation_method')
        ion_type = _text(instrument, 'ion_type')
        intacts = tuple(_parse_ion(ion) for ion in instrument.iterfind('intact_list/intact'))
        fragments = tuple(
            _parse_ion(ion) for ion in instrument.iterfind('fragment_list/fragment')
        )
    return PufExperiment(
        id=element.get('id'),
        source=element.get('source'),
        comment=element.get('comment'),
        fragmentation_method=fragmentation_method,
        ion_type=ion_type,
        intacts=intacts,
        fragments=fragments,
        analyses=tuple(_parse_analysis(a) for a in element.findall('analysis')),
    )


def _set_attrs(element, **attrs: Optional[str]) -> None:
    for name, value in attrs.items():
        if value is not None:
            element.set(name, value)


def _add_text(parent, tag: str, value) -> None:
    if value is None:
        return
    child = etree.SubElement(parent, tag)
    child.text = repr(value) if isinstance(value, float) else str(value)


def _build_ion(parent, tag: str, ion: PufIon) -> None:
    element = etree.SubElement(parent, tag)
    _set_attrs(element, id=ion.id)
    for name in _ION_FIELDS:
        _add_text(element, name, getattr(ion, name))


def build_experiment_element(experiment: PufExperiment):
    """Inverse of parse_experiment."""
    element = etree.Element('ms-ms_experiment')
    _set_attrs(element, id=experiment.id, source=experiment.source, comment=experiment.comment)

    instrument = etree.SubElement(element, 'instrument_data')
    _add_text(instrument, 'fragmentation_method', experiment.fragmentation_method)
    _add_text(instrument, 'ion_type', experiment.ion_type)
    intact_list = etree.SubElement(instrument, 'intact_list')
    for ion in experiment.intacts:
        _build_ion(intact_list, 'intact', ion)
    fragment_list = etree.SubElement(instrument, 'fragment_list')
    for ion in experiment.fragments:
        _build_ion(fragment_list, 'fragment', ion)

    for analysis in experiment.analyses:
        analysis_element = etree.SubElement(element, 'analysis')
        _set_attrs(analysis_element, id=analysis.id, type=analysis.type)
        if analysis.search_parameters is not None:
            analysis_element.append(etree.fromstring(analysis.search_parameters))
        results = etree.SubElement(analysis_element, 'results')
        for hit_list in analysis.hit_lists:
            hit_list_element = etree.SubElement(results, 'hit_list')
            _set_attrs(hit_list_element, intact_id=hit_list.intact_id)
            for hit in hit_list.hits:
                hit_element = etree.SubElement(hit_list_element, 'hit')
                _set_attrs(hit_element, id=hit.id)
                for name in _HIT_TEXT_FIELDS[:4]:
                    _add_text(hit_element, name, getattr(hit, name))
                _add_text(hit_element, 'sequence_length', hit.sequence_length)
                for name in _HIT_FLOAT_FIELDS + _HIT_TEXT_FIELDS[4:]:
                    _add_text(hit_element, name, getattr(hit, name))
        _add_text(analysis_element, 'legend', analysis.legend)
    return element


@FormatRegistry.register(FormatId.PUF)
class PufFormat(ResultFormat):
    """PUF codec with a spectral view (one MS2 scan per experiment)."""

    supports_spectra = True

    def decode_records(self, path: Path | str) -> list[PufExperiment]:
        path = require_file(path)
        parser = etree.XMLParser(remove_blank_text=True)
        try:
            root = etree.parse(str(path), parser).getroot()
        except etree.XMLSyntaxError as e:
            raise MalformedRecord(f"Invalid PUF XML: {e}", path) from e

        experiments = []
        for index, element in enumerate(root.iter('ms-ms_experiment')):
            try:
                experiments.append(parse_experiment(element))
            except ValueError as e:
                raise MalformedRecord(f"Invalid experiment: {e}", path, index) from e
        logger.debug(f"Read {len(experiments)} experiments from {path.name}")
        return experiments

    def encode_records(self, records: Sequence[PufExperiment], path: Path | str) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        root = etree.Element('data_set', version=PUF_VERSION)
        for experiment in records:
            root.append(build_experiment_element(experiment))
        etree.ElementTree(root).write(
            str(path), xml_declaration=True, encoding='utf-8', pretty_print=True,
        )
        return path

    def _record_to_spectrum(self, record: PufExperiment, scan_number: int) -> Spectrum:
        fragments = [ion for ion in record.fragments if ion.mz is not None]
        precursor = None
        if record.precursor_mz is not None:
            precursor = PrecursorInfo(
                mz=record.precursor_mz,
                intensity=record.precursor_intensity,
                activation_type=ActivationType.from_name(record.fragmentation_method),
            )
        metadata = ScanMetadata(
            scan_number=scan_number,
            ms_level=2,
            retention_time=0.0,
            spectrum_type=SpectrumType.CENTROID,
            precursor=precursor,
            native_id=record.id,
            description=record.description,
        )
        return Spectrum(
            mz=np.array([ion.mz for ion in fragments], dtype=np.float64),
            intensity=np.array([ion.intensity or 0.0 for ion in fragments], dtype=np.float64),
            metadata=metadata,
        )
