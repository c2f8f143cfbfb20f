"""
MGF (Mascot generic format) reader using pyteomics.

Each ``BEGIN IONS`` / ``END IONS`` block is parsed by ``pyteomics.mgf``;
global parameters from the file header apply to every block, as in
pyteomics. MGF titles are optional and may repeat, so opening the reader
records the byte offset of every block and spectra are addressed by
position.
"""

import io
import logging
from pathlib import Path
from typing import ClassVar, Optional

import numpy as np
from pyteomics import mgf
from pyteomics.auxiliary import ChargeList, PyteomicsError

from ..base import SpectrumFormat, SpectrumReader, require_file
from ..formats import FormatId
from ..registry import FormatRegistry
from ...core import (
    MSRun,
    Polarity,
    PrecursorInfo,
    ScanMetadata,
    SourceDescriptor,
    Spectrum,
    SpectrumType,
)
from ...core.source import MGF_FILE_FORMAT, NO_NATIVE_ID_FORMAT
from ...exceptions import MalformedRecord


logger = logging.getLogger(__name__)

BEGIN_IONS = b'BEGIN IONS'
END_IONS = b'END IONS'

# MGF does not state a charge for every spectrum
DEFAULT_CHARGE = 2

# Peaks below this intensity are treated as zero
ZERO_INTENSITY = 0.01


def parse_charge(value) -> int:
    """
    First charge of an MGF charge such as ``2+``, ``3-`` or ``2+ and 3+``.

    ``value`` is either the raw text or the Charge/ChargeList pyteomics
    already parsed it into.

    Example:
        >>> parse_charge("3-")
        -3
    """
    if isinstance(value, str):
        value = ChargeList(value)
    if isinstance(value, list):
        value = value[0]
    return int(value)


def _precursor_charge(params: dict) -> int:
    value = params.get('charge')
    if value is None or (isinstance(value, (str, list)) and len(value) == 0):
        return DEFAULT_CHARGE
    return parse_charge(value)


def _polarity(charge: int) -> Polarity:
    if charge > 0:
        return Polarity.POSITIVE
    if charge < 0:
        return Polarity.NEGATIVE
    return Polarity.UNKNOWN


def _as_float_array(values) -> np.ndarray:
    if values is None:
        return np.array([], dtype=np.float64)
    return np.asarray(values, dtype=np.float64)


class MgfReader(SpectrumReader):
    """
    Random-access reader for MGF files.

    Scan ``n`` is the n-th ``BEGIN IONS`` block. A ``SCANS=`` value is
    kept as the native id (``scan=<value>``), blocks without one get
    ``index=<position>``. MGF spectra carry no parent scan reference.

    Example:
        >>> with MgfReader("spectra.mgf") as reader:
        ...     spec = reader.get_one_based_scan(1)
        ...     print(spec.metadata.precursor.mz)
    """

    format_id: ClassVar[FormatId] = FormatId.MGF

    def __init__(self, path: Path | str):
        super().__init__(path)
        self._handle = None
        self._offsets: list[int] = []
        self._header: dict = {}

    def open(self) -> 'MgfReader':
        """Open the file, read its header and index the offsets of its blocks."""
        if self._is_open:
            return self
        try:
            self._header = mgf.read_header(str(self.path))
        except PyteomicsError as e:
            raise MalformedRecord(f"Invalid MGF header: {e}", self.path) from e
        self._handle = open(self.path, 'rb')
        self._offsets = []
        offset = 0
        for line in self._handle:
            if line.strip().upper().startswith(BEGIN_IONS):
                self._offsets.append(offset)
            offset += len(line)
        self._is_open = True
        logger.debug(f"Opened {self.path.name} ({len(self._offsets)} spectra)")
        return self

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
            logger.debug(f"Closed {self.path.name}")
        self._is_open = False

    def __len__(self) -> int:
        return len(self._offsets)

    def _read_record(self, index: int) -> str:
        """Text of the index-th block, from BEGIN IONS to END IONS."""
        self._handle.seek(self._offsets[index])
        lines = [self._handle.readline()]
        for raw in self._handle:
            marker = raw.strip().upper()
            if marker.startswith(BEGIN_IONS):
                break
            lines.append(raw)
            if marker.startswith(END_IONS):
                return b''.join(lines).decode('utf-8', errors='replace')
        raise MalformedRecord("Missing END IONS", self.path, index)

    def _build_spectrum(self, record: str, index: int) -> Spectrum:
        try:
            with mgf.MGF(io.StringIO(record), use_header=False, convert_arrays=1,
                         read_charges=False) as blocks:
                parsed = next(iter(blocks))
        except (PyteomicsError, StopIteration) as e:
            raise MalformedRecord(f"Invalid MGF block: {e}", self.path, index) from e

        params = {**self._header, **parsed['params']}
        raw_intensity = _as_float_array(parsed.get('intensity array'))
        mz = _as_float_array(parsed.get('m/z array'))
        order = np.argsort(mz, kind='stable')
        mz, intensity = mz[order], raw_intensity[order]

        nonzero = intensity >= ZERO_INTENSITY
        if 0 < nonzero.sum() < len(intensity):
            mz, intensity = mz[nonzero], intensity[nonzero]

        charge = _precursor_charge(params)

        precursor = None
        pepmass = params.get('pepmass')
        if pepmass:
            if isinstance(pepmass, str):
                pepmass = tuple(float(value) for value in pepmass.split())
            precursor = PrecursorInfo(
                mz=float(pepmass[0]),
                charge=charge,
                intensity=float(pepmass[1]) if len(pepmass) > 1 and pepmass[1] is not None else None,
            )

        extras = {}
        scans_value = params.get('scans')
        if scans_value:
            extras['scans'] = str(scans_value)
            native_id = f"scan={scans_value}"
        else:
            native_id = f"index={index}"

        rt = params.get('rtinseconds')
        title = params.get('title')
        metadata = ScanMetadata(
            scan_number=index + 1,
            ms_level=int(params.get('mslevel', 2)),
            retention_time=float(rt) if rt not in (None, '') else 0.0,
            polarity=_polarity(charge),
            spectrum_type=SpectrumType.CENTROID,
            scan_window_lower=float(mz[0]) if len(mz) else None,
            scan_window_upper=float(mz[-1]) if len(mz) else None,
            total_ion_current=float(np.sum(raw_intensity)),
            precursor=precursor,
            native_id=native_id,
            description=str(title) if title else None,
            extras=extras,
        )
        return Spectrum(mz=mz, intensity=intensity, metadata=metadata)

    @property
    def source_file(self) -> SourceDescriptor:
        return SourceDescriptor.for_path(self.path, NO_NATIVE_ID_FORMAT, MGF_FILE_FORMAT)


@FormatRegistry.register(FormatId.MGF)
class MgfFormat(SpectrumFormat):
    """MGF codec."""

    reader_class = MgfReader

    def read_source_file(self, path: Path | str) -> SourceDescriptor:
        return SourceDescriptor.for_path(require_file(path), NO_NATIVE_ID_FORMAT, MGF_FILE_FORMAT)

    def encode(self, scans, source, path, write_index=True) -> Path:
        from ..writers.mgf import write_mgf
        return write_mgf(scans, path)


def read_mgf(path: Path | str) -> MSRun:
    """Read an MGF file into an MSRun."""
    scans, source = MgfFormat().decode(path)
    return MSRun(scans, source=source)
