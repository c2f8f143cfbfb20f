"""
MSP spectral library codec.

An MSP library is a sequence of text entries, each started by a
``Name: SEQUENCE/charge`` line and followed by ``MW:``, ``Comment:`` and
``Num peaks:`` headers and one ``m/z intensity "annotation"`` line per
fragment peak. Entries are delimited by the next ``Name:`` line; blank
lines are ignored.
"""

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Optional

import numpy as np

from ..base import ResultFormat, require_file
from ..formats import FormatId
from ..registry import FormatRegistry
from ...core import (
    LibraryPeak,
    LibrarySpectrum,
    Polarity,
    PrecursorInfo,
    ScanMetadata,
    Spectrum,
    SpectrumType,
)
from ...exceptions import MalformedRecord


logger = logging.getLogger(__name__)


def _parse_peak(line: str) -> LibraryPeak:
    fields = line.split(None, 2)
    annotation = fields[2].strip().strip('"') if len(fields) > 2 else None
    return LibraryPeak(mz=float(fields[0]), intensity=float(fields[1]), annotation=annotation)


def _build_entry(header: dict[str, str], peaks: list[LibraryPeak]) -> LibrarySpectrum:
    sequence, separator, charge = header['name'].rpartition('/')
    if not separator:
        raise ValueError(f"Name '{header['name']}' has no charge")
    comment = header.get('comment')
    if header.get('mw'):
        precursor_mz = float(header['mw'])
    else:
        precursor_mz = LibrarySpectrum.parent_from_comment(comment) or 0.0
    return LibrarySpectrum(
        sequence=sequence,
        charge=int(charge),
        precursor_mz=precursor_mz,
        comment=comment,
        peaks=tuple(peaks),
    )


def format_entry(entry: LibrarySpectrum) -> str:
    """Text block of one library entry."""
    lines = [
        f"Name: {entry.name}",
        f"MW: {entry.precursor_mz!r}",
    ]
    if entry.comment is not None:
        lines.append(f"Comment: {entry.comment}")
    lines.append(f"Num peaks: {len(entry.peaks)}")
    for peak in entry.peaks:
        line = f"{peak.mz!r}\t{peak.intensity!r}"
        if peak.annotation is not None:
            line += f'\t"{peak.annotation}"'
        lines.append(line)
    return '\n'.join(lines) + '\n'


@FormatRegistry.register(FormatId.MSP)
class MspFormat(ResultFormat):
    """MSP library codec with a spectral view (one MS2 scan per entry)."""

    supports_spectra = True

    def decode_records(self, path: Path | str) -> list[LibrarySpectrum]:
        path = require_file(path)
        entries: list[LibrarySpectrum] = []
        header: Optional[dict[str, str]] = None
        peaks: list[LibraryPeak] = []

        def finish() -> None:
            try:
                entries.append(_build_entry(header, peaks))
            except (KeyError, ValueError) as e:
                raise MalformedRecord(f"Invalid library entry: {e}", path, len(entries)) from e

        with open(path, 'r', encoding='utf-8') as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                key, colon, value = line.partition(':')
                key = key.strip().lower()
                if colon and key == 'name':
                    if header is not None:
                        finish()
                    header = {'name': value.strip()}
                    peaks = []
                elif header is None:
                    continue
                elif line[0].isdigit() or line[0] == '-':
                    try:
                        peaks.append(_parse_peak(line))
                    except (IndexError, ValueError) as e:
                        raise MalformedRecord(
                            f"Invalid peak line '{line}'", path, len(entries)
                        ) from e
                elif colon:
                    header[key] = value.strip()
        if header is not None:
            finish()

        logger.debug(f"Read {len(entries)} library entries from {path.name}")
        return entries

    def encode_records(self, records: Sequence[LibrarySpectrum], path: Path | str) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as handle:
            handle.write('\n'.join(format_entry(entry) for entry in records))
        return path

    def _record_to_spectrum(self, record: LibrarySpectrum, scan_number: int) -> Spectrum:
        library_rt = record.retention_time
        metadata = ScanMetadata(
            scan_number=scan_number,
            ms_level=2,
            retention_time=library_rt if library_rt is not None and library_rt >= 0 else 0.0,
            polarity=Polarity.POSITIVE if record.charge > 0 else Polarity.NEGATIVE,
            spectrum_type=SpectrumType.CENTROID,
            precursor=PrecursorInfo(mz=record.precursor_mz, charge=record.charge),
            native_id=record.name,
            description=record.name,
            extras={'library_rt': library_rt} if library_rt is not None else {},
        )
        return Spectrum(
            mz=np.array([peak.mz for peak in record.peaks], dtype=np.float64),
            intensity=np.array([peak.intensity for peak in record.peaks], dtype=np.float64),
            metadata=metadata,
        )
