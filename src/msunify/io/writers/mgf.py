"""MGF writer."""

import logging
from collections.abc import Sequence
from pathlib import Path

from ...core import Spectrum


logger = logging.getLogger(__name__)


def _format_charge(charge: int) -> str:
    return f"{abs(charge)}{'-' if charge < 0 else '+'}"


def format_mgf_block(spectrum: Spectrum) -> str:
    """One ``BEGIN IONS`` ... ``END IONS`` block for a scan."""
    meta = spectrum.metadata
    lines = ['BEGIN IONS']
    lines.append(f"TITLE={meta.description or meta.native_id or f'scan={meta.scan_number}'}")
    if meta.precursor is not None:
        pepmass = repr(float(meta.precursor.mz))
        if meta.precursor.intensity is not None:
            pepmass += f" {float(meta.precursor.intensity)!r}"
        lines.append(f"PEPMASS={pepmass}")
        if meta.precursor.charge is not None:
            lines.append(f"CHARGE={_format_charge(meta.precursor.charge)}")
    lines.append(f"RTINSECONDS={float(meta.retention_time)!r}")
    lines.append(f"SCANS={meta.scan_number}")
    if meta.ms_level != 2:
        lines.append(f"MSLEVEL={meta.ms_level}")
    for mz, intensity in zip(spectrum.mz.tolist(), spectrum.intensity.tolist()):
        lines.append(f"{mz!r} {intensity!r}")
    lines.append('END IONS')
    return '\n'.join(lines) + '\n'


def write_mgf(scans: Sequence[Spectrum], path: Path | str) -> Path:
    """
    Write scans to an MGF file, one block per scan in order.

    ``SCANS`` carries the scan number; ``TITLE`` the description, falling
    back to the native id.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as handle:
        for spectrum in scans:
            handle.write(format_mgf_block(spectrum))
            handle.write('\n')
    logger.info(f"Wrote {len(scans)} spectra to {path}")
    return path
