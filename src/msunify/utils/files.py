"""File helpers shared by data files, exporters and directories."""

import hashlib
from pathlib import Path


def sha1_digest(path: Path | str, chunk_size: int = 1 << 20) -> str:
    """Hex SHA-1 of a file's contents."""
    digest = hashlib.sha1()
    with open(path, 'rb') as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b''):
            digest.update(chunk)
    return digest.hexdigest()


def strip_extension(path: Path | str, extension: str) -> str:
    """File name without ``extension`` (case-insensitive), else without its last suffix."""
    name = Path(path).name
    if extension and name.lower().endswith(extension.lower()):
        return name[:-len(extension)]
    return Path(name).stem


def snip_path(path: Path | str, extension: str, start: int, end: int) -> Path:
    """
    Output path of a scan-range export.

    Example:
        >>> snip_path("/data/run.mzML", ".mzML", 1, 10)
        PosixPath('/data/run_snip_1-10.mzML')
    """
    path = Path(path)
    return path.parent / f"{strip_extension(path, extension)}_snip_{start}-{end}.mzML"
