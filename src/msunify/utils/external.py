"""
System and external tool utilities for msunify.

This module provides utilities for:
- Sizing worker pools from the machine's CPU count
- Finding and validating the ProteoWizard container (Apptainer + SIF)
"""

import fnmatch
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)

# Common names of the ProteoWizard image
SIF_NAMES = (
    'pwiz-skyline-i-agree-to-the-vendor-licenses_latest.sif',
    'proteowizard.sif',
    'pwiz.sif',
)

# Environment variable pointing at the ProteoWizard image
SIF_ENV_VAR = 'MSUNIFY_PWIZ_SIF'


class ParallelMode(Enum):
    """Parallelization intensity modes."""
    NONE = auto()      # Single worker
    LIGHT = auto()     # 25% of physical cores
    HEAVY = auto()     # 75% of physical cores
    MAX = auto()       # All physical cores
    CUSTOM = auto()    # User-specified number of workers


@dataclass(frozen=True)
class SystemResources:
    """CPU counts of the current machine."""
    cpu_count: int
    cpu_count_physical: int

    def get_workers(self, mode: ParallelMode, custom_workers: Optional[int] = None) -> int:
        """
        Number of workers for a parallel mode.

        CUSTOM requests are clamped to 1..cpu_count.

        Args:
            mode: Parallelization mode.
            custom_workers: Number of workers for CUSTOM mode.
        """
        if mode == ParallelMode.NONE:
            return 1
        if mode == ParallelMode.LIGHT:
            return max(1, self.cpu_count_physical // 4)
        if mode == ParallelMode.HEAVY:
            return max(1, int(self.cpu_count_physical * 0.75))
        if mode == ParallelMode.MAX:
            return self.cpu_count_physical
        if custom_workers is None:
            raise ValueError("custom_workers must be specified for CUSTOM mode")
        return max(1, min(custom_workers, self.cpu_count))


def _physical_core_count(default: int) -> int:
    """Unique (physical id, core id) pairs in /proc/cpuinfo."""
    cpuinfo = Path('/proc/cpuinfo')
    if not cpuinfo.exists():
        return default
    cores = set()
    current_physical = None
    with open(cpuinfo) as f:
        for line in f:
            if line.startswith('physical id'):
                current_physical = line.split(':')[1].strip()
            elif line.startswith('core id') and current_physical is not None:
                cores.add((current_physical, line.split(':')[1].strip()))
    return len(cores) or default


def get_system_resources() -> SystemResources:
    """Detect the logical and physical CPU counts."""
    cpu_count = os.cpu_count() or 1
    try:
        physical = _physical_core_count(cpu_count)
    except OSError:
        physical = cpu_count
    return SystemResources(cpu_count=cpu_count, cpu_count_physical=physical)


def clamp_threads(max_threads: int) -> int:
    """Clamp a requested thread count to 1..cpu_count."""
    return get_system_resources().get_workers(ParallelMode.CUSTOM, max_threads)


def find_apptainer() -> Optional[Path]:
    """
    Find the Apptainer/Singularity executable.

    Returns:
        Path to apptainer/singularity executable, or None if not found.
    """
    for cmd in ('apptainer', 'singularity'):
        path = shutil.which(cmd)
        if path:
            return Path(path)
    return None


def check_apptainer_available() -> tuple[bool, str]:
    """
    Check if Apptainer is available and working.

    Returns:
        Tuple of (is_available, message).
    """
    apptainer = find_apptainer()
    if apptainer is None:
        return False, "Apptainer/Singularity not found. Install with: apt install apptainer"
    try:
        result = subprocess.run(
            [str(apptainer), '--version'],
            capture_output=True,
            text=True,
            timeout=10,
        )
    except subprocess.TimeoutExpired:
        return False, "Apptainer command timed out"
    except OSError as e:
        return False, f"Error checking Apptainer: {e}"
    if result.returncode != 0:
        return False, f"Apptainer error: {result.stderr}"
    return True, f"Found: {result.stdout.strip()}"


def find_sif_file(
    search_paths: Optional[list[Path]] = None,
    filename_pattern: str = "pwiz*.sif",
) -> Optional[Path]:
    """
    Find a ProteoWizard SIF file.

    ``$MSUNIFY_PWIZ_SIF`` wins when it points at an existing file.

    Args:
        search_paths: Paths to search (default: current dir, home dir,
            ~/.local/share/msunify, /opt/proteowizard).
        filename_pattern: Glob pattern for SIF filename.

    Returns:
        Path to SIF file, or None if not found.
    """
    env_path = os.environ.get(SIF_ENV_VAR)
    if env_path and Path(env_path).is_file():
        return Path(env_path)

    if search_paths is None:
        search_paths = [
            Path.cwd(),
            Path.home(),
            Path.home() / '.local' / 'share' / 'msunify',
            Path('/opt/proteowizard'),
        ]

    for search_path in search_paths:
        if not search_path.is_dir():
            continue
        for item in sorted(search_path.iterdir()):
            if item.is_file() and fnmatch.fnmatch(item.name, filename_pattern):
                return item
        for name in SIF_NAMES:
            path = search_path / name
            if path.is_file():
                return path
    return None


def validate_sif_file(sif_path: Path) -> tuple[bool, str]:
    """
    Validate that a SIF file looks like an Apptainer container.

    Returns:
        Tuple of (is_valid, message).
    """
    if not sif_path.exists():
        return False, f"SIF file not found: {sif_path}"
    if not sif_path.is_file():
        return False, f"Not a file: {sif_path}"

    size_mb = sif_path.stat().st_size / (1024 * 1024)
    if size_mb < 1:
        return False, f"SIF file too small ({size_mb:.1f} MB), may be corrupted"

    with open(sif_path, 'rb') as f:
        magic = f.read(64)
    # SIF images carry their magic after the launch script line
    if b'SIF_MAGIC' in magic or magic[:3] == b'SIF' or b'singularity' in magic.lower():
        return True, f"SIF file detected ({size_mb:.0f} MB)"
    return True, f"SIF file exists ({size_mb:.0f} MB), could not fully validate"
