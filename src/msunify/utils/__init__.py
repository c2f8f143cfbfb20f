"""
Utility modules for msunify.

This module provides:
- System resource detection and worker sizing
- External tool management (Apptainer, ProteoWizard)
- File helpers (checksums, derived output paths)
"""

from .external import (
    ParallelMode,
    SystemResources,
    get_system_resources,
    clamp_threads,
    find_apptainer,
    find_sif_file,
    validate_sif_file,
    check_apptainer_available,
)
from .files import sha1_digest, snip_path, strip_extension

__all__ = [
    "ParallelMode",
    "SystemResources",
    "get_system_resources",
    "clamp_threads",
    "find_apptainer",
    "find_sif_file",
    "validate_sif_file",
    "check_apptainer_available",
    "sha1_digest",
    "snip_path",
    "strip_extension",
]
