"""
Source descriptor: identifies the file and instrument data that
produced a set of scans.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


# CV names shared by decoders and the mzML writer
NO_NATIVE_ID_FORMAT = "no nativeID format"
SCAN_NUMBER_NATIVE_ID_FORMAT = "scan number only nativeID format"
THERMO_NATIVE_ID_FORMAT = "Thermo nativeID format"
MZML_FILE_FORMAT = "mzML format"
MGF_FILE_FORMAT = "Mascot MGF format"
THERMO_RAW_FILE_FORMAT = "Thermo RAW format"
BRUKER_FILE_FORMAT = "Bruker TDF format"
SHA1 = "SHA-1"


@dataclass(frozen=True, slots=True)
class SourceDescriptor:
    """
    Metadata identifying the origin of a scan collection.

    Attributes:
        native_id_format: CV name of the native id scheme
            (e.g. "Thermo nativeID format").
        file_format: CV name of the original file format.
        checksum_algorithm: Name of the checksum algorithm ("SHA-1").
        checksum_value: Hex digest of the original file, if computed.
        uri: Location of the original file (file:// URI or directory).
        name: File name.
        id: Identifier used in the mzML sourceFile element.
    """
    native_id_format: str
    file_format: str
    checksum_algorithm: str = SHA1
    checksum_value: Optional[str] = None
    uri: Optional[str] = None
    name: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def for_path(
        cls,
        path: Path | str,
        native_id_format: str,
        file_format: str,
        checksum_value: Optional[str] = None,
        id: Optional[str] = None,
    ) -> 'SourceDescriptor':
        """Build a descriptor pointing at a local file."""
        path = Path(path)
        return cls(
            native_id_format=native_id_format,
            file_format=file_format,
            checksum_value=checksum_value,
            uri=path.resolve().parent.as_uri(),
            name=path.name,
            id=id,
        )
