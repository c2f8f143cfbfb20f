"""
Exception hierarchy for msunify.

Every failure raised by the library is a subclass of MsUnifyError and
also of the closest builtin exception, so callers can catch either the
library type or the builtin (e.g. ``except FileNotFoundError``).

Classification and connection errors are raised immediately and never
retried. Decoder errors carry the offending path and, when known, the
0-based record index.
"""

from pathlib import Path
from typing import Optional


class MsUnifyError(Exception):
    """
    Base exception for msunify.

    Attributes:
        path: File or directory the failure relates to (may be None).
        message: Description of the failure.
    """

    def __init__(self, message: str, path: Optional[Path | str] = None):
        self.message = message
        self.path = Path(path) if path is not None else None
        super().__init__(message if path is None else f"{message}: {path}")

    @property
    def kind(self) -> str:
        """Short error kind, used by the command line reporter."""
        return type(self).__name__


class DataFileNotFound(MsUnifyError, FileNotFoundError):
    """Data or result file does not exist at load or connection time."""


class DirectoryNotFound(MsUnifyError, FileNotFoundError):
    """Directory passed to an aggregator does not exist."""


class UnsupportedFormat(MsUnifyError, ValueError):
    """Path could not be mapped to a known format, or the format cannot do what was asked."""


class EmptyFile(MsUnifyError, ValueError):
    """Content inspection was required but the file has no lines."""


class ConnectionNotOpen(MsUnifyError, RuntimeError):
    """Dynamic fetch attempted before the connection was opened."""


class MalformedRecord(MsUnifyError, ValueError):
    """
    A decoder could not parse a record.

    Attributes:
        index: 0-based position of the bad record in the file, if known.
    """

    def __init__(
        self,
        message: str,
        path: Optional[Path | str] = None,
        index: Optional[int] = None,
    ):
        self.index = index
        if index is not None:
            message = f"{message} (record {index})"
        super().__init__(message, path)


class ScanNumberingInvariantViolation(MsUnifyError, RuntimeError):
    """Scan numbers are not dense 1..N, or a precursor reference points outside the collection."""


class CodecNotRegistered(MsUnifyError, LookupError):
    """No decoder/encoder is registered for a format id."""


class DecoderUnavailable(MsUnifyError, RuntimeError):
    """A decoder's external tool (e.g. the ProteoWizard container) is not installed."""
