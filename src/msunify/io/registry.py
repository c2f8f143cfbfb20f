"""
Decoder/encoder registry.

Codec classes register themselves at import with ``@FormatRegistry.register``.
``resolve`` never decodes anything; a FormatId without a codec is a
programming error and fails fast.
"""

from typing import Union

from .base import ResultFormat, SpectrumFormat
from .formats import FormatId
from ..exceptions import CodecNotRegistered

Codec = Union[SpectrumFormat, ResultFormat]


class FormatRegistry:
    """Registry of codecs keyed by FormatId."""

    _codecs: dict[FormatId, type[Codec]] = {}

    @classmethod
    def register(cls, format_id: FormatId):
        """Decorator to register a codec class for a format."""
        def decorator(codec_class: type[Codec]):
            if format_id in cls._codecs and cls._codecs[format_id] is not codec_class:
                raise ValueError(
                    f"{format_id.name} is already handled by {cls._codecs[format_id].__name__}"
                )
            codec_class.format_id = format_id
            cls._codecs[format_id] = codec_class
            return codec_class
        return decorator

    @classmethod
    def resolve(cls, format_id: FormatId) -> Codec:
        """
        Codec instance for a format.

        Raises:
            CodecNotRegistered: If nothing is registered for ``format_id``.
        """
        try:
            codec_class = cls._codecs[format_id]
        except KeyError:
            raise CodecNotRegistered(f"No codec registered for {format_id.name}") from None
        return codec_class()

    @classmethod
    def list_registered(cls) -> list[FormatId]:
        """Registered formats in FormatId order."""
        return [format_id for format_id in FormatId if format_id in cls._codecs]

    @classmethod
    def list_available(cls) -> dict[str, bool]:
        """Availability of every registered codec's dependencies."""
        return {
            format_id.name: cls._codecs[format_id].is_available()
            for format_id in cls.list_registered()
        }


def resolve(format_id: FormatId) -> Codec:
    """Shortcut for ``FormatRegistry.resolve``."""
    return FormatRegistry.resolve(format_id)
