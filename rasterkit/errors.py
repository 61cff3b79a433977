"""Error codes and exceptions raised while reading PNG data."""

from __future__ import annotations

from enum import IntEnum
from typing import ClassVar, Optional


class ErrorCode(IntEnum):
    """Numeric codes that identify each kind of decoding failure."""

    OK = 0
    NOMEM = 1
    NOTFOUND = 2
    NOTPNG = 3
    MALFORMED = 4
    UNSUPPORTED = 5
    UNINTERLACED = 6
    UNFORMAT = 7
    PARAM = 8


class PngError(Exception):
    """Base class for every error raised while reading a PNG image."""

    code: ClassVar[ErrorCode] = ErrorCode.MALFORMED
    default_message: ClassVar[str] = "PNG decoding failed"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message if message is not None else self.default_message)

    @property
    def message(self) -> str:
        return str(self.args[0])


class NotFoundError(PngError):
    """The requested image file does not exist or cannot be opened."""

    code = ErrorCode.NOTFOUND
    default_message = "resource not found"


class NotPngError(PngError):
    """The data does not start with a PNG signature."""

    code = ErrorCode.NOTPNG
    default_message = "image data does not have a PNG header"


class MalformedError(PngError):
    """The data is not a valid PNG image or deflate stream."""

    code = ErrorCode.MALFORMED
    default_message = "image data is not a valid PNG image"


class UnsupportedChunkError(PngError):
    """A critical chunk type is present that cannot be handled."""

    code = ErrorCode.UNSUPPORTED
    default_message = "critical PNG chunk type is not supported"


class InterlacedError(PngError):
    """The image uses interlacing, which is not supported."""

    code = ErrorCode.UNINTERLACED
    default_message = "image interlacing is not supported"


class UnsupportedFormatError(PngError):
    """The colour type and bit depth combination is not supported."""

    code = ErrorCode.UNFORMAT
    default_message = "image color format is not supported"