"""Decoding of non-interlaced PNG images into raw pixel buffers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Optional, Union

from .errors import (
    InterlacedError,
    MalformedError,
    NotFoundError,
    NotPngError,
    UnsupportedChunkError,
    UnsupportedFormatError,
)
from .inflate import inflate

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
MIN_PNG_SIZE = 29
FIRST_CHUNK_OFFSET = 33
MAX_CHUNK_LENGTH = 0x7FFFFFFF


class ColorType(IntEnum):
    """Colour types that can be decoded."""

    LUM = 0
    RGB = 2
    LUMA = 4
    RGBA = 6


class PixelFormat(IntEnum):
    """Pixel layout of a decoded image buffer."""

    BADFORMAT = 0
    RGB8 = 1
    RGB16 = 2
    RGBA8 = 3
    RGBA16 = 4
    LUMINANCE1 = 5
    LUMINANCE2 = 6
    LUMINANCE4 = 7
    LUMINANCE8 = 8
    LUMINANCE_ALPHA1 = 9
    LUMINANCE_ALPHA2 = 10
    LUMINANCE_ALPHA4 = 11
    LUMINANCE_ALPHA8 = 12


_FORMATS = {
    (ColorType.LUM, 1): PixelFormat.LUMINANCE1,
    (ColorType.LUM, 2): PixelFormat.LUMINANCE2,
    (ColorType.LUM, 4): PixelFormat.LUMINANCE4,
    (ColorType.LUM, 8): PixelFormat.LUMINANCE8,
    (ColorType.RGB, 8): PixelFormat.RGB8,
    (ColorType.RGB, 16): PixelFormat.RGB16,
    (ColorType.LUMA, 1): PixelFormat.LUMINANCE_ALPHA1,
    (ColorType.LUMA, 2): PixelFormat.LUMINANCE_ALPHA2,
    (ColorType.LUMA, 4): PixelFormat.LUMINANCE_ALPHA4,
    (ColorType.LUMA, 8): PixelFormat.LUMINANCE_ALPHA8,
    (ColorType.RGBA, 8): PixelFormat.RGBA8,
    (ColorType.RGBA, 16): PixelFormat.RGBA16,
}

_COMPONENTS = {
    ColorType.LUM: 1,
    ColorType.RGB: 3,
    ColorType.LUMA: 2,
    ColorType.RGBA: 4,
}


def determine_format(color_type: int, depth: int) -> PixelFormat:
    """Return the pixel format for a colour type and bit depth, or BADFORMAT."""
    try:
        key = (ColorType(color_type), depth)
    except ValueError:
        return PixelFormat.BADFORMAT
    return _FORMATS.get(key, PixelFormat.BADFORMAT)


@dataclass(frozen=True)
class PngHeader:
    """Image properties read from the IHDR chunk."""

    width: int
    height: int
    color_type: ColorType
    bit_depth: int
    format: PixelFormat

    def components(self) -> int:
        """Number of channels per pixel."""
        return _COMPONENTS.get(self.color_type, 0)

    def bpp(self) -> int:
        """Bits per pixel."""
        return self.bit_depth * self.components()

    def pixel_size(self) -> int:
        """Bits per pixel with the remainder modulo 8 added on."""
        bits = self.bpp()
        return bits + bits % 8


@dataclass(frozen=True)
class PngImage:
    """A decoded image: its header and the packed pixel bytes."""

    header: PngHeader
    pixels: bytes

    @property
    def width(self) -> int:
        return self.header.width

    @property
    def height(self) -> int:
        return self.header.height

    @property
    def format(self) -> PixelFormat:
        return self.header.format

    @property
    def bpp(self) -> int:
        return self.header.bpp()

    @property
    def size(self) -> int:
        return len(self.pixels)


def paeth_predictor(a: int, b: int, c: int) -> int:
    """The Paeth predictor used by PNG filter type 4."""
    p = a + b - c
    pa = abs(p - a)
    pb = abs(p - b)
    pc = abs(p - c)
    if pa <= pb and pa <= pc:
        return a
    if pb <= pc:
        return b
    return c


def _unfilter_line(
    filter_type: int, line: bytes, prev: Optional[bytes], bytewidth: int
) -> bytes:
    recon = bytearray(line)
    count = len(recon)
    if filter_type == 0:
        pass
    elif filter_type == 1:
        for i in range(bytewidth, count):
            recon[i] = (recon[i] + recon[i - bytewidth]) & 0xFF
    elif filter_type == 2:
        if prev is not None:
            recon = bytearray((value + up) & 0xFF for value, up in zip(line, prev))
    elif filter_type == 3:
        for i in range(count):
            left = recon[i - bytewidth] if i >= bytewidth else 0
            up = prev[i] if prev is not None else 0
            recon[i] = (line[i] + (left + up) // 2) & 0xFF
    elif filter_type == 4:
        for i in range(count):
            left = recon[i - bytewidth] if i >= bytewidth else 0
            up = prev[i] if prev is not None else 0
            upleft = prev[i - bytewidth] if prev is not None and i >= bytewidth else 0
            recon[i] = (line[i] + paeth_predictor(left, up, upleft)) & 0xFF
    else:
        raise MalformedError(f"unknown scanline filter type {filter_type}")
    return bytes(recon)


def unfilter(data: bytes, width: int, height: int, bpp: int) -> bytes:
    """Undo the per-scanline filters; each input line starts with its filter byte."""
    bytewidth = (bpp + 7) // 8
    linebytes = (width * bpp + 7) // 8
    stride = linebytes + 1
    if len(data) < height * stride:
        raise MalformedError("not enough image data")

    out = bytearray()
    prev: Optional[bytes] = None
    for y in range(height):
        start = y * stride
        line = data[start + 1:start + stride]
        prev = _unfilter_line(data[start], line, prev, bytewidth)
        out += prev
    return bytes(out)


def _remove_padding_bits(data: bytes, line_bits: int, padded_bits: int, height: int) -> bytes:
    linebytes = padded_bits // 8
    pad = padded_bits - line_bits
    packed = 0
    for y in range(height):
        row = int.from_bytes(data[y * linebytes:(y + 1) * linebytes], "big")
        packed = (packed << line_bits) | (row >> pad)
    total_bits = line_bits * height
    size = (total_bits + 7) // 8
    packed <<= size * 8 - total_bits
    return packed.to_bytes(size, "big")


def _post_process(data: bytes, header: PngHeader) -> bytes:
    bpp = header.bpp()
    if bpp == 0:
        raise MalformedError("image has zero bits per pixel")
    width, height = header.width, header.height
    unfiltered = unfilter(data, width, height, bpp)
    line_bits = width * bpp
    padded_bits = ((line_bits + 7) // 8) * 8
    if bpp < 8 and line_bits != padded_bits:
        return _remove_padding_bits(unfiltered, line_bits, padded_bits, height)
    return unfiltered


def read_header(data: bytes) -> PngHeader:
    """Validate the signature and IHDR chunk and return the image header."""
    data = bytes(data)
    if len(data) < MIN_PNG_SIZE:
        raise NotPngError("data too short to be a PNG image")
    if data[:8] != PNG_SIGNATURE:
        raise NotPngError()
    if data[12:16] != b"IHDR":
        raise MalformedError("first chunk is not IHDR")

    width = int.from_bytes(data[16:20], "big")
    height = int.from_bytes(data[20:24], "big")
    depth = data[24]
    color_type = data[25]

    pixel_format = determine_format(color_type, depth)
    if pixel_format is PixelFormat.BADFORMAT:
        raise UnsupportedFormatError(
            f"unsupported color type {color_type} with bit depth {depth}"
        )
    if data[26] != 0:
        raise MalformedError("unknown compression method")
    if data[27] != 0:
        raise MalformedError("unknown filter method")
    if data[28] != 0:
        raise InterlacedError()

    return PngHeader(width, height, ColorType(color_type), depth, pixel_format)


def _collect_image_data(data: bytes) -> bytes:
    compressed = bytearray()
    pos = FIRST_CHUNK_OFFSET
    size = len(data)
    while pos < size:
        if pos + 12 > size:
            raise MalformedError("truncated chunk header")
        length = int.from_bytes(data[pos:pos + 4], "big")
        if length > MAX_CHUNK_LENGTH:
            raise MalformedError("chunk length too large")
        if pos + length + 12 > size:
            raise MalformedError("chunk runs past end of data")
        chunk_type = data[pos + 4:pos + 8]
        if chunk_type == b"IDAT":
            compressed += data[pos + 8:pos + 8 + length]
        elif chunk_type == b"IEND":
            break
        elif not chunk_type[0] & 32:
            raise UnsupportedChunkError(
                f"critical chunk {chunk_type.decode('latin-1')!r} is not supported"
            )
        pos += length + 12
    return bytes(compressed)


def decode(data: bytes) -> PngImage:
    """Decode PNG bytes into an image with the same colour type as the file."""
    data = bytes(data)
    header = read_header(data)
    compressed = _collect_image_data(data)

    bpp = header.bpp()
    filtered_size = header.height * ((header.width * bpp + 7) // 8 + 1)
    inflated = inflate(compressed, filtered_size + 1)[:filtered_size]

    return PngImage(header, _post_process(inflated, header))


def load(path: Union[str, Path]) -> PngImage:
    """Read and decode a PNG file."""
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise NotFoundError(f"cannot read {path}") from exc
    return decode(data)