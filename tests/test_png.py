import random
import struct
import zlib

import pytest

from rasterkit.errors import (
    ErrorCode,
    InterlacedError,
    MalformedError,
    NotFoundError,
    NotPngError,
    UnsupportedChunkError,
    UnsupportedFormatError,
)
from rasterkit.png import (
    ColorType,
    PixelFormat,
    PngHeader,
    decode,
    determine_format,
    load,
    paeth_predictor,
    read_header,
    unfilter,
)

SIGNATURE = b"\x89PNG\r\n\x1a\n"


def chunk(kind, payload):
    return (
        struct.pack(">I", len(payload))
        + kind
        + payload
        + struct.pack(">I", zlib.crc32(kind + payload) & 0xFFFFFFFF)
    )


def ihdr(width, height, depth, color, compression=0, filtering=0, interlace=0):
    return chunk(
        b"IHDR",
        struct.pack(">IIBBBBB", width, height, depth, color, compression, filtering, interlace),
    )


def make_png(width, height, depth, color, filtered, level=6, extra=(), split=1, **kw):
    compressed = zlib.compress(filtered, level)
    step = max(1, -(-len(compressed) // split))
    idats = b"".join(
        chunk(b"IDAT", compressed[i:i + step]) for i in range(0, len(compressed), step)
    )
    return (
        SIGNATURE
        + ihdr(width, height, depth, color, **kw)
        + b"".join(extra)
        + idats
        + chunk(b"IEND", b"")
    )


def _paeth(a, b, c):
    p = a + b - c
    pa, pb, pc = abs(p - a), abs(p - b), abs(p - c)
    if pa <= pb and pa <= pc:
        return a
    return b if pb <= pc else c


def encode_rows(rows, bytewidth, filter_types):
    """Apply PNG filters to raw rows (the inverse of unfiltering)."""
    out = bytearray()
    prev = bytes(len(rows[0])) if rows else b""
    for row, ftype in zip(rows, filter_types):
        out.append(ftype)
        for i, value in enumerate(row):
            left = row[i - bytewidth] if i >= bytewidth else 0
            up = prev[i]
            upleft = prev[i - bytewidth] if i >= bytewidth else 0
            predictor = {
                0: 0,
                1: left,
                2: up,
                3: (left + up) // 2,
                4: _paeth(left, up, upleft),
            }[ftype]
            out.append((value - predictor) & 0xFF)
        prev = row
    return bytes(out)


def random_rows(rng, height, linebytes):
    return [bytes(rng.randrange(256) for _ in range(linebytes)) for _ in range(height)]


def test_paeth_predictor_picks_from_inputs():
    rng = random.Random(1)
    for _ in range(200):
        a, b, c = rng.randrange(256), rng.randrange(256), rng.randrange(256)
        assert paeth_predictor(a, b, c) in (a, b, c)


def test_paeth_predictor_with_only_up_value():
    for b in range(256):
        assert paeth_predictor(0, b, 0) == b


def test_determine_format_known_pairs():
    assert determine_format(ColorType.LUM, 8) is PixelFormat.LUMINANCE8
    assert determine_format(ColorType.RGB, 16) is PixelFormat.RGB16
    assert determine_format(ColorType.LUMA, 1) is PixelFormat.LUMINANCE_ALPHA1
    assert determine_format(ColorType.RGBA, 8) is PixelFormat.RGBA8


def test_determine_format_rejects_unknown():
    assert determine_format(ColorType.RGB, 4) is PixelFormat.BADFORMAT
    assert determine_format(3, 8) is PixelFormat.BADFORMAT
    assert determine_format(ColorType.RGBA, 1) is PixelFormat.BADFORMAT


def test_header_derived_sizes():
    rgba = PngHeader(1, 1, ColorType.RGBA, 8, PixelFormat.RGBA8)
    assert rgba.components() == 4
    assert rgba.bpp() == 32
    assert rgba.pixel_size() == 32
    lum1 = PngHeader(1, 1, ColorType.LUM, 1, PixelFormat.LUMINANCE1)
    assert lum1.components() == 1
    assert lum1.bpp() == 1
    assert lum1.pixel_size() == 2


@pytest.mark.parametrize("ftype", [0, 1, 2, 3, 4])
@pytest.mark.parametrize("bpp", [8, 24, 32, 48])
def test_unfilter_round_trip(ftype, bpp):
    rng = random.Random(ftype * 100 + bpp)
    width, height = 5, 4
    bytewidth = bpp // 8
    rows = random_rows(rng, height, width * bytewidth)
    filtered = encode_rows(rows, bytewidth, [ftype] * height)
    assert unfilter(filtered, width, height, bpp) == b"".join(rows)


def test_unfilter_mixed_filters():
    rng = random.Random(7)
    rows = random_rows(rng, 6, 9)
    filtered = encode_rows(rows, 3, [0, 1, 2, 3, 4, 2])
    assert unfilter(filtered, 3, 6, 24) == b"".join(rows)


def test_unfilter_rejects_unknown_filter():
    with pytest.raises(MalformedError):
        unfilter(bytes([5, 1, 2]), 2, 1, 8)


def test_unfilter_rejects_short_data():
    with pytest.raises(MalformedError):
        unfilter(bytes([0, 1]), 2, 1, 8)


def test_read_header_fields():
    png = make_png(3, 2, 8, 2, bytes(2 * 10))
    header = read_header(png)
    assert (header.width, header.height) == (3, 2)
    assert header.color_type is ColorType.RGB
    assert header.bit_depth == 8
    assert header.format is PixelFormat.RGB8


def test_read_header_too_short():
    with pytest.raises(NotPngError) as info:
        read_header(SIGNATURE + b"\x00" * 10)
    assert info.value.code is ErrorCode.NOTPNG


def test_read_header_bad_signature():
    png = bytearray(make_png(1, 1, 8, 0, bytes(2)))
    png[1] = ord("Q")
    with pytest.raises(NotPngError):
        read_header(bytes(png))


def test_read_header_first_chunk_not_ihdr():
    png = bytearray(make_png(1, 1, 8, 0, bytes(2)))
    png[12:16] = b"IDAT"
    with pytest.raises(MalformedError):
        read_header(bytes(png))


def test_read_header_unsupported_format():
    png = make_png(1, 1, 8, 3, bytes(2))
    with pytest.raises(UnsupportedFormatError) as info:
        read_header(png)
    assert info.value.code is ErrorCode.UNFORMAT


@pytest.mark.parametrize("field", ["compression", "filtering"])
def test_read_header_bad_methods(field):
    png = make_png(1, 1, 8, 0, bytes(2), **{field: 1})
    with pytest.raises(MalformedError):
        read_header(png)


def test_read_header_interlaced():
    png = make_png(1, 1, 8, 0, bytes(2), interlace=1)
    with pytest.raises(InterlacedError):
        read_header(png)


@pytest.mark.parametrize("level", [0, 1, 9])
@pytest.mark.parametrize(
    "color,depth,channels",
    [(0, 8, 1), (2, 8, 3), (2, 16, 6), (4, 8, 2), (6, 8, 4), (6, 16, 8)],
)
def test_decode_round_trip(level, color, depth, channels):
    rng = random.Random(level * 1000 + color * 10 + depth)
    width, height = 7, 5
    rows = random_rows(rng, height, width * channels)
    filtered = encode_rows(rows, channels, [0, 1, 2, 3, 4])
    image = decode(make_png(width, height, depth, color, filtered, level))
    assert image.pixels == b"".join(rows)
    assert image.size == width * height * channels
    assert (image.width, image.height) == (width, height)
    assert image.format is determine_format(color, depth)


def test_decode_repetitive_data():
    width, height = 16, 16
    rows = [bytes([10, 20, 30] * width) for _ in range(height)]
    filtered = encode_rows(rows, 3, [0] * height)
    image = decode(make_png(width, height, 8, 2, filtered, 9))
    assert image.pixels == b"".join(rows)


def test_decode_single_column():
    rows = [bytes([40]) for _ in range(20)]
    filtered = encode_rows(rows, 1, [0] * 20)
    image = decode(make_png(1, 20, 8, 0, filtered, 9))
    assert image.pixels == bytes([40]) * 20


def test_decode_removes_padding_bits():
    filtered = bytes([0, 0b10100000, 0, 0b01100000])
    image = decode(make_png(3, 2, 1, 0, filtered))
    assert image.pixels == bytes([0b10101100])
    assert image.bpp == 1


def test_decode_byte_aligned_low_depth():
    rng = random.Random(3)
    rows = random_rows(rng, 3, 2)
    filtered = encode_rows(rows, 1, [1, 2, 4])
    image = decode(make_png(4, 3, 4, 0, filtered))
    assert image.pixels == b"".join(rows)


def test_decode_multiple_idat_chunks():
    rng = random.Random(11)
    rows = random_rows(rng, 8, 24)
    filtered = encode_rows(rows, 3, [2] * 8)
    image = decode(make_png(8, 8, 8, 2, filtered, 0, split=4))
    assert image.pixels == b"".join(rows)


def test_decode_skips_ancillary_chunks():
    rows = [bytes([1, 2, 3])]
    filtered = encode_rows(rows, 3, [0])
    png = make_png(1, 1, 8, 2, filtered, extra=[chunk(b"tEXt", b"Comment\x00hi")])
    assert decode(png).pixels == bytes([1, 2, 3])


def test_decode_rejects_critical_chunk():
    png = make_png(1, 1, 8, 2, bytes(4), extra=[chunk(b"PLTE", bytes(3))])
    with pytest.raises(UnsupportedChunkError) as info:
        decode(png)
    assert info.value.code is ErrorCode.UNSUPPORTED


def test_decode_truncated_chunk():
    png = make_png(2, 2, 8, 0, bytes(6))
    with pytest.raises(MalformedError):
        decode(png[:-20])


def test_decode_corrupt_stream():
    png = (
        SIGNATURE
        + ihdr(2, 2, 8, 0)
        + chunk(b"IDAT", b"\x78\x9c\xff\xff\xff")
        + chunk(b"IEND", b"")
    )
    with pytest.raises(MalformedError):
        decode(png)


def test_decode_too_little_image_data():
    png = make_png(4, 4, 8, 0, bytes(3))
    with pytest.raises(MalformedError):
        decode(png)


def test_load_from_file(tmp_path):
    rows = [bytes([9, 8, 7, 6]), bytes([5, 4, 3, 2])]
    path = tmp_path / "image.png"
    path.write_bytes(make_png(1, 2, 8, 6, encode_rows(rows, 4, [0, 1])))
    image = load(path)
    assert image.pixels == b"".join(rows)
    assert image.format is PixelFormat.RGBA8


def test_load_missing_file(tmp_path):
    with pytest.raises(NotFoundError) as info:
        load(tmp_path / "missing.png")
    assert info.value.code is ErrorCode.NOTFOUND