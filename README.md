# rasterkit

rasterkit is a small pure-Python toolkit. It does two things:

- it decodes non-interlaced PNG images with its own DEFLATE/zlib decompressor;
- it provides immutable 2D, 3D and 4D vector types for simple graphics math.

It uses only the standard library.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Decoding PNG images

```python
from rasterkit.png import decode, load, read_header

with open("sprite.png", "rb") as fh:
    data = fh.read()

header = read_header(data)          # checks the signature and parses IHDR only
print(header.width, header.height, header.bpp())

image = decode(data)                # full decode into raw pixel bytes
image = load("sprite.png")          # the same, read straight from a file
print(image.width, image.height, image.format, image.size)
```

`read_header` returns a `PngHeader` with `width`, `height`, `color_type`
(a `ColorType`), `bit_depth` and `format` (a `PixelFormat`). Its methods
`components()`, `bpp()` and `pixel_size()` give the number of channels, the
bits per pixel, and the bits per pixel with the remainder modulo 8 added on.

`decode` returns a `PngImage` that holds the `header` and the unfiltered
`pixels` bytes. It also exposes `width`, `height`, `format`, `bpp` and `size`.
Rows are tightly packed and carry no filter bytes. In sub-byte formats, rows
whose bit count is not a multiple of 8 are packed bit by bit with no padding
between them.

Supported pixel formats, as listed in `PixelFormat`:

| Color type (`ColorType`) | Bit depths  |
|--------------------------|-------------|
| `LUM`                    | 1, 2, 4, 8  |
| `LUMA`                   | 1, 2, 4, 8  |
| `RGB`                    | 8, 16       |
| `RGBA`                   | 8, 16       |

The building blocks are public as well:

- `determine_format(color_type, depth)` returns the matching `PixelFormat`, or
  `PixelFormat.BADFORMAT`.
- `unfilter(data, width, height, bpp)` undoes PNG scanline filters 0 to 4.
  Each input row must begin with its filter byte.
- `paeth_predictor(a, b, c)` is the predictor used by filter type 4.

### Errors

Every failure raises a subclass of `rasterkit.errors.PngError`. Each exception
class carries an `ErrorCode` in its `code` attribute:

- `NotFoundError`: `load` could not read the file
- `NotPngError`: the data is shorter than 29 bytes or lacks the PNG signature
- `MalformedError`: broken chunks, header fields, zlib header or compressed stream
- `UnsupportedChunkError`: an unknown critical chunk was found
- `InterlacedError`: the image is interlaced
- `UnsupportedFormatError`: the colour type and bit depth are not supported

## Low-level inflate

```python
from rasterkit.inflate import inflate, inflate_raw

pixels = inflate(zlib_stream, output_size)      # checks the 2-byte zlib header
payload = inflate_raw(deflate_stream, output_size)
```

`output_size` is the size of the output buffer. If the stream would write
more than that buffer allows, `MalformedError` is raised. The module also
exposes `BitReader`, `HuffmanTree` and `build_tree(lengths, max_bits)`.

## Vectors

```python
import math
from rasterkit.vector import Vec2, Vec3, Vec4

v = Vec3(1.0, 0.0, 0.0)
w = v.rotate_z(math.pi / 2)        # approximately Vec3(0, 1, 0)
n = v.cross(w).normalized()
print(v.dot(w), n.length())

p = v.to_vec4()                    # w component set to 1.0
screen = Vec4(3.0, 4.0, 5.0, 1.0).to_vec2()
print(Vec2(3.0, 4.0).length())     # 5.0
x, y, z = v                        # vectors unpack into their components
```

Vectors of the same kind can be combined with `+` and `-`. A vector can be
multiplied by a scalar from either side with `*`, and divided by one with `/`.

## What rasterkit does not do

- It does not write or encode PNG images. It only decodes them.
- It rejects palette images, interlaced images and any unknown critical chunk.
- It does not check chunk CRCs or the zlib Adler-32 checksum.
- It does not convert between pixel formats. The pixel bytes come back in the
  layout the file was stored in.