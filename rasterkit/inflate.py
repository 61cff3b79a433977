"""A zlib/deflate decompressor with a fixed-size output limit."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Tuple

from .errors import MalformedError

FIRST_LENGTH_CODE = 257
LAST_LENGTH_CODE = 285
END_CODE = 256

NUM_DEFLATE_CODE_SYMBOLS = 288
NUM_DISTANCE_SYMBOLS = 32
NUM_CODE_LENGTH_CODES = 19

DEFLATE_CODE_BITLEN = 15
DISTANCE_BITLEN = 15
CODE_LENGTH_BITLEN = 7

LENGTH_BASE = (
    3, 4, 5, 6, 7, 8, 9, 10, 11, 13, 15, 17, 19, 23, 27, 31, 35, 43, 51, 59,
    67, 83, 99, 115, 131, 163, 195, 227, 258,
)
LENGTH_EXTRA = (
    0, 0, 0, 0, 0, 0, 0, 0, 1, 1, 1, 1, 2, 2, 2, 2, 3, 3, 3, 3, 4, 4, 4, 4, 5,
    5, 5, 5, 0,
)
DISTANCE_BASE = (
    1, 2, 3, 4, 5, 7, 9, 13, 17, 25, 33, 49, 65, 97, 129, 193, 257, 385, 513,
    769, 1025, 1537, 2049, 3073, 4097, 6145, 8193, 12289, 16385, 24577,
)
DISTANCE_EXTRA = (
    0, 0, 0, 0, 1, 1, 2, 2, 3, 3, 4, 4, 5, 5, 6, 6, 7, 7, 8, 8, 9, 9, 10, 10,
    11, 11, 12, 12, 13, 13,
)
# Order in which the code-length alphabet's lengths are stored.
CODE_LENGTH_ORDER = (16, 17, 18, 0, 8, 7, 9, 6, 10, 5, 11, 4, 12, 3, 13, 2, 14, 1, 15)


class BitReader:
    """Reads bits least-significant first from a byte string."""

    __slots__ = ("_data", "_pos")

    def __init__(self, data: bytes, bit_pos: int = 0) -> None:
        self._data = bytes(data)
        self._pos = bit_pos

    @property
    def data(self) -> bytes:
        return self._data

    @property
    def size(self) -> int:
        return len(self._data)

    @property
    def bit_pos(self) -> int:
        return self._pos

    @property
    def byte_pos(self) -> int:
        return self._pos >> 3

    def read_bit(self) -> int:
        """Return the next bit; raise MalformedError past the end of data."""
        index = self._pos >> 3
        if index >= len(self._data):
            raise MalformedError("unexpected end of compressed data")
        bit = (self._data[index] >> (self._pos & 7)) & 1
        self._pos += 1
        return bit

    def read_bits(self, count: int) -> int:
        """Return ``count`` bits as an integer, first bit lowest."""
        result = 0
        for shift in range(count):
            result |= self.read_bit() << shift
        return result

    def align(self) -> None:
        """Advance to the next byte boundary."""
        self._pos = (self._pos + 7) & ~7

    def _take_bytes(self, count: int) -> bytes:
        start = self.byte_pos
        chunk = self._data[start:start + count]
        self._pos = (start + count) * 8
        return chunk


@dataclass(frozen=True)
class HuffmanTree:
    """A decoding tree: pairs of child slots, values >= numcodes are node links."""

    nodes: Tuple[int, ...]
    numcodes: int
    maxbitlen: int

    def decode_symbol(self, reader: BitReader) -> int:
        """Read bits from ``reader`` until a complete symbol is found."""
        treepos = 0
        while True:
            child = self.nodes[(treepos << 1) | reader.read_bit()]
            if child < self.numcodes:
                return child
            treepos = child - self.numcodes
            if treepos >= self.numcodes:
                raise MalformedError("invalid huffman tree link")


def build_tree(lengths: Iterable[int], max_bits: int) -> HuffmanTree:
    """Build the canonical deflate tree for the given code lengths."""
    bitlen = list(lengths)
    numcodes = len(bitlen)

    blcount = Counter(bitlen)
    nextcode = [0] * (max(max_bits, max(bitlen, default=0)) + 1)
    for bits in range(1, max_bits + 1):
        nextcode[bits] = (nextcode[bits - 1] + blcount[bits - 1]) << 1

    codes = [0] * numcodes
    for symbol, length in enumerate(bitlen):
        if length:
            codes[symbol] = nextcode[length]
            nextcode[length] += 1

    nodes = [None] * (numcodes * 2)
    nodefilled = 0
    treepos = 0
    for symbol, length in enumerate(bitlen):
        for i in range(length):
            bit = (codes[symbol] >> (length - i - 1)) & 1
            if treepos > numcodes - 2:
                raise MalformedError("oversubscribed huffman code")
            slot = 2 * treepos + bit
            if nodes[slot] is None:
                if i + 1 == length:
                    nodes[slot] = symbol
                    treepos = 0
                else:
                    nodefilled += 1
                    nodes[slot] = nodefilled + numcodes
                    treepos = nodefilled
            else:
                treepos = nodes[slot] - numcodes

    return HuffmanTree(
        tuple(0 if node is None else node for node in nodes), numcodes, max_bits
    )


@lru_cache(maxsize=None)
def _fixed_trees() -> Tuple[HuffmanTree, HuffmanTree]:
    literal_lengths = [8] * 144 + [9] * 112 + [7] * 24 + [8] * 8
    return (
        build_tree(literal_lengths, DEFLATE_CODE_BITLEN),
        build_tree([5] * NUM_DISTANCE_SYMBOLS, DISTANCE_BITLEN),
    )


def _ensure_available(reader: BitReader) -> None:
    if reader.byte_pos >= reader.size:
        raise MalformedError("bit pointer past end of compressed data")


def _read_dynamic_trees(reader: BitReader) -> Tuple[HuffmanTree, HuffmanTree]:
    if reader.size >= 2 and reader.byte_pos >= reader.size - 2:
        raise MalformedError("dynamic block header truncated")

    hlit = reader.read_bits(5) + 257
    hdist = reader.read_bits(5) + 1
    hclen = reader.read_bits(4) + 4

    code_lengths = [0] * NUM_CODE_LENGTH_CODES
    for symbol in CODE_LENGTH_ORDER[:hclen]:
        code_lengths[symbol] = reader.read_bits(3)
    length_tree = build_tree(code_lengths, CODE_LENGTH_BITLEN)

    total = hlit + hdist
    lengths: list[int] = []
    while len(lengths) < total:
        code = length_tree.decode_symbol(reader)
        if code <= 15:
            lengths.append(code)
            continue
        if code == 16:
            if not lengths:
                raise MalformedError("repeat code without a previous length")
            _ensure_available(reader)
            repeat, value = 3 + reader.read_bits(2), lengths[-1]
        elif code == 17:
            _ensure_available(reader)
            repeat, value = 3 + reader.read_bits(3), 0
        elif code == 18:
            _ensure_available(reader)
            repeat, value = 11 + reader.read_bits(7), 0
        else:
            raise MalformedError("invalid code length symbol")
        if len(lengths) + repeat > total:
            raise MalformedError("code lengths overflow the alphabet")
        lengths.extend([value] * repeat)

    literal = lengths[:hlit] + [0] * (NUM_DEFLATE_CODE_SYMBOLS - hlit)
    distance = lengths[hlit:] + [0] * (NUM_DISTANCE_SYMBOLS - hdist)
    if literal[END_CODE] == 0:
        raise MalformedError("end-of-block code has no length")
    return (
        build_tree(literal, DEFLATE_CODE_BITLEN),
        build_tree(distance, DISTANCE_BITLEN),
    )


def _inflate_huffman(
    reader: BitReader,
    out: bytearray,
    output_size: int,
    literal_tree: HuffmanTree,
    distance_tree: HuffmanTree,
) -> None:
    while True:
        code = literal_tree.decode_symbol(reader)
        if code == END_CODE:
            return
        if code < END_CODE:
            if len(out) >= output_size:
                raise MalformedError("decompressed data exceeds output size")
            out.append(code)
        elif FIRST_LENGTH_CODE <= code <= LAST_LENGTH_CODE:
            index = code - FIRST_LENGTH_CODE
            _ensure_available(reader)
            length = LENGTH_BASE[index] + reader.read_bits(LENGTH_EXTRA[index])

            code_d = distance_tree.decode_symbol(reader)
            if code_d > 29:
                raise MalformedError("invalid distance code")
            _ensure_available(reader)
            distance = DISTANCE_BASE[code_d] + reader.read_bits(DISTANCE_EXTRA[code_d])

            start = len(out)
            if distance > start:
                raise MalformedError("distance reaches before start of output")
            if start + length >= output_size:
                raise MalformedError("decompressed data exceeds output size")
            for _ in range(length):
                out.append(out[-distance])
        # Symbols 286 and 287 carry no meaning and are passed over.


def _inflate_stored(reader: BitReader, out: bytearray, output_size: int) -> None:
    reader.align()
    p = reader.byte_pos
    data = reader.data
    if p + 4 >= reader.size:
        raise MalformedError("stored block header truncated")
    length = data[p] | (data[p + 1] << 8)
    nlength = data[p + 2] | (data[p + 3] << 8)
    if length + nlength != 0xFFFF:
        raise MalformedError("stored block length check failed")
    if len(out) + length >= output_size:
        raise MalformedError("decompressed data exceeds output size")
    if p + 4 + length > reader.size:
        raise MalformedError("stored block runs past end of data")
    reader._take_bytes(4)
    out.extend(reader._take_bytes(length))


def inflate_raw(data: bytes, output_size: int) -> bytes:
    """Decompress a raw deflate stream producing fewer than ``output_size`` bytes."""
    reader = BitReader(data)
    out = bytearray()
    final = 0
    while not final:
        _ensure_available(reader)
        final = reader.read_bit()
        btype = reader.read_bits(2)
        if btype == 3:
            raise MalformedError("invalid deflate block type")
        if btype == 0:
            _inflate_stored(reader, out, output_size)
        elif btype == 1:
            _inflate_huffman(reader, out, output_size, *_fixed_trees())
        else:
            _inflate_huffman(reader, out, output_size, *_read_dynamic_trees(reader))
    return bytes(out)


def inflate(data: bytes, output_size: int) -> bytes:
    """Decompress a zlib stream; the trailing checksum is not verified."""
    data = bytes(data)
    if len(data) < 2:
        raise MalformedError("zlib header truncated")
    cmf, flags = data[0], data[1]
    if (cmf * 256 + flags) % 31 != 0:
        raise MalformedError("zlib header check failed")
    if (cmf & 15) != 8 or ((cmf >> 4) & 15) > 7:
        raise MalformedError("unsupported zlib compression method")
    if (flags >> 5) & 1:
        raise MalformedError("preset dictionaries are not allowed")
    return inflate_raw(data[2:], output_size)