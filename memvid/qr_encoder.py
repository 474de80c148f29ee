"""QR code generation with optional gzip compression of the payload."""

from __future__ import annotations

import base64
import enum
import functools
import gzip
import itertools
import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np
from PIL import Image

COMPRESSION_PREFIX = "GZ:"
MIN_VERSION = 1
MAX_VERSION = 40


class QrCodeError(Exception):
    """Raised when a QR code cannot be built."""


class EcLevel(enum.Enum):
    """Error correction level of a QR symbol."""

    L = 0
    M = 1
    Q = 2
    H = 3

    @property
    def format_bits(self) -> int:
        """The two bits that identify this level in the format information."""
        return {EcLevel.L: 1, EcLevel.M: 0, EcLevel.Q: 3, EcLevel.H: 2}[self]


@dataclass
class QrConfig:
    """Options for QR code generation."""

    version: Optional[int] = None
    error_correction: EcLevel = EcLevel.M
    box_size: int = 10
    border: int = 4
    enable_compression: bool = True
    compression_threshold: int = 100


@dataclass
class QrFrame:
    """A rendered QR code ready to become a video frame."""

    image: Image.Image
    original_text: str
    encoded_size: int
    compressed: bool


@dataclass
class QrLevelCapacity:
    """Whether a text fits at one error correction level, and in which version."""

    error_correction: EcLevel
    version: int
    fits: bool


@dataclass
class QrCapacityInfo:
    """Capacity of a text across all error correction levels."""

    text_length: int
    capacities: list[QrLevelCapacity] = field(default_factory=list)


# Indexed by [EcLevel.value][version]; index 0 is unused.
_ECC_CODEWORDS_PER_BLOCK = (
    (-1, 7, 10, 15, 20, 26, 18, 20, 24, 30, 18, 20, 24, 26, 30, 22, 24, 28, 30, 28, 28,
     28, 28, 30, 30, 26, 28, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30),
    (-1, 10, 16, 26, 18, 24, 16, 18, 22, 22, 26, 30, 22, 22, 24, 24, 28, 28, 26, 26, 26,
     26, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28),
    (-1, 13, 22, 18, 26, 18, 24, 18, 22, 20, 24, 28, 26, 24, 20, 30, 24, 28, 28, 26, 30,
     28, 30, 30, 30, 30, 28, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30),
    (-1, 17, 28, 22, 16, 22, 28, 26, 26, 24, 28, 24, 28, 22, 24, 24, 30, 28, 28, 26, 28,
     30, 24, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30),
)

_NUM_ERROR_CORRECTION_BLOCKS = (
    (-1, 1, 1, 1, 1, 1, 2, 2, 2, 2, 4, 4, 4, 4, 4, 6, 6, 6, 6, 7, 8,
     8, 9, 9, 10, 12, 12, 12, 13, 14, 15, 16, 17, 18, 19, 19, 20, 21, 22, 24, 25),
    (-1, 1, 1, 1, 2, 2, 4, 4, 4, 5, 5, 5, 8, 9, 9, 10, 10, 11, 13, 14, 16,
     17, 17, 18, 20, 21, 23, 25, 26, 28, 29, 31, 33, 35, 37, 38, 40, 43, 45, 47, 49),
    (-1, 1, 1, 2, 2, 4, 4, 6, 6, 8, 8, 8, 10, 12, 16, 12, 17, 16, 18, 21, 20,
     23, 23, 25, 27, 29, 34, 34, 35, 38, 40, 43, 45, 48, 51, 53, 56, 59, 62, 65, 68),
    (-1, 1, 1, 2, 4, 4, 4, 5, 6, 8, 8, 11, 11, 16, 16, 18, 16, 19, 21, 25, 25,
     25, 34, 30, 32, 35, 37, 40, 42, 45, 48, 51, 54, 57, 60, 63, 66, 70, 74, 77, 81),
)

_MAX_CAPACITY_TABLE = {
    (1, EcLevel.L): 25, (1, EcLevel.M): 20, (1, EcLevel.Q): 16, (1, EcLevel.H): 10,
    (10, EcLevel.L): 174, (10, EcLevel.M): 136, (10, EcLevel.Q): 100, (10, EcLevel.H): 74,
    (20, EcLevel.L): 370, (20, EcLevel.M): 290, (20, EcLevel.Q): 216, (20, EcLevel.H): 158,
    (40, EcLevel.L): 852, (40, EcLevel.M): 666, (40, EcLevel.Q): 496, (40, EcLevel.H): 364,
}
_BASE_CAPACITY = {EcLevel.L: 20, EcLevel.M: 15, EcLevel.Q: 12, EcLevel.H: 8}

_ALPHANUMERIC = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ $%*+-./:"
_ALPHANUMERIC_INDEX = {char: index for index, char in enumerate(_ALPHANUMERIC)}

_FINDER_LIKE = re.compile(r"(?=10111010000|00001011101)")

_MASKS = (
    lambda x, y: (x + y) % 2 == 0,
    lambda x, y: y % 2 == 0,
    lambda x, y: x % 3 == 0,
    lambda x, y: (x + y) % 3 == 0,
    lambda x, y: (x // 3 + y // 2) % 2 == 0,
    lambda x, y: (x * y) % 2 + (x * y) % 3 == 0,
    lambda x, y: ((x * y) % 2 + (x * y) % 3) % 2 == 0,
    lambda x, y: ((x + y) % 2 + (x * y) % 3) % 2 == 0,
)


# --- Galois field arithmetic and Reed-Solomon ------------------------------------------


def _build_gf_tables() -> tuple[tuple[int, ...], tuple[int, ...]]:
    exp = [0] * 512
    log = [0] * 256
    value = 1
    for power in range(255):
        exp[power] = value
        log[value] = power
        value <<= 1
        if value & 0x100:
            value ^= 0x11D
    exp[255:] = exp[:257]
    return tuple(exp), tuple(log)


_GF_EXP, _GF_LOG = _build_gf_tables()


def _gf_mul(a: int, b: int) -> int:
    if a == 0 or b == 0:
        return 0
    return _GF_EXP[_GF_LOG[a] + _GF_LOG[b]]


@functools.lru_cache(maxsize=None)
def _rs_divisor(degree: int) -> tuple[int, ...]:
    result = [0] * (degree - 1) + [1]
    root = 1
    for _ in range(degree):
        for j in range(degree):
            result[j] = _gf_mul(result[j], root)
            if j + 1 < degree:
                result[j] ^= result[j + 1]
        root = _gf_mul(root, 2)
    return tuple(result)


def _rs_remainder(data: Sequence[int], divisor: Sequence[int]) -> list[int]:
    result = [0] * len(divisor)
    for byte in data:
        factor = byte ^ result.pop(0)
        result.append(0)
        for i, coefficient in enumerate(divisor):
            result[i] ^= _gf_mul(coefficient, factor)
    return result


# --- Data segments -----------------------------------------------------------------------


class _Mode(enum.Enum):
    NUMERIC = (0x1, (10, 12, 14))
    ALPHANUMERIC = (0x2, (9, 11, 13))
    BYTE = (0x4, (8, 16, 16))

    @property
    def indicator(self) -> int:
        return self.value[0]

    def count_bits(self, version: int) -> int:
        widths = self.value[1]
        if version <= 9:
            return widths[0]
        if version <= 26:
            return widths[1]
        return widths[2]


@dataclass
class _Segment:
    mode: _Mode
    count: int
    bits: list[int]


def _append_bits(bits: list[int], value: int, length: int) -> None:
    bits.extend((value >> shift) & 1 for shift in reversed(range(length)))


def _make_segment(text: str) -> Optional[_Segment]:
    if not text:
        return None
    bits: list[int] = []
    if text.isascii() and text.isdigit():
        for start in range(0, len(text), 3):
            group = text[start:start + 3]
            _append_bits(bits, int(group), len(group) * 3 + 1)
        return _Segment(_Mode.NUMERIC, len(text), bits)
    if all(char in _ALPHANUMERIC_INDEX for char in text):
        for start in range(0, len(text), 2):
            pair = text[start:start + 2]
            if len(pair) == 2:
                _append_bits(bits, _ALPHANUMERIC_INDEX[pair[0]] * 45 + _ALPHANUMERIC_INDEX[pair[1]], 11)
            else:
                _append_bits(bits, _ALPHANUMERIC_INDEX[pair], 6)
        return _Segment(_Mode.ALPHANUMERIC, len(text), bits)
    data = text.encode("utf-8")
    for byte in data:
        _append_bits(bits, byte, 8)
    return _Segment(_Mode.BYTE, len(data), bits)


def _segment_bit_length(segment: Optional[_Segment], version: int) -> Optional[int]:
    if segment is None:
        return 0
    count_bits = segment.mode.count_bits(version)
    if segment.count >= 1 << count_bits:
        return None
    return 4 + count_bits + len(segment.bits)


# --- Symbol geometry ---------------------------------------------------------------------


def _num_raw_data_modules(version: int) -> int:
    result = (16 * version + 128) * version + 64
    if version >= 2:
        num_align = version // 7 + 2
        result -= (25 * num_align - 10) * num_align - 55
        if version >= 7:
            result -= 36
    return result


def _num_data_codewords(version: int, level: EcLevel) -> int:
    return (
        _num_raw_data_modules(version) // 8
        - _ECC_CODEWORDS_PER_BLOCK[level.value][version]
        * _NUM_ERROR_CORRECTION_BLOCKS[level.value][version]
    )


def _choose_version(segment: Optional[_Segment], level: EcLevel) -> Optional[int]:
    for version in range(MIN_VERSION, MAX_VERSION + 1):
        needed = _segment_bit_length(segment, version)
        if needed is not None and needed <= _num_data_codewords(version, level) * 8:
            return version
    return None


def _alignment_positions(version: int) -> list[int]:
    if version == 1:
        return []
    num_align = version // 7 + 2
    step = (version * 8 + num_align * 3 + 5) // (num_align * 4 - 4) * 2
    last = version * 4 + 17 - 7
    return [6] + sorted(last - i * step for i in range(num_align - 1))


def _format_cells(size: int) -> list[tuple[int, int, int]]:
    cells = [(8, i, i) for i in range(6)]
    cells += [(8, 7, 6), (8, 8, 7), (7, 8, 8)]
    cells += [(14 - i, 8, i) for i in range(9, 15)]
    cells += [(size - 1 - i, 8, i) for i in range(8)]
    cells += [(8, size - 15 + i, i) for i in range(8, 15)]
    return cells


def _format_bits(level: EcLevel, mask: int) -> int:
    data = level.format_bits << 3 | mask
    remainder = data
    for _ in range(10):
        remainder = (remainder << 1) ^ ((remainder >> 9) * 0x537)
    return ((data << 10) | remainder) ^ 0x5412


def _version_bits(version: int) -> int:
    remainder = version
    for _ in range(12):
        remainder = (remainder << 1) ^ ((remainder >> 11) * 0x1F25)
    return version << 12 | remainder


def _draw_format(modules: np.ndarray, level: EcLevel, mask: int) -> None:
    size = modules.shape[0]
    bits = _format_bits(level, mask)
    for x, y, index in _format_cells(size):
        modules[y, x] = bool((bits >> index) & 1)
    modules[size - 8, 8] = True


# --- Codeword assembly -------------------------------------------------------------------


def _bits_to_bytes(bits: list[int]) -> list[int]:
    return [
        sum(bit << (7 - offset) for offset, bit in enumerate(bits[start:start + 8]))
        for start in range(0, len(bits), 8)
    ]


def _data_codewords(segment: Optional[_Segment], version: int, level: EcLevel) -> list[int]:
    capacity_bits = _num_data_codewords(version, level) * 8
    bits: list[int] = []
    if segment is not None:
        _append_bits(bits, segment.mode.indicator, 4)
        _append_bits(bits, segment.count, segment.mode.count_bits(version))
        bits.extend(segment.bits)
    bits.extend([0] * min(4, capacity_bits - len(bits)))
    bits.extend([0] * (-len(bits) % 8))
    data = _bits_to_bytes(bits)
    padding = itertools.cycle((0xEC, 0x11))
    data.extend(next(padding) for _ in range(capacity_bits // 8 - len(data)))
    return data


def _add_ecc_and_interleave(data: list[int], version: int, level: EcLevel) -> list[int]:
    num_blocks = _NUM_ERROR_CORRECTION_BLOCKS[level.value][version]
    ecc_len = _ECC_CODEWORDS_PER_BLOCK[level.value][version]
    raw_codewords = _num_raw_data_modules(version) // 8
    num_short = num_blocks - raw_codewords % num_blocks
    short_data_len = raw_codewords // num_blocks - ecc_len
    divisor = _rs_divisor(ecc_len)

    data_blocks: list[list[int]] = []
    ecc_blocks: list[list[int]] = []
    position = 0
    for block_index in range(num_blocks):
        length = short_data_len + (1 if block_index >= num_short else 0)
        block = data[position:position + length]
        position += length
        data_blocks.append(block)
        ecc_blocks.append(_rs_remainder(block, divisor))

    interleaved = [cw for group in itertools.zip_longest(*data_blocks) for cw in group if cw is not None]
    interleaved += [cw for group in zip(*ecc_blocks) for cw in group]
    return interleaved


# --- Matrix construction -----------------------------------------------------------------


def _place_codewords(modules: np.ndarray, function: np.ndarray, codewords: list[int]) -> None:
    size = modules.shape[0]
    total = len(codewords) * 8
    index = 0
    right = size - 1
    while right >= 1:
        if right == 6:
            right = 5
        upward = ((right + 1) & 2) == 0
        for vert in range(size):
            y = size - 1 - vert if upward else vert
            for x in (right, right - 1):
                if not function[y, x] and index < total:
                    modules[y, x] = bool((codewords[index >> 3] >> (7 - (index & 7))) & 1)
                    index += 1
        right -= 2


def _penalty(modules: np.ndarray) -> int:
    size = modules.shape[0]
    score = 0
    for line in itertools.chain(modules, modules.T):
        changes = np.flatnonzero(np.diff(line.astype(np.int8))) + 1
        runs = np.diff(np.concatenate(([0], changes, [size])))
        score += int(np.sum(runs[runs >= 5] - 2))
        text = "0000" + (line.astype(np.uint8) + ord("0")).tobytes().decode("ascii") + "0000"
        score += 40 * len(_FINDER_LIKE.findall(text))

    top_left = modules[:-1, :-1]
    same = (top_left == modules[1:, :-1]) & (top_left == modules[:-1, 1:]) & (top_left == modules[1:, 1:])
    score += 3 * int(np.count_nonzero(same))

    dark = int(np.count_nonzero(modules))
    total = size * size
    k = (abs(dark * 20 - total * 10) + total - 1) // total - 1
    score += k * 10
    return score


def _build_matrix(codewords: list[int], version: int, level: EcLevel) -> np.ndarray:
    size = version * 4 + 17
    modules = np.zeros((size, size), dtype=bool)
    function = np.zeros((size, size), dtype=bool)

    def put(x: int, y: int, dark: bool) -> None:
        modules[y, x] = dark
        function[y, x] = True

    for i in range(size):
        put(6, i, i % 2 == 0)
        put(i, 6, i % 2 == 0)

    for cx, cy in ((3, 3), (size - 4, 3), (3, size - 4)):
        for dy in range(-4, 5):
            for dx in range(-4, 5):
                x, y = cx + dx, cy + dy
                if 0 <= x < size and 0 <= y < size:
                    put(x, y, max(abs(dx), abs(dy)) not in (2, 4))

    positions = _alignment_positions(version)
    last = len(positions) - 1
    corners = {(0, 0), (0, last), (last, 0)}
    for i, ay in enumerate(positions):
        for j, ax in enumerate(positions):
            if (i, j) in corners:
                continue
            for dy in range(-2, 3):
                for dx in range(-2, 3):
                    put(ax + dx, ay + dy, max(abs(dx), abs(dy)) != 1)

    for x, y, _ in _format_cells(size):
        put(x, y, False)
    put(8, size - 8, True)

    if version >= 7:
        bits = _version_bits(version)
        for i in range(18):
            dark = bool((bits >> i) & 1)
            a, b = size - 11 + i % 3, i // 3
            put(a, b, dark)
            put(b, a, dark)

    _place_codewords(modules, function, codewords)

    ys, xs = np.indices((size, size))
    best: Optional[tuple[int, np.ndarray]] = None
    for mask_index, mask in enumerate(_MASKS):
        candidate = modules ^ (mask(xs, ys) & ~function)
        _draw_format(candidate, level, mask_index)
        score = _penalty(candidate)
        if best is None or score < best[0]:
            best = (score, candidate)
    assert best is not None
    return best[1]


# --- Encoder -------------------------------------------------------------------------------


class QrEncoder:
    """Turns text into QR code images, compressing long payloads when it helps."""

    def __init__(self, config: Optional[QrConfig] = None) -> None:
        self.config = config if config is not None else QrConfig()

    def encode_text(self, text: str) -> QrFrame:
        """Encode ``text`` into a rendered QR frame."""
        data, compressed = self._prepare_data(text)
        matrix = self._create_qr_code(data)
        return QrFrame(
            image=self._render(matrix),
            original_text=text,
            encoded_size=len(data.encode("utf-8")),
            compressed=compressed,
        )

    def encode_chunks(self, texts: Sequence[str]) -> list[QrFrame]:
        """Encode each text into its own QR frame."""
        return [self.encode_text(text) for text in texts]

    def _prepare_data(self, text: str) -> tuple[str, bool]:
        size = len(text.encode("utf-8"))
        if not self.config.enable_compression or size < self.config.compression_threshold:
            return text, False
        candidate = COMPRESSION_PREFIX + self._compress(text)
        if len(candidate) < size:
            return candidate, True
        return text, False

    @staticmethod
    def _compress(text: str) -> str:
        try:
            packed = gzip.compress(text.encode("utf-8"), compresslevel=6, mtime=0)
        except OSError as exc:
            raise QrCodeError(f"Compression failed: {exc}") from exc
        return base64.b64encode(packed).decode("ascii")

    def _create_qr_code(self, data: str) -> np.ndarray:
        version = self.config.version
        if version is not None and not MIN_VERSION <= version <= MAX_VERSION:
            raise QrCodeError(f"Invalid QR version: {version}")
        level = self.config.error_correction
        segment = _make_segment(data)
        chosen = _choose_version(segment, level)
        if chosen is None:
            raise QrCodeError("QR code creation failed: data too long")
        codewords = _add_ecc_and_interleave(_data_codewords(segment, chosen, level), chosen, level)
        return _build_matrix(codewords, chosen, level)

    def _render(self, matrix: np.ndarray) -> Image.Image:
        box = self.config.box_size
        border = self.config.border
        if box < 1:
            raise QrCodeError(f"Invalid box size: {box}")
        if border < 0:
            raise QrCodeError(f"Invalid border: {border}")
        framed = np.pad(matrix, border, constant_values=False)
        pixels = np.where(framed, 0, 255).astype(np.uint8)
        pixels = np.repeat(np.repeat(pixels, box, axis=0), box, axis=1)
        return Image.fromarray(pixels)

    def estimate_capacity(self, text: str) -> QrCapacityInfo:
        """Report the QR version ``text`` needs at each error correction level."""
        segment = _make_segment(text)
        capacities = []
        for level in EcLevel:
            version = _choose_version(segment, level)
            capacities.append(
                QrLevelCapacity(error_correction=level, version=version or 0, fits=version is not None)
            )
        return QrCapacityInfo(text_length=len(text.encode("utf-8")), capacities=capacities)

    @staticmethod
    def get_max_capacity(version: int, ec_level: EcLevel) -> int:
        """Approximate alphanumeric capacity for a version and level."""
        known = _MAX_CAPACITY_TABLE.get((version, ec_level))
        if known is not None:
            return known
        return max(min(_BASE_CAPACITY[ec_level] * version, 1000), 0)