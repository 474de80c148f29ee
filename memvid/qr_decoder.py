"""QR code reading, with transparent decompression of gzip payloads."""

from __future__ import annotations

import base64
import binascii
import gzip
import io
import logging
import zlib
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence, Union

import numpy as np
from PIL import Image

from memvid.qr_encoder import (
    _ALPHANUMERIC,
    _ECC_CODEWORDS_PER_BLOCK,
    _GF_EXP,
    _GF_LOG,
    _MASKS,
    _NUM_ERROR_CORRECTION_BLOCKS,
    COMPRESSION_PREFIX,
    MAX_VERSION,
    MIN_VERSION,
    EcLevel,
    QrCodeError,
    _alignment_positions,
    _bits_to_bytes,
    _format_bits,
    _format_cells,
    _gf_mul,
    _Mode,
    _num_raw_data_modules,
)

log = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 100_000
SCALE_FACTORS = (0.5, 1.5, 2.0, 0.75, 1.25)

_MIN_CONTRAST = 32
_MAX_FINDER_MISMATCHES = 6
_MAX_FORMAT_DISTANCE = 3
_VERSION_SEARCH_RADIUS = 2

_FINDER_DISTANCE = np.maximum(
    np.abs(np.arange(7) - 3)[:, None], np.abs(np.arange(7) - 3)[None, :]
)
_FINDER = _FINDER_DISTANCE != 2
_MODES_BY_INDICATOR = {mode.indicator: mode for mode in _Mode}


@dataclass
class DecodeResult:
    """Text read from a QR code."""

    text: str
    was_compressed: bool
    encoded_size: int


# --- Reed-Solomon error correction -------------------------------------------------------


def _gf_div(a: int, b: int) -> int:
    if b == 0:
        raise QrCodeError("QR decode error: division by zero in error correction")
    if a == 0:
        return 0
    return _GF_EXP[(_GF_LOG[a] - _GF_LOG[b]) % 255]


def _eval_high_first(poly: Sequence[int], x: int) -> int:
    result = 0
    for coefficient in poly:
        result = _gf_mul(result, x) ^ coefficient
    return result


def _eval_low_first(poly: Sequence[int], x: int) -> int:
    return _eval_high_first(poly[::-1], x)


def _syndromes(block: Sequence[int], ecc_len: int) -> list[int]:
    return [_eval_high_first(block, _GF_EXP[j]) for j in range(ecc_len)]


def _berlekamp_massey(syndromes: Sequence[int]) -> list[int]:
    current = [1]
    previous = [1]
    errors = 0
    shift = 1
    last_discrepancy = 1
    for n, syndrome in enumerate(syndromes):
        discrepancy = syndrome
        for i in range(1, errors + 1):
            if i < len(current):
                discrepancy ^= _gf_mul(current[i], syndromes[n - i])
        if discrepancy == 0:
            shift += 1
            continue
        coefficient = _gf_div(discrepancy, last_discrepancy)
        updated = current + [0] * max(0, len(previous) + shift - len(current))
        for i, value in enumerate(previous):
            updated[i + shift] ^= _gf_mul(coefficient, value)
        if 2 * errors <= n:
            previous = current
            errors = n + 1 - errors
            last_discrepancy = discrepancy
            shift = 1
        else:
            shift += 1
        current = updated
    return current[: errors + 1]


def _rs_correct(block: list[int], ecc_len: int) -> list[int]:
    syndromes = _syndromes(block, ecc_len)
    if not any(syndromes):
        return block
    failure = QrCodeError("QR decode error: too many errors to correct")
    locator = _berlekamp_massey(syndromes)
    num_errors = len(locator) - 1
    if num_errors * 2 > ecc_len:
        raise failure
    n = len(block)
    positions = [
        i for i in range(n) if _eval_low_first(locator, _GF_EXP[(255 - (n - 1 - i)) % 255]) == 0
    ]
    if len(positions) != num_errors:
        raise failure

    evaluator = [0] * ecc_len
    for i, syndrome in enumerate(syndromes):
        for j, coefficient in enumerate(locator):
            if i + j < ecc_len:
                evaluator[i + j] ^= _gf_mul(syndrome, coefficient)
    derivative = [coefficient if power % 2 else 0 for power, coefficient in enumerate(locator)][1:]

    corrected = list(block)
    for i in positions:
        power = n - 1 - i
        x = _GF_EXP[power % 255]
        x_inv = _GF_EXP[(255 - power) % 255]
        denominator = _eval_low_first(derivative, x_inv)
        if denominator == 0:
            raise failure
        corrected[i] ^= _gf_mul(x, _gf_div(_eval_low_first(evaluator, x_inv), denominator))

    if any(_syndromes(corrected, ecc_len)):
        raise failure
    return corrected


# --- Symbol structure --------------------------------------------------------------------


def _function_mask(version: int) -> np.ndarray:
    size = version * 4 + 17
    function = np.zeros((size, size), dtype=bool)
    function[6, :] = True
    function[:, 6] = True
    function[:9, :9] = True
    function[:9, size - 8:] = True
    function[size - 8:, :9] = True
    positions = _alignment_positions(version)
    last = len(positions) - 1
    corners = {(0, 0), (0, last), (last, 0)}
    for i, ay in enumerate(positions):
        for j, ax in enumerate(positions):
            if (i, j) not in corners:
                function[ay - 2:ay + 3, ax - 2:ax + 3] = True
    if version >= 7:
        function[0:6, size - 11:size - 8] = True
        function[size - 11:size - 8, 0:6] = True
    return function


def _zigzag(size: int) -> Iterator[tuple[int, int]]:
    right = size - 1
    while right >= 1:
        if right == 6:
            right = 5
        upward = ((right + 1) & 2) == 0
        rows = range(size - 1, -1, -1) if upward else range(size)
        for y in rows:
            yield y, right
            yield y, right - 1
        right -= 2


def _read_codewords(modules: np.ndarray, function: np.ndarray, count: int) -> list[int]:
    bits = [int(modules[y, x]) for y, x in _zigzag(modules.shape[0]) if not function[y, x]]
    if len(bits) < count * 8:
        raise QrCodeError("QR decode error: symbol holds too few modules")
    return _bits_to_bytes(bits[: count * 8])


def _read_format(grid: np.ndarray) -> tuple[EcLevel, int]:
    cells = _format_cells(grid.shape[0])
    words = [
        sum(int(grid[y, x]) << index for x, y, index in copy) for copy in (cells[:15], cells[15:])
    ]
    distance, level, mask = min(
        (
            (bin(word ^ _format_bits(level, mask)).count("1"), level, mask)
            for word in words
            for level in EcLevel
            for mask in range(len(_MASKS))
        ),
        key=lambda candidate: candidate[0],
    )
    if distance > _MAX_FORMAT_DISTANCE:
        raise QrCodeError("QR decode error: format information unreadable")
    return level, mask


def _correct_blocks(codewords: list[int], version: int, level: EcLevel) -> list[int]:
    num_blocks = _NUM_ERROR_CORRECTION_BLOCKS[level.value][version]
    ecc_len = _ECC_CODEWORDS_PER_BLOCK[level.value][version]
    raw_codewords = _num_raw_data_modules(version) // 8
    num_short = num_blocks - raw_codewords % num_blocks
    short_len = raw_codewords // num_blocks - ecc_len
    lengths = [short_len + (1 if index >= num_short else 0) for index in range(num_blocks)]

    stream = iter(codewords)
    data_blocks: list[list[int]] = [[] for _ in lengths]
    for position in range(short_len + 1):
        for block, length in zip(data_blocks, lengths):
            if position < length:
                block.append(next(stream))
    ecc_blocks: list[list[int]] = [[] for _ in lengths]
    for _ in range(ecc_len):
        for block in ecc_blocks:
            block.append(next(stream))

    data: list[int] = []
    for block, ecc, length in zip(data_blocks, ecc_blocks, lengths):
        data.extend(_rs_correct(block + ecc, ecc_len)[:length])
    return data


class _BitReader:
    def __init__(self, data: Sequence[int]) -> None:
        self._bits = [(byte >> (7 - shift)) & 1 for byte in data for shift in range(8)]
        self._position = 0

    @property
    def remaining(self) -> int:
        return len(self._bits) - self._position

    def read(self, count: int) -> int:
        if count > self.remaining:
            raise QrCodeError("QR decode error: data stream truncated")
        value = 0
        for bit in self._bits[self._position:self._position + count]:
            value = value << 1 | bit
        self._position += count
        return value


def _read_numeric(reader: _BitReader, count: int) -> str:
    digits = []
    while count > 0:
        group = min(count, 3)
        value = reader.read(group * 3 + 1)
        if value >= 10**group:
            raise QrCodeError("QR decode error: invalid numeric data")
        digits.append(str(value).zfill(group))
        count -= group
    return "".join(digits)


def _read_alphanumeric(reader: _BitReader, count: int) -> str:
    chars = []
    while count >= 2:
        value = reader.read(11)
        if value >= 45 * 45:
            raise QrCodeError("QR decode error: invalid alphanumeric data")
        chars.append(_ALPHANUMERIC[value // 45] + _ALPHANUMERIC[value % 45])
        count -= 2
    if count:
        value = reader.read(6)
        if value >= 45:
            raise QrCodeError("QR decode error: invalid alphanumeric data")
        chars.append(_ALPHANUMERIC[value])
    return "".join(chars)


def _parse_payload(data: Sequence[int], version: int) -> str:
    reader = _BitReader(data)
    payload = bytearray()
    while reader.remaining >= 4:
        indicator = reader.read(4)
        if indicator == 0:
            break
        if indicator == 0x7:
            first = reader.read(8)
            if first & 0x80:
                reader.read(8 if not first & 0x40 else 16)
            continue
        mode = _MODES_BY_INDICATOR.get(indicator)
        if mode is None:
            raise QrCodeError(f"QR decode error: unsupported data mode {indicator}")
        count = reader.read(mode.count_bits(version))
        if mode is _Mode.NUMERIC:
            payload.extend(_read_numeric(reader, count).encode("ascii"))
        elif mode is _Mode.ALPHANUMERIC:
            payload.extend(_read_alphanumeric(reader, count).encode("ascii"))
        else:
            payload.extend(reader.read(8) for _ in range(count))
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise QrCodeError(f"QR decode error: payload is not UTF-8: {exc}") from exc


# --- Image analysis ----------------------------------------------------------------------


def _binarize(image: Image.Image) -> np.ndarray:
    gray = np.asarray(image.convert("L"), dtype=np.int16)
    if gray.size == 0:
        raise QrCodeError("No QR code found in image")
    low, high = int(gray.min()), int(gray.max())
    if high - low < _MIN_CONTRAST:
        raise QrCodeError("No QR code found in image")
    return gray < (low + high) / 2


def _run_length(line: np.ndarray) -> int:
    if not line.any():
        return 0
    rest = line[int(np.argmax(line)):]
    return len(rest) if rest.all() else int(np.argmax(~rest))


def _candidate_versions(estimate: float) -> list[int]:
    centre = round((estimate - 17) / 4)
    candidates = range(centre - _VERSION_SEARCH_RADIUS, centre + _VERSION_SEARCH_RADIUS + 1)
    valid = [v for v in candidates if MIN_VERSION <= v <= MAX_VERSION]
    return sorted(valid, key=lambda v: abs(v - centre))


def _sample(dark: np.ndarray, box: tuple[int, int, int, int], size: int) -> np.ndarray:
    top, left, bottom, right = box
    height, width = bottom - top + 1, right - left + 1
    centres = np.arange(size) + 0.5
    ys = np.minimum(top + (centres * height / size).astype(int), bottom)
    xs = np.minimum(left + (centres * width / size).astype(int), right)
    return dark[np.ix_(ys, xs)]


def _finders_match(grid: np.ndarray) -> bool:
    mismatches = sum(
        int(np.count_nonzero(corner != _FINDER))
        for corner in (grid[:7, :7], grid[:7, -7:], grid[-7:, :7])
    )
    return mismatches <= _MAX_FINDER_MISMATCHES


def _decode_grid(grid: np.ndarray, version: int) -> str:
    level, mask_index = _read_format(grid)
    function = _function_mask(version)
    ys, xs = np.indices(grid.shape)
    modules = grid ^ (_MASKS[mask_index](xs, ys) & ~function)
    codewords = _read_codewords(modules, function, _num_raw_data_modules(version) // 8)
    return _parse_payload(_correct_blocks(codewords, version, level), version)


def _read_symbol(image: Image.Image) -> str:
    dark = _binarize(image)
    rows = np.flatnonzero(dark.any(axis=1))
    cols = np.flatnonzero(dark.any(axis=0))
    box = (int(rows[0]), int(cols[0]), int(rows[-1]), int(cols[-1]))
    top, left, bottom, right = box
    run_across = _run_length(dark[top, left:right + 1])
    run_down = _run_length(dark[top:bottom + 1, left])
    if run_across == 0 or run_down == 0:
        raise QrCodeError("No QR code found in image")
    module = (run_across + run_down) / 14
    estimate = ((right - left + 1) + (bottom - top + 1)) / 2 / module

    last_error: Optional[QrCodeError] = None
    for version in _candidate_versions(estimate):
        grid = _sample(dark, box, version * 4 + 17)
        if not _finders_match(grid):
            continue
        try:
            return _decode_grid(grid, version)
        except QrCodeError as exc:
            last_error = exc
    if last_error is not None:
        raise last_error
    raise QrCodeError("No QR code found in image")


def _stretch_contrast(
    image: Image.Image, input_min: int, input_max: int, output_min: int, output_max: int
) -> Image.Image:
    gray = np.asarray(image.convert("L"), dtype=np.float64)
    span = max(input_max - input_min, 1)
    clipped = np.clip(gray, input_min, input_max)
    scaled = (clipped - input_min) * (output_max - output_min) / span + output_min
    return Image.fromarray(np.rint(scaled).astype(np.uint8))


# --- Decoder -------------------------------------------------------------------------------


class QrDecoder:
    """Reads QR codes from images and undoes payload compression."""

    def decode_image(self, image: Image.Image) -> DecodeResult:
        """Decode the QR code shown in ``image``."""
        content = _read_symbol(image)
        text, was_compressed = self._process_decoded_data(content)
        return DecodeResult(
            text=text,
            was_compressed=was_compressed,
            encoded_size=len(content.encode("utf-8")),
        )

    def decode_bytes(self, image_bytes: bytes) -> DecodeResult:
        """Decode a QR code from encoded image bytes such as a PNG file."""
        try:
            with Image.open(io.BytesIO(image_bytes)) as image:
                image.load()
                loaded = image.copy()
        except (OSError, ValueError) as exc:
            raise QrCodeError(f"Failed to load image: {exc}") from exc
        return self.decode_image(loaded)

    def decode_batch(
        self, images: Sequence[Image.Image]
    ) -> list[Union[DecodeResult, QrCodeError]]:
        """Decode each image; failures appear in the list as the raised error."""
        results: list[Union[DecodeResult, QrCodeError]] = []
        for image in images:
            try:
                results.append(self.decode_image(image))
            except QrCodeError as exc:
                results.append(exc)
        return results

    @staticmethod
    def _process_decoded_data(content: str) -> tuple[str, bool]:
        if content.startswith(COMPRESSION_PREFIX):
            return QrDecoder._decompress(content[len(COMPRESSION_PREFIX):]), True
        return content, False

    @staticmethod
    def _decompress(encoded: str) -> str:
        try:
            packed = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise QrCodeError(f"Base64 decode failed: {exc}") from exc
        try:
            return gzip.decompress(packed).decode("utf-8")
        except (OSError, EOFError, zlib.error, UnicodeDecodeError) as exc:
            raise QrCodeError(f"Decompression failed: {exc}") from exc

    def decode_with_preprocessing(self, image: Image.Image) -> DecodeResult:
        """Try direct decoding, then contrast enhancement, then rescaling."""
        strategies = (self.decode_image, self._decode_with_contrast, self._decode_with_scaling)
        for strategy in strategies:
            try:
                return strategy(image)
            except QrCodeError as exc:
                log.debug("Decoding strategy %s failed: %s", strategy.__name__, exc)
        raise QrCodeError("Failed to decode QR code with all strategies")

    def _decode_with_contrast(self, image: Image.Image) -> DecodeResult:
        return self.decode_image(_stretch_contrast(image, 0, 255, 0, 255))

    def _decode_with_scaling(self, image: Image.Image) -> DecodeResult:
        width, height = image.size
        for scale in SCALE_FACTORS:
            new_size = (int(width * scale), int(height * scale))
            if new_size[0] <= 0 or new_size[1] <= 0:
                continue
            try:
                return self.decode_image(image.resize(new_size, Image.LANCZOS))
            except QrCodeError:
                continue
        raise QrCodeError("Failed to decode with scaling")

    def validate_decoded_text(self, text: str) -> bool:
        """Tell whether decoded text looks sane: non-empty, bounded, printable-ish."""
        return (
            bool(text)
            and len(text.encode("utf-8")) < MAX_TEXT_LENGTH
            and all(c.isascii() or c.isalpha() or c.isnumeric() or c.isspace() for c in text)
        )