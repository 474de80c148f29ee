"""Small helpers shared across the package: paths, sizes and file names."""

from __future__ import annotations

import os
import time
import unicodedata
from pathlib import Path
from typing import Optional, Union

PathLike = Union[str, "os.PathLike[str]"]

_DOCUMENT_EXTENSIONS = frozenset({"pdf", "txt", "md", "markdown"})
_VIDEO_EXTENSIONS = frozenset({"mp4", "avi", "mov", "mkv", "webm"})
_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")
_SIZE_THRESHOLD = 1024.0
_UNSAFE_FILENAME_CHARS = frozenset('/\\:*?"<>|')

DEFAULT_CHUNK_SIZE = 1024
MIN_CHUNK_SIZE = 256
MAX_CHUNK_SIZE = 4096


def get_file_extension(path: PathLike) -> Optional[str]:
    """Return the lower-cased extension of ``path``, or ``None`` if it has none."""
    name = Path(path).name
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem:
        return None
    return ext.lower()


def is_supported_document(path: PathLike) -> bool:
    """Tell whether ``path`` names a document format that can be ingested."""
    return get_file_extension(path) in _DOCUMENT_EXTENSIONS


def format_file_size(num_bytes: int) -> str:
    """Format a byte count in human readable units."""
    if num_bytes == 0:
        return "0 B"
    size = float(num_bytes)
    unit_index = 0
    while size >= _SIZE_THRESHOLD and unit_index < len(_SIZE_UNITS) - 1:
        size /= _SIZE_THRESHOLD
        unit_index += 1
    if unit_index == 0:
        return f"{num_bytes} {_SIZE_UNITS[0]}"
    return f"{size:.1f} {_SIZE_UNITS[unit_index]}"


def calculate_progress(current: int, total: int) -> float:
    """Return progress as a percentage; zero when ``total`` is zero."""
    if total == 0:
        return 0.0
    return current / total * 100.0


def normalize_path(path: PathLike) -> Path:
    """Return the absolute, resolved form of an existing path.

    Raises :class:`FileNotFoundError` if the path does not exist.
    """
    candidate = Path(path)
    if not candidate.exists():
        raise FileNotFoundError(f"File not found: {candidate}")
    return candidate.resolve(strict=True)


def ensure_directory(path: PathLike) -> None:
    """Create ``path`` and any missing parents."""
    Path(path).mkdir(parents=True, exist_ok=True)


def get_timestamp() -> str:
    """Return the current Unix time in whole seconds, as a string."""
    return str(max(int(time.time()), 0))


def is_video_file(path: PathLike) -> bool:
    """Tell whether ``path`` has a known video file extension."""
    return get_file_extension(path) in _VIDEO_EXTENSIONS


def calculate_optimal_chunk_size(content_length: int, target_chunks: int) -> int:
    """Pick a chunk size that yields about ``target_chunks`` chunks, within bounds."""
    if target_chunks == 0:
        return DEFAULT_CHUNK_SIZE
    calculated = content_length // target_chunks
    return min(max(calculated, MIN_CHUNK_SIZE), MAX_CHUNK_SIZE)


def _safe_char(char: str) -> str:
    if char in _UNSAFE_FILENAME_CHARS or unicodedata.category(char) == "Cc":
        return "_"
    return char


def sanitize_filename(name: str) -> str:
    """Replace characters that are unsafe in file names with underscores."""
    return "".join(_safe_char(char) for char in name).strip()