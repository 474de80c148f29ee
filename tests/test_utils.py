from pathlib import Path

import pytest

from memvid.utils import (
    calculate_optimal_chunk_size,
    calculate_progress,
    ensure_directory,
    format_file_size,
    get_file_extension,
    get_timestamp,
    is_supported_document,
    is_video_file,
    normalize_path,
    sanitize_filename,
)


def test_file_extension():
    assert get_file_extension("test.pdf") == "pdf"
    assert get_file_extension("test.PDF") == "pdf"
    assert get_file_extension("test") is None
    assert get_file_extension("test.tar.gz") == "gz"


def test_hidden_file_has_no_extension():
    assert get_file_extension(".bashrc") is None


def test_supported_document():
    assert is_supported_document("document.pdf")
    assert is_supported_document("README.md")
    assert is_supported_document("notes.txt")
    assert not is_supported_document("image.jpg")
    assert not is_supported_document("video.mp4")


def test_file_size_formatting():
    assert format_file_size(0) == "0 B"
    assert format_file_size(512) == "512 B"
    assert format_file_size(1024) == "1.0 KB"
    assert format_file_size(1536) == "1.5 KB"
    assert format_file_size(1048576) == "1.0 MB"
    assert format_file_size(1073741824) == "1.0 GB"


def test_progress_calculation():
    assert calculate_progress(0, 100) == 0.0
    assert calculate_progress(50, 100) == 50.0
    assert calculate_progress(100, 100) == 100.0
    assert calculate_progress(0, 0) == 0.0


def test_normalize_path(tmp_path):
    target = tmp_path / "file.txt"
    target.write_text("content")
    normalized = normalize_path(target)
    assert normalized.is_absolute()
    assert normalized == target.resolve()


def test_normalize_missing_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        normalize_path(tmp_path / "missing.txt")


def test_ensure_directory_creates_nested(tmp_path):
    target = tmp_path / "a" / "b" / "c"
    ensure_directory(target)
    assert target.is_dir()
    ensure_directory(target)
    assert target.is_dir()


def test_video_file_detection():
    assert is_video_file("video.mp4")
    assert is_video_file("movie.avi")
    assert is_video_file("clip.MOV")
    assert not is_video_file("document.pdf")
    assert not is_video_file("image.jpg")


def test_chunk_size_calculation():
    assert calculate_optimal_chunk_size(10000, 10) == 1000
    assert calculate_optimal_chunk_size(100, 10) == 256
    assert calculate_optimal_chunk_size(50000, 10) == 4096
    assert calculate_optimal_chunk_size(1000, 0) == 1024


def test_filename_sanitization():
    assert sanitize_filename("normal_file.txt") == "normal_file.txt"
    assert sanitize_filename("file/with\\bad:chars*?.txt") == "file_with_bad_chars__.txt"
    assert sanitize_filename("file\nwith\tcontrol\rchars") == "file_with_control_chars"


def test_timestamp():
    timestamp = get_timestamp()
    assert timestamp
    assert int(timestamp) >= 0
    assert timestamp.isdigit()


def test_accepts_path_objects():
    assert get_file_extension(Path("dir") / "x.MD") == "md"