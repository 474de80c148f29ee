"""Chunk metadata storage in an embedded SQLite database."""

from __future__ import annotations

import logging
import os
import sqlite3
import struct
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from memvid.chunking import ChunkMetadata

log = logging.getLogger(__name__)

SCHEMA_VERSION = 1

CREATE_CHUNKS_TABLE = """
CREATE TABLE IF NOT EXISTS chunks (
    id INTEGER PRIMARY KEY,
    text TEXT NOT NULL,
    source TEXT,
    page INTEGER,
    "offset" INTEGER NOT NULL,
    length INTEGER NOT NULL,
    frame INTEGER,
    embedding BLOB
);
"""

CREATE_METADATA_TABLE = """
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

CREATE_CHUNKS_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_chunks_frame ON chunks(frame);
CREATE INDEX IF NOT EXISTS idx_chunks_source ON chunks(source);
CREATE INDEX IF NOT EXISTS idx_chunks_page ON chunks(page);
"""

_SELECT_COLUMNS = 'SELECT id, text, source, page, "offset", length, frame, embedding FROM chunks'


class StorageError(Exception):
    """Raised when a database operation fails."""


@dataclass
class DatabaseStats:
    """Summary figures for a chunk database."""

    chunk_count: int
    frame_count: int
    file_size_bytes: int


@dataclass
class EncodingStats:
    """Figures collected while encoding chunks into a video."""

    total_chunks: int
    total_frames: int
    processing_time: float
    video_file_size: int


def _pack_embedding(embedding: Optional[Sequence[float]]) -> Optional[bytes]:
    if embedding is None:
        return None
    return struct.pack(f"<{len(embedding)}f", *embedding)


def _unpack_embedding(blob: Optional[bytes]) -> Optional[list[float]]:
    if blob is None:
        return None
    count = len(blob) // 4
    return list(struct.unpack_from(f"<{count}f", blob))


def _row_to_chunk(row: tuple) -> ChunkMetadata:
    chunk_id, text, source, page, offset, length, frame, embedding = row
    return ChunkMetadata(
        id=chunk_id,
        text=text,
        source=source,
        page=page,
        offset=offset,
        length=length,
        frame=frame,
        embedding=_unpack_embedding(embedding),
    )


class Database:
    """A SQLite-backed store of chunk metadata."""

    def __init__(self, path: Union[str, "os.PathLike[str]"]) -> None:
        try:
            self._conn = sqlite3.connect(os.fspath(path))
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to open database: {exc}") from exc
        self._initialize()

    @classmethod
    def memory(cls) -> "Database":
        """Open a fresh in-memory database."""
        return cls(":memory:")

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _initialize(self) -> None:
        try:
            self._conn.execute("PRAGMA journal_mode=WAL").fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to enable WAL mode: {exc}") from exc
        steps = (
            ("create chunks table", CREATE_CHUNKS_TABLE),
            ("create metadata table", CREATE_METADATA_TABLE),
            ("create indexes", CREATE_CHUNKS_INDEXES),
        )
        for what, script in steps:
            try:
                self._conn.executescript(script)
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to {what}: {exc}") from exc
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT OR REPLACE INTO metadata (key, value) VALUES ('schema_version', ?)",
                    (str(SCHEMA_VERSION),),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to set schema version: {exc}") from exc
        log.info("Database initialized with schema version %s", SCHEMA_VERSION)

    def insert_chunks(self, chunks: Sequence[ChunkMetadata]) -> None:
        """Insert all ``chunks`` in one transaction; nothing is kept on failure."""
        try:
            with self._conn:
                for chunk in chunks:
                    try:
                        self._conn.execute(
                            'INSERT INTO chunks (id, text, source, page, "offset", length, '
                            "frame, embedding) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                            (
                                chunk.id,
                                chunk.text,
                                chunk.source,
                                chunk.page,
                                chunk.offset,
                                chunk.length,
                                chunk.frame,
                                _pack_embedding(chunk.embedding),
                            ),
                        )
                    except sqlite3.Error as exc:
                        raise StorageError(f"Failed to insert chunk {chunk.id}: {exc}") from exc
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to commit transaction: {exc}") from exc
        log.info("Inserted %d chunks into database", len(chunks))

    def get_chunk_by_id(self, chunk_id: int) -> Optional[ChunkMetadata]:
        """Return the chunk with ``chunk_id``, or ``None`` if there is none."""
        try:
            row = self._conn.execute(f"{_SELECT_COLUMNS} WHERE id = ?", (chunk_id,)).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to query chunk: {exc}") from exc
        return None if row is None else _row_to_chunk(row)

    def get_chunks_by_frame(self, frame_number: int) -> list[ChunkMetadata]:
        """Return the chunks stored in ``frame_number``, ordered by id."""
        try:
            rows = self._conn.execute(
                f"{_SELECT_COLUMNS} WHERE frame = ? ORDER BY id", (frame_number,)
            ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to query chunks by frame: {exc}") from exc
        return [_row_to_chunk(row) for row in rows]

    def get_chunk_count(self) -> int:
        """Return the number of stored chunks."""
        try:
            (count,) = self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to count chunks: {exc}") from exc
        return count

    def search_chunks(self, query: str, limit: int) -> list[ChunkMetadata]:
        """Return up to ``limit`` chunks whose text contains ``query``."""
        try:
            rows = self._conn.execute(
                f"{_SELECT_COLUMNS} WHERE text LIKE ? ORDER BY id LIMIT ?",
                (f"%{query}%", limit),
            ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to search chunks: {exc}") from exc
        return [_row_to_chunk(row) for row in rows]

    def get_stats(self) -> DatabaseStats:
        """Return chunk, frame and size figures for the database."""
        chunk_count = self.get_chunk_count()
        try:
            (file_size,) = self._conn.execute(
                "SELECT page_count * page_size FROM pragma_page_count(), pragma_page_size()"
            ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to get database size: {exc}") from exc
        try:
            (max_frame,) = self._conn.execute(
                "SELECT MAX(frame) FROM chunks WHERE frame IS NOT NULL"
            ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to get max frame: {exc}") from exc
        return DatabaseStats(
            chunk_count=chunk_count,
            frame_count=0 if max_frame is None else max_frame + 1,
            file_size_bytes=file_size,
        )

    def close(self) -> None:
        """Close the underlying connection."""
        self._conn.close()