"""Schema migrations for memvid databases."""

from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Optional, Union

from memvid.database import StorageError

log = logging.getLogger(__name__)

LATEST_VERSION = "add_search_indices"

MIGRATIONS: tuple[tuple[str, str], ...] = (
    ("initial_schema", "Initial database schema"),
    ("add_metadata_columns", "Add metadata support to chunks"),
    ("add_search_indices", "Add search performance indices"),
)

_INITIAL_SCHEMA = (
    (
        "migrations table",
        """CREATE TABLE IF NOT EXISTS migrations (
            id INTEGER PRIMARY KEY,
            version TEXT NOT NULL UNIQUE,
            applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )""",
    ),
    (
        "chunks table",
        """CREATE TABLE IF NOT EXISTS chunks (
            id INTEGER PRIMARY KEY,
            text TEXT NOT NULL,
            frame_number INTEGER NOT NULL,
            length INTEGER NOT NULL,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            importance_score REAL DEFAULT 0.5,
            tags TEXT DEFAULT '[]'
        )""",
    ),
    (
        "embeddings table",
        """CREATE TABLE IF NOT EXISTS embeddings (
            chunk_id INTEGER PRIMARY KEY,
            embedding BLOB NOT NULL,
            dimension INTEGER NOT NULL,
            FOREIGN KEY (chunk_id) REFERENCES chunks (id)
        )""",
    ),
    (
        "index_config table",
        """CREATE TABLE IF NOT EXISTS index_config (
            id INTEGER PRIMARY KEY,
            key TEXT NOT NULL UNIQUE,
            value TEXT NOT NULL,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )""",
    ),
)

_SEARCH_INDICES = (
    "CREATE INDEX IF NOT EXISTS idx_chunks_frame ON chunks(frame_number)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_created_at ON chunks(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_importance ON chunks(importance_score)",
)


class MigrationError(StorageError):
    """Raised when a migration cannot be applied or read."""


class MigrationManager:
    """Brings a database file up to the latest schema version."""

    def __init__(self, db_path: Union[str, "os.PathLike[str]"] = "memvid.db") -> None:
        self.db_path = os.fspath(db_path)

    def _connect(self) -> sqlite3.Connection:
        try:
            return sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise MigrationError(f"Failed to open database: {exc}") from exc

    def run_migrations(self) -> None:
        """Create the schema for a new file, or apply missing migrations."""
        if Path(self.db_path).exists():
            self._apply_pending_migrations()
        else:
            self._create_initial_schema()

    def _create_initial_schema(self) -> None:
        log.info("Creating initial database schema at: %s", self.db_path)
        with closing(self._connect()) as conn:
            for what, sql in _INITIAL_SCHEMA:
                try:
                    conn.execute(sql)
                except sqlite3.Error as exc:
                    raise MigrationError(f"Failed to create {what}: {exc}") from exc
            try:
                with conn:
                    conn.execute("INSERT INTO migrations (version) VALUES (?)", ("initial_schema",))
            except sqlite3.Error as exc:
                raise MigrationError(f"Failed to record initial migration: {exc}") from exc
        log.info("Initial database schema created successfully")

    def _apply_pending_migrations(self) -> None:
        with closing(self._connect()) as conn:
            try:
                applied = {
                    version
                    for (version,) in conn.execute(
                        "SELECT version FROM migrations ORDER BY applied_at DESC"
                    )
                }
            except sqlite3.Error as exc:
                raise MigrationError(f"Failed to read migrations: {exc}") from exc

            for version, description in MIGRATIONS:
                if version in applied:
                    continue
                log.info("Applying migration: %s - %s", version, description)
                self._apply_migration(conn, version)
                try:
                    with conn:
                        conn.execute("INSERT INTO migrations (version) VALUES (?)", (version,))
                except sqlite3.Error as exc:
                    raise MigrationError(f"Failed to record migration {version}: {exc}") from exc

    @staticmethod
    def _apply_migration(conn: sqlite3.Connection, version: str) -> None:
        if version == "initial_schema":
            return
        if version == "add_metadata_columns":
            try:
                conn.execute("ALTER TABLE chunks ADD COLUMN metadata TEXT DEFAULT '{}'")
            except sqlite3.Error:
                pass  # the column may already exist
            return
        if version == "add_search_indices":
            try:
                for sql in _SEARCH_INDICES:
                    conn.execute(sql)
            except sqlite3.Error as exc:
                raise MigrationError(f"Failed to apply migration {version}: {exc}") from exc
            return
        raise MigrationError(f"Unknown migration version: {version}")

    def get_current_version(self) -> Optional[str]:
        """Return the most recently applied migration, or ``None`` if there is none."""
        if not Path(self.db_path).exists():
            return None
        with closing(self._connect()) as conn:
            try:
                row = conn.execute(
                    "SELECT version FROM migrations ORDER BY applied_at DESC, id DESC LIMIT 1"
                ).fetchone()
            except sqlite3.Error as exc:
                raise MigrationError(f"Failed to query current version: {exc}") from exc
        return None if row is None else row[0]

    def is_up_to_date(self) -> bool:
        """Tell whether the latest migration has been applied."""
        return self.get_current_version() == LATEST_VERSION