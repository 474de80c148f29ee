import sqlite3

import pytest

from memvid.database import StorageError
from memvid.migrations import MigrationError, MigrationManager


def test_migration_manager_creation():
    manager = MigrationManager("test.db")
    assert manager.db_path == "test.db"


def test_default_path():
    assert MigrationManager().db_path == "memvid.db"


def test_initial_schema_creation(tmp_path):
    db_path = tmp_path / "test.db"
    manager = MigrationManager(db_path)
    manager.run_migrations()
    assert db_path.exists()
    assert manager.get_current_version() == "initial_schema"
    assert manager.is_up_to_date() is False


def test_initial_schema_tables(tmp_path):
    db_path = tmp_path / "test.db"
    MigrationManager(db_path).run_migrations()
    with sqlite3.connect(db_path) as conn:
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    assert {"migrations", "chunks", "embeddings", "index_config"} <= tables


def test_second_run_applies_pending(tmp_path):
    db_path = tmp_path / "test.db"
    manager = MigrationManager(db_path)
    manager.run_migrations()
    manager.run_migrations()
    assert manager.get_current_version() == "add_search_indices"
    assert manager.is_up_to_date() is True
    with sqlite3.connect(db_path) as conn:
        columns = {row[1] for row in conn.execute("PRAGMA table_info(chunks)")}
        indexes = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='index'")}
        versions = [row[0] for row in conn.execute("SELECT version FROM migrations ORDER BY id")]
    assert "metadata" in columns
    assert {"idx_chunks_frame", "idx_chunks_created_at", "idx_chunks_importance"} <= indexes
    assert versions == ["initial_schema", "add_metadata_columns", "add_search_indices"]


def test_runs_are_idempotent_once_current(tmp_path):
    db_path = tmp_path / "test.db"
    manager = MigrationManager(db_path)
    for _ in range(3):
        manager.run_migrations()
    with sqlite3.connect(db_path) as conn:
        (count,) = conn.execute("SELECT COUNT(*) FROM migrations").fetchone()
    assert count == 3


def test_missing_database_has_no_version(tmp_path):
    manager = MigrationManager(tmp_path / "absent.db")
    assert manager.get_current_version() is None
    assert manager.is_up_to_date() is False


def test_existing_file_without_migrations_table(tmp_path):
    db_path = tmp_path / "plain.db"
    db_path.write_bytes(b"")
    manager = MigrationManager(db_path)
    with pytest.raises(MigrationError):
        manager.run_migrations()
    with pytest.raises(StorageError):
        manager.get_current_version()