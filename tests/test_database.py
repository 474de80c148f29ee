import pytest

from memvid.chunking import ChunkMetadata
from memvid.database import SCHEMA_VERSION, Database, StorageError


def _chunk(chunk_id, text, frame=None, embedding=None, source="doc.txt", page=None):
    return ChunkMetadata(
        id=chunk_id,
        text=text,
        source=source,
        page=page,
        offset=chunk_id * 10,
        length=len(text),
        frame=frame,
        embedding=embedding,
    )


@pytest.fixture
def db():
    database = Database.memory()
    yield database
    database.close()


def test_empty_database(db):
    assert db.get_chunk_count() == 0
    stats = db.get_stats()
    assert stats.chunk_count == 0
    assert stats.frame_count == 0


def test_insert_and_get_round_trip(db):
    chunk = _chunk(7, "hello world", frame=2, embedding=[0.5, -1.25, 2.0], page=3)
    db.insert_chunks([chunk])
    assert db.get_chunk_by_id(7) == chunk


def test_chunk_without_optional_fields(db):
    chunk = _chunk(1, "plain", source=None)
    db.insert_chunks([chunk])
    loaded = db.get_chunk_by_id(1)
    assert loaded == chunk
    assert loaded.embedding is None
    assert loaded.frame is None


def test_missing_chunk_is_none(db):
    db.insert_chunks([_chunk(0, "only")])
    assert db.get_chunk_by_id(99) is None


def test_chunk_count(db):
    chunks = [_chunk(i, f"text {i}") for i in range(5)]
    db.insert_chunks(chunks)
    assert db.get_chunk_count() == len(chunks)


def test_chunks_by_frame_ordered(db):
    chunks = [_chunk(3, "c", frame=1), _chunk(1, "a", frame=1), _chunk(2, "b", frame=0)]
    db.insert_chunks(chunks)
    in_frame = db.get_chunks_by_frame(1)
    assert [c.id for c in in_frame] == [1, 3]
    assert db.get_chunks_by_frame(5) == []


def test_search_chunks_matches_and_limits(db):
    db.insert_chunks(
        [
            _chunk(0, "the quick fox"),
            _chunk(1, "lazy dog"),
            _chunk(2, "another fox here"),
            _chunk(3, "fox again"),
        ]
    )
    found = db.search_chunks("fox", 10)
    assert [c.id for c in found] == [0, 2, 3]
    limited = db.search_chunks("fox", 2)
    assert [c.id for c in limited] == [0, 2]
    assert db.search_chunks("absent", 10) == []


def test_stats_frame_count(db):
    frames = [0, 4, 2]
    db.insert_chunks([_chunk(i, f"t{i}", frame=f) for i, f in enumerate(frames)])
    stats = db.get_stats()
    assert stats.chunk_count == len(frames)
    assert stats.frame_count == max(frames) + 1
    assert stats.file_size_bytes > 0


def test_duplicate_id_rolls_back(db):
    db.insert_chunks([_chunk(0, "first")])
    with pytest.raises(StorageError):
        db.insert_chunks([_chunk(1, "second"), _chunk(0, "duplicate")])
    assert db.get_chunk_count() == 1
    assert db.get_chunk_by_id(1) is None


def test_file_database_persists(tmp_path):
    path = tmp_path / "chunks.db"
    chunk = _chunk(4, "persisted", frame=0, embedding=[1.0, 0.25])
    with Database(path) as database:
        database.insert_chunks([chunk])
    assert path.exists()
    with Database(path) as reopened:
        assert reopened.get_chunk_by_id(4) == chunk
        (version,) = reopened._conn.execute(
            "SELECT value FROM metadata WHERE key = 'schema_version'"
        ).fetchone()
        assert version == str(SCHEMA_VERSION)


def test_unopenable_path_raises(tmp_path):
    with pytest.raises(StorageError):
        Database(tmp_path / "missing_dir" / "x.db")