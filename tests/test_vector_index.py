"""Tests for vector index backends and their selection."""

import sqlite3

import pytest

from memindex.core.errors import IndexUnavailableError
from memindex.core.schema import EmbeddingRecord, VectorConfig
from memindex.core.vector_index import LocalVectorIndex, NullVectorIndex, SqliteVecIndex, create_vector_index


def _record(chunk_id, vector, content_hash=None, provider="local", model="hash-v1"):
    return EmbeddingRecord(
        chunk_id=chunk_id,
        content_hash=content_hash or f"hash-{chunk_id}",
        vector=vector,
        provider=provider,
        model=model,
    )


def test_local_query_orders_by_cosine_similarity():
    index = LocalVectorIndex(dims=3)
    index.upsert(_record("near", [1.0, 0.1, 0.0]))
    index.upsert(_record("far", [0.0, 1.0, 0.0]))
    index.upsert(_record("opposite", [-1.0, 0.0, 0.0]))

    hits = index.query([1.0, 0.0, 0.0], k=3)

    assert [chunk_id for chunk_id, _ in hits] == ["near", "far", "opposite"]
    assert hits[0][1] == pytest.approx(0.995, abs=1e-3)
    assert hits[2][1] == 0.0
    assert all(0.0 <= score <= 1.0 for _, score in hits)
    assert index.query([1.0, 0.0, 0.0], k=1) == hits[:1]


def test_upsert_supersedes_previous_record():
    index = LocalVectorIndex(dims=2)
    index.upsert(_record("a", [1.0, 0.0], content_hash="v1"))
    index.upsert(_record("a", [0.0, 1.0], content_hash="v2"))

    assert index.count() == 1
    assert index.get("a").content_hash == "v2"
    assert index.find_by_hash("v1", "local", "hash-v1") is None
    assert index.find_by_hash("v2", "local", "hash-v1").chunk_id == "a"
    assert index.find_by_hash("v2", "openai", "hash-v1") is None
    assert index.query([0.0, 1.0], k=5)[0][0] == "a"


def test_remove_and_clear():
    index = LocalVectorIndex(dims=2)
    index.upsert(_record("a", [1.0, 0.0]))
    index.upsert(_record("b", [0.0, 1.0]))

    index.remove("a")
    index.remove("missing")
    assert index.count() == 1
    assert [chunk_id for chunk_id, _ in index.query([1.0, 0.0], k=5)] == ["b"]

    index.clear()
    assert index.count() == 0
    assert index.query([1.0, 0.0], k=5) == []


def test_dimension_mismatch():
    index = LocalVectorIndex(dims=3)

    with pytest.raises(ValueError):
        index.upsert(_record("a", [1.0, 0.0]))

    index.upsert(_record("a", [1.0, 0.0, 0.0]))
    with pytest.raises(IndexUnavailableError):
        index.query([1.0, 0.0], k=1)


def test_disabled_vector_search_selects_null_index():
    index = create_vector_index(VectorConfig(enabled=False), dims=8)

    assert isinstance(index, NullVectorIndex)
    assert index.enabled is False
    assert index.available is False
    index.upsert(_record("a", [0.0] * 8))
    assert index.count() == 0
    assert index.query([0.0] * 8, k=3) == []


def test_unloadable_sqlite_vec_extension_degrades_to_null_index(tmp_path):
    missing = str(tmp_path / "vec0.so")

    index = create_vector_index(VectorConfig(backend="sqlite_vec", extension_path=missing), dims=8)

    assert isinstance(index, NullVectorIndex)
    assert index.enabled is True
    assert index.available is False
    assert index.load_error
    assert index.extension_path == missing
    assert index.dims == 8


def test_unknown_backend_degrades_to_null_index():
    index = create_vector_index(VectorConfig(backend="faiss"), dims=4)

    assert index.available is False
    assert "faiss" in index.load_error


def test_local_backend_is_selected_by_default():
    index = create_vector_index(VectorConfig(), dims=4)

    assert isinstance(index, LocalVectorIndex)
    assert index.available is True
    assert index.backend == "local"


@pytest.fixture
def sqlite_vec_index(tmp_path):
    pytest.importorskip("sqlite_vec")
    if not hasattr(sqlite3.Connection, "enable_load_extension"):
        pytest.skip("sqlite3 was built without loadable extension support")

    index = create_vector_index(VectorConfig(backend="sqlite_vec", db_path=str(tmp_path / "vec.sqlite")), dims=3)
    yield index
    index.close()


def test_sqlite_vec_round_trip(sqlite_vec_index):
    index = sqlite_vec_index
    assert isinstance(index, SqliteVecIndex)
    assert index.available is True

    index.upsert(_record("near", [1.0, 0.1, 0.0]))
    index.upsert(_record("far", [0.0, 1.0, 0.0]))
    index.upsert(_record("opposite", [-1.0, 0.0, 0.0]))

    hits = index.query([1.0, 0.0, 0.0], k=3)
    assert [chunk_id for chunk_id, _ in hits] == ["near", "far", "opposite"]
    assert hits[0][1] == pytest.approx(0.995, abs=1e-3)
    assert hits[1][1] == pytest.approx(0.0, abs=1e-5)
    assert hits[2][1] == 0.0

    index.upsert(_record("far", [1.0, 0.0, 0.0], content_hash="v2"))
    assert index.count() == 3
    assert index.query([1.0, 0.0, 0.0], k=1) == [("far", pytest.approx(1.0, abs=1e-5))]

    index.remove("near")
    assert index.count() == 2
    assert [chunk_id for chunk_id, _ in index.query([1.0, 0.0, 0.0], k=5)] == ["far", "opposite"]


def test_sqlite_vec_table_starts_empty_on_reopen(sqlite_vec_index, tmp_path):
    sqlite_vec_index.upsert(_record("a", [1.0, 0.0, 0.0]))
    sqlite_vec_index.close()

    reopened = SqliteVecIndex(dims=3, db_path=str(tmp_path / "vec.sqlite"))
    try:
        assert reopened.count() == 0
        assert reopened.conn.execute(f"SELECT COUNT(*) FROM {SqliteVecIndex.TABLE}").fetchone()[0] == 0
    finally:
        reopened.close()
