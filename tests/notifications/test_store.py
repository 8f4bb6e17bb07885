"""
Tests for key-value store backends.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from signal_triage.notifications.store import (
    MemoryStore,
    SqliteStore,
    StoreCapacityError,
    StoreError,
    create_store,
)


@pytest.fixture(params=["memory", "sqlite"])
def kv(request, tmp_path: Path):
    if request.param == "memory":
        yield MemoryStore(max_bytes=100)
    else:
        store = SqliteStore(tmp_path / "cache" / "triage.db", max_bytes=100)
        yield store
        store.close()


class TestKeyValueStore:
    """Behavior shared by both backends."""

    def test_missing_key(self, kv):
        assert kv.get("absent") is None

    def test_set_get_delete(self, kv):
        kv.set("triage_queue", "[]")
        assert kv.get("triage_queue") == "[]"

        kv.delete("triage_queue")
        assert kv.get("triage_queue") is None

    def test_overwrite(self, kv):
        kv.set("k", "one")
        kv.set("k", "two")
        assert kv.get("k") == "two"

    def test_delete_missing_is_noop(self, kv):
        kv.delete("absent")

    def test_capacity_counts_all_keys(self, kv):
        kv.set("a", "x" * 60)

        with pytest.raises(StoreCapacityError) as exc_info:
            kv.set("b", "y" * 60)

        assert exc_info.value.key == "b"
        assert exc_info.value.required == 120
        assert exc_info.value.capacity == 100
        assert kv.get("b") is None

    def test_replacing_key_frees_its_space(self, kv):
        kv.set("a", "x" * 90)
        kv.set("a", "y" * 95)
        assert kv.get("a") == "y" * 95


class TestSqliteStore:
    def test_persists_across_connections(self, tmp_path: Path):
        db_path = tmp_path / "triage.db"
        first = SqliteStore(db_path)
        first.set("triage_preferences", '{"learning_enabled": false}')
        first.close()

        second = SqliteStore(db_path)
        assert second.get("triage_preferences") == '{"learning_enabled": false}'
        second.close()

    def test_creates_parent_directory(self, tmp_path: Path):
        store = SqliteStore(tmp_path / "nested" / "cache" / "triage.db")
        store.set("k", "v")

        assert (tmp_path / "nested" / "cache" / "triage.db").exists()
        store.close()

    def test_sqlite_errors_wrapped(self, tmp_path: Path):
        store = SqliteStore(tmp_path / "triage.db")
        store.set("k", "v")
        store._get_connection().execute("DROP TABLE kv")

        with pytest.raises(StoreError):
            store.get("k")
        store.close()

    def test_not_a_database(self, tmp_path: Path):
        db_path = tmp_path / "triage.db"
        db_path.write_bytes(b"this is not sqlite" * 100)
        store = SqliteStore(db_path)

        with pytest.raises(StoreError):
            store.get("k")


class TestCreateStore:
    def test_memory(self):
        assert isinstance(create_store("memory"), MemoryStore)

    def test_sqlite(self, tmp_path: Path):
        store = create_store("sqlite", tmp_path / "triage.db")
        assert isinstance(store, SqliteStore)
        assert store.db_path == tmp_path / "triage.db"
