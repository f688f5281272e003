"""Tests for the persistent stores (MemoryStore, SqliteStore)."""

import sqlite3

import pytest

from private_bookmarks.vault import MemoryStore, SqliteStore, StorageError


class TestMemoryStore:

    @pytest.mark.asyncio
    async def test_missing_keys_omitted(self):
        store = MemoryStore()
        await store.set({"a": 1})
        assert await store.get(["a", "b"]) == {"a": 1}

    @pytest.mark.asyncio
    async def test_values_are_copied(self):
        store = MemoryStore()
        value = [{"title": "t", "url": "u"}]
        await store.set({"bookmarks": value})
        value.append({"title": "x", "url": "y"})
        got = await store.get(["bookmarks"])
        got["bookmarks"].clear()
        assert store.snapshot()["bookmarks"] == [{"title": "t", "url": "u"}]

    def test_rejects_unknown_scope(self):
        with pytest.raises(ValueError):
            MemoryStore(scope="cloud")

    def test_initial_values(self):
        store = MemoryStore(initial={"hash": None})
        assert store.snapshot() == {"hash": None}


class TestSqliteStore:

    @pytest.fixture
    def db_path(self, tmp_path):
        return tmp_path / "data" / "bookmarks.db"

    @pytest.mark.asyncio
    async def test_set_get_json_values(self, db_path):
        store = SqliteStore(db_path)
        await store.set({
            "bookmarks": [{"title": "Ex", "url": "https://example.com"}],
            "hash": None,
            "sessionActive": False,
        })
        got = await store.get(["bookmarks", "hash", "sessionActive", "encryptionKey"])
        assert got == {
            "bookmarks": [{"title": "Ex", "url": "https://example.com"}],
            "hash": None,
            "sessionActive": False,
        }

    @pytest.mark.asyncio
    async def test_creates_parent_directory(self, db_path):
        SqliteStore(db_path)
        assert db_path.exists()

    @pytest.mark.asyncio
    async def test_survives_reopen(self, db_path):
        await SqliteStore(db_path).set({"hash": "abc"})
        assert await SqliteStore(db_path).get(["hash"]) == {"hash": "abc"}

    @pytest.mark.asyncio
    async def test_overwrite(self, db_path):
        store = SqliteStore(db_path)
        await store.set({"sessionActive": True})
        await store.set({"sessionActive": False})
        assert await store.get(["sessionActive"]) == {"sessionActive": False}

    @pytest.mark.asyncio
    async def test_scopes_are_separate(self, db_path):
        sync_store = SqliteStore(db_path, scope="sync")
        local_store = SqliteStore(db_path, scope="local")
        await sync_store.set({"hash": "sync-digest"})
        assert await local_store.get(["hash"]) == {}
        await local_store.set({"hash": "local-digest"})
        assert await sync_store.get(["hash"]) == {"hash": "sync-digest"}

    @pytest.mark.asyncio
    async def test_empty_key_list(self, db_path):
        assert await SqliteStore(db_path).get([]) == {}

    @pytest.mark.asyncio
    async def test_unserializable_value_raises_storage_error(self, db_path):
        store = SqliteStore(db_path)
        await store.set({"hash": "keep"})
        with pytest.raises(StorageError):
            await store.set({"hash": "new", "bookmarks": object()})
        # Nothing from the failed batch landed
        assert await store.get(["hash"]) == {"hash": "keep"}

    @pytest.mark.asyncio
    async def test_corrupt_row_raises_storage_error(self, db_path):
        store = SqliteStore(db_path)
        conn = sqlite3.connect(str(db_path))
        conn.execute(
            "INSERT INTO storage (scope, key, value, updated_at) VALUES ('sync', 'hash', '{broken', 'now')"
        )
        conn.commit()
        conn.close()
        with pytest.raises(StorageError):
            await store.get(["hash"])

    def test_unopenable_path_raises_storage_error(self, tmp_path):
        # A directory where the database file should be
        bad = tmp_path / "is_a_dir"
        bad.mkdir()
        with pytest.raises(StorageError):
            SqliteStore(bad)
