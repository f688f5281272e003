"""Tests for RecordStore: ordered, encrypted bookmark records."""

import asyncio

import pytest

from private_bookmarks.vault import (
    MemoryStore,
    PositionError,
    RecordStore,
    SqliteStore,
    StorageError,
    install_state,
)


class FlakyStore(MemoryStore):
    """MemoryStore whose writes can be made to fail."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_writes = False

    async def set(self, values):
        if self.fail_writes:
            raise StorageError("disk full")
        await super().set(values)


async def _records(encryption_enabled=True, store=None):
    store = store or MemoryStore()
    await install_state(store, encryption_enabled=encryption_enabled)
    return RecordStore(store, encryption_enabled=encryption_enabled), store


async def _titles(records):
    return [b.title for b in await records.list()]


# ── Append / list ───────────────────────────────────────────────────


class TestAppendAndList:

    @pytest.mark.asyncio
    async def test_encrypted_at_rest(self):
        records, store = await _records()
        await records.append("Example", "https://example.com/private")

        stored = store.snapshot()["bookmarks"]
        assert len(stored) == 1
        assert stored[0]["title"] == "Example"
        assert stored[0]["url"] != "https://example.com/private"
        assert "iv" in stored[0]

    @pytest.mark.asyncio
    async def test_list_decrypts_in_order(self):
        records, _ = await _records()
        await records.append("A", "https://a.example")
        await records.append("B", "https://b.example")

        listed = await records.list()
        assert [(b.position, b.title, b.url) for b in listed] == [
            (0, "A", "https://a.example"),
            (1, "B", "https://b.example"),
        ]
        assert not any(b.is_broken for b in listed)

    @pytest.mark.asyncio
    async def test_plaintext_mode(self):
        records, store = await _records(encryption_enabled=False)
        await records.append("Plain", "https://plain.example")

        assert store.snapshot()["bookmarks"] == [{"title": "Plain", "url": "https://plain.example"}]
        assert (await records.list())[0].url == "https://plain.example"

    @pytest.mark.asyncio
    async def test_plaintext_records_readable_after_enabling_encryption(self):
        store = MemoryStore(initial={"bookmarks": [{"title": "Old", "url": "https://old.example"}]})
        await install_state(store, encryption_enabled=True)
        records = RecordStore(store, encryption_enabled=True)
        await records.append("New", "https://new.example")

        urls = [b.url for b in await records.list()]
        assert urls == ["https://old.example", "https://new.example"]

    @pytest.mark.asyncio
    async def test_empty_list(self):
        records, _ = await _records()
        assert await records.list() == []
        assert await records.count() == 0

    @pytest.mark.asyncio
    async def test_append_without_key_raises(self):
        store = MemoryStore(initial={"bookmarks": []})
        records = RecordStore(store, encryption_enabled=True)
        with pytest.raises(StorageError):
            await records.append("A", "https://a.example")
        assert store.snapshot()["bookmarks"] == []

    @pytest.mark.asyncio
    async def test_concurrent_appends_all_land(self):
        records, _ = await _records()
        await asyncio.gather(*[
            records.append(f"Page {i}", f"https://example.com/{i}") for i in range(20)
        ])
        listed = await records.list()
        assert len(listed) == 20
        assert sorted(b.url for b in listed) == sorted(f"https://example.com/{i}" for i in range(20))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("encryption_enabled", [True, False], ids=["encrypted", "plaintext"])
    async def test_unicode_title_and_url_roundtrip(self, tmp_path, encryption_enabled):
        store = SqliteStore(tmp_path / "bookmarks.db")
        records, _ = await _records(encryption_enabled=encryption_enabled, store=store)
        await records.append("Café ☕ 東京", "https://例え.jp/ü?q=💡")
        await records.append("Пример", "https://пример.рф/путь#фрагмент")

        reopened = RecordStore(SqliteStore(tmp_path / "bookmarks.db"), encryption_enabled=encryption_enabled)
        listed = await reopened.list()
        assert [(b.title, b.url) for b in listed] == [
            ("Café ☕ 東京", "https://例え.jp/ü?q=💡"),
            ("Пример", "https://пример.рф/путь#фрагмент"),
        ]
        assert not any(b.is_broken for b in listed)


# ── Broken records ──────────────────────────────────────────────────


class TestBrokenRecords:

    @pytest.mark.asyncio
    async def test_bad_record_does_not_hide_others(self, audit_events):
        records, store = await _records()
        await records.append("Good 1", "https://one.example")
        await records.append("Bad", "https://two.example")
        await records.append("Good 2", "https://three.example")

        data = store.snapshot()["bookmarks"]
        data[1]["iv"] = data[0]["iv"]
        await store.set({"bookmarks": data})

        listed = await records.list()
        assert [b.url for b in listed] == ["https://one.example", None, "https://three.example"]
        assert listed[1].is_broken
        assert listed[1].title == "Bad"
        assert listed[1].to_dict()["broken"] is True

        failed = [e for e in audit_events() if e["event_type"] == "bookmark.decrypt.failed"]
        assert len(failed) == 1
        assert failed[0]["severity"] == "alert"
        assert failed[0]["details"] == {"position": 1}

    @pytest.mark.asyncio
    async def test_encrypted_record_without_key_is_broken(self):
        store = MemoryStore(initial={
            "bookmarks": [{"title": "Orphan", "url": "AAAA", "iv": "AAAAAAAAAAAAAAAA"}],
        })
        records = RecordStore(store, encryption_enabled=False)
        listed = await records.list()
        assert listed[0].is_broken

    @pytest.mark.asyncio
    @pytest.mark.parametrize("iv", [123, ["AAAAAAAAAAAAAAAA"], {"iv": "x"}])
    async def test_non_string_iv_is_broken(self, iv):
        records, store = await _records()
        await records.append("Good", "https://good.example")
        data = store.snapshot()["bookmarks"]
        data.append({"title": "Bad", "url": "abc", "iv": iv})
        await store.set({"bookmarks": data})

        listed = await records.list()
        assert [b.title for b in listed] == ["Good", "Bad"]
        assert listed[0].url == "https://good.example"
        assert listed[1].is_broken
        assert listed[1].url is None

    @pytest.mark.asyncio
    async def test_corrupt_list_raises(self):
        store = MemoryStore(initial={"bookmarks": ["not a record"]})
        with pytest.raises(StorageError):
            await RecordStore(store).list()

    @pytest.mark.asyncio
    async def test_unusable_key_raises(self):
        store = MemoryStore(initial={"bookmarks": [], "encryptionKey": "garbage"})
        with pytest.raises(StorageError):
            await RecordStore(store).append("A", "https://a.example")


# ── Delete ──────────────────────────────────────────────────────────


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_shifts_later_positions(self):
        records, _ = await _records()
        for t in "ABC":
            await records.append(t, f"https://{t.lower()}.example")

        await records.delete_at(1)
        listed = await records.list()
        assert [(b.position, b.title) for b in listed] == [(0, "A"), (1, "C")]

    @pytest.mark.asyncio
    async def test_delete_last_remaining(self):
        records, _ = await _records()
        await records.append("Only", "https://only.example")
        await records.delete_at(0)
        assert await records.count() == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("position", [-1, 2, 99, True, "0", 1.0])
    async def test_invalid_position(self, position):
        records, store = await _records()
        await records.append("A", "https://a.example")
        await records.append("B", "https://b.example")
        before = store.snapshot()["bookmarks"]

        with pytest.raises(PositionError):
            await records.delete_at(position)
        assert store.snapshot()["bookmarks"] == before

    @pytest.mark.asyncio
    async def test_position_error_is_index_error(self):
        records, _ = await _records()
        with pytest.raises(IndexError):
            await records.delete_at(0)

    @pytest.mark.asyncio
    async def test_failed_write_leaves_list_unchanged(self):
        records, store = await _records(store=FlakyStore())
        await records.append("A", "https://a.example")
        await records.append("B", "https://b.example")

        store.fail_writes = True
        with pytest.raises(StorageError):
            await records.delete_at(0)
        store.fail_writes = False

        assert await _titles(records) == ["A", "B"]


# ── Move ────────────────────────────────────────────────────────────


class TestMove:

    async def _abcd(self):
        records, store = await _records()
        for t in "ABCD":
            await records.append(t, f"https://{t.lower()}.example")
        return records, store

    @pytest.mark.asyncio
    async def test_move_down(self):
        records, _ = await self._abcd()
        await records.move_to(0, 2)
        assert await _titles(records) == ["B", "C", "A", "D"]

    @pytest.mark.asyncio
    async def test_move_up(self):
        records, _ = await self._abcd()
        await records.move_to(3, 1)
        assert await _titles(records) == ["A", "D", "B", "C"]

    @pytest.mark.asyncio
    async def test_move_to_end(self):
        records, _ = await self._abcd()
        await records.move_to(1, 3)
        assert await _titles(records) == ["A", "C", "D", "B"]

    @pytest.mark.asyncio
    async def test_same_position_is_noop(self):
        records, store = await self._abcd()
        before = store.snapshot()["bookmarks"]
        await records.move_to(2, 2)
        assert store.snapshot()["bookmarks"] == before

    @pytest.mark.asyncio
    async def test_move_keeps_ciphertext(self):
        records, store = await self._abcd()
        before = {r["iv"]: r["url"] for r in store.snapshot()["bookmarks"]}
        await records.move_to(0, 3)
        after = {r["iv"]: r["url"] for r in store.snapshot()["bookmarks"]}
        assert before == after

    @pytest.mark.asyncio
    @pytest.mark.parametrize("old, new", [(4, 0), (0, 4), (-1, 0), (0, -1)])
    async def test_out_of_range(self, old, new):
        records, store = await self._abcd()
        before = store.snapshot()["bookmarks"]
        with pytest.raises(PositionError):
            await records.move_to(old, new)
        assert store.snapshot()["bookmarks"] == before


# ── Concurrency ─────────────────────────────────────────────────────


class TestConcurrentMutations:

    @pytest.mark.asyncio
    async def test_mixed_mutations_apply_in_call_order(self, tmp_path):
        records, _ = await _records(encryption_enabled=False, store=SqliteStore(tmp_path / "bookmarks.db"))
        for t in "ABC":
            await records.append(t, f"https://{t.lower()}.example")

        await asyncio.gather(
            records.append("D", "https://d.example"),
            records.delete_at(0),
            records.move_to(2, 0),
            records.append("E", "https://e.example"),
            records.delete_at(1),
        )

        listed = await records.list()
        assert [(b.title, b.url) for b in listed] == [
            ("D", "https://d.example"),
            ("C", "https://c.example"),
            ("E", "https://e.example"),
        ]

    @pytest.mark.asyncio
    async def test_encrypted_mixed_mutations_lose_nothing(self):
        records, _ = await _records()
        for i in range(5):
            await records.append(f"Seed {i}", f"https://seed.example/{i}")

        await asyncio.gather(
            *[records.append(f"New {i}", f"https://new.example/{i}") for i in range(5)],
            records.delete_at(0),
            records.move_to(1, 0),
            records.delete_at(0),
        )

        listed = await records.list()
        assert len(listed) == 8
        assert not any(b.is_broken for b in listed)
        assert sum(1 for b in listed if b.title.startswith("New ")) == 5


# ── Audit ───────────────────────────────────────────────────────────


class TestAudit:

    @pytest.mark.asyncio
    async def test_mutations_logged_without_urls(self, audit_events, tmp_path):
        records, _ = await _records()
        await records.append("Secret page", "https://very-secret.example")
        await records.append("Other", "https://other.example")
        await records.move_to(0, 1)
        await records.delete_at(0)

        types = [e["event_type"] for e in audit_events()]
        assert "bookmark.added" in types
        assert "bookmark.moved" in types
        assert "bookmark.deleted" in types

        raw = "".join(p.read_text() for p in (tmp_path / "audit_logs").glob("*.log"))
        assert "very-secret" not in raw
