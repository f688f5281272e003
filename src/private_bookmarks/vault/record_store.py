# Private Bookmarks - Record Store
#
# Ordered bookmark records on top of the persistent store.
# Append, list, delete-by-position, move-by-position.
# URLs are sealed with AES-256-GCM when encryption is enabled; titles never are.

import asyncio
import logging
from typing import Callable, List, Optional

from ..core import EventSeverity, EventType, get_audit_logger
from .encryption import EncryptionService
from .errors import DecryptionError, PositionError, StorageError
from .models import BOOKMARKS_KEY, ENCRYPTION_KEY_KEY, Bookmark, BookmarkRecord
from .storage import PersistentStore

logger = logging.getLogger(__name__)

# Called inside the write lock right before a mutation is persisted; raises to abort it
Guard = Optional[Callable[[], None]]


class RecordStore:
    """
    Ordered, mutable bookmark list.

    Mutations are single-flight: each one reads the list, changes it in
    memory and writes it back while holding ``_write_lock``, so two
    overlapping calls can never lose each other's update. A failed write
    leaves the stored list exactly as it was.
    """

    def __init__(self, store: PersistentStore, encryption_enabled: bool = True):
        self.store = store
        self.encryption_enabled = encryption_enabled
        self._write_lock = asyncio.Lock()
        self._key: Optional[bytes] = None
        self.audit = get_audit_logger()

    async def _load_records(self) -> List[BookmarkRecord]:
        data = await self.store.get([BOOKMARKS_KEY])
        try:
            return [BookmarkRecord.from_dict(r) for r in data.get(BOOKMARKS_KEY) or []]
        except ValueError as e:
            raise StorageError(f"Stored bookmark list is corrupted: {e}") from e

    async def _save_records(self, records: List[BookmarkRecord]) -> None:
        await self.store.set({BOOKMARKS_KEY: [r.to_dict() for r in records]})

    async def _get_key(self) -> Optional[bytes]:
        """The imported encryption key, or None when none is stored."""
        if self._key is None:
            data = await self.store.get([ENCRYPTION_KEY_KEY])
            exported = data.get(ENCRYPTION_KEY_KEY)
            if exported:
                try:
                    self._key = EncryptionService.import_key(exported)
                except ValueError as e:
                    raise StorageError(f"Stored encryption key is unusable: {e}") from e
        return self._key

    @staticmethod
    def _check_position(position: int, length: int, name: str = "position") -> None:
        if isinstance(position, bool) or not isinstance(position, int):
            raise PositionError(f"{name} must be an integer, got {position!r}")
        if not 0 <= position < length:
            raise PositionError(f"{name} {position} out of range for {length} bookmark(s)")

    async def append(self, title: str, url: str, guard: Guard = None) -> None:
        """
        Add a bookmark at the end of the list.

        Returns once the write has completed. ``guard`` runs under the write
        lock just before the write; whatever it raises aborts the append.

        Raises:
            StorageError: If the store fails, or encryption is enabled but no
                          key was generated at install
        """
        if self.encryption_enabled:
            key = await self._get_key()
            if key is None:
                raise StorageError("Encryption is enabled but no encryption key is stored")
            sealed = await asyncio.to_thread(EncryptionService.encrypt, url, key)
            record = BookmarkRecord(title=title, url=sealed.ciphertext, iv=sealed.iv)
        else:
            record = BookmarkRecord(title=title, url=url)

        async with self._write_lock:
            records = await self._load_records()
            if guard is not None:
                guard()
            records.append(record)
            await self._save_records(records)
            position = len(records) - 1

        self.audit.log_vault_event(
            EventType.BOOKMARK_ADDED,
            "Bookmark added",
            details={"position": position, "encrypted": record.is_encrypted},
        )

    async def list(self) -> List[Bookmark]:
        """
        All bookmarks in stored order, URLs decrypted.

        A record that fails to decrypt is returned broken (url None, error
        set) instead of aborting the listing.
        """
        records = await self._load_records()
        key = None
        if any(r.is_encrypted for r in records):
            key = await self._get_key()

        bookmarks = []
        for position, record in enumerate(records):
            if not record.is_encrypted:
                bookmarks.append(Bookmark(position=position, title=record.title, url=record.url))
                continue

            try:
                if key is None:
                    raise DecryptionError("No encryption key available for encrypted record")
                url = await asyncio.to_thread(
                    EncryptionService.decrypt, record.url, record.iv, key
                )
            except DecryptionError as e:
                logger.warning(f"Bookmark at position {position} could not be decrypted: {e}")
                self.audit.log_event(
                    event_type=EventType.BOOKMARK_DECRYPT_FAILED,
                    severity=EventSeverity.ALERT,
                    message="Bookmark could not be decrypted",
                    details={"position": position},
                )
                bookmarks.append(Bookmark(position=position, title=record.title, url=None, error=str(e)))
            else:
                bookmarks.append(Bookmark(position=position, title=record.title, url=url))

        return bookmarks

    async def count(self) -> int:
        return len(await self._load_records())

    async def delete_at(self, position: int, guard: Guard = None) -> None:
        """
        Remove the bookmark at ``position``; later bookmarks shift down by one.

        Raises:
            PositionError: If position is not in [0, length)
        """
        async with self._write_lock:
            records = await self._load_records()
            if guard is not None:
                guard()
            self._check_position(position, len(records))
            del records[position]
            await self._save_records(records)

        self.audit.log_vault_event(
            EventType.BOOKMARK_DELETED,
            "Bookmark deleted",
            details={"position": position, "remaining": len(records)},
        )

    async def move_to(self, old_position: int, new_position: int, guard: Guard = None) -> None:
        """
        Move the bookmark at ``old_position`` so it ends up at ``new_position``.

        Raises:
            PositionError: If either position is not in [0, length)
        """
        async with self._write_lock:
            records = await self._load_records()
            if guard is not None:
                guard()
            self._check_position(old_position, len(records), "old_position")
            self._check_position(new_position, len(records), "new_position")
            if old_position != new_position:
                record = records.pop(old_position)
                records.insert(new_position, record)
                await self._save_records(records)

        self.audit.log_vault_event(
            EventType.BOOKMARK_MOVED,
            "Bookmark moved",
            details={"from": old_position, "to": new_position},
        )
