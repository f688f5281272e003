# Private Bookmarks - Vault Manager
#
# One API over the session manager and the record store.
# Every bookmark read or write requires an unlocked session.
# The first unlock sets the password and leaves the vault unlocked.

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..config import VaultSettings
from ..core import EventType, get_audit_logger
from .encryption import EncryptionService
from .errors import LockedError
from .models import ENCRYPTION_KEY_KEY, STATE_KEYS, Bookmark, SessionState, VaultState
from .record_store import RecordStore
from .session import SessionManager
from .storage import PersistentStore

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str], None]


async def install_state(
    store: PersistentStore,
    encryption_enabled: bool = True,
    force: bool = False,
) -> bool:
    """
    Write the initial vault state: no password, no bookmarks, locked, and a
    freshly generated key when encryption is enabled.

    Args:
        store: Store to initialize
        encryption_enabled: Generate and store an AES-GCM key
        force: Overwrite an existing vault (wipes bookmarks and password)

    Returns:
        True if the state was written, False if a vault already existed
    """
    existing = await store.get(STATE_KEYS)
    if existing and not force:
        if encryption_enabled and not existing.get(ENCRYPTION_KEY_KEY):
            # Vault created in plaintext mode; add a key so new bookmarks are sealed
            key = await asyncio.to_thread(EncryptionService.generate_key)
            await store.set({ENCRYPTION_KEY_KEY: EncryptionService.export_key(key)})
            logger.info("Encryption key added to existing plaintext vault")
        return False

    state = VaultState()
    if encryption_enabled:
        key = await asyncio.to_thread(EncryptionService.generate_key)
        state.encryption_key = EncryptionService.export_key(key)

    values = state.to_storage()
    if not encryption_enabled and existing.get(ENCRYPTION_KEY_KEY):
        # A forced plaintext reinstall must not keep the old key around
        values[ENCRYPTION_KEY_KEY] = None
    await store.set(values)

    get_audit_logger().log_vault_event(
        EventType.VAULT_INSTALLED,
        "Vault installed",
        details={"encryption_enabled": encryption_enabled, "scope": store.scope},
    )
    return True


class BookmarkVault:
    """
    Password-gated bookmark vault.

    Build with ``await BookmarkVault.open(store, settings)``; the constructor
    does no I/O.
    """

    def __init__(
        self,
        store: PersistentStore,
        settings: Optional[VaultSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or VaultSettings()
        self.store = store
        self.session = SessionManager(
            store,
            auto_lock_seconds=self.settings.auto_lock_seconds,
            sleep=sleep,
        )
        self.records = RecordStore(store, encryption_enabled=self.settings.encryption_enabled)
        self._change_listeners: List[ChangeListener] = []
        self.audit = get_audit_logger()

    @classmethod
    async def open(
        cls,
        store: PersistentStore,
        settings: Optional[VaultSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> "BookmarkVault":
        """Install on first use, then restore the persisted session."""
        vault = cls(store, settings=settings, sleep=sleep)
        await install_state(store, encryption_enabled=vault.settings.encryption_enabled)
        await vault.session.restore_session()
        return vault

    # ── Session ──────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def is_unlocked(self) -> bool:
        return self.session.is_unlocked

    async def unlock(self, password: str) -> SessionState:
        """
        Unlock the vault. With no password set yet, this sets it.

        Raises:
            EmptyPasswordError: Password empty or whitespace-only
            AuthenticationError: Wrong password
            StorageError: Session state could not be persisted
        """
        if self.session.state == SessionState.NO_PASSWORD_SET:
            await self.session.set_password(password)
        else:
            await self.session.login(password)
        return self.session.state

    async def lock(self) -> None:
        await self.session.lock(reason="manual")

    def add_lock_listener(self, listener: Callable[[str], None]) -> None:
        self.session.add_lock_listener(listener)

    def add_change_listener(self, listener: ChangeListener) -> None:
        """Register a callback run after each bookmark change ("added", "deleted", "moved")."""
        self._change_listeners.append(listener)

    def _notify_changed(self, change: str) -> None:
        for listener in list(self._change_listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("Bookmark change listener failed")

    def _require_unlocked(self) -> None:
        if not self.session.is_unlocked:
            raise LockedError("Vault is locked. Unlock vault first.")

    # ── Bookmarks ────────────────────────────────────────────────────

    async def add_current_page(self, title: str, url: str) -> None:
        self._require_unlocked()
        await self.records.append(title, url, guard=self._require_unlocked)
        self._notify_changed("added")

    async def list_bookmarks(self) -> List[Bookmark]:
        self._require_unlocked()
        return await self.records.list()

    async def delete_bookmark(self, position: int) -> None:
        self._require_unlocked()
        await self.records.delete_at(position, guard=self._require_unlocked)
        self._notify_changed("deleted")

    async def reorder_bookmark(self, from_position: int, to_position: int) -> None:
        self._require_unlocked()
        await self.records.move_to(from_position, to_position, guard=self._require_unlocked)
        self._notify_changed("moved")

    # ── Status ───────────────────────────────────────────────────────

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.session.state.value,
            "password_set": self.session.password_set,
            "unlocked": self.session.is_unlocked,
            "encryption_enabled": self.records.encryption_enabled,
            "storage_scope": self.store.scope,
            "auto_lock_seconds": self.session.auto_lock_seconds,
        }

    async def reload(self, encryption_enabled: Optional[bool] = None) -> SessionState:
        """Drop cached key and session state and re-read them from the store."""
        if encryption_enabled is None:
            encryption_enabled = self.records.encryption_enabled
        self.records = RecordStore(self.store, encryption_enabled=encryption_enabled)
        await self.session.close()
        return await self.session.restore_session()

    async def close(self) -> None:
        """Stop background timers. Persisted state is left as is."""
        await self.session.close()
