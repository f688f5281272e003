# Private Bookmarks - Vault Module
#
# Password-gated bookmark storage:
# SHA-256 password digest, AES-256-GCM URL encryption,
# timed session lock, ordered records.

from .encryption import EncryptedValue, EncryptionService
from .errors import (
    AuthenticationError,
    DecryptionError,
    EmptyPasswordError,
    LockedError,
    PasswordAlreadySetError,
    PositionError,
    StorageError,
    VaultError,
)
from .host_events import AddPageResult, HostEvents, LogNotifier, Notifier
from .models import Bookmark, BookmarkRecord, SessionState, VaultState
from .record_store import RecordStore
from .session import SessionManager
from .storage import MemoryStore, PersistentStore, SqliteStore
from .vault_manager import BookmarkVault, install_state

__all__ = [
    "AddPageResult",
    "AuthenticationError",
    "Bookmark",
    "BookmarkRecord",
    "BookmarkVault",
    "DecryptionError",
    "EmptyPasswordError",
    "EncryptedValue",
    "EncryptionService",
    "HostEvents",
    "LockedError",
    "LogNotifier",
    "MemoryStore",
    "Notifier",
    "PasswordAlreadySetError",
    "PersistentStore",
    "PositionError",
    "RecordStore",
    "SessionManager",
    "SessionState",
    "SqliteStore",
    "StorageError",
    "VaultError",
    "VaultState",
    "install_state",
]
