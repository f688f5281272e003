"""Bookmark records and the persisted vault layout.

The whole vault lives under four keys of the persistent store:

    bookmarks      ordered list of {"title", "url", "iv"?}
    hash           hex password digest, or None before the first login
    sessionActive  True while unlocked
    encryptionKey  exported AES-GCM key (JWK); absent means plaintext storage

Record position is the only identity a bookmark has. It changes whenever a
record before it is deleted or moved, so callers re-read positions after
every mutation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

BOOKMARKS_KEY = "bookmarks"
HASH_KEY = "hash"
SESSION_ACTIVE_KEY = "sessionActive"
ENCRYPTION_KEY_KEY = "encryptionKey"

STATE_KEYS = [BOOKMARKS_KEY, HASH_KEY, SESSION_ACTIVE_KEY, ENCRYPTION_KEY_KEY]


class SessionState(str, Enum):
    """Session lifecycle states."""

    NO_PASSWORD_SET = "no_password_set"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


@dataclass
class BookmarkRecord:
    """A bookmark as stored. ``url`` is ciphertext whenever ``iv`` is set."""

    title: str
    url: str
    iv: Optional[str] = None

    @property
    def is_encrypted(self) -> bool:
        return self.iv is not None

    def to_dict(self) -> Dict[str, Any]:
        data = {"title": self.title, "url": self.url}
        if self.iv is not None:
            data["iv"] = self.iv
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookmarkRecord":
        if not isinstance(data, dict):
            raise ValueError(f"Bookmark record must be a mapping, got {type(data).__name__}")
        return cls(
            title=str(data.get("title", "")),
            url=str(data.get("url", "")),
            iv=data.get("iv"),
        )


@dataclass
class Bookmark:
    """A bookmark as listed: decrypted URL, or an error for a broken record."""

    position: int
    title: str
    url: Optional[str]
    error: Optional[str] = None

    @property
    def is_broken(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position,
            "title": self.title,
            "url": self.url,
            "broken": self.is_broken,
            "error": self.error,
        }


@dataclass
class VaultState:
    """Everything the vault persists, in one snapshot."""

    password_digest: Optional[str] = None
    session_active: bool = False
    encryption_key: Optional[str] = None
    records: List[BookmarkRecord] = field(default_factory=list)

    def to_storage(self) -> Dict[str, Any]:
        data = {
            BOOKMARKS_KEY: [r.to_dict() for r in self.records],
            HASH_KEY: self.password_digest,
            SESSION_ACTIVE_KEY: self.session_active,
        }
        if self.encryption_key is not None:
            data[ENCRYPTION_KEY_KEY] = self.encryption_key
        return data

    @classmethod
    def from_storage(cls, data: Dict[str, Any]) -> "VaultState":
        return cls(
            password_digest=data.get(HASH_KEY),
            session_active=bool(data.get(SESSION_ACTIVE_KEY, False)),
            encryption_key=data.get(ENCRYPTION_KEY_KEY),
            records=[BookmarkRecord.from_dict(r) for r in data.get(BOOKMARKS_KEY) or []],
        )
