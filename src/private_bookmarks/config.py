"""
Configuration for Private Bookmarks.

Defaults live in module constants. ``load_settings()`` overlays them with
``PRIVATE_BOOKMARKS_*`` environment variables, reading a ``.env`` file first
when one is present.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

# Application Metadata
APP_NAME = "Private Bookmarks"
APP_VERSION = "0.3.0"

ENV_PREFIX = "PRIVATE_BOOKMARKS_"

# Storage
CONFIG_DIR_NAME = ".private_bookmarks"  # Under the user's home directory
DEFAULT_DB_FILE = "bookmarks.db"
STORAGE_SCOPES = ("sync", "local")  # Mirrors the host's synced vs. device-local storage areas
DEFAULT_STORAGE_SCOPE = "sync"

# Security
ENCRYPTION_ENABLED_DEFAULT = True  # Encrypt bookmark URLs at rest with AES-256-GCM
AUTO_LOCK_SECONDS_DEFAULT = 60 * 60  # 1 hour from the last unlock, not from last activity

# UI / notifications
NOTIFICATION_CLEAR_SECONDS = 5  # "Unlock Required" notification lifetime
ERROR_MESSAGE_SECONDS = 5
SUCCESS_MESSAGE_SECONDS = 7
UNLOCK_REQUIRED_NOTIFICATION_ID = "unlockRequired"
UNLOCK_REQUIRED_TITLE = "Unlock Required"
UNLOCK_REQUIRED_MESSAGE = "Please click on the extension icon to unlock your bookmarks."

# API server
API_HOST_DEFAULT = "127.0.0.1"
API_PORT_DEFAULT = 8765

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def default_data_dir() -> Path:
    return Path.home() / CONFIG_DIR_NAME


@dataclass
class VaultSettings:
    """Resolved runtime settings."""

    data_dir: Path = field(default_factory=default_data_dir)
    db_file: str = DEFAULT_DB_FILE
    storage_scope: str = DEFAULT_STORAGE_SCOPE
    encryption_enabled: bool = ENCRYPTION_ENABLED_DEFAULT
    auto_lock_seconds: float = AUTO_LOCK_SECONDS_DEFAULT
    notification_seconds: float = NOTIFICATION_CLEAR_SECONDS
    audit_dir: Optional[Path] = None
    api_host: str = API_HOST_DEFAULT
    api_port: int = API_PORT_DEFAULT

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        if self.audit_dir is None:
            self.audit_dir = self.data_dir / "audit_logs"
        else:
            self.audit_dir = Path(self.audit_dir)
        if self.storage_scope not in STORAGE_SCOPES:
            raise ValueError(
                f"storage_scope must be one of {STORAGE_SCOPES}, got {self.storage_scope!r}"
            )
        if self.auto_lock_seconds <= 0:
            raise ValueError("auto_lock_seconds must be positive")
        if self.notification_seconds < 0:
            raise ValueError("notification_seconds must not be negative")

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_file


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got {raw!r}")


def _parse_number(name: str, raw: str, cast=float):
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    dotenv_path: Optional[str] = None,
) -> VaultSettings:
    """
    Build VaultSettings from the environment.

    Args:
        environ: Mapping to read instead of os.environ (tests pass a dict;
                 no .env file is loaded in that case)
        dotenv_path: Explicit .env file to load before reading os.environ

    Raises:
        ValueError: If a variable holds an invalid value. The message names
                    the variable.
    """
    if environ is None:
        load_dotenv(dotenv_path)
        environ = os.environ

    def get(name: str) -> Optional[str]:
        raw = environ.get(ENV_PREFIX + name)
        if raw is None or raw.strip() == "":
            return None
        return raw

    # variable suffix -> (settings field, parser)
    parsers = {
        "DATA_DIR": ("data_dir", lambda name, raw: Path(raw).expanduser()),
        "DB_FILE": ("db_file", lambda name, raw: raw),
        "SCOPE": ("storage_scope", lambda name, raw: raw.strip().lower()),
        "ENCRYPTION": ("encryption_enabled", _parse_bool),
        "AUTO_LOCK_SECONDS": ("auto_lock_seconds", _parse_number),
        "NOTIFICATION_SECONDS": ("notification_seconds", _parse_number),
        "AUDIT_DIR": ("audit_dir", lambda name, raw: Path(raw).expanduser()),
        "HOST": ("api_host", lambda name, raw: raw),
        "PORT": ("api_port", lambda name, raw: _parse_number(name, raw, int)),
    }

    kwargs = {}
    for suffix, (field_name, parse) in parsers.items():
        raw = get(suffix)
        if raw is not None:
            kwargs[field_name] = parse(ENV_PREFIX + suffix, raw)

    return VaultSettings(**kwargs)
