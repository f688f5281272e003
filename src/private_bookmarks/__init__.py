# Private Bookmarks - Main Package
#
# Password-protected bookmark vault: bookmarks are hidden behind a
# password, URLs are encrypted at rest, and the session locks itself
# an hour after unlocking.

__version__ = "0.3.0"
__author__ = "Private Bookmarks Team"
__description__ = "Password-protected bookmark vault"

from .core import (
    EventType,
    EventSeverity,
    get_audit_logger,
)
from .vault import BookmarkVault, SessionState

__all__ = [
    "__version__",
    "BookmarkVault",
    "SessionState",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
]
