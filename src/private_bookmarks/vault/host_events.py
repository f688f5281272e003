# Private Bookmarks - Host Events
#
# Entry points the host environment fires into the vault:
#   - on_install: first install, writes the initial vault state
#   - on_add_current_page: "Add this page to Private Bookmarks" trigger
#
# When the trigger fires while the vault is locked, an "Unlock Required"
# notification is shown and cleared again after a few seconds.

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Awaitable, Callable, Optional, Set

from ..config import (
    NOTIFICATION_CLEAR_SECONDS,
    UNLOCK_REQUIRED_MESSAGE,
    UNLOCK_REQUIRED_NOTIFICATION_ID,
    UNLOCK_REQUIRED_TITLE,
)
from ..core import EventSeverity, EventType, get_audit_logger
from .vault_manager import BookmarkVault, install_state

logger = logging.getLogger(__name__)


class AddPageResult(str, Enum):
    ADDED = "added"
    UNLOCK_REQUIRED = "unlock_required"


class Notifier(ABC):
    """Notification display collaborator."""

    @abstractmethod
    async def show(self, notification_id: str, title: str, message: str) -> None:
        pass

    @abstractmethod
    async def clear(self, notification_id: str) -> None:
        pass


class LogNotifier(Notifier):
    """Writes notifications to the log. Used when no display is attached."""

    async def show(self, notification_id: str, title: str, message: str) -> None:
        logger.warning(f"[{notification_id}] {title}: {message}")

    async def clear(self, notification_id: str) -> None:
        logger.debug(f"[{notification_id}] cleared")


class HostEvents:
    """
    Dispatches host triggers to the vault.

    Args:
        vault: The opened vault
        notifier: Where "Unlock Required" notifications go
        notification_seconds: How long a notification stays before it is cleared
        sleep: Awaitable sleep for the clear delay (tests inject a manual one)
    """

    def __init__(
        self,
        vault: BookmarkVault,
        notifier: Optional[Notifier] = None,
        notification_seconds: float = NOTIFICATION_CLEAR_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.vault = vault
        self.notifier = notifier or LogNotifier()
        self.notification_seconds = notification_seconds
        self._sleep = sleep
        self._pending_clears: Set[asyncio.Task] = set()
        self.audit = get_audit_logger()

    async def on_install(self, encryption_enabled: Optional[bool] = None, force: bool = False) -> bool:
        """Initialize vault state on install. Returns False if it already existed."""
        if encryption_enabled is None:
            encryption_enabled = self.vault.settings.encryption_enabled
        installed = await install_state(self.vault.store, encryption_enabled=encryption_enabled, force=force)
        if installed:
            await self.vault.reload(encryption_enabled=encryption_enabled)
        return installed

    async def on_add_current_page(self, title: str, url: str) -> AddPageResult:
        """
        Add the page the user is on, or ask them to unlock first.

        Only the session manager decides whether the vault is unlocked.
        """
        if not self.vault.is_unlocked:
            logger.info("Add-page trigger while locked; unlock required")
            self.audit.log_event(
                event_type=EventType.UNLOCK_REQUIRED,
                severity=EventSeverity.INFO,
                message="Add-page trigger received while vault is locked",
            )
            await self.notifier.show(
                UNLOCK_REQUIRED_NOTIFICATION_ID,
                UNLOCK_REQUIRED_TITLE,
                UNLOCK_REQUIRED_MESSAGE,
            )
            self._schedule_clear(UNLOCK_REQUIRED_NOTIFICATION_ID)
            return AddPageResult.UNLOCK_REQUIRED

        await self.vault.add_current_page(title, url)
        logger.info("Bookmark added from add-page trigger")
        return AddPageResult.ADDED

    def _schedule_clear(self, notification_id: str) -> None:
        task = asyncio.get_running_loop().create_task(self._clear_later(notification_id))
        self._pending_clears.add(task)
        task.add_done_callback(self._pending_clears.discard)

    async def _clear_later(self, notification_id: str) -> None:
        await self._sleep(self.notification_seconds)
        try:
            await self.notifier.clear(notification_id)
        except Exception:
            logger.exception(f"Failed to clear notification {notification_id}")

    async def close(self) -> None:
        """Cancel pending notification clears."""
        for task in list(self._pending_clears):
            task.cancel()
        if self._pending_clears:
            await asyncio.gather(*self._pending_clears, return_exceptions=True)
