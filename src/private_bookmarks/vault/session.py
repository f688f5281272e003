"""
Vault session management - locked/unlocked state and the auto-lock timer.

State machine:

    NO_PASSWORD_SET --set_password--> UNLOCKED
    LOCKED          --login---------> UNLOCKED
    UNLOCKED        --lock/timeout--> LOCKED

Only the password digest is ever held; the plaintext password is dropped as
soon as it has been digested. The ``sessionActive`` flag is persisted, so an
unlocked session survives a process restart (see ``restore_session``).
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from ..config import AUTO_LOCK_SECONDS_DEFAULT
from ..core import EventSeverity, EventType, get_audit_logger
from .encryption import EncryptionService
from .errors import (
    AuthenticationError,
    EmptyPasswordError,
    PasswordAlreadySetError,
    StorageError,
)
from .models import HASH_KEY, SESSION_ACTIVE_KEY, SessionState
from .storage import PersistentStore

logger = logging.getLogger(__name__)

LockListener = Callable[[str], None]


class SessionManager:
    """
    Owns the session state, the stored digest and the auto-lock timer.

    Args:
        store: Persistent store holding ``hash`` and ``sessionActive``
        auto_lock_seconds: Time from the last unlock until the vault locks
        sleep: Awaitable sleep used by the timer (tests inject a manual one)
    """

    def __init__(
        self,
        store: PersistentStore,
        auto_lock_seconds: float = AUTO_LOCK_SECONDS_DEFAULT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.auto_lock_seconds = auto_lock_seconds
        self._sleep = sleep
        self._state = SessionState.NO_PASSWORD_SET
        self._digest: Optional[str] = None
        self._timer: Optional[asyncio.Task] = None
        self._timer_generation = 0
        self._transition_lock = asyncio.Lock()
        self._lock_listeners: List[LockListener] = []
        self.audit = get_audit_logger()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_unlocked(self) -> bool:
        return self._state == SessionState.UNLOCKED

    @property
    def password_set(self) -> bool:
        return self._digest is not None

    @property
    def timer_pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def add_lock_listener(self, listener: LockListener) -> None:
        """Register a callback run after every lock with the reason ("manual" or "timeout")."""
        self._lock_listeners.append(listener)

    @staticmethod
    def _require_password(password: str) -> None:
        if password is None or not password.strip():
            raise EmptyPasswordError("Password cannot be empty!")

    async def restore_session(self) -> SessionState:
        """
        Rebuild in-memory state from the store (process start).

        A persisted active session comes back unlocked without asking for
        the password again, and the auto-lock timer starts over.
        """
        async with self._transition_lock:
            data = await self.store.get([HASH_KEY, SESSION_ACTIVE_KEY])
            self._digest = data.get(HASH_KEY)
            session_active = bool(data.get(SESSION_ACTIVE_KEY, False))

            if self._digest is None:
                self._state = SessionState.NO_PASSWORD_SET
                if session_active:
                    # Unlocked without ever having a password: repair the flag
                    logger.warning("sessionActive was set with no password digest; clearing it")
                    await self.store.set({SESSION_ACTIVE_KEY: False})
            elif session_active:
                self._state = SessionState.UNLOCKED
                self.start_lock_timer()
                self.audit.log_vault_event(
                    EventType.VAULT_SESSION_RESTORED,
                    "Unlocked session restored after restart",
                )
            else:
                self._state = SessionState.LOCKED

            logger.info(f"Session restored in state {self._state.value}")
            return self._state

    async def set_password(self, password: str) -> None:
        """
        Set the first password and unlock.

        Raises:
            EmptyPasswordError: Password empty or whitespace-only
            PasswordAlreadySetError: A password digest already exists
            StorageError: The digest could not be persisted (no state change)
        """
        self._require_password(password)
        digest = await asyncio.to_thread(EncryptionService.digest, password)
        del password

        async with self._transition_lock:
            if self._digest is not None:
                raise PasswordAlreadySetError("A password is already set; use login instead")

            await self.store.set({HASH_KEY: digest, SESSION_ACTIVE_KEY: True})
            self._digest = digest
            self._state = SessionState.UNLOCKED
            self.start_lock_timer()

        self.audit.log_vault_event(EventType.VAULT_PASSWORD_SET, "Initial password set")
        logger.info("Password set; vault unlocked")

    async def login(self, password: str) -> None:
        """
        Unlock with the password.

        Logging in while already unlocked restarts the auto-lock timer.

        Raises:
            EmptyPasswordError: Password empty or whitespace-only
            AuthenticationError: No password set yet, or the password is wrong
                                 (state unchanged, no lockout)
            StorageError: The unlocked flag could not be persisted
        """
        self._require_password(password)
        digest = await asyncio.to_thread(EncryptionService.digest, password)
        del password

        async with self._transition_lock:
            if self._digest is None:
                raise AuthenticationError("No password has been set yet")

            if not EncryptionService.digests_match(digest, self._digest):
                self.audit.log_event(
                    event_type=EventType.VAULT_UNLOCK_FAILED,
                    severity=EventSeverity.ALERT,
                    message="Vault unlock failed: incorrect password",
                )
                raise AuthenticationError("Incorrect password!")

            await self.store.set({SESSION_ACTIVE_KEY: True})
            self._state = SessionState.UNLOCKED
            self.start_lock_timer()

        self.audit.log_vault_event(EventType.VAULT_UNLOCKED, "Vault unlocked")

    async def lock(self, reason: str = "manual") -> bool:
        """
        Lock the vault and cancel the auto-lock timer.

        The in-memory state is locked before the store is written, so a
        storage failure still leaves this process locked.

        Returns:
            True if the vault was unlocked and is now locked

        Raises:
            StorageError: ``sessionActive`` could not be cleared in the store
        """
        return await self._lock(reason)

    async def _lock(self, reason: str, timer_generation: Optional[int] = None) -> bool:
        async with self._transition_lock:
            if self._state != SessionState.UNLOCKED:
                return False
            if timer_generation is not None and timer_generation != self._timer_generation:
                # The timer was restarted or cancelled while this one waited
                return False

            self.cancel_lock_timer()
            self._state = SessionState.LOCKED
            try:
                await self.store.set({SESSION_ACTIVE_KEY: False})
            finally:
                self._notify_locked(reason)

        event_type = EventType.VAULT_AUTO_LOCKED if reason == "timeout" else EventType.VAULT_LOCKED
        self.audit.log_vault_event(event_type, f"Vault locked ({reason})")
        return True

    def _notify_locked(self, reason: str) -> None:
        for listener in list(self._lock_listeners):
            try:
                listener(reason)
            except Exception:
                logger.exception("Lock listener failed")

    def start_lock_timer(self) -> None:
        """(Re)start the auto-lock timer. Any pending timer is cancelled first."""
        self.cancel_lock_timer()
        self._timer = asyncio.get_running_loop().create_task(self._auto_lock(self._timer_generation))

    def cancel_lock_timer(self) -> None:
        self._timer_generation += 1
        timer, self._timer = self._timer, None
        if timer is not None and not timer.done() and timer is not asyncio.current_task():
            timer.cancel()

    async def _auto_lock(self, generation: int) -> None:
        await self._sleep(self.auto_lock_seconds)
        # Detach first so lock() does not cancel the task running it
        if self._timer is asyncio.current_task():
            self._timer = None
        try:
            locked = await self._lock("timeout", timer_generation=generation)
        except StorageError as e:
            self.audit.log_event(
                event_type=EventType.STORAGE_ERROR,
                severity=EventSeverity.CRITICAL,
                message=f"Auto-lock could not persist locked state: {e}",
            )
            return
        if locked:
            logger.info(f"Vault auto-locked after {self.auto_lock_seconds} seconds")

    async def close(self) -> None:
        """Stop the timer without changing the persisted session."""
        self._timer_generation += 1
        timer, self._timer = self._timer, None
        if timer is not None and not timer.done():
            timer.cancel()
            try:
                await timer
            except asyncio.CancelledError:
                pass
