# Private Bookmarks - Bookmark API
#
# Endpoints the popup front end calls:
# - Status, unlock (first unlock sets the password), lock
# - List / add / delete / reorder bookmarks (vault must be unlocked)
# - The host's "add current page" trigger
#
# Every response carries a user-facing message and how long to show it.

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..config import (
    ERROR_MESSAGE_SECONDS,
    SUCCESS_MESSAGE_SECONDS,
    UNLOCK_REQUIRED_MESSAGE,
    VaultSettings,
    load_settings,
)
from ..vault import (
    AddPageResult,
    AuthenticationError,
    BookmarkVault,
    EmptyPasswordError,
    HostEvents,
    LockedError,
    PositionError,
    SessionState,
    SqliteStore,
    StorageError,
    VaultError,
)
from .security import verify_api_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookmarks", tags=["bookmarks"])

# Opened lazily inside the server's event loop
_vault: Optional[BookmarkVault] = None
_host_events: Optional[HostEvents] = None
_settings: Optional[VaultSettings] = None
_open_lock: Optional[asyncio.Lock] = None


async def get_vault() -> BookmarkVault:
    """FastAPI dependency: the process-wide vault, opened on first use."""
    global _vault, _host_events, _settings, _open_lock
    if _vault is None:
        if _open_lock is None:
            # One per event loop; shutdown_vault() drops it
            _open_lock = asyncio.Lock()
        async with _open_lock:
            if _vault is None:
                settings = _settings or load_settings()
                store = SqliteStore(settings.db_path, scope=settings.storage_scope)
                vault = await BookmarkVault.open(store, settings)
                _host_events = HostEvents(vault, notification_seconds=settings.notification_seconds)
                _settings = settings
                _vault = vault
    return _vault


async def get_host_events(vault: BookmarkVault = Depends(get_vault)) -> HostEvents:
    return _host_events


async def shutdown_vault() -> None:
    """Stop timers and forget the vault (server shutdown)."""
    global _vault, _host_events, _open_lock
    if _host_events is not None:
        await _host_events.close()
    if _vault is not None:
        await _vault.close()
    _vault = None
    _host_events = None
    _open_lock = None


# Request Models
class UnlockRequest(BaseModel):
    password: str


class AddBookmarkRequest(BaseModel):
    title: str = Field("", max_length=1000)
    url: str = Field(..., min_length=1, max_length=8192)


class MoveBookmarkRequest(BaseModel):
    from_position: int
    to_position: int


def _error(status_code: int, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"message": message, "display_seconds": ERROR_MESSAGE_SECONDS},
    )


def _http_error(e: VaultError) -> HTTPException:
    """Map vault errors onto HTTP status codes."""
    if isinstance(e, EmptyPasswordError):
        return _error(status.HTTP_400_BAD_REQUEST, str(e))
    if isinstance(e, AuthenticationError):
        return _error(status.HTTP_401_UNAUTHORIZED, str(e))
    if isinstance(e, LockedError):
        return _error(status.HTTP_403_FORBIDDEN, str(e))
    if isinstance(e, PositionError):
        return _error(status.HTTP_404_NOT_FOUND, str(e))
    if isinstance(e, StorageError):
        logger.error(f"Storage failure: {e}")
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Bookmark storage is unavailable. Please try again.")
    return _error(status.HTTP_400_BAD_REQUEST, str(e))


def _ok(message: str, **data) -> dict:
    return {"success": True, "message": message, "display_seconds": SUCCESS_MESSAGE_SECONDS, **data}


# Endpoints

@router.get("/status")
async def get_status(
    vault: BookmarkVault = Depends(get_vault),
    token: str = Depends(verify_api_token),
):
    """Session state, whether a password exists, and storage mode."""
    return vault.status()


@router.post("/unlock")
async def unlock(
    request: UnlockRequest,
    vault: BookmarkVault = Depends(get_vault),
    token: str = Depends(verify_api_token),
):
    """
    Unlock the bookmarks.

    With no password set yet the given password becomes the password and
    the vault unlocks immediately.
    """
    first_time = vault.state == SessionState.NO_PASSWORD_SET
    try:
        state = await vault.unlock(request.password)
    except VaultError as e:
        raise _http_error(e)

    message = "Password set successfully!" if first_time else "Bookmarks unlocked"
    return _ok(message, state=state.value)


@router.post("/lock")
async def lock(
    vault: BookmarkVault = Depends(get_vault),
    token: str = Depends(verify_api_token),
):
    """Lock the bookmarks. The front end clears its password field."""
    try:
        await vault.lock()
    except VaultError as e:
        raise _http_error(e)
    return _ok("Bookmarks locked", state=vault.state.value)


@router.get("")
async def list_bookmarks(
    vault: BookmarkVault = Depends(get_vault),
    token: str = Depends(verify_api_token),
):
    """
    All bookmarks in display order with decrypted URLs.

    Records that could not be decrypted come back with ``broken: true`` and
    no URL; the rest are unaffected.
    """
    try:
        bookmarks = await vault.list_bookmarks()
    except VaultError as e:
        raise _http_error(e)
    return {"bookmarks": [b.to_dict() for b in bookmarks], "count": len(bookmarks)}


@router.post("")
async def add_bookmark(
    request: AddBookmarkRequest,
    vault: BookmarkVault = Depends(get_vault),
    token: str = Depends(verify_api_token),
):
    """Bookmark the current page (title and URL from the active tab)."""
    try:
        await vault.add_current_page(request.title, request.url)
    except VaultError as e:
        raise _http_error(e)
    return _ok("Bookmark added")


@router.delete("/{position}")
async def delete_bookmark(
    position: int,
    vault: BookmarkVault = Depends(get_vault),
    token: str = Depends(verify_api_token),
):
    """Delete the bookmark at ``position``. Later positions shift down by one."""
    try:
        await vault.delete_bookmark(position)
    except VaultError as e:
        raise _http_error(e)
    return _ok("Bookmark deleted")


@router.post("/move")
async def move_bookmark(
    request: MoveBookmarkRequest,
    vault: BookmarkVault = Depends(get_vault),
    token: str = Depends(verify_api_token),
):
    """Drag-and-drop reorder: move one bookmark to a new position."""
    try:
        await vault.reorder_bookmark(request.from_position, request.to_position)
    except VaultError as e:
        raise _http_error(e)
    return _ok("Bookmark moved")


@router.post("/events/add-current-page")
async def add_current_page_event(
    request: AddBookmarkRequest,
    host_events: HostEvents = Depends(get_host_events),
    token: str = Depends(verify_api_token),
):
    """
    Page-context "Add this page to Private Bookmarks" trigger.

    While locked nothing is stored and an "Unlock Required" notification is
    shown instead.
    """
    try:
        result = await host_events.on_add_current_page(request.title, request.url)
    except VaultError as e:
        raise _http_error(e)

    if result == AddPageResult.UNLOCK_REQUIRED:
        return {
            "success": False,
            "result": result.value,
            "message": UNLOCK_REQUIRED_MESSAGE,
            "display_seconds": host_events.notification_seconds,
        }
    return _ok("Bookmark added", result=result.value)
