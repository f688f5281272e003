# Private Bookmarks - API Token
#
# The local API is reachable by any process on the machine, so every route
# requires a per-server random token in the X-Session-Token header. The
# token is generated at server start and handed to the front end only.

import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

_API_TOKEN: Optional[str] = None


def initialize_api_token() -> str:
    """Generate the 256-bit API token for this server instance and return it."""
    global _API_TOKEN
    _API_TOKEN = secrets.token_urlsafe(32)
    return _API_TOKEN


def get_api_token() -> str:
    """
    Raises:
        RuntimeError: If initialize_api_token() has not run
    """
    if _API_TOKEN is None:
        raise RuntimeError("API token not initialized. Call initialize_api_token() first.")
    return _API_TOKEN


async def verify_api_token(x_session_token: Optional[str] = Header(None)) -> str:
    """
    FastAPI dependency: reject requests without the server's token.

    Raises:
        HTTPException: 503 before the token exists, 401 if missing or wrong
    """
    if _API_TOKEN is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="API token not initialized"
        )

    if x_session_token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Session-Token header"
        )

    if not secrets.compare_digest(x_session_token, _API_TOKEN):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token"
        )

    return x_session_token
