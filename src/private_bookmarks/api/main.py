# Private Bookmarks - FastAPI Backend
#
# Local REST API for the bookmarks popup. Binds to localhost only; every
# bookmark route requires the per-server token from /api/session.

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..config import API_HOST_DEFAULT, API_PORT_DEFAULT, APP_NAME, APP_VERSION
from ..core import EventSeverity, EventType, get_audit_logger
from .bookmark_routes import router as bookmark_router, shutdown_vault
from .security import get_api_token, initialize_api_token

logger = logging.getLogger(__name__)

app = FastAPI(
    title=f"{APP_NAME} API",
    description="Password-protected bookmark vault",
    version=APP_VERSION,
)

_allowed_origins = [
    "http://localhost:8765", "http://127.0.0.1:8765",
    "http://localhost:3000", "http://127.0.0.1:3000",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(bookmark_router)


@app.on_event("startup")
async def startup_event():
    """Generate the API token. The vault itself opens on first request."""
    initialize_api_token()
    get_audit_logger().log_event(
        event_type=EventType.SYSTEM_START,
        severity=EventSeverity.INFO,
        message="Bookmark API started",
        details={"version": APP_VERSION},
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the auto-lock timer and pending notification clears."""
    await shutdown_vault()
    get_audit_logger().log_event(
        event_type=EventType.SYSTEM_STOP,
        severity=EventSeverity.INFO,
        message="Bookmark API stopped",
    )


@app.get("/api/session")
async def get_session():
    """
    Token for the X-Session-Token header.

    Unprotected so the front end can fetch it once on load. The token is
    random, changes on every restart, and the server only listens on
    localhost.
    """
    return {"session_token": get_api_token()}


@app.get("/api")
async def api_info():
    return {
        "name": f"{APP_NAME} API",
        "version": APP_VERSION,
        "status": "operational",
    }


def start_api_server(host: str = API_HOST_DEFAULT, port: int = API_PORT_DEFAULT):
    """
    Start FastAPI server.

    Args:
        host: Host to bind to (default: localhost only)
        port: Port to listen on
    """
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    start_api_server()
