# Private Bookmarks - SQLite Connection Helper
#
# Every SQLite-backed store opens its connections through `connect()` so
# that all of them share the same PRAGMAs:
#
#   - WAL journal mode (the API server and the CLI may read while one writes)
#   - busy_timeout so a second process waits instead of failing with
#     SQLITE_BUSY
#   - synchronous=FULL so a committed bookmark write survives a crash

import sqlite3
from pathlib import Path
from typing import Union

BUSY_TIMEOUT_MS = 5000


def connect(
    db_path: Union[str, Path],
    *,
    row_factory: bool = False,
) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode and durable writes.

    Args:
        db_path: Path to the database file. The parent directory is created.
        row_factory: If True, set conn.row_factory = sqlite3.Row.

    Returns:
        sqlite3.Connection ready for use as a context manager.
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    # Worker threads from asyncio.to_thread open and close their own
    # connection, so the same-thread check never trips.
    conn = sqlite3.connect(str(path), timeout=BUSY_TIMEOUT_MS / 1000)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
    conn.execute("PRAGMA synchronous=FULL")
    if row_factory:
        conn.row_factory = sqlite3.Row
    return conn
