"""
Shared pytest fixtures for the Private Bookmarks test suite.

Autouse fixtures below isolate tests from the live application data:
  - Audit logger      -> temp directory  (no test events in the real audit log)
  - Environment       -> no PRIVATE_BOOKMARKS_* variables leak in
  - API vault         -> reset per test  (no vault shared between tests)
"""

import asyncio
import json

import pytest


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path):
    """Point the global AuditLogger at a temp directory for every test."""
    import private_bookmarks.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    audit = audit_mod.AuditLogger(log_dir=tmp_path / "audit_logs")
    audit_mod.set_audit_logger(audit)

    yield audit

    audit.close()
    audit_mod.set_audit_logger(old_logger)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    import os

    for name in list(os.environ):
        if name.startswith("PRIVATE_BOOKMARKS_"):
            monkeypatch.delenv(name)


@pytest.fixture(autouse=True)
def _isolate_api_vault():
    """Force the API to open a fresh vault in every test."""
    import private_bookmarks.api.bookmark_routes as routes_mod

    old = (routes_mod._vault, routes_mod._host_events, routes_mod._settings, routes_mod._open_lock)
    routes_mod._vault = None
    routes_mod._host_events = None
    routes_mod._settings = None
    routes_mod._open_lock = None

    yield

    routes_mod._vault, routes_mod._host_events, routes_mod._settings, routes_mod._open_lock = old


@pytest.fixture
def audit_events(tmp_path):
    """Callable returning the audit events written so far, oldest first."""

    def read():
        events = []
        for log_file in sorted((tmp_path / "audit_logs").glob("audit_*.log")):
            for line in log_file.read_text(encoding="utf-8").splitlines():
                if line.strip():
                    events.append(json.loads(line))
        return events

    return read


async def settle(rounds: int = 10) -> None:
    """Let scheduled tasks run until they block again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualSleep:
    """
    Drop-in for ``asyncio.sleep`` that only returns when the test says so.

    ``requested`` records every delay asked for; ``fire()`` wakes everything
    currently sleeping.
    """

    def __init__(self):
        self.requested = []
        self._waiters = []

    async def __call__(self, seconds):
        self.requested.append(seconds)
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        await fut

    @property
    def pending(self) -> int:
        return sum(1 for fut in self._waiters if not fut.done())

    @staticmethod
    async def settle() -> None:
        await settle()

    async def fire(self) -> None:
        await settle()
        waiters, self._waiters = self._waiters, []
        for fut in waiters:
            if not fut.done():
                fut.set_result(None)
        await settle()


@pytest.fixture
def manual_sleep():
    return ManualSleep()
