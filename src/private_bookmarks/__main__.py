# Private Bookmarks - Main Entry Point
#
# Commands:
#   serve    Run the local bookmarks API (default)
#   install  Initialize the vault (first run, or --force to wipe)
#   status   Print session state and storage mode
#   lock     Lock an unlocked vault

import argparse
import asyncio
import json
import sys

from .config import APP_NAME, APP_VERSION, load_settings
from .core import EventSeverity, EventType, get_audit_logger
from .vault import BookmarkVault, SqliteStore, VaultError, install_state


def _open_store(settings) -> SqliteStore:
    return SqliteStore(settings.db_path, scope=settings.storage_scope)


async def _install(settings, plaintext: bool, force: bool) -> bool:
    store = _open_store(settings)
    encryption_enabled = settings.encryption_enabled and not plaintext
    return await install_state(store, encryption_enabled=encryption_enabled, force=force)


async def _status(settings) -> dict:
    vault = await BookmarkVault.open(_open_store(settings), settings)
    try:
        status = vault.status()
        status["db_path"] = str(settings.db_path)
        return status
    finally:
        await vault.close()


async def _lock(settings) -> bool:
    vault = await BookmarkVault.open(_open_store(settings), settings)
    try:
        was_unlocked = vault.is_unlocked
        await vault.lock()
        return was_unlocked
    finally:
        await vault.close()


def _serve(settings, host: str, port: int) -> None:
    print("=" * 60)
    print(f"  {APP_NAME} v{APP_VERSION}")
    print(f"  Starting API server on {host}:{port}...")
    print(f"  Vault: {settings.db_path} ({settings.storage_scope})")
    print("  Press Ctrl+C to stop")
    print("=" * 60)
    print()

    from .api.main import start_api_server

    try:
        start_api_server(host=host, port=port)
    except KeyboardInterrupt:
        print("\n\nShutting down...")
        get_audit_logger().log_event(
            event_type=EventType.SYSTEM_STOP,
            severity=EventSeverity.INFO,
            message=f"{APP_NAME} stopped (user interrupt)",
        )
    except Exception as e:
        print(f"\n\nError: {str(e)}")
        get_audit_logger().log_event(
            event_type=EventType.SYSTEM_STOP,
            severity=EventSeverity.CRITICAL,
            message=f"{APP_NAME} crashed: {str(e)}",
        )
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="private-bookmarks",
        description=f"{APP_NAME} - password-protected bookmark vault",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"{APP_NAME} v{APP_VERSION}",
    )
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the local bookmarks API")
    serve.add_argument("--host", default=None, help="Host to bind to (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=None, help="Port to listen on (default: 8765)")

    install = subparsers.add_parser("install", help="Initialize the vault")
    install.add_argument(
        "--plaintext",
        action="store_true",
        help="Store URLs unencrypted (no key is generated)",
    )
    install.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing vault, deleting its bookmarks and password",
    )

    subparsers.add_parser("status", help="Show session state and storage mode")
    subparsers.add_parser("lock", help="Lock the vault")
    return parser


def main(argv=None):
    """Main entry point for Private Bookmarks."""
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or "serve"

    try:
        settings = load_settings()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    get_audit_logger().log_event(
        event_type=EventType.SYSTEM_START,
        severity=EventSeverity.INFO,
        message=f"{APP_NAME} starting",
        details={"version": APP_VERSION, "command": command},
    )

    try:
        if command == "serve":
            host = getattr(args, "host", None) or settings.api_host
            port = getattr(args, "port", None) or settings.api_port
            _serve(settings, host, port)
        elif command == "install":
            installed = asyncio.run(_install(settings, args.plaintext, args.force))
            if installed:
                print(f"Vault initialized at {settings.db_path}")
            else:
                print("Vault already exists (use --force to overwrite)")
        elif command == "status":
            print(json.dumps(asyncio.run(_status(settings)), indent=2))
        elif command == "lock":
            if asyncio.run(_lock(settings)):
                print("Vault locked")
            else:
                print("Vault was not unlocked")
    except VaultError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
