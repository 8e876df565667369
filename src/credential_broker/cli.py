"""CLI for credential-broker - operator diagnostics.

Usage:
    credential-broker status                       # Show credential and settings status
    credential-broker import-key <path>            # Import service account key
    credential-broker token                        # Acquire a token, show its expiry
    credential-broker config                       # Show the config record
    credential-broker licenses                     # List license entries
    credential-broker active                       # Show the active license
    credential-broker set-active <account> <key>   # Set the active license
    credential-broker server                       # Show the license server
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import shutil
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any


def mask(value: str | None, visible: int = 4) -> str:
    """Mask a secret, keeping only its last few characters."""
    if not value:
        return "(empty)"
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]


def cmd_status() -> int:
    """Show status of the configured credentials."""
    from credential_broker.config import get_credential_status

    status = get_credential_status()

    print("=" * 60)
    print("CREDENTIAL-BROKER STATUS")
    print("=" * 60)
    print()
    print(f"Repository: {status['repo_root']}")
    print()
    print(f"  .env:                 {'[x]' if status['env_file'] else '[ ]'}")
    print(f"  spreadsheet id:       {'[x]' if status['spreadsheet_id'] else '[ ]'}")
    print(f"  service account key:  {'[x]' if status['service_account']['exists'] else '[ ]'}")
    print(f"    {status['service_account']['path']}")
    print()
    return 0


def import_key(source_path: str) -> int:
    """Import service account key from a file."""
    from credential_broker.config import GOOGLE_SERVICE_ACCOUNT, ensure_google_dir
    from credential_broker.google import InvalidKeyError, ServiceAccountKey

    source = Path(source_path).expanduser()

    if not source.exists():
        print(f"Error: File not found: {source}")
        return 1

    try:
        key = ServiceAccountKey.from_file(source)
    except InvalidKeyError as e:
        print(f"Error: {e}")
        return 1

    ensure_google_dir()
    shutil.copy2(source, GOOGLE_SERVICE_ACCOUNT)

    print("Imported service account key")
    print(f"  From: {source}")
    print(f"  To:   {GOOGLE_SERVICE_ACCOUNT}")
    print(f"  Email: {key.email}")
    print(f"  Project: {key.project_id or 'unknown'}")
    print()
    print("Remember to share the broker spreadsheet with the service account email!")
    return 0


async def _token(store: Any) -> None:
    await store.tokens.ensure_token()
    info = store.tokens.get_token_info()
    print(f"Status     : {info['status']}")
    print(f"Scope      : {info['scope']}")
    print(f"Expires in : {info['expires_in']}")
    print(f"Refresh in : {info['refresh_in']}")


async def _config(store: Any) -> None:
    config = await store.get_config()
    print(f"API key : {mask(config.api_key)}")
    print(f"Model   : {config.model or '(empty)'}")
    print(f"Server  : {config.server_address or '(empty)'}")


async def _licenses(store: Any) -> None:
    licenses = await store.list_licenses()
    if not licenses:
        print("No licenses found")
        return
    for entry in licenses:
        print(f"  {entry.account}\t{mask(entry.license_key)}")
    print(f"\n{len(licenses)} license(s)")


async def _active(store: Any) -> None:
    entry = await store.get_active_license()
    if not entry.account and not entry.license_key:
        print("No active license")
        return
    print(json.dumps({"account": entry.account, "license_key": mask(entry.license_key)}))


def _set_active(account: str, license_key: str) -> Callable[[Any], Awaitable[None]]:
    async def run(store: Any) -> None:
        await store.set_active_license(account, license_key)
        print(f"Active license set to {account}")

    return run


async def _server(store: Any) -> None:
    server = await store.get_license_server()
    print(server or "(empty)")


def run_with_store(action: Callable[[Any], Awaitable[None]]) -> int:
    """Build a store from the environment and run one action against it."""
    from credential_broker.config import BrokerSettings
    from credential_broker.google import GoogleAuthError
    from credential_broker.sheets import FetchError
    from credential_broker.store import CredentialStore

    try:
        settings = BrokerSettings.from_env()
        store = CredentialStore.from_settings(settings)
    except (ValueError, GoogleAuthError) as e:
        print(f"Error: {e}")
        print("Run 'credential-broker status' to check your setup")
        return 1

    async def main() -> None:
        async with store:
            await action(store)

    try:
        asyncio.run(main())
    except (GoogleAuthError, FetchError) as e:
        print(f"Error: {e}")
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="credential-broker",
        description="Spreadsheet-backed credential and license broker",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command")

    subparsers.add_parser("status", help="Show credential and settings status")

    import_key_parser = subparsers.add_parser("import-key", help="Import service account key")
    import_key_parser.add_argument("path", help="Path to service account JSON key file")

    subparsers.add_parser("token", help="Acquire an access token and show its expiry")
    subparsers.add_parser("config", help="Show the config record")
    subparsers.add_parser("licenses", help="List license entries")
    subparsers.add_parser("active", help="Show the active license")

    set_active_parser = subparsers.add_parser("set-active", help="Set the active license")
    set_active_parser.add_argument("account", help="Account name")
    set_active_parser.add_argument("license_key", help="License key")

    subparsers.add_parser("server", help="Show the license server")

    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "status":
        return cmd_status()

    if args.command == "import-key":
        return import_key(args.path)

    actions: dict[str, Callable[[Any], Awaitable[None]]] = {
        "token": _token,
        "config": _config,
        "licenses": _licenses,
        "active": _active,
        "server": _server,
    }
    if args.command == "set-active":
        return run_with_store(_set_active(args.account, args.license_key))
    if args.command in actions:
        return run_with_store(actions[args.command])

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
