"""secure-settings -- command-line entry point.

Usage::

    python -m secure_settings [--config PATH] [--data-dir DIR] <command> [args]

Commands:
    status          backends, document path and entry counts
    keys            list stored keys
    get KEY         print the plaintext for KEY
    set KEY [VALUE] store VALUE (read from stdin when omitted)
    delete KEY      remove KEY
    clear           remove every entry
    migrate         re-encrypt legacy Safe Storage entries with libsodium
    legacy list     list legacy entries
    legacy clear    remove legacy entries
    path            print the document path

Exit status is 0 on success and 1 when the operation reports failure or the
key does not exist.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from secure_settings.config import Settings, load_settings
from secure_settings.context import StoreContext, create_context
from secure_settings.errors import ValidationError
from secure_settings.models import LookupStatus

logger = logging.getLogger("secure_settings")


# ---------------------------------------------------------------------------
# Integration seams -- module-level so tests can patch them individually.
# ---------------------------------------------------------------------------


def load_config(config_path: str | None, data_dir: str | None) -> Settings:
    """Load settings from YAML/env and apply CLI overrides."""
    settings = load_settings(config_path=Path(config_path) if config_path else None)
    if data_dir:
        settings.store.data_dir = data_dir
    return settings


async def open_store(settings: Settings) -> StoreContext:
    return await create_context(settings=settings)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_status(ctx: StoreContext, args: argparse.Namespace) -> int:
    store = ctx.store
    caps = store.capabilities
    print(f"path:    {store.get_settings_path()}")
    print(f"sodium:  {'available' if caps.sodium else 'unavailable'}")
    print(f"legacy:  {'available' if caps.legacy else 'unavailable'}")
    print(f"entries: {len(store.get_keys())}")
    print(f"legacy entries: {len(store.get_legacy_keys())}")
    return 0


def _cmd_keys(ctx: StoreContext, args: argparse.Namespace) -> int:
    for key in ctx.store.get_keys():
        print(key)
    return 0


def _cmd_get(ctx: StoreContext, args: argparse.Namespace) -> int:
    lookup = ctx.store.lookup_secret(args.key)
    if lookup.status is LookupStatus.FOUND:
        print(lookup.value)
        return 0
    if lookup.status is LookupStatus.NOT_FOUND:
        print(f"{args.key}: not found", file=sys.stderr)
    else:
        print(f"{args.key}: {lookup.status.value} ({lookup.reason})", file=sys.stderr)
    return 1


def _cmd_set(ctx: StoreContext, args: argparse.Namespace) -> int:
    value = args.value if args.value is not None else sys.stdin.readline().rstrip("\n")
    try:
        ok = ctx.store.set_secret(args.key, value)
    except ValidationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0 if ok else 1


def _cmd_delete(ctx: StoreContext, args: argparse.Namespace) -> int:
    return 0 if ctx.store.delete_secret(args.key) else 1


def _cmd_clear(ctx: StoreContext, args: argparse.Namespace) -> int:
    return 0 if ctx.store.clear() else 1


def _cmd_migrate(ctx: StoreContext, args: argparse.Namespace) -> int:
    result = ctx.store.migrate_to_sodium()
    for key in result.migrated:
        print(f"migrated: {key}")
    for failure in result.failed:
        print(f"failed:   {failure.key} ({failure.reason})", file=sys.stderr)
    if result.error:
        print(f"error: {result.error}", file=sys.stderr)
    return 0 if result.success and not result.failed else 1


def _cmd_legacy(ctx: StoreContext, args: argparse.Namespace) -> int:
    if args.action == "clear":
        pending = ctx.store.get_legacy_keys()
        keys = ctx.store.clear_legacy_data()
        if pending and not keys:
            print("error: legacy entries could not be removed", file=sys.stderr)
            return 1
    else:
        keys = ctx.store.get_legacy_keys()
    for key in keys:
        print(key)
    return 0


def _cmd_path(ctx: StoreContext, args: argparse.Namespace) -> int:
    print(ctx.store.get_settings_path())
    return 0


_COMMANDS = {
    "status": _cmd_status,
    "keys": _cmd_keys,
    "get": _cmd_get,
    "set": _cmd_set,
    "delete": _cmd_delete,
    "clear": _cmd_clear,
    "migrate": _cmd_migrate,
    "legacy": _cmd_legacy,
    "path": _cmd_path,
}


# ---------------------------------------------------------------------------
# CLI argument parsing
# ---------------------------------------------------------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Parameters
    ----------
    argv:
        Argument list.  Defaults to ``sys.argv[1:]`` when ``None``.
    """
    parser = argparse.ArgumentParser(
        prog="secure_settings",
        description="Machine-bound encrypted storage for local secrets",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to YAML configuration file")
    parser.add_argument("--data-dir", type=str, default=None, help="Directory holding the secret document")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Show backends and entry counts")
    sub.add_parser("keys", help="List stored keys")
    get = sub.add_parser("get", help="Print a secret")
    get.add_argument("key")
    set_ = sub.add_parser("set", help="Store a secret")
    set_.add_argument("key")
    set_.add_argument("value", nargs="?", default=None)
    delete = sub.add_parser("delete", help="Remove a secret")
    delete.add_argument("key")
    sub.add_parser("clear", help="Remove every secret")
    sub.add_parser("migrate", help="Re-encrypt legacy entries with libsodium")
    legacy = sub.add_parser("legacy", help="Inspect or remove legacy entries")
    legacy.add_argument("action", choices=["list", "clear"])
    sub.add_parser("path", help="Print the document path")
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Main run coroutine
# ---------------------------------------------------------------------------


async def run(args: argparse.Namespace, settings: Settings) -> int:
    """Initialize the store and dispatch *args.command*."""
    ctx = await open_store(settings)
    return _COMMANDS[args.command](ctx, args)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI args and run one command."""
    args = parse_args(argv)
    settings = load_config(args.config, args.data_dir)

    logging.basicConfig(
        level=getattr(logging, settings.logging.level),
        format=settings.logging.format,
    )

    try:
        code = asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
