"""Headless dashboard client — local mirror, reconciliation and auto-sync.

Usage:
    python -m draftdeck.dashboard list
    python -m draftdeck.dashboard add https://www.figma.com/design/<key>/<name>
    python -m draftdeck.dashboard remove <key>
    python -m draftdeck.dashboard clear
    python -m draftdeck.dashboard sync [--query TEXT]
    python -m draftdeck.dashboard watch

Talks to a running DraftDeck server (DRAFTDECK_SERVER_URL) and keeps the
device-local copy in DRAFTDECK_LOCAL_STORAGE_PATH.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass

import httpx

from draftdeck.config import Settings, settings as default_settings
from draftdeck.errors import DraftDeckError
from draftdeck.schemas.files import FileReference
from draftdeck.services.dashboard_api import DashboardApiClient
from draftdeck.services.local_mirror import LocalMirror
from draftdeck.services.reconciliation import AddOutcome, UserFilesSync
from draftdeck.services.scheduler import SyncScheduler
from draftdeck.storage import LocalStorage, create_storage_engine

logger = logging.getLogger(__name__)

# ANSI colors
CYAN = "\033[36m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
RED = "\033[31m"
RESET = "\033[0m"


def log(level: str, msg: str) -> None:
    colors = {"info": CYAN, "ok": GREEN, "warn": YELLOW, "error": RED}
    color = colors.get(level, "")
    print(f"{color}[{level}]{RESET} {msg}")


@dataclass
class DashboardSession:
    """Everything one dashboard instance needs, wired together."""
    storage: LocalStorage
    api: DashboardApiClient
    engine: UserFilesSync
    scheduler: SyncScheduler

    async def close(self) -> None:
        self.scheduler.shutdown()
        await self.engine.close()
        self.storage.dispose()


async def _token_available(api: DashboardApiClient) -> bool:
    if api.has_client_token:
        return True
    try:
        return await api.has_server_token()
    except DraftDeckError as e:
        logger.warning("Could not check server token: %s", e.message)
        return False


async def open_session(
    config: Settings | None = None,
    storage: LocalStorage | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> DashboardSession:
    """Build a session and show the mirror immediately (no network yet)."""
    config = config or default_settings
    storage = storage or LocalStorage(create_storage_engine(config.local_storage_path))
    api = DashboardApiClient(
        base_url=config.server_url,
        access_token=config.client_access_token,
        timeout=config.request_timeout_seconds,
        transport=transport,
    )
    engine = UserFilesSync(
        LocalMirror(storage),
        api,
        default_project_name=config.default_project_name,
        sync_log_size=config.sync_log_size,
    )
    engine.load_local()
    scheduler = SyncScheduler(
        engine,
        api,
        token_available=await _token_available(api),
        interval_seconds=config.auto_sync_interval_seconds,
        backfill_delay_seconds=config.thumbnail_backfill_delay_seconds,
    )
    return DashboardSession(storage=storage, api=api, engine=engine, scheduler=scheduler)


def _print_files(files: list[FileReference]) -> None:
    if not files:
        log("info", "No files")
        return
    for ref in files:
        project = ref.project_name or "-"
        thumb = "thumb" if ref.thumbnail_url else "no preview"
        print(f"  {ref.key:<24} {ref.name:<40} {project:<20} {ref.role:<8} {thumb}")


async def _run(args: argparse.Namespace) -> int:
    session = await open_session()
    engine = session.engine
    try:
        if args.command == "list":
            await engine.reconcile()
            _print_files(engine.files)

        elif args.command == "add":
            await engine.reconcile()
            outcome, ref = await engine.add_from_url(args.url)
            if outcome is AddOutcome.EXISTS:
                log("warn", f"'{ref.name}' ({ref.key}) is already in your list")
            else:
                log("ok", f"Added '{ref.name}' ({ref.key})")

        elif args.command == "remove":
            await engine.reconcile()
            if engine.remove_user_file(args.key):
                log("ok", f"Removed {args.key}")
            else:
                log("warn", f"{args.key} was not in your list")

        elif args.command == "clear":
            count = engine.clear_all_files()
            log("ok", f"Cleared {count} files")

        elif args.command == "sync":
            await engine.reconcile()
            files = await session.scheduler.sync_now(args.query)
            _print_files(files)

        elif args.command == "watch":
            await engine.reconcile()
            filled = await session.scheduler.run_thumbnail_backfill()
            log("info", f"Backfilled {filled} thumbnails")
            if not session.scheduler.start():
                log("error", "Auto-sync needs a Figma access token")
                return 1
            log("info", "Watching — press Ctrl+C to stop")
            while True:
                await asyncio.sleep(3600)

        await engine.wait_for_background()
        for entry in engine.sync_log:
            log("info", entry)
        return 0

    except DraftDeckError as e:
        log("error", e.message + (f" ({e.details})" if e.details else ""))
        return 1
    finally:
        await session.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="draftdeck-dashboard",
        description="Manage your curated Figma file list from the terminal.",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="Show your files (local list merged with the server)")
    add = sub.add_parser("add", help="Verify a Figma file URL and add it")
    add.add_argument("url")
    remove = sub.add_parser("remove", help="Remove a file by key")
    remove.add_argument("key")
    sub.add_parser("clear", help="Remove every file")
    sync = sub.add_parser("sync", help="Sync now and show curated + discovered files")
    sync.add_argument("--query", "-q", default=None, help="Filter discovered files by name")
    sub.add_parser("watch", help="Backfill thumbnails, then auto-sync until Ctrl+C")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, default_settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for noisy in ("httpx", "httpcore", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        print()
        log("info", "Ctrl+C received, shutting down...")
        return 0


if __name__ == "__main__":
    sys.exit(main())
