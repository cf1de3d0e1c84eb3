"""filasync command line entry point.

Wires the document store, settings, relay client and sync engine together
and runs one operation (or the periodic sync loop with `watch`).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import SyncConfig, load_config
from .document_store import DocumentStore
from .errors import SyncError
from .local_store import LocalStoreAdapter
from .logging_config import setup_logging
from .models import SyncAlert
from .relay_client import RelayClient
from .settings_store import SettingsStore
from .sync_engine import SyncEngine

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="filasync", description="Filament inventory cloud sync")
    sub = parser.add_subparsers(dest="command", required=True)

    setup = sub.add_parser("setup", help="request a sync key by email")
    setup.add_argument("email")
    verify = sub.add_parser("verify", help="engage sync with a key from email or another device")
    verify.add_argument("key")
    forgot = sub.add_parser("forgot", help="email the keys registered to an address")
    forgot.add_argument("email")

    sub.add_parser("sync", help="sync now (respects the cooldown)")
    sub.add_parser("push", help="force push local data to the cloud")
    sub.add_parser("pull", help="force pull and merge cloud data")
    sub.add_parser("status", help="show sync status")
    sub.add_parser("watch", help="sync periodically until interrupted")

    remove = sub.add_parser("remove", help="remove sync from this device")
    remove.add_argument("--yes", action="store_true", help="skip the confirmation prompt")

    export = sub.add_parser("export", help="write a backup file")
    export.add_argument("path")
    restore = sub.add_parser("import", help="restore a backup file")
    restore.add_argument("path")
    return parser


def _confirm_removal() -> bool:
    answer = input("Are you sure you want to remove your sync? [y/N] ")
    return answer.strip().lower() in ("y", "yes")


def _report(alert: SyncAlert) -> int:
    stream = sys.stdout if alert.ok else sys.stderr
    print(f"[{alert.variant}] {alert.message}", file=stream)
    return 0 if alert.ok else 1


async def run(args: argparse.Namespace, config: SyncConfig) -> int:
    store = DocumentStore(config.filament_db_path)
    store.load()
    local = LocalStoreAdapter(store)
    local.migrate()
    settings = SettingsStore(config.settings_path)
    settings.load()
    relay = RelayClient(config)
    engine = SyncEngine(local, relay, settings, config)

    try:
        if args.command == "setup":
            return _report(await engine.create_sync_identity(args.email))
        if args.command == "verify":
            return _report(await engine.adopt_existing_key(args.key))
        if args.command == "forgot":
            return _report(await engine.forgot_key(args.email))
        if args.command == "sync":
            return _report(await engine.check_for_updates())
        if args.command == "push":
            return _report(await engine.force_push())
        if args.command == "pull":
            return _report(await engine.force_pull())
        if args.command == "remove":
            return _report(await engine.remove_sync(True if args.yes else _confirm_removal))
        if args.command == "status":
            identity = engine.identity
            print(f"status:      {engine.load().value}")
            if identity is not None:
                print(f"email:       {identity.email or '-'}")
                print(f"last synced: {identity.last_synced or 'never'}")
            print(f"records:     {len(local.all_records())}")
            print(f"cooldown:    {engine.cooldown_remaining()}s")
            return 0
        if args.command == "export":
            print(local.export_to_file(args.path))
            return 0
        if args.command == "import":
            try:
                report = local.import_from_file(args.path)
            except (SyncError, OSError, ValueError) as e:
                print(f"[danger] Import failed: {e}", file=sys.stderr)
                return 1
            engine.update_last_modified()
            print(f"Imported {report.total} documents")
            return 0
        if args.command == "watch":
            await engine.periodic_sync_loop()
            return 0
        return 2
    except asyncio.CancelledError:
        logger.info("Shutting down (cancelled)")
        return 130
    finally:
        await relay.close()


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    config = load_config()
    setup_logging(config.log_level)
    try:
        code = asyncio.run(run(args, config))
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
