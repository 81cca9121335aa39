"""
Acervo CLI — Catalog inspection and upload commands.

Commands:
- acervo stats            — Aggregate counters for the whole catalog
- acervo list             — Filtered listing (newest first)
- acervo show             — One record by id
- acervo folders          — Status folders with item counts
- acervo tree             — Nested folder tree derived from stored paths
- acervo misplaced        — Records whose folder disagrees with their status
- acervo set-status       — Change the status recorded for a record
- acervo delete           — Remove a record from the catalog (object stays in B2)
- acervo upload           — Upload local files through the two-phase workflow
- acervo test-connection  — Authorize against B2 and print the account urls

Every command prints JSON and returns 0 on success, 1 on failure.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger("acervo.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="acervo",
        description="Acervo — Media catalog for Backblaze B2",
    )
    parser.add_argument("--config", default=None, help="Path to acervo.yaml (default: auto-discover)")
    parser.add_argument("--db-file", default=None, help="Override the metadata document location")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("stats", help="Show catalog statistics")

    list_parser = subparsers.add_parser("list", help="List cataloged media")
    list_parser.add_argument("--area")
    list_parser.add_argument("--nucleus")
    list_parser.add_argument("--theme")
    list_parser.add_argument("--status")
    list_parser.add_argument("--point")
    list_parser.add_argument("--project-type")
    list_parser.add_argument("--historical-function")
    list_parser.add_argument("--event")
    list_parser.add_argument("--year", help="Four-digit year, e.g. 2024")
    list_parser.add_argument("--month", help="Month number, e.g. 03 or 3")
    list_parser.add_argument("--search", help="Case-insensitive text match on name/area/theme/nucleus")

    show_parser = subparsers.add_parser("show", help="Show one record")
    show_parser.add_argument("record_id")

    subparsers.add_parser("folders", help="List status folders with counts")
    subparsers.add_parser("tree", help="Show the folder tree")
    subparsers.add_parser("misplaced", help="List records stored outside their status folder")

    status_parser = subparsers.add_parser("set-status", help="Change a record's status")
    status_parser.add_argument("record_id")
    status_parser.add_argument("status")

    delete_parser = subparsers.add_parser("delete", help="Remove a record from the catalog")
    delete_parser.add_argument("record_id")

    upload_parser = subparsers.add_parser("upload", help="Upload local files")
    upload_parser.add_argument("files", nargs="+", help="Files to upload")
    upload_parser.add_argument("--area", required=True)
    upload_parser.add_argument("--theme", required=True)
    upload_parser.add_argument("--nucleus")
    upload_parser.add_argument("--status")
    upload_parser.add_argument("--point")
    upload_parser.add_argument("--project-type")
    upload_parser.add_argument("--historical-function")
    upload_parser.add_argument("--event")

    subparsers.add_parser("test-connection", help="Check B2 credentials")

    args = parser.parse_args(argv)

    commands = {
        "stats": cmd_stats,
        "list": cmd_list,
        "show": cmd_show,
        "folders": cmd_folders,
        "tree": cmd_tree,
        "misplaced": cmd_misplaced,
        "set-status": cmd_set_status,
        "delete": cmd_delete,
        "upload": cmd_upload,
        "test-connection": cmd_test_connection,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 0
    try:
        return handler(args)
    finally:
        from acervo.engine.logging import shutdown_logging

        shutdown_logging()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _build_api(args: argparse.Namespace):
    from acervo.engine.api import CatalogAPI
    from acervo.engine.config import load_config
    from acervo.engine.logging import init_logging, log, log_system_event

    config = load_config(getattr(args, "config", None))
    if getattr(args, "db_file", None):
        config.database.path = args.db_file
    logging.basicConfig(level=getattr(logging, config.logging.level.upper(), logging.INFO))

    queue_cfg = config.logging.async_queue
    init_logging(
        log_dir=config.logging.directory,
        flush_interval_ms=queue_cfg.flush_interval_ms,
        flush_batch_size=queue_cfg.flush_batch_size,
        max_queue_size=queue_cfg.max_queue_size,
    )
    log(log_system_event("cli_command", details={"command": args.command, "environment": config.environment}))
    return CatalogAPI.from_config(config)


def _emit(response: Any) -> int:
    print(json.dumps(response.body, indent=2, ensure_ascii=False, default=str))
    return 0 if response.ok else 1


def _metadata_from_args(args: argparse.Namespace) -> dict:
    fields = {
        "area": "area",
        "nucleus": "nucleus",
        "theme": "theme",
        "status": "status",
        "point": "point",
        "project_type": "projectType",
        "historical_function": "historicalFunction",
        "event": "event",
        "year": "year",
        "month": "month",
    }
    return {
        key: getattr(args, attr)
        for attr, key in fields.items()
        if getattr(args, attr, None)
    }


# ---------------------------------------------------------------------------
# Query commands
# ---------------------------------------------------------------------------

def cmd_stats(args: argparse.Namespace) -> int:
    return _emit(_build_api(args).stats())


def cmd_list(args: argparse.Namespace) -> int:
    filters = _metadata_from_args(args)
    if args.search:
        filters["search"] = args.search
    return _emit(_build_api(args).list(filters))


def cmd_show(args: argparse.Namespace) -> int:
    return _emit(_build_api(args).get(args.record_id))


def cmd_folders(args: argparse.Namespace) -> int:
    return _emit(_build_api(args).list_folders())


def cmd_tree(args: argparse.Namespace) -> int:
    return _emit(_build_api(args).folder_structure())


def cmd_misplaced(args: argparse.Namespace) -> int:
    api = _build_api(args)
    items = [r.to_media_item() for r in api.query.list_misplaced()]
    print(json.dumps({"success": True, "data": items, "total": len(items)}, indent=2, ensure_ascii=False))
    return 0


def cmd_set_status(args: argparse.Namespace) -> int:
    return _emit(_build_api(args).update_status(args.record_id, args.status))


def cmd_delete(args: argparse.Namespace) -> int:
    return _emit(_build_api(args).delete(args.record_id))


# ---------------------------------------------------------------------------
# Storage commands
# ---------------------------------------------------------------------------

def cmd_upload(args: argparse.Namespace) -> int:
    """
    Upload each file through request → transfer → confirm. Files that fail
    are reported and skipped; the exit code is 1 if any file failed.
    """
    from acervo.upload.coordinator import UploadItem

    api = _build_api(args)
    metadata = _metadata_from_args(args)

    items = []
    for name in args.files:
        path = Path(name)
        if not path.is_file():
            print(f"[ERROR] Not a file: {name}", file=sys.stderr)
            return 1
        content_type, _ = mimetypes.guess_type(path.name)
        items.append(UploadItem(
            file_name=path.name,
            size=path.stat().st_size,
            content_type=content_type,
            metadata=dict(metadata),
            data=path.read_bytes(),
        ))

    async def transfer(presigned, item):
        await api.storage.upload_bytes(presigned.handle, item.data or b"", item.content_type)

    async def run():
        async with api.storage:
            return await api.coordinator.process_batch(items, transfer)

    attempts = asyncio.run(run())
    print(json.dumps([a.to_dict() for a in attempts], indent=2, ensure_ascii=False))
    return 0 if all(a.succeeded for a in attempts) else 1


def cmd_test_connection(args: argparse.Namespace) -> int:
    api = _build_api(args)

    async def run():
        async with api.storage:
            return await api.test_connection()

    return _emit(asyncio.run(run()))


if __name__ == "__main__":
    sys.exit(main())
