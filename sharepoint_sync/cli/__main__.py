from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from collections import Counter
from pathlib import Path

import pandas as pd
from dotenv import load_dotenv

from sharepoint_sync.config.loader import ConfigError, SyncConfig, load_config
from sharepoint_sync.connectors.registry import SCHEMAS, build_connector, build_connectors, get_schema
from sharepoint_sync.db.memory import MemoryStore
from sharepoint_sync.db.postgres import PostgresStore
from sharepoint_sync.db.store import DestinationStore
from sharepoint_sync.errors import SourceError, StoreError, UnknownWorksheetError
from sharepoint_sync.excel.cells import normalize_headers
from sharepoint_sync.logging.error_log import ErrorLogBuffer
from sharepoint_sync.logging.init import log_summary, setup_logging
from sharepoint_sync.services.health import check_health
from sharepoint_sync.services.orchestrator import sync_all
from sharepoint_sync.services.progress import ProgressTracker
from sharepoint_sync.services.summary import render_summary_body
from sharepoint_sync.sharepoint.auth import TokenProvider
from sharepoint_sync.sharepoint.client import LocalFileSource, SharePointClient, WorkbookSource

"""CLI entrypoint.

    python -m sharepoint_sync.cli [--config PATH] [--debug] COMMAND

Commands:
    sync         sync worksheets (default set from config) and print the result
    status       recent sharepoint_sync_log rows
    health       per-table row counts and staleness; exit 1 when unhealthy
    reset        delete every row of one worksheet's table (needs --yes)
    list-sheets  worksheet names and sizes of a workbook
    inspect      normalized headers and first records of one worksheet

Exit codes: 0 success, 2 some worksheet failed, 1 fatal (config, connection).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

DEFAULT_CONFIG = Path("config/sync.yml")


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; values take precedence over the process env."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="sharepoint_sync", description="SharePoint worksheets -> PostgreSQL sync")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG, help="YAML config path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Sync worksheets")
    sync.add_argument("-w", "--worksheet", action="append", dest="worksheets", metavar="NAME",
                      help="Worksheet to sync (repeatable); default: config worksheets")
    sync.add_argument("--project-id", help="Project id stamped on inserted rows")
    sync.add_argument("--file", type=Path, help="Read a local .xlsx instead of SharePoint")
    sync.add_argument("--dry-run", action="store_true", help="Reconcile against an empty in-memory store")
    sync.add_argument("--json", action="store_true", help="Print the result as JSON")

    status = sub.add_parser("status", help="Show recent sync runs")
    status.add_argument("--limit", type=int, default=10)
    status.add_argument("--json", action="store_true")

    sub.add_parser("health", help="Check sync health per table")

    reset = sub.add_parser("reset", help="Delete all rows of a worksheet's table")
    reset.add_argument("worksheet")
    reset.add_argument("--yes", action="store_true", help="Confirm deletion")

    sheets = sub.add_parser("list-sheets", help="List worksheets of a workbook")
    sheets.add_argument("--source", default="lawley", help="Logical workbook name from config files")
    sheets.add_argument("--file", type=Path)

    inspect = sub.add_parser("inspect", help="Show headers and first records of a worksheet")
    inspect.add_argument("worksheet")
    inspect.add_argument("--rows", type=int, default=5)
    inspect.add_argument("--file", type=Path)
    return p.parse_args(argv)


def _open_store(cfg: SyncConfig, dry_run: bool = False) -> DestinationStore:
    # DISABLE_DB_CONNECT=1 forces the in-memory store (tests, offline runs)
    if dry_run or os.getenv("DISABLE_DB_CONNECT") == "1":
        return MemoryStore()
    return PostgresStore.connect(cfg.database)


def _open_source(cfg: SyncConfig, file: Path | None) -> WorkbookSource:
    if file is not None:
        return LocalFileSource(file)
    sp = cfg.sharepoint
    tokens = TokenProvider(sp.tenant_id, sp.client_id, sp.client_secret, timeout=sp.timeout_seconds)
    return SharePointClient(
        tokens,
        timeout=sp.timeout_seconds,
        max_retries=sp.max_retries,
        retry_delay=sp.retry_delay_seconds,
    )


def _cmd_sync(cfg: SyncConfig, args: argparse.Namespace, logger) -> int:
    names = args.worksheets or cfg.worksheets
    store = _open_store(cfg, dry_run=args.dry_run)
    try:
        connectors = build_connectors(
            store, names, chunk_overrides=cfg.chunk_overrides, progress_interval=cfg.progress_interval
        )
        source = _open_source(cfg, args.file)
        error_log = ErrorLogBuffer()
        logger.info(
            f"mode={'dry-run' if isinstance(store, MemoryStore) else 'live'} "
            f"worksheets={[c.worksheet_name for c in connectors]}"
        )
        with ProgressTracker(len(connectors)) as progress:
            result = asyncio.run(
                sync_all(
                    connectors,
                    source,
                    store,
                    locators=cfg.files,
                    project_id=args.project_id or cfg.project_id,
                    error_log=error_log,
                    progress=progress,
                )
            )
    finally:
        store.close()

    error_counts = Counter(r.error_type for r in error_log.records)
    log_path = error_log.flush()
    if log_path is not None:
        breakdown = ", ".join(f"{kind}={n}" for kind, n in sorted(error_counts.items()))
        logger.warning(f"errors written to {log_path} ({breakdown})")
    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False))
    log_summary(render_summary_body(result))
    return EXIT_SUCCESS_ALL if result.success else EXIT_PARTIAL_FAILURE


def _cmd_status(cfg: SyncConfig, args: argparse.Namespace, logger) -> int:
    store = _open_store(cfg)
    try:
        runs = asyncio.run(store.recent_sync_runs(args.limit))
    finally:
        store.close()
    if args.json:
        print(json.dumps(
            [
                {
                    "id": r.id,
                    "worksheet": r.worksheet_name,
                    "status": r.status.value,
                    "started_at": r.started_at.isoformat(),
                    "records_processed": r.records_processed,
                    "records_inserted": r.records_inserted,
                    "records_updated": r.records_updated,
                    "records_failed": r.records_failed,
                    "duration_ms": r.duration_ms,
                    "error": r.error_message,
                }
                for r in runs
            ],
            indent=2,
        ))
        return EXIT_SUCCESS_ALL
    if not runs:
        print("no sync runs recorded")
    for r in runs:
        line = (
            f"{r.started_at:%Y-%m-%d %H:%M:%S} {r.status.value:<8} {r.worksheet_name:<20} "
            f"processed={r.records_processed} inserted={r.records_inserted} "
            f"updated={r.records_updated} failed={r.records_failed} duration_ms={r.duration_ms}"
        )
        if r.error_message:
            line += f" error={r.error_message}"
        print(line)
    return EXIT_SUCCESS_ALL


def _cmd_health(cfg: SyncConfig, args: argparse.Namespace, logger) -> int:
    store = _open_store(cfg)
    try:
        report = asyncio.run(check_health(store, SCHEMAS.values()))
    finally:
        store.close()
    for h in report:
        since = f"{h.hours_since_sync}h ago" if h.hours_since_sync is not None else "never"
        detail = h.error if h.error else f"{h.row_count:>6} records | last: {since}"
        print(f"{h.status.value:<13} {h.table:<26} : {detail}")
    unhealthy = [h for h in report if not h.healthy]
    if unhealthy:
        logger.warning(f"{len(unhealthy)} table(s) need attention")
        return EXIT_FATAL
    logger.info("all tables healthy")
    return EXIT_SUCCESS_ALL


def _cmd_reset(cfg: SyncConfig, args: argparse.Namespace, logger) -> int:
    schema = get_schema(args.worksheet)
    if not args.yes:
        logger.error(f"reset would delete every row of {schema.table}; pass --yes to confirm")
        return EXIT_FATAL
    store = _open_store(cfg)
    try:
        removed = asyncio.run(store.reset_table(schema.table))
    finally:
        store.close()
    logger.info(f"{schema.table}: {removed} rows deleted")
    return EXIT_SUCCESS_ALL


def _cmd_list_sheets(cfg: SyncConfig, args: argparse.Namespace, logger) -> int:
    source = _open_source(cfg, args.file)
    workbook = asyncio.run(source.fetch(cfg.files.get(args.source, "")))
    for ws in workbook.worksheets:
        print(f"{ws.name:<30} rows={ws.row_count} columns={ws.column_count}")
    return EXIT_SUCCESS_ALL


def _cmd_inspect(cfg: SyncConfig, args: argparse.Namespace, logger) -> int:
    schema = get_schema(args.worksheet)
    source = _open_source(cfg, args.file)
    workbook = asyncio.run(source.fetch(cfg.files.get(schema.file_key, "")))
    worksheet = workbook.find(schema.name)
    if worksheet is None:
        logger.error(f"worksheet not found: {schema.name} (available: {workbook.sheet_names})")
        return EXIT_FATAL

    headers = normalize_headers(worksheet.row_cells(schema.header_row))
    print(f"SHEET: {schema.name} header_row={schema.header_row} columns={len(headers)}")
    for col, key in headers.items():
        print(f"  {col:>3}: {key}")
    connector = build_connector(schema, MemoryStore())
    records = connector.extract_data(worksheet)
    print(f"records={len(records)}")
    if records:
        with pd.option_context("display.max_columns", 20, "display.width", 200):
            print(pd.DataFrame(records[: args.rows]))
    return EXIT_SUCCESS_ALL


COMMANDS = {
    "sync": _cmd_sync,
    "status": _cmd_status,
    "health": _cmd_health,
    "reset": _cmd_reset,
    "list-sheets": _cmd_list_sheets,
    "inspect": _cmd_inspect,
}


def main(argv: list[str] | None = None) -> int:
    # None -> read sys.argv; [] stays [] (tests pass explicit lists)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    logger.debug("debug mode enabled")

    # .env first so it wins over the process environment
    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    try:
        return COMMANDS[args.command](cfg, args, logger)
    except (UnknownWorksheetError, StoreError, SourceError) as e:
        logger.error(f"{args.command}: {e}")
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
