"""
Command-line interface for accurate-sync.

Subcommands:

``migrate``       create the purchase invoice tables (``--mode recreate|apply``)
``signature``     show the signed headers a request would carry
``check-api``     one signed list call against Accurate
``check-db``      PostgreSQL connectivity, tables and row counts
``workflow``      run the local backend through sync/list/detail/summary
``ingest-file``   upsert saved Accurate purchase invoice detail JSON

Each run is independent: configuration is read, the command runs its calls
in order, resources are released, and the process exits 0 on success or 1
after logging any error.
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .accurate_client import AccurateClient
from .config import Settings, load_settings
from .db import Database
from .errors import AccurateAPIError, AccurateSyncError, ConfigError, MigrationError, WorkflowError
from .ingest import ingest_detail
from .migrations import DEFAULT_SQL_FILE, MODES, run_migration
from .smoke import check_accurate_api, check_database, check_signature, run_workflow

logger = logging.getLogger("accurate_sync")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


# --- commands ---

def cmd_migrate(args: argparse.Namespace, settings: Settings) -> int:
    sql_path = Path(args.sql_file) if args.sql_file else None
    logger.info("Running %s migration", args.mode)
    summary = run_migration(settings, args.mode, sql_path)
    logger.info("Migration completed successfully (%d steps)", summary["steps"])
    return 0


def cmd_signature(args: argparse.Namespace, settings: Settings) -> int:
    check_signature(settings)
    return 0


def cmd_check_api(args: argparse.Namespace, settings: Settings) -> int:
    client = AccurateClient.from_settings(settings, session_id=args.session_id)
    check_accurate_api(client, args.resource, detail=args.detail)
    return 0


def cmd_check_db(args: argparse.Namespace, settings: Settings) -> int:
    with Database.from_settings(settings) as database:
        check_database(database)
    return 0


def cmd_workflow(args: argparse.Namespace, settings: Settings) -> int:
    run_workflow(
        args.base_url or settings.backend_base_url,
        max_items=args.max_items,
        timeout=settings.http_timeout,
    )
    return 0


def cmd_ingest_file(args: argparse.Namespace, settings: Settings) -> int:
    payload = json.loads(Path(args.path).read_text(encoding="utf-8"))
    details = payload if isinstance(payload, list) else [payload]
    with Database.from_settings(settings) as database:
        with database.begin() as conn:
            for detail in details:
                ingest_detail(conn, detail, args.branch_id, args.branch_name)
    logger.info("Ingested %d purchase invoice(s) from %s", len(details), args.path)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="accurate-sync", description="Accurate API integration tooling")
    parser.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("migrate", help="Create or update the purchase invoice tables")
    p.add_argument("--mode", choices=MODES, default="apply",
                   help="recreate: drop and recreate (destroys data); apply: run the idempotent SQL file")
    p.add_argument("--sql-file", default=None, help=f"SQL file for --mode apply (default: {DEFAULT_SQL_FILE.name})")
    p.add_argument("--database-url", default=None, help="SQLAlchemy database URL (default: DATABASE_URL)")
    p.set_defaults(func=cmd_migrate)

    p = sub.add_parser("signature", help="Show the signed headers for a request made now")
    p.set_defaults(func=cmd_signature)

    p = sub.add_parser("check-api", help="Call <resource>/list.do on Accurate")
    p.add_argument("--resource", default="sales-invoice")
    p.add_argument("--session-id", default=None, help="Accurate database id (X-Session-ID)")
    p.add_argument("--detail", action="store_true", help="Also fetch the detail of the first row")
    p.set_defaults(func=cmd_check_api)

    p = sub.add_parser("check-db", help="Check PostgreSQL connectivity and table counts")
    p.add_argument("--database-url", default=None, help="SQLAlchemy database URL (default: DATABASE_URL)")
    p.set_defaults(func=cmd_check_db)

    p = sub.add_parser("workflow", help="Exercise the local backend's sync workflow")
    p.add_argument("--base-url", default=None, help="Backend base URL (default: BACKEND_BASE_URL)")
    p.add_argument("--max-items", type=int, default=10)
    p.set_defaults(func=cmd_workflow)

    p = sub.add_parser("ingest-file", help="Upsert Accurate purchase invoice detail JSON into the database")
    p.add_argument("path", help="JSON file: one detail response or a list of them")
    p.add_argument("--branch-id", required=True)
    p.add_argument("--branch-name", default=None)
    p.add_argument("--database-url", default=None, help="SQLAlchemy database URL (default: DATABASE_URL)")
    p.set_defaults(func=cmd_ingest_file)

    return parser


def _report(exc: AccurateSyncError) -> None:
    if isinstance(exc, MigrationError):
        logger.error("Migration failed at %s", exc.context)
        logger.error("Driver error: %s", exc.original)
    elif isinstance(exc, AccurateAPIError):
        logger.error("Accurate API error: status %s from %s", exc.status_code, exc.url)
        logger.error("Response body: %s", exc.body)
    elif isinstance(exc, WorkflowError):
        logger.error("Workflow failed at step %r: %s", exc.step, exc)
        if exc.body is not None:
            logger.error("Response body: %s", exc.body)
        logger.error("Check that the backend is running and that PostgreSQL and .env are configured")
    elif isinstance(exc, ConfigError):
        logger.error("Configuration error: %s", exc)
    else:
        logger.error("%s: %s", type(exc).__name__, exc)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = load_settings()
    except ConfigError as exc:
        configure_logging(args.log_level or "INFO")
        _report(exc)
        return 1
    if getattr(args, "database_url", None):
        settings = settings.model_copy(update={"database_url": args.database_url})
    configure_logging(args.log_level or settings.log_level)

    try:
        return args.func(args, settings)
    except AccurateSyncError as exc:
        _report(exc)
        return 1
    except SQLAlchemyError as exc:
        logger.error("Database error: %s", getattr(exc, "orig", None) or exc)
        return 1
    except (OSError, ValueError) as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
