"""
Schema migrations for the purchase invoice tables.

Two modes are supported:

``recreate``
    Drop ``purchase_invoice_items`` and ``purchase_invoices`` if they exist,
    create them again from :mod:`accurate_sync.models`, then create the
    indexes.  Existing data is lost; use it when the schema changes in a
    backward-incompatible way.

``apply``
    Execute a SQL file statement by statement.  The bundled file only uses
    ``IF NOT EXISTS`` forms, so it can be re-run against a database that
    already holds data.

Both modes run every statement on one connection inside one transaction.
The first failing statement aborts the rest and is reported as a
``MigrationError`` naming the statement and the driver error.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Tuple, Union

import sqlparse
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateIndex, CreateTable, DropTable

from .config import Settings
from .db import Database
from .errors import MigrationError
from .models import purchase_invoice_items, purchase_invoices

logger = logging.getLogger(__name__)

MODES = ("recreate", "apply")
DEFAULT_SQL_FILE = Path(__file__).resolve().parent / "sql" / "create_purchase_invoices_tables.sql"
MIGRATED_TABLES = (purchase_invoices.name, purchase_invoice_items.name)


def _driver_error(exc: SQLAlchemyError) -> BaseException:
    return getattr(exc, "orig", None) or exc


def _recreate_steps() -> List[Tuple[str, object]]:
    steps: List[Tuple[str, object]] = [
        (f"drop table {purchase_invoice_items.name}", DropTable(purchase_invoice_items, if_exists=True)),
        (f"drop table {purchase_invoices.name}", DropTable(purchase_invoices, if_exists=True)),
        (f"create table {purchase_invoices.name}", CreateTable(purchase_invoices)),
        (f"create table {purchase_invoice_items.name}", CreateTable(purchase_invoice_items)),
    ]
    for table in (purchase_invoices, purchase_invoice_items):
        for index in sorted(table.indexes, key=lambda ix: ix.name):
            steps.append((f"create index {index.name}", CreateIndex(index)))
    return steps


def recreate_schema(database: Database) -> List[str]:
    """Drop and recreate both tables and their indexes; return the step labels run."""
    done: List[str] = []
    with database.begin() as conn:
        for label, ddl in _recreate_steps():
            logger.info("Migration step: %s", label)
            try:
                conn.execute(ddl)
            except SQLAlchemyError as exc:
                raise MigrationError(label, _driver_error(exc)) from exc
            done.append(label)
    return done


def split_sql_statements(sql: str) -> List[str]:
    """Split a SQL script into statements using sqlparse's lexer.

    Comments and the trailing ``;`` are dropped.  Semicolons inside quoted
    strings, ``/* */`` comments and dollar-quoted bodies (``$$`` or
    ``$tag$``) do not end a statement.
    """
    statements: List[str] = []
    for raw in sqlparse.split(sql):
        statement = sqlparse.format(raw, strip_comments=True).strip().rstrip(";").rstrip()
        if statement:
            statements.append(statement)
    return statements


def _summarize(statement: str, width: int = 80) -> str:
    line = " ".join(statement.split())
    return line if len(line) <= width else line[: width - 3] + "..."


def apply_sql_file(database: Database, path: Union[str, Path, None] = None) -> List[str]:
    """Execute ``path`` (default: the bundled schema file) statement by statement."""
    path = Path(path) if path is not None else DEFAULT_SQL_FILE
    try:
        sql = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise MigrationError(f"read {path}", exc) from exc

    statements = split_sql_statements(sql)
    total = len(statements)
    done: List[str] = []
    with database.begin() as conn:
        for number, statement in enumerate(statements, start=1):
            label = f"statement {number}/{total} of {path.name}: {_summarize(statement)}"
            logger.info("Migration step: %s", label)
            try:
                conn.exec_driver_sql(statement)
            except SQLAlchemyError as exc:
                raise MigrationError(label, _driver_error(exc)) from exc
            done.append(statement)
    return done


def describe_schema(database: Database) -> Dict[str, Dict[str, list]]:
    """Columns and index names of the migrated tables that currently exist."""
    insp = inspect(database.engine)
    present = set(insp.get_table_names())
    result: Dict[str, Dict[str, list]] = {}
    for table in MIGRATED_TABLES:
        if table not in present:
            continue
        result[table] = {
            "columns": [col["name"] for col in insp.get_columns(table)],
            "indexes": sorted(ix["name"] for ix in insp.get_indexes(table)),
        }
    return result


def run_migration(
    target: Union[Settings, Database, str],
    mode: str,
    sql_path: Union[str, Path, None] = None,
) -> Dict[str, object]:
    """Run one migration mode and always release the database.

    ``target`` may be settings, a URL or an already-built :class:`Database`;
    in every case the database is closed before returning or raising.
    """
    if mode not in MODES:
        raise ValueError(f"mode must be one of {MODES}, got {mode!r}")

    if isinstance(target, Database):
        database = target
    elif isinstance(target, Settings):
        database = Database.from_settings(target)
    else:
        database = Database(target)

    try:
        try:
            if mode == "recreate":
                steps = recreate_schema(database)
            else:
                steps = apply_sql_file(database, sql_path)
            schema = describe_schema(database)
        except SQLAlchemyError as exc:
            # connection/transaction failures outside any single statement
            raise MigrationError(f"{mode} migration on {database.engine.url!r}", _driver_error(exc)) from exc
    finally:
        database.close()

    for table, info in schema.items():
        logger.info("Table %s: %d columns, indexes: %s", table, len(info["columns"]), ", ".join(info["indexes"]))
    return {"mode": mode, "steps": len(steps), "schema": schema}


__all__ = [
    "MODES",
    "DEFAULT_SQL_FILE",
    "recreate_schema",
    "apply_sql_file",
    "split_sql_statements",
    "describe_schema",
    "run_migration",
]
