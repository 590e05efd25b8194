"""
Explicit database resource.

Each command builds one :class:`Database`, hands it to the operations that
need it, and closes it (disposing the connection pool) when done, normally by
using it as a context manager.  There is no module-level engine.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session

from .config import Settings

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    def __init__(self, url: str, *, echo: bool = False, engine: Optional[Engine] = None) -> None:
        self.url = url
        self.engine: Engine = engine if engine is not None else create_engine(url, echo=echo, future=True)
        if self.engine.dialect.name == "sqlite" and not event.contains(
            self.engine, "connect", _enable_sqlite_foreign_keys
        ):
            # SQLite ignores FOREIGN KEY / ON DELETE CASCADE unless asked per connection
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings, *, echo: bool = False) -> "Database":
        return cls(settings.require_database_url(), echo=echo)

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        with self.engine.connect() as conn:
            yield conn

    @contextmanager
    def begin(self) -> Iterator[Connection]:
        """Connection inside a transaction: committed on success, rolled back on error."""
        with self.engine.begin() as conn:
            yield conn

    @contextmanager
    def session(self) -> Iterator[Session]:
        session = Session(self.engine)
        try:
            yield session
        finally:
            session.close()

    def close(self) -> None:
        if not self._closed:
            self.engine.dispose()
            self._closed = True
            logger.debug("Database pool closed")

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["Database"]
