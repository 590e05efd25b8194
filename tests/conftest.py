"""
Pytest configuration for accurate-sync tests.

The repository root is added to ``sys.path`` so ``accurate_sync`` imports
without an editable install.  Shared fixtures:

* ``clean_env`` removes every variable the tool reads and moves into a
  temporary directory, so a developer's ``.env`` or shell exports never leak
  into a test.
* ``database`` is a :class:`accurate_sync.db.Database` on a temporary SQLite
  file with the purchase invoice schema created via the recreate migration.
"""

import os
import sys

import pytest

# Compute the repository root relative to this file (tests directory is one level deep)
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))

# Prepend the root directory to sys.path if it's not already present
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from accurate_sync.db import Database  # noqa: E402
from accurate_sync.migrations import recreate_schema  # noqa: E402

ENV_VARS = (
    "DATABASE_URL",
    "PGHOST",
    "PGPORT",
    "PGUSER",
    "PGPASSWORD",
    "PGDATABASE",
    "ACCURATE_BASE_URL",
    "ACCURATE_CLIENT_ID",
    "ACCURATE_SIGNATURE_SECRET",
    "ACCURATE_SESSION_ID",
    "ACCURATE_HTTP_TIMEOUT",
    "BACKEND_BASE_URL",
    "LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite:///{tmp_path / 'accurate.db'}"


@pytest.fixture
def database(sqlite_url):
    db = Database(sqlite_url)
    recreate_schema(db)
    yield db
    db.close()
