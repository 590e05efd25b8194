"""
Tooling for the Accurate accounting API integration.

The modules in this package cover signed requests against Accurate, the
purchase invoice schema and its migrations, the idempotent ingestion write
path, and the smoke checks used against a running backend.  The
``accurate-sync`` command (see :mod:`accurate_sync.cli`) is the entry point.
"""

__all__ = [
    "accurate_client",
    "cli",
    "config",
    "db",
    "errors",
    "ingest",
    "migrations",
    "models",
    "signature",
    "smoke",
]
