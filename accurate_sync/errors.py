"""
Exception hierarchy for accurate-sync.

Library code raises these and lets them propagate; the CLI catches
``AccurateSyncError`` at the top level, logs it and exits with status 1.
"""

from __future__ import annotations

from typing import Optional


class AccurateSyncError(Exception):
    pass


class ConfigError(AccurateSyncError):
    """A required setting (secret, client id, database URL) is missing."""


class AccurateConnectionError(AccurateSyncError):
    """No response was received from the Accurate API (DNS, refused, timeout)."""


class AccurateAPIError(AccurateSyncError):
    """Accurate answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str, url: Optional[str] = None) -> None:
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(f"HTTP {status_code}: {body}")


class DatabaseConnectionError(AccurateSyncError):
    """The database could not be reached or queried."""


class MigrationError(AccurateSyncError):
    """A migration statement failed; nothing after it was executed."""

    def __init__(self, context: str, original: BaseException) -> None:
        self.context = context
        self.original = original
        super().__init__(f"{context}: {original}")


class WorkflowError(AccurateSyncError):
    """A step of the local backend workflow check failed."""

    def __init__(self, step: str, message: str, status_code: Optional[int] = None, body=None) -> None:
        self.step = step
        self.status_code = status_code
        self.body = body
        super().__init__(f"{step}: {message}")


__all__ = [
    "AccurateSyncError",
    "ConfigError",
    "AccurateConnectionError",
    "AccurateAPIError",
    "DatabaseConnectionError",
    "MigrationError",
    "WorkflowError",
]
