"""
Signed-request helpers for the Accurate API.

Accurate authenticates a request with three headers: a bearer client id,
the timestamp the request was made at, and ``HMAC_SHA256(secret, timestamp)``
hex-encoded.  The server recomputes the signature from the header it
received, so the exact timestamp string that was signed must be the one that
is sent.  ``build_auth_headers`` captures the timestamp once and uses it for
both.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from datetime import datetime, timezone
from typing import Dict, Optional

from .errors import ConfigError


def make_timestamp(now: Optional[datetime] = None) -> str:
    """Return an ISO-8601 UTC timestamp with millisecond precision, e.g.
    ``2024-01-01T00:00:00.000Z``."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _digest(secret: Optional[str], timestamp: str) -> bytes:
    if not secret:
        raise ConfigError("ACCURATE_SIGNATURE_SECRET is not set")
    return hmac.new(secret.encode("utf-8"), timestamp.encode("utf-8"), hashlib.sha256).digest()


def generate_signature(secret: Optional[str], timestamp: str) -> str:
    """HMAC-SHA256 of ``timestamp`` keyed with ``secret``, as 64 lowercase hex chars."""
    return _digest(secret, timestamp).hex()


def generate_signature_base64(secret: Optional[str], timestamp: str) -> str:
    return base64.b64encode(_digest(secret, timestamp)).decode("ascii")


def build_auth_headers(
    client_id: Optional[str],
    secret: Optional[str],
    *,
    timestamp: Optional[str] = None,
    session_id: Optional[str] = None,
) -> Dict[str, str]:
    """Return the headers for one signed Accurate request.

    ``client_id`` goes out as the bearer token. ``timestamp`` is signed as-is
    when given, otherwise a fresh one is generated. ``session_id`` (the
    Accurate database id) is sent as ``X-Session-ID`` when present.
    """
    if not secret:
        raise ConfigError("ACCURATE_SIGNATURE_SECRET is not set")
    if not client_id:
        raise ConfigError("ACCURATE_CLIENT_ID is not set")
    ts = timestamp if timestamp is not None else make_timestamp()
    headers = {
        "Authorization": f"Bearer {client_id}",
        "X-API-Timestamp": ts,
        "X-Api-Signature": generate_signature(secret, ts),
        "Content-Type": "application/json",
    }
    if session_id:
        headers["X-Session-ID"] = str(session_id)
    return headers


__all__ = ["make_timestamp", "generate_signature", "generate_signature_base64", "build_auth_headers"]
