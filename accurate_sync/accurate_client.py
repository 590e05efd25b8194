"""
Accurate API client.

A thin wrapper over ``requests`` that signs every call with a fresh
timestamp (see :mod:`accurate_sync.signature`) and addresses resources the
way Accurate does: ``<base_url>/<resource>.do``.  There is no
retry loop; a failure surfaces immediately as either
``AccurateAPIError`` (a response arrived with an error status) or
``AccurateConnectionError`` (no response at all).
"""

# accurate_sync/accurate_client.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from .config import Settings
from .errors import AccurateAPIError, AccurateConnectionError
from .signature import build_auth_headers

logger = logging.getLogger(__name__)


class AccurateClient:
    def __init__(
        self,
        base_url: str,
        client_id: Optional[str],
        signature_secret: Optional[str],
        *,
        session_id: Optional[str] = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.signature_secret = signature_secret
        self.session_id = session_id
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings, session_id: Optional[str] = None) -> "AccurateClient":
        client_id, secret = settings.require_signing()
        return cls(
            settings.accurate_base_url,
            client_id,
            secret,
            session_id=session_id or settings.accurate_session_id,
            timeout=settings.http_timeout,
        )

    def url_for(self, resource: str) -> str:
        resource = resource.strip("/")
        if not resource.endswith(".do"):
            resource = f"{resource}.do"
        return f"{self.base_url}/{resource}"

    def _request(
        self,
        method: str,
        resource: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> Dict[str, Any]:
        # raises ConfigError before any network call
        headers = build_auth_headers(self.client_id, self.signature_secret, session_id=self.session_id)
        url = self.url_for(resource)
        logger.debug("%s %s params=%s", method.upper(), url, params)
        try:
            resp = requests.request(
                method.upper(),
                url,
                headers=headers,
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise AccurateConnectionError(f"No response from {url}: {exc}") from exc

        if resp.status_code >= 400:
            raise AccurateAPIError(resp.status_code, resp.text, url=url)
        try:
            return resp.json()
        except ValueError:
            return {"text": resp.text}

    def list_databases(self) -> Dict[str, Any]:
        return self._request("GET", "db/list")

    def fetch_list(self, resource: str, params: Optional[dict] = None) -> Dict[str, Any]:
        """GET ``<resource>/list.do``; Accurate wraps rows as ``{"s": bool, "d": [...]}``."""
        return self._request("GET", f"{resource}/list", params=params)

    def fetch_detail(self, resource: str, record_id) -> Dict[str, Any]:
        return self._request("GET", f"{resource}/detail", params={"id": record_id})


__all__ = ["AccurateClient", "AccurateAPIError", "AccurateConnectionError"]
