"""
Smoke checks run by hand against real services.

Each check performs a short, strictly ordered sequence of calls and logs
what it saw:

* ``check_signature``: print the timestamp, signature and headers a request
  would carry, without sending anything.
* ``check_accurate_api``: one signed ``<resource>/list.do`` call (and
  optionally the detail of the first row).
* ``check_database``: server version, public tables and row counts.
* ``run_workflow``: the local backend's health, branches, sync, list,
  detail and summary endpoints, in that order.

Failures are raised, not swallowed; the CLI turns them into exit code 1.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any, Dict, List, Optional

import requests
from sqlalchemy import func, inspect, select, text
from sqlalchemy.exc import SQLAlchemyError

from .accurate_client import AccurateClient
from .config import Settings, mask_secret
from .db import Database
from .errors import DatabaseConnectionError, WorkflowError
from .models import purchase_invoice_items, purchase_invoices
from .signature import build_auth_headers, generate_signature_base64, make_timestamp

logger = logging.getLogger(__name__)


def check_signature(settings: Settings) -> Dict[str, str]:
    client_id, secret = settings.require_signing()
    timestamp = make_timestamp()
    headers = build_auth_headers(client_id, secret, timestamp=timestamp)

    logger.info("Timestamp: %s", timestamp)
    logger.info("Secret: %s", mask_secret(secret))
    logger.info("Signature (hex): %s", headers["X-Api-Signature"])
    logger.info("Signature (base64): %s", generate_signature_base64(secret, timestamp))
    for name in ("Authorization", "X-API-Timestamp", "X-Api-Signature"):
        value = headers[name]
        if name == "Authorization":
            value = f"Bearer {mask_secret(client_id)}"
        logger.info("%s: %s", name, value)
    return headers


def check_accurate_api(client: AccurateClient, resource: str = "sales-invoice", *, detail: bool = False) -> Dict[str, Any]:
    """Fetch ``<resource>/list.do``; with ``detail`` also fetch the first row's detail."""
    logger.info("GET %s", client.url_for(f"{resource}/list"))
    listing = client.fetch_list(resource)
    rows = listing.get("d") if isinstance(listing.get("d"), list) else []
    logger.info("List ok: s=%s, %d rows", listing.get("s"), len(rows))
    logger.debug("List data: %s", json.dumps(listing, default=str)[:2000])

    result: Dict[str, Any] = {"list": listing}
    if detail and rows:
        first_id = rows[0].get("id")
        logger.info("Fetching %s detail for id %s", resource, first_id)
        response = client.fetch_detail(resource, first_id)
        d = response.get("d") or {}
        logger.info(
            "Detail: number=%s date=%s total=%s items=%d",
            d.get("number"), d.get("transDate"), d.get("totalAmount", d.get("total")),
            len(d.get("detailItem") or []),
        )
        result["detail"] = response
    return result


def check_database(database: Database) -> Dict[str, Any]:
    """Report server version, public tables and purchase table row counts."""
    try:
        return _inspect_database(database)
    except SQLAlchemyError as exc:
        raise DatabaseConnectionError(f"Database check failed: {getattr(exc, 'orig', None) or exc}") from exc


def _inspect_database(database: Database) -> Dict[str, Any]:
    with database.connect() as conn:
        if database.dialect == "postgresql":
            version = conn.execute(text("SELECT version()")).scalar_one().split(",")[0]
        elif database.dialect == "sqlite":
            version = "SQLite " + conn.execute(text("SELECT sqlite_version()")).scalar_one()
        else:
            version = database.dialect
        logger.info("Connected: %s", version)

        tables = sorted(inspect(conn).get_table_names())
        logger.info("Tables: %s", ", ".join(tables) or "<none>")

        counts: Dict[str, Optional[int]] = {}
        for table in (purchase_invoices, purchase_invoice_items):
            if table.name in tables:
                counts[table.name] = conn.execute(select(func.count()).select_from(table)).scalar_one()
                logger.info("%s: %d records", table.name, counts[table.name])
            else:
                counts[table.name] = None
                logger.warning("%s does not exist; run `accurate-sync migrate` first", table.name)

    return {"version": version, "tables": tables, "counts": counts}


# ---- Local backend workflow ----

def _call(http, step: str, method: str, url: str, *, params: Optional[dict] = None, timeout: float = 30.0):
    try:
        resp = http.request(method, url, params=params, timeout=timeout)
    except requests.RequestException as exc:
        raise WorkflowError(step, f"no response from {url}: {exc}") from exc
    if resp.status_code >= 400:
        try:
            body = resp.json()
        except ValueError:
            body = resp.text
        raise WorkflowError(step, f"HTTP {resp.status_code}", status_code=resp.status_code, body=body)
    try:
        return resp.json()
    except ValueError as exc:
        raise WorkflowError(step, f"response from {url} is not JSON") from exc


def run_workflow(
    base_url: str,
    *,
    http=None,
    max_items: int = 10,
    today: Optional[date] = None,
    timeout: float = 30.0,
) -> Dict[str, Any]:
    """
    Walk the local backend through a sync and read the results back.

    ``http`` is anything with a ``requests``-style ``request`` method
    (defaults to the ``requests`` module).  Returns what each step saw.
    """
    http = http or requests
    base_url = base_url.rstrip("/")
    api = f"{base_url}/api"
    day = (today or date.today()).isoformat()
    result: Dict[str, Any] = {}

    logger.info("1. Health check")
    health = _call(http, "health", "GET", f"{base_url}/", timeout=timeout)
    logger.info("Server is running: %s", health.get("message"))
    result["health"] = health

    logger.info("2. Branches")
    listing = _call(http, "branches", "GET", f"{api}/branches", timeout=timeout)
    # {"success", "data", "count"}; older backends answered {"branches": [...]}
    branches: List[Dict[str, Any]] = listing.get("data") or listing.get("branches") or []
    for branch in branches:
        logger.info("   - %s (%s)", branch.get("name"), branch.get("id"))
    if not branches:
        raise WorkflowError("branches", "backend returned no branches")
    branch_id = branches[0]["id"]
    result["branches"] = branches
    result["branch_id"] = branch_id
    logger.info("Using branch: %s", branch_id)

    logger.info("3. Sync sales invoices for %s", day)
    sync = _call(
        http,
        "sync",
        "POST",
        f"{api}/sales-invoices/sync",
        params={"branchId": branch_id, "dateFrom": day, "dateTo": day, "maxItems": max_items},
        timeout=timeout,
    )
    logger.info("Sync result: %s", sync.get("message"))
    logger.info("Summary: %s", json.dumps(sync.get("summary"), default=str))
    result["sync"] = sync

    logger.info("4. Invoices from database")
    invoices = _call(
        http, "list", "GET", f"{api}/sales-invoices", params={"branchId": branch_id, "limit": 5}, timeout=timeout
    )
    rows = invoices.get("data") or []
    logger.info("Found %s invoices", invoices.get("count", len(rows)))
    result["invoices"] = invoices

    if rows:
        first = rows[0]
        logger.info(
            "   First invoice: %s | %s | %s | %s",
            first.get("invoice_number"), first.get("trans_date"), first.get("customer_name"), first.get("total"),
        )
        logger.info("5. Invoice detail")
        detail = _call(http, "detail", "GET", f"{api}/sales-invoices/{first['id']}", timeout=timeout)
        items = (detail.get("data") or {}).get("items") or []
        logger.info("Invoice detail with %d items", len(items))
        if items:
            item = items[0]
            logger.info(
                "   First item: %s %s qty=%s %s price=%s amount=%s",
                item.get("item_no"), item.get("item_name"), item.get("quantity"),
                item.get("unit_name"), item.get("unit_price"), item.get("amount"),
            )
        result["detail"] = detail
    else:
        logger.info("5. Invoice detail skipped: no invoices stored for %s", branch_id)

    logger.info("6. Summary statistics")
    stats = _call(
        http, "summary", "GET", f"{api}/sales-invoices/summary/stats", params={"branchId": branch_id}, timeout=timeout
    )
    for s in stats.get("data") or []:
        logger.info(
            "   %s: invoices=%s total=%s avg=%s range=%s..%s",
            s.get("branch_name"), s.get("invoice_count"), s.get("total_sales"),
            s.get("avg_invoice"), s.get("first_date"), s.get("last_date"),
        )
    result["summary"] = stats

    logger.info("Workflow completed")
    return result


__all__ = ["check_signature", "check_accurate_api", "check_database", "run_workflow"]
