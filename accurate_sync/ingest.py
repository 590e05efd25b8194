"""
Ingestion write path for Accurate purchase invoices.

Accurate's ``purchase-invoice/detail.do`` payload is mapped to one header row
and its line rows, then written with ``upsert_purchase_invoice``: an
``INSERT ... ON CONFLICT (invoice_id) DO UPDATE`` on the header followed by
replacing that invoice's items.  Re-ingesting the same external invoice
therefore updates it in place instead of duplicating it.

``classify_for_sync`` compares Accurate's list rows with what is stored,
using the ``optLock`` counter Accurate bumps on every edit.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection

from .models import purchase_invoice_items, purchase_invoices

logger = logging.getLogger(__name__)

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
    # Indonesian abbreviations Accurate uses in some locales
    "mei": 5, "agu": 8, "agt": 8, "okt": 10, "des": 12,
}


# ---- Helpers ----

def parse_accurate_date(value) -> Optional[date]:
    """Parse the date shapes Accurate returns.

    Accepts ``dd/mm/yyyy``, ``dd Mon yyyy``, ``yyyy-mm-dd`` and ISO
    datetimes.  Anything else is logged and returned as ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        if "/" in text:
            day, month, year = text.split("/")
            return date(int(year), int(month), int(day))
        parts = text.split()
        if len(parts) == 3 and parts[1][:3].lower() in _MONTHS:
            return date(int(parts[2]), _MONTHS[parts[1][:3].lower()], int(parts[0]))
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        logger.warning("Unable to parse date: %r", value)
        return None


def _to_decimal(value, default: str = "0") -> Decimal:
    if value is None or value == "":
        return Decimal(default)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        logger.warning("Unable to parse amount: %r", value)
        return Decimal(default)


def _str_or_none(value) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _nested(payload: Mapping[str, Any], key: str, field: str):
    inner = payload.get(key)
    if isinstance(inner, Mapping):
        return inner.get(field)
    return None


def unwrap_detail(response: Mapping[str, Any]) -> Mapping[str, Any]:
    """Return ``d`` from an Accurate ``{"s": true, "d": {...}}`` envelope, or the mapping itself."""
    if "d" in response and isinstance(response["d"], Mapping):
        return response["d"]
    return response


# ---- Mapping ----

def invoice_row_from_detail(
    detail: Mapping[str, Any], branch_id: str, branch_name: Optional[str] = None
) -> Dict[str, Any]:
    """Map an Accurate purchase invoice detail to a ``purchase_invoices`` row."""
    if detail.get("id") is None or not detail.get("number"):
        raise ValueError("purchase invoice detail must carry 'id' and 'number'")
    if not branch_id:
        raise ValueError("branch_id is required")

    return {
        "invoice_id": int(detail["id"]),
        "invoice_number": str(detail["number"]),
        "branch_id": str(branch_id),
        "branch_name": branch_name,
        "trans_date": parse_accurate_date(detail.get("transDate")),
        "invoice_date": parse_accurate_date(detail.get("invoiceDate") or detail.get("transDateView")),
        "due_date": parse_accurate_date(detail.get("dueDate")),
        "vendor_id": _str_or_none(_nested(detail, "vendor", "id")),
        "vendor_name": _str_or_none(_nested(detail, "vendor", "name")),
        "bill_number": _str_or_none(detail.get("billNumber")),
        "subtotal": _to_decimal(detail.get("subTotal")),
        "tax_amount": _to_decimal(detail.get("tax1Amount")),
        "total_amount": _to_decimal(detail.get("totalAmount")),
        "prime_owing": _to_decimal(detail.get("primeOwing")),
        "status_name": _str_or_none(detail.get("statusName")),
        "ap_account_id": _str_or_none(_nested(detail, "apAccount", "id")),
        "ap_account_no": _str_or_none(_nested(detail, "apAccount", "no")),
        "created_by": _str_or_none(detail.get("createdBy")),
        "opt_lock": int(detail.get("optLock") or 0),
        "raw_data": dict(detail),
    }


def item_rows_from_detail(detail: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Map ``detailItem`` entries to ``purchase_invoice_items`` rows (without ``invoice_id``)."""
    rows = []
    for line in detail.get("detailItem") or []:
        amount = line.get("purchaseAmountBase")
        if amount is None:
            amount = line.get("totalPrice")
        rows.append(
            {
                "item_id": _str_or_none(_nested(line, "item", "id")),
                "item_no": _str_or_none(_nested(line, "item", "no")),
                "item_name": _str_or_none(_nested(line, "item", "name")),
                "item_category": _str_or_none(_nested(line, "item", "itemCategoryId")),
                "quantity": _to_decimal(line.get("quantity")),
                "unit_name": _str_or_none(_nested(line, "itemUnit", "name")),
                "unit_price": _to_decimal(line.get("unitPrice")),
                "discount": _to_decimal(line.get("itemCashDiscount")),
                "amount": _to_decimal(amount),
                "warehouse_id": _str_or_none(_nested(line, "warehouse", "id")),
                "warehouse_name": _str_or_none(_nested(line, "warehouse", "name")),
                "gl_inventory_id": _str_or_none(line.get("glInventoryId") or _nested(line, "glInventory", "id")),
                "gl_cogs_id": _str_or_none(line.get("glCogsId") or _nested(line, "glCogs", "id")),
            }
        )
    return rows


# ---- Writes ----

def _insert_for(conn: Connection):
    dialect = conn.dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise NotImplementedError(f"upsert is not supported on dialect {dialect!r}")


def upsert_purchase_invoice(conn: Connection, header: Dict[str, Any], items: Iterable[Dict[str, Any]]) -> int:
    """
    Insert or update a purchase invoice by its Accurate id and replace its items.

    Runs on the caller's connection so header and items land in the caller's
    transaction.  Returns the header's surrogate ``id``.
    """
    insert = _insert_for(conn)
    stmt = insert(purchase_invoices).values(**header)

    # On conflict by invoice_id, update everything except identity and creation time
    update_cols = {
        name: stmt.excluded[name]
        for name in header
        if name not in ("invoice_id", "id", "created_at")
    }
    update_cols["updated_at"] = func.current_timestamp()

    stmt = stmt.on_conflict_do_update(
        index_elements=[purchase_invoices.c.invoice_id],
        set_=update_cols,
    )
    conn.execute(stmt)

    invoice_id = header["invoice_id"]
    conn.execute(delete(purchase_invoice_items).where(purchase_invoice_items.c.invoice_id == invoice_id))
    item_rows = [dict(item, invoice_id=invoice_id) for item in items]
    if item_rows:
        conn.execute(purchase_invoice_items.insert(), item_rows)

    return conn.execute(
        select(purchase_invoices.c.id).where(purchase_invoices.c.invoice_id == invoice_id)
    ).scalar_one()


def ingest_detail(
    conn: Connection, detail: Mapping[str, Any], branch_id: str, branch_name: Optional[str] = None
) -> int:
    if not isinstance(detail, Mapping):
        raise ValueError(f"purchase invoice detail must be a JSON object, got {type(detail).__name__}")
    detail = unwrap_detail(detail)
    header = invoice_row_from_detail(detail, branch_id, branch_name)
    items = item_rows_from_detail(detail)
    row_id = upsert_purchase_invoice(conn, header, items)
    logger.info("Saved purchase invoice %s (%d items)", header["invoice_number"], len(items))
    return row_id


# ---- Sync classification ----

def existing_opt_locks(conn: Connection, branch_id: str, date_from: date, date_to: date) -> Dict[int, int]:
    """Stored ``invoice_id -> opt_lock`` for a branch and transaction date range."""
    stmt = (
        select(purchase_invoices.c.invoice_id, purchase_invoices.c.opt_lock)
        .where(purchase_invoices.c.branch_id == branch_id)
        .where(purchase_invoices.c.trans_date.between(date_from, date_to))
        .order_by(purchase_invoices.c.invoice_id)
    )
    return {row.invoice_id: int(row.opt_lock or 0) for row in conn.execute(stmt)}


def classify_for_sync(
    api_invoices: Iterable[Mapping[str, Any]], db_opt_locks: Mapping[int, int]
) -> Dict[str, List[Dict[str, Any]]]:
    """Split Accurate list rows into ``new``, ``updated`` and ``unchanged``.

    A row is ``updated`` when Accurate's ``optLock`` is greater than the
    stored one; equal or lower counts as ``unchanged``.
    """
    result: Dict[str, List[Dict[str, Any]]] = {"new": [], "updated": [], "unchanged": []}
    for api_inv in api_invoices:
        invoice_id = int(api_inv["id"])
        api_lock = int(api_inv.get("optLock") or 0)
        entry = {"id": invoice_id, "number": api_inv.get("number"), "optLock": api_lock}
        if invoice_id not in db_opt_locks:
            result["new"].append(entry)
        elif api_lock > int(db_opt_locks[invoice_id] or 0):
            entry["dbOptLock"] = int(db_opt_locks[invoice_id] or 0)
            result["updated"].append(entry)
        else:
            result["unchanged"].append(entry)
    return result


__all__ = [
    "parse_accurate_date",
    "unwrap_detail",
    "invoice_row_from_detail",
    "item_rows_from_detail",
    "upsert_purchase_invoice",
    "ingest_detail",
    "existing_opt_locks",
    "classify_for_sync",
]
