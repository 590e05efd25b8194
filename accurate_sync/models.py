"""
Database models for the Accurate purchase invoice tables.

``purchase_invoices`` holds one row per Accurate purchase invoice, keyed for
ingestion by Accurate's own id (``invoice_id``, unique).  Its lines live in
``purchase_invoice_items`` and reference the header through that same
external id, with ``ON DELETE CASCADE`` so removing a header removes its
lines.  The same metadata drives the destructive-recreate migration; the
idempotent SQL file in ``accurate_sync/sql`` must stay in step with it.
"""

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
RawPayload = JSON().with_variant(JSONB(), "postgresql")


def _money():
    return Column(Numeric(15, 2), default=0, server_default="0")


class PurchaseInvoice(Base):
    """Header row of an Accurate purchase invoice."""

    __tablename__ = "purchase_invoices"
    __table_args__ = (
        Index("idx_purchase_invoices_branch_date", "branch_id", "trans_date"),
        Index("idx_purchase_invoices_vendor", "vendor_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(BigInteger, unique=True, nullable=False)
    invoice_number = Column(String(50), nullable=False)
    branch_id = Column(String(50), nullable=False)
    branch_name = Column(String(255))

    trans_date = Column(Date)
    invoice_date = Column(Date)
    due_date = Column(Date)

    vendor_id = Column(String(50))
    vendor_name = Column(String(255))
    bill_number = Column(String(50))

    subtotal = _money()
    tax_amount = _money()
    total_amount = _money()
    prime_owing = _money()

    status_name = Column(String(50))
    ap_account_id = Column(String(50))
    ap_account_no = Column(String(50))
    created_by = Column(String(255))

    opt_lock = Column(Integer, default=0, server_default="0")
    raw_data = Column(RawPayload)
    created_at = Column(DateTime, server_default=func.current_timestamp())
    updated_at = Column(DateTime, server_default=func.current_timestamp())

    items = relationship(
        "PurchaseInvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<PurchaseInvoice id={self.id} invoice_id={self.invoice_id} number={self.invoice_number}>"


class PurchaseInvoiceItem(Base):
    """A single line of a purchase invoice."""

    __tablename__ = "purchase_invoice_items"
    __table_args__ = (Index("idx_purchase_invoice_items_invoice", "invoice_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(
        BigInteger,
        ForeignKey("purchase_invoices.invoice_id", ondelete="CASCADE"),
        nullable=False,
    )

    item_id = Column(String(50))
    item_no = Column(String(50))
    item_name = Column(String(255))
    item_category = Column(String(50))

    quantity = Column(Numeric(15, 4), default=0, server_default="0")
    unit_name = Column(String(50))
    unit_price = _money()
    discount = _money()
    amount = _money()

    warehouse_id = Column(String(50))
    warehouse_name = Column(String(255))

    gl_inventory_id = Column(String(50))
    gl_cogs_id = Column(String(50))

    created_at = Column(DateTime, server_default=func.current_timestamp())
    updated_at = Column(DateTime, server_default=func.current_timestamp())

    invoice = relationship("PurchaseInvoice", back_populates="items")

    def __repr__(self) -> str:
        return f"<PurchaseInvoiceItem id={self.id} invoice_id={self.invoice_id} item_no={self.item_no}>"


purchase_invoices = PurchaseInvoice.__table__
purchase_invoice_items = PurchaseInvoiceItem.__table__
