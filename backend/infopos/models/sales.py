from __future__ import annotations

from ..extensions import db
from infopos.time_utils import to_utc_z, to_utc_precise, utcnow


SALE_STATUSES = ("PENDING", "COMPLETED", "CANCELLED", "REFUNDED")
PAYMENT_METHODS = ("CASH", "CARD", "MOBILE", "OTHER")


class Sale(db.Model):
    """
    Sale document.

    MULTI-TENANT: invoice_number and client_reference_id are unique within a
    tenant, not globally.

    OFFLINE SYNC: client_reference_id is generated on the device for sales
    rung up offline. Replaying the same reference id for the same tenant is
    a no-op (see services/idempotency_service.py).

    Items are fetched explicitly by sale_id (SaleItem.query.filter_by(...));
    there is no cascading relationship from Sale.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "invoice_number", name="uq_sales_tenant_invoice"),
        db.UniqueConstraint("tenant_id", "client_reference_id", name="uq_sales_tenant_client_ref"),
        db.Index("ix_sales_tenant_status_created", "tenant_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    # Human-readable invoice number (e.g., "INV-000123")
    invoice_number = db.Column(db.String(64), nullable=False)

    # Cashier attribution (authenticated upstream)
    user_id = db.Column(db.Integer, nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)

    # All amounts in cents, computed from items
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False, default="CASH")
    payment_reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    client_reference_id = db.Column(db.String(128), nullable=True)
    offline_created = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Sale id={self.id} invoice={self.invoice_number!r} tenant_id={self.tenant_id!r} status={self.status}>"

    def to_dict(self, items: list["SaleItem"] | None = None) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "invoice_number": self.invoice_number,
            "user_id": self.user_id,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "notes": self.notes,
            "client_reference_id": self.client_reference_id,
            "offline_created": self.offline_created,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if items is not None:
            data["items"] = [item.to_dict() for item in items]
        return data

    def snapshot(self, items: list["SaleItem"]) -> dict:
        """Full-precision state (with items) used as event payload."""
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "invoice_number": self.invoice_number,
            "user_id": self.user_id,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "notes": self.notes,
            "client_reference_id": self.client_reference_id,
            "offline_created": self.offline_created,
            "created_at": to_utc_precise(self.created_at),
            "updated_at": to_utc_precise(self.updated_at),
            "items": [item.snapshot() for item in items],
        }


class SaleItem(db.Model):
    """
    Line item on a sale.

    subtotal_cents = quantity * unit_price_cents - discount_cents + tax_cents,
    always computed server side (compute_subtotal); client-sent subtotals are
    never trusted.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_sale_items_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_sale_items_unit_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Denormalized for receipts; the product may be renamed or deleted later
    product_name = db.Column(db.String(100), nullable=True)
    product_sku = db.Column(db.String(50), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    position = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @staticmethod
    def compute_subtotal(quantity: int, unit_price_cents: int, discount_cents: int = 0, tax_cents: int = 0) -> int:
        return quantity * unit_price_cents - discount_cents + tax_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "subtotal_cents": self.subtotal_cents,
            "position": self.position,
        }

    def snapshot(self) -> dict:
        return self.to_dict()
