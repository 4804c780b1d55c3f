from __future__ import annotations

from ..extensions import db
from infopos.time_utils import to_utc_z, to_utc_precise, utcnow


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products carry tenant_id directly. Every lookup filters on
    (tenant_id, id); a product id from another tenant behaves as not found.

    STOCK:
    - stock_quantity is a mutable counter owned by the stock ledger
      (services/stock_service.py). It never goes negative (CHECK constraint
      plus compare-and-swap updates).
    - low_stock / out_of_stock are derived from stock_quantity and
      alert_threshold; they are never stored.

    updated_at is the last-write timestamp that sync reconciliation compares.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        db.UniqueConstraint("tenant_id", "barcode", name="uq_products_tenant_barcode"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        db.Index("ix_products_tenant_category", "tenant_id", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    category = db.Column(db.String(64), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    alert_threshold = db.Column(db.Integer, nullable=False, default=5)

    sku = db.Column(db.String(50), nullable=True)
    barcode = db.Column(db.String(50), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} tenant_id={self.tenant_id!r} stock={self.stock_quantity}>"

    @property
    def is_out_of_stock(self) -> bool:
        return (self.stock_quantity or 0) <= 0

    @property
    def is_low_stock(self) -> bool:
        qty = self.stock_quantity or 0
        return 0 < qty <= (self.alert_threshold or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price_cents": self.price_cents,
            "stock_quantity": self.stock_quantity,
            "alert_threshold": self.alert_threshold,
            "sku": self.sku,
            "barcode": self.barcode,
            "is_active": self.is_active,
            "low_stock": self.is_low_stock,
            "out_of_stock": self.is_out_of_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def snapshot(self) -> dict:
        """Full-precision state used as event payload and reconciliation input."""
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price_cents": self.price_cents,
            "stock_quantity": self.stock_quantity,
            "alert_threshold": self.alert_threshold,
            "sku": self.sku,
            "barcode": self.barcode,
            "is_active": self.is_active,
            "created_at": to_utc_precise(self.created_at),
            "updated_at": to_utc_precise(self.updated_at),
        }
