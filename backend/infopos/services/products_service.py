# backend/infopos/services/products_service.py
"""
Products Service with Multi-Tenant Support

MULTI-TENANT: All product operations are tenant-scoped.
- list/search/get filter on tenant_id
- create stamps tenant_id; SKU and barcode are unique within the tenant
- update/delete of a product owned by another tenant behaves as not found

EVENTS: PRODUCT_CREATED / PRODUCT_UPDATED (and DISCREPANCY_DETECTED for
stock counts) are published on the inventory channel after commit.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, SaleItem
from ..validation import ConflictError
from ..events.envelope import InventoryEventType, inventory_event
from ..events import publisher
from .tenant_service import scoped_query, get_scoped, current_tenant_id
from .stock_service import inventory_events_for, set_stock
from infopos.time_utils import utcnow

PRODUCT_MUTABLE_FIELDS = {
    "name", "description", "category", "price_cents", "alert_threshold",
    "sku", "barcode", "is_active",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _ensure_unique_codes(tenant_id: str, patch: dict, exclude_id: int | None = None) -> None:
    for field in ("sku", "barcode"):
        value = patch.get(field)
        if not value:
            continue
        query = scoped_query(Product, tenant_id).filter(getattr(Product, field) == value)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if query.first() is not None:
            raise ConflictError(
                f"Product with {field.upper()} {value} already exists",
                details={"field": field, "value": value},
            )


def list_products(tenant_id: str | None = None, *, category: str | None = None, q: str | None = None) -> dict:
    """Tenant-scoped product listing, optionally filtered by category or search text."""
    tenant_id = current_tenant_id(tenant_id)
    query = scoped_query(Product, tenant_id)
    if category:
        query = query.filter(Product.category == category)
    if q:
        query = query.filter(_matches(q))
    products = query.order_by(Product.name.asc(), Product.id.asc()).all()
    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
    }


def _matches(q: str):
    like = f"%{(q or '').strip()}%"
    return or_(Product.name.ilike(like), Product.sku.ilike(like), Product.barcode.ilike(like))


def get_product(tenant_id: str, product_id: int) -> Product:
    return get_scoped(Product, product_id, tenant_id, label="Product")


def create_product(*, patch: dict, tenant_id: str | None = None, created_by=None) -> dict:
    """
    Create product using a validated patch dict.

    Initial stock_quantity may be supplied; afterwards stock only moves
    through the stock ledger.

    Raises:
        ConflictError: SKU or barcode already used in the tenant
    """
    tenant_id = current_tenant_id(tenant_id)
    _ensure_unique_codes(tenant_id, patch)

    now = utcnow()
    p = Product(tenant_id=tenant_id, created_at=now, updated_at=now)
    apply_product_patch(p, patch)
    p.stock_quantity = patch.get("stock_quantity") or 0
    if patch.get("alert_threshold") is None:
        p.alert_threshold = current_app.config.get("DEFAULT_ALERT_THRESHOLD", 5)

    db.session.add(p)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Product SKU or barcode already exists")

    publisher.publish_all([
        inventory_event(tenant_id, created_by, p.snapshot(), InventoryEventType.PRODUCT_CREATED),
    ])
    return p.to_dict()


def update_product(*, product_id: int, patch: dict, tenant_id: str | None = None, updated_by=None) -> dict:
    """
    Apply a partial update.

    A stock_quantity in the patch is a physical count: the difference from
    the stored quantity goes through the stock ledger in the same transaction
    and a DISCREPANCY_DETECTED event is published.

    Raises:
        NotFoundError: product not in tenant
        ConflictError: SKU or barcode collision
        InsufficientStockError: never for counts (a count is >= 0)
    """
    tenant_id = current_tenant_id(tenant_id)
    p = get_product(tenant_id, product_id)
    _ensure_unique_codes(tenant_id, patch, exclude_id=p.id)

    events = []
    counted = patch.get("stock_quantity")
    if counted is not None:
        adjustment = set_stock(tenant_id, p.id, counted, commit=False)
        if adjustment.delta:
            events.append(inventory_event(
                tenant_id, updated_by, adjustment.snapshot,
                InventoryEventType.DISCREPANCY_DETECTED, quantity_change=adjustment.delta,
            ))
            events.extend(e for e in inventory_events_for(adjustment, updated_by)
                          if e.event_type != InventoryEventType.STOCK_INCREASED
                          and e.event_type != InventoryEventType.STOCK_DECREASED)

    apply_product_patch(p, patch)
    p.updated_at = utcnow()
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Product SKU or barcode already exists")

    events.append(inventory_event(tenant_id, updated_by, p.snapshot(), InventoryEventType.PRODUCT_UPDATED))
    publisher.publish_all(events)
    return p.to_dict()


def delete_product(*, product_id: int, tenant_id: str | None = None) -> bool:
    """
    Admin-only hard delete. Never used by the sync path.

    Raises ConflictError if the product has sale history (items keep a foreign key).
    """
    tenant_id = current_tenant_id(tenant_id)
    p = get_product(tenant_id, product_id)

    if db.session.query(SaleItem.id).filter(SaleItem.product_id == p.id).first() is not None:
        raise ConflictError(
            "Product has sale history; deactivate it instead",
            details={"product_id": p.id},
        )

    db.session.delete(p)
    db.session.commit()
    return True
