# Overview: Stock adjustment ledger; applies signed deltas to product stock.

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from flask import current_app

from ..extensions import db
from ..models import Product
from infopos.time_utils import utcnow, to_utc_z
from ..validation import (
    ConcurrentUpdateError,
    InsufficientStockError,
    NotFoundError,
    coerce_int,
)
from ..events.envelope import EventEnvelope, InventoryEventType, inventory_event
from .concurrency import compare_and_swap
from .tenant_service import scoped_query
"""
Stock Ledger Invariants (authoritative)

- stock_quantity is never negative. A delta that would take it below zero
  raises InsufficientStockError and leaves the row untouched.
- Negative deltas are consumption (sales); positive deltas are restock or
  reversal (refund, cancellation).
- Writes are compare-and-swap on the observed quantity, so two concurrent
  sales of the same product cannot both read 5 and both write 3. A lost swap
  re-reads and re-validates; after STOCK_CAS_ATTEMPTS lost swaps the
  adjustment fails with ConcurrentUpdateError.
- The ledger reports threshold facts; it never notifies. Callers turn the
  facts into inventory events (inventory_events_for) and publish them after
  their transaction commits.
- adjust_stock(commit=False) only flushes, so a sale can apply several
  adjustments and commit or roll back all of them together.
"""

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockAdjustment:
    product_id: int
    tenant_id: str
    delta: int
    old_quantity: int
    new_quantity: int
    alert_threshold: int
    crossed_alert_threshold: bool
    became_out_of_stock: bool
    became_in_stock: bool
    snapshot: dict = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "delta": self.delta,
            "old_quantity": self.old_quantity,
            "new_quantity": self.new_quantity,
            "alert_threshold": self.alert_threshold,
            "crossed_alert_threshold": self.crossed_alert_threshold,
            "became_out_of_stock": self.became_out_of_stock,
            "became_in_stock": self.became_in_stock,
        }


def threshold_signals(old_quantity: int, new_quantity: int, alert_threshold: int) -> dict:
    """Derived facts about a quantity change; pure."""
    return {
        "crossed_alert_threshold": old_quantity > alert_threshold and new_quantity <= alert_threshold,
        "became_out_of_stock": old_quantity > 0 and new_quantity == 0,
        "became_in_stock": old_quantity <= 0 and new_quantity > 0,
    }


def _cas_attempts() -> int:
    return max(1, int(current_app.config.get("STOCK_CAS_ATTEMPTS", 3)))


def _load_product(tenant_id: str, product_id: int) -> Product:
    product = (
        scoped_query(Product, tenant_id)
        .filter(Product.id == product_id)
        .populate_existing()
        .first()
    )
    if product is None:
        raise NotFoundError(
            f"Product not found with id: {product_id}",
            details={"product_id": product_id},
        )
    return product


def _swap_stock(tenant_id: str, product_id: int, target, *, commit: bool) -> StockAdjustment:
    """
    Compare-and-swap loop shared by deltas and counts.

    target(old_quantity) returns the quantity to write; it is re-evaluated
    against the freshly read row on every attempt.
    """
    for attempt in range(_cas_attempts()):
        product = _load_product(tenant_id, product_id)
        old_quantity = product.stock_quantity
        new_quantity = target(old_quantity)

        if new_quantity < 0:
            raise InsufficientStockError(
                f"Not enough stock for product: {product.name}",
                details={
                    "product_id": product.id,
                    "requested_delta": new_quantity - old_quantity,
                    "on_hand": old_quantity,
                },
            )
        if new_quantity == old_quantity:
            break

        swapped = compare_and_swap(
            Product,
            match={"id": product.id, "tenant_id": tenant_id},
            expected={"stock_quantity": old_quantity},
            values={"stock_quantity": new_quantity, "updated_at": utcnow()},
        )
        if swapped:
            break
        logger.warning(
            "Stock for product %s changed concurrently (attempt %s), re-reading",
            product_id, attempt + 1,
        )
    else:
        raise ConcurrentUpdateError(
            f"Stock for product {product_id} is being updated concurrently",
            details={"product_id": product_id},
        )

    db.session.refresh(product)
    signals = threshold_signals(old_quantity, new_quantity, product.alert_threshold)
    adjustment = StockAdjustment(
        product_id=product.id,
        tenant_id=tenant_id,
        delta=new_quantity - old_quantity,
        old_quantity=old_quantity,
        new_quantity=new_quantity,
        alert_threshold=product.alert_threshold,
        snapshot=product.snapshot(),
        **signals,
    )

    if commit:
        db.session.commit()
    else:
        db.session.flush()

    return adjustment


def adjust_stock(tenant_id: str, product_id: int, delta, *, commit: bool = True) -> StockAdjustment:
    """
    Apply delta to a product's stock and persist the new quantity.

    Raises:
        NotFoundError: product does not exist for the tenant
        InsufficientStockError: current + delta < 0
        ValidationError: delta is not an integer
        ConcurrentUpdateError: lost every compare-and-swap attempt
    """
    delta = coerce_int(delta, "delta")
    return _swap_stock(tenant_id, product_id, lambda old: old + delta, commit=commit)


def set_stock(tenant_id: str, product_id: int, counted, *, commit: bool = True) -> StockAdjustment:
    """
    Book a physical count: the stored quantity becomes counted.

    The delta is measured against the quantity the swap actually replaces,
    so a sale landing between read and write is not overwritten with a stale
    difference. A matching count writes nothing and reports delta 0.
    """
    counted = coerce_int(counted, "stock_quantity", minimum=0)
    return _swap_stock(tenant_id, product_id, lambda old: counted, commit=commit)


def inventory_events_for(adjustment: StockAdjustment, created_by=None) -> list[EventEnvelope]:
    """Turn a ledger result into the inventory events a caller should publish."""
    if adjustment.delta == 0:
        return []

    event_type = (
        InventoryEventType.STOCK_INCREASED if adjustment.delta > 0
        else InventoryEventType.STOCK_DECREASED
    )
    events = [
        inventory_event(
            adjustment.tenant_id, created_by, adjustment.snapshot, event_type,
            quantity_change=abs(adjustment.delta),
        )
    ]
    if adjustment.crossed_alert_threshold and adjustment.new_quantity > 0:
        events.append(inventory_event(
            adjustment.tenant_id, created_by, adjustment.snapshot, InventoryEventType.STOCK_ALERT,
        ))
    if adjustment.became_out_of_stock:
        events.append(inventory_event(
            adjustment.tenant_id, created_by, adjustment.snapshot, InventoryEventType.OUT_OF_STOCK,
        ))
    if adjustment.became_in_stock:
        logger.info("Product is back in stock: %s", adjustment.product_id)
    return events


def low_stock_products(tenant_id: str, threshold: int | None = None) -> list[Product]:
    """
    Products at or below a stock level.

    threshold=None uses each product's own alert_threshold.
    """
    query = scoped_query(Product, tenant_id).filter(Product.is_active.is_(True))
    if threshold is None:
        query = query.filter(Product.stock_quantity <= Product.alert_threshold)
    else:
        threshold = coerce_int(threshold, "threshold", minimum=0)
        query = query.filter(Product.stock_quantity <= threshold)
    return query.order_by(Product.stock_quantity.asc(), Product.id.asc()).all()


def inventory_status(tenant_id: str, threshold: int | None = None) -> dict:
    if threshold is not None:
        threshold = coerce_int(threshold, "threshold", minimum=0)
    products = low_stock_products(tenant_id, threshold)
    out_of_stock = [p for p in products if p.is_out_of_stock]
    return {
        "timestamp": to_utc_z(utcnow()),
        "low_stock_threshold": threshold,
        "low_stock_count": len(products),
        "out_of_stock_count": len(out_of_stock),
        "low_stock_products": [p.to_dict() for p in products],
    }
