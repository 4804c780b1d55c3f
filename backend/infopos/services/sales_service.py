"""
Sales Service - sale creation, lookup and status lifecycle

WHY: A sale and every stock movement it causes must land together. The
construction step (build_sale) only flushes; the caller owns the commit, so
a direct API sale and a batch-synced sale share the same rules while each
decides its own transaction boundary.

LIFECYCLE:
    PENDING   -> COMPLETED | CANCELLED
    COMPLETED -> REFUNDED  | CANCELLED
    CANCELLED, REFUNDED are terminal.

Stock is consumed when the sale is created (PENDING or COMPLETED) and given
back through the ledger when the sale moves to CANCELLED or REFUNDED.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Sale, SaleItem, SALE_STATUSES, PAYMENT_METHODS
from ..validation import (
    ConflictError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    coerce_int,
)
from ..events.envelope import (
    EventEnvelope,
    PaymentEventType,
    SaleEventType,
    payment_event,
    sale_event,
)
from ..events import publisher
from infopos.time_utils import coerce_datetime, to_utc_precise, utcnow
from .concurrency import lock_for_update
from .document_service import next_document_number
from .idempotency_service import find_by_client_reference, normalize_reference
from .stock_service import StockAdjustment, adjust_stock, inventory_events_for
from .tenant_service import current_tenant_id, get_scoped, scoped_query

logger = logging.getLogger(__name__)

INITIAL_STATUSES = ("PENDING", "COMPLETED")

ALLOWED_TRANSITIONS = {
    "PENDING": ("COMPLETED", "CANCELLED"),
    "COMPLETED": ("REFUNDED", "CANCELLED"),
    "CANCELLED": (),
    "REFUNDED": (),
}

RESTOCKING_STATUSES = ("CANCELLED", "REFUNDED")

_STATUS_EVENTS = {
    "COMPLETED": SaleEventType.PROCESSED,
    "CANCELLED": SaleEventType.CANCELED,
    "REFUNDED": SaleEventType.UPDATED,
}


@dataclass
class BuiltSale:
    """A sale flushed but not committed, with the ledger results it caused."""
    sale: Sale
    items: list[SaleItem]
    adjustments: list[StockAdjustment] = field(default_factory=list)

    def snapshot(self) -> dict:
        return self.sale.snapshot(self.items)

    def to_dict(self) -> dict:
        return self.sale.to_dict(self.items)


def normalize_status(value, *, default: str | None = None) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is None:
            raise InvalidStateError("status is required")
        return default
    status = str(value).strip().upper()
    if status not in SALE_STATUSES:
        raise InvalidStateError(
            f"Invalid sale status: {value}",
            details={"status": value, "allowed": list(SALE_STATUSES)},
        )
    return status


def _normalize_payment_method(value) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        return "CASH"
    method = str(value).strip().upper()
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {value}",
            details={"payment_method": value, "allowed": list(PAYMENT_METHODS)},
        )
    return method


def _optional_text(payload: dict, key: str, max_length: int) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None
    if len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value


def _parse_lines(payload: dict) -> list[dict]:
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Sale must have at least one item")

    lines = []
    for position, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{position}] must be an object")
        if raw.get("product_id") is None:
            raise ValidationError(f"items[{position}].product_id is required")
        lines.append({
            "position": position,
            "product_id": coerce_int(raw["product_id"], f"items[{position}].product_id"),
            "quantity": coerce_int(raw.get("quantity"), f"items[{position}].quantity", minimum=1),
            "unit_price_cents": (
                None if raw.get("unit_price_cents") is None
                else coerce_int(raw["unit_price_cents"], f"items[{position}].unit_price_cents", minimum=0)
            ),
            "discount_cents": coerce_int(raw.get("discount_cents") or 0, f"items[{position}].discount_cents", minimum=0),
            "tax_cents": coerce_int(raw.get("tax_cents") or 0, f"items[{position}].tax_cents", minimum=0),
        })
    return lines


def _resolve_products(tenant_id: str, lines: list[dict]) -> dict[int, Product]:
    products: dict[int, Product] = {}
    for line in lines:
        product_id = line["product_id"]
        if product_id in products:
            continue
        products[product_id] = get_scoped(Product, product_id, tenant_id, label="Product")
    return products


def _validate_on_hand(products: dict[int, Product], lines: list[dict]) -> None:
    product_totals: dict[int, int] = {}
    for line in lines:
        product_totals[line["product_id"]] = product_totals.get(line["product_id"], 0) + line["quantity"]

    insufficient = []
    for product_id, qty in product_totals.items():
        on_hand = products[product_id].stock_quantity
        if on_hand < qty:
            insufficient.append({
                "product_id": product_id,
                "product_name": products[product_id].name,
                "requested_quantity": qty,
                "on_hand": on_hand,
            })

    if insufficient:
        names = ", ".join(i["product_name"] for i in insufficient)
        raise InsufficientStockError(
            f"Not enough stock for product: {names}",
            details={"items": insufficient},
        )


def build_sale(tenant_id: str, user_id, payload: dict, *, offline: bool = False) -> BuiltSale:
    """
    Validate a sale payload, consume stock and persist the sale with its items.

    Only flushes. The caller commits (or rolls back) the sale, its items and
    every stock adjustment as one unit.

    Payload:
        items: [{product_id, quantity, unit_price_cents?, discount_cents?, tax_cents?}]
        status (default COMPLETED), payment_method (default CASH),
        payment_reference, notes, invoice_number, client_reference_id,
        created_at (default now)

    Raises:
        ValidationError, InvalidStateError, NotFoundError, InsufficientStockError
    """
    if not isinstance(payload, dict):
        raise ValidationError("Sale record must be an object")

    status = normalize_status(payload.get("status"), default="COMPLETED")
    if status not in INITIAL_STATUSES:
        raise InvalidStateError(
            f"A new sale cannot start as {status}",
            details={"status": status, "allowed": list(INITIAL_STATUSES)},
        )
    payment_method = _normalize_payment_method(payload.get("payment_method"))

    try:
        created_at = coerce_datetime(payload.get("created_at"), field="created_at") or utcnow()
    except ValueError as exc:
        raise ValidationError(str(exc))

    lines = _parse_lines(payload)
    products = _resolve_products(tenant_id, lines)
    _validate_on_hand(products, lines)

    adjustments = [
        adjust_stock(tenant_id, line["product_id"], -line["quantity"], commit=False)
        for line in lines
    ]

    invoice_number = _optional_text(payload, "invoice_number", 64) or next_document_number(
        tenant_id=tenant_id, document_type="SALE", prefix="INV",
    )

    now = utcnow()
    sale = Sale(
        tenant_id=tenant_id,
        invoice_number=invoice_number,
        user_id=None if user_id is None else coerce_int(user_id, "user_id"),
        status=status,
        payment_method=payment_method,
        payment_reference=_optional_text(payload, "payment_reference", 128),
        notes=_optional_text(payload, "notes", 500),
        client_reference_id=normalize_reference(payload.get("client_reference_id")),
        offline_created=offline,
        created_at=created_at,
        updated_at=now,
    )
    db.session.add(sale)
    db.session.flush()

    items = []
    for line in lines:
        product = products[line["product_id"]]
        unit_price = line["unit_price_cents"]
        if unit_price is None:
            unit_price = product.price_cents
        item = SaleItem(
            sale_id=sale.id,
            product_id=product.id,
            product_name=product.name,
            product_sku=product.sku,
            quantity=line["quantity"],
            unit_price_cents=unit_price,
            discount_cents=line["discount_cents"],
            tax_cents=line["tax_cents"],
            subtotal_cents=SaleItem.compute_subtotal(
                line["quantity"], unit_price, line["discount_cents"], line["tax_cents"],
            ),
            position=line["position"],
            created_at=now,
        )
        db.session.add(item)
        items.append(item)

    sale.subtotal_cents = sum(i.quantity * i.unit_price_cents for i in items)
    sale.discount_cents = sum(i.discount_cents for i in items)
    sale.tax_cents = sum(i.tax_cents for i in items)
    sale.total_cents = sum(i.subtotal_cents for i in items)
    db.session.flush()

    return BuiltSale(sale=sale, items=items, adjustments=adjustments)


def sale_created_events(built: BuiltSale, created_by=None) -> list[EventEnvelope]:
    """Sale CREATED first, then the inventory events of each line in order."""
    sale = built.sale
    events = [sale_event(sale.tenant_id, created_by, built.snapshot(), SaleEventType.CREATED)]
    for adjustment in built.adjustments:
        events.extend(inventory_events_for(adjustment, created_by))
    return events


def create_sale(tenant_id: str | None, user_id, payload: dict, *, offline: bool = False) -> dict:
    """
    Create one sale atomically. Errors propagate to the caller.

    A client_reference_id already used in the tenant raises ConflictError;
    the batch sync path treats the same case as a skip instead.
    """
    tenant_id = current_tenant_id(tenant_id)
    ref = normalize_reference((payload or {}).get("client_reference_id")) if isinstance(payload, dict) else None
    if ref is not None and find_by_client_reference(tenant_id, ref) is not None:
        raise ConflictError(
            f"Sale with client reference {ref} already exists",
            details={"client_reference_id": ref},
        )

    try:
        built = build_sale(tenant_id, user_id, payload, offline=offline)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Sale invoice number or client reference already exists")
    except Exception:
        db.session.rollback()
        raise

    result = built.to_dict()
    publisher.publish_all(sale_created_events(built, user_id))
    logger.info("Created sale %s for tenant %s", built.sale.invoice_number, tenant_id)
    return result


def _load_sale(tenant_id: str, sale_id: int) -> Sale:
    return get_scoped(Sale, sale_id, tenant_id, label="Sale")


def sale_items(sale_id: int) -> list[SaleItem]:
    return (
        db.session.query(SaleItem)
        .filter(SaleItem.sale_id == sale_id)
        .order_by(SaleItem.position.asc(), SaleItem.id.asc())
        .all()
    )


def get_sale(tenant_id: str | None, sale_id: int) -> dict:
    tenant_id = current_tenant_id(tenant_id)
    sale = _load_sale(tenant_id, sale_id)
    return sale.to_dict(sale_items(sale.id))


def _parse_bound(value, name: str):
    try:
        return coerce_datetime(value, field=name)
    except ValueError as exc:
        raise ValidationError(str(exc))


def list_sales(tenant_id: str | None = None, status=None, start=None, end=None) -> dict:
    tenant_id = current_tenant_id(tenant_id)
    query = scoped_query(Sale, tenant_id)
    if status:
        query = query.filter(Sale.status == normalize_status(status))
    start_dt = _parse_bound(start, "start")
    end_dt = _parse_bound(end, "end")
    if start_dt:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt:
        query = query.filter(Sale.created_at <= end_dt)

    sales = query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()
    return {
        "items": [s.to_dict() for s in sales],
        "count": len(sales),
    }


def _restock(sale: Sale, items: list[SaleItem]) -> list[StockAdjustment]:
    adjustments = []
    for item in items:
        try:
            adjustments.append(adjust_stock(sale.tenant_id, item.product_id, item.quantity, commit=False))
        except NotFoundError:
            logger.warning(
                "Product %s of sale %s no longer exists; not restocked",
                item.product_id, sale.id,
            )
    return adjustments


def update_sale_status(tenant_id: str | None, sale_id: int, status, user_id=None) -> dict:
    """
    Move a sale along its lifecycle.

    Raises:
        InvalidStateError: unknown status or disallowed transition
        NotFoundError: sale not in tenant
    """
    tenant_id = current_tenant_id(tenant_id)
    new_status = normalize_status(status)

    sale = lock_for_update(scoped_query(Sale, tenant_id).filter(Sale.id == sale_id)).first()
    if sale is None:
        raise NotFoundError(f"Sale not found with id: {sale_id}", details={"id": sale_id})

    old_status = sale.status
    if new_status not in ALLOWED_TRANSITIONS.get(old_status, ()):
        raise InvalidStateError(
            f"Cannot change sale status from {old_status} to {new_status}",
            details={"from": old_status, "to": new_status},
        )

    items = sale_items(sale.id)
    try:
        adjustments = _restock(sale, items) if new_status in RESTOCKING_STATUSES else []
        sale.status = new_status
        sale.updated_at = utcnow()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Sale %s status %s -> %s", sale.invoice_number, old_status, new_status)

    events = [sale_event(tenant_id, user_id, sale.snapshot(items), _STATUS_EVENTS[new_status])]
    if new_status == "COMPLETED":
        events.append(payment_event(
            tenant_id, user_id,
            sale_id=sale.id,
            amount_cents=sale.total_cents,
            payment_method=sale.payment_method,
            event_type=PaymentEventType.PAYMENT_COMPLETED,
            gateway_reference=sale.payment_reference,
            occurred_at=to_utc_precise(sale.updated_at),
        ))
    elif new_status == "REFUNDED":
        events.append(payment_event(
            tenant_id, user_id,
            sale_id=sale.id,
            amount_cents=sale.total_cents,
            payment_method=sale.payment_method,
            event_type=PaymentEventType.REFUND_COMPLETED,
            gateway_reference=sale.payment_reference,
            occurred_at=to_utc_precise(sale.updated_at),
        ))
    for adjustment in adjustments:
        events.extend(inventory_events_for(adjustment, user_id))
    publisher.publish_all(events)

    return sale.to_dict(items)
