"""
Channel consumers: replay published events into the local tables.

DELIVERY POLICY:
- At-least-once. A consumer records every event id it has seen in
  consumed_events; a redelivered id is acknowledged without running the
  handler again.
- Every message is acknowledged, whatever the handler does. A handler
  exception is logged, its writes are rolled back, and the failure is
  recorded as outcome FAILED. Nothing is retried or dead-lettered; an
  operator has to act on FAILED rows.
- The event's tenant is the tenant context while the handler runs and the
  previous context is restored afterwards, on every path.

Snapshots are replayed through the last-write-wins reconciler, so a stale
or equal-timestamp snapshot never overwrites newer local state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Mapping

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import ConsumedEvent, Product, Sale, SaleItem
from ..tenant_context import tenant_scope
from ..services.reconciler import (
    PRODUCT_SYNC_FIELDS,
    PRODUCT_UPDATE_FIELDS,
    SALE_SYNC_FIELDS,
    apply_snapshot,
    is_newer,
    reconcile,
)
from infopos.time_utils import coerce_datetime, utcnow
from .envelope import (
    EVENT_TYPES_BY_CHANNEL,
    Channel,
    EventEnvelope,
    InventoryEventType,
    PaymentEventType,
    SaleEventType,
    SyncEventType,
)

logger = logging.getLogger(__name__)

APPLIED = "APPLIED"
IGNORED = "IGNORED"
FAILED = "FAILED"
DUPLICATE = "DUPLICATE"


@dataclass(frozen=True)
class Ack:
    consumer: str
    event_id: str
    outcome: str
    acknowledged: bool = True


# ---------------------------------------------------------------------------
# Snapshot replay
# ---------------------------------------------------------------------------

def _find_sale(tenant_id: str, data: Mapping) -> Sale | None:
    query = db.session.query(Sale).filter(Sale.tenant_id == tenant_id)
    sale = None
    if data.get("id") is not None:
        sale = query.filter(Sale.id == data["id"]).first()
    if sale is None and data.get("client_reference_id"):
        sale = query.filter(Sale.client_reference_id == data["client_reference_id"]).first()
    return sale


def _find_product(tenant_id: str, data: Mapping) -> Product | None:
    query = db.session.query(Product).filter(Product.tenant_id == tenant_id)
    product = None
    if data.get("id") is not None:
        product = query.filter(Product.id == data["id"]).first()
    if product is None and data.get("sku"):
        product = query.filter(Product.sku == data["sku"]).first()
    return product


def replay_sale_snapshot(tenant_id: str, data: Mapping) -> bool:
    """
    Reconcile a sale snapshot against the stored sale.

    An unknown sale is created together with the snapshot's items. Items of
    an existing sale are never rewritten; only sale-level fields are.
    """
    sale = _find_sale(tenant_id, data)
    if sale is None:
        sale = Sale(
            tenant_id=tenant_id,
            created_at=coerce_datetime(data.get("created_at"), field="created_at") or utcnow(),
        )
        apply_snapshot(sale, data, SALE_SYNC_FIELDS)
        if sale.updated_at is None:
            sale.updated_at = utcnow()
        db.session.add(sale)
        db.session.flush()
        for position, item in enumerate(data.get("items") or []):
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=item["product_id"],
                product_name=item.get("product_name"),
                product_sku=item.get("product_sku"),
                quantity=item["quantity"],
                unit_price_cents=item["unit_price_cents"],
                discount_cents=item.get("discount_cents") or 0,
                tax_cents=item.get("tax_cents") or 0,
                subtotal_cents=SaleItem.compute_subtotal(
                    item["quantity"], item["unit_price_cents"],
                    item.get("discount_cents") or 0, item.get("tax_cents") or 0,
                ),
                position=item.get("position", position),
            ))
        logger.info("Created sale %s from replayed snapshot", sale.invoice_number)
        return True

    result = reconcile(sale.snapshot([]), data)
    if not result.apply_incoming:
        logger.debug("Dropping stale sale snapshot for %s (%s)", sale.id, result.reason)
        return False
    apply_snapshot(sale, result.merged_record, SALE_SYNC_FIELDS)
    return True


def replay_product_snapshot(tenant_id: str, data: Mapping, fields=PRODUCT_SYNC_FIELDS) -> bool:
    product = _find_product(tenant_id, data)
    if product is None:
        product = Product(
            tenant_id=tenant_id,
            created_at=coerce_datetime(data.get("created_at"), field="created_at") or utcnow(),
        )
        apply_snapshot(product, data, PRODUCT_SYNC_FIELDS)
        if product.updated_at is None:
            product.updated_at = utcnow()
        db.session.add(product)
        logger.info("Created product %s from replayed snapshot", product.sku or product.name)
        return True

    result = reconcile(product.snapshot(), data)
    if not result.apply_incoming:
        logger.debug("Dropping stale product snapshot for %s (%s)", product.id, result.reason)
        return False
    apply_snapshot(product, result.merged_record, fields)
    return True


# ---------------------------------------------------------------------------
# Consumers
# ---------------------------------------------------------------------------

class EventConsumer:
    """
    Base consumer. Subclasses set channel and name and return a handler for
    every event type of their channel from handlers(). A handler returns
    True when it changed state and False when it dropped the event.
    """

    channel: Channel
    name: str

    def __init__(self):
        self._handlers = self.handlers()
        enum_cls = EVENT_TYPES_BY_CHANNEL[self.channel]
        missing = [t.value for t in enum_cls if t not in self._handlers]
        if missing:
            raise TypeError(f"{type(self).__name__} has no handler for: {', '.join(missing)}")

    def handlers(self) -> dict[object, Callable[[EventEnvelope], bool]]:
        raise NotImplementedError

    def __call__(self, envelope: EventEnvelope) -> Ack:
        return self.on_event(envelope)

    def _already_consumed(self, event_id: str) -> bool:
        return (
            db.session.query(ConsumedEvent.id)
            .filter(ConsumedEvent.consumer == self.name, ConsumedEvent.event_id == event_id)
            .first()
            is not None
        )

    def _ledger_row(self, envelope: EventEnvelope, outcome: str, error: str | None) -> ConsumedEvent:
        return ConsumedEvent(
            consumer=self.name,
            event_id=envelope.id,
            channel=envelope.channel.value,
            event_type=envelope.event_type.value,
            tenant_id=envelope.tenant_id,
            outcome=outcome,
            error=error[:500] if error else None,
        )

    def _record(self, envelope: EventEnvelope, outcome: str, error: str | None = None) -> str:
        """Commit the handler's writes with the ledger row; returns the outcome actually stored."""
        db.session.add(self._ledger_row(envelope, outcome, error))
        try:
            db.session.commit()
            return outcome
        except IntegrityError as exc:
            db.session.rollback()
            if self._already_consumed(envelope.id):
                logger.warning("Event %s was recorded concurrently by %s", envelope.id, self.name)
                return DUPLICATE
            logger.exception(
                "Commit failed for %s event %s in %s",
                envelope.event_type.value, envelope.id, self.name,
            )
            db.session.add(self._ledger_row(envelope, FAILED, str(exc.orig)))
            db.session.commit()
            return FAILED

    def on_event(self, envelope: EventEnvelope) -> Ack:
        logger.info(
            "Received %s event on %s: %s (tenant=%s)",
            envelope.event_type.value, envelope.channel.value, envelope.id, envelope.tenant_id,
        )
        if self._already_consumed(envelope.id):
            logger.info("Event %s already consumed by %s, acknowledging", envelope.id, self.name)
            return Ack(consumer=self.name, event_id=envelope.id, outcome=DUPLICATE)

        with tenant_scope(envelope.tenant_id):
            try:
                changed = self._handlers[envelope.event_type](envelope)
                # Surface constraint violations as a handler failure.
                db.session.flush()
                outcome, error = (APPLIED if changed else IGNORED), None
            except Exception as exc:
                logger.exception(
                    "Error processing %s event %s in %s",
                    envelope.event_type.value, envelope.id, self.name,
                )
                db.session.rollback()
                outcome, error = FAILED, str(exc)
            outcome = self._record(envelope, outcome, error)

        return Ack(consumer=self.name, event_id=envelope.id, outcome=outcome)


class SaleEventConsumer(EventConsumer):
    channel = Channel.SALES
    name = "sales"

    def handlers(self):
        return {
            SaleEventType.CREATED: self._replay,
            SaleEventType.UPDATED: self._replay,
            SaleEventType.PROCESSED: self._replay,
            SaleEventType.SYNCED: self._replay,
            SaleEventType.CANCELED: lambda e: self._set_status(e, "CANCELLED"),
            SaleEventType.PAYMENT_COMPLETED: lambda e: self._set_status(e, "COMPLETED", with_payment=True),
            SaleEventType.PAYMENT_FAILED: lambda e: self._set_status(e, "PENDING"),
        }

    def _replay(self, envelope: EventEnvelope) -> bool:
        return replay_sale_snapshot(envelope.tenant_id, envelope.payload_dict()["sale"])

    def _set_status(self, envelope: EventEnvelope, status: str, *, with_payment: bool = False) -> bool:
        data = envelope.payload_dict()["sale"]
        sale = _find_sale(envelope.tenant_id, data)
        if sale is None:
            logger.warning("Sale %s not found for %s event", data.get("id"), envelope.event_type.value)
            return False
        if not is_newer(data, {"updated_at": sale.updated_at}):
            return False
        sale.status = status
        if with_payment:
            sale.payment_method = data.get("payment_method") or sale.payment_method
            sale.payment_reference = data.get("payment_reference")
        sale.updated_at = coerce_datetime(data["updated_at"], field="updated_at")
        return True


class InventoryEventConsumer(EventConsumer):
    channel = Channel.INVENTORY
    name = "inventory"

    def handlers(self):
        return {
            InventoryEventType.PRODUCT_CREATED: self._replay,
            InventoryEventType.SYNCED: self._replay,
            InventoryEventType.STOCK_INCREASED: self._replay,
            InventoryEventType.STOCK_DECREASED: self._replay,
            InventoryEventType.DISCREPANCY_DETECTED: self._replay,
            InventoryEventType.PRODUCT_UPDATED: self._replay_without_stock,
            InventoryEventType.STOCK_ALERT: self._stock_alert,
            InventoryEventType.OUT_OF_STOCK: self._out_of_stock,
        }

    def _replay(self, envelope: EventEnvelope) -> bool:
        return replay_product_snapshot(envelope.tenant_id, envelope.payload_dict()["product"])

    def _replay_without_stock(self, envelope: EventEnvelope) -> bool:
        return replay_product_snapshot(
            envelope.tenant_id, envelope.payload_dict()["product"], PRODUCT_UPDATE_FIELDS,
        )

    def _stock_alert(self, envelope: EventEnvelope) -> bool:
        product = envelope.payload["product"]
        logger.warning(
            "Low stock alert for product %s (%s): %s left, threshold %s",
            product.get("id"), product.get("name"),
            product.get("stock_quantity"), product.get("alert_threshold"),
        )
        return False

    def _out_of_stock(self, envelope: EventEnvelope) -> bool:
        product = envelope.payload["product"]
        logger.warning("Product out of stock: %s (%s)", product.get("id"), product.get("name"))
        return False


class PaymentEventConsumer(EventConsumer):
    channel = Channel.PAYMENT
    name = "payment"

    def handlers(self):
        table = {t: self._log for t in PaymentEventType}
        table[PaymentEventType.PAYMENT_COMPLETED] = self._stamp_reference
        table[PaymentEventType.REFUND_COMPLETED] = self._stamp_reference
        return table

    def _log(self, envelope: EventEnvelope) -> bool:
        logger.info(
            "Payment %s for sale %s (%s cents)",
            envelope.event_type.value, envelope.payload.get("sale_id"), envelope.payload.get("amount_cents"),
        )
        return False

    def _stamp_reference(self, envelope: EventEnvelope) -> bool:
        payload = envelope.payload_dict()
        self._log(envelope)
        reference = payload.get("gateway_reference")
        if not reference:
            return False
        sale = (
            db.session.query(Sale)
            .filter(Sale.tenant_id == envelope.tenant_id, Sale.id == payload.get("sale_id"))
            .first()
        )
        if sale is None or not is_newer(payload, {"updated_at": sale.updated_at}):
            return False
        sale.payment_reference = reference
        sale.updated_at = coerce_datetime(payload["updated_at"], field="updated_at")
        return True


class SyncEventConsumer(EventConsumer):
    channel = Channel.SYNC
    name = "sync"

    def handlers(self):
        return {
            SyncEventType.DATA_UPLOAD: self._upload,
            SyncEventType.DATA_DOWNLOAD: self._log,
            SyncEventType.CONFLICT_DETECTED: self._conflict,
            SyncEventType.CONFLICT_RESOLVED: self._log,
        }

    def _upload(self, envelope: EventEnvelope) -> bool:
        payload = envelope.payload_dict()
        entity_type = payload.get("entity_type")
        if entity_type == "sale":
            return replay_sale_snapshot(envelope.tenant_id, payload["data"])
        if entity_type == "product":
            return replay_product_snapshot(envelope.tenant_id, payload["data"])
        logger.warning("Unsupported sync entity type %r in event %s", entity_type, envelope.id)
        return False

    def _log(self, envelope: EventEnvelope) -> bool:
        logger.info(
            "Sync %s for %s %s (status %s)",
            envelope.event_type.value, envelope.payload.get("entity_type"),
            envelope.payload.get("entity_id"), envelope.payload.get("sync_status"),
        )
        return False

    def _conflict(self, envelope: EventEnvelope) -> bool:
        logger.warning(
            "Sync conflict for %s %s from device %s",
            envelope.payload.get("entity_type"), envelope.payload.get("entity_id"),
            envelope.payload.get("device_id"),
        )
        return False


CONSUMER_CLASSES = (SaleEventConsumer, InventoryEventConsumer, PaymentEventConsumer, SyncEventConsumer)


def register_consumers(bus) -> list[EventConsumer]:
    """Subscribe one consumer per channel, replacing any previous subscriptions."""
    bus.unsubscribe_all()
    consumers = [cls() for cls in CONSUMER_CLASSES]
    for consumer in consumers:
        bus.subscribe(consumer.channel, consumer)
    return consumers
