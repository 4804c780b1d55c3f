"""
Event envelope: an immutable, tagged record of a state change.

An envelope is (channel, event_type, payload). The channel names the domain
(sales, inventory, payment, sync) and fixes which enum event_type belongs to;
the payload is a snapshot of the affected entity at publish time, not a diff.

Envelopes are created at the moment of the change and are terminal once a
consumer acknowledges them. There is no event store to replay from.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from infopos.time_utils import utcnow, to_utc_precise, parse_iso_datetime
from infopos.validation import InvalidStateError


class Channel(str, Enum):
    SALES = "sales"
    INVENTORY = "inventory"
    PAYMENT = "payment"
    SYNC = "sync"


class SaleEventType(str, Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    PROCESSED = "PROCESSED"
    CANCELED = "CANCELED"
    PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    SYNCED = "SYNCED"


class InventoryEventType(str, Enum):
    PRODUCT_CREATED = "PRODUCT_CREATED"
    PRODUCT_UPDATED = "PRODUCT_UPDATED"
    STOCK_INCREASED = "STOCK_INCREASED"
    STOCK_DECREASED = "STOCK_DECREASED"
    STOCK_ALERT = "STOCK_ALERT"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    DISCREPANCY_DETECTED = "DISCREPANCY_DETECTED"
    SYNCED = "SYNCED"


class PaymentEventType(str, Enum):
    PAYMENT_INITIATED = "PAYMENT_INITIATED"
    PAYMENT_PROCESSING = "PAYMENT_PROCESSING"
    PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    REFUND_INITIATED = "REFUND_INITIATED"
    REFUND_COMPLETED = "REFUND_COMPLETED"
    REFUND_FAILED = "REFUND_FAILED"
    SYNCED = "SYNCED"


class SyncEventType(str, Enum):
    DATA_UPLOAD = "DATA_UPLOAD"
    DATA_DOWNLOAD = "DATA_DOWNLOAD"
    CONFLICT_DETECTED = "CONFLICT_DETECTED"
    CONFLICT_RESOLVED = "CONFLICT_RESOLVED"


class SyncStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CONFLICT = "CONFLICT"


EVENT_TYPES_BY_CHANNEL: dict[Channel, type[Enum]] = {
    Channel.SALES: SaleEventType,
    Channel.INVENTORY: InventoryEventType,
    Channel.PAYMENT: PaymentEventType,
    Channel.SYNC: SyncEventType,
}


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


def coerce_event_type(channel: Channel, event_type) -> Enum:
    enum_cls = EVENT_TYPES_BY_CHANNEL[channel]
    if isinstance(event_type, enum_cls):
        return event_type
    raw = event_type.value if isinstance(event_type, Enum) else event_type
    try:
        return enum_cls(raw)
    except ValueError:
        raise InvalidStateError(
            f"Event type {raw!r} does not belong to channel {channel.value!r}",
            details={"channel": channel.value, "event_type": raw},
        )


@dataclass(frozen=True)
class EventEnvelope:
    channel: Channel
    event_type: Enum
    tenant_id: str
    key: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    created_by: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        channel = Channel(self.channel)
        object.__setattr__(self, "channel", channel)
        object.__setattr__(self, "event_type", coerce_event_type(channel, self.event_type))
        object.__setattr__(self, "key", str(self.key))
        object.__setattr__(self, "payload", _freeze(self.payload or {}))

    def payload_dict(self) -> dict:
        """Mutable deep copy of the payload."""
        return _thaw(self.payload)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "channel": self.channel.value,
            "event_type": self.event_type.value,
            "tenant_id": self.tenant_id,
            "key": self.key,
            "created_by": self.created_by,
            "timestamp": to_utc_precise(self.timestamp),
            "payload": self.payload_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EventEnvelope":
        try:
            channel = Channel(data["channel"])
        except (KeyError, ValueError):
            raise InvalidStateError(f"Unknown event channel: {data.get('channel')!r}")
        return cls(
            channel=channel,
            event_type=coerce_event_type(channel, data.get("event_type")),
            tenant_id=data["tenant_id"],
            key=data.get("key") or "",
            payload=data.get("payload") or {},
            created_by=data.get("created_by"),
            id=data["id"],
            timestamp=parse_iso_datetime(data.get("timestamp")) or utcnow(),
        )


def sale_event(tenant_id: str, created_by, sale_snapshot: dict, event_type: SaleEventType) -> EventEnvelope:
    return EventEnvelope(
        channel=Channel.SALES,
        event_type=event_type,
        tenant_id=tenant_id,
        key=str(sale_snapshot.get("id")),
        payload={"sale": sale_snapshot},
        created_by=_actor(created_by),
    )


def inventory_event(
    tenant_id: str,
    created_by,
    product_snapshot: dict,
    event_type: InventoryEventType,
    quantity_change: int | None = None,
) -> EventEnvelope:
    return EventEnvelope(
        channel=Channel.INVENTORY,
        event_type=event_type,
        tenant_id=tenant_id,
        key=str(product_snapshot.get("id")),
        payload={"product": product_snapshot, "quantity_change": quantity_change},
        created_by=_actor(created_by),
    )


def payment_event(
    tenant_id: str,
    created_by,
    *,
    sale_id: int,
    amount_cents: int,
    payment_method: str,
    event_type: PaymentEventType,
    gateway_reference: str | None = None,
    occurred_at: str | None = None,
) -> EventEnvelope:
    return EventEnvelope(
        channel=Channel.PAYMENT,
        event_type=event_type,
        tenant_id=tenant_id,
        key=str(sale_id),
        payload={
            "sale_id": sale_id,
            "amount_cents": amount_cents,
            "payment_method": payment_method,
            "gateway_reference": gateway_reference,
            "updated_at": occurred_at,
        },
        created_by=_actor(created_by),
    )


def sync_event(
    tenant_id: str,
    created_by,
    *,
    entity_type: str,
    entity_id,
    data: dict,
    event_type: SyncEventType = SyncEventType.DATA_UPLOAD,
    sync_status: SyncStatus = SyncStatus.COMPLETED,
    device_id: str | None = None,
) -> EventEnvelope:
    return EventEnvelope(
        channel=Channel.SYNC,
        event_type=event_type,
        tenant_id=tenant_id,
        key=str(entity_id),
        payload={
            "device_id": device_id,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "last_modified": data.get("updated_at"),
            "sync_status": SyncStatus(sync_status).value,
            "data": data,
        },
        created_by=_actor(created_by),
    )


def _actor(created_by) -> Optional[str]:
    return None if created_by is None else str(created_by)
