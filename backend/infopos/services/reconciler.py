"""
Last-write-wins reconciliation for synced records.

RULES (applied to snapshot dicts that carry "updated_at"):
- No existing record: the incoming record is applied (first write).
- Existing record: the incoming record is applied iff
  incoming.updated_at > existing.updated_at. Ties keep the existing record.
- An incoming record with no updated_at never beats an existing record.
- Applying is wholesale: every mutable field takes the incoming value and
  updated_at becomes the incoming timestamp.

LIMITATION: there is no per-field merge. If two devices edit different
fields of the same record, the older edit is lost entirely.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from infopos.time_utils import coerce_datetime


# Fields overwritten wholesale when an incoming snapshot wins
PRODUCT_SYNC_FIELDS = (
    "name", "description", "category", "price_cents", "stock_quantity",
    "alert_threshold", "sku", "barcode", "is_active", "updated_at",
)

# A regular product update never carries stock; only the ledger moves it
PRODUCT_UPDATE_FIELDS = tuple(f for f in PRODUCT_SYNC_FIELDS if f != "stock_quantity")

SALE_SYNC_FIELDS = (
    "invoice_number", "user_id", "status", "subtotal_cents", "tax_cents",
    "discount_cents", "total_cents", "payment_method", "payment_reference",
    "notes", "client_reference_id", "offline_created", "updated_at",
)

DATETIME_FIELDS = {"created_at", "updated_at"}


@dataclass(frozen=True)
class ReconcileResult:
    apply_incoming: bool
    merged_record: dict
    reason: str


def _timestamp(record: Mapping[str, Any]) -> Optional[datetime]:
    return coerce_datetime(record.get("updated_at"), field="updated_at")


def is_newer(incoming: Mapping[str, Any], existing: Mapping[str, Any]) -> bool:
    """Strict greater-than on updated_at; a missing incoming timestamp is never newer."""
    incoming_ts = _timestamp(incoming)
    if incoming_ts is None:
        return False
    existing_ts = _timestamp(existing)
    if existing_ts is None:
        return True
    return incoming_ts > existing_ts


def reconcile(existing: Optional[Mapping[str, Any]], incoming: Mapping[str, Any]) -> ReconcileResult:
    if existing is None:
        return ReconcileResult(True, dict(incoming), "first_write")

    if is_newer(incoming, existing):
        merged = dict(existing)
        merged.update(incoming)
        merged["updated_at"] = incoming.get("updated_at")
        return ReconcileResult(True, merged, "incoming_newer")

    return ReconcileResult(False, dict(existing), "existing_newer_or_equal")


def apply_snapshot(instance, record: Mapping[str, Any], fields: Iterable[str]) -> list[str]:
    """
    Copy fields present in record onto an ORM instance.

    Datetime fields are normalized to UTC-naive. Returns the names of the
    fields that changed.
    """
    changed = []
    for name in fields:
        if name not in record:
            continue
        value = record[name]
        if name in DATETIME_FIELDS:
            value = coerce_datetime(value, field=name)
        if getattr(instance, name) != value:
            setattr(instance, name, value)
            changed.append(name)
    return changed
