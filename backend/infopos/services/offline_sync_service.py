"""
Offline batch sync for sales rung up while a device had no connection.

INVARIANTS:
- Records are processed strictly in input order, one at a time, so the
  idempotency check of record N sees every sale committed by records < N.
- One record = one transaction. Its sale, items and stock adjustments commit
  together or not at all.
- No atomicity across records. A failed record is rolled back alone and the
  loop continues; earlier successes stay committed.
- The batch itself never raises for a bad record. The caller gets a
  partitioned result (processed / skipped / failed).
- Events for a record are published only after that record commits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..events.envelope import SyncStatus, sync_event
from ..events import publisher
from .idempotency_service import is_duplicate, normalize_reference
from .sales_service import build_sale, sale_created_events

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    processed: list[dict] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "summary": {
                "processed": len(self.processed),
                "skipped": len(self.skipped),
                "failed": len(self.failed),
            },
        }


def _reference_of(record) -> str | None:
    if not isinstance(record, dict):
        return None
    return normalize_reference(record.get("client_reference_id"))


def _failure(index: int, ref: str | None, exc: Exception) -> dict:
    return {
        "index": index,
        "client_reference_id": ref,
        "error": getattr(exc, "category", "error"),
        "message": str(exc),
        "details": getattr(exc, "details", {}) or {},
    }


def sync_batch(tenant_id: str, user_id, records: list) -> SyncResult:
    """
    Process a batch of offline sale records for one tenant.

    Per record: duplicate client_reference_id -> skipped; otherwise the sale
    is built (timestamp defaults to now, status to COMPLETED) and committed.
    Any error marks the record failed with its error category.
    """
    result = SyncResult()

    for index, record in enumerate(records or []):
        ref = _reference_of(record)

        if is_duplicate(tenant_id, ref):
            logger.info("Skipping duplicate offline sale %s for tenant %s", ref, tenant_id)
            result.skipped.append({"index": index, "client_reference_id": ref, "reason": "duplicate"})
            continue

        try:
            built = build_sale(tenant_id, user_id, record, offline=True)
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            if ref is not None and is_duplicate(tenant_id, ref):
                # Another writer committed the same reference in the meantime
                result.skipped.append({"index": index, "client_reference_id": ref, "reason": "duplicate"})
                continue
            logger.warning("Offline sale %s (index %s) conflicted: %s", ref, index, exc.orig)
            result.failed.append({
                "index": index,
                "client_reference_id": ref,
                "error": "conflict",
                "message": "Sale invoice number or client reference already exists",
                "details": {},
            })
            continue
        except Exception as exc:
            db.session.rollback()
            if getattr(exc, "category", None) is None:
                logger.exception("Unexpected error syncing offline sale %s (index %s)", ref, index)
            else:
                logger.warning("Offline sale %s (index %s) failed: %s", ref, index, exc)
            result.failed.append(_failure(index, ref, exc))
            continue

        snapshot = built.snapshot()
        result.processed.append(built.to_dict())

        events = sale_created_events(built, user_id)
        events.append(sync_event(
            tenant_id, user_id,
            entity_type="sale",
            entity_id=built.sale.id,
            data=snapshot,
            sync_status=SyncStatus.COMPLETED,
            device_id=record.get("device_id"),
        ))
        publisher.publish_all(events)

    logger.info(
        "Offline sync for tenant %s: %s processed, %s skipped, %s failed",
        tenant_id, len(result.processed), len(result.skipped), len(result.failed),
    )
    return result
