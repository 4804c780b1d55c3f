from __future__ import annotations

from ..extensions import db
from infopos.time_utils import to_utc_z, utcnow


class ConsumedEvent(db.Model):
    """
    Consumer-side record of every event id a consumer has acknowledged.

    WHY: Delivery is at-least-once. A redelivered event id already recorded
    for the same consumer is acknowledged without running the handler again.

    Outcomes:
    - APPLIED: handler ran and changed (or confirmed) state
    - IGNORED: handler ran and dropped the event (stale snapshot, log-only type)
    - FAILED: handler raised; the event was still acknowledged

    Append-only: rows are never updated.
    """
    __tablename__ = "consumed_events"
    __table_args__ = (
        db.UniqueConstraint("consumer", "event_id", name="uq_consumed_events_consumer_event"),
        db.Index("ix_consumed_events_tenant_consumed", "tenant_id", "consumed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    consumer = db.Column(db.String(64), nullable=False)
    event_id = db.Column(db.String(64), nullable=False, index=True)
    channel = db.Column(db.String(32), nullable=False, index=True)
    event_type = db.Column(db.String(64), nullable=False)
    tenant_id = db.Column(db.String(64), nullable=True)

    outcome = db.Column(db.String(16), nullable=False)
    error = db.Column(db.String(500), nullable=True)

    consumed_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "consumer": self.consumer,
            "event_id": self.event_id,
            "channel": self.channel,
            "event_type": self.event_type,
            "tenant_id": self.tenant_id,
            "outcome": self.outcome,
            "error": self.error,
            "consumed_at": to_utc_z(self.consumed_at),
        }
