"""
Idempotency guard for offline-originated sales.

A device generates a client_reference_id for every sale it rings up while
offline and may upload the same sale more than once (retries, flaky links).
The pair (tenant_id, client_reference_id) identifies the sale; a replay is
skipped, never reported as an error.

Callers check before committing a new sale. The unique constraint
uq_sales_tenant_client_ref backs this up for writers racing each other.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Sale


def normalize_reference(client_reference_id) -> str | None:
    if client_reference_id is None:
        return None
    ref = str(client_reference_id).strip()
    return ref or None


def find_by_client_reference(tenant_id: str, client_reference_id) -> Sale | None:
    ref = normalize_reference(client_reference_id)
    if ref is None:
        return None
    return (
        db.session.query(Sale)
        .filter(Sale.tenant_id == tenant_id, Sale.client_reference_id == ref)
        .first()
    )


def is_duplicate(tenant_id: str, client_reference_id) -> bool:
    """True iff a sale with this reference already exists for the tenant. Absent reference: never."""
    if normalize_reference(client_reference_id) is None:
        return False
    return find_by_client_reference(tenant_id, client_reference_id) is not None
