"""
Multi-Tenant Service: tenant scoping helpers.

SECURITY INVARIANTS:
1. Every request has a tenant in the tenant context (X-Tenant-ID or "public")
2. Queries touching tenant-owned data filter by tenant_id
3. Rows belonging to another tenant are reported as "not found", never as
   "forbidden", so their existence is not revealed

USAGE:
    from infopos.services.tenant_service import scoped_query, get_scoped

    products = scoped_query(Product).filter_by(is_active=True).all()
    product = get_scoped(Product, product_id)
"""

from __future__ import annotations

from ..extensions import db
from ..tenant_context import require_tenant
from ..validation import NotFoundError


def current_tenant_id(tenant_id: str | None = None) -> str:
    """Explicit tenant_id wins; otherwise the context tenant (raises if absent)."""
    if tenant_id:
        return tenant_id
    return require_tenant()


def scoped_query(model, tenant_id: str | None = None):
    """
    Base query for a tenant-owned model (must have a tenant_id column).

    Args:
        model: SQLAlchemy model class
        tenant_id: tenant to scope to (defaults to the tenant context)
    """
    tenant_id = current_tenant_id(tenant_id)
    return db.session.query(model).filter(model.tenant_id == tenant_id)


def get_scoped(model, entity_id: int, tenant_id: str | None = None, *, label: str | None = None):
    """
    Fetch one tenant-owned row by id or raise NotFoundError.

    A row that exists under another tenant raises exactly like a missing one.
    """
    entity = scoped_query(model, tenant_id).filter(model.id == entity_id).first()
    if entity is None:
        name = label or model.__name__
        raise NotFoundError(f"{name} not found with id: {entity_id}", details={"id": entity_id})
    return entity
