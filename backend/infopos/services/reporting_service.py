# Overview: Read-only sales and inventory reports, tenant-scoped.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from infopos.extensions import db
from infopos.models import Sale
from infopos.time_utils import coerce_datetime, to_utc_z
from infopos.validation import ValidationError
from infopos.services.stock_service import inventory_status as _inventory_status
from infopos.services.tenant_service import current_tenant_id


def _parse_range(start, end) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = coerce_datetime(start, field="start")
        end_dt = coerce_datetime(end, field="end")
    except ValueError as exc:
        raise ValidationError(str(exc))
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError("start must be before end")
    return start_dt, end_dt


def _completed_sales(tenant_id: str, start_dt, end_dt):
    query = db.session.query(Sale).filter(
        Sale.tenant_id == tenant_id,
        Sale.status == "COMPLETED",
    )
    if start_dt:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt:
        query = query.filter(Sale.created_at <= end_dt)
    return query


def daily_report(tenant_id: str | None = None, start=None, end=None) -> dict:
    """Per-day count and revenue of COMPLETED sales."""
    tenant_id = current_tenant_id(tenant_id)
    start_dt, end_dt = _parse_range(start, end)

    period_expr = func.strftime("%Y-%m-%d", Sale.created_at)
    query = db.session.query(
        period_expr.label("period"),
        func.count(Sale.id).label("sales_count"),
        func.coalesce(func.sum(Sale.total_cents), 0).label("total_cents"),
    ).filter(
        Sale.tenant_id == tenant_id,
        Sale.status == "COMPLETED",
    )
    if start_dt:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt:
        query = query.filter(Sale.created_at <= end_dt)

    rows = query.group_by("period").order_by("period").all()
    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "rows": [
            {
                "date": row.period,
                "sales_count": int(row.sales_count or 0),
                "total_cents": int(row.total_cents or 0),
            }
            for row in rows
        ],
    }


def sales_summary(tenant_id: str | None = None, start=None, end=None) -> dict:
    tenant_id = current_tenant_id(tenant_id)
    start_dt, end_dt = _parse_range(start, end)

    sale_count, revenue = (
        _completed_sales(tenant_id, start_dt, end_dt)
        .with_entities(func.count(Sale.id), func.coalesce(func.sum(Sale.total_cents), 0))
        .one()
    )
    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "sale_count": int(sale_count or 0),
        "total_revenue_cents": int(revenue or 0),
    }


def sales_by_payment_method(tenant_id: str | None = None, start=None, end=None) -> dict:
    tenant_id = current_tenant_id(tenant_id)
    start_dt, end_dt = _parse_range(start, end)

    rows = (
        _completed_sales(tenant_id, start_dt, end_dt)
        .with_entities(Sale.payment_method, func.coalesce(func.sum(Sale.total_cents), 0))
        .group_by(Sale.payment_method)
        .order_by(Sale.payment_method.asc())
        .all()
    )
    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "totals_cents": {method: int(total or 0) for method, total in rows},
    }


def inventory_status(tenant_id: str | None = None, threshold=None) -> dict:
    return _inventory_status(current_tenant_id(tenant_id), threshold)
