# backend/infopos/routes/system.py
"""
System health endpoint.

Checks the database and the event bus. The bus is best-effort: an
unavailable bus degrades the service but does not make it unhealthy,
because committed state never depends on a successful publish.
"""

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..events.envelope import Channel
from ..models import Product, Sale
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        sale_count = db.session.query(Sale).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "sales": sale_count,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_event_bus_health() -> dict:
    bus = current_app.extensions["event_bus"]
    details = {
        "dispatch_mode": bus.dispatch_mode,
        "pending": {c.value: bus.pending(c) for c in Channel},
    }
    if not bus.available:
        return {"status": "degraded", "warning": "Event bus unavailable", "details": details}
    return {"status": "healthy", "details": details}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    bus_health = check_event_bus_health()

    all_checks = [database_health, bus_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    total_elapsed_ms = (time.time() - start_time) * 1000
    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "event_bus": bus_health,
        },
    }, http_status
