"""
Tenant Context: the current tenant for the unit of work being executed.

WHY: Every query and every event is scoped to a tenant. The tenant is resolved
once per inbound request (X-Tenant-ID header) or once per consumed event, and
must never leak into an unrelated unit of work that happens to run on the
same thread or worker afterwards.

INVARIANTS:
1. The holder is a ContextVar, so concurrently executing requests/tasks each
   see their own value.
2. Requests: the value is set in before_request and cleared in
   teardown_request, which Flask runs on success, error responses and
   unhandled exceptions alike.
3. Consumers and CLI jobs use tenant_scope(), which restores the previous
   value on every exit path.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

from flask import Flask, current_app, request

logger = logging.getLogger(__name__)

_current_tenant: ContextVar[Optional[str]] = ContextVar("infopos_current_tenant", default=None)


class TenantContextError(RuntimeError):
    """Raised when an operation needs a tenant and none is established."""


def set_current_tenant(tenant_id: str) -> None:
    logger.debug("Setting tenant to %s", tenant_id)
    _current_tenant.set(tenant_id)


def get_current_tenant() -> Optional[str]:
    return _current_tenant.get()


def clear() -> None:
    _current_tenant.set(None)


def require_tenant() -> str:
    tenant_id = _current_tenant.get()
    if not tenant_id:
        raise TenantContextError("Tenant context not established")
    return tenant_id


@contextmanager
def tenant_scope(tenant_id: str) -> Iterator[str]:
    """Run a block under tenant_id, restoring whatever was current before."""
    token = _current_tenant.set(tenant_id)
    try:
        yield tenant_id
    finally:
        _current_tenant.reset(token)


def resolve_tenant_header(value: Optional[str], default: str) -> str:
    if value is None:
        return default
    value = value.strip()
    return value or default


def init_app(app: Flask) -> None:
    """Install the request hooks that establish and clear the tenant."""

    @app.before_request
    def _establish_tenant():
        header = current_app.config["TENANT_HEADER"]
        raw = request.headers.get(header)
        tenant_id = resolve_tenant_header(raw, current_app.config["DEFAULT_TENANT_ID"])
        if raw is None or not raw.strip():
            logger.debug("No tenant header on request, using default %s", tenant_id)
        set_current_tenant(tenant_id)

    @app.teardown_request
    def _clear_tenant(exc):
        clear()
