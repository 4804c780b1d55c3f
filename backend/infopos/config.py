# backend/infopos/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/infopos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///infopos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Tenant resolution
    TENANT_HEADER = os.environ.get("TENANT_HEADER", "X-Tenant-ID")
    DEFAULT_TENANT_ID = os.environ.get("DEFAULT_TENANT_ID", "public")

    # Authenticated user id is attached upstream (gateway / auth layer)
    USER_HEADER = os.environ.get("USER_HEADER", "X-User-ID")

    # Event bus: "queued" holds messages until drained, "inline" delivers on publish
    EVENT_BUS_ENABLED = _env_bool("EVENT_BUS_ENABLED", True)
    EVENT_DISPATCH_MODE = os.environ.get("EVENT_DISPATCH_MODE", "queued")

    # Stock ledger compare-and-swap attempts before giving up
    STOCK_CAS_ATTEMPTS = int(os.environ.get("STOCK_CAS_ATTEMPTS", "3"))
    DEFAULT_ALERT_THRESHOLD = int(os.environ.get("DEFAULT_ALERT_THRESHOLD", "5"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
