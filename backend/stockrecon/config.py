# backend/stockrecon/config.py
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

    # SQLite DB stored in backend/instance/stockrecon.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockrecon.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Unit barcodes look like GPMSU000123
    BARCODE_PREFIX = os.environ.get("BARCODE_PREFIX", "GPMS")
    BARCODE_COUNTER_WIDTH = int(os.environ.get("BARCODE_COUNTER_WIDTH", "6"))

    # Retry policy for lock / optimistic-concurrency failures on store writes
    STORE_RETRY_ATTEMPTS = int(os.environ.get("STORE_RETRY_ATTEMPTS", "3"))
    STORE_RETRY_BACKOFF = float(os.environ.get("STORE_RETRY_BACKOFF", "0.1"))

    # Write a unit event whenever auto-repair flips sold -> available
    AUDIT_STATUS_REVERSALS = _env_bool("AUDIT_STATUS_REVERSALS", True)
