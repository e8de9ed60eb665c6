# backend/teomarket/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/teomarket.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///teomarket.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Pricing pivot; every stored price and exchange rate is relative to it
    BASE_CURRENCY = "RON"
    DEFAULT_CUSTOMER_GROUP = os.environ.get("DEFAULT_CUSTOMER_GROUP", "B2C")

    # Scheduled jobs
    CART_RETENTION_DAYS = int(os.environ.get("CART_RETENTION_DAYS", "30"))
    JOB_LOCK_TTL_SECONDS = int(os.environ.get("JOB_LOCK_TTL_SECONDS", "3600"))

    # Shared secret for the back-office endpoints (empty disables them)
    ADMIN_API_TOKEN = os.environ.get("ADMIN_API_TOKEN", "")
