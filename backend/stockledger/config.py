# backend/stockledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Calendar-day boundaries for the dashboard and report buckets
    ORG_TIMEZONE = os.environ.get("ORG_TIMEZONE", "Africa/Dar_es_Salaam")

    # Lock wait bound (seconds) and retry count for ledger transactions
    ATOMIC_SCOPE_TIMEOUT_SECONDS = float(os.environ.get("ATOMIC_SCOPE_TIMEOUT_SECONDS", "5"))
    ATOMIC_SCOPE_RETRIES = int(os.environ.get("ATOMIC_SCOPE_RETRIES", "3"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Callable(event_type) -> list[user_id]; None means "all active admins"
    NOTIFICATION_RECIPIENT_RESOLVER = None

    # Browser origins allowed to call the API directly
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get("CORS_ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
        if o.strip()
    )
