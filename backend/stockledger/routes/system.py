# backend/stockledger/routes/system.py
"""
System health and version endpoints.

Health covers the database, the stock ledger invariant and notification
targeting (at least one active admin to receive alerts).
"""

import os
import time
from typing import Callable

from flask import Blueprint, current_app
from ..extensions import db
from ..models import Product, User
from ..models.auth import ROLE_ADMIN
from ..services.products_service import verify_stock_invariant
from stockledger.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)

MAX_REPORTED_MISMATCHES = 20


def _run_check(label: str, probe: Callable[[], dict]) -> dict:
    """
    Time one probe. The probe returns {"status", ...}; an exception becomes
    an "unhealthy" result and is logged, never raised.
    """
    started = time.perf_counter()
    try:
        result = probe()
    except Exception:
        current_app.logger.exception("%s health check failed", label)
        result = {"status": "unhealthy", "error": f"{label} check error"}
    result["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)
    return result


def _database_probe() -> dict:
    return {
        "status": "healthy",
        "details": {
            "products": db.session.query(Product).count(),
            "users": db.session.query(User).count(),
        },
    }


def _ledger_probe() -> dict:
    # replayed stock must equal the stored counter for every product
    mismatches = verify_stock_invariant()
    if mismatches:
        return {
            "status": "degraded",
            "warning": f"{len(mismatches)} product(s) out of balance",
            "details": {"mismatches": mismatches[:MAX_REPORTED_MISMATCHES]},
        }
    return {"status": "healthy", "details": {"mismatches": []}}


def _notification_probe() -> dict:
    admins = db.session.query(User).filter(User.role == ROLE_ADMIN, User.is_active.is_(True)).count()
    if not admins:
        return {
            "status": "degraded",
            "warning": "No active admins; default alerts have no recipients",
            "details": {"active_admins": 0},
        }
    return {"status": "healthy", "details": {"active_admins": admins}}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still operational)
    - 503: one or more checks unhealthy
    """
    started = time.perf_counter()

    checks = {
        "database": _run_check("Database", _database_probe),
        "ledger": _run_check("Ledger", _ledger_probe),
        "notifications": _run_check("Notification target", _notification_probe),
    }
    statuses = {check["status"] for check in checks.values()}

    if "unhealthy" in statuses:
        overall, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall, http_status = "degraded", 200
    else:
        overall, http_status = "healthy", 200

    return {
        "status": overall,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "checks": checks,
    }, http_status


@system_bp.get("/version")
def version():
    return {
        "name": "stockledger",
        "version": os.environ.get("APP_VERSION", "0.1.0"),
        "org_timezone": current_app.config.get("ORG_TIMEZONE"),
    }
