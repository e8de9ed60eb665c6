# backend/teomarket/routes/system.py
"""
System health endpoint.

Reports database connectivity and whether the base currency row the pricing
code depends on is present.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import Currency
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        base = current_app.config["BASE_CURRENCY"]
        has_base = db.session.query(Currency).filter_by(code=base).first() is not None
        elapsed_ms = (time.time() - start_time) * 1000

        result = {
            "status": "healthy" if has_base else "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"base_currency_configured": has_base},
        }
        if not has_base:
            result["warning"] = f"Base currency {base} missing; run 'flask system init'"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    return {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health},
    }, http_status
