# backend/storefront/routes/system.py
"""
System health endpoint.

Reports database reachability and which online gateways are both enabled in
settings and configured with credentials.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import Order
from ..services import settings_service
from ..services.payment_service import GATEWAY_PHONEPE, GATEWAY_RAZORPAY
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")

_GATEWAY_CREDENTIALS = {
    GATEWAY_RAZORPAY: ("RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET"),
    GATEWAY_PHONEPE: ("PHONEPE_MERCHANT_ID", "PHONEPE_SALT_KEY"),
}


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        order_count = db.session.query(Order).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"orders": order_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_payment_health() -> dict:
    """Enabled gateways missing credentials make checkout degraded, not down (COD still works)."""
    try:
        enabled = settings_service.enabled_gateway_ids()
    except Exception:
        current_app.logger.exception("Payment settings health check failed")
        return {"status": "unhealthy", "error": "Settings error"}

    config = current_app.config
    unconfigured = sorted(
        gateway for gateway in enabled
        if not all(config.get(key) for key in _GATEWAY_CREDENTIALS.get(gateway, ()))
    )
    result = {
        "status": "degraded" if unconfigured else "healthy",
        "details": {"enabled": sorted(enabled)},
    }
    if unconfigured:
        result["warning"] = f"Enabled but not configured: {', '.join(unconfigured)}"
    return result


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    payment_health = check_payment_health()

    all_checks = [database_health, payment_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "payments": payment_health,
            "checkout_sessions": len(current_app.extensions["checkout_registry"]),
        },
    }
    return response, http_status
