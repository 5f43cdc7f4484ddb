# Overview: Flask API routes for storefront settings; notification channels and payment gateway toggles.

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_admin
from ..errors import StorefrontError, json_error
from ..services import settings_service


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")

MASKED_SECRET = "********"


def _strip_masked(payload: dict) -> dict:
    # The admin UI echoes masked secrets back; those mean "unchanged".
    return {k: v for k, v in payload.items() if v != MASKED_SECRET}


@settings_bp.get("/notifications")
@require_admin
def get_notification_settings_route():
    settings = settings_service.get_notification_settings()
    return jsonify(settings.to_dict(include_secrets=False)), 200


@settings_bp.put("/notifications")
@require_admin
def update_notification_settings_route():
    """
    Partial update; omitted keys keep their current value.

    Returns:
        200: Saved settings (secrets masked)
        400: Unknown provider, bad template, wrong value type
    """
    try:
        data = request.get_json(silent=True) or {}
        settings = settings_service.update_notification_settings(_strip_masked(data))
        current_app.logger.info("Notification settings updated")
        return jsonify(settings.to_dict(include_secrets=False)), 200

    except StorefrontError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to update notification settings")
        return jsonify({"error": "Internal server error"}), 500


@settings_bp.get("/payment-gateways")
def list_payment_gateways_route():
    """Public: the storefront renders only enabled gateways."""
    gateways = settings_service.get_payment_gateways()
    return jsonify({"items": [g.to_dict() for g in gateways], "count": len(gateways)}), 200


@settings_bp.put("/payment-gateways/<gateway_id>")
@require_admin
def update_payment_gateway_route(gateway_id: str):
    """Request body: {"enabled": true, "name": "Razorpay"} (any subset)."""
    try:
        gateway = settings_service.update_payment_gateway(gateway_id, request.get_json(silent=True) or {})
        current_app.logger.info("Payment gateway %s enabled=%s", gateway.id, gateway.enabled)
        return jsonify(gateway.to_dict()), 200

    except StorefrontError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to update payment gateway %s", gateway_id)
        return jsonify({"error": "Internal server error"}), 500
