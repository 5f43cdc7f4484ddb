# Overview: Flask API routes for operator notification actions; test sends and manual re-sends.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_admin
from ..errors import StorefrontError, ValidationError, json_error
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.post("/test")
@require_admin
def send_test_notification_route():
    """
    Send a test message on every enabled channel.

    Request body: {"phone": "+91 98765 43210"}

    Returns:
        200: {success, channels: {sms: bool, whatsapp: bool}}
        400: Missing phone
    """
    try:
        data = request.get_json(silent=True) or {}
        phone = str(data.get("phone") or "").strip()
        if not phone:
            raise ValidationError("phone required", fields=["phone"])

        channels = notification_service.send_test_notification(phone)
        payload = {"success": any(channels.values()), "channels": channels}
        if not channels:
            payload["message"] = "No notification channel is enabled and configured"
        return jsonify(payload), 200

    except StorefrontError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to send test notification")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.post("/order")
@require_admin
def send_order_notification_route():
    """Request body: {"orderId": "ORD-…", "type": "placed" | "shipped" | "delivered" | "cancelled"}."""
    try:
        data = request.get_json(silent=True) or {}
        order_id = data.get("orderId")
        if not order_id:
            raise ValidationError("orderId required", fields=["orderId"])

        notification_service.send_order_notification(str(order_id), data.get("type"))
        return jsonify({"success": True}), 200

    except StorefrontError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to send order notification")
        return jsonify({"error": "Internal server error"}), 500
