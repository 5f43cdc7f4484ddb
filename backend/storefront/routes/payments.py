# Overview: Flask API routes for online payments; gateway intent creation and completion verification.

# backend/storefront/routes/payments.py
"""
Online Payment API Routes

WHY: The browser SDK of an online gateway needs a gateway-side order to open
its checkout, and reports a signed proof back when the customer pays. Both
steps are bound to a checkout session so the order is written exactly once,
only after the proof verifies.

SECURITY:
- Only the public key id is returned to the client; secrets stay in config
- Proofs are checked server-side (HMAC / checksum) before any order exists
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import StorefrontError, ValidationError, json_error
from ..services import settings_service
from ..services.payment_service import ONLINE_GATEWAYS, PaymentProof
from ..services.pricing_service import to_minor_units
from .checkout import get_registry


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payment")


def _session_for(gateway: str, data: dict):
    if gateway not in ONLINE_GATEWAYS:
        raise ValidationError(f"Unknown payment gateway: {gateway}", fields=["gateway"])
    session_id = data.get("sessionId")
    if not session_id:
        raise ValidationError("sessionId required", fields=["sessionId"])
    return get_registry().get(str(session_id))


# =============================================================================
# INTENT CREATION
# =============================================================================

@payments_bp.post("/<gateway>/create-order")
def create_payment_order_route(gateway: str):
    """
    Create the gateway-side order for a checkout session.

    Request body:
    {
        "sessionId": "…",
        "amount": 2700        (optional, major units; must equal the cart total)
    }

    Returns:
        200: {key_id, order: {id, amount, currency}}
        400: Invalid input / gateway not enabled
        409: A payment attempt is already awaiting completion
        502: Gateway unavailable (retryable)
    """
    try:
        data = request.get_json(silent=True) or {}
        session = _session_for(gateway, data)

        if session.gateway is None or session.gateway.gateway_id != gateway:
            session.select_payment_method(gateway, settings_service.enabled_gateway_ids())
        if data.get("amount") is not None and to_minor_units(data["amount"]) != session.total_amount:
            raise ValidationError("amount does not match the cart total", fields=["amount"])

        intent = session.begin_payment()
        return jsonify(intent.to_client_dict()), 200

    except StorefrontError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to create %s payment order", gateway)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# VERIFICATION
# =============================================================================

@payments_bp.post("/<gateway>/verify")
def verify_payment_route(gateway: str):
    """
    Verify the client's completion proof and persist the order.

    Request body:
    {
        "sessionId": "…",
        "gatewayOrderId": "order_…",
        "gatewayPaymentId": "pay_…",
        "signature": "…"
    }
    (razorpay_order_id / razorpay_payment_id / razorpay_signature are accepted too)

    Returns:
        200: {success: true, order}
        402: {success: false, reason: "payment_rejected"}
        502: Gateway unavailable; start a new payment attempt
    """
    try:
        data = request.get_json(silent=True) or {}
        session = _session_for(gateway, data)
        if session.gateway is None or session.gateway.gateway_id != gateway:
            raise ValidationError(f"Checkout is not paying with {gateway}", fields=["gateway"])

        proof = PaymentProof.from_dict(data)
        order = session.complete_payment(proof)
        if order is None:
            return jsonify({"success": False, "abandoned": True, "session": session.to_dict()}), 200
        return jsonify({"success": True, "order": order.to_dict()}), 200

    except StorefrontError as e:
        return json_error(e, success=False)
    except Exception:
        current_app.logger.exception("Failed to verify %s payment", gateway)
        return jsonify({"success": False, "error": "Internal server error"}), 500
