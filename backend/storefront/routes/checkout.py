# Overview: Flask API routes for checkout sessions; parses input and returns JSON responses.

# backend/storefront/routes/checkout.py
"""
Checkout Session API Routes

WHY: The storefront drives one CheckoutSession per cart across several
requests: details, payment method, then either place-order (Cash on
Delivery) or the /api/payment/<gateway> endpoints for online payment.

DESIGN:
- Sessions live in the app's CheckoutRegistry (process memory)
- Prices arrive with the cart; totals are recomputed server-side in minor units
- Enabled gateways are read fresh from settings for every selection
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import StorefrontError, json_error
from ..services import notification_service, order_service, settings_service
from ..services.checkout_service import CheckoutRegistry, CheckoutSession
from ..services.payment_service import GATEWAY_COD, build_http_client, get_gateway
from ..services.pricing_service import parse_cart


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


def get_registry() -> CheckoutRegistry:
    return current_app.extensions["checkout_registry"]


def gateway_factory(config):
    """Adapter builder bound to the app config; online gateways get their own HTTP client."""
    def _build(gateway_id: str):
        client = None
        if gateway_id != GATEWAY_COD:
            client = build_http_client(config["GATEWAY_TIMEOUT_SECONDS"], config.get("HTTP_TRANSPORT"))
        return get_gateway(gateway_id, config, client)
    return _build


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

@checkout_bp.post("/sessions")
def create_session_route():
    """
    Start a checkout for a cart.

    Request body:
    {
        "items": [
            {"productId": "p1", "quantity": 2, "unitBasePrice": 1000},
            {"productId": "p2", "quantity": 1, "unitBasePrice": 500,
             "selectedVariation": {"id": "v1", "color": "Red", "priceAdjustment": 200}}
        ]
    }

    Returns:
        201: Session snapshot (id, state, totalAmount in minor units)
        400: Invalid cart
    """
    try:
        data = request.get_json(silent=True) or {}
        lines = parse_cart(data.get("items"))

        config = current_app.config
        session = CheckoutSession(
            lines,
            order_store=order_service,
            notifier=notification_service,
            gateway_factory=gateway_factory(config),
            currency=config["CURRENCY"],
            completion_timeout=config["PAYMENT_COMPLETION_TIMEOUT_SECONDS"],
        )
        get_registry().add(session)
        return jsonify(session.to_dict()), 201

    except StorefrontError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to start checkout")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.get("/sessions/<session_id>")
def get_session_route(session_id: str):
    try:
        return jsonify(get_registry().get(session_id).to_dict()), 200
    except StorefrontError as e:
        return json_error(e)


@checkout_bp.post("/sessions/<session_id>/details")
def submit_details_route(session_id: str):
    """
    Request body: {customerName, customerEmail, customerPhone, shippingAddress}

    Returns:
        200: Session snapshot (state selecting_payment_method)
        400: Missing / invalid fields (listed under "fields")
    """
    try:
        session = get_registry().get(session_id)
        session.submit_details(request.get_json(silent=True) or {})
        return jsonify(session.to_dict()), 200

    except StorefrontError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to submit checkout details")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.post("/sessions/<session_id>/payment-method")
def select_payment_method_route(session_id: str):
    """Request body: {"method": "cod" | "razorpay" | "phonepe"}; no method means Cash on Delivery."""
    try:
        session = get_registry().get(session_id)
        data = request.get_json(silent=True) or {}
        session.select_payment_method(data.get("method"), settings_service.enabled_gateway_ids())
        return jsonify(session.to_dict()), 200

    except StorefrontError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to select payment method")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.post("/sessions/<session_id>/place-order")
def place_order_route(session_id: str):
    """
    Cash on Delivery: persist the order immediately (paymentStatus pending).

    Returns:
        201: {order, session}
        409: Wrong state or another attempt in flight
        500: Order could not be saved
    """
    try:
        session = get_registry().get(session_id)
        order = session.place_order()
        return jsonify({"order": order.to_dict(), "session": session.to_dict()}), 201

    except StorefrontError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to place order")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.post("/sessions/<session_id>/abandon")
def abandon_payment_route(session_id: str):
    """Customer dismissed the payment UI; the session returns to payment selection."""
    try:
        session = get_registry().get(session_id)
        session.abandon_payment()
        return jsonify(session.to_dict()), 200
    except StorefrontError as e:
        return json_error(e)
