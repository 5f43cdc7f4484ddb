# Overview: Flask API routes for orders; operator listing and status changes, customer order history.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_admin
from ..errors import StorefrontError, ValidationError, json_error
from ..services import order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

# camelCase body key -> Order Store field
_PATCH_FIELDS = {
    "status": "status",
    "paymentStatus": "payment_status",
    "paymentMethod": "payment_method",
    "shippingAddress": "shipping_address",
    "gatewayPaymentId": "gateway_payment_id",
}


def _parse_patch(data: dict) -> dict:
    unknown = sorted(k for k in data if k not in _PATCH_FIELDS)
    if unknown:
        raise ValidationError(f"Fields not updatable: {', '.join(unknown)}", fields=unknown)
    patch = {_PATCH_FIELDS[k]: v for k, v in data.items()}
    if not patch:
        raise ValidationError("No fields to update")
    return patch


@orders_bp.get("")
@require_admin
def list_orders_route():
    """Query params: status (optional filter). Newest first."""
    try:
        orders = order_service.list_orders(status=request.args.get("status") or None)
        return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)}), 200
    except StorefrontError as e:
        return json_error(e)


@orders_bp.get("/<order_id>")
@require_admin
def get_order_route(order_id: str):
    try:
        return jsonify(order_service.get_order(order_id).to_dict()), 200
    except StorefrontError as e:
        return json_error(e)


@orders_bp.put("/<order_id>")
@require_admin
def update_order_route(order_id: str):
    """
    Update an order.

    Request body (any subset):
    {
        "status": "shipped",
        "paymentStatus": "completed",
        "paymentMethod": "...",
        "shippingAddress": "...",
        "gatewayPaymentId": "..."
    }

    The whole body commits as one update. A status change notifies the
    customer (best-effort).

    Returns:
        200: Updated order
        400: Unknown field / invalid status
        404: Order not found
    """
    try:
        patch = _parse_patch(request.get_json(silent=True) or {})
        order = order_service.update_order_and_notify(order_id, patch)
        return jsonify(order.to_dict()), 200

    except StorefrontError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to update order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/customer/<email>")
def list_customer_orders_route(email: str):
    """Order history for one customer email, oldest first."""
    orders = order_service.list_orders_by_customer_email(email)
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)}), 200
