# Overview: Service-layer order store; durable order records, in-place status updates and lookups.

"""
Order Store

WHY: Orders are the durable outcome of checkout. They are created exactly once
(by the checkout state machine, after payment settles) and afterwards only
their status / payment status move, through update_order().

DESIGN PRINCIPLES:
- Items are snapshots of the cart lines; catalog edits never rewrite a past order
- total_amount is computed once at creation and never recomputed
- Every write stamps updated_at
- Writers on the same order id are serialized; a patch commits as one unit
- Storage failures surface as StorageError, never silently
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFoundError, StorageError, ValidationError
from ..extensions import db
from ..models import Order, OrderItem, ORDER_STATUSES, PAYMENT_STATUSES
from ..time_utils import next_order_id, utcnow
from .concurrency import KeyedLocks, lock_for_update, run_with_retry
from .pricing_service import CartLine, effective_unit_price, line_total


logger = logging.getLogger(__name__)

# Fields an operator action or a payment callback may patch.
UPDATABLE_FIELDS = {
    "status",
    "payment_status",
    "payment_method",
    "shipping_address",
    "gateway_payment_id",
}

_order_locks = KeyedLocks()


@dataclass
class OrderDraft:
    customer_name: str
    customer_email: str
    customer_phone: str
    shipping_address: str
    items: list[CartLine]
    total_amount: int
    payment_method: str
    payment_status: str = "pending"
    status: str = "pending"
    currency: str = "INR"
    gateway: str | None = None
    gateway_order_id: str | None = None
    gateway_payment_id: str | None = None


# =============================================================================
# CREATION
# =============================================================================

def create_order(draft: OrderDraft) -> Order:
    """
    Persist a new order with its item snapshots.

    Raises:
        ValidationError: draft carries an unknown status / payment status
        StorageError: the database rejected the write
    """
    _validate_enum("status", draft.status, ORDER_STATUSES)
    _validate_enum("payment_status", draft.payment_status, PAYMENT_STATUSES)

    now = utcnow()
    order = Order(
        id=next_order_id(),
        customer_name=draft.customer_name,
        customer_email=draft.customer_email,
        customer_phone=draft.customer_phone,
        shipping_address=draft.shipping_address,
        total_amount=draft.total_amount,
        currency=draft.currency,
        status=draft.status,
        payment_method=draft.payment_method,
        payment_status=draft.payment_status,
        gateway=draft.gateway,
        gateway_order_id=draft.gateway_order_id,
        gateway_payment_id=draft.gateway_payment_id,
        created_at=now,
        updated_at=now,
    )
    for position, line in enumerate(draft.items):
        order.items.append(
            OrderItem(
                position=position,
                product_id=line.product_id,
                product_name=line.product_name,
                image=line.image,
                variant_id=line.variant_id,
                variant_label=line.variant_label,
                quantity=line.quantity,
                unit_base_price=line.unit_base_price,
                variant_price_adjustment=line.variant_price_adjustment or 0,
                unit_price=effective_unit_price(line),
                line_total=line_total(line),
            )
        )

    try:
        db.session.add(order)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError(f"Failed to persist order: {exc.__class__.__name__}") from exc

    logger.info("Order %s created (%s, %s)", order.id, order.payment_method, order.payment_status)
    return order


# =============================================================================
# UPDATES
# =============================================================================

def update_order(order_id: str, patch: dict) -> Order:
    """
    Merge a patch into an existing order and stamp updated_at.

    Concurrent updates on the same id are serialized: each call's merge
    commits whole, the last committed call wins.

    Raises:
        ValidationError: unknown field or invalid status value
        NotFoundError: no order with this id
        StorageError: the database rejected the write
    """
    order, _ = _apply_patch(order_id, patch)
    return order


def update_order_and_notify(order_id: str, patch: dict, notifier=None) -> Order:
    """
    Operator entry point: apply the whole patch in one commit and, when its
    status actually moved, notify the customer.

    The previous status is read under the same per-order lock as the write,
    so two identical concurrent status changes notify once. Notification is
    best-effort and never fails the update.
    """
    order, previous_status = _apply_patch(order_id, patch)
    if "status" in patch and order.status != previous_status:
        _notify_status_change(order, notifier)
    return order


def update_order_status(order_id: str, status: str, notifier=None) -> Order:
    """Status-only form of update_order_and_notify."""
    return update_order_and_notify(order_id, {"status": status}, notifier)


def _apply_patch(order_id: str, patch: dict) -> tuple[Order, str]:
    unknown = sorted(set(patch) - UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Fields not updatable: {', '.join(unknown)}", fields=unknown)
    if "status" in patch:
        _validate_enum("status", patch["status"], ORDER_STATUSES)
    if "payment_status" in patch:
        _validate_enum("payment_status", patch["payment_status"], PAYMENT_STATUSES)

    def _op():
        order = lock_for_update(
            db.session.query(Order).filter_by(id=order_id).populate_existing()
        ).first()
        if not order:
            db.session.rollback()
            raise NotFoundError(f"Order {order_id} not found")

        previous_status = order.status
        for key, value in patch.items():
            setattr(order, key, value)
        order.updated_at = max(utcnow(), order.created_at)

        db.session.commit()
        return order, previous_status

    with _order_locks.hold(order_id):
        try:
            return run_with_retry(_op)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError(f"Failed to update order {order_id}: {exc.__class__.__name__}") from exc


def _notify_status_change(order: Order, notifier=None) -> None:
    if notifier is None:
        from . import notification_service as notifier
    from .notification_service import StatusChanged
    try:
        notifier.notify(StatusChanged(order.status), order)
    except Exception:
        logger.exception("Status notification for order %s failed", order.id)


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: str) -> Order:
    order = db.session.query(Order).filter_by(id=order_id).first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def list_orders_by_customer_email(email: str) -> list[Order]:
    """Orders for one customer, in insertion order."""
    return (
        db.session.query(Order)
        .filter(db.func.lower(Order.customer_email) == (email or "").strip().lower())
        .order_by(Order.created_at.asc(), Order.id.asc())
        .all()
    )


def list_orders(status: str | None = None) -> list[Order]:
    """Admin listing, newest first."""
    query = db.session.query(Order)
    if status:
        _validate_enum("status", status, ORDER_STATUSES)
        query = query.filter_by(status=status)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


def _validate_enum(name: str, value, allowed: tuple[str, ...]) -> None:
    if value not in allowed:
        raise ValidationError(f"{name} must be one of {', '.join(allowed)}", fields=[name])
