# Overview: Service-layer notification dispatch; renders order templates and fans them out to transports.

"""
Notification Dispatcher

WHY: Customers and the operator hear about new orders and status changes by
SMS / WhatsApp. Delivery is best-effort: nothing here may fail or block the
order placement / status update that triggered it.

FAN-OUT:
- OrderPlaced:   customer (notify_on_new_order) + operator with the admin
                 template (notify_admin_on_order, admin_phone set)
- StatusChanged: customer only (notify_on_status_change)

Every active transport (one SMS, one WhatsApp) receives each message.

notify() only prepares the work; delivery runs on a small background pool so
a slow provider never holds up checkout or an operator status change.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass

from flask import current_app

from ..errors import ValidationError
from ..time_utils import to_utc_z, utcnow
from . import settings_service
from .notification_transports import NotificationTransport, build_transports
from .order_service import get_order
from .payment_service import build_http_client
from .pricing_service import format_amount
from .settings_service import NotificationSettings, NotificationTemplates, PLACEHOLDER_RE


logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="notify")
_pending: set[Future] = set()
_pending_lock = threading.Lock()


@dataclass(frozen=True)
class OrderPlaced:
    kind = "placed"


@dataclass(frozen=True)
class StatusChanged:
    new_status: str

    @property
    def kind(self) -> str:
        return (self.new_status or "").strip().lower()


NOTIFICATION_KINDS = ("placed", "shipped", "delivered", "cancelled")


@dataclass(frozen=True)
class OrderSnapshot:
    """The order fields templates need, detached from the database session."""
    id: str
    customer_name: str
    customer_phone: str
    total_amount: int

    @classmethod
    def of(cls, order) -> "OrderSnapshot":
        return cls(
            id=order.id,
            customer_name=order.customer_name,
            customer_phone=order.customer_phone,
            total_amount=order.total_amount,
        )


def render_template(template: str, variables: dict[str, str]) -> str:
    """Replace {name} for supplied variables; unknown placeholders stay verbatim."""
    def _sub(match):
        name = match.group(1)
        if name in variables and variables[name] is not None:
            return str(variables[name])
        return match.group(0)
    return PLACEHOLDER_RE.sub(_sub, template)


def template_for(event, templates: NotificationTemplates) -> str:
    """
    Customer template for an event.

    Statuses other than shipped / delivered / cancelled (e.g. "processing")
    fall back to the order-placed template.
    """
    if isinstance(event, StatusChanged):
        by_status = {
            "shipped": templates.order_shipped,
            "delivered": templates.order_delivered,
            "cancelled": templates.order_cancelled,
        }
        return by_status.get(event.kind, templates.order_placed)
    return templates.order_placed


def order_variables(order, store_name: str, tracking_url: str) -> dict[str, str]:
    return {
        "customerName": order.customer_name,
        "orderId": order.id,
        "amount": format_amount(order.total_amount),
        "storeName": store_name,
        "trackingUrl": tracking_url.replace("{orderId}", str(order.id)),
    }


class NotificationDispatcher:
    def __init__(
        self,
        settings: NotificationSettings,
        transports: list[NotificationTransport],
        *,
        store_name: str = "",
        tracking_url: str = "",
        client=None,
    ):
        self.settings = settings
        self.transports = transports
        self.client = client
        self.store_name = store_name
        self.tracking_url = tracking_url

    def close(self) -> None:
        if self.client is not None:
            self.client.close()

    def notify(self, event, order) -> None:
        """Render and send; every failure is logged and swallowed."""
        try:
            self._dispatch(event, order)
        except Exception:
            logger.exception("Notification dispatch for order %s failed", getattr(order, "id", "?"))

    def _dispatch(self, event, order) -> None:
        if not self.transports:
            logger.debug("No notification channel enabled; skipping order %s", order.id)
            return

        s = self.settings
        variables = order_variables(order, self.store_name, self.tracking_url)

        if isinstance(event, StatusChanged):
            if not s.notify_on_status_change:
                logger.debug("Status change notifications are disabled")
                return
            self.send_to(order.customer_phone, render_template(template_for(event, s.templates), variables))
            return

        if s.notify_on_new_order:
            self.send_to(order.customer_phone, render_template(template_for(event, s.templates), variables))
        if s.notify_admin_on_order and s.admin_phone:
            admin_variables = dict(variables, customerPhone=order.customer_phone)
            self.send_to(s.admin_phone, render_template(s.templates.admin_order, admin_variables))

    def send_to(self, phone: str, message: str) -> dict[str, bool]:
        results: dict[str, bool] = {}
        if not phone:
            return results
        for transport in self.transports:
            try:
                results[transport.channel] = transport.send(phone, message)
            except Exception:
                logger.exception("%s/%s transport raised", transport.channel, transport.provider)
                results[transport.channel] = False
        return results


# =============================================================================
# APP-BOUND HELPERS
# =============================================================================

def build_dispatcher(settings: NotificationSettings | None = None) -> NotificationDispatcher:
    """Dispatcher over a fresh settings snapshot and the app's HTTP transport."""
    settings = settings or settings_service.get_notification_settings()
    config = current_app.config
    client = build_http_client(config["NOTIFICATION_TIMEOUT_SECONDS"], config.get("HTTP_TRANSPORT"))
    return NotificationDispatcher(
        settings,
        build_transports(settings, client),
        store_name=config["STORE_NAME"],
        tracking_url=config["ORDER_TRACKING_URL"],
        client=client,
    )


def notify(event, order) -> Future | None:
    """
    Module-level notifier used by checkout and order status updates.

    Settings, transports and the order's fields are captured in the caller's
    app context; the sends happen on the background pool. Returns the
    delivery future, or None when nothing could be prepared.
    """
    try:
        snapshot = OrderSnapshot.of(order)
        dispatcher = build_dispatcher()
    except Exception:
        logger.exception("Could not prepare notifications for order %s", getattr(order, "id", "?"))
        return None

    future = _executor.submit(_deliver, dispatcher, event, snapshot)
    with _pending_lock:
        _pending.add(future)
    future.add_done_callback(_forget)
    return future


def _deliver(dispatcher: NotificationDispatcher, event, order: OrderSnapshot) -> None:
    try:
        dispatcher.notify(event, order)
    finally:
        dispatcher.close()


def _forget(future: Future) -> None:
    with _pending_lock:
        _pending.discard(future)


def wait_for_pending(timeout: float | None = None) -> bool:
    """Block until queued deliveries finish. True when none are left running."""
    with _pending_lock:
        pending = list(_pending)
    _, not_done = wait(pending, timeout=timeout)
    return not not_done


def send_test_notification(phone: str, settings: NotificationSettings | None = None) -> dict[str, bool]:
    """Operator check of the channel configuration; returns per-channel success."""
    dispatcher = build_dispatcher(settings)
    message = (
        f"Test notification from {dispatcher.store_name}! This is a test message to verify your "
        f"SMS/WhatsApp configuration. Timestamp: {to_utc_z(utcnow())}"
    )
    try:
        return dispatcher.send_to(phone, message)
    finally:
        dispatcher.close()


def send_order_notification(order_id: str, kind: str) -> None:
    """Manually (re)send the placed / shipped / delivered / cancelled message for an order."""
    kind = (kind or "").strip().lower()
    if kind not in NOTIFICATION_KINDS:
        raise ValidationError(f"type must be one of {', '.join(NOTIFICATION_KINDS)}", fields=["type"])
    order = get_order(order_id)
    event = OrderPlaced() if kind == "placed" else StatusChanged(kind)
    dispatcher = build_dispatcher()
    try:
        dispatcher.notify(event, order)
    finally:
        dispatcher.close()
