"""
Notification dispatcher tests: template selection and rendering, fan-out
rules, failure isolation, and the app-bound send helpers.
"""

from dataclasses import replace
from types import SimpleNamespace

import pytest

from storefront.errors import NotFoundError, ValidationError
from storefront.services import notification_service, order_service, settings_service
from storefront.services.notification_service import (
    NotificationDispatcher,
    OrderPlaced,
    StatusChanged,
    render_template,
    template_for,
)
from storefront.services.order_service import OrderDraft
from storefront.services.settings_service import DEFAULT_NOTIFICATION_SETTINGS


TEMPLATES = DEFAULT_NOTIFICATION_SETTINGS.templates


class FakeTransport:
    def __init__(self, channel, ok=True, raises=False):
        self.channel = channel
        self.provider = "fake"
        self.ok = ok
        self.raises = raises
        self.sent = []

    def send(self, phone, message):
        self.sent.append((phone, message))
        if self.raises:
            raise RuntimeError("boom")
        return self.ok


def _order(**overrides):
    values = dict(
        id="ORD-1",
        customer_name="Asha",
        customer_phone="+919876543210",
        total_amount=270000,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def _dispatcher(transports, **settings_overrides):
    settings = replace(DEFAULT_NOTIFICATION_SETTINGS, **settings_overrides)
    return NotificationDispatcher(
        settings,
        transports,
        store_name="Radha Sarees",
        tracking_url="https://shop.test/orders/{orderId}",
    )


class TestTemplates:
    def test_render_replaces_known_placeholders(self):
        text = render_template("Hi {customerName}, order #{orderId}", {"customerName": "Asha", "orderId": "ORD-1"})
        assert text == "Hi Asha, order #ORD-1"

    def test_unknown_placeholder_left_verbatim(self):
        assert render_template("Hi {nickname}", {"customerName": "Asha"}) == "Hi {nickname}"

    @pytest.mark.parametrize("status, expected", [
        ("shipped", TEMPLATES.order_shipped),
        ("SHIPPED", TEMPLATES.order_shipped),
        ("Delivered", TEMPLATES.order_delivered),
        ("cancelled", TEMPLATES.order_cancelled),
        ("processing", TEMPLATES.order_placed),
        ("pending", TEMPLATES.order_placed),
    ])
    def test_status_template_selection(self, status, expected):
        assert template_for(StatusChanged(status), TEMPLATES) == expected

    def test_placed_template(self):
        assert template_for(OrderPlaced(), TEMPLATES) == TEMPLATES.order_placed


class TestFanOut:
    def test_order_placed_goes_to_customer_and_admin(self):
        sms = FakeTransport("sms")
        _dispatcher([sms], admin_phone="+919000000000").notify(OrderPlaced(), _order())

        assert [phone for phone, _ in sms.sent] == ["+919876543210", "+919000000000"]
        customer_text, admin_text = (message for _, message in sms.sent)
        assert "Hi Asha, your order #ORD-1 for ₹2700 has been placed" in customer_text
        assert admin_text == "New Order Alert! Order #ORD-1 - ₹2700 from Asha (+919876543210)"

    def test_no_admin_message_without_admin_phone(self):
        sms = FakeTransport("sms")
        _dispatcher([sms], admin_phone="").notify(OrderPlaced(), _order())
        assert len(sms.sent) == 1

    def test_admin_flag_off(self):
        sms = FakeTransport("sms")
        _dispatcher([sms], admin_phone="+919000000000", notify_admin_on_order=False).notify(OrderPlaced(), _order())
        assert [phone for phone, _ in sms.sent] == ["+919876543210"]

    def test_status_change_customer_only(self):
        sms = FakeTransport("sms")
        _dispatcher([sms], admin_phone="+919000000000").notify(StatusChanged("shipped"), _order())

        assert len(sms.sent) == 1
        phone, message = sms.sent[0]
        assert phone == "+919876543210"
        assert message == (
            "Hi Asha, your order #ORD-1 has been shipped! Track your order: https://shop.test/orders/ORD-1"
        )

    def test_status_change_disabled(self):
        sms = FakeTransport("sms")
        _dispatcher([sms], notify_on_status_change=False).notify(StatusChanged("delivered"), _order())
        assert sms.sent == []

    def test_both_channels_receive_each_message(self):
        sms, whatsapp = FakeTransport("sms"), FakeTransport("whatsapp")
        _dispatcher([sms, whatsapp]).notify(StatusChanged("delivered"), _order())

        assert len(sms.sent) == len(whatsapp.sent) == 1
        assert "Thank you for shopping with Radha Sarees!" in sms.sent[0][1]

    def test_no_transports_no_sends(self):
        # smsEnabled and whatsappEnabled both off -> nothing to build, nothing sent
        _dispatcher([]).notify(OrderPlaced(), _order())


class TestFailureIsolation:
    def test_raising_transport_does_not_stop_others(self):
        broken, whatsapp = FakeTransport("sms", raises=True), FakeTransport("whatsapp")
        _dispatcher([broken, whatsapp], admin_phone="+919000000000").notify(OrderPlaced(), _order())
        assert len(whatsapp.sent) == 2

    def test_notify_never_raises(self):
        dispatcher = _dispatcher([FakeTransport("sms")])
        dispatcher.notify(OrderPlaced(), object())

    def test_send_to_reports_per_channel(self):
        results = _dispatcher([FakeTransport("sms", ok=False), FakeTransport("whatsapp")]).send_to("+91 1", "x")
        assert results == {"sms": False, "whatsapp": True}


class TestAppBoundHelpers:
    def _enable_webhook_sms(self):
        settings_service.update_notification_settings({
            "smsEnabled": True,
            "provider": "webhook",
            "webhookUrl": "https://hooks.test/sms",
        })

    def test_test_notification_uses_enabled_channel(self, db_session, fake_http):
        fake_http.add("POST", "https://hooks.test/sms", json={"ok": True})
        self._enable_webhook_sms()

        results = notification_service.send_test_notification("+91 98765 43210")

        assert results == {"sms": True}
        body = fake_http.calls_to("https://hooks.test/sms")[0].content.decode()
        assert "Test notification from Radha Sarees" in body

    def test_test_notification_without_channels(self, db_session, fake_http):
        assert notification_service.send_test_notification("+919876543210") == {}
        assert fake_http.requests == []

    def test_transport_failure_is_reported_not_raised(self, db_session, fake_http):
        fake_http.add("POST", "https://hooks.test/sms", status_code=500)
        self._enable_webhook_sms()
        assert notification_service.send_test_notification("+919876543210") == {"sms": False}

    def test_send_order_notification(self, db_session, fake_http, cart_lines):
        fake_http.add("POST", "https://hooks.test/sms", json={"ok": True})
        self._enable_webhook_sms()
        order = order_service.create_order(OrderDraft(
            customer_name="Asha",
            customer_email="asha@example.com",
            customer_phone="+919876543210",
            shipping_address="12 MG Road",
            items=cart_lines,
            total_amount=270000,
            payment_method="Cash on Delivery",
        ))

        notification_service.send_order_notification(order.id, "Cancelled")

        sent = fake_http.calls_to("https://hooks.test/sms")
        assert len(sent) == 1
        assert "has been cancelled" in sent[0].content.decode()

    def test_send_order_notification_validates(self, db_session):
        with pytest.raises(ValidationError):
            notification_service.send_order_notification("ORD-1", "returned")
        with pytest.raises(NotFoundError):
            notification_service.send_order_notification("ORD-404", "placed")
