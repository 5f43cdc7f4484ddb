import unittest
from flask import Flask

from storefront.extensions import db
from storefront.models import SettingValue
from storefront.services import settings_service
from storefront.services.settings_service import (
    DEFAULT_NOTIFICATION_SETTINGS,
    NOTIFICATION_SETTINGS_KEY,
    SettingsValidationError,
)


class SettingsServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = Flask(__name__)
        cls.app.config.update(
            SECRET_KEY="test",
            SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
            SQLALCHEMY_TRACK_MODIFICATIONS=False,
            TESTING=True,
        )
        db.init_app(cls.app)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        from storefront import models  # noqa: F401
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(SettingValue).delete()
        db.session.commit()

    def test_defaults_when_nothing_stored(self):
        settings = settings_service.get_notification_settings()
        self.assertEqual(settings, DEFAULT_NOTIFICATION_SETTINGS)
        self.assertFalse(settings.sms_enabled)
        self.assertFalse(settings.whatsapp_enabled)
        self.assertEqual(settings.sms_provider, "fast2sms")

    def test_partial_update_keeps_other_fields(self):
        settings_service.update_notification_settings({"smsEnabled": True, "apiKey": "k1"})
        settings_service.update_notification_settings({"adminPhone": "+919000000000"})

        settings = settings_service.get_notification_settings()
        self.assertTrue(settings.sms_enabled)
        self.assertEqual(settings.api_key, "k1")
        self.assertEqual(settings.admin_phone, "+919000000000")
        self.assertEqual(settings.templates, DEFAULT_NOTIFICATION_SETTINGS.templates)

    def test_template_update(self):
        settings_service.update_notification_settings({"orderShippedTemplate": "{orderId} is on its way"})
        settings = settings_service.get_notification_settings()
        self.assertEqual(settings.templates.order_shipped, "{orderId} is on its way")
        self.assertEqual(settings.templates.order_placed, DEFAULT_NOTIFICATION_SETTINGS.templates.order_placed)

    def test_boolean_strings_coerced(self):
        settings = settings_service.update_notification_settings({"whatsappEnabled": "true"})
        self.assertTrue(settings.whatsapp_enabled)

    def test_invalid_values_rejected_and_not_saved(self):
        for payload in (
            {"provider": "carrier-pigeon"},
            {"whatsappProvider": "msg91"},
            {"route": "express"},
            {"smsEnabled": "maybe"},
            {"orderPlacedTemplate": "Hi {customerName"},
            {"adminOrderTemplate": "   "},
            {"apiKey": 12345},
        ):
            with self.subTest(payload=payload):
                with self.assertRaises(SettingsValidationError):
                    settings_service.update_notification_settings(payload)
        self.assertIsNone(db.session.get(SettingValue, NOTIFICATION_SETTINGS_KEY))

    def test_secrets_masked_on_request(self):
        settings = settings_service.update_notification_settings({"apiKey": "k1", "apiSecret": ""})
        data = settings.to_dict(include_secrets=False)
        self.assertEqual(data["apiKey"], "********")
        self.assertEqual(data["apiSecret"], "")

    def test_payment_gateways_default_disabled(self):
        gateways = settings_service.get_payment_gateways()
        self.assertEqual([g.id for g in gateways], ["razorpay", "phonepe"])
        self.assertEqual(settings_service.enabled_gateway_ids(), set())

    def test_enable_gateway(self):
        settings_service.update_payment_gateway("phonepe", {"enabled": True})
        self.assertEqual(settings_service.enabled_gateway_ids(), {"phonepe"})
        self.assertEqual(settings_service.get_payment_gateways()[1].name, "PhonePe")

    def test_unknown_gateway_rejected(self):
        with self.assertRaises(SettingsValidationError):
            settings_service.update_payment_gateway("paypal", {"enabled": True})

    def test_seed_defaults_is_idempotent(self):
        self.assertEqual(settings_service.seed_defaults(), 2)
        self.assertEqual(settings_service.seed_defaults(), 0)


if __name__ == "__main__":
    unittest.main()
