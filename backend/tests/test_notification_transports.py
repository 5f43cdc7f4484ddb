"""
SMS / WhatsApp transport tests against httpx.MockTransport.
"""

import json
from dataclasses import replace
from urllib.parse import parse_qs

import httpx

from storefront.services.notification_transports import (
    CHANNEL_SMS,
    CHANNEL_WHATSAPP,
    Fast2SmsTransport,
    Msg91Transport,
    TextlocalTransport,
    TwilioSmsTransport,
    TwilioWhatsAppTransport,
    WebhookTransport,
    build_transports,
    e164_number,
    national_number,
)
from storefront.services.settings_service import DEFAULT_NOTIFICATION_SETTINGS


def _settings(**overrides):
    return replace(DEFAULT_NOTIFICATION_SETTINGS, **overrides)


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


class Recorder:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.body = body if body is not None else {}
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)


class TestPhoneFormats:
    def test_national_number(self):
        assert national_number("+91 98765 43210") == "9876543210"
        assert national_number("98765-43210") == "9876543210"

    def test_e164(self):
        assert e164_number("98765 43210") == "+919876543210"
        assert e164_number("+1 415 555 0100") == "+14155550100"


class TestProviders:
    def test_fast2sms(self):
        rec = Recorder(body={"return": True, "request_id": "r1"})
        transport = Fast2SmsTransport(_settings(api_key="f2s-key"), _client(rec))

        assert transport.send("+91 98765 43210", "hello") is True
        request = rec.requests[0]
        form = parse_qs(request.content.decode())
        assert request.headers["authorization"] == "f2s-key"
        assert form["numbers"] == ["9876543210"]
        assert form["route"] == ["transactional"]
        assert form["message"] == ["hello"]

    def test_fast2sms_rejection_in_body(self):
        rec = Recorder(body={"return": False, "message": "Invalid Authentication"})
        assert Fast2SmsTransport(_settings(api_key="bad"), _client(rec)).send("9876543210", "x") is False

    def test_twilio_sms(self):
        rec = Recorder(status_code=201, body={"sid": "SM1"})
        settings = _settings(api_key="AC123", api_secret="token", sender_id="+15005550006")
        assert TwilioSmsTransport(settings, _client(rec)).send("9876543210", "hi") is True

        request = rec.requests[0]
        assert request.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
        form = parse_qs(request.content.decode())
        assert form["To"] == ["+919876543210"]
        assert form["From"] == ["+15005550006"]

    def test_twilio_whatsapp_prefix(self):
        rec = Recorder(status_code=201)
        settings = _settings(api_key="AC123", api_secret="token", sender_id="+14155238886")
        transport = TwilioWhatsAppTransport(settings, _client(rec))
        assert transport.channel == CHANNEL_WHATSAPP
        assert transport.send("9876543210", "hi") is True

        form = parse_qs(rec.requests[0].content.decode())
        assert form["To"] == ["whatsapp:+919876543210"]
        assert form["From"] == ["whatsapp:+14155238886"]

    def test_msg91(self):
        rec = Recorder(body={"type": "success"})
        transport = Msg91Transport(_settings(api_key="authkey", sender_id="RADHAS"), _client(rec))
        assert transport.send("+91 98765 43210", "hi") is True

        body = json.loads(rec.requests[0].content)
        assert rec.requests[0].headers["authkey"] == "authkey"
        assert body["sender"] == "RADHAS"
        assert body["sms"][0]["to"] == ["9876543210"]

    def test_textlocal(self):
        rec = Recorder(body={"status": "failure"})
        transport = TextlocalTransport(_settings(api_key="tl", sender_id="TXTLCL"), _client(rec))
        assert transport.send("9876543210", "hi") is False

    def test_webhook_bearer(self):
        rec = Recorder()
        transport = WebhookTransport(_settings(webhook_url="https://hooks.test/sms", api_key="hook-token"), _client(rec))
        assert transport.send("9876543210", "hi") is True

        request = rec.requests[0]
        assert request.headers["Authorization"] == "Bearer hook-token"
        assert json.loads(request.content) == {"channel": "sms", "phone": "+919876543210", "message": "hi"}


class TestFailures:
    def test_non_2xx_is_false(self):
        rec = Recorder(status_code=401)
        assert WebhookTransport(_settings(webhook_url="https://hooks.test/x"), _client(rec)).send("1234567890", "x") is False

    def test_network_error_is_false(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert WebhookTransport(_settings(webhook_url="https://hooks.test/x"), _client(handler)).send("1234567890", "x") is False

    def test_timeout_is_false(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        assert Fast2SmsTransport(_settings(api_key="k"), _client(handler)).send("1234567890", "x") is False


class TestBuildTransports:
    def test_none_enabled(self):
        assert build_transports(_settings(), _client(Recorder())) == []

    def test_both_channels(self):
        settings = _settings(
            sms_enabled=True,
            whatsapp_enabled=True,
            sms_provider="fast2sms",
            whatsapp_provider="webhook",
            api_key="k",
            webhook_url="https://hooks.test/wa",
        )
        transports = build_transports(settings, _client(Recorder()))
        assert [(t.channel, t.provider) for t in transports] == [(CHANNEL_SMS, "fast2sms"), (CHANNEL_WHATSAPP, "webhook")]

    def test_missing_credentials_skips_channel(self, caplog):
        settings = _settings(sms_enabled=True, sms_provider="twilio", api_key="AC1")
        assert build_transports(settings, _client(Recorder())) == []
        assert "missing api_secret, sender_id" in caplog.text
