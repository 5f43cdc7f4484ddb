# Overview: Outbound SMS / WhatsApp transports, one class per provider, selected by a registry.

from __future__ import annotations

import logging
import re

import httpx

from .settings_service import NotificationSettings


logger = logging.getLogger(__name__)

CHANNEL_SMS = "sms"
CHANNEL_WHATSAPP = "whatsapp"

DEFAULT_COUNTRY_CODE = "91"


def national_number(phone: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """"+91 98765 43210" -> "9876543210"."""
    digits = re.sub(r"\D", "", phone or "")
    if digits.startswith(country_code) and len(digits) > 10:
        digits = digits[len(country_code):]
    return digits


def e164_number(phone: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """"98765 43210" -> "+919876543210"; numbers already carrying a country code keep it."""
    raw = (phone or "").strip()
    digits = re.sub(r"\D", "", raw)
    if raw.startswith("+") or len(digits) > 10:
        return f"+{digits}"
    return f"+{country_code}{digits}"


class NotificationTransport:
    """
    send(phone, message) -> bool

    Returns False on any delivery failure (non-2xx, provider rejection,
    network error, timeout). Never raises for transport problems.
    """

    channel = CHANNEL_SMS
    provider = ""
    required_credentials: tuple[str, ...] = ()

    def __init__(self, settings: NotificationSettings, client: httpx.Client):
        self.settings = settings
        self.client = client

    @classmethod
    def missing_credentials(cls, settings: NotificationSettings) -> list[str]:
        return [name for name in cls.required_credentials if not getattr(settings, name)]

    def send(self, phone: str, message: str) -> bool:
        try:
            response = self._post(phone, message)
        except httpx.HTTPError as exc:
            logger.warning("%s/%s send to %s failed: %s", self.channel, self.provider, _mask(phone), exc)
            return False
        if not response.is_success:
            logger.warning(
                "%s/%s send to %s rejected: HTTP %s",
                self.channel, self.provider, _mask(phone), response.status_code,
            )
            return False
        if not self._accepted(response):
            logger.warning("%s/%s send to %s rejected: %s", self.channel, self.provider, _mask(phone), response.text[:200])
            return False
        logger.info("%s/%s message sent to %s", self.channel, self.provider, _mask(phone))
        return True

    def _post(self, phone: str, message: str) -> httpx.Response:
        raise NotImplementedError

    def _accepted(self, response: httpx.Response) -> bool:
        return True


class TwilioSmsTransport(NotificationTransport):
    """api_key = account SID, api_secret = auth token, sender_id = from number."""

    provider = "twilio"
    required_credentials = ("api_key", "api_secret", "sender_id")
    api_base = "https://api.twilio.com/2010-04-01"

    def _address(self, phone: str) -> str:
        return e164_number(phone)

    def _post(self, phone: str, message: str) -> httpx.Response:
        s = self.settings
        return self.client.post(
            f"{self.api_base}/Accounts/{s.api_key}/Messages.json",
            data={
                "To": self._address(phone),
                "From": self._address(s.sender_id),
                "Body": message,
            },
            auth=(s.api_key, s.api_secret),
        )


class TwilioWhatsAppTransport(TwilioSmsTransport):
    channel = CHANNEL_WHATSAPP

    def _address(self, phone: str) -> str:
        return f"whatsapp:{e164_number(phone)}"


class Msg91Transport(NotificationTransport):
    """api_key = auth key, sender_id = DLT sender id."""

    provider = "msg91"
    required_credentials = ("api_key", "sender_id")
    url = "https://api.msg91.com/api/v2/sendsms"

    def _post(self, phone: str, message: str) -> httpx.Response:
        s = self.settings
        return self.client.post(
            self.url,
            json={
                "sender": s.sender_id,
                "route": "4",
                "country": DEFAULT_COUNTRY_CODE,
                "sms": [{"message": message, "to": [national_number(phone)]}],
            },
            headers={"authkey": s.api_key},
        )

    def _accepted(self, response: httpx.Response) -> bool:
        try:
            return response.json().get("type") == "success"
        except ValueError:
            return False


class TextlocalTransport(NotificationTransport):
    provider = "textlocal"
    required_credentials = ("api_key", "sender_id")
    url = "https://api.textlocal.in/send/"

    def _post(self, phone: str, message: str) -> httpx.Response:
        s = self.settings
        return self.client.post(
            self.url,
            data={
                "apikey": s.api_key,
                "numbers": DEFAULT_COUNTRY_CODE + national_number(phone),
                "sender": s.sender_id,
                "message": message,
            },
        )

    def _accepted(self, response: httpx.Response) -> bool:
        try:
            return response.json().get("status") == "success"
        except ValueError:
            return False


class Fast2SmsTransport(NotificationTransport):
    """Fast2SMS bulk API; the api key goes in the authorization header."""

    provider = "fast2sms"
    required_credentials = ("api_key",)
    url = "https://www.fast2sms.com/dev/bulkV2"

    def _post(self, phone: str, message: str) -> httpx.Response:
        return self.client.post(
            self.url,
            data={
                "route": self.settings.route,
                "numbers": national_number(phone),
                "message": message,
                "flash": "0",
                "language": "english",
            },
            headers={"authorization": self.settings.api_key},
        )

    def _accepted(self, response: httpx.Response) -> bool:
        # {"return": true, "request_id": "...", "message": [...]}
        try:
            return bool(response.json().get("return"))
        except ValueError:
            return False


class WebhookTransport(NotificationTransport):
    """Generic webhook: POST {channel, phone, message} to the configured URL."""

    provider = "webhook"
    required_credentials = ("webhook_url",)

    def _post(self, phone: str, message: str) -> httpx.Response:
        headers = {}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        return self.client.post(
            self.settings.webhook_url,
            json={"channel": self.channel, "phone": e164_number(phone), "message": message},
            headers=headers,
        )


class WhatsAppWebhookTransport(WebhookTransport):
    channel = CHANNEL_WHATSAPP


TRANSPORTS: dict[tuple[str, str], type[NotificationTransport]] = {
    (CHANNEL_SMS, "twilio"): TwilioSmsTransport,
    (CHANNEL_SMS, "msg91"): Msg91Transport,
    (CHANNEL_SMS, "textlocal"): TextlocalTransport,
    (CHANNEL_SMS, "fast2sms"): Fast2SmsTransport,
    (CHANNEL_SMS, "webhook"): WebhookTransport,
    (CHANNEL_WHATSAPP, "twilio"): TwilioWhatsAppTransport,
    (CHANNEL_WHATSAPP, "webhook"): WhatsAppWebhookTransport,
}


def build_transports(settings: NotificationSettings, client: httpx.Client) -> list[NotificationTransport]:
    """
    Active transports for a settings snapshot: at most one SMS and one
    WhatsApp transport. A channel with missing credentials is skipped.
    """
    wanted = []
    if settings.sms_enabled:
        wanted.append((CHANNEL_SMS, settings.sms_provider))
    if settings.whatsapp_enabled:
        wanted.append((CHANNEL_WHATSAPP, settings.whatsapp_provider))

    transports: list[NotificationTransport] = []
    for key in wanted:
        transport_cls = TRANSPORTS.get(key)
        if transport_cls is None:
            logger.warning("No %s transport for provider %s", *key)
            continue
        missing = transport_cls.missing_credentials(settings)
        if missing:
            logger.warning("%s/%s not configured (missing %s)", key[0], key[1], ", ".join(missing))
            continue
        transports.append(transport_cls(settings, client))
    return transports


def _mask(phone: str) -> str:
    digits = re.sub(r"\D", "", phone or "")
    return f"***{digits[-4:]}" if len(digits) > 4 else "***"
