# Overview: Service-layer settings boundary; typed, validated notification and gateway settings.

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Any

from ..errors import ValidationError
from ..extensions import db
from ..models import SettingValue


NOTIFICATION_SETTINGS_KEY = "notification_settings"
PAYMENT_GATEWAYS_KEY = "payment_gateways"

SMS_PROVIDERS = {"twilio", "msg91", "textlocal", "fast2sms", "webhook"}
WHATSAPP_PROVIDERS = {"twilio", "webhook"}
FAST2SMS_ROUTES = {"transactional", "promotional"}

PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


class SettingsValidationError(ValidationError):
    pass


@dataclass(frozen=True)
class NotificationTemplates:
    order_placed: str
    order_shipped: str
    order_delivered: str
    order_cancelled: str
    admin_order: str


@dataclass(frozen=True)
class NotificationSettings:
    sms_enabled: bool
    whatsapp_enabled: bool
    sms_provider: str
    whatsapp_provider: str
    api_key: str
    api_secret: str
    sender_id: str
    webhook_url: str
    route: str
    admin_phone: str
    notify_on_new_order: bool
    notify_on_status_change: bool
    notify_admin_on_order: bool
    templates: NotificationTemplates

    def to_dict(self, include_secrets: bool = True) -> dict:
        data = {
            "smsEnabled": self.sms_enabled,
            "whatsappEnabled": self.whatsapp_enabled,
            "provider": self.sms_provider,
            "whatsappProvider": self.whatsapp_provider,
            "apiKey": self.api_key,
            "apiSecret": self.api_secret,
            "senderId": self.sender_id,
            "webhookUrl": self.webhook_url,
            "route": self.route,
            "adminPhone": self.admin_phone,
            "notifyOnNewOrder": self.notify_on_new_order,
            "notifyOnStatusChange": self.notify_on_status_change,
            "notifyAdminOnOrder": self.notify_admin_on_order,
            "orderPlacedTemplate": self.templates.order_placed,
            "orderShippedTemplate": self.templates.order_shipped,
            "orderDeliveredTemplate": self.templates.order_delivered,
            "orderCancelledTemplate": self.templates.order_cancelled,
            "adminOrderTemplate": self.templates.admin_order,
        }
        if not include_secrets:
            for key in ("apiKey", "apiSecret"):
                if data[key]:
                    data[key] = "********"
        return data


@dataclass(frozen=True)
class PaymentGatewaySetting:
    id: str
    name: str
    enabled: bool

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "enabled": self.enabled}


# camelCase wire key -> (field, kind)
_NOTIFICATION_FIELDS: dict[str, tuple[str, str]] = {
    "smsEnabled": ("sms_enabled", "bool"),
    "whatsappEnabled": ("whatsapp_enabled", "bool"),
    "provider": ("sms_provider", "str"),
    "whatsappProvider": ("whatsapp_provider", "str"),
    "apiKey": ("api_key", "str"),
    "apiSecret": ("api_secret", "str"),
    "senderId": ("sender_id", "str"),
    "webhookUrl": ("webhook_url", "str"),
    "route": ("route", "str"),
    "adminPhone": ("admin_phone", "str"),
    "notifyOnNewOrder": ("notify_on_new_order", "bool"),
    "notifyOnStatusChange": ("notify_on_status_change", "bool"),
    "notifyAdminOnOrder": ("notify_admin_on_order", "bool"),
}

_TEMPLATE_FIELDS: dict[str, str] = {
    "orderPlacedTemplate": "order_placed",
    "orderShippedTemplate": "order_shipped",
    "orderDeliveredTemplate": "order_delivered",
    "orderCancelledTemplate": "order_cancelled",
    "adminOrderTemplate": "admin_order",
}

DEFAULT_NOTIFICATION_SETTINGS = NotificationSettings(
    sms_enabled=False,
    whatsapp_enabled=False,
    sms_provider="fast2sms",
    whatsapp_provider="twilio",
    api_key="",
    api_secret="",
    sender_id="",
    webhook_url="",
    route="transactional",
    admin_phone="",
    notify_on_new_order=True,
    notify_on_status_change=True,
    notify_admin_on_order=True,
    templates=NotificationTemplates(
        order_placed=(
            "Hi {customerName}, your order #{orderId} for ₹{amount} has been placed successfully! "
            "We will notify you once it ships."
        ),
        order_shipped="Hi {customerName}, your order #{orderId} has been shipped! Track your order: {trackingUrl}",
        order_delivered=(
            "Hi {customerName}, your order #{orderId} has been delivered. "
            "Thank you for shopping with {storeName}!"
        ),
        order_cancelled=(
            "Hi {customerName}, your order #{orderId} has been cancelled. "
            "Refund will be processed within 5-7 business days."
        ),
        admin_order="New Order Alert! Order #{orderId} - ₹{amount} from {customerName} ({customerPhone})",
    ),
)

DEFAULT_PAYMENT_GATEWAYS = (
    PaymentGatewaySetting(id="razorpay", name="Razorpay", enabled=False),
    PaymentGatewaySetting(id="phonepe", name="PhonePe", enabled=False),
)


# =============================================================================
# COERCION / VALIDATION
# =============================================================================

def _coerce_bool(key: str, v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        s = v.strip().lower()
        if s in {"true", "1", "yes", "on"}:
            return True
        if s in {"false", "0", "no", "off"}:
            return False
    raise SettingsValidationError(f"{key}: expected boolean", fields=[key])


def _coerce_str(key: str, v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, str):
        return v.strip()
    raise SettingsValidationError(f"{key}: expected string", fields=[key])


def parse_notification_settings(raw: dict | None, base: NotificationSettings | None = None) -> NotificationSettings:
    """
    Build NotificationSettings from a camelCase blob layered over `base`.

    Unknown keys are ignored; malformed values, unknown providers and
    templates with broken braces are rejected here rather than at render time.
    """
    base = base or DEFAULT_NOTIFICATION_SETTINGS
    if raw is None:
        return base
    if not isinstance(raw, dict):
        raise SettingsValidationError("notification settings must be an object")

    values: dict[str, Any] = {}
    for key, (name, kind) in _NOTIFICATION_FIELDS.items():
        if key not in raw:
            continue
        values[name] = _coerce_bool(key, raw[key]) if kind == "bool" else _coerce_str(key, raw[key])

    template_values: dict[str, str] = {}
    for key, name in _TEMPLATE_FIELDS.items():
        if key not in raw:
            continue
        template = raw[key]
        if not isinstance(template, str):
            raise SettingsValidationError(f"{key}: expected string", fields=[key])
        _check_template(key, template)
        template_values[name] = template

    settings = replace(base, **values)
    if template_values:
        settings = replace(settings, templates=replace(base.templates, **template_values))

    if settings.sms_provider not in SMS_PROVIDERS:
        raise SettingsValidationError(
            f"provider must be one of {', '.join(sorted(SMS_PROVIDERS))}", fields=["provider"]
        )
    if settings.whatsapp_provider not in WHATSAPP_PROVIDERS:
        raise SettingsValidationError(
            f"whatsappProvider must be one of {', '.join(sorted(WHATSAPP_PROVIDERS))}",
            fields=["whatsappProvider"],
        )
    if settings.route not in FAST2SMS_ROUTES:
        raise SettingsValidationError(
            f"route must be one of {', '.join(sorted(FAST2SMS_ROUTES))}", fields=["route"]
        )
    return settings


def _check_template(key: str, template: str) -> None:
    # Stray braces would otherwise surface as half-rendered messages.
    stripped = PLACEHOLDER_RE.sub("", template)
    if "{" in stripped or "}" in stripped:
        raise SettingsValidationError(f"{key}: unbalanced placeholder braces", fields=[key])
    if not template.strip():
        raise SettingsValidationError(f"{key}: template cannot be empty", fields=[key])


def parse_payment_gateways(raw: Any) -> list[PaymentGatewaySetting]:
    if raw is None:
        return list(DEFAULT_PAYMENT_GATEWAYS)
    if not isinstance(raw, list):
        raise SettingsValidationError("payment gateways must be a list")

    known = {g.id: g for g in DEFAULT_PAYMENT_GATEWAYS}
    result: dict[str, PaymentGatewaySetting] = dict(known)
    for row in raw:
        if not isinstance(row, dict) or row.get("id") not in known:
            raise SettingsValidationError(f"unknown payment gateway: {row!r}")
        default = known[row["id"]]
        result[row["id"]] = PaymentGatewaySetting(
            id=default.id,
            name=_coerce_str("name", row.get("name")) or default.name,
            enabled=_coerce_bool("enabled", row.get("enabled", False)),
        )
    return [result[g.id] for g in DEFAULT_PAYMENT_GATEWAYS]


# =============================================================================
# READ / WRITE
# =============================================================================

def _read_raw(key: str) -> Any:
    row = db.session.get(SettingValue, key)
    return row.value_json if row else None


def _write_raw(key: str, value: Any) -> None:
    row = db.session.get(SettingValue, key)
    if row is None:
        row = SettingValue(key=key)
        db.session.add(row)
    row.value_json = value
    db.session.commit()


def get_notification_settings() -> NotificationSettings:
    """Fresh snapshot; read once per checkout / notification operation."""
    return parse_notification_settings(_read_raw(NOTIFICATION_SETTINGS_KEY))


def update_notification_settings(updates: dict) -> NotificationSettings:
    current = get_notification_settings()
    settings = parse_notification_settings(updates, base=current)
    _write_raw(NOTIFICATION_SETTINGS_KEY, settings.to_dict())
    return settings


def get_payment_gateways() -> list[PaymentGatewaySetting]:
    return parse_payment_gateways(_read_raw(PAYMENT_GATEWAYS_KEY))


def enabled_gateway_ids() -> set[str]:
    return {g.id for g in get_payment_gateways() if g.enabled}


def update_payment_gateway(gateway_id: str, updates: dict) -> PaymentGatewaySetting:
    gateways = get_payment_gateways()
    by_id = {g.id: g for g in gateways}
    if gateway_id not in by_id:
        raise SettingsValidationError(f"unknown payment gateway: {gateway_id}", fields=["id"])

    current = by_id[gateway_id]
    updated = PaymentGatewaySetting(
        id=current.id,
        name=_coerce_str("name", updates["name"]) if "name" in updates else current.name,
        enabled=_coerce_bool("enabled", updates["enabled"]) if "enabled" in updates else current.enabled,
    )
    by_id[gateway_id] = updated
    _write_raw(PAYMENT_GATEWAYS_KEY, [by_id[g.id].to_dict() for g in gateways])
    return updated


def seed_defaults() -> int:
    """Write default rows for missing keys; returns how many were added."""
    added = 0
    if _read_raw(NOTIFICATION_SETTINGS_KEY) is None:
        _write_raw(NOTIFICATION_SETTINGS_KEY, DEFAULT_NOTIFICATION_SETTINGS.to_dict())
        added += 1
    if _read_raw(PAYMENT_GATEWAYS_KEY) is None:
        _write_raw(PAYMENT_GATEWAYS_KEY, [g.to_dict() for g in DEFAULT_PAYMENT_GATEWAYS])
        added += 1
    return added
