# Overview: Service-layer payment gateway adapters; remote intent creation and completion verification.

"""
Payment Gateway Adapters

WHY: Online payments settle out-of-band in the customer's browser. The server
creates an intent with its own secret credentials, hands the client a public
handle, and later verifies the client's completion proof cryptographically
before any order is written.

DESIGN PRINCIPLES:
- Secrets stay server-side; the client only ever sees the public key id
- Every network call has a bounded timeout; timeouts surface as GatewayError("timeout")
- Signature mismatch is a verification *failure* (False), not an exception
- Transport problems are GatewayError (retryable by the caller, never inside the adapter)
- Cash on Delivery is a no-op gateway: nothing to create, verification trivially passes

ATTEMPT STATES:
    created -> awaiting_client_completion -> verified | failed | abandoned
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from ..errors import GatewayError, ValidationError


logger = logging.getLogger(__name__)


GATEWAY_COD = "cod"
GATEWAY_RAZORPAY = "razorpay"
GATEWAY_PHONEPE = "phonepe"

ONLINE_GATEWAYS = (GATEWAY_RAZORPAY, GATEWAY_PHONEPE)

ATTEMPT_CREATED = "created"
ATTEMPT_AWAITING_CLIENT = "awaiting_client_completion"
ATTEMPT_VERIFIED = "verified"
ATTEMPT_FAILED = "failed"
ATTEMPT_ABANDONED = "abandoned"


@dataclass(frozen=True)
class PaymentIntent:
    """Gateway-side order; lives only until verification or abandonment."""
    gateway: str
    gateway_order_id: str
    amount: int
    currency: str
    client_key: str
    redirect_url: str | None = None

    def to_client_dict(self) -> dict:
        payload = {
            "key_id": self.client_key,
            "order": {
                "id": self.gateway_order_id,
                "amount": self.amount,
                "currency": self.currency,
            },
        }
        if self.redirect_url:
            payload["redirect_url"] = self.redirect_url
        return payload


@dataclass(frozen=True)
class PaymentProof:
    """What the gateway's browser SDK reports back on completion."""
    gateway_order_id: str
    gateway_payment_id: str
    signature: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PaymentProof":
        values = {
            "gateway_order_id": data.get("gatewayOrderId") or data.get("razorpay_order_id"),
            "gateway_payment_id": data.get("gatewayPaymentId") or data.get("razorpay_payment_id"),
            "signature": data.get("signature") or data.get("razorpay_signature"),
        }
        missing = [k for k, v in values.items() if not isinstance(v, str) or not v]
        if missing:
            wire = {
                "gateway_order_id": "gatewayOrderId",
                "gateway_payment_id": "gatewayPaymentId",
                "signature": "signature",
            }
            fields = [wire[k] for k in missing]
            raise ValidationError(f"Missing payment proof fields: {', '.join(fields)}", fields=fields)
        return cls(**values)


# =============================================================================
# SIGNATURES
# =============================================================================

def razorpay_signature(key_secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
    return hmac.new(key_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def phonepe_checksum(payload: str, salt_key: str, salt_index: str) -> str:
    digest = hashlib.sha256(f"{payload}{salt_key}".encode("utf-8")).hexdigest()
    return f"{digest}###{salt_index}"


def _constant_time_equals(expected: str, supplied: str | None) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), (supplied or "").encode("utf-8"))


# =============================================================================
# ADAPTERS
# =============================================================================

class PaymentGateway:
    """Capability set shared by every gateway: create_intent + verify."""

    gateway_id = ""
    display_name = ""
    requires_online_settlement = True

    def __init__(self, client: httpx.Client | None = None, currency: str = "INR"):
        self.client = client
        self.currency = currency

    def create_intent(self, amount: int, receipt: str | None = None) -> PaymentIntent:
        raise NotImplementedError

    def verify(self, intent: PaymentIntent, proof: PaymentProof) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        if self.client is not None:
            self.client.close()

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self.client is None:
            raise GatewayError("not_configured", self.gateway_id, detail="no HTTP client")
        try:
            return self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise GatewayError("timeout", self.gateway_id) from exc
        except httpx.HTTPError as exc:
            raise GatewayError("transport", self.gateway_id, detail=exc.__class__.__name__) from exc

    @staticmethod
    def _json(response: httpx.Response, gateway_id: str, reason: str) -> dict:
        try:
            body = response.json()
        except ValueError as exc:
            raise GatewayError(reason, gateway_id, detail="malformed response") from exc
        if not isinstance(body, dict):
            raise GatewayError(reason, gateway_id, detail="malformed response")
        return body


class RazorpayAdapter(PaymentGateway):
    gateway_id = GATEWAY_RAZORPAY
    display_name = "Razorpay"

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        *,
        client: httpx.Client | None = None,
        api_base: str = "https://api.razorpay.com/v1",
        currency: str = "INR",
    ):
        super().__init__(client=client, currency=currency)
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_base = api_base.rstrip("/")

    def create_intent(self, amount: int, receipt: str | None = None) -> PaymentIntent:
        if not self.key_id or not self.key_secret:
            raise GatewayError("not_configured", self.gateway_id)

        body: dict[str, Any] = {"amount": amount, "currency": self.currency}
        if receipt:
            body["receipt"] = receipt
        response = self._request(
            "POST",
            f"{self.api_base}/orders",
            json=body,
            auth=(self.key_id, self.key_secret),
        )
        if not response.is_success:
            raise GatewayError("create_failed", self.gateway_id, detail=f"HTTP {response.status_code}")

        data = self._json(response, self.gateway_id, "create_failed")
        if not data.get("id"):
            raise GatewayError("create_failed", self.gateway_id, detail="missing order id")

        logger.info("Razorpay order %s created (amount=%s)", data["id"], amount)
        return PaymentIntent(
            gateway=self.gateway_id,
            gateway_order_id=str(data["id"]),
            amount=int(data.get("amount", amount)),
            currency=str(data.get("currency", self.currency)),
            client_key=self.key_id,
        )

    def verify(self, intent: PaymentIntent, proof: PaymentProof) -> bool:
        # Razorpay verification is a local HMAC check; no network round-trip.
        if proof.gateway_order_id != intent.gateway_order_id:
            return False
        expected = razorpay_signature(self.key_secret, intent.gateway_order_id, proof.gateway_payment_id)
        return _constant_time_equals(expected, proof.signature)


class PhonePeAdapter(PaymentGateway):
    gateway_id = GATEWAY_PHONEPE
    display_name = "PhonePe"

    PAY_PATH = "/pg/v1/pay"

    def __init__(
        self,
        merchant_id: str,
        salt_key: str,
        salt_index: str = "1",
        *,
        client: httpx.Client | None = None,
        api_base: str = "https://api.phonepe.com/apis/hermes",
        redirect_url: str = "",
        currency: str = "INR",
    ):
        super().__init__(client=client, currency=currency)
        self.merchant_id = merchant_id
        self.salt_key = salt_key
        self.salt_index = str(salt_index)
        self.api_base = api_base.rstrip("/")
        self.redirect_url = redirect_url

    def create_intent(self, amount: int, receipt: str | None = None) -> PaymentIntent:
        if not self.merchant_id or not self.salt_key:
            raise GatewayError("not_configured", self.gateway_id)

        # Unique per attempt: PhonePe refuses a repeated merchantTransactionId,
        # and a retried checkout must never match the stale attempt's proof.
        transaction_id = f"{(receipt or 'TXN')[:24]}{uuid.uuid4().hex[:12]}"
        payload = {
            "merchantId": self.merchant_id,
            "merchantTransactionId": transaction_id,
            "merchantUserId": f"MUID-{transaction_id}",
            "amount": amount,
            "redirectUrl": self.redirect_url,
            "redirectMode": "POST",
            "callbackUrl": self.redirect_url,
            "paymentInstrument": {"type": "PAY_PAGE"},
        }
        encoded = base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")
        response = self._request(
            "POST",
            f"{self.api_base}{self.PAY_PATH}",
            json={"request": encoded},
            headers={"X-VERIFY": phonepe_checksum(encoded + self.PAY_PATH, self.salt_key, self.salt_index)},
        )
        if not response.is_success:
            raise GatewayError("create_failed", self.gateway_id, detail=f"HTTP {response.status_code}")

        data = self._json(response, self.gateway_id, "create_failed")
        if not data.get("success"):
            raise GatewayError("create_failed", self.gateway_id, detail=str(data.get("code") or "rejected"))

        redirect = (
            ((data.get("data") or {}).get("instrumentResponse") or {}).get("redirectInfo") or {}
        ).get("url")
        logger.info("PhonePe transaction %s created (amount=%s)", transaction_id, amount)
        return PaymentIntent(
            gateway=self.gateway_id,
            gateway_order_id=transaction_id,
            amount=amount,
            currency=self.currency,
            client_key=self.merchant_id,
            redirect_url=redirect,
        )

    def verify(self, intent: PaymentIntent, proof: PaymentProof) -> bool:
        if proof.gateway_order_id != intent.gateway_order_id:
            return False
        expected = phonepe_checksum(
            f"{intent.gateway_order_id}|{proof.gateway_payment_id}", self.salt_key, self.salt_index
        )
        if not _constant_time_equals(expected, proof.signature):
            return False

        # Signature is genuine; confirm the gateway actually captured the money.
        path = f"/pg/v1/status/{self.merchant_id}/{intent.gateway_order_id}"
        response = self._request(
            "GET",
            f"{self.api_base}{path}",
            headers={
                "X-VERIFY": phonepe_checksum(path, self.salt_key, self.salt_index),
                "X-MERCHANT-ID": self.merchant_id,
            },
        )
        if not response.is_success:
            raise GatewayError("verify_failed", self.gateway_id, detail=f"HTTP {response.status_code}")

        data = self._json(response, self.gateway_id, "verify_failed")
        code = data.get("code")
        if code == "PAYMENT_PENDING":
            raise GatewayError("payment_pending", self.gateway_id)
        transaction = (data.get("data") or {}).get("transactionId")
        return code == "PAYMENT_SUCCESS" and transaction == proof.gateway_payment_id


class CashOnDeliveryAdapter(PaymentGateway):
    """Settlement happens physically at delivery; nothing to create or verify."""

    gateway_id = GATEWAY_COD
    display_name = "Cash on Delivery"
    requires_online_settlement = False

    def create_intent(self, amount: int, receipt: str | None = None) -> PaymentIntent:
        raise GatewayError("unsupported", self.gateway_id)

    def verify(self, intent: PaymentIntent | None, proof: PaymentProof | None) -> bool:
        return True


# =============================================================================
# FACTORY
# =============================================================================

def get_gateway(gateway_id: str, config: Mapping[str, Any], client: httpx.Client | None = None) -> PaymentGateway:
    """
    Build the adapter for `gateway_id` from process configuration.

    Raises:
        ValidationError: unknown gateway id
    """
    currency = config.get("CURRENCY", "INR")
    if gateway_id == GATEWAY_COD:
        return CashOnDeliveryAdapter(currency=currency)
    if gateway_id == GATEWAY_RAZORPAY:
        return RazorpayAdapter(
            config.get("RAZORPAY_KEY_ID", ""),
            config.get("RAZORPAY_KEY_SECRET", ""),
            client=client,
            api_base=config.get("RAZORPAY_API_BASE", "https://api.razorpay.com/v1"),
            currency=currency,
        )
    if gateway_id == GATEWAY_PHONEPE:
        return PhonePeAdapter(
            config.get("PHONEPE_MERCHANT_ID", ""),
            config.get("PHONEPE_SALT_KEY", ""),
            config.get("PHONEPE_SALT_INDEX", "1"),
            client=client,
            api_base=config.get("PHONEPE_API_BASE", "https://api.phonepe.com/apis/hermes"),
            redirect_url=config.get("PHONEPE_REDIRECT_URL", ""),
            currency=currency,
        )
    raise ValidationError(f"Unknown payment method: {gateway_id}", fields=["method"])


def build_http_client(timeout: float, transport: httpx.BaseTransport | None = None) -> httpx.Client:
    return httpx.Client(timeout=httpx.Timeout(timeout), transport=transport)
