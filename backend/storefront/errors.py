# Overview: Error taxonomy shared by the checkout, payment, order and notification services.

from __future__ import annotations

from flask import jsonify


class StorefrontError(Exception):
    """Base class for order-pipeline errors."""

    status_code = 500

    def to_dict(self) -> dict:
        return {"error": str(self)}


class ValidationError(StorefrontError, ValueError):
    """400-level input problem, detected before any network call."""

    status_code = 400

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = list(fields or [])

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.fields:
            payload["fields"] = self.fields
        return payload


class NotFoundError(StorefrontError, LookupError):
    status_code = 404


class GatewayError(StorefrontError):
    """
    Transport-level gateway failure (non-2xx, timeout, connection error).

    Retryable by the caller with a fresh intent; the adapters never retry.
    """

    status_code = 502
    retryable = True

    def __init__(self, reason: str, gateway: str | None = None, detail: str | None = None):
        message = f"{gateway or 'gateway'}: {reason}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.reason = reason
        self.gateway = gateway
        self.detail = detail

    def to_dict(self) -> dict:
        return {
            "error": "Payment gateway unavailable, please retry",
            "reason": self.reason,
            "retryable": self.retryable,
        }


class VerificationFailure(StorefrontError):
    """Signature mismatch; terminal for the attempt, never retried with the same proof."""

    status_code = 402

    def __init__(self, message: str = "Payment could not be verified", reason: str = "payment_rejected"):
        super().__init__(message)
        self.reason = reason

    def to_dict(self) -> dict:
        return {"error": str(self), "reason": self.reason}


class StorageError(StorefrontError):
    """Order persistence failed."""

    status_code = 500


class ConcurrentAttemptError(StorefrontError):
    """A checkout attempt is already in flight for this session."""

    status_code = 409


def json_error(exc: StorefrontError, **extra):
    """(response, status) pair for a service error; call inside a request."""
    payload = exc.to_dict()
    payload.update(extra)
    return jsonify(payload), exc.status_code
