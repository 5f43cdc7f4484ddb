# Overview: Service-layer checkout state machine; drives one cart from details to a persisted order.

"""
Checkout State Machine

WHY: Turning a cart into an order spans several requests (details, payment
method, out-of-band gateway payment, verification). The session object owns
that whole flow explicitly; collaborators (order store, notifier, gateway
factory) are injected, nothing is ambient.

STATES:
    collecting_details -> selecting_payment_method -> settling_payment
        -> persisting -> complete
    settling_payment | persisting -> failed

RULES:
- Details are validated locally (no network) before payment selection
- Exactly one payment attempt in flight per session (ConcurrentAttemptError)
- Cash on Delivery skips the gateway and persists immediately (payment pending)
- Online: fresh intent per attempt; order persisted only after verify() is True
- verify() False -> failed("payment_rejected"), the store is never touched
- GatewayError -> stay in settling_payment, stale intent dropped, caller may retry
- Abandoned / timed-out client completion -> back to payment selection, no order
- persisting runs to completion; a storage failure after payment is escalated
- OrderPlaced goes to the notifier only after the session lock is released
"""

from __future__ import annotations

import logging
import re
import threading
import time
import uuid
from concurrent.futures import CancelledError, Future, TimeoutError as FutureTimeoutError
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable

from ..errors import (
    ConcurrentAttemptError,
    GatewayError,
    NotFoundError,
    StorageError,
    ValidationError,
    VerificationFailure,
)
from .order_service import OrderDraft
from .payment_service import (
    ATTEMPT_ABANDONED,
    ATTEMPT_AWAITING_CLIENT,
    ATTEMPT_CREATED,
    ATTEMPT_FAILED,
    ATTEMPT_VERIFIED,
    GATEWAY_COD,
    ONLINE_GATEWAYS,
    PaymentGateway,
    PaymentIntent,
    PaymentProof,
)
from .pricing_service import CartLine, cart_total


logger = logging.getLogger(__name__)


STATE_COLLECTING_DETAILS = "collecting_details"
STATE_SELECTING_PAYMENT_METHOD = "selecting_payment_method"
STATE_SETTLING_PAYMENT = "settling_payment"
STATE_PERSISTING = "persisting"
STATE_COMPLETE = "complete"
STATE_FAILED = "failed"

FAILURE_PAYMENT_REJECTED = "payment_rejected"
FAILURE_PERSIST_FAILED = "persist_failed"

DEFAULT_COMPLETION_TIMEOUT_SECONDS = 5.0

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_RE = re.compile(r"^\+?[0-9][0-9 ()-]{8,18}[0-9]$")


class CheckoutStateError(ValidationError):
    """Operation not allowed in the session's current state."""

    status_code = 409


@dataclass(frozen=True)
class CustomerDetails:
    name: str
    email: str
    phone: str
    shipping_address: str


def validate_customer_details(payload: dict) -> CustomerDetails:
    """
    All four fields are required; email and phone get a basic format check.

    Raises:
        ValidationError: lists every missing / invalid field
    """
    if not isinstance(payload, dict):
        raise ValidationError("customer details must be an object")

    values = {
        "customerName": str(payload.get("customerName") or "").strip(),
        "customerEmail": str(payload.get("customerEmail") or "").strip(),
        "customerPhone": str(payload.get("customerPhone") or "").strip(),
        "shippingAddress": str(payload.get("shippingAddress") or "").strip(),
    }
    invalid = [key for key, value in values.items() if not value]
    if values["customerEmail"] and not EMAIL_RE.match(values["customerEmail"]):
        invalid.append("customerEmail")
    phone_digits = re.sub(r"\D", "", values["customerPhone"])
    if values["customerPhone"] and (not PHONE_RE.match(values["customerPhone"]) or not 10 <= len(phone_digits) <= 15):
        invalid.append("customerPhone")

    if invalid:
        raise ValidationError(f"Missing or invalid fields: {', '.join(invalid)}", fields=invalid)

    return CustomerDetails(
        name=values["customerName"],
        email=values["customerEmail"],
        phone=values["customerPhone"],
        shipping_address=values["shippingAddress"],
    )


@dataclass
class PaymentAttempt:
    gateway: PaymentGateway
    state: str = ATTEMPT_CREATED
    intent: PaymentIntent | None = None
    completion: Future = field(default_factory=Future)


class CheckoutSession:
    def __init__(
        self,
        cart_lines: list[CartLine],
        *,
        order_store,
        gateway_factory: Callable[[str], PaymentGateway],
        notifier=None,
        currency: str = "INR",
        completion_timeout: float = DEFAULT_COMPLETION_TIMEOUT_SECONDS,
        session_id: str | None = None,
    ):
        self.id = session_id or uuid.uuid4().hex
        self.cart_lines = list(cart_lines)
        self.total_amount = cart_total(self.cart_lines)
        self.currency = currency
        self.completion_timeout = completion_timeout

        self.order_store = order_store
        self.notifier = notifier
        self.gateway_factory = gateway_factory

        self.state = STATE_COLLECTING_DETAILS
        self.details: CustomerDetails | None = None
        self.gateway: PaymentGateway | None = None
        self.attempt: PaymentAttempt | None = None
        self.order = None
        self.failure_reason: str | None = None

        self._settled_proof: PaymentProof | None = None
        self._busy = threading.Lock()
        self.touched_at = time.monotonic()

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def submit_details(self, payload: dict) -> CustomerDetails:
        """collecting_details -> selecting_payment_method (details may be edited until payment starts)."""
        self._require(STATE_COLLECTING_DETAILS, STATE_SELECTING_PAYMENT_METHOD)
        if not self.cart_lines:
            raise ValidationError("Cart is empty", fields=["items"])

        self.details = validate_customer_details(payload)
        self.state = STATE_SELECTING_PAYMENT_METHOD
        return self.details

    def select_payment_method(self, method: str | None, enabled_gateways) -> PaymentGateway:
        """
        Pick exactly one gateway. No method (or "cod") means Cash on Delivery;
        an online gateway must be enabled in the current settings snapshot.
        """
        self._require(STATE_SELECTING_PAYMENT_METHOD)
        if self.attempt is not None:
            raise ConcurrentAttemptError("A payment attempt is already in progress")

        method = (method or GATEWAY_COD).strip().lower()
        if method != GATEWAY_COD:
            if method not in ONLINE_GATEWAYS:
                raise ValidationError(f"Unknown payment method: {method}", fields=["method"])
            if method not in set(enabled_gateways or ()):
                raise ValidationError(f"Payment method not available: {method}", fields=["method"])

        if self.gateway is not None and self.gateway.gateway_id != method:
            self.gateway.close()
            self.gateway = None
        if self.gateway is None:
            self.gateway = self.gateway_factory(method)
        return self.gateway

    def place_order(self):
        """Cash on Delivery: no gateway call, straight to persisting."""
        with self._exclusive():
            self._require(STATE_SELECTING_PAYMENT_METHOD)
            gateway = self._selected_gateway()
            if gateway.requires_online_settlement:
                raise CheckoutStateError(f"{gateway.display_name} requires online payment")

            self.state = STATE_SETTLING_PAYMENT
            gateway.verify(None, None)
            order = self._persist(payment_status="pending", proof=None)
        self._announce(order)
        return order

    def begin_payment(self) -> PaymentIntent:
        """
        Enter settling_payment and create a fresh gateway intent.

        Raises:
            ConcurrentAttemptError: an intent is already awaiting completion
            GatewayError: intent creation failed; the session stays retryable
        """
        with self._exclusive():
            self._require(STATE_SELECTING_PAYMENT_METHOD, STATE_SETTLING_PAYMENT)
            if self.attempt is not None:
                raise ConcurrentAttemptError("A payment attempt is already awaiting completion")
            gateway = self._selected_gateway()
            if not gateway.requires_online_settlement:
                raise CheckoutStateError("Cash on Delivery orders are placed directly")

            self.state = STATE_SETTLING_PAYMENT
            attempt = PaymentAttempt(gateway=gateway)
            attempt.intent = gateway.create_intent(self.total_amount, receipt=self.id)
            attempt.state = ATTEMPT_AWAITING_CLIENT
            self.attempt = attempt
            return attempt.intent

    def deliver_proof(self, proof: PaymentProof) -> None:
        """Client completion callback; resolves the attempt's completion future."""
        attempt = self.attempt
        if attempt is None or attempt.state != ATTEMPT_AWAITING_CLIENT:
            return
        if not attempt.completion.done():
            attempt.completion.set_result(proof)

    def settle(self, timeout: float | None = None):
        """
        Await the client's proof, verify it and persist the order.

        Waits at most `timeout` seconds, or the session's completion_timeout
        when none is given.

        Returns the order, or None when the customer abandoned / never completed.

        Raises:
            VerificationFailure: proof rejected (terminal)
            GatewayError: verification transport failure (retry with a new intent)
            StorageError: payment verified but the order could not be saved
        """
        with self._exclusive():
            if self.state == STATE_COMPLETE:
                return self.order
            if self.state == STATE_FAILED:
                raise self._terminal_error()
            self._require(STATE_SETTLING_PAYMENT)
            attempt = self.attempt
            if attempt is None:
                raise CheckoutStateError("No payment attempt awaiting completion")

            try:
                proof = attempt.completion.result(
                    timeout=self.completion_timeout if timeout is None else timeout
                )
            except (FutureTimeoutError, CancelledError):
                self._abandon(attempt)
                return None

            try:
                verified = attempt.gateway.verify(attempt.intent, proof)
            except GatewayError:
                # Stale intent is never reused; the next try creates a new one.
                self.attempt = None
                raise

            if not verified:
                attempt.state = ATTEMPT_FAILED
                self.state = STATE_FAILED
                self.failure_reason = FAILURE_PAYMENT_REJECTED
                self._release_gateway()
                logger.warning(
                    "Checkout %s: %s payment %s rejected",
                    self.id, attempt.gateway.gateway_id, proof.gateway_payment_id,
                )
                raise VerificationFailure()

            attempt.state = ATTEMPT_VERIFIED
            order = self._persist(payment_status="completed", proof=proof)
        self._announce(order)
        return order

    def complete_payment(self, proof: PaymentProof, timeout: float | None = None):
        """deliver_proof + settle; repeating the settled proof returns the same order."""
        if self.state == STATE_COMPLETE:
            if proof == self._settled_proof:
                return self.order
            raise CheckoutStateError("Checkout already completed")
        if self.state == STATE_FAILED:
            raise self._terminal_error()
        self.deliver_proof(proof)
        return self.settle(timeout=timeout)

    def abandon_payment(self) -> None:
        """Customer dismissed the payment UI. Not an error; no order is created."""
        attempt = self.attempt
        if attempt is None or self.state != STATE_SETTLING_PAYMENT:
            return
        if self._busy.acquire(blocking=False):
            try:
                self._abandon(attempt)
            finally:
                self._busy.release()
        else:
            # settle() is waiting on the future; it performs the abandonment.
            attempt.completion.cancel()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _persist(self, *, payment_status: str, proof: PaymentProof | None):
        self.state = STATE_PERSISTING
        gateway = self.gateway
        details = self.details
        intent = self.attempt.intent if self.attempt else None

        draft = OrderDraft(
            customer_name=details.name,
            customer_email=details.email,
            customer_phone=details.phone,
            shipping_address=details.shipping_address,
            items=list(self.cart_lines),
            total_amount=self.total_amount,
            currency=self.currency,
            payment_method=gateway.display_name,
            payment_status=payment_status,
            gateway=gateway.gateway_id,
            gateway_order_id=intent.gateway_order_id if intent else None,
            gateway_payment_id=proof.gateway_payment_id if proof else None,
        )
        try:
            order = self.order_store.create_order(draft)
        except StorageError:
            self.state = STATE_FAILED
            self.failure_reason = FAILURE_PERSIST_FAILED
            if proof is not None:
                logger.critical(
                    "PAID ORDER NOT RECORDED - reconcile manually: checkout=%s gateway=%s "
                    "gateway_order=%s payment=%s amount=%s %s customer=%s",
                    self.id, gateway.gateway_id, draft.gateway_order_id, draft.gateway_payment_id,
                    self.total_amount, self.currency, details.email,
                )
            else:
                logger.error("Checkout %s: order could not be saved", self.id)
            self._release_gateway()
            raise

        self.order = order
        self._settled_proof = proof
        self.state = STATE_COMPLETE
        self.cart_lines = []
        self._release_gateway()
        return order

    def _announce(self, order) -> None:
        """OrderPlaced to the notifier; runs after the session lock is released."""
        if self.notifier is None:
            return
        from .notification_service import OrderPlaced
        try:
            self.notifier.notify(OrderPlaced(), order)
        except Exception:
            logger.exception("Order-placed notification for %s failed", order.id)

    def _abandon(self, attempt: PaymentAttempt) -> None:
        attempt.state = ATTEMPT_ABANDONED
        if self.attempt is attempt:
            self.attempt = None
        self.state = STATE_SELECTING_PAYMENT_METHOD
        logger.info("Checkout %s: payment attempt abandoned", self.id)

    def _terminal_error(self) -> Exception:
        if self.failure_reason == FAILURE_PERSIST_FAILED:
            return StorageError("Order could not be saved; contact support")
        return VerificationFailure()

    def _selected_gateway(self) -> PaymentGateway:
        if self.gateway is None:
            raise CheckoutStateError("Select a payment method first")
        return self.gateway

    def _release_gateway(self) -> None:
        if self.gateway is not None:
            self.gateway.close()

    def _require(self, *states: str) -> None:
        if self.state not in states:
            raise CheckoutStateError(f"Checkout is {self.state}; expected {' or '.join(states)}")

    @contextmanager
    def _exclusive(self):
        if not self._busy.acquire(blocking=False):
            raise ConcurrentAttemptError("A checkout attempt is already in progress for this session")
        try:
            self.touched_at = time.monotonic()
            yield
        finally:
            self._busy.release()

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "state": self.state,
            "totalAmount": self.total_amount,
            "currency": self.currency,
            "itemCount": sum(line.quantity for line in self.cart_lines),
            "paymentMethod": self.gateway.gateway_id if self.gateway else None,
            "failureReason": self.failure_reason,
            "orderId": self.order.id if self.order is not None else None,
        }
        if self.attempt is not None and self.attempt.intent is not None:
            data["payment"] = self.attempt.intent.to_client_dict()
        return data


class CheckoutRegistry:
    """Process-local checkout sessions with idle expiry."""

    def __init__(self, ttl_seconds: int = 3600):
        self.ttl_seconds = ttl_seconds
        self._lock = threading.Lock()
        self._sessions: dict[str, CheckoutSession] = {}

    def add(self, session: CheckoutSession) -> CheckoutSession:
        with self._lock:
            self._prune()
            self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> CheckoutSession:
        with self._lock:
            self._prune()
            session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Checkout session {session_id} not found")
        session.touched_at = time.monotonic()
        return session

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)

    def _prune(self) -> None:
        cutoff = time.monotonic() - self.ttl_seconds
        expired = [
            sid for sid, session in self._sessions.items()
            if session.touched_at < cutoff and session.state != STATE_PERSISTING
        ]
        for sid in expired:
            del self._sessions[sid]
