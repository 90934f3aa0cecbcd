"""
Payment Gateway - the boundary to the third-party payment processors.

Three implementations of the same interface:
    StripeGateway     - card processor (stripe SDK, blocking calls in a
                        thread pool, each bounded by gateway_timeout_seconds)
    PayPalGateway     - redirect processor (PayPal Orders v2 REST API over
                        httpx); the customer approves on PayPal and the order
                        is captured when they come back
    SimulatedGateway  - in-process processor for SIMULATION_MODE and tests;
                        intents live in memory, webhooks are HMAC-SHA256
                        signed with settings.simulated_webhook_secret. Runs
                        either as a card processor or, with approval_url, as
                        a redirect one

Gateways speak processor terms (intents, events) and raise on failure.
services/payment_service.py turns those exceptions into typed Outcomes.

Webhook verification FAILS CLOSED: no configured secret or a missing /
bad signature always raises WebhookSignatureError.
"""
import asyncio
import functools
import hashlib
import hmac
import json
import logging
import time
import uuid
from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Mapping, Protocol

import httpx
import stripe

from config import settings
from domain.constants import (
    DEFAULT_DECLINE_REASON,
    METADATA_ORDER_ID,
    METADATA_ORDER_NUMBER,
    PROVIDER_PAYPAL,
    PROVIDER_SIMULATED,
    PROVIDER_SIMULATED_PAYPAL,
    PROVIDER_STRIPE,
)
from domain.enums import IntentStatus
from services.async_executor import run_blocking

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════
# Types
# ════════════════════════════════════════════════════════════════════


class GatewayEventType(str, Enum):
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class IntentHandle:
    """
    What the browser needs to complete a payment: a client secret for an
    embedded card form, or a redirect URL for a hosted approval page.
    """
    external_payment_id: str
    client_secret: str | None
    amount_minor: int
    currency: str
    provider: str
    redirect_url: str | None = None


@dataclass(frozen=True)
class IntentSnapshot:
    """Processor-side view of an intent, as read back from the processor."""
    external_payment_id: str
    status: IntentStatus
    amount_minor: int
    currency: str
    order_id: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class GatewayEvent:
    event_id: str
    type: GatewayEventType
    intent: IntentSnapshot | None = None
    raw_type: str = ""


class GatewayUnavailable(Exception):
    """Processor timed out or could not be reached. Safe to retry."""


class GatewayRejected(Exception):
    """Processor answered with an error."""


class WebhookSignatureError(Exception):
    """Webhook payload could not be authenticated."""


class PaymentGateway(Protocol):
    provider: str

    async def create_intent(
        self,
        *,
        order_id: str,
        order_number: str,
        amount_minor: int,
        currency: str,
        idempotency_key: str,
    ) -> IntentHandle: ...

    async def retrieve_intent(self, external_payment_id: str) -> IntentSnapshot: ...

    async def capture_intent(self, external_payment_id: str) -> IntentSnapshot:
        """
        Finalise the payment after the customer returns, then report its
        state. Processors that settle on their own just read the intent back.
        """
        ...

    async def parse_webhook(self, payload: bytes, headers: Mapping[str, str]) -> GatewayEvent: ...


# ════════════════════════════════════════════════════════════════════
# Stripe
# ════════════════════════════════════════════════════════════════════

STRIPE_SIGNATURE_HEADER = "stripe-signature"

_STRIPE_EVENT_TYPES = {
    "payment_intent.succeeded": GatewayEventType.PAYMENT_SUCCEEDED,
    "payment_intent.payment_failed": GatewayEventType.PAYMENT_FAILED,
}


def _field(obj, name: str, default=None):
    """Read a field from a StripeObject (attribute access) or a plain dict."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _stripe_status(intent) -> IntentStatus:
    status = _field(intent, "status")
    if status == "succeeded":
        return IntentStatus.SUCCEEDED
    if status == "processing":
        return IntentStatus.PROCESSING
    if status == "canceled":
        return IntentStatus.FAILED
    # A declined confirmation drops the intent back to requires_payment_method
    # with last_payment_error set.
    if status == "requires_payment_method" and _field(intent, "last_payment_error"):
        return IntentStatus.FAILED
    return IntentStatus.REQUIRES_ACTION


def _stripe_snapshot(intent) -> IntentSnapshot:
    status = _stripe_status(intent)
    failure_reason = None
    if status == IntentStatus.FAILED:
        error = _field(intent, "last_payment_error")
        failure_reason = (_field(error, "message") if error else None) or DEFAULT_DECLINE_REASON
    metadata = _field(intent, "metadata") or {}
    return IntentSnapshot(
        external_payment_id=_field(intent, "id"),
        status=status,
        amount_minor=int(_field(intent, "amount", 0)),
        currency=str(_field(intent, "currency", "")).upper(),
        order_id=_field(metadata, METADATA_ORDER_ID),
        failure_reason=failure_reason,
    )


class StripeGateway:
    """Card processor backed by the stripe SDK."""

    provider = PROVIDER_STRIPE

    def __init__(self, secret_key: str, webhook_secret: str, timeout_seconds: float):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.timeout_seconds = timeout_seconds
        # Retries are ours to decide (idempotency keys make them safe)
        stripe.max_network_retries = 0

    async def _call(self, func, *args, **kwargs):
        try:
            return await asyncio.wait_for(
                run_blocking(func, *args, api_key=self.secret_key, **kwargs),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"Stripe call timed out after {self.timeout_seconds}s")
            raise GatewayUnavailable("Payment processor timed out") from e
        except stripe.APIConnectionError as e:
            logger.warning(f"Stripe unreachable: {e}")
            raise GatewayUnavailable("Payment processor unreachable") from e
        except stripe.StripeError as e:
            logger.error(f"Stripe error: {e}")
            raise GatewayRejected(getattr(e, "user_message", None) or "Payment processor error") from e

    async def create_intent(
        self,
        *,
        order_id: str,
        order_number: str,
        amount_minor: int,
        currency: str,
        idempotency_key: str,
    ) -> IntentHandle:
        intent = await self._call(
            stripe.PaymentIntent.create,
            amount=amount_minor,
            currency=currency.lower(),
            automatic_payment_methods={"enabled": True},
            metadata={METADATA_ORDER_ID: order_id, METADATA_ORDER_NUMBER: order_number},
            idempotency_key=idempotency_key,
        )
        logger.info(f"Stripe intent {_field(intent, 'id')} created for order {order_number}")
        return IntentHandle(
            external_payment_id=_field(intent, "id"),
            client_secret=_field(intent, "client_secret"),
            amount_minor=int(_field(intent, "amount", amount_minor)),
            currency=str(_field(intent, "currency", currency)).upper(),
            provider=self.provider,
        )

    async def retrieve_intent(self, external_payment_id: str) -> IntentSnapshot:
        intent = await self._call(stripe.PaymentIntent.retrieve, external_payment_id)
        return _stripe_snapshot(intent)

    async def capture_intent(self, external_payment_id: str) -> IntentSnapshot:
        # Automatic capture: the intent settles when the card form confirms it
        return await self.retrieve_intent(external_payment_id)

    async def parse_webhook(self, payload: bytes, headers: Mapping[str, str]) -> GatewayEvent:
        if not self.webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET not configured - rejecting webhook")
            raise WebhookSignatureError("Webhook secret not configured")
        signature = headers.get(STRIPE_SIGNATURE_HEADER)
        if not signature:
            logger.warning("Stripe webhook received without signature header")
            raise WebhookSignatureError("Missing signature")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError("Invalid signature") from e
        except ValueError as e:
            raise WebhookSignatureError("Invalid payload") from e

        raw_type = _field(event, "type", "")
        event_type = _STRIPE_EVENT_TYPES.get(raw_type, GatewayEventType.IGNORED)
        intent = None
        if event_type != GatewayEventType.IGNORED:
            intent = _stripe_snapshot(_field(_field(event, "data"), "object"))
        return GatewayEvent(
            event_id=_field(event, "id", ""),
            type=event_type,
            intent=intent,
            raw_type=raw_type,
        )


# ════════════════════════════════════════════════════════════════════
# PayPal
# ════════════════════════════════════════════════════════════════════

# Verification payload field → transmission header PayPal signs with
PAYPAL_SIGNATURE_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}

_PAYPAL_EVENT_TYPES = {
    "PAYMENT.CAPTURE.COMPLETED": GatewayEventType.PAYMENT_SUCCEEDED,
    "PAYMENT.CAPTURE.DENIED": GatewayEventType.PAYMENT_FAILED,
}

# Capture errors that mean "the payer's funding source said no"
_PAYPAL_DECLINE_ISSUES = frozenset({"INSTRUMENT_DECLINED", "TRANSACTION_REFUSED"})

PAYPAL_DECLINE_REASON = "Your PayPal payment was declined. Please try another payment method."


class PayPalError(GatewayRejected):
    """PayPal answered 4xx. `issue` carries PayPal's error/issue name."""

    def __init__(self, message: str, issue: str = ""):
        super().__init__(message)
        self.issue = issue


def to_paypal_value(amount_minor: int) -> str:
    """206000 → "2060.00" (two-decimal currencies)."""
    return f"{amount_minor // 100}.{amount_minor % 100:02d}"


def from_paypal_value(value) -> int:
    """Inverse of to_paypal_value: "2060.00" → 206000."""
    return int((Decimal(str(value)) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def _paypal_amount(obj: dict) -> tuple[int, str]:
    amount = obj.get("amount") or {}
    return from_paypal_value(amount.get("value", "0")), str(amount.get("currency_code", "")).upper()


def _paypal_snapshot(body: dict) -> IntentSnapshot:
    """Normalise a /v2/checkout/orders representation, before or after capture."""
    unit = (body.get("purchase_units") or [{}])[0]
    captures = (unit.get("payments") or {}).get("captures") or []
    capture = captures[0] if captures else None
    amount_minor, currency = _paypal_amount(capture or unit)

    order_status = body.get("status")
    capture_status = capture.get("status") if capture else None
    if capture_status == "COMPLETED":
        status = IntentStatus.SUCCEEDED
    elif capture_status in ("DECLINED", "FAILED") or order_status == "VOIDED":
        status = IntentStatus.FAILED
    elif capture_status == "PENDING" or order_status == "COMPLETED":
        status = IntentStatus.PROCESSING
    else:
        # CREATED, SAVED, APPROVED, PAYER_ACTION_REQUIRED
        status = IntentStatus.REQUIRES_ACTION

    return IntentSnapshot(
        external_payment_id=body["id"],
        status=status,
        amount_minor=amount_minor,
        currency=currency,
        order_id=unit.get("custom_id") or (capture or {}).get("custom_id"),
        failure_reason=PAYPAL_DECLINE_REASON if status == IntentStatus.FAILED else None,
    )


def _paypal_capture_event_snapshot(resource: dict, event_type: GatewayEventType) -> IntentSnapshot | None:
    """Capture resource of a PAYMENT.CAPTURE.* event, keyed by its PayPal order id."""
    related = (resource.get("supplementary_data") or {}).get("related_ids") or {}
    paypal_order_id = related.get("order_id")
    if not paypal_order_id:
        return None
    amount_minor, currency = _paypal_amount(resource)
    succeeded = event_type == GatewayEventType.PAYMENT_SUCCEEDED
    return IntentSnapshot(
        external_payment_id=paypal_order_id,
        status=IntentStatus.SUCCEEDED if succeeded else IntentStatus.FAILED,
        amount_minor=amount_minor,
        currency=currency,
        order_id=resource.get("custom_id"),
        failure_reason=None if succeeded else PAYPAL_DECLINE_REASON,
    )


class PayPalGateway:
    """
    Redirect processor backed by the PayPal Orders v2 REST API.

    create_intent() creates a PayPal order (intent CAPTURE) whose id is the
    external payment id, and returns its approval link. Once the customer
    approves and is sent back, capture_intent() captures it. PayPal-Request-Id
    carries our idempotency keys, so retried creates and captures are safe.

    transport: optional httpx transport (tests pass an httpx.MockTransport).
    """

    provider = PROVIDER_PAYPAL

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        webhook_id: str,
        *,
        api_base: str,
        return_url: str,
        cancel_url: str,
        brand_name: str,
        timeout_seconds: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.webhook_id = webhook_id
        self.api_base = api_base.rstrip("/")
        self.return_url = return_url
        self.cancel_url = cancel_url
        self.brand_name = brand_name
        self.timeout_seconds = timeout_seconds
        self.transport = transport
        self._access_token: str | None = None
        self._token_expires_at = 0.0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_base,
            timeout=self.timeout_seconds,
            transport=self.transport,
        )

    async def _send(self, client: httpx.AsyncClient, method: str, path: str, **kwargs) -> dict:
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"PayPal {method} {path} timed out after {self.timeout_seconds}s")
            raise GatewayUnavailable("Payment processor timed out") from e
        except httpx.TransportError as e:
            logger.warning(f"PayPal unreachable: {e}")
            raise GatewayUnavailable("Payment processor unreachable") from e

        if response.status_code >= 500:
            logger.warning(f"PayPal {method} {path} answered {response.status_code}")
            raise GatewayUnavailable("Payment processor unavailable")
        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = {}
            details = body.get("details") or [{}]
            issue = details[0].get("issue") or body.get("name") or body.get("error") or ""
            message = body.get("message") or body.get("error_description") or "Payment processor error"
            logger.error(f"PayPal {method} {path} failed ({response.status_code}): {issue} {message}")
            raise PayPalError(message, issue=issue)
        return response.json() if response.content else {}

    async def _token(self, client: httpx.AsyncClient) -> str:
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token
        if not self.client_id or not self.client_secret:
            raise GatewayRejected("PayPal credentials are not configured")

        body = await self._send(
            client,
            "POST",
            "/v1/oauth2/token",
            auth=(self.client_id, self.client_secret),
            data={"grant_type": "client_credentials"},
        )
        self._access_token = body["access_token"]
        # Refresh a minute before PayPal expires it
        self._token_expires_at = time.monotonic() + max(int(body.get("expires_in", 0)) - 60, 0)
        return self._access_token

    async def _call(self, method: str, path: str, *, headers: dict | None = None, **kwargs) -> dict:
        async with self._client() as client:
            token = await self._token(client)
            return await self._send(
                client,
                method,
                path,
                headers={"Authorization": f"Bearer {token}", **(headers or {})},
                **kwargs,
            )

    async def create_intent(
        self,
        *,
        order_id: str,
        order_number: str,
        amount_minor: int,
        currency: str,
        idempotency_key: str,
    ) -> IntentHandle:
        body = await self._call(
            "POST",
            "/v2/checkout/orders",
            headers={"PayPal-Request-Id": idempotency_key, "Prefer": "return=representation"},
            json={
                "intent": "CAPTURE",
                "purchase_units": [{
                    "reference_id": order_number,
                    "custom_id": order_id,
                    "description": f"{self.brand_name} - order {order_number}",
                    "amount": {
                        "currency_code": currency.upper(),
                        "value": to_paypal_value(amount_minor),
                    },
                }],
                "application_context": {
                    "brand_name": self.brand_name,
                    "landing_page": "NO_PREFERENCE",
                    "user_action": "PAY_NOW",
                    "return_url": self.return_url,
                    "cancel_url": self.cancel_url,
                },
            },
        )
        approval_url = next(
            (link["href"] for link in body.get("links", []) if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        if not approval_url:
            raise GatewayRejected("PayPal order has no approval link")

        logger.info(f"PayPal order {body['id']} created for order {order_number}")
        return IntentHandle(
            external_payment_id=body["id"],
            client_secret=None,
            amount_minor=amount_minor,
            currency=currency.upper(),
            provider=self.provider,
            redirect_url=approval_url,
        )

    async def retrieve_intent(self, external_payment_id: str) -> IntentSnapshot:
        return _paypal_snapshot(await self._call("GET", f"/v2/checkout/orders/{external_payment_id}"))

    async def capture_intent(self, external_payment_id: str) -> IntentSnapshot:
        body = await self._call("GET", f"/v2/checkout/orders/{external_payment_id}")
        if body.get("status") != "APPROVED":
            # Not approved yet, or already captured / voided
            return _paypal_snapshot(body)

        try:
            captured = await self._call(
                "POST",
                f"/v2/checkout/orders/{external_payment_id}/capture",
                headers={
                    "PayPal-Request-Id": f"capture-{external_payment_id}",
                    "Prefer": "return=representation",
                },
                json={},
            )
        except PayPalError as e:
            if e.issue not in _PAYPAL_DECLINE_ISSUES:
                raise
            logger.info(f"PayPal capture of {external_payment_id} declined: {e.issue}")
            return replace(
                _paypal_snapshot(body),
                status=IntentStatus.FAILED,
                failure_reason=PAYPAL_DECLINE_REASON,
            )

        logger.info(f"PayPal order {external_payment_id} captured ({captured.get('status')})")
        return _paypal_snapshot(captured)

    async def parse_webhook(self, payload: bytes, headers: Mapping[str, str]) -> GatewayEvent:
        """
        Authenticate through PayPal's verify-webhook-signature API, then map
        PAYMENT.CAPTURE.COMPLETED / DENIED. Everything else is ignored.
        """
        if not self.webhook_id:
            logger.error("PAYPAL_WEBHOOK_ID not configured - rejecting webhook")
            raise WebhookSignatureError("Webhook id not configured")
        transmission = {name: headers.get(header) for name, header in PAYPAL_SIGNATURE_HEADERS.items()}
        if not all(transmission.values()):
            logger.warning("PayPal webhook received without transmission headers")
            raise WebhookSignatureError("Missing signature")

        try:
            event = json.loads(payload)
        except ValueError as e:
            raise WebhookSignatureError("Invalid payload") from e
        if not isinstance(event, dict):
            raise WebhookSignatureError("Invalid payload")

        verification = await self._call(
            "POST",
            "/v1/notifications/verify-webhook-signature",
            json={**transmission, "webhook_id": self.webhook_id, "webhook_event": event},
        )
        if verification.get("verification_status") != "SUCCESS":
            raise WebhookSignatureError("Invalid signature")

        raw_type = event.get("event_type", "")
        event_type = _PAYPAL_EVENT_TYPES.get(raw_type, GatewayEventType.IGNORED)
        intent = None
        if event_type != GatewayEventType.IGNORED:
            try:
                intent = _paypal_capture_event_snapshot(event.get("resource") or {}, event_type)
            except (InvalidOperation, AttributeError) as e:
                raise WebhookSignatureError("Invalid payload") from e
            if intent is None:
                logger.warning(f"PayPal event {event.get('id')} carries no order id")
                event_type = GatewayEventType.IGNORED
        return GatewayEvent(
            event_id=event.get("id", ""),
            type=event_type,
            intent=intent,
            raw_type=raw_type,
        )


# ════════════════════════════════════════════════════════════════════
# Simulated processor
# ════════════════════════════════════════════════════════════════════

SIMULATED_SIGNATURE_HEADER = "x-simulated-signature"


def sign_payload(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


@dataclass
class _SimulatedIntent:
    id: str
    client_secret: str | None
    redirect_url: str | None
    amount_minor: int
    currency: str
    order_id: str
    status: IntentStatus = IntentStatus.REQUIRES_ACTION
    failure_reason: str | None = None

    def snapshot(self) -> IntentSnapshot:
        return IntentSnapshot(
            external_payment_id=self.id,
            status=self.status,
            amount_minor=self.amount_minor,
            currency=self.currency,
            order_id=self.order_id,
            failure_reason=self.failure_reason,
        )


class SimulatedGateway:
    """
    In-process payment processor.

    No money moves. Intents are completed by complete_intent() (the
    /simulate endpoint or a test), and build_webhook() produces the signed
    event a real processor would POST afterwards.

    approval_url: when set, behaves as a redirect processor (no client
    secret, a hosted approval link instead).
    outage: set to "timeout" or "error" to make the next calls fail.
    """

    def __init__(
        self,
        webhook_secret: str,
        provider: str = PROVIDER_SIMULATED,
        approval_url: str | None = None,
    ):
        self.webhook_secret = webhook_secret
        self.provider = provider
        self.approval_url = approval_url
        self.outage: str | None = None
        self._intents: dict[str, _SimulatedIntent] = {}
        self._by_idempotency_key: dict[str, str] = {}

    def _check_outage(self) -> None:
        if self.outage == "timeout":
            raise GatewayUnavailable("Simulated processor timed out")
        if self.outage == "error":
            raise GatewayRejected("Simulated processor error")

    def has_intent(self, external_payment_id: str) -> bool:
        return external_payment_id in self._intents

    async def create_intent(
        self,
        *,
        order_id: str,
        order_number: str,
        amount_minor: int,
        currency: str,
        idempotency_key: str,
    ) -> IntentHandle:
        self._check_outage()
        existing_id = self._by_idempotency_key.get(idempotency_key)
        if existing_id:
            intent = self._intents[existing_id]
        else:
            if self.approval_url:
                intent_id = f"pp_sim_{uuid.uuid4().hex[:24]}"
                client_secret, redirect_url = None, f"{self.approval_url}?token={intent_id}"
            else:
                intent_id = f"pi_sim_{uuid.uuid4().hex[:24]}"
                client_secret, redirect_url = f"{intent_id}_secret_{uuid.uuid4().hex[:16]}", None
            intent = _SimulatedIntent(
                id=intent_id,
                client_secret=client_secret,
                redirect_url=redirect_url,
                amount_minor=amount_minor,
                currency=currency.upper(),
                order_id=order_id,
            )
            self._intents[intent_id] = intent
            self._by_idempotency_key[idempotency_key] = intent_id
            logger.info(f"Simulated intent {intent_id} created for order {order_number}")
        return IntentHandle(
            external_payment_id=intent.id,
            client_secret=intent.client_secret,
            amount_minor=intent.amount_minor,
            currency=intent.currency,
            provider=self.provider,
            redirect_url=intent.redirect_url,
        )

    async def retrieve_intent(self, external_payment_id: str) -> IntentSnapshot:
        self._check_outage()
        intent = self._intents.get(external_payment_id)
        if intent is None:
            raise GatewayRejected(f"No such payment intent: {external_payment_id}")
        return intent.snapshot()

    async def capture_intent(self, external_payment_id: str) -> IntentSnapshot:
        return await self.retrieve_intent(external_payment_id)

    def complete_intent(
        self,
        external_payment_id: str,
        *,
        succeed: bool = True,
        failure_reason: str | None = None,
        amount_minor: int | None = None,
    ) -> IntentSnapshot:
        """Drive an intent to its final state, as the customer's bank would."""
        intent = self._intents.get(external_payment_id)
        if intent is None:
            raise GatewayRejected(f"No such payment intent: {external_payment_id}")
        if amount_minor is not None:
            intent.amount_minor = amount_minor
        if succeed:
            intent.status = IntentStatus.SUCCEEDED
            intent.failure_reason = None
        else:
            intent.status = IntentStatus.FAILED
            intent.failure_reason = failure_reason or DEFAULT_DECLINE_REASON
        return intent.snapshot()

    def build_webhook(self, external_payment_id: str) -> tuple[bytes, dict[str, str]]:
        """Signed webhook payload and headers for the intent's current state."""
        intent = self._intents[external_payment_id]
        event_type = {
            IntentStatus.SUCCEEDED: GatewayEventType.PAYMENT_SUCCEEDED,
            IntentStatus.FAILED: GatewayEventType.PAYMENT_FAILED,
        }.get(intent.status, GatewayEventType.IGNORED)
        payload = json.dumps({
            "id": f"evt_sim_{uuid.uuid4().hex[:24]}",
            "type": event_type.value,
            "data": {
                "id": intent.id,
                "status": intent.status.value,
                "amount": intent.amount_minor,
                "currency": intent.currency,
                "orderId": intent.order_id,
                "failureReason": intent.failure_reason,
            },
        }).encode("utf-8")
        return payload, {SIMULATED_SIGNATURE_HEADER: sign_payload(payload, self.webhook_secret)}

    async def parse_webhook(self, payload: bytes, headers: Mapping[str, str]) -> GatewayEvent:
        if not self.webhook_secret:
            logger.error("SIMULATED_WEBHOOK_SECRET not configured - rejecting webhook")
            raise WebhookSignatureError("Webhook secret not configured")
        signature = headers.get(SIMULATED_SIGNATURE_HEADER)
        if not signature:
            raise WebhookSignatureError("Missing signature")
        if not hmac.compare_digest(sign_payload(payload, self.webhook_secret), signature):
            raise WebhookSignatureError("Invalid signature")

        try:
            body = json.loads(payload)
            event_type = GatewayEventType(body.get("type"))
            data = body.get("data") or {}
            intent = IntentSnapshot(
                external_payment_id=data["id"],
                status=IntentStatus(data["status"]),
                amount_minor=int(data["amount"]),
                currency=str(data["currency"]).upper(),
                order_id=data.get("orderId"),
                failure_reason=data.get("failureReason"),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise WebhookSignatureError("Invalid payload") from e

        return GatewayEvent(
            event_id=body.get("id", ""),
            type=event_type,
            intent=intent,
            raw_type=event_type.value,
        )


# ════════════════════════════════════════════════════════════════════
# Factory
# ════════════════════════════════════════════════════════════════════

CHECKOUT_METHODS = ("card", "paypal")


@functools.lru_cache(maxsize=None)
def get_gateway(method: str = "card") -> PaymentGateway:
    """
    Process-wide gateway per checkout method ("card" or "paypal").

    The simulated gateways keep their intents in memory, so each method
    gets exactly one instance.
    """
    if method not in CHECKOUT_METHODS:
        raise ValueError(f"Unknown checkout method: {method}")

    if method == "paypal":
        if settings.simulation_mode:
            logger.info("Using simulated PayPal processor")
            return SimulatedGateway(
                webhook_secret=settings.simulated_webhook_secret,
                provider=PROVIDER_SIMULATED_PAYPAL,
                approval_url=f"{settings.app_url}/checkout/paypal/approve",
            )
        return PayPalGateway(
            client_id=settings.paypal_client_id,
            client_secret=settings.paypal_client_secret,
            webhook_id=settings.paypal_webhook_id,
            api_base=settings.paypal_api_base,
            return_url=f"{settings.app_url}/checkout/success",
            cancel_url=f"{settings.app_url}/checkout",
            brand_name=settings.paypal_brand_name,
            timeout_seconds=settings.gateway_timeout_seconds,
        )

    if settings.simulation_mode:
        logger.info("Using simulated card processor")
        return SimulatedGateway(webhook_secret=settings.simulated_webhook_secret)
    return StripeGateway(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        timeout_seconds=settings.gateway_timeout_seconds,
    )
