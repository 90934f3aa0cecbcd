"""
Payment confirmation endpoints.

    POST /payments/confirm                 - client callback after the card form
    POST /payments/webhook                 - card processor → service, signed
    POST /payments/paypal/create-order     - PayPal order + approval link
    POST /payments/paypal/capture-order    - customer is back from PayPal: capture
    POST /payments/webhook/paypal          - PayPal → service, verified with PayPal
    POST /simulate/payments/{payment_id}   - complete a simulated intent (sim only)

Webhooks always get 200 for business outcomes (duplicate, mismatch,
unknown order) so the processor stops retrying; only an unauthenticated
payload is refused (400). A processor that cannot be reached to verify a
webhook gives 502/504, and unexpected faults propagate as 500; the
processor retries later in both cases.
"""
import logging
from typing import Mapping

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from deps import get_payment_gateway, get_paypal_gateway
from domain.errors import GatewayError, GatewayTimeoutError, ValidationError, raise_for_outcome
from domain.responses import success_response
from domain.results import ErrorCode
from middleware.rate_limit import checkout_rate_limit
from models import (
    ConfirmPaymentRequest,
    OrderSummary,
    PaymentIntentView,
    PayPalOrderRequest,
    SimulatePaymentRequest,
)
from services import order_ledger, payment_service
from services.payment_gateway import (
    GatewayRejected,
    GatewayUnavailable,
    PaymentGateway,
    SimulatedGateway,
    WebhookSignatureError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

# Separate router for simulation (no /payments prefix)
sim_router = APIRouter(prefix="/simulate", tags=["simulation"])


def _webhook_result(result: payment_service.WebhookResult) -> dict:
    return {
        "eventId": result.event_id,
        "action": result.action,
        "orderId": result.order_id,
        "error": result.error.value if result.error else None,
    }


async def _confirm_from_client(
    req: ConfirmPaymentRequest,
    db: AsyncSession,
    gateway: PaymentGateway,
) -> dict:
    outcome = await payment_service.confirm_from_client(db, gateway, req.order_id, req.payment_id)
    raise_for_outcome(outcome, identifier=req.order_id)
    await db.commit()

    confirmation = outcome.value
    data = OrderSummary.from_order(confirmation.order).to_wire()
    data["paymentStatus"] = confirmation.payment_status.value
    return success_response(data=data, meta={"duplicate": confirmation.duplicate})


@router.post("/confirm")
async def confirm_payment(
    req: ConfirmPaymentRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Client-side confirmation callback.

    The processor is asked for the real outcome; duplicates and mismatches
    never surface as errors, the current order is returned instead.
    """
    return await _confirm_from_client(req, db, gateway)


async def _apply_webhook(
    payload: bytes,
    headers: Mapping[str, str],
    gateway: PaymentGateway,
    db: AsyncSession,
) -> payment_service.WebhookResult:
    try:
        event = await gateway.parse_webhook(payload, headers)
    except WebhookSignatureError as e:
        logger.warning(f"Webhook rejected: {e}")
        raise ValidationError(str(e), code=ErrorCode.INVALID_SIGNATURE.value)
    except GatewayUnavailable as e:
        logger.warning(f"Webhook could not be verified: {e}")
        raise GatewayTimeoutError()
    except GatewayRejected as e:
        logger.error(f"Webhook verification failed: {e}")
        raise GatewayError(str(e))

    outcome = await payment_service.handle_webhook_event(db, event)
    await db.commit()

    result = outcome.value
    logger.info(f"Webhook {result.event_id} ({event.raw_type}): {result.action}")
    return result


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Card processor notification. Fails closed on a missing or bad signature."""
    payload = await request.body()
    result = await _apply_webhook(payload, request.headers, gateway, db)
    return {"received": True, "result": _webhook_result(result)}


# ════════════════════════════════════════════════════════════════════
# PAYPAL - redirect checkout
# ════════════════════════════════════════════════════════════════════


@router.post("/paypal/create-order")
async def create_paypal_order(
    req: PayPalOrderRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_paypal_gateway),
    _rate=Depends(checkout_rate_limit()),
):
    """
    Create (or reuse) the PayPal order for a checkout order.

    The client sends the customer to redirectUrl; an active card intent for
    the same order is superseded.
    """
    outcome = await payment_service.initiate_payment(db, gateway, req.order_id)
    raise_for_outcome(outcome, identifier=req.order_id)
    await db.commit()
    return success_response(data=PaymentIntentView.from_handle(outcome.value).to_wire())


@router.post("/paypal/capture-order")
async def capture_paypal_order(
    req: ConfirmPaymentRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_paypal_gateway),
):
    """Customer returned from PayPal: capture the approved order and confirm it."""
    return await _confirm_from_client(req, db, gateway)


@router.post("/webhook/paypal")
async def paypal_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_paypal_gateway),
):
    """PayPal notification, authenticated through PayPal's verification API."""
    payload = await request.body()
    result = await _apply_webhook(payload, request.headers, gateway, db)
    return {"received": True, "result": _webhook_result(result)}


# ════════════════════════════════════════════════════════════════════
# SIMULATION ENDPOINT - complete a simulated card or PayPal payment
# ════════════════════════════════════════════════════════════════════


@sim_router.post("/payments/{payment_id}")
async def simulate_payment(
    payment_id: str,
    req: SimulatePaymentRequest,
    db: AsyncSession = Depends(get_db),
    card_gateway: PaymentGateway = Depends(get_payment_gateway),
    paypal_gateway: PaymentGateway = Depends(get_paypal_gateway),
):
    """
    Play the customer's bank: settle or decline a simulated intent, then
    deliver the signed webhook exactly as the processor would.
    """
    # Double-guard: simulation flag AND non-production environment
    simulated = [g for g in (card_gateway, paypal_gateway) if isinstance(g, SimulatedGateway)]
    if not settings.simulation_mode or not simulated:
        raise HTTPException(status_code=403, detail="Simulation endpoint disabled")
    if settings.environment == "production":
        raise HTTPException(
            status_code=403,
            detail="Simulation explicitly blocked in production environment",
        )

    gateway = next((g for g in simulated if g.has_intent(payment_id)), None)
    if gateway is None:
        raise HTTPException(status_code=404, detail=f"Payment not found: {payment_id}")

    intent = gateway.complete_intent(
        payment_id,
        succeed=req.outcome == "succeeded",
        failure_reason=req.reason,
        amount_minor=req.amount,
    )

    payload, headers = gateway.build_webhook(payment_id)
    result = await _apply_webhook(payload, headers, gateway, db)

    data = {"webhook": _webhook_result(result)}
    if intent.order_id:
        found = await order_ledger.get_order(db, intent.order_id)
        if found.ok:
            data["order"] = OrderSummary.from_order(found.value).to_wire()
    return success_response(data=data)
