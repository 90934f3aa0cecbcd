"""
Checkout endpoints - order creation, payment initiation, bank transfer
declaration and order lookup for the confirmation page.

Endpoints:
    POST /orders                                   - create order (Idempotency-Key header)
    POST /orders/{order_id}/payment-intent         - card payment intent
    POST /orders/{order_id}/bank-transfer-confirm  - "I have sent the transfer"
    GET  /orders/by-id/{order_id}                  - order summary by id
    GET  /orders/{order_number}                    - order summary by ALT-XXXX-XXXX
"""
import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from deps import get_payment_gateway
from domain.cart import CustomerContact, ShippingAddress
from domain.errors import raise_for_outcome
from domain.responses import success_response
from middleware.rate_limit import checkout_rate_limit
from models import BankDetailsView, CreateOrderRequest, OrderSummary, PaymentIntentView
from services import bank_transfer_service, catalog_service, order_ledger, payment_service
from services.payment_gateway import PaymentGateway
from utils.validators import idempotency_key_header, validate_currency_code, validated_order_number

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    req: CreateOrderRequest,
    response: Response,
    idempotency_key: str | None = Depends(idempotency_key_header),
    db: AsyncSession = Depends(get_db),
    _rate=Depends(checkout_rate_limit()),
):
    """
    Submit the checkout form.

    Retrying with the same Idempotency-Key returns the original order (200)
    instead of creating a second one (201).
    """
    if idempotency_key:
        existing = await order_ledger.find_by_idempotency_token(db, idempotency_key)
        if existing:
            response.status_code = status.HTTP_200_OK
            return success_response(
                data=OrderSummary.from_order(existing).to_wire(),
                meta={"created": False},
            )

    currency = validate_currency_code(req.currency or settings.default_currency)

    snapshot = await catalog_service.build_snapshot(
        db,
        items=[{"artwork_id": i.artwork_id, "quantity": i.quantity} for i in req.items],
        currency=currency,
    )
    raise_for_outcome(snapshot, resource_type="Artwork")

    created = await order_ledger.create_order(
        db,
        snapshot=snapshot.value,
        shipping_address=ShippingAddress(**req.shipping_address.model_dump()),
        contact=CustomerContact(**req.contact.model_dump()),
        currency=currency,
        idempotency_key=idempotency_key,
    )
    raise_for_outcome(created)
    await db.commit()

    if not created.value.created:
        response.status_code = status.HTTP_200_OK
    return success_response(
        data=OrderSummary.from_order(created.value.order).to_wire(),
        meta={"created": created.value.created},
    )


@router.post("/{order_id}/payment-intent")
async def create_payment_intent(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    _rate=Depends(checkout_rate_limit()),
):
    """Request (or reuse) the card payment intent for an order."""
    outcome = await payment_service.initiate_payment(db, gateway, order_id)
    raise_for_outcome(outcome, identifier=order_id)
    await db.commit()

    handle = outcome.value
    return success_response(data=PaymentIntentView.from_handle(handle).to_wire())


@router.post("/{order_id}/bank-transfer-confirm")
async def confirm_bank_transfer(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(checkout_rate_limit()),
):
    """Record the customer's bank-transfer declaration (no funds are verified)."""
    outcome = await bank_transfer_service.declare_transfer_sent(db, order_id)
    raise_for_outcome(outcome, identifier=order_id)
    await db.commit()

    declaration = outcome.value
    details = declaration.bank_details
    data = OrderSummary.from_order(declaration.order).to_wire()
    data.update({
        "bankDetails": BankDetailsView(
            bank_name=details.bank_name,
            account_holder=details.account_holder,
            iban=details.iban,
            bic=details.bic,
        ).to_wire(),
        "paymentReference": declaration.payment_reference,
        "amountDue": declaration.amount_minor,
    })
    return success_response(data=data, meta={"duplicate": declaration.duplicate})


@router.get("/by-id/{order_id}")
async def get_order_by_id(order_id: str, db: AsyncSession = Depends(get_db)):
    outcome = await order_ledger.get_order(db, order_id)
    raise_for_outcome(outcome, identifier=order_id)
    return success_response(data=OrderSummary.from_order(outcome.value).to_wire())


@router.get("/{order_number}")
async def get_order_by_number(
    order_number: str = Depends(validated_order_number),
    db: AsyncSession = Depends(get_db),
):
    """Order summary for the confirmation page."""
    outcome = await order_ledger.get_order_by_number(db, order_number)
    raise_for_outcome(outcome, identifier=order_number)
    return success_response(data=OrderSummary.from_order(outcome.value).to_wire())
