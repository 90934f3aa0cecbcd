"""
Pydantic models for request/response validation.

Wire format is camelCase (aliases); Python code uses snake_case names.
Money is always integer minor units.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from db_models import Artwork, FulfillmentIssue, Order, Sale
from domain.enums import OrderStatus


class ApiBase(BaseModel):
    """Shared base - allows construction by Python name or alias."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# Customer-facing status labels. A bank transfer is never shown as failed.
DISPLAY_STATUS = {
    OrderStatus.PENDING.value: "pending_payment",
    OrderStatus.PAID.value: "paid",
    OrderStatus.PAYMENT_FAILED.value: "payment_failed",
    OrderStatus.AWAITING_VERIFICATION.value: "pending_verification",
    OrderStatus.CANCELLED.value: "cancelled",
}


# ── Checkout Requests ───────────────────────────────────────────────

class CheckoutItem(ApiBase):
    artwork_id: str = Field(..., alias="artworkId", min_length=1, max_length=64)
    # Range checks belong to the pricing step so they surface as INVALID_QUANTITY
    quantity: int = 1


class ShippingAddressIn(ApiBase):
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=100)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=100)
    address: str = Field(..., min_length=1, max_length=300)
    city: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., alias="postalCode", min_length=1, max_length=20)
    country: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)


class ContactIn(ApiBase):
    email: str = Field(..., max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    name: Optional[str] = Field(None, max_length=200)
    phone: Optional[str] = Field(None, max_length=50)


class CreateOrderRequest(ApiBase):
    items: List[CheckoutItem]
    shipping_address: ShippingAddressIn = Field(..., alias="shippingAddress")
    contact: ContactIn
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class ConfirmPaymentRequest(ApiBase):
    order_id: str = Field(..., alias="orderId", min_length=1, max_length=64)
    payment_id: str = Field(..., alias="paymentId", min_length=1, max_length=128)


class PayPalOrderRequest(ApiBase):
    order_id: str = Field(..., alias="orderId", min_length=1, max_length=64)


class SimulatePaymentRequest(ApiBase):
    outcome: Literal["succeeded", "declined"] = "succeeded"
    reason: Optional[str] = Field(None, max_length=300)
    amount: Optional[int] = Field(None, ge=0, description="Override the charged amount (minor units)")


# ── Admin Requests ──────────────────────────────────────────────────

class ArtworkCreateRequest(ApiBase):
    id: Optional[str] = Field(None, min_length=1, max_length=32)
    title: str = Field(..., min_length=1, max_length=200)
    artist_id: str = Field(..., alias="artistId", min_length=1, max_length=64)
    price_minor: int = Field(..., alias="priceMinor", ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class MarkPaidRequest(ApiBase):
    bank_reference: Optional[str] = Field(None, alias="bankReference", max_length=100)


class CancelOrderRequest(ApiBase):
    reason: Optional[str] = Field(None, max_length=500)


class ResolveIssueRequest(ApiBase):
    note: str = Field(..., min_length=1, max_length=2000)


# ── Responses ───────────────────────────────────────────────────────

class OrderItemView(ApiBase):
    artwork_id: str = Field(..., alias="artworkId")
    title: Optional[str] = None
    quantity: int
    unit_price: int = Field(..., alias="unitPrice")
    line_total: int = Field(..., alias="lineTotal")


class ShippingAddressView(ApiBase):
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    address: str
    city: str
    postal_code: str = Field(..., alias="postalCode")
    country: str
    phone: Optional[str] = None


class OrderSummary(ApiBase):
    order_id: str = Field(..., alias="orderId")
    order_number: str = Field(..., alias="orderNumber")
    status: str
    display_status: str = Field(..., alias="displayStatus")
    payment_method: Optional[str] = Field(None, alias="paymentMethod")
    failure_reason: Optional[str] = Field(None, alias="failureReason")
    subtotal: int
    shipping_fee: int = Field(..., alias="shippingFee")
    total: int
    currency: str
    items: List[OrderItemView]
    shipping_address: ShippingAddressView = Field(..., alias="shippingAddress")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    paid_at: Optional[datetime] = Field(None, alias="paidAt")

    @classmethod
    def from_order(cls, order: Order) -> "OrderSummary":
        # A decline reason is only meaningful while the order sits in PAYMENT_FAILED
        failure_reason = order.failure_reason if order.status == OrderStatus.PAYMENT_FAILED.value else None
        return cls(
            order_id=order.id,
            order_number=order.order_number,
            status=order.status,
            display_status=DISPLAY_STATUS.get(order.status, order.status.lower()),
            payment_method=order.payment_method,
            failure_reason=failure_reason,
            subtotal=order.subtotal_minor,
            shipping_fee=order.shipping_fee_minor,
            total=order.total_minor,
            currency=order.currency,
            items=[
                OrderItemView(
                    artwork_id=i.artwork_id,
                    title=i.title,
                    quantity=i.quantity,
                    unit_price=i.unit_price_minor,
                    line_total=i.quantity * i.unit_price_minor,
                )
                for i in order.items
            ],
            shipping_address=ShippingAddressView(
                first_name=order.ship_first_name,
                last_name=order.ship_last_name,
                address=order.ship_address,
                city=order.ship_city,
                postal_code=order.ship_postal_code,
                country=order.ship_country,
                phone=order.ship_phone,
            ),
            created_at=order.created_at,
            paid_at=order.paid_at,
        )


class PaymentIntentView(ApiBase):
    """clientSecret for card processors, redirectUrl for PayPal."""
    order_id: str = Field(..., alias="orderId")
    client_secret: Optional[str] = Field(None, alias="clientSecret")
    redirect_url: Optional[str] = Field(None, alias="redirectUrl")
    payment_id: str = Field(..., alias="paymentId")
    amount: int
    currency: str
    provider: str
    reused: bool = False

    @classmethod
    def from_handle(cls, handle) -> "PaymentIntentView":
        return cls(
            order_id=handle.order_id,
            client_secret=handle.client_secret,
            redirect_url=handle.redirect_url,
            payment_id=handle.external_payment_id,
            amount=handle.amount_minor,
            currency=handle.currency,
            provider=handle.provider,
            reused=handle.reused,
        )


class BankDetailsView(ApiBase):
    bank_name: str = Field(..., alias="bankName")
    account_holder: str = Field(..., alias="accountHolder")
    iban: str
    bic: str


class ArtworkView(ApiBase):
    id: str
    title: str
    artist_id: str = Field(..., alias="artistId")
    price: int
    currency: str
    is_available: bool = Field(..., alias="isAvailable")

    @classmethod
    def from_artwork(cls, artwork: Artwork) -> "ArtworkView":
        return cls(
            id=artwork.id,
            title=artwork.title,
            artist_id=artwork.artist_id,
            price=artwork.price_minor,
            currency=artwork.currency,
            is_available=artwork.is_available,
        )


class FulfillmentIssueView(ApiBase):
    id: int
    order_id: str = Field(..., alias="orderId")
    artwork_id: Optional[str] = Field(None, alias="artworkId")
    code: str
    conflicting_order_id: Optional[str] = Field(None, alias="conflictingOrderId")
    external_payment_id: Optional[str] = Field(None, alias="paymentId")
    detail: Optional[str] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    resolved_at: Optional[datetime] = Field(None, alias="resolvedAt")
    resolution_note: Optional[str] = Field(None, alias="resolutionNote")

    @classmethod
    def from_issue(cls, issue: FulfillmentIssue) -> "FulfillmentIssueView":
        return cls.model_validate(issue)


class SaleView(ApiBase):
    id: int
    order_id: str = Field(..., alias="orderId")
    artwork_id: str = Field(..., alias="artworkId")
    artist_id: Optional[str] = Field(None, alias="artistId")
    amount_minor: int = Field(..., alias="amount")
    gallery_commission_minor: int = Field(..., alias="galleryCommission")
    artist_earning_minor: int = Field(..., alias="artistEarning")
    payment_method: str = Field(..., alias="paymentMethod")
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    @classmethod
    def from_sale(cls, sale: Sale) -> "SaleView":
        return cls.model_validate(sale)
