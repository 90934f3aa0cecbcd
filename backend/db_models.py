"""
SQLAlchemy ORM models for the Alternus checkout service.

Tables:
    artworks            - catalogue entries (read-only here, except availability)
    orders              - the order ledger
    order_items         - price-frozen lines of an order
    payment_attempts    - card payment intents, at most one ACTIVE per order
    fulfillment_issues  - conflicts handed to an administrator
    sales               - per-line gallery/artist split once an order is PAID

All money columns are integer minor units (cents).
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, BigInteger, String, Boolean, DateTime, Text, ForeignKey,
    UniqueConstraint, Index, text,
)
from sqlalchemy.orm import relationship

from database import Base
from domain.enums import AttemptStatus, OrderStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


# ════════════════════════════════════════════════════════════════════
# Catalogue
# ════════════════════════════════════════════════════════════════════

class Artwork(Base):
    """
    An original artwork offered for sale.

    is_available flips true -> false exactly once, through
    services/reservation_service.py. sold_order_id records the winning order.
    """
    __tablename__ = "artworks"

    id = Column(String(32), primary_key=True, default=_new_id)
    title = Column(String(200), nullable=False)
    artist_id = Column(String(64), nullable=False, index=True)
    price_minor = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    is_available = Column(Boolean, nullable=False, default=True)
    sold_order_id = Column(String(32), nullable=True, index=True)
    sold_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


# ════════════════════════════════════════════════════════════════════
# Order ledger
# ════════════════════════════════════════════════════════════════════

class Order(Base):
    """
    One checkout submission.

    Status changes only through order_ledger.transition_status (CAS on status).
    """
    __tablename__ = "orders"

    id = Column(String(32), primary_key=True, default=_new_id)
    order_number = Column(String(32), unique=True, nullable=False, index=True)
    idempotency_key = Column(String(64), unique=True, nullable=True, index=True)  # sha256 of client token

    subtotal_minor = Column(BigInteger, nullable=False)
    shipping_fee_minor = Column(BigInteger, nullable=False)
    total_minor = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)

    status = Column(String(30), nullable=False, default=OrderStatus.PENDING.value, index=True)
    payment_method = Column(String(20), nullable=True)  # CARD | PAYPAL | BANK_TRANSFER
    payment_reference = Column(String(128), nullable=True, index=True)
    failure_reason = Column(Text, nullable=True)  # last user-facing decline reason

    # Customer contact (guest or authenticated; identity itself is external)
    contact_email = Column(String(254), nullable=False)
    contact_name = Column(String(200), nullable=True)
    contact_phone = Column(String(50), nullable=True)

    # Shipping address
    ship_first_name = Column(String(100), nullable=False)
    ship_last_name = Column(String(100), nullable=False)
    ship_address = Column(String(300), nullable=False)
    ship_city = Column(String(100), nullable=False)
    ship_postal_code = Column(String(20), nullable=False)
    ship_country = Column(String(100), nullable=False)
    ship_phone = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    transfer_declared_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        order_by="OrderItem.id",
    )

    __table_args__ = (
        Index("ix_orders_status_created", "status", "created_at"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(32), ForeignKey("orders.id"), nullable=False, index=True)
    artwork_id = Column(String(32), nullable=False, index=True)  # read-only reference
    title = Column(String(200), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price_minor = Column(BigInteger, nullable=False)

    order = relationship("Order", back_populates="items")


# ════════════════════════════════════════════════════════════════════
# Card payments
# ════════════════════════════════════════════════════════════════════

class PaymentAttempt(Base):
    """
    A payment intent (card) or checkout order (PayPal) requested for an order.

    A retry after a decline opens a new attempt on the same order; the
    partial unique index keeps at most one ACTIVE attempt per order.
    """
    __tablename__ = "payment_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(32), ForeignKey("orders.id"), nullable=False, index=True)
    provider = Column(String(20), nullable=False)  # stripe | paypal | simulated | simulated_paypal
    external_payment_id = Column(String(128), unique=True, nullable=False, index=True)
    client_secret = Column(String(256), nullable=True)  # card processors
    redirect_url = Column(String(512), nullable=True)  # redirect processors (approval page)
    amount_minor = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(20), nullable=False, default=AttemptStatus.ACTIVE.value)
    failure_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            "uq_payment_attempts_active_order",
            "order_id",
            unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
    )


# ════════════════════════════════════════════════════════════════════
# Manual resolution queue
# ════════════════════════════════════════════════════════════════════

class FulfillmentIssue(Base):
    """
    A paid order that cannot be fulfilled as-is (double sale, payment on the
    wrong path). Resolved by a human, e.g. with a refund.
    """
    __tablename__ = "fulfillment_issues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(32), ForeignKey("orders.id"), nullable=False, index=True)
    artwork_id = Column(String(32), nullable=True)
    code = Column(String(40), nullable=False, index=True)
    conflicting_order_id = Column(String(32), nullable=True)
    external_payment_id = Column(String(128), nullable=True)
    detail = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolution_note = Column(Text, nullable=True)


# ════════════════════════════════════════════════════════════════════
# Sales (artist earnings)
# ════════════════════════════════════════════════════════════════════

class Sale(Base):
    __tablename__ = "sales"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(32), ForeignKey("orders.id"), nullable=False, index=True)
    artwork_id = Column(String(32), nullable=False, index=True)
    artist_id = Column(String(64), nullable=True, index=True)
    amount_minor = Column(BigInteger, nullable=False)
    gallery_commission_minor = Column(BigInteger, nullable=False)
    artist_earning_minor = Column(BigInteger, nullable=False)
    payment_method = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint("order_id", "artwork_id", name="uq_sale_order_artwork"),
    )
