"""
Shared FastAPI dependencies.

Routers import request-scoped collaborators from here (DB session, payment
gateway, admin guard, pagination) so tests can override them in one place.
"""

from __future__ import annotations

from typing import TypedDict

from fastapi import Query

from database import get_db  # noqa: F401  (re-exported for routers)
from middleware.auth import require_admin  # noqa: F401
from services.payment_gateway import PaymentGateway, get_gateway


class Pagination(TypedDict):
    limit: int
    offset: int


def pagination_params(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=100_000),
) -> Pagination:
    return {"limit": limit, "offset": offset}


def get_payment_gateway() -> PaymentGateway:
    """Dependency: the configured card processor (Stripe or simulated)."""
    return get_gateway()


def get_paypal_gateway() -> PaymentGateway:
    """Dependency: the configured redirect processor (PayPal or simulated)."""
    return get_gateway("paypal")
