"""
Input validation utilities for the checkout service.

Provides reusable validators for order numbers, currency codes and
idempotency tokens, plus FastAPI dependencies wrapping them.
"""
import re

from fastapi import Header, HTTPException, Path

from config import settings
from domain.constants import ORDER_NUMBER_ALPHABET

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")
_TOKEN_RE = re.compile(r"^[A-Za-z0-9._:\-]{8,128}$")


def _order_number_pattern() -> re.Pattern:
    n = settings.order_number_group_length
    group = f"[{ORDER_NUMBER_ALPHABET}]{{{n}}}"
    return re.compile(rf"^{re.escape(settings.order_number_prefix)}-{group}-{group}$")


def normalize_order_number(value: str | None) -> str | None:
    """
    Upper-case and trim an order number typed by a customer.

    Returns None when the value cannot be an order number at all, so callers
    can answer "not found" without touching the database.
    """
    if not value:
        return None
    candidate = value.strip().upper()
    if not _order_number_pattern().match(candidate):
        return None
    return candidate


def validate_currency_code(currency: str) -> str:
    """
    Validate an ISO-4217 style currency code against the configured set.

    Raises:
        HTTPException(400) if the code is malformed or not supported
    """
    if not currency:
        raise HTTPException(status_code=400, detail="Currency is required")

    code = currency.strip().upper()
    if not _CURRENCY_RE.match(code):
        raise HTTPException(status_code=400, detail=f"Invalid currency code: {currency[:8]}")

    if code not in settings.supported_currencies_list:
        raise HTTPException(status_code=400, detail=f"Unsupported currency: {code}")

    return code


def validate_idempotency_token(token: str | None) -> str | None:
    """Accept an absent token; reject one that is present but malformed."""
    if token is None:
        return None
    token = token.strip()
    if not _TOKEN_RE.match(token):
        raise HTTPException(
            status_code=400,
            detail="Idempotency-Key must be 8-128 characters of [A-Za-z0-9._:-]",
        )
    return token


def idempotency_key_header(
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
) -> str | None:
    """FastAPI dependency for the optional Idempotency-Key request header."""
    return validate_idempotency_token(idempotency_key)


def validated_order_number(
    order_number: str = Path(..., description="Customer-facing order number, e.g. ALT-7KQ2-M9XD"),
) -> str:
    """FastAPI dependency for order-number path parameters (404 when malformed)."""
    normalized = normalize_order_number(order_number)
    if normalized is None:
        raise HTTPException(status_code=404, detail=f"Order not found: {order_number}")
    return normalized
