"""
Admin authentication helpers.

Administrator endpoints (reconciliation, catalogue, issue queue) require
    Authorization: Bearer <jwt>
signed HS256 with settings.jwt_secret and carrying role == "admin".
Customer identity is handled outside this service; checkout endpoints are
public and protected by rate limits instead.
"""
import logging
from datetime import datetime, timezone, timedelta
from fastapi import HTTPException, Header
from typing import Optional

import jwt

from config import settings

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def decode_access_token(token: str) -> dict:
    if not settings.jwt_secret:
        raise HTTPException(
            status_code=500,
            detail="Server auth misconfigured (JWT secret missing).",
        )
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
        return payload
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Access token expired.")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid access token.")


def issue_access_token(*, subject: str, role: str, ttl_minutes: int | None = None) -> str:
    """Mint a token (used by ops tooling and tests; there is no login endpoint here)."""
    now = _now_utc()
    ttl = settings.jwt_access_ttl_minutes if ttl_minutes is None else ttl_minutes
    exp = now.replace(microsecond=0) + timedelta(minutes=ttl)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": subject,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if not settings.jwt_secret:
        raise HTTPException(
            status_code=500,
            detail="Server auth misconfigured (JWT secret missing).",
        )
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


async def require_admin(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> str:
    """Dependency: returns the admin subject or raises 401/403."""
    token = _parse_bearer_token(authorization)
    if not token:
        raise HTTPException(
            status_code=401,
            detail="Authentication required. Provide Authorization: Bearer <token>.",
        )
    payload = decode_access_token(token)
    if payload.get("role") != ADMIN_ROLE:
        logger.warning(f"Admin access denied for subject={str(payload.get('sub'))[:16]}")
        raise HTTPException(status_code=403, detail="Admin role required.")
    return payload["sub"]
