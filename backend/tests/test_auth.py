"""
Tests for admin JWT helpers.

Tests: issue_access_token / decode_access_token round trip, expiry,
tampering, require_admin role check.
"""
import jwt
import pytest
from fastapi import HTTPException

from config import settings
from middleware.auth import ADMIN_ROLE, decode_access_token, issue_access_token, require_admin


class TestAccessTokens:

    @pytest.mark.unit
    def test_issue_and_decode(self):
        token = issue_access_token(subject="ops@alternus.test", role=ADMIN_ROLE)
        payload = decode_access_token(token)
        assert payload["sub"] == "ops@alternus.test"
        assert payload["role"] == ADMIN_ROLE
        assert payload["iss"] == settings.jwt_issuer

    @pytest.mark.unit
    def test_expired_token_is_401(self):
        token = issue_access_token(subject="ops", role=ADMIN_ROLE, ttl_minutes=-1)
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(token)
        assert exc_info.value.status_code == 401
        assert "expired" in exc_info.value.detail.lower()

    @pytest.mark.unit
    def test_foreign_signature_is_401(self):
        token = jwt.encode(
            {"sub": "ops", "role": ADMIN_ROLE, "iss": settings.jwt_issuer, "iat": 0, "exp": 4_102_444_800},
            "some-other-secret",
            algorithm="HS256",
        )
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(token)
        assert exc_info.value.status_code == 401


class TestRequireAdmin:

    @pytest.mark.unit
    async def test_admin_subject_returned(self):
        token = issue_access_token(subject="ops", role=ADMIN_ROLE)
        assert await require_admin(f"Bearer {token}") == "ops"

    @pytest.mark.unit
    @pytest.mark.parametrize("header", [None, "", "Bearer", "Basic abc", "Bearer    "])
    async def test_missing_token_is_401(self, header):
        with pytest.raises(HTTPException) as exc_info:
            await require_admin(header)
        assert exc_info.value.status_code == 401

    @pytest.mark.unit
    async def test_non_admin_is_403(self):
        token = issue_access_token(subject="buyer", role="customer")
        with pytest.raises(HTTPException) as exc_info:
            await require_admin(f"Bearer {token}")
        assert exc_info.value.status_code == 403
