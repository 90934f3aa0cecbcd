"""
Custom domain exceptions for consistent error handling.

These exceptions are mapped to HTTP status codes by the global exception handler
in main.py. Services return Outcome objects; only the HTTP layer raises these.
"""
from fastapi import HTTPException, status

from domain.results import ErrorCode, Outcome, VALIDATION_CODES, CONCURRENCY_CODES


class DomainError(HTTPException):
    """Base class for all domain-specific errors."""
    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        details: dict | None = None,
        code: str | None = None,
    ):
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.details = details or {}
        self.code = code


class NotFoundError(DomainError):
    """Resource not found (404)."""
    def __init__(self, resource_type: str, identifier: str, details: dict | None = None):
        message = f"{resource_type} not found: {identifier}"
        super().__init__(
            message,
            status_code=status.HTTP_404_NOT_FOUND,
            details=details,
            code=ErrorCode.NOT_FOUND.value,
        )


class ValidationError(DomainError):
    """Validation error (400)."""
    def __init__(self, message: str, field: str | None = None, details: dict | None = None, code: str | None = None):
        if field:
            message = f"Validation error on {field}: {message}"
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, details=details, code=code)


class PermissionDeniedError(DomainError):
    """Permission denied (403)."""
    def __init__(self, message: str = "Permission denied", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, details=details)


class UnauthorizedError(DomainError):
    """Unauthorized access (401)."""
    def __init__(self, message: str = "Unauthorized", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, details=details)


class ConflictError(DomainError):
    """Resource conflict (409)."""
    def __init__(self, message: str, details: dict | None = None, code: str | None = None):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, details=details, code=code)


class RateLimitError(DomainError):
    """Rate limit exceeded (429). Carries Retry-After when the wait is known."""
    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            message,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details=details,
            code=ErrorCode.RATE_LIMITED.value,
        )
        if retry_after is not None:
            self.headers = {"Retry-After": str(retry_after)}


class GatewayError(DomainError):
    """Payment processor rejected or failed the request (502)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=details,
            code=ErrorCode.GATEWAY_ERROR.value,
        )


class GatewayTimeoutError(DomainError):
    """Payment processor did not answer in time (504). Safe for the client to retry."""
    def __init__(self, message: str = "Payment processor timed out. Please retry.", details: dict | None = None):
        super().__init__(
            message,
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            details=details,
            code=ErrorCode.GATEWAY_TIMEOUT.value,
        )


def raise_for_outcome(outcome: Outcome, resource_type: str = "Order", identifier: str = "") -> None:
    """Translate a failed Outcome into the matching DomainError. No-op on success."""
    if outcome.ok:
        return

    code = outcome.error
    message = outcome.message or code.value
    details = dict(outcome.details)

    if code == ErrorCode.NOT_FOUND:
        raise NotFoundError(resource_type, identifier or str(details.get("id", "")), details=details)
    if code in VALIDATION_CODES:
        raise ValidationError(message, details=details, code=code.value)
    if code in CONCURRENCY_CODES or code == ErrorCode.AMOUNT_MISMATCH:
        raise ConflictError(message, details=details, code=code.value)
    if code == ErrorCode.GATEWAY_TIMEOUT:
        raise GatewayTimeoutError(details=details)
    if code == ErrorCode.INVALID_SIGNATURE:
        raise ValidationError(message, details=details, code=code.value)
    raise GatewayError(message, details=details)
