"""
Response envelopes shared by all routers.

- Success: { "success": true, "data": <payload>, "meta": {...} }
- Error:   { "success": false, "error": { "code": "...", "message": "...", "details": {...} } }
"""
from typing import Any

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Error body rendered by the global exception handlers."""
    code: str = Field(..., description="Machine-readable code, e.g. 'STALE_TRANSITION' or 'not_found'")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(default=None, description="Additional error context")


class StandardErrorResponse(BaseModel):
    success: bool = Field(False, description="Always false for errors")
    error: ErrorDetail


def success_response(data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """Wrap a payload in the success envelope."""
    response = {"success": True, "data": data}
    if meta:
        response["meta"] = meta
    return response


def paginated_response(
    items: list[Any],
    limit: int,
    offset: int = 0,
    total: int | None = None,
) -> dict[str, Any]:
    """
    Success envelope for list endpoints.

    Args:
        items: Items on this page
        limit: Page size
        offset: Number of items skipped
        total: Total number of items (defaults to len(items))
    """
    if total is None:
        total = len(items)

    meta = {
        "limit": limit,
        "offset": offset,
        "total": total,
        "hasMore": (offset + limit) < total,
    }
    return success_response(data=items, meta=meta)
