"""
Checkout throttling.

Each client gets settings.checkout_rate_limit submissions per
settings.checkout_rate_window_seconds on every checkout route (order
creation, payment intents, PayPal orders, bank-transfer declarations).
Buckets are keyed by client IP and route template, so cycling through
/orders/{order_id}/payment-intent with different order ids still drains
one bucket.

State is per process. Multi-worker deployments need a shared store.
"""
import logging
import math
import time
from collections import defaultdict, deque
from typing import Callable

from fastapi import Request

from config import settings
from domain.errors import RateLimitError

logger = logging.getLogger(__name__)


class CheckoutThrottle:
    """Sliding window of hit times per bucket."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._hits: dict[str, deque[float]] = defaultdict(deque)

    def _window(self, bucket: str, window_seconds: int) -> deque[float]:
        hits = self._hits[bucket]
        cutoff = self._clock() - window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        return hits

    def allow(self, bucket: str, limit: int, window_seconds: int) -> bool:
        """Record a hit unless the bucket is already full."""
        hits = self._window(bucket, window_seconds)
        if len(hits) >= limit:
            return False
        hits.append(self._clock())
        return True

    def remaining(self, bucket: str, limit: int, window_seconds: int) -> int:
        return max(0, limit - len(self._window(bucket, window_seconds)))

    def retry_after(self, bucket: str, window_seconds: int) -> int:
        """Whole seconds until the oldest hit leaves the window (0 if empty)."""
        hits = self._window(bucket, window_seconds)
        if not hits:
            return 0
        return max(1, math.ceil(hits[0] + window_seconds - self._clock()))

    def reset(self):
        self._hits.clear()


_throttle = CheckoutThrottle()


def get_throttle() -> CheckoutThrottle:
    return _throttle


def client_bucket(request: Request) -> str:
    client_ip = request.client.host if request.client else "unknown"
    route = request.scope.get("route")
    return f"{client_ip}:{getattr(route, 'path', request.url.path)}"


def checkout_rate_limit():
    """FastAPI dependency for checkout routes. Limits are read per request."""
    async def _check_checkout_rate(request: Request):
        limit = settings.checkout_rate_limit
        window = settings.checkout_rate_window_seconds
        bucket = client_bucket(request)
        if _throttle.allow(bucket, limit, window):
            return

        retry_after = _throttle.retry_after(bucket, window)
        logger.warning(f"Checkout throttled: {bucket} ({limit}/{window}s)")
        raise RateLimitError(
            f"Too many checkout requests. Try again in {retry_after} seconds.",
            retry_after=retry_after,
            details={"limit": limit, "windowSeconds": window},
        )

    return _check_checkout_rate
