"""
Async executor for blocking payment-processor SDK calls.

The stripe SDK is synchronous; its HTTP round-trips run in a small thread
pool so a slow processor never blocks the asyncio event loop.
"""
import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

# Shared executor for blocking operations
_executor: ThreadPoolExecutor | None = None
_MAX_WORKERS = 4


def get_executor() -> ThreadPoolExecutor:
    """Lazy-initialize thread pool executor."""
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(max_workers=_MAX_WORKERS, thread_name_prefix="gateway_")
        logger.info(f"Thread pool executor initialized (max_workers={_MAX_WORKERS})")
    return _executor


T = TypeVar("T")


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking (synchronous) function in the thread pool."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        get_executor(),
        functools.partial(func, *args, **kwargs),
    )


def shutdown_executor() -> None:
    """Shutdown the thread pool on app lifecycle end."""
    global _executor
    if _executor:
        _executor.shutdown(wait=True)
        _executor = None
        logger.info("Thread pool executor shutdown")
