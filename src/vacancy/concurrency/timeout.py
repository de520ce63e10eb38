import asyncio
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")

_ASYNCIO_TIMEOUT_ERROR = asyncio.TimeoutError


class TimeoutError(Exception):
    """Raised when an operation times out."""

    def __init__(self, timeout_seconds: float, message: str | None = None):
        self.timeout_seconds = timeout_seconds
        self.message = message or f"Operation timed out after {timeout_seconds}s"
        super().__init__(self.message)


async def with_timeout(
    coro: Callable[[], Awaitable[T]],
    timeout_seconds: float | None,
    exception_message: str | None = None,
) -> T:
    """
    Run an async callable with a timeout.

    Args:
        coro: Async callable to execute.
        timeout_seconds: Timeout in seconds. None waits indefinitely.
        exception_message: Custom error message (optional).

    Returns:
        The result of the coroutine.

    Raises:
        TimeoutError: If the operation times out.

    Example:
        try:
            snapshot = await with_timeout(lambda: resource.status(), 0.5)
        except TimeoutError:
            snapshot = None
    """
    if timeout_seconds is None:
        return await coro()
    try:
        return await asyncio.wait_for(coro(), timeout=timeout_seconds)
    except _ASYNCIO_TIMEOUT_ERROR:
        raise TimeoutError(timeout_seconds, exception_message) from None


__all__ = [
    "TimeoutError",
    "with_timeout",
]
