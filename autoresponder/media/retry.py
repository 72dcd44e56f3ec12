"""Bounded exponential backoff for transient network failures."""

from __future__ import annotations

import asyncio
import errno
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRYABLE_ERRNOS = {errno.ECONNRESET, errno.EPIPE, errno.ETIMEDOUT}
_RETRYABLE_MESSAGE_RE = re.compile(
    r"connect timeout|timed out|connection reset|socket hang up|server disconnected",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class RetryPolicy:
    retries: int = 2
    delay: float = 0.6
    backoff_factor: float = 1.5

    def wait_time(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return round(self.delay * self.backoff_factor ** (attempt - 1), 3)


DEFAULT_RETRY_POLICY = RetryPolicy()


def is_retryable_network_error(exc: BaseException) -> bool:
    """Classify connection timeouts, resets and hang-ups as retryable."""
    if isinstance(exc, (httpx.TimeoutException, httpx.RemoteProtocolError, httpx.ReadError, httpx.WriteError)):
        return True
    seen: set[int] = set()
    cause: BaseException | None = exc
    while cause is not None and id(cause) not in seen:
        seen.add(id(cause))
        if isinstance(cause, OSError) and cause.errno in _RETRYABLE_ERRNOS:
            return True
        cause = cause.__cause__ or cause.__context__
    return bool(_RETRYABLE_MESSAGE_RE.search(str(exc)))


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    *,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    label: str = "request",
) -> T:
    """Run ``operation``, retrying retryable failures up to ``policy.retries`` times.

    Non-retryable errors and the last retryable error propagate unchanged.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            attempt += 1
            if attempt > policy.retries or not is_retryable_network_error(exc):
                raise
            delay = policy.wait_time(attempt)
            logger.debug(
                f"Transient failure on {label} ({type(exc).__name__}), "
                f"retry {attempt}/{policy.retries} in {delay:.2f}s"
            )
            await sleep(delay)
