"""
Reusable retry policy: exponential backoff with cap and additive jitter.

Shared by the ledger RPC wrapper and the pricing clients. Only errors the
policy classifies as transient are retried.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

import httpx

from backend_reconciler.core.exceptions import TransientUpstreamError
from backend_reconciler.recon_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


def is_transient_error(error: BaseException) -> bool:
    """Timeouts, connection resets, rate limits and 5xx are transient."""
    if isinstance(error, TransientUpstreamError):
        return True
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return True
    if isinstance(error, (ConnectionError, asyncio.TimeoutError)):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES
    return False


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters: delay(attempt) = min(base * multiplier**attempt, cap) + U(0, jitter)."""

    max_retries: int = 5
    base_delay_sec: float = 0.8
    multiplier: float = 2.0
    max_delay_sec: float = 15.0
    jitter_sec: float = 0.4
    is_transient: Callable[[BaseException], bool] = field(default=is_transient_error)

    def delay_for(self, attempt: int, base_delay_sec: float | None = None) -> float:
        base = self.base_delay_sec if base_delay_sec is None else base_delay_sec
        delay = min(base * (self.multiplier**attempt), self.max_delay_sec)
        if self.jitter_sec > 0:
            delay += random.uniform(0, self.jitter_sec)
        return delay

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str = "request",
        *,
        max_retries: int | None = None,
        base_delay_sec: float | None = None,
    ) -> T:
        """
        Await operation() until it succeeds, a permanent error occurs, or
        max_retries retries (max_retries + 1 attempts) are used up.
        The last error is re-raised unchanged.
        """
        retries = self.max_retries if max_retries is None else max_retries
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if not self.is_transient(e) or attempt >= retries:
                    if attempt > 0:
                        logger.error(
                            "retry_gave_up",
                            label=label,
                            attempts=attempt + 1,
                            transient=self.is_transient(e),
                            error=str(e),
                        )
                    raise
                delay = self.delay_for(attempt, base_delay_sec)
                if attempt == 0:
                    logger.warning(
                        "retry_transient_error",
                        label=label,
                        delay_sec=round(delay, 3),
                        max_retries=retries,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                await asyncio.sleep(delay)
                attempt += 1
