"""
VaxChain - Store Retry Policy
=============================

Bounded exponential backoff for transient ledger store failures.
Only ``StoreError`` is retried; a ``DuplicateRecordError`` is an answer, not a
transient failure, and is re-raised immediately.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import structlog

from .config import Settings
from .errors import DuplicateRecordError, StoreError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            attempts=settings.STORE_RETRY_ATTEMPTS,
            base_delay=settings.STORE_RETRY_BASE_DELAY,
            max_delay=settings.STORE_RETRY_MAX_DELAY,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (1-based)."""
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    name: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or ``policy.attempts`` is exhausted."""
    attempt = 1
    while True:
        try:
            return await operation()
        except DuplicateRecordError:
            raise
        except StoreError as exc:
            if attempt >= policy.attempts:
                logger.error(
                    "store_retry_exhausted",
                    operation=name,
                    attempts=attempt,
                    error=str(exc),
                )
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "store_retry",
                operation=name,
                attempt=attempt,
                delay_seconds=delay,
                error=str(exc),
            )
            await sleep(delay)
            attempt += 1
