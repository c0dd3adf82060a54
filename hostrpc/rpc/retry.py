"""Retry policy used by the wrapping retry middleware."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TypeVar
from collections.abc import Awaitable, Callable

from loguru import logger

from hostrpc.rpc.shapes import TaggedError

T = TypeVar("T")


@dataclass(slots=True)
class RetryPolicy:
    """Exponential-backoff retry policy. Typed failures are never retried by default."""

    max_attempts: int = 3
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 5.0
    retry_typed_failures: bool = False

    def delay_for(self, attempt: int) -> float:
        return min(self.max_delay_seconds, self.base_delay_seconds * (2**attempt))

    def should_retry(self, exc: Exception) -> bool:
        return self.retry_typed_failures or not isinstance(exc, TaggedError)


async def with_retry(fn: Callable[[], Awaitable[T]], policy: RetryPolicy, *, label: str = "call") -> T:
    """Await ``fn``, retrying failures the policy accepts until attempts run out."""
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as exc:
            attempt += 1
            if attempt >= policy.max_attempts or not policy.should_retry(exc):
                raise
            delay = policy.delay_for(attempt - 1)
            logger.debug("Retrying {} after {} (attempt {}/{}, delay {}s)", label, type(exc).__name__, attempt + 1, policy.max_attempts, delay)
            await asyncio.sleep(delay)
