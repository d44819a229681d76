"""Explicit retry policy for polling loops (re-detection, capture retries)."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Fixed-interval retry.

    Attributes:
        max_attempts: Total attempts, including the first one
        backoff_s: Wait between attempts (never after the last one)
    """
    max_attempts: int
    backoff_s: float

    async def run(
        self,
        attempt: Callable[[int], Awaitable[Optional[T]]],
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        retry_on: Tuple[Type[BaseException], ...] = (),
        on_retry: Optional[Callable[[int, Optional[BaseException]], Awaitable[None]]] = None,
    ) -> Optional[T]:
        """
        Call ``attempt(n)`` until it returns something other than None.

        Exceptions listed in ``retry_on`` count as a failed attempt; the last
        one is re-raised once attempts are exhausted. Any other exception
        propagates immediately.

        Returns:
            The first non-None result, or None after max_attempts misses
        """
        last_error: Optional[BaseException] = None
        for n in range(1, self.max_attempts + 1):
            try:
                result = await attempt(n)
                last_error = None
            except retry_on as e:
                result = None
                last_error = e
                logger.warning(f"Attempt {n}/{self.max_attempts} failed: {e}")
            if result is not None:
                return result
            if n < self.max_attempts:
                if on_retry is not None:
                    await on_retry(n, last_error)
                await sleep(self.backoff_s)
        if last_error is not None:
            raise last_error
        return None
