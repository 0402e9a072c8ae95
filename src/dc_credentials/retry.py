"""Bounded retry with backoff for async callables.

Kept free of any hashing knowledge so the policy can be tested on its own.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class RetryExhaustedError(Exception):
    """Raised once every attempt allowed by the policy has failed."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempt(s): {last_error!r}")


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    base_delay: float = 0.1
    multiplier: float = 2.0
    backoff: Literal["exponential", "linear"] = "exponential"

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        if self.backoff == "linear":
            return self.base_delay * attempt
        return self.base_delay * (self.multiplier ** (attempt - 1))


async def _default_sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], Any] | None = None,
    label: str = "operation",
) -> T:
    """Run ``func`` until it succeeds or ``policy.attempts`` is used up.

    Sleeps between attempts only, never after the last one. Cancellation is
    never retried.
    """
    do_sleep = sleep or _default_sleep
    attempt = 0
    while True:
        attempt += 1
        try:
            return await func()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(
                "%s failed (attempt %d/%d): %r",
                label,
                attempt,
                policy.attempts,
                exc,
            )
            if attempt >= policy.attempts:
                raise RetryExhaustedError(policy.attempts, exc) from exc
            result = do_sleep(policy.delay_for(attempt))
            if inspect.isawaitable(result):
                await result
