"""One-time asynchronous backend initialization guard.

States: UNINITIALIZED -> INITIALIZING -> READY, or FAILED once the retry
budget is spent. READY and FAILED are sticky until ``reset()``.

Racing first callers share a single in-flight task. Each caller awaits it
through ``asyncio.shield`` so a cancelled caller never cancels the load or
leaves the guard half-set.
"""

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from src.dc_common.errors import HashingUnavailableError
from src.dc_credentials.retry import RetryExhaustedError, RetryPolicy, retry_async

H = TypeVar("H")

logger = logging.getLogger(__name__)


class InitState(str, enum.Enum):
    UNINITIALIZED = "UNINITIALIZED"
    INITIALIZING = "INITIALIZING"
    READY = "READY"
    FAILED = "FAILED"


class Initializer(Generic[H]):
    def __init__(
        self,
        load: Callable[[], Awaitable[H]],
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], Any] | None = None,
        name: str = "backend",
    ) -> None:
        self._load = load
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._name = name
        self._state = InitState.UNINITIALIZED
        self._handle: H | None = None
        self._task: asyncio.Task[H] | None = None
        self.attempts = 0
        self.successes = 0

    @property
    def state(self) -> InitState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is InitState.READY

    async def get(self) -> H:
        """Return the loaded handle, loading it on first use.

        Raises HashingUnavailableError when loading failed for good.
        """
        if self._state is InitState.READY:
            return self._handle  # type: ignore[return-value]
        if self._state is InitState.FAILED:
            raise HashingUnavailableError()
        if self._task is None:
            self._state = InitState.INITIALIZING
            self._task = asyncio.ensure_future(self._run())
        return await asyncio.shield(self._task)

    async def _attempt(self) -> H:
        self.attempts += 1
        return await self._load()

    def _owns_guard(self) -> bool:
        # False for a task orphaned by reset(); it must not touch the new state
        return self._task is asyncio.current_task()

    async def _run(self) -> H:
        try:
            handle = await retry_async(
                self._attempt,
                self._policy,
                sleep=self._sleep,
                label=f"{self._name} initialization",
            )
        except RetryExhaustedError as exc:
            if self._owns_guard():
                self._state = InitState.FAILED
            logger.error(
                "%s initialization failed after %d attempt(s): %r",
                self._name,
                exc.attempts,
                exc.last_error,
            )
            raise HashingUnavailableError() from None
        except BaseException:
            # Cancelled from outside (loop shutdown): allow a fresh attempt later
            if self._owns_guard():
                self._state = InitState.UNINITIALIZED
                self._task = None
            raise
        if not self._owns_guard():
            return handle
        self._handle = handle
        self._state = InitState.READY
        self.successes += 1
        logger.info("%s initialized after %d attempt(s)", self._name, self.attempts)
        return handle

    def reset(self) -> None:
        """Drop any loaded handle so the next call loads again."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._handle = None
        self._state = InitState.UNINITIALIZED
        self.attempts = 0
        self.successes = 0
