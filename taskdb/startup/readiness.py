"""Readiness probing for the primary store.

Database servers often come up after (or alongside) the application
process. Rather than requiring infrastructure start-order guarantees, the
probe polls the store with ``SELECT 1`` under a fixed attempt budget.

The probe is a bounded state machine driven by tenacity::

    Probing(n) --ok--> Ready
    Probing(n) --fail, n < max--> sleep(delay(n)) --> Probing(n + 1)
    Probing(n) --fail, n == max--> TimedOut

``delay(n)`` depends only on the attempt number, and ``sleep`` is
injectable, so the whole machine is testable without real time passing.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
    wait_incrementing,
)
from tenacity.wait import wait_base

from ..core.exceptions import ReadinessTimeoutError
from ..logger import get_logger

logger = get_logger(__name__)

type SleepFn = Callable[[float], Awaitable[None]]


class Pingable(Protocol):
    async def aping(self) -> None: ...


class ReadinessConfig(BaseModel):
    """Retry budget for the readiness probe."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(default=30, ge=1, description="Total probe attempts before giving up")
    interval_s: float = Field(default=2.0, ge=0, description="Base delay between attempts in seconds")
    backoff: Literal["fixed", "linear"] = Field(
        default="fixed",
        description="fixed: always interval_s; linear: interval_s * attempt number",
    )

    def delay_after(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        if self.backoff == "linear":
            return self.interval_s * attempt
        return self.interval_s

    def wait_strategy(self) -> wait_base:
        if self.backoff == "linear":
            return wait_incrementing(start=self.interval_s, increment=self.interval_s)
        return wait_fixed(self.interval_s)


class ReadinessResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    attempts: int


async def wait_until_ready(
    store: Pingable,
    config: ReadinessConfig | None = None,
    *,
    sleep: SleepFn = asyncio.sleep,
) -> ReadinessResult:
    """Poll ``store`` until it answers or the attempt budget runs out.

    Parameters
    ----------
    store
        Anything with an ``aping()`` coroutine; normally an
        `AsyncConnectionPool` for the primary.
    config
        Retry budget. Defaults to 30 attempts, 2 s apart.
    sleep
        Coroutine used to wait between attempts.

    Returns
    -------
    ReadinessResult
        The number of attempts it took, success included.

    Raises
    ------
    ReadinessTimeoutError
        After ``max_attempts`` failed attempts, chained to the last failure.
    """
    config = config or ReadinessConfig()

    def _log_failed_attempt(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        attempt = retry_state.attempt_number
        if attempt < config.max_attempts:
            logger.warning(
                "Database not ready, retrying",
                attempt=attempt,
                max_attempts=config.max_attempts,
                retry_in_s=config.delay_after(attempt),
                error=str(error),
            )
        else:
            logger.error(
                "Database not ready, giving up",
                attempt=attempt,
                max_attempts=config.max_attempts,
                error=str(error),
            )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=config.wait_strategy(),
        retry=retry_if_exception_type(Exception),
        after=_log_failed_attempt,
        sleep=sleep,
        reraise=False,
    )

    logger.info("Waiting for database to be ready", max_attempts=config.max_attempts)
    attempt_number = 0
    try:
        async for attempt in retrying:
            with attempt:
                attempt_number = attempt.retry_state.attempt_number
                logger.debug("Probing database", attempt=attempt_number, max_attempts=config.max_attempts)
                await store.aping()
    except RetryError as e:
        raise ReadinessTimeoutError(config.max_attempts) from e.last_attempt.exception()

    logger.info("Database is ready", attempt=attempt_number)
    return ReadinessResult(attempts=attempt_number)
