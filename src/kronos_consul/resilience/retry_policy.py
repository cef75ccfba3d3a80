"""Retry policy and executor used for registry calls on the startup path."""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from kronos_consul.exceptions import RegistryException

T = TypeVar("T")
CallableResult = Callable[..., T | Awaitable[T]]
RetryPredicate = Callable[[Exception, int], bool]
SleepFunc = Callable[[float], Awaitable[None]]

logger = logging.getLogger(__name__)


class RetryStrategy(str, enum.Enum):
    """Retry delay calculation strategies."""

    FIXED = "fixed"
    EXPONENTIAL = "exponential"
    LINEAR = "linear"


class RetryCondition(str, enum.Enum):
    """Retry trigger conditions."""

    ALWAYS = "always"
    ON_SPECIFIC_CODES = "on_specific_codes"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Configuration for retrying failed calls.

    Attributes:
        max_attempts: Total number of tries, including the first one.
        strategy: How the delay grows between attempts.
        min_timeout_ms: Lower bound of the computed delay.
        max_timeout_ms: Upper bound of the computed delay.
        backoff_multiplier: Growth factor for the exponential strategy.
        jitter: Fraction of the delay randomly added or removed.
        throttle_ms: Minimum spacing between the starts of two attempts.
        retryable_codes: Only retry RegistryException codes in this set when given.
    """

    max_attempts: int = 5
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL
    min_timeout_ms: int = 1000
    max_timeout_ms: int = 10000
    backoff_multiplier: float = 2.0
    jitter: float = 0.0
    throttle_ms: int = 2000
    retryable_codes: set[int] | None = None


class RetryExecutor:
    """Execute sync or async callables with a retry policy.

    Args:
        policy: The retry policy.
        should_retry: Optional per-error decision, called with the error and the
            attempt number that failed. Defaults to retrying unconditionally.
        sleep: Awaitable sleep used between attempts.
        clock: Monotonic clock used to enforce the throttle spacing.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        should_retry: RetryPredicate | None = None,
        sleep: SleepFunc = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._policy = policy
        self._max_attempts = max(1, int(policy.max_attempts))
        self._strategy = policy.strategy
        self._min_timeout_ms = max(0, int(policy.min_timeout_ms))
        self._max_timeout_ms = max(self._min_timeout_ms, int(policy.max_timeout_ms))
        self._backoff_multiplier = max(1.0, float(policy.backoff_multiplier))
        self._jitter = max(0.0, min(1.0, float(policy.jitter)))
        self._throttle_ms = max(0, int(policy.throttle_ms))
        self._retryable_codes = set(policy.retryable_codes) if policy.retryable_codes is not None else None
        self._retry_condition = RetryCondition.ON_SPECIFIC_CODES if self._retryable_codes is not None else RetryCondition.ALWAYS
        self._should_retry_fn = should_retry
        self._sleep = sleep
        self._clock = clock
        self.attempts = 0

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def execute(self, func: CallableResult[T], *args: Any, operation: str = "call", **kwargs: Any) -> T:
        """Execute func with retries according to the policy.

        The last error is re-raised once attempts are exhausted or the error is
        not retryable; ``attempts`` holds the number of tries made.
        """

        if not callable(func):
            raise TypeError("func must be callable")

        self.attempts = 0
        last_exc: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            self.attempts = attempt
            started = self._clock()
            try:
                result = func(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result
                return result
            except Exception as exc:  # noqa: BLE001
                last_exc = exc
                logger.info(
                    "retry %s: attempt %d/%d failed: %s",
                    operation,
                    attempt,
                    self._max_attempts,
                    exc,
                    extra={"operation": operation, "attempt": attempt, "max_attempts": self._max_attempts},
                )
                if not self._should_retry(attempt, exc):
                    raise
                delay_s = self._compute_delay(attempt, self._clock() - started)
                if delay_s > 0:
                    await self._sleep(delay_s)

        assert last_exc is not None
        raise last_exc

    def _should_retry(self, attempt: int, error: Exception) -> bool:
        if attempt >= self._max_attempts:
            return False
        if not self._is_retryable_error(error):
            return False
        if self._should_retry_fn is not None:
            return bool(self._should_retry_fn(error, attempt))
        return True

    def _compute_delay(self, attempt: int, elapsed_s: float) -> float:
        if self._strategy == RetryStrategy.EXPONENTIAL:
            exponent = max(0, attempt - 1)
            base_ms = self._min_timeout_ms * (self._backoff_multiplier**exponent)
        elif self._strategy == RetryStrategy.LINEAR:
            base_ms = float(self._min_timeout_ms * attempt)
        else:
            base_ms = float(self._min_timeout_ms)

        base_ms = min(float(self._max_timeout_ms), max(float(self._min_timeout_ms), base_ms))
        if self._jitter > 0 and base_ms > 0:
            delta = (random.random() * 2 - 1) * (self._jitter * base_ms)
            base_ms = min(float(self._max_timeout_ms), max(float(self._min_timeout_ms), base_ms + delta))

        # attempts never start closer together than the throttle
        spacing_s = self._throttle_ms / 1000.0 - max(0.0, elapsed_s)
        return max(base_ms / 1000.0, spacing_s)

    def _is_retryable_error(self, error: Exception) -> bool:
        if self._retry_condition == RetryCondition.ON_SPECIFIC_CODES:
            if isinstance(error, RegistryException) and self._retryable_codes is not None:
                return error.code in self._retryable_codes
            return False
        return True
