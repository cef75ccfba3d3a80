from __future__ import annotations

from kronos_consul.resilience.debounce import Debouncer
from kronos_consul.resilience.retry_policy import (
    RetryCondition,
    RetryExecutor,
    RetryPolicy,
    RetryStrategy,
)

__all__ = [
    "Debouncer",
    "RetryCondition",
    "RetryExecutor",
    "RetryPolicy",
    "RetryStrategy",
]
