"""
Purpose: Retry policy and helper with exponential backoff.
Constraints: Utility only; callers decide which exceptions are retriable.
"""

# Imports
import os
import random
import time
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Iterable, Optional, TypeVar

T = TypeVar("T")


# Public API
@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try, how long to wait, and which statuses qualify."""

    attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 30.0
    jitter: float = 0.2
    retry_on_status: FrozenSet[int] = field(default_factory=lambda: frozenset({429, 500, 502, 503, 504}))

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry that follows `attempt` (1-based)."""
        delay = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        return delay

    @classmethod
    def from_env(cls) -> "RetryPolicy":
        return cls(
            attempts=int(os.getenv("HTTP_RETRY_ATTEMPTS", "3")),
            base_delay=float(os.getenv("HTTP_RETRY_BASE_DELAY", "0.5")),
            max_delay=float(os.getenv("HTTP_RETRY_MAX_DELAY", "30.0")),
            jitter=float(os.getenv("HTTP_RETRY_JITTER", "0.2")),
        )


def retry(
    func: Callable[[], T],
    *,
    policy: Optional[RetryPolicy] = None,
    exceptions: Iterable[type] = (Exception,),
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Retry a callable under `policy`, re-raising the last error when attempts run out."""
    policy = policy or RetryPolicy()
    last_exc: Optional[Exception] = None
    for attempt in range(1, max(1, policy.attempts) + 1):
        try:
            return func()
        except tuple(exceptions) as exc:  # type: ignore[misc]
            last_exc = exc
            if attempt >= policy.attempts:
                break
            if on_retry:
                on_retry(attempt, exc)
            sleep(policy.delay_for(attempt))
    raise last_exc if last_exc else RuntimeError("retry: failed without exception")
