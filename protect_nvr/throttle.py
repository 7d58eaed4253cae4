"""Error budget deciding when API traffic should be throttled."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import enum
import time

MonotonicCallable = Callable[[], float]


class ThrottleDecision(enum.Enum):
    """Outcome of :meth:`ErrorBudget.should_throttle`."""

    PROCEED = "proceed"
    STARTED = "started"
    THROTTLED = "throttled"
    RESUMED = "resumed"

    @property
    def blocked(self) -> bool:
        """Return True when the request must not reach the network."""

        return self in (ThrottleDecision.STARTED, ThrottleDecision.THROTTLED)


@dataclass(slots=True)
class ErrorBudget:
    """Track consecutive request failures and the cool-down after them.

    Once ``error_limit`` consecutive failures have been recorded, the next
    check starts a throttling period of ``retry_interval`` seconds. The period
    is anchored at that check, not at the last successful request. Failures
    recorded while throttled never lengthen the wait.
    """

    error_limit: int
    retry_interval: float
    monotonic: MonotonicCallable = field(default=time.monotonic)
    consecutive_errors: int = 0
    last_success_at: float = 0.0

    def record_outcome(self, success: bool, *, now: float | None = None) -> None:
        """Account for a finished request."""

        if success:
            self.consecutive_errors = 0
            self.last_success_at = self.monotonic() if now is None else now
        else:
            self.consecutive_errors += 1

    def should_throttle(self, *, now: float | None = None) -> ThrottleDecision:
        """Return whether the next request may proceed."""

        if self.consecutive_errors < self.error_limit:
            return ThrottleDecision.PROCEED

        current = self.monotonic() if now is None else now
        if self.consecutive_errors == self.error_limit:
            self.consecutive_errors += 1
            self.last_success_at = current
            return ThrottleDecision.STARTED

        if self.last_success_at + self.retry_interval > current:
            return ThrottleDecision.THROTTLED

        self.consecutive_errors = 0
        return ThrottleDecision.RESUMED

    @property
    def throttling(self) -> bool:
        """Return True while a cool-down period is active."""

        return self.consecutive_errors > self.error_limit

    def reset(self) -> None:
        """Forget all recorded failures."""

        self.consecutive_errors = 0
        self.last_success_at = 0.0


__all__ = ["ErrorBudget", "ThrottleDecision"]
