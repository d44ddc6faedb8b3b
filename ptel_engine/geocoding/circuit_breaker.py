"""
Per-level circuit breaker for the geocoding cascade.

closed:    failures < threshold, every request goes through.
open:      failures >= threshold, the level is skipped until reset_s has passed
           since the last failure.
half-open: after reset_s one trial request is let through; success closes the
           breaker, failure re-opens it for another reset_s.
"""
import logging
import time
from typing import Callable, Optional

from ..types import CascadeLevel, ProviderStatus

LOG = logging.getLogger(__name__)


class CircuitBreaker:
    def __init__(self, level: CascadeLevel, threshold: int = 3, reset_s: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        self.level = level
        self.threshold = threshold
        self.reset_s = reset_s
        self._clock = clock
        self.consecutive_failures = 0
        self.last_failure: Optional[float] = None
        self.total_requests = 0
        self.successful_requests = 0
        self._trial_in_flight = False

    @property
    def is_open(self) -> bool:
        return self.consecutive_failures >= self.threshold

    def allow(self) -> bool:
        """True when a request may be sent to this level now."""
        if not self.is_open:
            return True
        if self._trial_in_flight:
            return False
        if self.last_failure is not None and self._clock() - self.last_failure >= self.reset_s:
            LOG.info(f"{self.level.value}: circuit half-open, allowing one trial request")
            self._trial_in_flight = True
            return True
        return False

    def record_attempt(self) -> None:
        self.total_requests += 1

    def record_success(self) -> None:
        if self.is_open:
            LOG.info(f"✅ {self.level.value}: circuit closed after successful trial")
        self.consecutive_failures = 0
        self.successful_requests += 1
        self._trial_in_flight = False

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        self.last_failure = self._clock()
        self._trial_in_flight = False
        if self.consecutive_failures == self.threshold:
            LOG.warning(f"⚠️ {self.level.value}: circuit opened after {self.threshold} consecutive failures")

    def release(self) -> None:
        """An attempt ended without a verdict (cancelled or no answer); free the trial slot."""
        self._trial_in_flight = False

    def reset(self) -> None:
        self.consecutive_failures = 0
        self.last_failure = None
        self._trial_in_flight = False

    def status(self) -> ProviderStatus:
        return ProviderStatus(
            level=self.level,
            available=not self.is_open,
            consecutive_failures=self.consecutive_failures,
            last_failure=self.last_failure,
            total_requests=self.total_requests,
            successful_requests=self.successful_requests,
        )
