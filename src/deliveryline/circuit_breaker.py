"""Circuit breaker shared by the HTTP collaborators.

The intent classifier, address validator and speech synthesizer each hold one,
so that a provider outage costs at most a few slow turns before every later
turn goes straight to the local fallback.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class CircuitBreaker:
    """closed -> open (after N consecutive failures) -> half-open (after cooldown)."""

    failure_threshold: int = 3
    cooldown_seconds: float = 60.0
    label: str = "service"
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    _consecutive_failures: int = field(default=0, init=False, repr=False)
    _opened_at: Optional[float] = field(default=None, init=False, repr=False)

    @property
    def is_open(self) -> bool:
        return not self.should_try()

    def should_try(self) -> bool:
        if self._consecutive_failures < self.failure_threshold:
            return True
        if self._opened_at is not None and (self.clock() - self._opened_at) >= self.cooldown_seconds:
            return True  # half-open probe
        return False

    def record_success(self) -> None:
        if self._opened_at is not None:
            logger.info("Circuit breaker for %s closed again", self.label)
        self._consecutive_failures = 0
        self._opened_at = None

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._consecutive_failures < self.failure_threshold:
            return
        if self._opened_at is None:
            logger.warning(
                "Circuit breaker OPENED for %s after %d consecutive failures; "
                "skipping for %.0fs",
                self.label,
                self._consecutive_failures,
                self.cooldown_seconds,
            )
        # A failed half-open probe restarts the cooldown
        self._opened_at = self.clock()
