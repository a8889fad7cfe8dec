"""Circuit breaker for OCR provider calls.

One breaker per cloud provider. When a provider keeps failing, the adapter
stops calling it for a while and goes straight to the local extractor.

States:
- CLOSED: Normal operation, calls pass through
- OPEN: Too many failures, calls rejected immediately
- HALF_OPEN: Cool-down elapsed, trial calls allowed

Example:
    >>> breaker = CircuitBreaker("google", CircuitBreakerConfig(failure_threshold=5))
    >>> text = breaker.call(vision.recognize, image_bytes, "image/png")
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, TypeVar

from expense_ocr.pipeline.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker.

    Attributes:
        failure_threshold: Consecutive failures before opening the circuit
        timeout_seconds: How long to keep the circuit open before a trial call
        success_threshold: Successes in HALF_OPEN needed to close the circuit
    """

    failure_threshold: int = 5
    timeout_seconds: float = 60
    success_threshold: int = 1


class CircuitBreaker:
    """Circuit breaker guarding a single external service.

    Args:
        name: Service name, used in logs and in the circuit_open error code
        config: Circuit breaker configuration
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at: Optional[float] = None

    def call(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Execute func with circuit breaker protection.

        Raises:
            ExternalServiceError: If the circuit is open
            Exception: Whatever func raises (after recording the failure)
        """
        with self._lock:
            if self.state == CircuitState.OPEN:
                if self._cooldown_elapsed():
                    self._transition_to_half_open()
                else:
                    raise ExternalServiceError(
                        service_name=self.name,
                        error_type="circuit_open",
                        details={
                            "detail": "Circuit breaker is OPEN",
                            "retry_after": self.time_until_retry(),
                        },
                    )

        try:
            result = func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN and not self._cooldown_elapsed()

    def _cooldown_elapsed(self) -> bool:
        if self.opened_at is None:
            return True
        return self._clock() - self.opened_at >= self.config.timeout_seconds

    def time_until_retry(self) -> int:
        """Seconds until the circuit admits a trial call."""
        if self.opened_at is None:
            return 0
        remaining = self.config.timeout_seconds - (self._clock() - self.opened_at)
        return max(0, int(remaining))

    def _transition_to_half_open(self) -> None:
        self.state = CircuitState.HALF_OPEN
        self.success_count = 0
        logger.info(f"Circuit breaker '{self.name}' entering HALF_OPEN state")

    def _on_success(self) -> None:
        with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.config.success_threshold:
                    self._transition_to_closed()
            else:
                self.failure_count = 0

    def _on_failure(self) -> None:
        with self._lock:
            self.failure_count += 1
            if self.state == CircuitState.HALF_OPEN:
                self._transition_to_open("re-OPENED after failure in HALF_OPEN")
            elif self.failure_count >= self.config.failure_threshold:
                self._transition_to_open(f"OPENED after {self.failure_count} failures")

    def _transition_to_closed(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at = None
        logger.info(f"Circuit breaker '{self.name}' CLOSED")

    def _transition_to_open(self, reason: str) -> None:
        self.state = CircuitState.OPEN
        self.opened_at = self._clock()
        logger.warning(
            f"Circuit breaker '{self.name}' {reason}", extra={"service": self.name}
        )

    def reset(self) -> None:
        """Manually reset the breaker to CLOSED."""
        with self._lock:
            self._transition_to_closed()

    def get_state(self) -> dict[str, Any]:
        """Snapshot for the health endpoint."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "time_until_retry": self.time_until_retry()
            if self.state == CircuitState.OPEN
            else 0,
        }
