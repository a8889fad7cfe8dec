"""Resilience utilities for external service calls.

- Circuit Breaker: stops hammering a failing OCR provider
- Retry Logic: rides out transient provider, storage and database errors
"""

from expense_ocr.pipeline.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from expense_ocr.pipeline.resilience.retry import (
    RetryConfig,
    async_retry_with_backoff,
    retry_with_backoff,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "retry_with_backoff",
    "async_retry_with_backoff",
    "RetryConfig",
]
