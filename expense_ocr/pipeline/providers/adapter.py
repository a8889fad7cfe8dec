"""
Single entry point for OCR.

The configured provider is tried with bounded retries behind its circuit
breaker. Missing credentials, exhausted retries, an open circuit, an empty
answer or any unexpected error all end the same way: the local extractor
answers instead. ``extract`` never raises.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from expense_ocr.pipeline.core.config import (
    BACKOFF_MULTIPLIER,
    CIRCUIT_FAILURE_THRESHOLD,
    CIRCUIT_TIMEOUT_SECONDS,
    INITIAL_BACKOFF,
    PROVIDER_MAX_ATTEMPTS,
)
from expense_ocr.pipeline.core.exceptions import ProviderError
from expense_ocr.pipeline.models.dto import ProviderText
from expense_ocr.pipeline.providers.base import OcrProvider
from expense_ocr.pipeline.providers.local import LocalExtractor
from expense_ocr.pipeline.resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    RetryConfig,
    retry_with_backoff,
)
from expense_ocr.pipeline.utils.file_detection import is_pdf

logger = logging.getLogger(__name__)


class _TransientProviderError(Exception):
    """Wraps a retryable ProviderError so non-retryable ones escape the retry loop."""

    def __init__(self, error: ProviderError):
        super().__init__(str(error))
        self.error = error


class OcrProviderAdapter:
    """
    Args:
        provider: Configured cloud/local engine, or None for local-only
        local: Fallback extractor
        retry_config: Backoff policy for one provider call
        breaker: Circuit breaker for ``provider``
    """

    def __init__(
        self,
        provider: Optional[OcrProvider] = None,
        local: Optional[LocalExtractor] = None,
        retry_config: Optional[RetryConfig] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.provider = provider
        self.local = local or LocalExtractor()
        self.retry_config = retry_config or RetryConfig(
            max_attempts=PROVIDER_MAX_ATTEMPTS,
            initial_delay_seconds=INITIAL_BACKOFF,
            exponential_base=BACKOFF_MULTIPLIER,
            max_delay_seconds=8.0,
        )
        self.breaker = breaker
        if provider is not None and breaker is None:
            self.breaker = CircuitBreaker(
                provider.name,
                CircuitBreakerConfig(
                    failure_threshold=CIRCUIT_FAILURE_THRESHOLD,
                    timeout_seconds=CIRCUIT_TIMEOUT_SECONDS,
                ),
            )

    @property
    def provider_name(self) -> str:
        return self.provider.name if self.provider else self.local.name

    @property
    def accepts_pdf(self) -> bool:
        """True when PDFs can go to the provider without rasterizing."""
        return self.provider is None or self.provider.accepts_pdf

    def _call_once(self, data: bytes, mime_type: str) -> ProviderText:
        try:
            return self.provider.recognize(data, mime_type)
        except ProviderError as e:
            if e.retryable:
                raise _TransientProviderError(e) from e
            raise

    def _call_provider(self, data: bytes, mime_type: str) -> ProviderText:
        try:
            return retry_with_backoff(
                self._call_once, self.retry_config, (_TransientProviderError,), data, mime_type
            )
        except _TransientProviderError as e:
            raise e.error from e

    def extract(self, data: bytes, mime_type: str, file_name: Optional[str] = None) -> ProviderText:
        provider = self.provider
        if provider is None:
            return self.local.extract(data, mime_type, file_name)

        if is_pdf(data, mime_type) and not provider.accepts_pdf:
            logger.info(
                f"{provider.name} does not read PDFs, using local extractor",
                extra={"provider": provider.name},
            )
            return self.local.extract(data, mime_type, file_name)

        missing = provider.missing_configuration()
        if missing:
            logger.warning(
                f"{provider.name} OCR not configured ({missing}), falling back to local",
                extra={"provider": provider.name},
            )
            return self.local.extract(data, mime_type, file_name)

        started = time.monotonic()
        try:
            result = self.breaker.call(self._call_provider, data, mime_type)
        except Exception as e:
            logger.warning(
                f"{provider.name} OCR failed, falling back to local: {e}",
                extra={
                    "provider": provider.name,
                    "error_code": getattr(e, "error_code", type(e).__name__),
                },
            )
            return self.local.extract(data, mime_type, file_name)

        duration_ms = round((time.monotonic() - started) * 1000, 1)
        if not result.text.strip():
            logger.warning(
                f"{provider.name} returned no text, falling back to local",
                extra={"provider": provider.name, "duration_ms": duration_ms},
            )
            return self.local.extract(data, mime_type, file_name)

        logger.info(
            "OCR provider call succeeded",
            extra={"provider": provider.name, "duration_ms": duration_ms},
        )
        return result
