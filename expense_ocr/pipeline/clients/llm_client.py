"""OpenAI chat-completions client used for category classification."""

import logging
from typing import Any, Optional, Sequence

import httpx

from expense_ocr.pipeline.core.config import ERROR_BODY_MAX_CHARS, LLM_REQUEST_TIMEOUT_SECONDS
from expense_ocr.pipeline.core.exceptions import ExternalServiceError
from expense_ocr.pipeline.models.dto import Category

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expense categorization assistant. Analyze the receipt/bill text and "
    "vendor name, then classify it into one of these categories: {names}. "
    "Return only the category name that best matches."
)
RECEIPT_TEXT_CHARS = 1000


def extract_message_content(payload: dict[str, Any]) -> str:
    """Return ``choices[0].message.content`` or raise ValueError."""
    try:
        return str(payload["choices"][0]["message"]["content"])
    except (KeyError, IndexError, TypeError) as e:
        raise ValueError(f"Unexpected completions payload: {e}") from e


class OpenAIClient:
    """
    Thin synchronous wrapper over ``POST /chat/completions``.

    Args:
        api_key: Bearer token
        model: Chat model name
        base_url: API root, e.g. https://api.openai.com/v1
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-3.5-turbo",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = LLM_REQUEST_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.model = model
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.3,
        max_tokens: int = 50,
    ) -> str:
        """
        Run one chat completion and return the message text.

        Raises:
            ExternalServiceError: On any network, HTTP or payload failure.
        """
        body = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        try:
            response = self._client.post("/chat/completions", json=body)
            response.raise_for_status()
            return extract_message_content(response.json()).strip()
        except httpx.TimeoutException as e:
            raise ExternalServiceError("LLM", "timeout", details={"reason": str(e)}) from e
        except httpx.HTTPStatusError as e:
            error_type = "rate_limit" if e.response.status_code == 429 else "error"
            raise ExternalServiceError(
                "LLM",
                error_type,
                details={
                    "http_code": e.response.status_code,
                    "body": e.response.text[:ERROR_BODY_MAX_CHARS],
                },
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ExternalServiceError("LLM", "unavailable", details={"reason": str(e)}) from e

    def close(self) -> None:
        self._client.close()


class AiCategoryClassifier:
    """Asks the LLM for a category name. Never raises; None means "no answer"."""

    def __init__(self, client: OpenAIClient):
        self.client = client

    def classify(
        self, text: str, vendor_name: Optional[str], categories: Sequence[Category]
    ) -> Optional[str]:
        names = ", ".join(c.name for c in categories)
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT.format(names=names)},
            {
                "role": "user",
                "content": f"Vendor: {vendor_name or 'Unknown'}\n\nReceipt Text:\n{text[:RECEIPT_TEXT_CHARS]}",
            },
        ]
        try:
            return self.client.complete(messages) or None
        except ExternalServiceError as e:
            logger.warning(
                "AI category detection failed, using keyword matching",
                extra={"service": "LLM", "error_code": e.error_code},
            )
            return None
