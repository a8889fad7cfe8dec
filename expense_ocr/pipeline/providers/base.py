"""OCR provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from expense_ocr.pipeline.models.dto import ProviderText


class ProviderName(str, Enum):
    GOOGLE = "google"
    AZURE = "azure"
    TESSERACT = "tesseract"
    LOCAL = "local"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "ProviderName":
        """Map the OCR_PROVIDER setting to a provider; "mock" and unknown names mean local."""
        value = (raw or "").strip().lower()
        if value == "mock":
            return cls.LOCAL
        try:
            return cls(value)
        except ValueError:
            return cls.LOCAL


class OcrProvider(ABC):
    """
    A remote or local engine that turns one image (or PDF) into text.

    ``recognize`` raises :class:`ProviderError` on any failure; deciding what
    to do about it is the adapter's job.
    """

    name: str = "base"
    accepts_pdf: bool = False

    def missing_configuration(self) -> Optional[str]:
        """Name of the missing setting, or None when the provider can run."""
        return None

    @abstractmethod
    def recognize(self, data: bytes, mime_type: str) -> ProviderText: ...
