"""OCR providers and the adapter that falls back to local extraction."""

from expense_ocr.pipeline.providers.adapter import OcrProviderAdapter
from expense_ocr.pipeline.providers.base import OcrProvider, ProviderName
from expense_ocr.pipeline.providers.local import LocalExtractor

__all__ = ["LocalExtractor", "OcrProvider", "OcrProviderAdapter", "ProviderName"]
