"""Local fallback extractor: PDF text layer, then a guess from the file name."""

from __future__ import annotations

import logging
from pathlib import PurePath
from typing import Optional

from expense_ocr.pipeline.core.config import LOCAL_FILENAME_CONFIDENCE, LOCAL_TEXT_LAYER_CONFIDENCE
from expense_ocr.pipeline.models.dto import ProviderText
from expense_ocr.pipeline.rasterizer.text_layer import PDF_READ_ERRORS, read_text_layer
from expense_ocr.pipeline.utils.file_detection import is_pdf

logger = logging.getLogger(__name__)

# (file name fragments, vendor)
FILENAME_VENDOR_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("starbucks", "coffee"), "Starbucks"),
    (("uber", "taxi"), "Uber"),
    (("amazon",), "Amazon"),
    (("petrol", "fuel", "gas"), "Petrol Station"),
)


def vendor_from_filename(file_name: Optional[str]) -> Optional[str]:
    stem = PurePath(file_name or "").name.lower()
    for fragments, vendor in FILENAME_VENDOR_HINTS:
        if any(fragment in stem for fragment in fragments):
            return vendor
    return None


class LocalExtractor:
    """Always available, never raises."""

    name = "local"

    def extract(self, data: bytes, mime_type: str, file_name: Optional[str] = None) -> ProviderText:
        if is_pdf(data, mime_type):
            try:
                text = read_text_layer(data).text.strip()
            except PDF_READ_ERRORS as e:
                logger.warning(f"Local PDF text extraction failed: {e}", extra={"provider": self.name})
                text = ""
            if text:
                return ProviderText(text, LOCAL_TEXT_LAYER_CONFIDENCE, self.name)

        hints = {}
        vendor = vendor_from_filename(file_name)
        if vendor:
            hints = {"vendor_name": vendor, "source": "filename"}
        logger.info(
            "No text recoverable locally, using file name guess",
            extra={"provider": self.name},
        )
        return ProviderText("", LOCAL_FILENAME_CONFIDENCE, self.name, hints)
