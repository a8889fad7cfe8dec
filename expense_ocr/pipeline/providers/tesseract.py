"""Local Tesseract OCR through pytesseract."""

from __future__ import annotations

import io
import logging
import shutil
from collections import defaultdict
from typing import Optional

import pytesseract
from PIL import Image, ImageOps, UnidentifiedImageError
from pytesseract import Output

from expense_ocr.pipeline.core.config import PROVIDER_TIMEOUT_SECONDS, TESSERACT_MAX_CONFIDENCE
from expense_ocr.pipeline.core.exceptions import ProviderError
from expense_ocr.pipeline.models.dto import ProviderText
from expense_ocr.pipeline.providers.base import OcrProvider, ProviderName

logger = logging.getLogger(__name__)


class TesseractProvider(OcrProvider):
    name = ProviderName.TESSERACT.value
    accepts_pdf = False

    def __init__(
        self,
        lang: str = "eng",
        tesseract_cmd: Optional[str] = None,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
    ):
        self.lang = lang
        self.tesseract_cmd = tesseract_cmd
        self.timeout = timeout
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def missing_configuration(self) -> Optional[str]:
        if shutil.which(self.tesseract_cmd or "tesseract") is None:
            return "tesseract binary"
        return None

    def recognize(self, data: bytes, mime_type: str) -> ProviderText:
        try:
            with Image.open(io.BytesIO(data)) as image:
                prepared = ImageOps.exif_transpose(image).convert("L")
        except (UnidentifiedImageError, OSError) as e:
            raise ProviderError(
                self.name, f"undecodable image: {e}", error_type="invalid_input", retryable=False
            ) from e

        try:
            ocr = pytesseract.image_to_data(
                prepared, lang=self.lang, output_type=Output.DICT, timeout=self.timeout
            )
        except pytesseract.TesseractNotFoundError as e:
            raise ProviderError(self.name, str(e), error_type="unconfigured", retryable=False) from e
        except pytesseract.TesseractError as e:
            # TesseractError subclasses RuntimeError, so it must be caught first
            raise ProviderError(self.name, str(e), retryable=False) from e
        except RuntimeError as e:
            # pytesseract signals its timeout with a bare RuntimeError
            raise ProviderError(self.name, str(e), error_type="timeout") from e

        lines: dict[tuple[int, int, int], list[str]] = defaultdict(list)
        confidences: list[float] = []
        for i, word in enumerate(ocr["text"]):
            word = (word or "").strip()
            if not word:
                continue
            key = (ocr["block_num"][i], ocr["par_num"][i], ocr["line_num"][i])
            lines[key].append(word)
            conf = float(ocr["conf"][i])
            if conf >= 0:
                confidences.append(conf)

        text = "\n".join(" ".join(words) for _, words in sorted(lines.items()))
        mean = (sum(confidences) / len(confidences) / 100) if confidences else 0.0
        return ProviderText(text, round(min(mean, TESSERACT_MAX_CONFIDENCE), 4), self.name)
