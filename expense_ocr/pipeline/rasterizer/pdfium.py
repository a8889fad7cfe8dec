"""In-process rasterization with pypdfium2."""

from __future__ import annotations

import logging

import pypdfium2 as pdfium

from expense_ocr.pipeline.core.config import PDFIUM_SCALE
from expense_ocr.pipeline.rasterizer.base import RasterStrategy, image_to_png

logger = logging.getLogger(__name__)

WHITE = (255, 255, 255, 255)


class PdfiumStrategy(RasterStrategy):
    """
    Renders pages onto an explicit white canvas. Scans saved with a
    transparent background would otherwise come out blank.
    """

    name = "pdfium"

    def __init__(self, scale: float = PDFIUM_SCALE):
        self.scale = scale

    def render(self, pdf_bytes: bytes, max_pages: int) -> list[bytes]:
        pdf = pdfium.PdfDocument(pdf_bytes)
        try:
            pages: list[bytes] = []
            for index in range(min(len(pdf), max_pages)):
                page = pdf[index]
                try:
                    bitmap = page.render(scale=self.scale, fill_color=WHITE)
                    pages.append(image_to_png(bitmap.to_pil().convert("RGB")))
                finally:
                    page.close()
        finally:
            pdf.close()

        logger.info(f"Pdfium rendered {len(pages)} page(s)", extra={"strategy": self.name})
        return pages
