"""
PDF to OCR input.

Born-digital PDFs are answered from their text layer. Scanned PDFs are
rendered page by page by the first strategy in the chain that works.
"""

from __future__ import annotations

import io
import logging
from typing import Optional, Sequence

from PIL import Image, UnidentifiedImageError

from expense_ocr.pipeline.core.config import MAX_PDF_PAGES, TEXT_LAYER_MIN_CHARS
from expense_ocr.pipeline.core.exceptions import RasterizationError, UnreadableDocumentError
from expense_ocr.pipeline.models.dto import PageImage, RasterizationResult
from expense_ocr.pipeline.rasterizer.base import RasterStrategy, is_blank_image
from expense_ocr.pipeline.rasterizer.pdfium import PdfiumStrategy
from expense_ocr.pipeline.rasterizer.poppler import PopplerStrategy
from expense_ocr.pipeline.rasterizer.text_layer import PDF_READ_ERRORS, TextLayer, read_text_layer

logger = logging.getLogger(__name__)


def default_strategies() -> list[RasterStrategy]:
    return [PopplerStrategy(), PdfiumStrategy()]


class DocumentRasterizer:
    """
    Args:
        strategies: Ordered rendering strategies; defaults to poppler then pdfium
        max_pages: Pages rendered for scanned PDFs
        min_text_chars: Stripped text-layer length that counts as born-digital
    """

    def __init__(
        self,
        strategies: Optional[Sequence[RasterStrategy]] = None,
        max_pages: int = MAX_PDF_PAGES,
        min_text_chars: int = TEXT_LAYER_MIN_CHARS,
    ):
        self.strategies = list(strategies) if strategies is not None else default_strategies()
        self.max_pages = max_pages
        self.min_text_chars = min_text_chars

    def process(self, pdf_bytes: bytes) -> RasterizationResult:
        """
        Text layer when the PDF is born-digital, rendered pages otherwise.

        Raises:
            UnreadableDocumentError: The PDF has no pages
            RasterizationError: Scanned PDF and no strategy produced a page
        """
        return self.extract_text(pdf_bytes) or self.render(pdf_bytes)

    def extract_text(self, pdf_bytes: bytes) -> Optional[RasterizationResult]:
        """
        Born-digital result, or None when the PDF needs rendering.

        Raises:
            UnreadableDocumentError: The PDF parses but has no pages
        """
        layer = self._read_text_layer(pdf_bytes)
        if layer is None:
            return None
        if layer.page_count == 0:
            raise UnreadableDocumentError("PDF has no pages")
        if len(layer.text.strip()) <= self.min_text_chars:
            return None
        logger.info("Born-digital PDF, skipping rasterization", extra={"strategy": "text_layer"})
        return RasterizationResult(
            strategy="text_layer",
            page_count=layer.page_count,
            text=layer.text,
            text_pages=layer.pages[: self.max_pages],
        )

    def render(self, pdf_bytes: bytes) -> RasterizationResult:
        """
        Render up to ``max_pages`` pages with the first strategy that works.

        Raises:
            RasterizationError: No strategy produced a usable page
        """
        errors: list[str] = []
        for strategy in self.strategies:
            if not strategy.is_available():
                logger.info(f"Raster strategy '{strategy.name}' unavailable, skipping")
                continue
            try:
                rendered = strategy.render(pdf_bytes, self.max_pages)
            except Exception as e:
                logger.warning(
                    f"Raster strategy '{strategy.name}' failed: {e}",
                    extra={"strategy": strategy.name},
                )
                errors.append(f"{strategy.name}: {e}")
                continue

            pages = self._to_page_images(rendered, strategy.name)
            if pages:
                return RasterizationResult(
                    strategy=strategy.name,
                    page_count=len(pages),
                    pages=pages,
                )
            errors.append(f"{strategy.name}: no pages produced")

        raise RasterizationError(details={"detail": "; ".join(errors) or "no strategy available"})

    def _read_text_layer(self, pdf_bytes: bytes) -> Optional[TextLayer]:
        try:
            return read_text_layer(pdf_bytes)
        except PDF_READ_ERRORS as e:
            logger.warning(f"PDF text layer unreadable: {e}")
            return None

    def _to_page_images(self, rendered: list[bytes], strategy: str) -> list[PageImage]:
        pages: list[PageImage] = []
        for png in rendered[: self.max_pages]:
            try:
                with Image.open(io.BytesIO(png)) as image:
                    image.load()
                    blank = is_blank_image(image)
                    width, height = image.size
            except (UnidentifiedImageError, OSError) as e:
                logger.warning(f"Discarding undecodable page from '{strategy}': {e}")
                continue
            page_number = len(pages) + 1
            if blank:
                logger.warning(
                    "Rendered page looks blank",
                    extra={"page": page_number, "strategy": strategy},
                )
            pages.append(PageImage(page_number, png, width, height, is_blank=blank))
        return pages
