"""PDF rasterization: text layer first, then rendering strategies in order."""

from expense_ocr.pipeline.rasterizer.base import RasterStrategy, is_blank_image
from expense_ocr.pipeline.rasterizer.document_rasterizer import (
    DocumentRasterizer,
    default_strategies,
)
from expense_ocr.pipeline.rasterizer.pdfium import PdfiumStrategy
from expense_ocr.pipeline.rasterizer.poppler import PopplerStrategy

__all__ = [
    "DocumentRasterizer",
    "PdfiumStrategy",
    "PopplerStrategy",
    "RasterStrategy",
    "default_strategies",
    "is_blank_image",
]
