"""Rasterization through poppler's ``pdftoppm`` (pdf2image)."""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path

from pdf2image import convert_from_path

from expense_ocr.pipeline.core.config import RASTER_DPI
from expense_ocr.pipeline.rasterizer.base import RasterStrategy, is_valid_png

logger = logging.getLogger(__name__)


class PopplerStrategy(RasterStrategy):
    """
    Writes the PDF to a scratch directory, lets ``pdftoppm`` render one PNG
    per page at ``dpi``, validates every file and removes the scratch
    directory afterwards.
    """

    name = "poppler"

    def __init__(self, dpi: int = RASTER_DPI, poppler_path: str | None = None):
        self.dpi = dpi
        self.poppler_path = poppler_path

    def is_available(self) -> bool:
        if self.poppler_path:
            return (Path(self.poppler_path) / "pdftoppm").exists()
        return shutil.which("pdftoppm") is not None

    def render(self, pdf_bytes: bytes, max_pages: int) -> list[bytes]:
        with tempfile.TemporaryDirectory(prefix="expense-ocr-") as scratch:
            source = Path(scratch) / "source.pdf"
            source.write_bytes(pdf_bytes)

            paths = convert_from_path(
                str(source),
                dpi=self.dpi,
                fmt="png",
                output_folder=scratch,
                paths_only=True,
                first_page=1,
                last_page=max_pages,
                poppler_path=self.poppler_path,
            )

            pages: list[bytes] = []
            for path in sorted(paths):
                data = Path(path).read_bytes()
                if not is_valid_png(data):
                    logger.warning(f"pdftoppm produced an invalid image: {Path(path).name}")
                    continue
                pages.append(data)

        logger.info(f"Poppler rendered {len(pages)} page(s)", extra={"strategy": self.name})
        return pages
