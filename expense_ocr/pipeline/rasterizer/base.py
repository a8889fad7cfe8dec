"""Common pieces for PDF rasterization strategies."""

from __future__ import annotations

import io
from abc import ABC, abstractmethod

from PIL import Image

from expense_ocr.pipeline.core.config import BLANK_CHECK_WINDOW, BLANK_PIXEL_TOLERANCE

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


class RasterStrategy(ABC):
    """
    One way of turning PDF pages into PNG images.

    Strategies are tried in order by :class:`DocumentRasterizer`. A strategy
    that cannot run in this environment reports so via ``is_available`` and
    is skipped; one that runs but fails raises and the next one is tried.
    """

    name: str = "base"

    def is_available(self) -> bool:
        return True

    @abstractmethod
    def render(self, pdf_bytes: bytes, max_pages: int) -> list[bytes]:
        """Return PNG bytes for up to ``max_pages`` pages, in page order."""


def is_valid_png(data: bytes) -> bool:
    return len(data) > len(PNG_SIGNATURE) and data.startswith(PNG_SIGNATURE)


def image_to_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def is_blank_image(
    image: Image.Image,
    window: int = BLANK_CHECK_WINDOW,
    tolerance: int = BLANK_PIXEL_TOLERANCE,
) -> bool:
    """
    True when no pixel in the top-left window strays from white by more
    than ``tolerance`` on any channel.
    """
    box = (0, 0, min(window, image.width), min(window, image.height))
    sample = image.crop(box).convert("RGB")
    return all(255 - low <= tolerance for low, _ in sample.getextrema())
