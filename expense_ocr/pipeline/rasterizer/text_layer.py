"""Embedded text extraction for born-digital PDFs (pypdf)."""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field

from pypdf import PdfReader
from pypdf.errors import PyPdfError

logger = logging.getLogger(__name__)

# pypdf surfaces damaged structure as any of these, not only PdfReadError
PDF_READ_ERRORS = (
    PyPdfError,
    ValueError,
    TypeError,
    AttributeError,
    KeyError,
    IndexError,
    OSError,
    RecursionError,
    NotImplementedError,
)

PAGE_MARKER_RE = re.compile(r"\bpage\s*\d+\s*(?:of|/)\s*\d+\b", re.IGNORECASE)
NOISE_LINE_RE = re.compile(r"^[\d\s\-–—_.|]*$")


@dataclass
class TextLayer:
    page_count: int
    pages: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(p for p in self.pages if p)


def strip_page_noise(text: str) -> str:
    """Drop "Page N of M" markers and lines made only of digits or dashes."""
    text = PAGE_MARKER_RE.sub(" ", text)
    lines = [line.rstrip() for line in text.splitlines()]
    return "\n".join(line for line in lines if not NOISE_LINE_RE.match(line))


def read_text_layer(pdf_bytes: bytes, max_pages: int | None = None) -> TextLayer:
    """
    Extract per-page embedded text, noise stripped.

    Raises:
        PyPdfError: If pypdf cannot parse the document at all, or any
            other member of ``PDF_READ_ERRORS`` for damaged structure
    """
    reader = PdfReader(io.BytesIO(pdf_bytes))
    if reader.is_encrypted:
        reader.decrypt("")

    page_count = len(reader.pages)
    limit = page_count if max_pages is None else min(page_count, max_pages)
    pages: list[str] = []
    for index in range(limit):
        try:
            raw = reader.pages[index].extract_text() or ""
        except PDF_READ_ERRORS as e:
            logger.warning(f"Text extraction failed on page {index + 1}: {e}", extra={"page": index + 1})
            raw = ""
        pages.append(strip_page_noise(raw).strip())
    return TextLayer(page_count=page_count, pages=pages)
