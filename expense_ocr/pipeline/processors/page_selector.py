"""
Pick the invoice page out of a multi-page document.

Suppliers often send the tax invoice together with a delivery note or a
purchase order. Each page is scored by keyword occurrences and the best
page is handed to the field extractor.
"""

import re
from typing import Optional, Sequence

from expense_ocr.pipeline.models.dto import PageSelection

INVOICE_KEYWORD_WEIGHT = 10
NON_INVOICE_KEYWORD_WEIGHT = -15
FIRST_PAGE_BONUS = 3

INVOICE_KEYWORDS = re.compile(
    r"\b(?:tax\s+invoice|invoice\s+number|invoice|bill|amount\s+due)\b", re.IGNORECASE
)
NON_INVOICE_KEYWORDS = re.compile(
    r"\b(?:delivery\s+note|purchase\s+order|goods[\s\-]+receiv(?:ed|ing)\s+note|grn)\b",
    re.IGNORECASE,
)
# "tax invoice" and "invoice number" also count their plain "invoice"
_COMPOUND_INVOICE = re.compile(r"\b(?:tax\s+invoice|invoice\s+number)\b", re.IGNORECASE)


def score_page(text: str, page_index: int) -> int:
    invoice_hits = len(INVOICE_KEYWORDS.findall(text))
    # findall consumes "tax invoice" as one hit; the inner "invoice" scores too
    invoice_hits += len(_COMPOUND_INVOICE.findall(text))
    non_invoice_hits = len(NON_INVOICE_KEYWORDS.findall(text))
    score = invoice_hits * INVOICE_KEYWORD_WEIGHT + non_invoice_hits * NON_INVOICE_KEYWORD_WEIGHT
    if page_index == 0:
        score += FIRST_PAGE_BONUS
    return score


def select_invoice_page(page_texts: Sequence[str]) -> PageSelection:
    """
    Score every page and choose the invoice.

    Pages without text are not scored (their score is None) but keep their
    position. Ties go to the earlier page. When no page scores above zero
    the first page is used, or the first page with text if page 1 is blank.
    """
    scores: list[Optional[int]] = [
        score_page(text, i) if text and text.strip() else None
        for i, text in enumerate(page_texts)
    ]

    best_index: Optional[int] = None
    for i, score in enumerate(scores):
        if score is None:
            continue
        if best_index is None or score > scores[best_index]:
            best_index = i

    if best_index is None or scores[best_index] <= 0:
        best_index = 0
        if scores and scores[0] is None:
            best_index = next((i for i, s in enumerate(scores) if s is not None), 0)

    return PageSelection(index=best_index, scores=scores)
