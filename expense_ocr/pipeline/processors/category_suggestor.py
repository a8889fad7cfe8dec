"""
Expense category suggestion.

The keyword scorer is always available. When an AI classifier is
configured it is asked first, and its answer is used only if it names one
of the organization's categories; anything else falls through to keywords.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

from expense_ocr.pipeline.core.config import (
    CATEGORY_DESCRIPTION_MIN_WORD_LEN,
    CATEGORY_DESCRIPTION_WORD_SCORE,
    CATEGORY_KEYWORD_SCORE,
    CATEGORY_MIN_SCORE,
    CATEGORY_NAME_SCORE,
)
from expense_ocr.pipeline.models.dto import Category

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Fuel": (
        "petrol", "gas", "fuel", "gasoline", "diesel", "petroleum", "adnoc", "eno",
        "emarat", "shell", "bp", "chevron", "filling station", "service station",
        "fuel station", "octane", "unleaded", "premium", "regular",
    ),
    "Food": (
        "restaurant", "cafe", "coffee", "food", "dining", "meal", "starbucks",
        "mcdonald", "kfc", "pizza", "burger", "grocery", "supermarket", "hypermarket",
        "carrefour", "lulu", "bakery", "baker", "pastry", "sandwich", "lunch", "dinner",
    ),
    "Travel": (
        "hotel", "flight", "airline", "taxi", "uber", "careem", "metro", "bus", "train",
        "travel", "tourism", "booking", "airport", "lodging", "accommodation", "reservation",
    ),
    "Utilities": (
        "electricity", "water", "internet", "wifi", "broadband", "du", "etisalat", "dewa",
        "sewa", "fewa", "adwea", "utility", "utilities", "power", "energy", "gas bill",
    ),
    "Telecom": (
        "phone", "mobile", "telecom", "telecommunication", "etisalat", "du", "vodafone",
        "roaming", "data plan", "calling", "sms", "prepaid", "postpaid",
    ),
    "Office Supplies": (
        "stationery", "paper", "pen", "pencil", "notebook", "printer", "ink", "cartridge",
        "folder", "file", "stapler", "office", "supplies", "equipment",
    ),
    "Maintenance": (
        "repair", "maintenance", "service", "workshop", "garage", "mechanic", "plumber",
        "electrician", "carpenter", "fix", "fixing", "servicing",
    ),
    "Entertainment": (
        "cinema", "movie", "theater", "concert", "show", "entertainment", "recreation",
        "leisure", "amusement", "ticket", "booking", "event",
    ),
    "Healthcare": (
        "pharmacy", "pharmaceutical", "medicine", "drug", "clinic", "hospital", "doctor",
        "medical", "health", "prescription", "boots", "life", "supercare",
    ),
    "Parking": (
        "parking", "valet", "garage", "car park", "parking fee", "parking ticket",
        "parking meter",
    ),
}


def default_keywords(name: str) -> tuple[str, ...]:
    return DEFAULT_CATEGORY_KEYWORDS.get(name, ())


@dataclass
class CategoryMatch:
    category: Category
    score: Optional[int]
    matched: list[str] = field(default_factory=list)
    source: str = "keywords"


class CategoryClassifier(Protocol):
    def classify(
        self, text: str, vendor_name: Optional[str], categories: Sequence[Category]
    ) -> Optional[str]:
        """Return a category name, or None when no answer is available."""


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", text.lower())


def _contains(haystack: str, needle: str) -> bool:
    needle = _normalize(needle).strip()
    if not needle:
        return False
    return re.search(rf"(?<!\w){re.escape(needle)}(?!\w)", haystack) is not None


def score_category(text: str, category: Category) -> CategoryMatch:
    """Score one category against already-normalized text."""
    score = 0
    matched: list[str] = []

    if _contains(text, category.name):
        score += CATEGORY_NAME_SCORE
        matched.append(category.name.lower())

    for keyword in dict.fromkeys(k.lower() for k in category.keywords):
        if _contains(text, keyword):
            score += CATEGORY_KEYWORD_SCORE
            matched.append(keyword)

    if category.description:
        words = dict.fromkeys(category.description.lower().split())
        for word in words:
            if len(word) >= CATEGORY_DESCRIPTION_MIN_WORD_LEN and _contains(text, word):
                score += CATEGORY_DESCRIPTION_WORD_SCORE
                matched.append(word)

    return CategoryMatch(category=category, score=score, matched=matched)


def detect_category(text: str, categories: Sequence[Category]) -> Optional[CategoryMatch]:
    """
    Best keyword match at or above the threshold.

    Ties keep the category that comes first in ``categories``.
    """
    if not text or not text.strip() or not categories:
        return None

    normalized = _normalize(text)
    best: Optional[CategoryMatch] = None
    for category in categories:
        match = score_category(normalized, category)
        if best is None or match.score > best.score:
            best = match

    if best is None or best.score < CATEGORY_MIN_SCORE:
        return None
    logger.info(
        f"Category detected: {best.category.name} (score: {best.score}, keywords: {', '.join(best.matched)})"
    )
    return best


class CategorySuggestor:
    """Keyword scoring with an optional AI classifier in front of it."""

    def __init__(self, classifier: Optional[CategoryClassifier] = None):
        self.classifier = classifier

    def suggest(
        self,
        text: str,
        categories: Sequence[Category],
        vendor_name: Optional[str] = None,
    ) -> Optional[CategoryMatch]:
        if not text or not text.strip() or not categories:
            return None

        if self.classifier is not None:
            label = self.classifier.classify(text, vendor_name, categories)
            if label:
                wanted = label.strip().strip(".\"'").lower()
                for category in categories:
                    if category.name.lower() == wanted:
                        return CategoryMatch(category=category, score=None, source="ai")
                logger.info(f"AI category '{label}' matches no category, using keywords")

        return detect_category(text, categories)
