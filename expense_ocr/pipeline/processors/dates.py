"""
Expense date parsing.

Formats are tried in a fixed order: "Month D, YYYY", "D Month YYYY",
"YYYY-MM-DD", then "D/M/Y". The first match that forms a real calendar
date inside the accepted year range wins. Results are ``datetime.date``
objects, so no timezone is ever involved.

Numeric dates are ambiguous. A first group above 12 can only be a day;
otherwise the first group is read as the month.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from expense_ocr.pipeline.core.config import MAX_YEAR, MIN_YEAR

MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

MONTH = (
    r"(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?|"
    r"sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\b"
)

MONTH_DAY_YEAR_RE = re.compile(
    rf"\b{MONTH}\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s+(\d{{4}})\b", re.IGNORECASE
)
DAY_MONTH_YEAR_RE = re.compile(
    rf"\b(\d{{1,2}})(?:st|nd|rd|th)?[\s\-]+{MONTH}\.?,?[\s\-]+(\d{{4}}|\d{{2}})\b", re.IGNORECASE
)
YEAR_MONTH_DAY_RE = re.compile(r"\b(\d{4})[/\-.](\d{1,2})[/\-.](\d{1,2})\b")
NUMERIC_RE = re.compile(r"\b(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4}|\d{2})\b")


@dataclass(frozen=True)
class DateMatch:
    value: date
    start: int
    end: int


def _year(raw: str) -> int:
    year = int(raw)
    return 2000 + year if len(raw) == 2 else year


def _month(raw: str) -> int:
    return MONTHS[raw[:3].lower()]


def _build(year: int, month: int, day: int) -> Optional[date]:
    if not MIN_YEAR <= year <= MAX_YEAR:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _from_month_day_year(m: re.Match) -> Optional[date]:
    return _build(_year(m.group(3)), _month(m.group(1)), int(m.group(2)))


def _from_day_month_year(m: re.Match) -> Optional[date]:
    return _build(_year(m.group(3)), _month(m.group(2)), int(m.group(1)))


def _from_year_month_day(m: re.Match) -> Optional[date]:
    return _build(int(m.group(1)), int(m.group(2)), int(m.group(3)))


def _from_numeric(m: re.Match) -> Optional[date]:
    first, second, year = int(m.group(1)), int(m.group(2)), _year(m.group(3))
    if first > 12:
        return _build(year, second, first)
    return _build(year, first, second)


DATE_FORMATS: tuple[tuple[re.Pattern, Callable[[re.Match], Optional[date]]], ...] = (
    (MONTH_DAY_YEAR_RE, _from_month_day_year),
    (DAY_MONTH_YEAR_RE, _from_day_month_year),
    (YEAR_MONTH_DAY_RE, _from_year_month_day),
    (NUMERIC_RE, _from_numeric),
)


def find_date(text: str) -> Optional[DateMatch]:
    """First valid date in ``text`` by format order, with its position."""
    for pattern, build in DATE_FORMATS:
        for match in pattern.finditer(text):
            value = build(match)
            if value is not None:
                return DateMatch(value, match.start(), match.end())
    return None


def parse_date(text: str) -> Optional[date]:
    found = find_date(text)
    return found.value if found else None


def strip_dates(text: str) -> str:
    """Replace every date-shaped substring with a space."""
    for pattern, _ in DATE_FORMATS:
        text = pattern.sub(" ", text)
    return text
