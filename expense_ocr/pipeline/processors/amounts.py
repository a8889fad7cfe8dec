"""
Total-amount detection for receipts and invoices.

Every line is matched against an ordered rule table. Each hit becomes an
``AmountCandidate(value, priority, line_index)`` and the whole candidate list
is reduced by ``pick_amount``. Keeping the patterns and the tie-break apart
means the precedence policy can be tested without crafting OCR text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Pattern

from expense_ocr.pipeline.core.config import MAX_FALLBACK_AMOUNT, MIN_FALLBACK_AMOUNT
from expense_ocr.pipeline.processors.dates import strip_dates

CURRENCY = r"(?:AED|USD|EUR|GBP|SAR|QAR|OMR|KWD|BHD|INR|Dhs?\.?|\$|€|£)"

# 1,250.00 | 1250.00 | 1250 ; never part of a longer word or a percentage
NUMBER = r"(?<![\w.,])(\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?)(?![\w%]|[.,]\d)"

NUMBER_RE = re.compile(NUMBER)
TWO_DECIMALS_RE = re.compile(r"(?<![\w.,])(\d{1,3}(?:,\d{3})+\.\d{2}|\d+\.\d{2})(?![\w%]|[.,]\d)")
CURRENCY_TAGGED_RE = re.compile(
    rf"{CURRENCY}\s*{NUMBER}|{NUMBER}\s*(?:AED|USD|EUR|GBP|SAR|Dhs?)\b", re.IGNORECASE
)
# A line holding nothing but an amount, used for "label on one line, value on the next"
AMOUNT_ONLY_LINE_RE = re.compile(
    rf"^\s*(?:{CURRENCY}\s*)?{NUMBER}\s*(?:{CURRENCY})?\s*$", re.IGNORECASE
)
# 1 250.00 standing alone after a label or on its own line
SPACE_GROUPED_ONLY_RE = re.compile(
    rf"^[^\d\n]*?(?<![\d.,])(\d{{1,3}}(?: \d{{3}})+\.\d{{2}})(?![\d%])\s*(?:{CURRENCY})?\s*$",
    re.IGNORECASE,
)
# What may sit between a label and its number on the same line
_LABEL_GAP_RE = re.compile(rf"^[^\d\n]{{0,25}}?{NUMBER}", re.IGNORECASE)
_LABEL_ONLY_REST_RE = re.compile(rf"^[\s:.\-=()]*(?:{CURRENCY})?[\s:.\-=()]*$", re.IGNORECASE)

TAX_LINE_RE = re.compile(r"\b(?:vat|tax)\b", re.IGNORECASE)
TAX_INCLUSIVE_RE = re.compile(r"\b(?:incl|including|inclusive|inc\.)", re.IGNORECASE)
TOTAL_KEYWORD_RE = re.compile(
    r"(?<!sub)(?<!sub\s)(?<!sub-)\btotal\b"
    r"(?!\s*(?:items?|qty|quantity|savings|discount|weight|count|pieces|pcs)\b)",
    re.IGNORECASE,
)
PHONE_LINE_RE = re.compile(
    r"\b(?:tel|phone|mob|mobile|fax|ph|whatsapp)\b|\+\d{3}", re.IGNORECASE
)
IDENTIFIER_LINE_RE = re.compile(
    r"\b(?:trn|invoice\s*(?:no|number|#)|receipt\s*(?:no|number|#)|bill\s*(?:no|id)|"
    r"ref(?:erence)?\s*(?:no|number)?|order\s*(?:no|number)|card|auth|approval)\b",
    re.IGNORECASE,
)
DATE_LIKE_RE = re.compile(
    r"\b\d{1,4}[/\-.]\d{1,2}[/\-.]\d{2,4}\b|\b\d{1,2}:\d{2}\b", re.IGNORECASE
)


@dataclass(frozen=True)
class AmountCandidate:
    value: Decimal
    priority: int
    line_index: int
    rule: str


@dataclass(frozen=True)
class AmountRule:
    """A labelled amount line: ``label`` followed by a number on the same line
    or, when the label stands alone, on the next non-empty line."""

    name: str
    label: Pattern[str]
    priority: int
    allow_tax_lines: bool = False


AMOUNT_RULES: tuple[AmountRule, ...] = (
    AmountRule(
        "grand_total",
        re.compile(
            r"\b(?:grand\s*total|total\s+amount|total\s+payable|amount\s+payable|"
            r"total\s+due|balance\s+due|net\s+payable|total\s+to\s+pay)\b(?:\s*\([^)\n]*\))?",
            re.IGNORECASE,
        ),
        100,
        allow_tax_lines=True,
    ),
    AmountRule("total", TOTAL_KEYWORD_RE, 90),
    AmountRule(
        "amount_due",
        re.compile(
            r"\b(?:amount\s+due|amount\s+paid|net\s+amount|to\s+pay|pay(?:able)?|amount)\b"
            r"(?:\s*\([^)\n]*\))?",
            re.IGNORECASE,
        ),
        60,
    ),
)

BARE_NUMBER_PRIORITY = 20
BARE_NUMBER_NEAR_TOTAL_PRIORITY = 40
CURRENCY_TAGGED_PRIORITY = 10
NEAR_TOTAL_WINDOW = 2


def to_decimal(raw: str) -> Optional[Decimal]:
    try:
        return Decimal(raw.replace(",", ""))
    except InvalidOperation:
        return None


def is_tax_line(line: str) -> bool:
    """VAT/Tax lines, except tax-inclusive totals."""
    return bool(TAX_LINE_RE.search(line)) and not TAX_INCLUSIVE_RE.search(line)


def _next_non_empty(lines: list[str], start: int) -> Optional[int]:
    for idx in range(start, len(lines)):
        if lines[idx].strip():
            return idx
    return None


def _without_dates(text: str) -> str:
    return DATE_LIKE_RE.sub(" ", strip_dates(text))


def line_amounts(text: str) -> list[Decimal]:
    """Every number in ``text``; a lone space-grouped amount (``1 250.00``) counts as one."""
    grouped = SPACE_GROUPED_ONLY_RE.match(text)
    if grouped:
        value = to_decimal(grouped.group(1).replace(" ", ""))
        return [value] if value is not None else []
    values = (to_decimal(match.group(1)) for match in NUMBER_RE.finditer(text))
    return [value for value in values if value is not None]


def values_after_label(lines: list[str], index: int, label_end: int) -> list[tuple[Decimal, int]]:
    """
    Numbers following a label that ends at ``label_end`` on ``lines[index]``.

    Dates are dropped first. Every number left on the label line is returned,
    so a quantity column next to the total is a candidate, not the answer.
    Returns ``(value, line_index)`` pairs.
    """
    rest = _without_dates(lines[index][label_end:])
    if _LABEL_GAP_RE.match(rest):
        return [(value, index) for value in line_amounts(rest)]

    if not _LABEL_ONLY_REST_RE.match(rest):
        return []

    next_index = _next_non_empty(lines, index + 1)
    if next_index is None:
        return []
    next_line = lines[next_index]
    if not (AMOUNT_ONLY_LINE_RE.match(next_line) or SPACE_GROUPED_ONLY_RE.match(next_line)):
        return []
    return [(value, next_index) for value in line_amounts(next_line)]


def collect_candidates(lines: list[str]) -> list[AmountCandidate]:
    """Run the rule table over every line and gather all plausible totals."""
    candidates: list[AmountCandidate] = []
    total_lines: list[int] = []

    for index, line in enumerate(lines):
        if not line.strip():
            continue
        tax_line = is_tax_line(line)

        for rule in AMOUNT_RULES:
            if tax_line and not rule.allow_tax_lines:
                continue
            for label in rule.label.finditer(line):
                found = values_after_label(lines, index, label.end())
                if not found:
                    continue
                for value, value_index in found:
                    candidates.append(AmountCandidate(value, rule.priority, value_index, rule.name))
                break

        if TOTAL_KEYWORD_RE.search(line) or AMOUNT_RULES[0].label.search(line):
            total_lines.append(index)

        if tax_line or PHONE_LINE_RE.search(line) or IDENTIFIER_LINE_RE.search(line):
            continue

        near_total = any(0 < index - t <= NEAR_TOTAL_WINDOW for t in total_lines)
        for match in TWO_DECIMALS_RE.finditer(line):
            value = to_decimal(match.group(1))
            if value is not None:
                priority = BARE_NUMBER_NEAR_TOTAL_PRIORITY if near_total else BARE_NUMBER_PRIORITY
                candidates.append(AmountCandidate(value, priority, index, "bare"))

        for match in CURRENCY_TAGGED_RE.finditer(line):
            raw = match.group(1) or match.group(2)
            value = to_decimal(raw)
            if value is not None:
                candidates.append(AmountCandidate(value, CURRENCY_TAGGED_PRIORITY, index, "currency"))

    return [c for c in candidates if c.value > 0]


def pick_amount(candidates: Iterable[AmountCandidate]) -> Optional[AmountCandidate]:
    """Highest priority, then larger value, then the later line."""
    best: Optional[AmountCandidate] = None
    for candidate in candidates:
        if best is None or (candidate.priority, candidate.value, candidate.line_index) > (
            best.priority,
            best.value,
            best.line_index,
        ):
            best = candidate
    return best


def fallback_amount(lines: list[str]) -> Optional[Decimal]:
    """Largest free-standing number in the sane range, skipping dates and phone lines."""
    best: Optional[Decimal] = None
    for line in lines:
        if PHONE_LINE_RE.search(line) or IDENTIFIER_LINE_RE.search(line):
            continue
        for value in line_amounts(_without_dates(line)):
            if not (MIN_FALLBACK_AMOUNT <= value < MAX_FALLBACK_AMOUNT):
                continue
            if best is None or value > best:
                best = value
    return best


def find_amount(lines: list[str]) -> tuple[Optional[Decimal], list[AmountCandidate]]:
    """Best amount for the document plus the candidates it was chosen from."""
    candidates = collect_candidates(lines)
    chosen = pick_amount(candidates)
    if chosen is not None:
        return chosen.value.quantize(Decimal("0.01")), candidates
    value = fallback_amount(lines)
    return (value.quantize(Decimal("0.01")) if value is not None else None), candidates
