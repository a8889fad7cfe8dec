"""
Parse raw OCR text into expense fields.

Each field has its own small rule set. A field that no rule finds with
confidence is left as None; the only default ever filled in is the VAT
estimate, and that one is flagged via ``vat_is_estimate``.
"""

from __future__ import annotations

import logging
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from expense_ocr.pipeline.core.config import DEFAULT_VAT_RATE, DESCRIPTION_MAX_CHARS
from expense_ocr.pipeline.models.dto import ExtractedFields
from expense_ocr.pipeline.processors import amounts
from expense_ocr.pipeline.processors.amounts import (
    AMOUNT_ONLY_LINE_RE,
    CURRENCY,
    NUMBER,
    is_tax_line,
    to_decimal,
)
from expense_ocr.pipeline.processors.dates import find_date, strip_dates

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

VENDOR_SCAN_LINES = 10
VENDOR_PLAIN_LINES = 5
VENDOR_MAX_LEN = 60

VENDOR_NOISE = (
    re.compile(r"^[\d\s\-/.,:#+()*=]+$"),
    re.compile(
        r"\b(?:street|st\.|avenue|ave\.|road|rd\.|p\.?\s?o\.?\s*box|building|bldg|floor|shop\s*no)\b"
        r"|^(?:city|state|zip|district|area)\b",
        re.IGNORECASE,
    ),
    re.compile(r"^(?:tel|phone|mob|mobile|fax|ph|email|e-mail|web|www)\b", re.IGNORECASE),
    re.compile(r"^\+?\d[\d\s\-()]{7,}$"),
    re.compile(r"^(?:date|dated|time)\b", re.IGNORECASE),
    re.compile(
        r"^(?:tax\s+)?(?:invoice|receipt|bill|inv|cash\s+memo|simplified)\b|^(?:trn|vat|tax)\b",
        re.IGNORECASE,
    ),
    re.compile(rf"{CURRENCY}\s*\d|\d+\.\d{{2}}\b", re.IGNORECASE),
    re.compile(r"^(?:welcome|thank\s*you|customer\s+copy|merchant\s+copy|original)\b", re.IGNORECASE),
)
LEGAL_SUFFIX_RE = re.compile(
    r"\b(?:L\.?L\.?C|LTD|LIMITED|INC|CORP|CORPORATION|FZE|FZCO|FZ-LLC|PJSC|PLC|GMBH|CO\.)(?:\W|$)",
    re.IGNORECASE,
)

INVOICE_ID = r"([A-Z0-9][A-Z0-9\-/]{2,29})"
INVOICE_NUMBER_PATTERNS = (
    re.compile(
        rf"\b(?:invoice|inv|receipt|bill|tax\s+invoice)[ \t]*(?:no\.?|number|num|#|id)[ \t]*[:#\-.]?[ \t]*{INVOICE_ID}",
        re.IGNORECASE,
    ),
    re.compile(rf"\b(?:invoice|receipt|bill)[ \t]*[:#][ \t]*{INVOICE_ID}", re.IGNORECASE),
    re.compile(rf"#[ \t]*{INVOICE_ID}", re.IGNORECASE),
    re.compile(
        rf"\b(?:ref(?:erence)?|order|transaction)[ \t]*(?:no\.?|number|#|id)[ \t]*[:#\-.]?[ \t]*{INVOICE_ID}",
        re.IGNORECASE,
    ),
)

TRN_PATTERNS = (
    re.compile(
        r"\b(?:trn|tax\s+registration\s+(?:number|no\.?)|vat\s+(?:reg(?:istration)?\s+)?(?:number|no\.?)|"
        r"tax\s+id)[ \t]*[:#\-.]?[ \t]*([A-Z0-9]{10,20})\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:registration|reg)[ \t]*no\.?[ \t]*[:#\-.]?[ \t]*([A-Z0-9]{10,20})\b", re.IGNORECASE),
    re.compile(r"(?<![\w.,])(\d{15})(?![\w.,])"),
)
TRN_VALID_RE = re.compile(r"^(?=.*\d)[A-Z0-9]{10,20}$", re.IGNORECASE)

VAT_IDENTIFIER_RE = re.compile(
    r"\btax\s+invoice\b|\btax\s+registration\b|\btrn\b|\bvat\s+(?:reg|no\b|number)|\btax\s+id\b",
    re.IGNORECASE,
)
VAT_PERCENT_RE = re.compile(r"\b(?:vat|tax)\b[^\n%\d]{0,20}?(\d{1,2}(?:\.\d+)?)\s*%", re.IGNORECASE)
VAT_LABEL_RE = re.compile(r"\b(?:vat|tax)\b(?:\s*amount)?", re.IGNORECASE)
PERCENT_TOKEN_RE = re.compile(r"\(?\s*\d{1,3}(?:\.\d+)?\s*%\s*\)?")
NUMBER_RE = re.compile(NUMBER)

NUMERIC_TOKEN_RE = re.compile(rf"(?:{CURRENCY}\s*)?(?<![A-Za-z])[-+]?\d[\d,.]*(?:\s*%)?", re.IGNORECASE)
WHITESPACE_RE = re.compile(r"\s+")


def extract_vendor(lines: list[str]) -> Optional[str]:
    """Business name from the header of the document."""
    non_empty = [line.strip() for line in lines if line.strip()][:VENDOR_SCAN_LINES]
    candidates = [
        (position, line)
        for position, line in enumerate(non_empty)
        if len(line) > 2 and not any(p.search(line) for p in VENDOR_NOISE)
    ]

    for _, line in candidates:
        if LEGAL_SUFFIX_RE.search(line):
            return line[:100]

    for position, line in candidates:
        if position >= VENDOR_PLAIN_LINES:
            break
        if len(line) > VENDOR_MAX_LEN or not re.search(r"[A-Za-z]", line):
            continue
        letters = re.sub(r"[^A-Za-z]", "", line)
        if len(line.split()) > 1 or (len(letters) > 2 and letters.isupper()):
            return line[:100]
    return None


def extract_invoice_number(text: str) -> Optional[str]:
    for pattern in INVOICE_NUMBER_PATTERNS:
        for match in pattern.finditer(text):
            value = match.group(1).strip("-/")
            if 3 <= len(value) <= 30 and re.search(r"\d", value) and find_date(value) is None:
                return value
    return None


def extract_trn(text: str) -> Optional[str]:
    for pattern in TRN_PATTERNS:
        for match in pattern.finditer(text):
            value = match.group(1).upper()
            if TRN_VALID_RE.match(value):
                return value
    return None


def _vat_lines(lines: list[str]) -> list[int]:
    return [
        i
        for i, line in enumerate(lines)
        if is_tax_line(line) and not VAT_IDENTIFIER_RE.search(line)
    ]


def _absolute_vat(lines: list[str], index: int) -> Optional[Decimal]:
    line = lines[index]
    label = VAT_LABEL_RE.search(line)
    rest = PERCENT_TOKEN_RE.sub(" ", line[label.end():]) if label else ""
    values = [to_decimal(m.group(1)) for m in NUMBER_RE.finditer(rest)]
    values = [v for v in values if v is not None]
    if values:
        return values[-1]
    if rest.strip(" \t:.-=") == "":
        for next_line in lines[index + 1 : index + 2]:
            match = AMOUNT_ONLY_LINE_RE.match(next_line)
            if match:
                return to_decimal(match.group(1))
    return None


def extract_vat(lines: list[str], amount: Optional[Decimal]) -> tuple[Optional[Decimal], bool]:
    """
    VAT amount for a known total.

    Order: a percentage next to a VAT/Tax label, then an absolute VAT figure,
    then an explicit zero, then the regional-rate estimate.

    Returns:
        (vat_amount, is_estimate)
    """
    if amount is None:
        return None, False

    indices = _vat_lines(lines)

    for i in indices:
        match = VAT_PERCENT_RE.search(lines[i])
        if match:
            rate = Decimal(match.group(1))
            if rate > 0:
                return (amount * rate / 100).quantize(CENTS, rounding=ROUND_HALF_UP), False

    zero_seen = False
    for i in indices:
        value = _absolute_vat(lines, i)
        if value is None:
            continue
        if value == 0:
            zero_seen = True
        elif value < amount:
            return value.quantize(CENTS), False

    if zero_seen or any(
        (m := VAT_PERCENT_RE.search(lines[i])) and Decimal(m.group(1)) == 0 for i in indices
    ):
        return Decimal("0.00"), False

    estimate = (amount * Decimal(DEFAULT_VAT_RATE)).quantize(CENTS, rounding=ROUND_HALF_UP)
    return estimate, True


def build_description(lines: list[str], fields: ExtractedFields, consumed: set[int]) -> Optional[str]:
    """
    Raw text minus everything already extracted.

    Lines that produced a field are dropped, dates and every number token are
    removed, so running the extractor on the description cannot find a
    different amount.
    """
    kept = [line for i, line in enumerate(lines) if i not in consumed]
    text = "\n".join(kept)
    if fields.vendor_name:
        text = text.replace(fields.vendor_name, " ")
    if fields.invoice_number:
        text = text.replace(fields.invoice_number, " ")
    if fields.vendor_trn:
        text = text.replace(fields.vendor_trn, " ")
    text = strip_dates(text)
    text = NUMERIC_TOKEN_RE.sub(" ", text)
    text = WHITESPACE_RE.sub(" ", text).strip(" \t:;,.-#")
    if not text:
        return None
    if len(text) > DESCRIPTION_MAX_CHARS:
        text = text[:DESCRIPTION_MAX_CHARS] + "..."
    return text


class FieldExtractor:
    """Turns OCR text into :class:`ExtractedFields`."""

    def extract(self, text: str) -> ExtractedFields:
        lines = (text or "").replace("\r\n", "\n").replace("\r", "\n").split("\n")
        fields = ExtractedFields()
        if not text or not text.strip():
            return fields

        fields.vendor_name = extract_vendor(lines)
        fields.invoice_number = extract_invoice_number(text)
        fields.vendor_trn = extract_trn(text)

        amount, candidates = amounts.find_amount(lines)
        fields.amount = amount
        fields.vat_amount, fields.vat_is_estimate = extract_vat(lines, amount)

        date_match = find_date(text)
        fields.expense_date = date_match.value if date_match else None

        consumed = {c.line_index for c in candidates if c.priority >= 60}
        consumed.update(_vat_lines(lines))
        for i, line in enumerate(lines):
            stripped = line.strip()
            if not stripped:
                continue
            if fields.vendor_name and stripped[:100] == fields.vendor_name:
                consumed.add(i)
            elif fields.invoice_number and fields.invoice_number in line:
                consumed.add(i)
            elif fields.vendor_trn and fields.vendor_trn in line.upper():
                consumed.add(i)
        fields.description = build_description(lines, fields, consumed)

        logger.debug(
            "Fields extracted",
            extra={
                "service": "field_extractor",
                "amount_candidates": len(candidates),
            },
        )
        return fields
