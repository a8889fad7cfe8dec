"""Unit tests for total-amount detection."""

from decimal import Decimal

from expense_ocr.pipeline.processors.amounts import (
    AmountCandidate,
    fallback_amount,
    find_amount,
    is_tax_line,
    pick_amount,
)


def lines(text):
    return text.split("\n")


class TestPickAmount:
    """Tie-break order: priority, then value, then later line."""

    def test_priority_wins(self):
        chosen = pick_amount(
            [
                AmountCandidate(Decimal("900"), 20, 0, "bare"),
                AmountCandidate(Decimal("100"), 100, 1, "grand_total"),
            ]
        )
        assert chosen.value == Decimal("100")

    def test_larger_value_wins_at_same_priority(self):
        chosen = pick_amount(
            [
                AmountCandidate(Decimal("50"), 90, 3, "total"),
                AmountCandidate(Decimal("70"), 90, 1, "total"),
            ]
        )
        assert chosen.value == Decimal("70")

    def test_later_line_wins_full_tie(self):
        chosen = pick_amount(
            [
                AmountCandidate(Decimal("70"), 90, 1, "total"),
                AmountCandidate(Decimal("70"), 90, 4, "total"),
            ]
        )
        assert chosen.line_index == 4

    def test_empty(self):
        assert pick_amount([]) is None


class TestFindAmount:
    def test_grand_total_beats_subtotal(self):
        text = "Subtotal: AED 1,000.00\nVAT 5%: AED 50.00\nGrand Total: AED 1,250.00"
        amount, _ = find_amount(lines(text))
        assert amount == Decimal("1250.00")

    def test_value_on_next_line(self):
        amount, _ = find_amount(lines("Coffee 12.00\nTotal\n450.75"))
        assert amount == Decimal("450.75")

    def test_tax_inclusive_total(self):
        amount, _ = find_amount(lines("Total Amount (incl. VAT) 105.00\nVAT 5.00"))
        assert amount == Decimal("105.00")

    def test_total_items_is_not_a_total(self):
        amount, _ = find_amount(lines("Total items 3\nAmount Due 42.50"))
        assert amount == Decimal("42.50")

    def test_quantity_column_on_total_row(self):
        text = "Item Qty Price\nLatte 2 36.00\nMuffin 1 14.00\nTotal 3 50.00"
        amount, candidates = find_amount(lines(text))
        assert amount == Decimal("50.00")
        assert {c.value for c in candidates if c.rule == "total"} == {Decimal("3"), Decimal("50.00")}

    def test_date_on_total_row_ignored(self):
        amount, _ = find_amount(lines("Total 12/05/2024 45.00"))
        assert amount == Decimal("45.00")

    def test_space_grouped_thousands(self):
        amount, _ = find_amount(lines("Subtotal 1 190.48\nTotal 1 250.00"))
        assert amount == Decimal("1250.00")

    def test_space_grouped_on_next_line(self):
        amount, _ = find_amount(lines("Grand Total\nAED 2 400.50"))
        assert amount == Decimal("2400.50")

    def test_fallback_to_largest_plain_number(self):
        amount, candidates = find_amount(lines("Coffee shop\nCups 3\nCharged 150"))
        assert candidates == []
        assert amount == Decimal("150.00")

    def test_nothing_found(self):
        amount, _ = find_amount(lines("Thank you\nCome again"))
        assert amount is None


class TestHelpers:
    def test_is_tax_line(self):
        assert is_tax_line("VAT 5%: 12.00")
        assert not is_tax_line("Total incl. VAT 120.00")
        assert not is_tax_line("Grand Total 120.00")

    def test_fallback_skips_phone_and_dates(self):
        value = fallback_amount(["Tel 04 5551234", "Date 12/10/2024", "Paid 75"])
        assert value == Decimal("75")
