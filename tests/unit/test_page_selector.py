"""Unit tests for invoice page selection."""

from expense_ocr.pipeline.processors.page_selector import score_page, select_invoice_page


class TestScorePage:
    def test_tax_invoice_counts_inner_invoice(self):
        assert score_page("Tax Invoice", 1) == 20

    def test_non_invoice_keywords_penalised(self):
        assert score_page("Delivery Note", 1) == -15

    def test_first_page_bonus(self):
        assert score_page("hello", 0) == 3


class TestSelectInvoicePage:
    def test_picks_invoice_over_purchase_order(self):
        selection = select_invoice_page(
            ["Purchase Order\nPO-7781", "Tax Invoice\nTotal Amount: 300.00"]
        )

        assert selection.index == 1
        assert selection.scores == [-12, 20]

    def test_tie_goes_to_earlier_page(self):
        selection = select_invoice_page(["", "Bill", "Bill"])

        assert selection.scores == [None, 10, 10]
        assert selection.index == 1

    def test_no_positive_score_uses_first_page(self):
        selection = select_invoice_page(["Delivery note", "Hello"])
        assert selection.index == 0

    def test_blank_first_page_skipped(self):
        selection = select_invoice_page(["", "hello"])

        assert selection.index == 1
        assert selection.scores == [None, 0]

    def test_all_pages_empty(self):
        selection = select_invoice_page(["", "  "])

        assert selection.index == 0
        assert selection.scores == [None, None]
