"""Unit tests for PDF rasterization."""

import pytest
from PIL import Image
from pypdf import PageObject
from pypdf.errors import PyPdfError

from expense_ocr.pipeline.core.exceptions import RasterizationError
from expense_ocr.pipeline.rasterizer import DocumentRasterizer, is_blank_image
from expense_ocr.pipeline.rasterizer.text_layer import read_text_layer, strip_page_noise
from fakes import FakeRasterStrategy, make_blank_pdf, make_damaged_pdf, make_png, make_text_pdf

INVOICE_LINES = [
    "Al Noor Trading LLC",
    "Tax Invoice No: INV-2024-001",
    "Office chairs and desks for the Dubai branch",
    "Grand Total: AED 1,050.00",
]


class TestRender:
    """Tests for the strategy chain."""

    def test_first_working_strategy_wins(self):
        first = FakeRasterStrategy([make_png()], name="poppler")
        second = FakeRasterStrategy([make_png()], name="pdfium")

        result = DocumentRasterizer([first, second]).render(b"%PDF-1.4")

        assert result.strategy == "poppler"
        assert result.page_count == 1
        assert second.calls == 0

    def test_failed_strategy_falls_through(self):
        broken = FakeRasterStrategy(name="poppler", error=RuntimeError("pdftoppm missing"))
        working = FakeRasterStrategy([make_png(), make_png()], name="pdfium")

        result = DocumentRasterizer([broken, working]).render(b"%PDF-1.4")

        assert result.strategy == "pdfium"
        assert [p.page_number for p in result.pages] == [1, 2]

    def test_unavailable_strategy_skipped(self):
        missing = FakeRasterStrategy([make_png()], name="poppler", available=False)
        working = FakeRasterStrategy([make_png()], name="pdfium")

        result = DocumentRasterizer([missing, working]).render(b"%PDF-1.4")

        assert missing.calls == 0
        assert result.strategy == "pdfium"

    def test_all_strategies_fail(self):
        rasterizer = DocumentRasterizer(
            [
                FakeRasterStrategy(name="poppler", error=RuntimeError("boom")),
                FakeRasterStrategy([b"not a png"], name="pdfium"),
            ]
        )

        with pytest.raises(RasterizationError) as exc_info:
            rasterizer.render(b"%PDF-1.4")

        assert "poppler: boom" in exc_info.value.details["detail"]
        assert "pdfium: no pages produced" in exc_info.value.details["detail"]

    def test_blank_pages_flagged(self):
        strategy = FakeRasterStrategy([make_png(blank=True), make_png()])

        result = DocumentRasterizer([strategy]).render(b"%PDF-1.4")

        assert result.blank_pages == [1]
        assert result.pages[1].width == 200

    def test_page_limit(self):
        strategy = FakeRasterStrategy([make_png() for _ in range(4)])

        result = DocumentRasterizer([strategy], max_pages=2).render(b"%PDF-1.4")

        assert result.page_count == 2


class TestTextLayer:
    def test_born_digital_pdf_skips_rendering(self):
        strategy = FakeRasterStrategy([make_png()])
        pdf = make_text_pdf([INVOICE_LINES])

        result = DocumentRasterizer([strategy]).process(pdf)

        assert result.strategy == "text_layer"
        assert "Grand Total" in result.text
        assert strategy.calls == 0

    def test_scanned_pdf_is_rendered(self):
        strategy = FakeRasterStrategy([make_png(), make_png()])

        result = DocumentRasterizer([strategy]).process(make_blank_pdf(2))

        assert result.strategy == "fake"
        assert result.text == ""
        assert result.page_count == 2

    def test_extract_text_none_for_unparseable_bytes(self):
        assert DocumentRasterizer([]).extract_text(b"%PDF-1.4 garbage") is None

    def test_damaged_pdf_is_still_rendered(self):
        strategy = FakeRasterStrategy([make_png()])

        result = DocumentRasterizer([strategy]).process(make_damaged_pdf())

        assert result.strategy == "fake"
        assert strategy.calls == 1

    @pytest.mark.parametrize(
        "error",
        [
            PyPdfError("Detected loop with self reference"),
            TypeError("'NullObject' object is not subscriptable"),
            AttributeError("'IndirectObject' object has no attribute 'keys'"),
            RecursionError("maximum recursion depth exceeded"),
        ],
    )
    def test_any_pypdf_failure_falls_through_to_rendering(self, monkeypatch, error):
        def broken(*args, **kwargs):
            raise error

        monkeypatch.setattr(
            "expense_ocr.pipeline.rasterizer.document_rasterizer.read_text_layer", broken
        )
        strategy = FakeRasterStrategy([make_png()])

        result = DocumentRasterizer([strategy]).process(make_blank_pdf())

        assert result.page_count == 1
        assert strategy.calls == 1

    def test_failing_page_yields_empty_text(self, monkeypatch):
        def broken(self, *args, **kwargs):
            raise TypeError("bad content stream")

        monkeypatch.setattr(PageObject, "extract_text", broken)

        layer = read_text_layer(make_text_pdf([["Tax Invoice"], ["Total 10.00"]]))

        assert layer.page_count == 2
        assert layer.pages == ["", ""]

    def test_text_layer_per_page(self):
        pdf = make_text_pdf([["Purchase Order"], ["Tax Invoice"]])

        layer = read_text_layer(pdf)

        assert layer.page_count == 2
        assert "Purchase Order" in layer.pages[0]
        assert "Tax Invoice" in layer.pages[1]

    def test_strip_page_noise(self):
        text = "Invoice\nPage 1 of 2\n-----\n12345\nTotal 10.00"
        assert strip_page_noise(text) == "Invoice\nTotal 10.00"


class TestBlankDetection:
    def test_white_image_is_blank(self):
        assert is_blank_image(Image.new("RGB", (300, 300), "white"))

    def test_near_white_within_tolerance(self):
        assert is_blank_image(Image.new("RGB", (50, 50), (250, 250, 250)))

    def test_dark_mark_is_not_blank(self):
        image = Image.new("RGB", (300, 300), "white")
        image.putpixel((5, 5), (0, 0, 0))
        assert not is_blank_image(image)
