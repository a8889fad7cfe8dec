"""Unit tests for the document pipeline."""

from decimal import Decimal

import pytest

from expense_ocr.pipeline.core.exceptions import UnreadableDocumentError
from expense_ocr.pipeline.orchestrator import DocumentPipeline
from expense_ocr.pipeline.providers import OcrProviderAdapter
from expense_ocr.pipeline.rasterizer import DocumentRasterizer
from expense_ocr.pipeline.resilience import RetryConfig
from fakes import (
    FakeProvider,
    FakeRasterStrategy,
    RecordingArtifacts,
    make_blank_pdf,
    make_png,
    make_text_pdf,
)

NO_WAIT = RetryConfig(max_attempts=1, initial_delay_seconds=0.0, jitter=False)


def build_pipeline(provider=None, strategy=None, artifacts=None):
    return DocumentPipeline(
        adapter=OcrProviderAdapter(provider=provider, retry_config=NO_WAIT),
        rasterizer=DocumentRasterizer([strategy or FakeRasterStrategy([make_png()])]),
        artifacts=artifacts,
    )


class TestScannedPdf:
    """Scanned PDFs are rendered and OCR'd page by page."""

    def test_invoice_page_selected(self, categories):
        provider = FakeProvider("Purchase Order\nPO-7781", "Tax Invoice\nTotal Amount: 300.00")
        artifacts = RecordingArtifacts()
        pipeline = build_pipeline(provider, FakeRasterStrategy([make_png(), make_png()]), artifacts)

        result = pipeline.run(make_blank_pdf(2), "scan.pdf", "application/pdf", "job-1", categories)

        assert result.amount == Decimal("300.00")
        assert result.fields["selected_page"] == 2
        assert result.fields["page_scores"] == [-12, 20]
        assert result.fields["rasterizer"] == "fake"
        assert artifacts.pages == [("job-1", 1), ("job-1", 2)]
        assert [mime for _, mime in provider.calls] == ["image/png", "image/png"]

    def test_pdf_capable_provider_gets_the_pdf(self):
        provider = FakeProvider("Cafe Milano\nTotal: 45.00", accepts_pdf=True)
        strategy = FakeRasterStrategy(error=AssertionError("must not render"))
        pdf = make_blank_pdf(1)

        result = build_pipeline(provider, strategy).run(pdf, "scan.pdf", "application/pdf", "job-2")

        assert strategy.calls == 0
        assert provider.calls == [(pdf, "application/pdf")]
        assert result.fields["rasterizer"] == "skipped"
        assert result.amount == Decimal("45.00")

    def test_local_only_scanned_pdf_uses_file_name(self, categories):
        strategy = FakeRasterStrategy([make_png()])

        result = build_pipeline(None, strategy).run(
            make_blank_pdf(1), "adnoc_fuel.pdf", "application/pdf", "job-3", categories
        )

        assert strategy.calls == 0
        assert result.vendor_name == "Petrol Station"
        assert result.amount is None
        assert result.confidence == 0.3


class TestBornDigitalPdf:
    def test_text_layer_used_without_ocr(self, categories):
        provider = FakeProvider("never")
        pdf = make_text_pdf(
            [["ADNOC Distribution", "Fuel station receipt for diesel", "Total Amount: 210.00"]]
        )

        result = build_pipeline(provider).run(pdf, "adnoc.pdf", "application/pdf", "job-4", categories)

        assert provider.calls == []
        assert result.amount == Decimal("210.00")
        assert result.suggested_category_id == "fuel"
        assert result.confidence == 0.7
        assert result.fields["provider"] == "text_layer"


class TestImages:
    def test_image_fields_and_category(self, categories):
        provider = FakeProvider("Blue Fin Restaurant\nDinner for two\nTotal: 120.00")

        result = build_pipeline(provider).run(make_png(), "dinner.png", "image/png", "job-5", categories)

        assert result.vendor_name == "Blue Fin Restaurant"
        assert result.amount == Decimal("120.00")
        assert result.vat_is_estimate is True
        assert result.suggested_category_id == "food"
        assert result.fields["page_count"] == 1
        assert result.fields["original_file_name"] == "dinner.png"

    def test_unreadable_image(self):
        with pytest.raises(UnreadableDocumentError):
            build_pipeline(None).run(make_png(), "scan_001.png", "image/png", "job-6")
