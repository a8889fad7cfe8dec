"""
Document pipeline: bytes in, :class:`OcrResult` out.

Synchronous on purpose. The worker runs it in a thread; every stage below
(rasterization, provider calls, parsing) blocks.

Order within one document:
1. PDFs: text layer. Born-digital text skips OCR entirely.
2. Scanned PDFs: straight to the provider when it reads PDFs, otherwise
   rasterize, keep each page image as an artifact and OCR pages one by one.
3. Multi-page text: pick the invoice page.
4. Field extraction and category suggestion on the chosen text.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from expense_ocr.pipeline.core.config import (
    BORN_DIGITAL_CONFIDENCE,
    LOCAL_FILENAME_CONFIDENCE,
    RAW_TEXT_PREVIEW_CHARS,
)
from expense_ocr.pipeline.core.exceptions import UnreadableDocumentError
from expense_ocr.pipeline.models.dto import Category, OcrResult, ProviderText
from expense_ocr.pipeline.processors.category_suggestor import CategorySuggestor
from expense_ocr.pipeline.processors.field_extractor import FieldExtractor
from expense_ocr.pipeline.processors.page_selector import select_invoice_page
from expense_ocr.pipeline.providers.adapter import OcrProviderAdapter
from expense_ocr.pipeline.rasterizer import DocumentRasterizer
from expense_ocr.pipeline.utils.file_detection import is_pdf

logger = logging.getLogger(__name__)

NO_TEXT_ERROR = "No text could be extracted from the document"


class PageArtifactSink(Protocol):
    def save_page(self, job_id: str, page_number: int, png: bytes) -> Optional[str]:
        """Persist a rendered page once; return its location."""


class DocumentPipeline:
    def __init__(
        self,
        adapter: OcrProviderAdapter,
        rasterizer: Optional[DocumentRasterizer] = None,
        extractor: Optional[FieldExtractor] = None,
        suggestor: Optional[CategorySuggestor] = None,
        artifacts: Optional[PageArtifactSink] = None,
    ):
        self.adapter = adapter
        self.rasterizer = rasterizer or DocumentRasterizer()
        self.extractor = extractor or FieldExtractor()
        self.suggestor = suggestor or CategorySuggestor()
        self.artifacts = artifacts

    def run(
        self,
        data: bytes,
        file_name: str,
        mime_type: str,
        job_id: str,
        categories: Sequence[Category] = (),
    ) -> OcrResult:
        """
        Raises:
            UnreadableDocumentError: Nothing readable in the document
            RasterizationError: Scanned PDF that no strategy could render
        """
        diagnostics: dict = {
            "original_file_name": file_name,
            "mime_type": mime_type,
            "size": len(data),
        }

        if is_pdf(data, mime_type):
            recognized = self._run_pdf(data, file_name, mime_type, job_id, diagnostics)
        else:
            recognized = self.adapter.extract(data, mime_type, file_name)
            diagnostics["page_count"] = 1

        diagnostics["provider"] = recognized.provider
        return self._build_result(recognized, categories, diagnostics, job_id)

    def _run_pdf(
        self, data: bytes, file_name: str, mime_type: str, job_id: str, diagnostics: dict
    ) -> ProviderText:
        born_digital = self.rasterizer.extract_text(data)
        if born_digital is not None:
            diagnostics["rasterizer"] = born_digital.strategy
            diagnostics["page_count"] = born_digital.page_count
            text = self._select_page(born_digital.text_pages, diagnostics)
            return ProviderText(text or born_digital.text, BORN_DIGITAL_CONFIDENCE, "text_layer")

        if self.adapter.accepts_pdf:
            diagnostics["rasterizer"] = "skipped"
            return self.adapter.extract(data, mime_type, file_name)

        rendered = self.rasterizer.render(data)
        diagnostics["rasterizer"] = rendered.strategy
        diagnostics["page_count"] = rendered.page_count
        diagnostics["blank_pages"] = rendered.blank_pages

        page_results: list[ProviderText] = []
        for page in rendered.pages:
            if self.artifacts is not None:
                self.artifacts.save_page(job_id, page.page_number, page.png)
            page_results.append(self.adapter.extract(page.png, "image/png", file_name))
            logger.info(
                "Page OCR done",
                extra={"job_id": job_id, "page": page.page_number, "provider": page_results[-1].provider},
            )

        selection = select_invoice_page([r.text for r in page_results])
        diagnostics["page_scores"] = selection.scores
        diagnostics["selected_page"] = selection.index + 1
        chosen = page_results[selection.index]
        if chosen.text.strip():
            return chosen
        with_hints = next((r for r in page_results if r.hints), None)
        return with_hints or chosen

    def _select_page(self, page_texts: list[str], diagnostics: dict) -> str:
        if sum(1 for t in page_texts if t.strip()) < 2:
            return "\n".join(t for t in page_texts if t)
        selection = select_invoice_page(page_texts)
        diagnostics["page_scores"] = selection.scores
        diagnostics["selected_page"] = selection.index + 1
        return page_texts[selection.index]

    def _build_result(
        self,
        recognized: ProviderText,
        categories: Sequence[Category],
        diagnostics: dict,
        job_id: str,
    ) -> OcrResult:
        if recognized.is_empty:
            raise UnreadableDocumentError(NO_TEXT_ERROR, details={"detail": diagnostics.get("provider")})
        text = recognized.text.strip()
        if not text:
            diagnostics["hints"] = recognized.hints
            vendor = recognized.hints.get("vendor_name")
            match = self.suggestor.suggest(vendor or "", categories, vendor)
            return OcrResult(
                vendor_name=vendor,
                suggested_category_id=match.category.id if match else None,
                confidence=min(recognized.confidence, LOCAL_FILENAME_CONFIDENCE),
                fields=diagnostics,
            )

        fields = self.extractor.extract(text)
        match = self.suggestor.suggest(text, categories, fields.vendor_name)
        diagnostics["raw_text"] = text[:RAW_TEXT_PREVIEW_CHARS]
        if match is not None:
            diagnostics["category_source"] = match.source
            diagnostics["category_score"] = match.score

        logger.info(
            "Document parsed",
            extra={"job_id": job_id, "provider": recognized.provider},
        )
        return OcrResult(
            vendor_name=fields.vendor_name,
            vendor_trn=fields.vendor_trn,
            invoice_number=fields.invoice_number,
            amount=fields.amount,
            vat_amount=fields.vat_amount,
            vat_is_estimate=fields.vat_is_estimate,
            expense_date=fields.expense_date,
            description=fields.description,
            suggested_category_id=match.category.id if match else None,
            confidence=max(0.0, min(1.0, recognized.confidence)),
            fields=diagnostics,
        )
