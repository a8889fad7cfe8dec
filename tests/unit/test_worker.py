"""Unit tests for background OCR job processing."""

import json
from decimal import Decimal

import pytest

from expense_ocr.pipeline.models.dto import JobStatus
from expense_ocr.pipeline.orchestrator import NO_TEXT_ERROR, DocumentPipeline
from expense_ocr.pipeline.providers import OcrProviderAdapter
from expense_ocr.pipeline.rasterizer import DocumentRasterizer
from expense_ocr.pipeline.resilience import RetryConfig
from expense_ocr.services.category_store import StaticCategoryStore
from expense_ocr.services.storage.artifacts import LocalArtifactStore
from expense_ocr.services.worker import OcrWorker, error_text
from fakes import FakeProvider, FakeRasterStrategy, make_job, make_png

NO_WAIT = RetryConfig(max_attempts=2, initial_delay_seconds=0.0, jitter=False)
RECEIPT_TEXT = "Blue Fin Restaurant\nDinner for two\nTotal: 120.00"


def make_worker(job_store, storage, categories, provider=None, artifacts=None):
    pipeline = DocumentPipeline(
        adapter=OcrProviderAdapter(provider=provider, retry_config=NO_WAIT),
        rasterizer=DocumentRasterizer([FakeRasterStrategy([make_png()])]),
    )
    return OcrWorker(
        job_store=job_store,
        storage=storage,
        category_store=StaticCategoryStore(categories),
        pipeline=pipeline,
        artifacts=artifacts,
        download_retry=NO_WAIT,
    )


async def queued_job(job_store, storage, data=None, **overrides):
    job = make_job(**overrides)
    storage.objects[job.file_key] = data if data is not None else make_png()
    return await job_store.create(job)


class TestOcrWorker:
    """Every job ends completed or failed."""

    @pytest.mark.asyncio
    async def test_completes_job(self, job_store, storage, categories, tmp_path):
        job = await queued_job(job_store, storage)
        worker = make_worker(
            job_store, storage, categories, FakeProvider(RECEIPT_TEXT), LocalArtifactStore(tmp_path)
        )

        done = await worker.process(job.job_id)

        assert done.status == JobStatus.COMPLETED
        assert done.progress == 100
        assert done.started_at is not None
        assert done.result.amount == Decimal("120.00")
        assert done.result.suggested_category_id == "food"

        saved = json.loads(next(tmp_path.glob("*/*/result.json")).read_text())
        assert saved["amount"] == 120.0

    @pytest.mark.asyncio
    async def test_unknown_job_dropped(self, job_store, storage, categories):
        worker = make_worker(job_store, storage, categories, FakeProvider(RECEIPT_TEXT))

        assert await worker.process("missing") is None

    @pytest.mark.asyncio
    async def test_terminal_job_skipped(self, job_store, storage, categories):
        job = await queued_job(job_store, storage)
        await job_store.mark_failed(job.job_id, "Cancelled before processing")
        provider = FakeProvider(RECEIPT_TEXT)

        result = await make_worker(job_store, storage, categories, provider).process(job.job_id)

        assert result.status == JobStatus.FAILED
        assert result.error == "Cancelled before processing"
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_redelivered_processing_job_runs_again(self, job_store, storage, categories):
        job = await queued_job(job_store, storage)
        first = await job_store.mark_processing(job.job_id, 30)

        done = await make_worker(job_store, storage, categories, FakeProvider(RECEIPT_TEXT)).process(job.job_id)

        assert done.status == JobStatus.COMPLETED
        assert done.started_at == first.started_at

    @pytest.mark.asyncio
    async def test_missing_file_fails_job(self, job_store, storage, categories):
        job = await job_store.create(make_job())

        failed = await make_worker(job_store, storage, categories, FakeProvider(RECEIPT_TEXT)).process(job.job_id)

        assert failed.status == JobStatus.FAILED
        assert failed.error.startswith("Storage download failed")
        assert failed.result is None

    @pytest.mark.asyncio
    async def test_unreadable_document_fails_job(self, job_store, storage, categories):
        job = await queued_job(job_store, storage, file_name="scan_001.png")

        failed = await make_worker(job_store, storage, categories).process(job.job_id)

        assert failed.status == JobStatus.FAILED
        assert failed.error == NO_TEXT_ERROR

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_job(self, job_store, storage, categories):
        job = await queued_job(job_store, storage)
        worker = make_worker(job_store, storage, categories, FakeProvider(RECEIPT_TEXT))

        def explode(*args):
            raise KeyError("fields")

        worker.pipeline.run = explode

        failed = await worker.process(job.job_id)

        assert failed.status == JobStatus.FAILED
        assert failed.error == "'fields'"


class TestErrorText:
    def test_plain_exception_without_message(self):
        assert error_text(RuntimeError()) == "RuntimeError"
