"""
Background processing of one OCR job.

Progress checkpoints: 10 picked up, 30 file downloaded, 90 parsed,
100 completed. Whatever goes wrong, the job ends in a terminal state with
the error text; nothing is re-raised to the queue.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from expense_ocr.pipeline.core.config import INITIAL_BACKOFF, PROVIDER_MAX_ATTEMPTS
from expense_ocr.pipeline.core.exceptions import BaseError, InvalidJobTransitionError, StorageError
from expense_ocr.pipeline.models.dto import OcrJob
from expense_ocr.pipeline.orchestrator import DocumentPipeline
from expense_ocr.pipeline.resilience import RetryConfig, retry_with_backoff
from expense_ocr.services.category_store import CategoryStore
from expense_ocr.services.job_store import JobStore
from expense_ocr.services.storage.artifacts import LocalArtifactStore
from expense_ocr.services.storage.base import StoragePort

logger = logging.getLogger(__name__)

PROGRESS_STARTED = 10
PROGRESS_DOWNLOADED = 30
PROGRESS_PARSED = 90


def error_text(error: Exception) -> str:
    if isinstance(error, BaseError):
        return error.message
    return str(error) or type(error).__name__


class OcrWorker:
    def __init__(
        self,
        job_store: JobStore,
        storage: StoragePort,
        category_store: CategoryStore,
        pipeline: DocumentPipeline,
        artifacts: Optional[LocalArtifactStore] = None,
        download_retry: Optional[RetryConfig] = None,
    ):
        self.job_store = job_store
        self.storage = storage
        self.category_store = category_store
        self.pipeline = pipeline
        self.artifacts = artifacts
        self.download_retry = download_retry or RetryConfig(
            max_attempts=PROVIDER_MAX_ATTEMPTS,
            initial_delay_seconds=INITIAL_BACKOFF,
            max_delay_seconds=5.0,
        )

    def _download(self, key: str) -> bytes:
        return retry_with_backoff(self.storage.download, self.download_retry, (StorageError,), key)

    async def process(self, job_id: str) -> Optional[OcrJob]:
        """
        Run one job to a terminal state.

        Returns:
            The job as stored at the end, or None when the id is unknown.
        """
        job = await self.job_store.get(job_id)
        if job is None:
            logger.error("Job not found, dropping message", extra={"job_id": job_id})
            return None
        if job.status.is_terminal:
            logger.info(
                f"Job already {job.status.value}, skipping",
                extra={"job_id": job_id, "status": job.status.value},
            )
            return job

        try:
            job = await self.job_store.mark_processing(job_id, PROGRESS_STARTED)
        except InvalidJobTransitionError:
            logger.info("Job left the queue before processing, skipping", extra={"job_id": job_id})
            return await self.job_store.get(job_id)

        log_extra = {"job_id": job_id, "organization_id": job.organization_id}
        logger.info("Processing OCR job", extra={**log_extra, "progress": PROGRESS_STARTED})
        started = time.monotonic()

        try:
            data = await asyncio.to_thread(self._download, job.file_key)
            await self.job_store.update_progress(job_id, PROGRESS_DOWNLOADED)

            categories = await self.category_store.list_categories(job.organization_id)
            result = await asyncio.to_thread(
                self.pipeline.run, data, job.file_name, job.file_type, job_id, categories
            )
            await self.job_store.update_progress(job_id, PROGRESS_PARSED)

            if self.artifacts is not None:
                await asyncio.to_thread(self.artifacts.save_result, job_id, result.to_dict())
            job = await self.job_store.mark_completed(job_id, result)
        except Exception as e:
            message = error_text(e)
            logger.error(
                f"OCR job failed: {message}",
                exc_info=not isinstance(e, BaseError),
                extra={**log_extra, "error_code": getattr(e, "error_code", type(e).__name__)},
            )
            return await self.job_store.mark_failed(job_id, message)

        logger.info(
            "OCR job completed",
            extra={
                **log_extra,
                "duration_ms": round((time.monotonic() - started) * 1000, 1),
                "progress": job.progress,
            },
        )
        return job
