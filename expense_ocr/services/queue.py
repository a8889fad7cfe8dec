"""
OCR job dispatch: upload, record, publish.

The job record exists before the message is published, so a worker can
never receive a job id the store does not know. If publishing fails the
record is moved to ``failed`` right away; no job is left ``pending`` with
nothing on the queue.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Optional, Protocol

from expense_ocr.pipeline.core.config import UPLOAD_FOLDER
from expense_ocr.pipeline.core.exceptions import (
    BaseError,
    BrokerUnavailableError,
    StorageError,
)
from expense_ocr.pipeline.models.dto import JobStatus, OcrJob
from expense_ocr.services.broker import BrokerMonitor
from expense_ocr.services.job_store import JobStore
from expense_ocr.services.storage.base import StoragePort

logger = logging.getLogger(__name__)

CANCELLED_ERROR = "Cancelled before processing"


class JobPublisher(Protocol):
    def publish(self, payload: dict[str, Any], task_id: str) -> None: ...

    def revoke(self, task_id: str) -> None: ...


def _reason(error: Exception) -> str:
    if isinstance(error, BrokerUnavailableError):
        return error.details.get("detail") or error.message
    if isinstance(error, BaseError):
        return error.message
    return str(error) or type(error).__name__


class OcrQueueService:
    def __init__(
        self,
        job_store: JobStore,
        storage: StoragePort,
        publisher: JobPublisher,
        broker: BrokerMonitor,
    ):
        self.job_store = job_store
        self.storage = storage
        self.publisher = publisher
        self.broker = broker

    async def enqueue(
        self,
        data: bytes,
        file_name: str,
        mime_type: str,
        organization_id: str,
        user_id: Optional[str] = None,
    ) -> OcrJob:
        """
        Store the file, create a pending job and publish it.

        Raises:
            StorageError: Upload failed; no job was created
            BrokerUnavailableError: Broker down; the job was marked failed
        """
        stored = await asyncio.to_thread(
            self.storage.upload, data, organization_id, UPLOAD_FOLDER, file_name, mime_type
        )

        job = await self.job_store.create(
            OcrJob(
                job_id=str(uuid.uuid4()),
                organization_id=organization_id,
                user_id=user_id,
                file_name=file_name,
                file_key=stored.key,
                file_url=stored.url,
                file_type=mime_type,
                file_size=stored.size,
            )
        )
        log_extra = {"job_id": job.job_id, "organization_id": organization_id, "user_id": user_id}

        try:
            self.broker.ensure_reachable()
            await asyncio.to_thread(self.publisher.publish, job.to_queue_payload(), job.job_id)
        except Exception as e:
            reason = _reason(e)
            if isinstance(e, BrokerUnavailableError) and self.broker.reachable:
                self.broker.mark_unreachable(reason)
            logger.error(f"Failed to queue job: {reason}", extra=log_extra)
            await self.job_store.mark_failed(job.job_id, f"Failed to queue job: {reason}")
            raise

        logger.info("OCR job queued", extra=log_extra)
        return job

    async def get_status(self, job_id: str, organization_id: str) -> Optional[OcrJob]:
        return await self.job_store.get(job_id, organization_id)

    async def cancel(self, job_id: str, organization_id: str) -> bool:
        """
        Cancel a job that no worker has picked up yet.

        Returns:
            True when the job was cancelled, False when it is unknown, belongs
            to another organization or has already left ``pending``.
        """
        job = await self.job_store.get(job_id, organization_id)
        if job is None or job.status != JobStatus.PENDING:
            return False

        # picked up by a worker between the read and the write
        if await self.job_store.cancel_pending(job_id, CANCELLED_ERROR) is None:
            return False

        try:
            await asyncio.to_thread(self.publisher.revoke, job_id)
        except BrokerUnavailableError as e:
            logger.warning(f"Could not revoke queued task: {e.message}", extra={"job_id": job_id})

        try:
            await asyncio.to_thread(self.storage.delete, job.file_key)
        except StorageError as e:
            logger.warning(f"Could not delete uploaded file: {e.message}", extra={"job_id": job_id})

        logger.info("OCR job cancelled", extra={"job_id": job_id, "organization_id": organization_id})
        return True
