"""Unit tests for OCR job dispatch."""

import pytest

from expense_ocr.pipeline.core.exceptions import BrokerUnavailableError, StorageError
from expense_ocr.pipeline.models.dto import JobStatus
from expense_ocr.services.queue import CANCELLED_ERROR, OcrQueueService
from fakes import FakeStorage, make_png

PNG = make_png()


@pytest.fixture
def queue(job_store, storage, publisher, reachable_broker):
    return OcrQueueService(job_store, storage, publisher, reachable_broker)


def only_job(job_store):
    jobs = list(job_store._jobs.values())
    assert len(jobs) == 1
    return jobs[0]


class TestEnqueue:
    """Tests for upload, record and publish."""

    @pytest.mark.asyncio
    async def test_enqueue_publishes_pending_job(self, queue, storage, publisher):
        job = await queue.enqueue(PNG, "receipt.png", "image/png", "org-1", "user-9")

        assert job.status == JobStatus.PENDING
        assert job.file_key in storage.objects
        assert job.file_key.startswith("org-1/ocr-temp/")
        assert job.file_size == len(PNG)

        payload, task_id = publisher.published[0]
        assert task_id == job.job_id
        assert payload["job_id"] == job.job_id
        assert payload["user_id"] == "user-9"

    @pytest.mark.asyncio
    async def test_upload_failure_creates_no_job(self, job_store, publisher, reachable_broker):
        queue = OcrQueueService(job_store, FakeStorage(fail_on="upload"), publisher, reachable_broker)

        with pytest.raises(StorageError):
            await queue.enqueue(PNG, "receipt.png", "image/png", "org-1")

        assert job_store._jobs == {}
        assert publisher.published == []

    @pytest.mark.asyncio
    async def test_broker_known_down_fails_job(self, queue, job_store, publisher, reachable_broker):
        reachable_broker._reachable = False

        with pytest.raises(BrokerUnavailableError):
            await queue.enqueue(PNG, "receipt.png", "image/png", "org-1")

        job = only_job(job_store)
        assert job.status == JobStatus.FAILED
        assert job.error == "Failed to queue job: broker not reachable"
        assert publisher.published == []

    @pytest.mark.asyncio
    async def test_publish_failure_marks_broker_down(self, job_store, storage, publisher, reachable_broker):
        publisher.error = BrokerUnavailableError("connection refused")
        queue = OcrQueueService(job_store, storage, publisher, reachable_broker)

        with pytest.raises(BrokerUnavailableError):
            await queue.enqueue(PNG, "receipt.png", "image/png", "org-1")

        assert reachable_broker.reachable is False
        assert only_job(job_store).error == "Failed to queue job: connection refused"
        await reachable_broker.stop()

    @pytest.mark.asyncio
    async def test_unexpected_publish_error_fails_job(self, job_store, storage, publisher, reachable_broker):
        publisher.error = RuntimeError("serializer exploded")
        queue = OcrQueueService(job_store, storage, publisher, reachable_broker)

        with pytest.raises(RuntimeError):
            await queue.enqueue(PNG, "receipt.png", "image/png", "org-1")

        assert reachable_broker.reachable is True
        assert only_job(job_store).error == "Failed to queue job: serializer exploded"


class TestStatusAndCancel:
    @pytest.mark.asyncio
    async def test_get_status_scoped_to_organization(self, queue):
        job = await queue.enqueue(PNG, "receipt.png", "image/png", "org-1")

        assert (await queue.get_status(job.job_id, "org-1")).job_id == job.job_id
        assert await queue.get_status(job.job_id, "org-2") is None

    @pytest.mark.asyncio
    async def test_cancel_pending_job(self, queue, job_store, storage, publisher):
        job = await queue.enqueue(PNG, "receipt.png", "image/png", "org-1")

        assert await queue.cancel(job.job_id, "org-1") is True

        stored = await job_store.get(job.job_id)
        assert stored.status == JobStatus.FAILED
        assert stored.error == CANCELLED_ERROR
        assert publisher.revoked == [job.job_id]
        assert storage.deleted == [job.file_key]

    @pytest.mark.asyncio
    async def test_cannot_cancel_processing_job(self, queue, job_store, publisher):
        job = await queue.enqueue(PNG, "receipt.png", "image/png", "org-1")
        await job_store.mark_processing(job.job_id)

        assert await queue.cancel(job.job_id, "org-1") is False
        assert publisher.revoked == []

    @pytest.mark.asyncio
    async def test_cannot_cancel_other_organizations_job(self, queue):
        job = await queue.enqueue(PNG, "receipt.png", "image/png", "org-1")

        assert await queue.cancel(job.job_id, "org-2") is False

    @pytest.mark.asyncio
    async def test_cleanup_failures_do_not_undo_cancel(self, job_store, publisher, reachable_broker):
        storage = FakeStorage(fail_on="delete")
        queue = OcrQueueService(job_store, storage, publisher, reachable_broker)
        job = await queue.enqueue(PNG, "receipt.png", "image/png", "org-1")

        assert await queue.cancel(job.job_id, "org-1") is True
        assert (await job_store.get(job.job_id)).status == JobStatus.FAILED
