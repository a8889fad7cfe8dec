"""Unit tests for the OCR job stores."""

import json
from contextlib import asynccontextmanager
from decimal import Decimal

import pytest

from expense_ocr.pipeline.core.exceptions import InvalidJobTransitionError, ResourceNotFoundError
from expense_ocr.pipeline.models.dto import JobStatus, OcrResult
from expense_ocr.pipeline.resilience import RetryConfig
from expense_ocr.services.job_store import (
    MARK_FAILED_SQL,
    MARK_PROCESSING_SQL,
    PostgresJobStore,
    row_to_job,
)
from fakes import make_job


class FakeConnection:
    """Answers fetchrow calls from a script of rows or exceptions."""

    def __init__(self, *rows):
        self.rows = list(rows)
        self.queries = []

    async def fetchrow(self, sql, *args):
        self.queries.append((sql, args))
        row = self.rows.pop(0)
        if isinstance(row, Exception):
            raise row
        return row


class FakeDatabase:
    def __init__(self, conn):
        self.conn = conn

    async def get_pool(self):
        return self

    @asynccontextmanager
    async def acquire(self):
        yield self.conn


def job_row(**overrides):
    row = make_job(job_id="job-1").model_dump()
    row["id"] = 7
    row["status"] = "pending"
    row.update(overrides)
    return row


def postgres_store(*rows):
    conn = FakeConnection(*rows)
    store = PostgresJobStore(
        FakeDatabase(conn), RetryConfig(max_attempts=2, initial_delay_seconds=0.0, jitter=False)
    )
    return store, conn


class TestInMemoryJobStore:
    """Tests for the in-memory store."""

    @pytest.mark.asyncio
    async def test_create_assigns_id(self, job_store):
        first = await job_store.create(make_job())
        second = await job_store.create(make_job())

        assert (first.id, second.id) == (1, 2)

    @pytest.mark.asyncio
    async def test_get_scoped_to_organization(self, job_store):
        job = await job_store.create(make_job())

        assert (await job_store.get(job.job_id, "org-1")) is not None
        assert (await job_store.get(job.job_id, "org-2")) is None
        assert (await job_store.get("missing")) is None

    @pytest.mark.asyncio
    async def test_returned_jobs_are_copies(self, job_store):
        job = await job_store.create(make_job())
        job.status = JobStatus.COMPLETED

        stored = await job_store.get(job.job_id)

        assert stored.status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, job_store):
        job = await job_store.create(make_job())

        await job_store.mark_processing(job.job_id, 10)
        await job_store.update_progress(job.job_id, 30)
        done = await job_store.mark_completed(job.job_id, OcrResult(amount=Decimal("12.00")))

        assert done.status == JobStatus.COMPLETED
        assert done.progress == 100
        assert done.result.amount == Decimal("12.00")

    @pytest.mark.asyncio
    async def test_terminal_job_cannot_move(self, job_store):
        job = await job_store.create(make_job())
        await job_store.mark_failed(job.job_id, "boom")

        with pytest.raises(InvalidJobTransitionError):
            await job_store.mark_processing(job.job_id)

    @pytest.mark.asyncio
    async def test_unknown_job(self, job_store):
        with pytest.raises(ResourceNotFoundError):
            await job_store.update_progress("missing", 50)

    @pytest.mark.asyncio
    async def test_cancel_pending_only(self, job_store):
        pending = await job_store.create(make_job())
        running = await job_store.create(make_job())
        await job_store.mark_processing(running.job_id)

        cancelled = await job_store.cancel_pending(pending.job_id, "Cancelled")

        assert cancelled.status == JobStatus.FAILED
        assert cancelled.error == "Cancelled"
        assert await job_store.cancel_pending(running.job_id, "Cancelled") is None
        assert (await job_store.get(running.job_id)).status == JobStatus.PROCESSING


class TestPostgresJobStore:
    def test_row_to_job_decodes_json_result(self):
        job = row_to_job(job_row(status="completed", progress=100, result=json.dumps({"amount": 10.5})))

        assert job.status == JobStatus.COMPLETED
        assert job.result.amount == Decimal("10.5")

    @pytest.mark.asyncio
    async def test_mark_processing_passes_allowed_sources(self):
        store, conn = postgres_store(job_row(status="processing", progress=10))

        job = await store.mark_processing("job-1", 10)

        sql, args = conn.queries[0]
        assert sql == MARK_PROCESSING_SQL
        assert args[:2] == ("job-1", 10)
        assert sorted(args[2]) == ["pending", "processing"]
        assert job.status == JobStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_blocked_transition_reports_current_status(self):
        store, _ = postgres_store(None, job_row(status="completed", progress=100))

        with pytest.raises(InvalidJobTransitionError) as exc_info:
            await store.mark_failed("job-1", "late failure")

        assert exc_info.value.details["current"] == "completed"

    @pytest.mark.asyncio
    async def test_transition_on_missing_job(self):
        store, _ = postgres_store(None, None)

        with pytest.raises(ResourceNotFoundError):
            await store.mark_processing("job-1")

    @pytest.mark.asyncio
    async def test_connection_errors_retried(self):
        store, conn = postgres_store(ConnectionError("reset"), job_row())

        job = await store.get("job-1", "org-1")

        assert job.job_id == "job-1"
        assert len(conn.queries) == 2

    @pytest.mark.asyncio
    async def test_cancel_pending_targets_pending_only(self):
        store, conn = postgres_store(None)

        assert await store.cancel_pending("job-1", "Cancelled") is None
        sql, args = conn.queries[0]
        assert sql == MARK_FAILED_SQL
        assert args == ("job-1", "Cancelled", ["pending"])
