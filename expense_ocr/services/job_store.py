"""
OCR job record stores.

Both stores enforce forward-only status changes. The in-memory store
applies the transition methods on :class:`OcrJob` under a lock; the
Postgres store folds the allowed source statuses into the ``WHERE`` clause
so a concurrent writer can never move a job backwards.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from typing import Any, Optional, Protocol

import asyncpg

from expense_ocr.pipeline.core.config import INITIAL_BACKOFF, MAX_RETRIES
from expense_ocr.pipeline.core.exceptions import InvalidJobTransitionError, ResourceNotFoundError
from expense_ocr.pipeline.models.dto import ALLOWED_SOURCES, JobStatus, OcrJob, OcrResult
from expense_ocr.pipeline.resilience import RetryConfig, async_retry_with_backoff
from expense_ocr.services.database import DatabaseManager

logger = logging.getLogger(__name__)


class JobStore(Protocol):
    async def create(self, job: OcrJob) -> OcrJob: ...

    async def get(self, job_id: str, organization_id: Optional[str] = None) -> Optional[OcrJob]: ...

    async def mark_processing(self, job_id: str, progress: int = 0) -> OcrJob: ...

    async def update_progress(self, job_id: str, progress: int) -> OcrJob: ...

    async def mark_completed(self, job_id: str, result: OcrResult) -> OcrJob: ...

    async def mark_failed(self, job_id: str, error: str) -> OcrJob: ...

    async def cancel_pending(self, job_id: str, error: str) -> Optional[OcrJob]: ...


class InMemoryJobStore:
    """Process-local store for development and tests."""

    def __init__(self):
        self._jobs: dict[str, OcrJob] = {}
        self._lock = threading.Lock()
        self._next_id = 1

    async def create(self, job: OcrJob) -> OcrJob:
        with self._lock:
            stored = job.model_copy(deep=True)
            stored.id = self._next_id
            self._next_id += 1
            self._jobs[job.job_id] = stored
            return stored.model_copy(deep=True)

    async def get(self, job_id: str, organization_id: Optional[str] = None) -> Optional[OcrJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            if organization_id is not None and job.organization_id != organization_id:
                return None
            return job.model_copy(deep=True)

    def _update(self, job_id: str, apply) -> OcrJob:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise ResourceNotFoundError("OCR job", job_id)
            updated = job.model_copy(deep=True)
            apply(updated)
            self._jobs[job_id] = updated
            return updated.model_copy(deep=True)

    async def mark_processing(self, job_id: str, progress: int = 0) -> OcrJob:
        def apply(job: OcrJob) -> None:
            job.mark_processing()
            job.update_progress(progress)

        return self._update(job_id, apply)

    async def update_progress(self, job_id: str, progress: int) -> OcrJob:
        return self._update(job_id, lambda job: job.update_progress(progress))

    async def mark_completed(self, job_id: str, result: OcrResult) -> OcrJob:
        return self._update(job_id, lambda job: job.mark_completed(result))

    async def mark_failed(self, job_id: str, error: str) -> OcrJob:
        return self._update(job_id, lambda job: job.mark_failed(error))

    async def cancel_pending(self, job_id: str, error: str) -> Optional[OcrJob]:
        """Fail the job only if it is still pending; None otherwise."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.PENDING:
                return None
            updated = job.model_copy(deep=True)
            updated.mark_failed(error)
            self._jobs[job_id] = updated
            return updated.model_copy(deep=True)


_RETRYABLE_DB_ERRORS = (
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.InterfaceError,
    ConnectionError,
    asyncio.TimeoutError,
)

_COLUMNS = (
    "id, job_id, organization_id, user_id, file_name, file_key, file_url, file_type, "
    "file_size, status, result, error, progress, created_at, started_at, completed_at"
)

INSERT_SQL = f"""
INSERT INTO ocr_jobs (job_id, organization_id, user_id, file_name, file_key, file_url,
                      file_type, file_size, status, progress, created_at)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
RETURNING {_COLUMNS}
"""

SELECT_SQL = f"SELECT {_COLUMNS} FROM ocr_jobs WHERE job_id = $1"
SELECT_FOR_ORG_SQL = f"SELECT {_COLUMNS} FROM ocr_jobs WHERE job_id = $1 AND organization_id = $2"

MARK_PROCESSING_SQL = f"""
UPDATE ocr_jobs
SET status = 'processing',
    started_at = COALESCE(started_at, now()),
    progress = GREATEST(progress, $2)
WHERE job_id = $1 AND status = ANY($3::text[])
RETURNING {_COLUMNS}
"""

UPDATE_PROGRESS_SQL = f"""
UPDATE ocr_jobs
SET progress = GREATEST(progress, $2)
WHERE job_id = $1
RETURNING {_COLUMNS}
"""

MARK_COMPLETED_SQL = f"""
UPDATE ocr_jobs
SET status = 'completed',
    result = $2::jsonb,
    error = NULL,
    progress = 100,
    completed_at = COALESCE(completed_at, now())
WHERE job_id = $1 AND status = ANY($3::text[])
RETURNING {_COLUMNS}
"""

MARK_FAILED_SQL = f"""
UPDATE ocr_jobs
SET status = 'failed',
    error = $2,
    result = NULL,
    completed_at = COALESCE(completed_at, now())
WHERE job_id = $1 AND status = ANY($3::text[])
RETURNING {_COLUMNS}
"""


def _allowed(target: JobStatus) -> list[str]:
    return [s.value for s in ALLOWED_SOURCES[target]]


def row_to_job(row: Any) -> OcrJob:
    data = dict(row)
    result = data.get("result")
    if isinstance(result, str):
        result = json.loads(result)
    data["result"] = OcrResult.from_dict(result) if result else None
    return OcrJob.model_validate(data)


class PostgresJobStore:
    """
    ``ocr_jobs`` table access through the shared asyncpg pool.

    Writes are retried on connection-level failures only; a transition that
    matches no row is resolved into not-found or an invalid transition.
    """

    def __init__(self, db: DatabaseManager, retry_config: Optional[RetryConfig] = None):
        self.db = db
        self.retry_config = retry_config or RetryConfig(
            max_attempts=MAX_RETRIES,
            initial_delay_seconds=INITIAL_BACKOFF,
            max_delay_seconds=10.0,
        )

    async def _fetchrow(self, sql: str, *args: Any):
        async def run():
            pool = await self.db.get_pool()
            async with pool.acquire() as conn:
                return await conn.fetchrow(sql, *args)

        return await async_retry_with_backoff(run, self.retry_config, _RETRYABLE_DB_ERRORS)

    async def create(self, job: OcrJob) -> OcrJob:
        row = await self._fetchrow(
            INSERT_SQL,
            job.job_id,
            job.organization_id,
            job.user_id,
            job.file_name,
            job.file_key,
            job.file_url,
            job.file_type,
            job.file_size,
            job.status.value,
            job.progress,
            job.created_at,
        )
        logger.info(
            "Job record created",
            extra={"job_id": job.job_id, "organization_id": job.organization_id},
        )
        return row_to_job(row)

    async def get(self, job_id: str, organization_id: Optional[str] = None) -> Optional[OcrJob]:
        if organization_id is None:
            row = await self._fetchrow(SELECT_SQL, job_id)
        else:
            row = await self._fetchrow(SELECT_FOR_ORG_SQL, job_id, organization_id)
        return row_to_job(row) if row else None

    async def _transition(self, sql: str, job_id: str, target: JobStatus, value: Any) -> OcrJob:
        row = await self._fetchrow(sql, job_id, value, _allowed(target))
        if row is not None:
            return row_to_job(row)
        current = await self.get(job_id)
        if current is None:
            raise ResourceNotFoundError("OCR job", job_id)
        raise InvalidJobTransitionError(job_id, current.status.value, target.value)

    async def mark_processing(self, job_id: str, progress: int = 0) -> OcrJob:
        return await self._transition(MARK_PROCESSING_SQL, job_id, JobStatus.PROCESSING, progress)

    async def update_progress(self, job_id: str, progress: int) -> OcrJob:
        row = await self._fetchrow(UPDATE_PROGRESS_SQL, job_id, min(100, max(0, progress)))
        if row is None:
            raise ResourceNotFoundError("OCR job", job_id)
        return row_to_job(row)

    async def mark_completed(self, job_id: str, result: OcrResult) -> OcrJob:
        payload = json.dumps(result.to_dict())
        return await self._transition(MARK_COMPLETED_SQL, job_id, JobStatus.COMPLETED, payload)

    async def mark_failed(self, job_id: str, error: str) -> OcrJob:
        return await self._transition(MARK_FAILED_SQL, job_id, JobStatus.FAILED, error or "Unknown error")

    async def cancel_pending(self, job_id: str, error: str) -> Optional[OcrJob]:
        """Fail the job only if it is still pending; None otherwise."""
        row = await self._fetchrow(MARK_FAILED_SQL, job_id, error, [JobStatus.PENDING.value])
        return row_to_job(row) if row else None
