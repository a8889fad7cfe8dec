import asyncio
import logging
from typing import Any, Optional

from celery.signals import worker_process_shutdown

from expense_ocr.services.celery_app import PROCESS_OCR_TASK, celery_app
from expense_ocr.services.factory import WorkerRuntime, create_worker_runtime

logger = logging.getLogger(__name__)

# One event loop and one runtime per worker process; the asyncpg pool is
# bound to the loop it was created on.
_loop: Optional[asyncio.AbstractEventLoop] = None
_runtime: Optional[WorkerRuntime] = None


def _get_loop() -> asyncio.AbstractEventLoop:
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
        asyncio.set_event_loop(_loop)
    return _loop


async def _get_runtime() -> WorkerRuntime:
    global _runtime
    if _runtime is None:
        _runtime = await create_worker_runtime()
    return _runtime


@celery_app.task(name=PROCESS_OCR_TASK)
def process_ocr_job(payload: dict[str, Any]) -> dict[str, Any]:
    job_id = payload["job_id"]
    logger.info("OCR task received", extra={"job_id": job_id, "organization_id": payload.get("organization_id")})

    async def _worker():
        runtime = await _get_runtime()
        return await runtime.worker.process(job_id)

    # the terminal state is in the job store; Celery only sees a normal return
    try:
        job = _get_loop().run_until_complete(_worker())
    except Exception as e:
        logger.exception(f"OCR task crashed: {e}", extra={"job_id": job_id})
        return {"job_id": job_id, "status": None}
    return {"job_id": job_id, "status": job.status.value if job else None}


@worker_process_shutdown.connect
def _close_runtime(**kwargs):
    global _runtime
    if _runtime is None or _loop is None or _loop.is_closed():
        return
    _loop.run_until_complete(_runtime.close())
    _runtime = None
    _loop.close()
