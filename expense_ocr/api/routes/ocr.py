"""OCR job endpoints: submit a receipt, poll its status, cancel it."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile, status

from expense_ocr.api.file_validation import validate_upload_file
from expense_ocr.api.schemas import (
    CancelResponse,
    JobCreatedResponse,
    JobStatusResponse,
    ProblemDetail,
)
from expense_ocr.core.dependencies import get_organization_id, get_queue_service, get_user_id
from expense_ocr.pipeline.core.exceptions import ResourceNotFoundError
from expense_ocr.services.queue import OcrQueueService

router = APIRouter(prefix="/v1/ocr", tags=["ocr"])
logger = logging.getLogger(__name__)

_ERRORS = {
    404: {"description": "Job not found", "model": ProblemDetail},
    422: {"description": "Validation Error", "model": ProblemDetail},
    503: {"description": "Queue or storage unavailable", "model": ProblemDetail},
}


@router.post(
    "/jobs",
    response_model=JobCreatedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={413: {"description": "File too large", "model": ProblemDetail}, **_ERRORS},
)
async def create_job(
    request: Request,
    file: UploadFile = File(..., description="Receipt or invoice (PDF or image)"),
    organization_id: str = Depends(get_organization_id),
    user_id: Optional[str] = Depends(get_user_id),
    queue: OcrQueueService = Depends(get_queue_service),
):
    trace_id = getattr(request.state, "trace_id", None)
    logger.info(
        f"[NEW REQUEST] file={file.filename}",
        extra={"trace_id": trace_id, "organization_id": organization_id, "user_id": user_id},
    )

    mime_type = await validate_upload_file(file)
    data = await file.read()

    job = await queue.enqueue(
        data=data,
        file_name=file.filename or "upload",
        mime_type=mime_type,
        organization_id=organization_id,
        user_id=user_id,
    )
    return JobCreatedResponse(job_id=job.job_id, status=job.status)


@router.get("/jobs/{job_id}", response_model=JobStatusResponse, responses=_ERRORS)
async def get_job(
    job_id: str,
    organization_id: str = Depends(get_organization_id),
    queue: OcrQueueService = Depends(get_queue_service),
):
    job = await queue.get_status(job_id, organization_id)
    if job is None:
        raise ResourceNotFoundError("OCR job", job_id)
    return JobStatusResponse.from_job(job)


@router.delete("/jobs/{job_id}", response_model=CancelResponse, responses=_ERRORS)
async def cancel_job(
    job_id: str,
    organization_id: str = Depends(get_organization_id),
    queue: OcrQueueService = Depends(get_queue_service),
):
    cancelled = await queue.cancel(job_id, organization_id)
    return CancelResponse(job_id=job_id, cancelled=cancelled)
