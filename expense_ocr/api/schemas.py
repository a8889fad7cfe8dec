"""Pydantic request/response schemas for API endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from expense_ocr.pipeline.models.dto import JobStatus, OcrJob


class ProblemDetail(BaseModel):
    """RFC 7807 Problem Details for HTTP APIs.

    See: https://www.rfc-editor.org/rfc/rfc7807
    """

    type: str = Field(..., description="URI reference identifying the problem type")
    title: str = Field(..., description="Short, human-readable summary of the problem")
    status: int = Field(..., description="HTTP status code for this problem")
    detail: Optional[str] = Field(
        None, description="Human-readable explanation specific to this occurrence"
    )
    instance: Optional[str] = Field(
        None,
        description="URI reference identifying this specific occurrence (e.g., request path)",
    )

    # Extension members (allowed by RFC 7807)
    code: str = Field(..., description="Application-specific error code")
    category: str = Field(
        ..., description="Error category (client_error, server_error, etc.)"
    )
    retryable: bool = Field(
        default=False, description="Whether the request can be retried"
    )
    trace_id: Optional[str] = Field(
        None, description="Distributed tracing ID for correlation across services"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": "/errors/QUEUE_UNAVAILABLE",
                "title": "Queue unavailable: broker not reachable",
                "status": 503,
                "detail": "broker not reachable",
                "instance": "/v1/ocr/jobs",
                "code": "QUEUE_UNAVAILABLE",
                "category": "server_error",
                "retryable": True,
                "trace_id": "a1b2c3d4-e5f6-7890-abcd-ef1234567890",
            }
        }
    }


class JobCreatedResponse(BaseModel):
    job_id: str
    status: JobStatus
    message: str = "Document queued for OCR processing"


class JobStatusResponse(BaseModel):
    """Job state as seen by the client. ``result`` is set once completed."""

    job_id: str
    status: JobStatus
    progress: int
    file_name: str
    file_type: str
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: OcrJob) -> "JobStatusResponse":
        return cls(
            job_id=job.job_id,
            status=job.status,
            progress=job.progress,
            file_name=job.file_name,
            file_type=job.file_type,
            result=job.result.to_dict() if job.result else None,
            error=job.error,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


class CancelResponse(BaseModel):
    job_id: str
    cancelled: bool


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    broker: dict[str, Any]
    database: dict[str, Any]
