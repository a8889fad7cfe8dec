"""
Typed contracts shared by the queue service, the worker and the pipeline.

``OcrJob`` and ``OcrResult`` are persisted and returned over HTTP, so they are
pydantic models. The value objects passed between pipeline stages are plain
dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator

from expense_ocr.pipeline.core.exceptions import InvalidJobTransitionError


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Status each target may be entered from. PROCESSING -> PROCESSING is queue
# redelivery after a worker crash.
ALLOWED_SOURCES: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset(),
    JobStatus.PROCESSING: frozenset({JobStatus.PENDING, JobStatus.PROCESSING}),
    JobStatus.COMPLETED: frozenset({JobStatus.PROCESSING}),
    JobStatus.FAILED: frozenset({JobStatus.PENDING, JobStatus.PROCESSING}),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return current in ALLOWED_SOURCES[target]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OcrResult(BaseModel):
    """
    Structured fields extracted from one receipt or invoice.

    Every field is optional: a value the parser could not find with
    confidence is left as None rather than guessed.
    """

    vendor_name: Optional[str] = None
    vendor_trn: Optional[str] = None
    invoice_number: Optional[str] = None
    amount: Optional[Decimal] = None
    vat_amount: Optional[Decimal] = None
    vat_is_estimate: bool = False
    expense_date: Optional[date] = None
    description: Optional[str] = None
    suggested_category_id: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    fields: dict[str, Any] = Field(default_factory=dict)

    @field_validator("amount", "vat_amount", mode="before")
    @classmethod
    def _decimal_from_float(cls, value: Any) -> Any:
        if isinstance(value, float):
            return Decimal(str(value))
        return value

    @field_serializer("amount", "vat_amount")
    def _decimal_to_float(self, value: Optional[Decimal]) -> Optional[float]:
        if value is None:
            return None
        return float(value.quantize(Decimal("0.01")))

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OcrResult":
        return cls.model_validate(data)


class OcrJob(BaseModel):
    """
    Durable record of one uploaded document moving through OCR.

    Status only moves forward (pending -> processing -> completed | failed).
    The transition methods enforce that and keep the terminal-state
    invariants: a completed job has a result and no error, a failed job
    has an error and no result.
    """

    job_id: str
    organization_id: str
    user_id: Optional[str] = None
    id: Optional[int] = None
    file_name: str
    file_key: str
    file_url: str
    file_type: str
    file_size: int
    status: JobStatus = JobStatus.PENDING
    result: Optional[OcrResult] = None
    error: Optional[str] = None
    progress: int = Field(default=0, ge=0, le=100)
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def _check(self, target: JobStatus) -> None:
        if not can_transition(self.status, target):
            raise InvalidJobTransitionError(self.job_id, self.status.value, target.value)

    def mark_processing(self, now: Optional[datetime] = None) -> None:
        self._check(JobStatus.PROCESSING)
        self.status = JobStatus.PROCESSING
        if self.started_at is None:
            self.started_at = now or utcnow()

    def update_progress(self, progress: int) -> None:
        """Raise progress; lower values are ignored."""
        self.progress = max(self.progress, min(100, max(0, progress)))

    def mark_completed(self, result: OcrResult, now: Optional[datetime] = None) -> None:
        self._check(JobStatus.COMPLETED)
        self.status = JobStatus.COMPLETED
        self.result = result
        self.error = None
        self.progress = 100
        if self.completed_at is None:
            self.completed_at = now or utcnow()

    def mark_failed(self, error: str, now: Optional[datetime] = None) -> None:
        self._check(JobStatus.FAILED)
        self.status = JobStatus.FAILED
        self.error = error or "Unknown error"
        self.result = None
        if self.completed_at is None:
            self.completed_at = now or utcnow()

    def to_queue_payload(self) -> dict[str, Any]:
        """Message published to the OCR queue."""
        return {
            "job_id": self.job_id,
            "file_key": self.file_key,
            "file_url": self.file_url,
            "file_name": self.file_name,
            "file_type": self.file_type,
            "file_size": self.file_size,
            "organization_id": self.organization_id,
            "user_id": self.user_id,
        }


@dataclass(frozen=True)
class Category:
    """An expense category with the keywords that point to it."""

    id: str
    name: str
    keywords: tuple[str, ...] = ()
    description: Optional[str] = None


@dataclass
class ProviderText:
    """Raw OCR output from one provider call."""

    text: str
    confidence: float
    provider: str
    hints: dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip() and not self.hints


@dataclass
class PageImage:
    """One rasterized PDF page, PNG encoded."""

    page_number: int
    png: bytes
    width: int
    height: int
    is_blank: bool = False


@dataclass
class RasterizationResult:
    """
    Output of the document rasterizer.

    Born-digital PDFs carry ``text``/``text_pages`` and no images; scanned
    PDFs carry ``pages`` and an empty ``text``.
    """

    strategy: str
    page_count: int
    text: str = ""
    text_pages: list[str] = field(default_factory=list)
    pages: list[PageImage] = field(default_factory=list)

    @property
    def blank_pages(self) -> list[int]:
        return [p.page_number for p in self.pages if p.is_blank]


@dataclass
class PageSelection:
    """Chosen invoice page (0-based) plus the score of every page (None = empty)."""

    index: int
    scores: list[Optional[int]]


@dataclass
class ExtractedFields:
    vendor_name: Optional[str] = None
    vendor_trn: Optional[str] = None
    invoice_number: Optional[str] = None
    amount: Optional[Decimal] = None
    vat_amount: Optional[Decimal] = None
    vat_is_estimate: bool = False
    expense_date: Optional[date] = None
    description: Optional[str] = None
