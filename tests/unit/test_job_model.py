"""Unit tests for the job and result models."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from expense_ocr.pipeline.core.exceptions import InvalidJobTransitionError
from expense_ocr.pipeline.models.dto import (
    JobStatus,
    OcrResult,
    can_transition,
)
from fakes import make_job


class TestTransitions:
    """Status only moves forward."""

    def test_allowed_transitions(self):
        assert can_transition(JobStatus.PENDING, JobStatus.PROCESSING)
        assert can_transition(JobStatus.PROCESSING, JobStatus.PROCESSING)
        assert can_transition(JobStatus.PROCESSING, JobStatus.COMPLETED)
        assert can_transition(JobStatus.PENDING, JobStatus.FAILED)

    def test_forbidden_transitions(self):
        assert not can_transition(JobStatus.PENDING, JobStatus.COMPLETED)
        assert not can_transition(JobStatus.COMPLETED, JobStatus.PROCESSING)
        assert not can_transition(JobStatus.FAILED, JobStatus.COMPLETED)
        assert not can_transition(JobStatus.PROCESSING, JobStatus.PENDING)

    def test_terminal_statuses(self):
        assert JobStatus.COMPLETED.is_terminal
        assert JobStatus.FAILED.is_terminal
        assert not JobStatus.PROCESSING.is_terminal


class TestOcrJob:
    def test_new_job_is_pending(self):
        job = make_job()
        assert job.status == JobStatus.PENDING
        assert job.progress == 0
        assert job.result is None and job.error is None

    def test_complete_flow(self):
        job = make_job()
        job.mark_processing()
        job.mark_completed(OcrResult(amount=Decimal("10.00")))

        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100
        assert job.error is None
        assert job.completed_at is not None

    def test_cannot_complete_pending_job(self):
        job = make_job()
        with pytest.raises(InvalidJobTransitionError):
            job.mark_completed(OcrResult())

    def test_cannot_leave_terminal_state(self):
        job = make_job()
        job.mark_failed("boom")
        with pytest.raises(InvalidJobTransitionError):
            job.mark_processing()

    def test_redelivery_keeps_started_at(self):
        """Test a second pick-up of a processing job keeps the first start time."""
        first = datetime(2024, 10, 1, 8, 0, tzinfo=timezone.utc)
        job = make_job()
        job.mark_processing(now=first)
        job.mark_processing(now=datetime(2024, 10, 1, 9, 0, tzinfo=timezone.utc))

        assert job.started_at == first
        assert job.status == JobStatus.PROCESSING

    def test_failed_job_has_error_and_no_result(self):
        job = make_job()
        job.mark_processing()
        job.mark_failed("")

        assert job.status == JobStatus.FAILED
        assert job.error == "Unknown error"
        assert job.result is None

    def test_progress_never_decreases(self):
        job = make_job()
        job.update_progress(30)
        job.update_progress(10)
        assert job.progress == 30

        job.update_progress(250)
        assert job.progress == 100

    def test_queue_payload(self):
        job = make_job(job_id="job-1", file_size=2048)
        payload = job.to_queue_payload()

        assert payload["job_id"] == "job-1"
        assert payload["file_size"] == 2048
        assert payload["organization_id"] == "org-1"
        assert "status" not in payload


class TestOcrResult:
    def test_to_dict_serializes_money_and_dates(self):
        result = OcrResult(
            amount=Decimal("1250.5"),
            vat_amount=Decimal("59.55"),
            expense_date=date(2024, 10, 1),
            confidence=0.9,
        )

        data = result.to_dict()

        assert data["amount"] == 1250.5
        assert data["vat_amount"] == 59.55
        assert data["expense_date"] == "2024-10-01"
        assert data["vat_is_estimate"] is False

    def test_from_dict_restores_types(self):
        result = OcrResult.from_dict({"amount": 300.0, "expense_date": "2024-10-01"})

        assert result.amount == Decimal("300.0")
        assert result.expense_date == date(2024, 10, 1)

    def test_confidence_bounds(self):
        with pytest.raises(ValueError):
            OcrResult(confidence=1.5)
