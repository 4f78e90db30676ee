# ============================================================================
# JOB MODEL
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Core model - One generation job
# PURPOSE: Track a job from submission through the pipeline to a terminal state
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: Job
# DEPENDENCIES: pydantic
# ============================================================================
"""
Job Model

A Job is one unit of work producing a generated multi-artifact output
(a storybook, a scene plan, a cartoonized character, a single image).

Jobs are owned by the persistence layer. The scheduler only holds a
transient in-flight projection (see core.models.inflight) while a job
is being processed.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, Field, ValidationError, computed_field

from core.contracts import JobStatus, JobType
from core.errors import InputValidationError
from core.models.payloads import PAYLOAD_MODELS


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Job(BaseModel):
    """
    A generation job.

    Maps to: storyworker.jobs table

    Lifecycle:
        1. Created with status=PENDING by an external submitter
        2. PROCESSING once a scheduler admits it and the pipeline starts
        3. COMPLETED when the pipeline finishes with the quality bar met
        4. FAILED when the pipeline fails and no retry budget remains
           (a retryable failure with budget left goes back to PENDING)
    """

    job_id: str = Field(..., max_length=64)
    job_type: JobType
    status: JobStatus = Field(default=JobStatus.PENDING)

    progress: int = Field(default=0, ge=0, le=100)
    current_step: Optional[str] = Field(default=None, max_length=500)

    payload: Dict[str, Any] = Field(
        default_factory=dict,
        description="Job-type specific input, validated by parse_payload()"
    )
    result_data: Optional[Dict[str, Any]] = Field(default=None)
    error_message: Optional[str] = Field(default=None, max_length=2000)
    error_detail: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Structured failure: gate, final score, reasons"
    )

    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=0)

    created_at: datetime = Field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=_utcnow)

    user_id: Optional[str] = Field(default=None, max_length=64)
    correlation_id: Optional[str] = Field(default=None, max_length=64)

    @computed_field
    @property
    def is_terminal(self) -> bool:
        """Check if job is in a terminal state."""
        return self.status.is_terminal()

    @computed_field
    @property
    def duration_seconds(self) -> Optional[float]:
        """Calculate job duration if started."""
        if not self.started_at:
            return None
        end_time = self.completed_at or _utcnow()
        return (end_time - self.started_at).total_seconds()

    @property
    def retries_remaining(self) -> int:
        return max(0, self.max_retries - self.retry_count)

    def parse_payload(self) -> BaseModel:
        """
        Validate the raw payload against the model for this job type.

        Raises:
            InputValidationError: Payload is malformed (never retried)
        """
        model: Optional[Type[BaseModel]] = PAYLOAD_MODELS.get(self.job_type)
        if model is None:
            raise InputValidationError(f"Unsupported job type: {self.job_type}", field="job_type")
        try:
            return model.model_validate(self.payload)
        except ValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            field_name = ".".join(str(p) for p in first.get("loc", ())) or None
            raise InputValidationError(
                f"Invalid {self.job_type.value} payload: {first.get('msg', str(e))}",
                field=field_name,
            ) from e

    def can_transition_to(self, new_status: JobStatus) -> bool:
        """
        Validate if a status transition is allowed.

        Valid transitions:
            PENDING -> PROCESSING, CANCELLED
            PROCESSING -> COMPLETED, FAILED, PENDING (retry), CANCELLED
            FAILED -> PENDING (operator retry)
            COMPLETED, CANCELLED -> (none)
        """
        if self.status == new_status:
            return True

        allowed = {
            JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.CANCELLED},
            JobStatus.PROCESSING: {
                JobStatus.COMPLETED, JobStatus.FAILED,
                JobStatus.PENDING, JobStatus.CANCELLED,
            },
            JobStatus.FAILED: {JobStatus.PENDING},
            JobStatus.COMPLETED: set(),
            JobStatus.CANCELLED: set(),
        }

        return new_status in allowed.get(self.status, set())

    def clone_for_retry(self) -> "Job":
        """Operator-triggered retry: a fresh PENDING copy of a failed job."""
        if self.status != JobStatus.FAILED:
            raise ValueError(f"Cannot retry job in status {self.status.value}")
        return self.model_copy(update={
            "status": JobStatus.PENDING,
            "progress": 0,
            "current_step": "Retry requested",
            "result_data": None,
            "error_message": None,
            "error_detail": None,
            "retry_count": 0,
            "started_at": None,
            "completed_at": None,
            "updated_at": _utcnow(),
        })


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["Job"]
