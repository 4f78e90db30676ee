# ============================================================================
# JOB EXECUTOR TESTS
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Tests - Dispatch and error classification
# PURPOSE: Verify ExecutionResult, error keys and the recorded job outcome
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Executor Tests

Covers:
1. Success -> mark_completed, services_used reported
2. Malformed payload / unknown type -> not retryable
3. Quality and service failures -> retryable, classified by service
4. Unexpected exceptions -> "unknown", retryable
5. Persistence failures while recording the outcome never escape

Run with:
    pytest tests/test_executor.py -v
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock

from core.contracts import GateKind, JobStatus, JobType
from core.errors import (
    CriticalValidationFailure,
    ExternalServiceUnavailable,
    JobTimeout,
    MalformedResponse,
    ValidationFailure,
)
from core.models import Job
from worker import JobExecutor, classify_error


# ============================================================================
# FIXTURES
# ============================================================================

SCENES_PAYLOAD = {"story": "A fox went out on a chilly night"}


@pytest.fixture
def job_repo():
    repo = MagicMock()
    repo.update_progress = AsyncMock(return_value=True)
    repo.mark_completed = AsyncMock(return_value=True)
    repo.mark_failed = AsyncMock(return_value=JobStatus.PENDING)
    return repo


@pytest.fixture
def pipeline():
    p = MagicMock()
    p.run = AsyncMock(return_value={"pages": []})
    return p


@pytest.fixture
def executor(job_repo, pipeline):
    return JobExecutor(job_repo, {JobType.SCENES: pipeline})


def make_job(job_type=JobType.SCENES, payload=None) -> Job:
    return Job(job_id="job-001", job_type=job_type, payload=SCENES_PAYLOAD if payload is None else payload)


# ============================================================================
# CLASSIFICATION
# ============================================================================

class TestClassifyError:
    """errors_by_service keys."""

    def test_service_and_type(self):
        error = ValidationFailure(GateKind.CHARACTER_CONSISTENCY, 70, ["clothing"])
        assert classify_error(error) == "analysis_validation_failure"

    def test_critical(self):
        error = CriticalValidationFailure(GateKind.STYLE_FIDELITY, 80, [], ["age appropriateness"])
        assert classify_error(error) == "analysis_critical_validation_failure"

    def test_generation_unavailable(self):
        assert classify_error(ExternalServiceUnavailable("generation", "HTTP 502")) == \
            "generation_service_unavailable"

    def test_timeout(self):
        assert classify_error(JobTimeout("job-001", 601)) == "scheduler_job_timeout"


# ============================================================================
# EXECUTION
# ============================================================================

class TestExecute:
    """execute() never raises and records the outcome."""

    def test_success(self, executor, job_repo, pipeline):
        async def run_pipeline(run, payload):
            run.use("ai")
            await run.report(50, "halfway")
            return {"pages": [1]}

        pipeline.run = AsyncMock(side_effect=run_pipeline)

        result = asyncio.run(executor.execute(make_job()))

        assert result.success is True
        assert result.final_status == "completed"
        assert result.services_used == frozenset({"ai", "database"})
        job_repo.mark_completed.assert_awaited_once_with("job-001", {"pages": [1]})
        job_repo.mark_failed.assert_not_awaited()

        payload = pipeline.run.call_args.args[1]
        assert payload.story == SCENES_PAYLOAD["story"]

    def test_invalid_payload_not_retried(self, executor, job_repo, pipeline):
        result = asyncio.run(executor.execute(make_job(payload={"story": ""})))

        assert result.success is False
        assert result.error_key == "job_input_validation"
        pipeline.run.assert_not_awaited()
        args = job_repo.mark_failed.call_args.args
        assert args[0] == "job-001"
        assert args[2] is False
        assert args[3]["error_type"] == "input_validation"

    def test_unknown_job_type(self, executor, job_repo):
        result = asyncio.run(executor.execute(make_job(JobType.CARTOONIZE, {"original_image_url": "https://x.test/a.png"})))

        assert result.success is False
        assert result.error_key == "job_input_validation"
        assert job_repo.mark_failed.call_args.args[2] is False

    def test_validation_failure_is_retryable(self, executor, job_repo, pipeline):
        pipeline.run = AsyncMock(side_effect=ValidationFailure(
            GateKind.CHARACTER_CONSISTENCY, 72, ["facial below threshold"], attempts=2, checkpoint="page-1:character",
        ))

        result = asyncio.run(executor.execute(make_job()))

        assert result.success is False
        assert result.error_key == "analysis_validation_failure"
        assert result.final_status == "pending"
        message, retryable, detail = job_repo.mark_failed.call_args.args[1:]
        assert "72%" in message
        assert "facial below threshold" in message
        assert retryable is True
        assert detail["gate"] == "character_consistency"
        assert detail["checkpoint"] == "page-1:character"

    def test_budget_exhausted_reports_failed(self, executor, job_repo, pipeline):
        job_repo.mark_failed = AsyncMock(return_value=JobStatus.FAILED)
        pipeline.run = AsyncMock(side_effect=ExternalServiceUnavailable("generation", "HTTP 503"))

        result = asyncio.run(executor.execute(make_job()))

        assert result.final_status == "failed"
        assert result.error_key == "generation_service_unavailable"

    def test_malformed_plan(self, executor, pipeline):
        pipeline.run = AsyncMock(side_effect=MalformedResponse("generation", "scene plan has no pages"))
        result = asyncio.run(executor.execute(make_job()))
        assert result.error_key == "generation_unknown"

    def test_unexpected_exception(self, executor, job_repo, pipeline):
        pipeline.run = AsyncMock(side_effect=KeyError("pages"))

        result = asyncio.run(executor.execute(make_job()))

        assert result.success is False
        assert result.error_key == "unknown"
        assert job_repo.mark_failed.call_args.args[2] is True

    def test_mark_failed_outage_does_not_escape(self, executor, job_repo, pipeline):
        pipeline.run = AsyncMock(side_effect=ExternalServiceUnavailable("analysis", "down"))
        job_repo.mark_failed = AsyncMock(side_effect=ExternalServiceUnavailable("database", "down"))

        result = asyncio.run(executor.execute(make_job()))

        assert result.success is False
        assert result.error_key == "analysis_service_unavailable"
        assert result.final_status is None

    def test_mark_completed_outage_is_failure(self, executor, job_repo):
        job_repo.mark_completed = AsyncMock(side_effect=ExternalServiceUnavailable("database", "down"))

        result = asyncio.run(executor.execute(make_job()))

        assert result.success is False
        assert result.error_key == "database_service_unavailable"

    def test_progress_outage_is_best_effort(self, executor, job_repo, pipeline):
        job_repo.update_progress = AsyncMock(side_effect=ExternalServiceUnavailable("database", "down"))

        async def run_pipeline(run, payload):
            await run.report(10, "starting")
            return {"pages": []}

        pipeline.run = AsyncMock(side_effect=run_pipeline)

        assert asyncio.run(executor.execute(make_job())).success is True

    def test_cancellation_propagates(self, executor, pipeline):
        pipeline.run = AsyncMock(side_effect=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            asyncio.run(executor.execute(make_job()))
