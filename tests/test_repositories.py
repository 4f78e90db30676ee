# ============================================================================
# REPOSITORY TESTS
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Tests - SQL wiring against mocked pools
# PURPOSE: Verify parameters, status decisions and error normalization
# CREATED: 19 OCT 2026
# ============================================================================
"""
Repository Tests

No database: the psycopg pool and connection are MagicMocks, and each
test inspects the parameters passed to conn.execute().

Covers:
1. fetch_pending_jobs filters and row mapping
2. update_progress clamping and inactive jobs
3. mark_failed retry decision (pending vs failed vs not found)
4. Driver errors mapped to ExternalServiceUnavailable / RepositoryError
5. Validation result rows
6. Schema DDL rendering

Run with:
    pytest tests/test_repositories.py -v
"""

import asyncio
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import psycopg
from psycopg_pool import PoolTimeout

from core.contracts import GateKind, JobStatus, JobType
from core.errors import ExternalServiceUnavailable, RepositoryError
from core.models import ValidationReport
from repositories import JobRepository, ValidationResultRepository
from repositories.schema import build_schema_statements, render_schema_sql


# ============================================================================
# FIXTURES
# ============================================================================

def make_pool(conn=None, enter_error=None):
    """Pool whose connection() yields conn, or fails on enter."""
    conn = conn or make_conn()
    cm = MagicMock()
    cm.__aenter__ = AsyncMock(return_value=conn, side_effect=enter_error)
    cm.__aexit__ = AsyncMock(return_value=False)
    pool = MagicMock()
    pool.connection = MagicMock(return_value=cm)
    return pool


def make_conn(rowcount=1, fetchone=None, fetchall=None):
    result = MagicMock()
    result.rowcount = rowcount
    result.fetchone = AsyncMock(return_value=fetchone)
    result.fetchall = AsyncMock(return_value=fetchall or [])
    conn = MagicMock()
    conn.execute = AsyncMock(return_value=result)
    return conn


def job_row(**overrides):
    row = {
        "job_id": "job-001",
        "job_type": "storybook",
        "status": "pending",
        "progress": 0,
        "current_step": None,
        "payload": {"title": "Fox", "story": "A fox went out"},
        "result_data": None,
        "error_message": None,
        "error_detail": None,
        "retry_count": 0,
        "max_retries": 3,
        "created_at": datetime(2026, 10, 1, tzinfo=timezone.utc),
        "started_at": None,
        "completed_at": None,
        "updated_at": None,
        "user_id": "user-1",
        "correlation_id": "corr-1",
    }
    row.update(overrides)
    return row


def executed_params(conn):
    return conn.execute.call_args.args[1]


# ============================================================================
# JOB REPOSITORY
# ============================================================================

class TestFetchPendingJobs:
    """Oldest-first polling."""

    def test_filters_by_type(self):
        conn = make_conn(fetchall=[job_row()])
        repo = JobRepository(make_pool(conn))

        jobs = asyncio.run(repo.fetch_pending_jobs([JobType.STORYBOOK, JobType.SCENES], limit=5))

        assert executed_params(conn) == ("pending", ["storybook", "scenes"], 5)
        assert len(jobs) == 1
        job = jobs[0]
        assert job.job_type == JobType.STORYBOOK
        assert job.status == JobStatus.PENDING
        assert job.updated_at == job.created_at
        assert job.correlation_id == "corr-1"

    def test_unknown_job_type_rejected_not_returned(self):
        conn = make_conn(
            fetchone=("failed", 1, 3),
            fetchall=[
                job_row(job_id="job-bad", job_type="comic_book"),
                job_row(job_id="job-good", job_type="scenes", payload={"story": "A fox"}),
            ],
        )
        repo = JobRepository(make_pool(conn))

        jobs = asyncio.run(repo.fetch_pending_jobs(limit=5))

        assert [j.job_id for j in jobs] == ["job-good"]
        params = executed_params(conn)
        assert params["job_id"] == "job-bad"
        assert params["retryable"] is False
        detail = params["error_detail"].obj
        assert detail["error_type"] == "input_validation"
        assert detail["field"] == "job_type"

    def test_rejection_outage_still_returns_good_rows(self):
        conn = make_conn(fetchall=[
            job_row(job_id="job-bad", job_type="comic_book"),
            job_row(job_id="job-good"),
        ])
        result = conn.execute.return_value
        conn.execute = AsyncMock(side_effect=[result, psycopg.OperationalError("connection lost")])
        repo = JobRepository(make_pool(conn))

        jobs = asyncio.run(repo.fetch_pending_jobs(limit=5))

        assert [j.job_id for j in jobs] == ["job-good"]

    def test_all_types(self):
        conn = make_conn()
        repo = JobRepository(make_pool(conn))

        assert asyncio.run(repo.fetch_pending_jobs(limit=10)) == []
        assert executed_params(conn) == ("pending", 10)


class TestProgress:
    """update_progress / mark_completed."""

    def test_progress_clamped(self):
        conn = make_conn()
        repo = JobRepository(make_pool(conn))

        assert asyncio.run(repo.update_progress("job-001", 150, "Saving")) is True
        params = executed_params(conn)
        assert params[0] == 100
        assert params[1] == "Saving"
        assert params[2] == "processing"

    def test_inactive_job(self):
        repo = JobRepository(make_pool(make_conn(rowcount=0)))
        assert asyncio.run(repo.update_progress("job-001", 50)) is False

    def test_mark_completed(self):
        conn = make_conn()
        repo = JobRepository(make_pool(conn))

        assert asyncio.run(repo.mark_completed("job-001", {"pages": []})) is True
        params = executed_params(conn)
        assert params[0] == "completed"
        assert params[2].obj == {"pages": []}


class TestMarkFailed:
    """The database decides retry vs terminal failure."""

    def test_retryable_with_budget_goes_pending(self):
        conn = make_conn(fetchone=("pending", 1, 3))
        repo = JobRepository(make_pool(conn))

        status = asyncio.run(repo.mark_failed("job-001", "analysis unavailable", True, {"service": "analysis"}))

        assert status == JobStatus.PENDING
        params = executed_params(conn)
        assert params["retryable"] is True
        assert params["error_detail"].obj == {"service": "analysis"}

    def test_budget_exhausted_fails(self):
        repo = JobRepository(make_pool(make_conn(fetchone=("failed", 4, 3))))
        assert asyncio.run(repo.mark_failed("job-001", "still failing", True)) == JobStatus.FAILED

    def test_not_retryable(self):
        conn = make_conn(fetchone=("failed", 1, 3))
        repo = JobRepository(make_pool(conn))

        assert asyncio.run(repo.mark_failed("job-001", "bad payload", False)) == JobStatus.FAILED
        assert executed_params(conn)["retryable"] is False
        assert executed_params(conn)["error_detail"] is None

    def test_inactive_job_returns_none(self):
        repo = JobRepository(make_pool(make_conn(fetchone=None)))
        assert asyncio.run(repo.mark_failed("job-001", "late", True)) is None

    def test_message_truncated(self):
        conn = make_conn(fetchone=("failed", 1, 3))
        repo = JobRepository(make_pool(conn))

        asyncio.run(repo.mark_failed("job-001", "x" * 5000, False))
        assert len(executed_params(conn)["error_message"]) == 2000


class TestOperatorOperations:
    """cancel / retry / stats."""

    def test_cancel(self):
        conn = make_conn()
        repo = JobRepository(make_pool(conn))

        assert asyncio.run(repo.cancel_job("job-001")) is True
        assert executed_params(conn)[0] == "cancelled"

    def test_retry_only_failed_jobs(self):
        repo = JobRepository(make_pool(make_conn(fetchone=job_row(status="completed"))))
        assert asyncio.run(repo.retry_job("job-001")) is None

    def test_retry_failed_job(self):
        conn = make_conn(fetchone=job_row(status="failed", retry_count=4, error_message="boom"))
        repo = JobRepository(make_pool(conn))

        job = asyncio.run(repo.retry_job("job-001"))

        assert job.status == JobStatus.PENDING
        assert job.retry_count == 0
        assert job.error_message is None

    def test_job_stats(self):
        conn = make_conn(fetchall=[("pending", 2), ("failed", 1)])
        repo = JobRepository(make_pool(conn))

        stats = asyncio.run(repo.get_job_stats())

        assert stats["total"] == 3
        assert stats["pending"] == 2
        assert stats["failed"] == 1
        assert stats["completed"] == 0


class TestErrorNormalization:
    """Driver failures become taxonomy errors."""

    def test_pool_timeout_is_unavailable(self):
        repo = JobRepository(make_pool(enter_error=PoolTimeout("no connection available")))
        with pytest.raises(ExternalServiceUnavailable) as exc_info:
            asyncio.run(repo.fetch_pending_jobs())
        assert exc_info.value.service == "database"

    def test_operational_error_is_unavailable(self):
        repo = JobRepository(make_pool(enter_error=psycopg.OperationalError("connection refused")))
        with pytest.raises(ExternalServiceUnavailable):
            asyncio.run(repo.update_progress("job-001", 10))

    def test_other_driver_error_is_repository_error(self):
        conn = make_conn()
        conn.execute = AsyncMock(side_effect=psycopg.ProgrammingError("syntax error"))
        repo = JobRepository(make_pool(conn))

        with pytest.raises(RepositoryError) as exc_info:
            asyncio.run(repo.mark_completed("job-001", {}))
        assert exc_info.value.operation == "mark completed"
        assert exc_info.value.entity_id == "job-001"


# ============================================================================
# VALIDATION RESULTS
# ============================================================================

class TestValidationResultRepository:
    """One row per validation attempt."""

    def test_store(self):
        conn = make_conn()
        repo = ValidationResultRepository(make_pool(conn))
        report = ValidationReport.scored(
            GateKind.SEQUENTIAL_CONTINUITY, 85, 80, {"lighting": 80},
            failure_reasons=["lighting below threshold"], panel_numbers=[3, 4],
        )

        asyncio.run(repo.store_validation_result("job-001", 2, report, "page-2:continuity"))

        params = executed_params(conn)
        assert params["gate"] == "sequential_continuity"
        assert params["attempt_number"] == 2
        assert params["panel_number"] == 4
        assert params["checkpoint"] == "page-2:continuity"
        assert params["passes_threshold"] is False
        assert params["failure_reasons"].obj == ["lighting below threshold"]

    def test_store_degraded(self):
        conn = make_conn()
        repo = ValidationResultRepository(make_pool(conn))
        report = ValidationReport.degraded_pass(GateKind.STYLE_FIDELITY, 70, ["visual_clarity"])

        asyncio.run(repo.store_validation_result("job-001", 1, report))

        params = executed_params(conn)
        assert params["degraded"] is True
        assert params["overall_score"] == -1
        assert params["panel_number"] is None

    def test_list_for_job(self):
        rows = [{"job_id": "job-001", "attempt_number": 1}, {"job_id": "job-001", "attempt_number": 2}]
        conn = make_conn(fetchall=rows)
        repo = ValidationResultRepository(make_pool(conn))

        assert asyncio.run(repo.list_for_job("job-001")) == rows
        assert executed_params(conn) == ("job-001",)


# ============================================================================
# SCHEMA
# ============================================================================

class TestSchema:
    """DDL statements for both tables."""

    def test_statements_built(self):
        statements = build_schema_statements("storyworker_test")
        assert len(statements) >= 3

    def test_rendered_script_uses_schema(self):
        script = render_schema_sql("storyworker_test")
        assert "storyworker_test" in script
        assert "panel_validation_results" in script

    def test_max_retries_default(self):
        assert "max_retries INTEGER NOT NULL DEFAULT 5" in render_schema_sql("storyworker", default_max_retries=5)
        assert "DEFAULT 3" in render_schema_sql("storyworker")
