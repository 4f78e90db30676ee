# ============================================================================
# MODEL AND CONFIG TESTS
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Tests - Pydantic models and environment configuration
# PURPOSE: Verify payload validation, job lifecycle rules and config parsing
# CREATED: 19 OCT 2026
# ============================================================================
"""
Model and Config Tests

Covers:
1. Payload models per job type
2. Job.parse_payload -> InputValidationError
3. Status transitions and operator retry
4. ValidationReport factories (scored, degraded, skipped, parse failure)
5. Defaults / WorkerConfig from environment

Run with:
    pytest tests/test_models.py -v
"""

import pytest
from pydantic import ValidationError

from core.config import Defaults, SchedulerDefaults, get_defaults, reset_defaults
from core.contracts import Audience, GateKind, JobStatus, JobType
from core.errors import InputValidationError
from core.models import (
    SENTINEL_SCORE,
    CartoonizePayload,
    ImageGenerationPayload,
    Job,
    StorybookPayload,
    ValidationReport,
)
from worker import WorkerConfig


# ============================================================================
# PAYLOADS
# ============================================================================

class TestPayloads:
    """One model per job type."""

    def test_storybook_defaults(self):
        payload = StorybookPayload(title="Fox", story="A fox went out")
        assert payload.audience == Audience.CHILDREN
        assert payload.pages == []
        assert payload.character_image is None

    def test_empty_url_is_none(self):
        payload = ImageGenerationPayload(image_prompt="A fox", reference_image_url="")
        assert payload.reference_image_url is None

    def test_non_http_url_rejected(self):
        with pytest.raises(ValidationError):
            CartoonizePayload(original_image_url="file:///tmp/photo.png")

    def test_missing_original_image_rejected(self):
        with pytest.raises(ValidationError):
            CartoonizePayload(original_image_url="")

    def test_target_panels(self):
        assert Audience.CHILDREN.target_panels == 8
        assert Audience.ADULTS.target_panels == 24


class TestParsePayload:
    """Malformed payloads are never retried."""

    def test_valid(self):
        job = Job(job_id="job-001", job_type=JobType.AUTO_STORY,
                  payload={"genre": "mystery", "character_description": "A tall heron"})
        payload = job.parse_payload()
        assert payload.genre == "mystery"

    def test_invalid_names_field(self):
        job = Job(job_id="job-001", job_type=JobType.STORYBOOK, payload={"title": "Fox"})

        with pytest.raises(InputValidationError) as exc_info:
            job.parse_payload()

        assert exc_info.value.field == "story"
        assert exc_info.value.retryable is False
        assert "storybook" in exc_info.value.message

    def test_invalid_audience(self):
        job = Job(job_id="job-001", job_type=JobType.SCENES,
                  payload={"story": "A fox", "audience": "toddlers"})
        with pytest.raises(InputValidationError):
            job.parse_payload()


# ============================================================================
# JOB LIFECYCLE
# ============================================================================

class TestJobLifecycle:
    """Status transitions and retry."""

    @pytest.mark.parametrize("current,target,allowed", [
        (JobStatus.PENDING, JobStatus.PROCESSING, True),
        (JobStatus.PENDING, JobStatus.COMPLETED, False),
        (JobStatus.PROCESSING, JobStatus.PENDING, True),
        (JobStatus.FAILED, JobStatus.PENDING, True),
        (JobStatus.COMPLETED, JobStatus.PENDING, False),
        (JobStatus.CANCELLED, JobStatus.PROCESSING, False),
    ])
    def test_transitions(self, current, target, allowed):
        job = Job(job_id="job-001", job_type=JobType.SCENES, status=current)
        assert job.can_transition_to(target) is allowed

    def test_clone_for_retry(self):
        job = Job(
            job_id="job-001", job_type=JobType.SCENES, status=JobStatus.FAILED,
            progress=40, retry_count=4, error_message="boom", error_detail={"service": "ai"},
        )

        retry = job.clone_for_retry()

        assert retry.status == JobStatus.PENDING
        assert retry.retry_count == 0
        assert retry.progress == 0
        assert retry.error_message is None
        assert retry.error_detail is None
        assert job.status == JobStatus.FAILED

    def test_clone_requires_failed(self):
        with pytest.raises(ValueError):
            Job(job_id="job-001", job_type=JobType.SCENES).clone_for_retry()

    def test_retries_remaining(self):
        job = Job(job_id="job-001", job_type=JobType.SCENES, retry_count=2, max_retries=3)
        assert job.retries_remaining == 1
        assert job.is_terminal is False


# ============================================================================
# VALIDATION REPORTS
# ============================================================================

class TestValidationReport:
    """Factories and sentinel handling."""

    def test_scored(self):
        report = ValidationReport.scored(GateKind.STYLE_FIDELITY, 70, 70, {"visual_clarity": 70})
        assert report.passes_threshold is True
        assert report.is_sentinel is False
        assert report.summary() == "style_fidelity: 70% PASSED (threshold 70%)"

    def test_degraded(self):
        report = ValidationReport.degraded_pass(GateKind.CHARACTER_CONSISTENCY, 85, ["facial"])
        assert report.overall_score == SENTINEL_SCORE
        assert report.is_sentinel
        assert report.degraded and report.passes_threshold
        assert report.dimension_scores == {"facial": SENTINEL_SCORE}
        assert "unvalidated" in report.summary()

    def test_skipped(self):
        report = ValidationReport.skipped_pass(
            GateKind.SEQUENTIAL_CONTINUITY, 85, ["lighting"], "Fewer than two panels on page",
        )
        assert report.skipped and not report.degraded
        assert report.is_sentinel

    def test_parse_failure_is_pessimistic(self):
        report = ValidationReport.parse_failure(GateKind.STYLE_FIDELITY, 70, ["visual_clarity"], "no JSON")
        assert report.overall_score == 0
        assert report.passes_threshold is False
        assert report.failure_reasons[0] == "Parse error"

    def test_score_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            ValidationReport.scored(GateKind.STYLE_FIDELITY, 70, 120, {})


# ============================================================================
# CONFIGURATION
# ============================================================================

class TestConfig:
    """Environment-driven defaults."""

    def test_scheduler_from_env(self, monkeypatch):
        monkeypatch.setenv("JOB_MAX_CONCURRENT", "3")
        monkeypatch.setenv("JOB_STALE_THRESHOLD_SEC", "120")

        config = SchedulerDefaults.from_env()

        assert config.max_concurrent_jobs == 3
        assert config.stale_job_threshold_seconds == 120.0
        assert config.max_failure_rate == 0.7

    def test_global_defaults_cached(self, monkeypatch):
        reset_defaults()
        try:
            first = get_defaults()
            assert get_defaults() is first
        finally:
            reset_defaults()

    def test_worker_config_from_env(self, monkeypatch):
        monkeypatch.setenv("WORKER_ID", "worker-7")
        monkeypatch.setenv("PORT", "9000")
        monkeypatch.setenv("WORKER_JOB_TYPES", "storybook, scenes")
        monkeypatch.setenv("WORKER_LOG_FORMAT", "json")
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db/stories")
        monkeypatch.setenv("SHUTDOWN_TIMEOUT", "12")

        config = WorkerConfig.from_env()

        assert config.worker_id == "worker-7"
        assert config.health_port == 9000
        assert config.job_types == [JobType.STORYBOOK, JobType.SCENES]
        assert config.json_logs is True
        assert config.database_url == "postgresql://u:p@db/stories"
        assert config.shutdown_timeout_seconds == 12.0
        assert config.deploy_schema is False

    def test_worker_config_defaults(self, monkeypatch):
        for name in ("WORKER_JOB_TYPES", "DATABASE_URL", "WORKER_LOG_LEVEL", "LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        config = WorkerConfig.from_env()

        assert config.job_types is None
        assert config.database_url is None
        assert config.log_level == "INFO"
        assert isinstance(config.defaults, Defaults)

    def test_unknown_job_type_rejected(self, monkeypatch):
        monkeypatch.setenv("WORKER_JOB_TYPES", "storybook,video")
        with pytest.raises(ValueError):
            WorkerConfig.from_env()
