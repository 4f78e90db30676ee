# ============================================================================
# JOB EXECUTOR
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Core - Runs one admitted job to a recorded outcome
# PURPOSE: Payload validation, pipeline dispatch, error classification
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Executor

Runs an admitted job through its pipeline and writes the outcome to the
job row. execute() never raises (other than CancelledError); every
failure is classified into an ExecutionResult the scheduler can record.

Classification (error_key in errors_by_service):
    JobError with a service    -> "<service>_<error_type>", e.g.
                                  "analysis_validation_failure",
                                  "generation_service_unavailable",
                                  "job_input_validation"
    JobError without a service -> its error_type ("unknown")
    anything else              -> "unknown" (retryable)

Retry decision is made by the repository: a retryable failure with
budget left puts the job back to PENDING.
"""

import asyncio
import logging
from typing import Dict, Optional

from core.contracts import JobStatus, JobType
from core.errors import InputValidationError, JobError
from core.logging import log_checkpoint
from core.models import ExecutionResult, Job
from .contracts import JobRun
from .pipelines import Pipeline

logger = logging.getLogger(__name__)


def classify_error(error: JobError) -> str:
    """errors_by_service key for a failure."""
    if error.service:
        return f"{error.service}_{error.error_type.value}"
    return error.error_type.value


class JobExecutor:
    """
    Dispatches jobs to pipelines.

    Collaborators are injected:
        job_repo:  update_progress(), mark_completed(), mark_failed()
        pipelines: JobType -> Pipeline (see worker.pipelines.build_pipelines)
    """

    def __init__(self, job_repo, pipelines: Dict[JobType, Pipeline]):
        self._job_repo = job_repo
        self._pipelines = pipelines

    async def execute(self, job: Job) -> ExecutionResult:
        """
        Run one job.

        Returns:
            ExecutionResult; success only when the result was recorded
        """
        run = JobRun(job, self._job_repo)
        try:
            pipeline = self._pipelines.get(job.job_type)
            if pipeline is None:
                raise InputValidationError(
                    f"No pipeline for job type {job.job_type.value}", field="job_type"
                )
            payload = job.parse_payload()
            result_data = await pipeline.run(run, payload)
        except asyncio.CancelledError:
            raise
        except JobError as e:
            return await self._fail(run, e)
        except Exception as e:
            logger.exception(f"Unexpected error in job {job.job_id}: {e}")
            return await self._fail(run, JobError(f"Unexpected error: {e}"))

        return await self._complete(run, result_data)

    async def _complete(self, run: JobRun, result_data: dict) -> ExecutionResult:
        try:
            recorded = await self._job_repo.mark_completed(run.job_id, result_data)
        except JobError as e:
            logger.error(f"Job {run.job_id} finished but could not be saved: {e}")
            return ExecutionResult(
                success=False,
                services_used=frozenset(run.services_used),
                error_key=classify_error(e),
                error=e.message,
            )

        if not recorded:
            # Cancelled or evicted while running; the row is no longer ours
            logger.warning(f"Job {run.job_id} finished but is no longer active; result discarded")
        log_checkpoint(
            "job_completed",
            {"quality_checkpoints": len(run.quality), "recorded": recorded},
            logger,
        )
        return ExecutionResult(
            success=True,
            services_used=frozenset(run.services_used),
            final_status=JobStatus.COMPLETED.value if recorded else None,
        )

    async def _fail(self, run: JobRun, error: JobError) -> ExecutionResult:
        error_key = classify_error(error)
        logger.warning(
            f"Job {run.job_id} failed [{error.error_type.value}, "
            f"{'retryable' if error.retryable else 'not retryable'}]: {error.message}"
        )

        final_status: Optional[JobStatus] = None
        try:
            final_status = await self._job_repo.mark_failed(
                run.job_id, error.message, error.retryable, error.to_dict()
            )
        except JobError as e:
            logger.error(f"Could not record failure of job {run.job_id}: {e}")

        return ExecutionResult(
            success=False,
            services_used=frozenset(run.services_used),
            error_key=error_key,
            error=error.message,
            final_status=final_status.value if final_status else None,
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["JobExecutor", "classify_error"]
