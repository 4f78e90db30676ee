# ============================================================================
# JOB REPOSITORY
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Core - Job persistence operations
# PURPOSE: Database access for the jobs table
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Repository

Persistence Service for jobs: pending-job polling, progress updates and
terminal transitions (including the retry decision on failure), plus the
operator operations (cancel, retry, cleanup, stats).
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from pydantic import ValidationError

from core.contracts import JobStatus, JobType
from core.errors import InputValidationError, JobError
from core.models import Job
from .base import AsyncBaseRepository
from .database import TABLE_JOBS

logger = logging.getLogger(__name__)

_TERMINAL = [JobStatus.COMPLETED.value, JobStatus.FAILED.value, JobStatus.CANCELLED.value]
_ACTIVE = [JobStatus.PENDING.value, JobStatus.PROCESSING.value]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobRepository(AsyncBaseRepository):
    """Repository for Job entities."""

    async def create(self, job: Job) -> Job:
        """
        Create a new job.

        Args:
            job: Job instance to persist

        Returns:
            The persisted job
        """
        async with self._connection("create job", job.job_id) as conn:
            await conn.execute(
                sql.SQL("""
                INSERT INTO {} (
                    job_id, job_type, status, progress, current_step,
                    payload, result_data, error_message, error_detail,
                    retry_count, max_retries, created_at, started_at,
                    completed_at, updated_at, user_id, correlation_id
                ) VALUES (
                    %(job_id)s, %(job_type)s, %(status)s, %(progress)s, %(current_step)s,
                    %(payload)s, %(result_data)s, %(error_message)s, %(error_detail)s,
                    %(retry_count)s, %(max_retries)s, %(created_at)s, %(started_at)s,
                    %(completed_at)s, %(updated_at)s, %(user_id)s, %(correlation_id)s
                )
                """).format(TABLE_JOBS),
                {
                    "job_id": job.job_id,
                    "job_type": job.job_type.value,
                    "status": job.status.value,
                    "progress": job.progress,
                    "current_step": job.current_step,
                    "payload": Json(job.payload),
                    "result_data": Json(job.result_data) if job.result_data else None,
                    "error_message": job.error_message,
                    "error_detail": Json(job.error_detail) if job.error_detail else None,
                    "retry_count": job.retry_count,
                    "max_retries": job.max_retries,
                    "created_at": job.created_at,
                    "started_at": job.started_at,
                    "completed_at": job.completed_at,
                    "updated_at": job.updated_at,
                    "user_id": job.user_id,
                    "correlation_id": job.correlation_id,
                },
            )
            logger.info(f"Created {job.job_type.value} job {job.job_id}")
            return job

    async def get(self, job_id: str) -> Optional[Job]:
        """
        Get a job by ID.

        Returns:
            Job instance or None if not found
        """
        async with self._connection("get job", job_id) as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE job_id = %s").format(TABLE_JOBS),
                (job_id,),
            )
            row = await result.fetchone()

            if row is None:
                return None

            return self._row_to_job(row)

    async def fetch_pending_jobs(
        self,
        job_types: Optional[Iterable[JobType]] = None,
        limit: int = 10,
    ) -> List[Job]:
        """
        Fetch pending jobs, oldest first.

        Args:
            job_types: Optional filter on job kind
            limit: Maximum number of jobs to return

        Returns:
            List of pending jobs (not claimed - admission is the scheduler's job)
        """
        async with self._connection("fetch pending jobs") as conn:
            conn.row_factory = dict_row
            if job_types:
                result = await conn.execute(
                    sql.SQL("""
                    SELECT * FROM {}
                    WHERE status = %s AND job_type = ANY(%s)
                    ORDER BY created_at ASC
                    LIMIT %s
                    """).format(TABLE_JOBS),
                    (JobStatus.PENDING.value, [t.value for t in job_types], limit),
                )
            else:
                result = await conn.execute(
                    sql.SQL("""
                    SELECT * FROM {}
                    WHERE status = %s
                    ORDER BY created_at ASC
                    LIMIT %s
                    """).format(TABLE_JOBS),
                    (JobStatus.PENDING.value, limit),
                )
            rows = await result.fetchall()

        jobs = []
        for row in rows:
            try:
                jobs.append(self._row_to_job(row))
            except (ValueError, ValidationError) as e:
                await self._reject_row(row["job_id"], row.get("job_type"), e)
        if jobs:
            logger.debug(f"Retrieved {len(jobs)} pending jobs")
        return jobs

    async def _reject_row(self, job_id: str, job_type: Any, cause: Exception) -> None:
        """Fail a pending row that cannot be mapped to a Job, so it stops being polled."""
        field = None if job_type in {t.value for t in JobType} else "job_type"
        error = InputValidationError(
            f"Unreadable pending job row (job_type={job_type!r}): {cause}", field=field
        )
        logger.error(f"Rejecting pending job {job_id}: {error.message}")
        try:
            await self.mark_failed(
                job_id, error.message, retryable=False, error_detail=error.to_dict()
            )
        except JobError as e:
            logger.error(f"Could not reject pending job {job_id}: {e}")

    async def update_progress(self, job_id: str, progress: int, note: Optional[str] = None) -> bool:
        """
        Record pipeline progress.

        The first progress update moves a PENDING job to PROCESSING and
        stamps started_at.

        Returns:
            True if the job was updated, False if it is no longer active
            (cancelled or already terminal)
        """
        progress = max(0, min(100, int(progress)))
        now = _utcnow()

        async with self._connection("update progress", job_id) as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {}
                SET progress = %s,
                    current_step = %s,
                    status = %s,
                    started_at = COALESCE(started_at, %s),
                    updated_at = %s
                WHERE job_id = %s AND status = ANY(%s)
                """).format(TABLE_JOBS),
                (progress, note, JobStatus.PROCESSING.value, now, now, job_id, _ACTIVE),
            )
            updated = result.rowcount > 0
            if updated:
                logger.debug(f"Job {job_id} progress {progress}%: {note}")
            else:
                logger.warning(f"Progress update ignored for inactive job {job_id}")
            return updated

    async def mark_completed(self, job_id: str, result_data: Dict[str, Any]) -> bool:
        """
        Mark a job completed with its result.

        Returns:
            True if the job transitioned, False if it was no longer active
        """
        now = _utcnow()

        async with self._connection("mark completed", job_id) as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {}
                SET status = %s,
                    progress = 100,
                    current_step = %s,
                    result_data = %s,
                    error_message = NULL,
                    error_detail = NULL,
                    completed_at = %s,
                    updated_at = %s
                WHERE job_id = %s AND status = ANY(%s)
                """).format(TABLE_JOBS),
                (
                    JobStatus.COMPLETED.value,
                    "Completed successfully",
                    Json(result_data),
                    now,
                    now,
                    job_id,
                    _ACTIVE,
                ),
            )
            completed = result.rowcount > 0
            self._log_operation(completed, "Marked job completed", job_id)
            return completed

    async def mark_failed(
        self,
        job_id: str,
        error_message: str,
        retryable: bool,
        error_detail: Optional[Dict[str, Any]] = None,
    ) -> Optional[JobStatus]:
        """
        Record a failed run and decide whether the job is retried.

        retry_count is incremented. A retryable failure with
        retry_count <= max_retries puts the job back to PENDING (progress
        reset); otherwise the job becomes FAILED.

        Returns:
            Resulting status, or None if the job was not found/active
        """
        now = _utcnow()
        params = {
            "job_id": job_id,
            "retryable": retryable,
            "error_message": error_message[:2000],
            "error_detail": Json(error_detail) if error_detail else None,
            "pending": JobStatus.PENDING.value,
            "failed": JobStatus.FAILED.value,
            "final_step": "Failed after retries" if retryable else "Failed",
            "now": now,
            "active": _ACTIVE,
        }

        async with self._connection("mark failed", job_id) as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {}
                SET retry_count = retry_count + 1,
                    status = CASE
                        WHEN %(retryable)s AND retry_count + 1 <= max_retries THEN %(pending)s
                        ELSE %(failed)s END,
                    progress = CASE
                        WHEN %(retryable)s AND retry_count + 1 <= max_retries THEN 0
                        ELSE progress END,
                    current_step = CASE
                        WHEN %(retryable)s AND retry_count + 1 <= max_retries
                        THEN 'Retrying (' || (retry_count + 1) || '/' || max_retries || ')'
                        ELSE %(final_step)s END,
                    started_at = CASE
                        WHEN %(retryable)s AND retry_count + 1 <= max_retries THEN NULL
                        ELSE started_at END,
                    completed_at = CASE
                        WHEN %(retryable)s AND retry_count + 1 <= max_retries THEN NULL
                        ELSE %(now)s END,
                    error_message = %(error_message)s,
                    error_detail = %(error_detail)s,
                    updated_at = %(now)s
                WHERE job_id = %(job_id)s AND status = ANY(%(active)s)
                RETURNING status, retry_count, max_retries
                """).format(TABLE_JOBS),
                params,
            )
            row = await result.fetchone()

            if row is None:
                logger.warning(f"Cannot mark failed - job not found or inactive: {job_id}")
                return None

            status = JobStatus(row[0])
            if status == JobStatus.PENDING:
                logger.info(f"Job {job_id} scheduled for retry ({row[1]}/{row[2]}): {error_message}")
            else:
                logger.warning(f"Job {job_id} marked as failed: {error_message}")
            return status

    async def cancel_job(self, job_id: str) -> bool:
        """Cancel a pending or processing job."""
        now = _utcnow()

        async with self._connection("cancel job", job_id) as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {}
                SET status = %s, current_step = %s, completed_at = %s, updated_at = %s
                WHERE job_id = %s AND status = ANY(%s)
                """).format(TABLE_JOBS),
                (JobStatus.CANCELLED.value, "Cancelled by user", now, now, job_id, _ACTIVE),
            )
            cancelled = result.rowcount > 0
            self._log_operation(cancelled, "Cancelled job", job_id)
            return cancelled

    async def retry_job(self, job_id: str) -> Optional[Job]:
        """
        Operator-triggered retry: clone a FAILED job back to PENDING.

        Returns:
            The reset job, or None if the job does not exist or is not FAILED
        """
        job = await self.get(job_id)
        if job is None or job.status != JobStatus.FAILED:
            logger.warning(f"Cannot retry job {job_id}: not found or not failed")
            return None

        clone = job.clone_for_retry()

        async with self._connection("retry job", job_id) as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {}
                SET status = %s, progress = %s, current_step = %s,
                    result_data = NULL, error_message = NULL, error_detail = NULL,
                    retry_count = %s, started_at = NULL, completed_at = NULL,
                    updated_at = %s
                WHERE job_id = %s AND status = %s
                """).format(TABLE_JOBS),
                (
                    clone.status.value,
                    clone.progress,
                    clone.current_step,
                    clone.retry_count,
                    clone.updated_at,
                    job_id,
                    JobStatus.FAILED.value,
                ),
            )
            if result.rowcount == 0:
                logger.warning(f"Retry of job {job_id} lost a race with another update")
                return None

            logger.info(f"Job {job_id} reset to pending by operator retry")
            return clone

    async def cleanup_old_jobs(self, older_than_days: int = 30) -> int:
        """
        Delete terminal jobs older than the cutoff.

        Returns:
            Number of jobs deleted
        """
        cutoff = _utcnow() - timedelta(days=older_than_days)

        async with self._connection("cleanup old jobs") as conn:
            result = await conn.execute(
                sql.SQL("""
                DELETE FROM {}
                WHERE created_at < %s AND status = ANY(%s)
                """).format(TABLE_JOBS),
                (cutoff, _TERMINAL),
            )
            count = result.rowcount
            logger.info(f"Cleaned up {count} jobs older than {older_than_days} days")
            return count

    async def get_job_stats(self, user_id: Optional[str] = None) -> Dict[str, int]:
        """
        Count jobs by status.

        Returns:
            Dict with total plus one count per JobStatus value
        """
        stats = {"total": 0}
        stats.update({s.value: 0 for s in JobStatus})

        async with self._connection("job stats") as conn:
            if user_id:
                result = await conn.execute(
                    sql.SQL("""
                    SELECT status, COUNT(*) FROM {}
                    WHERE user_id = %s GROUP BY status
                    """).format(TABLE_JOBS),
                    (user_id,),
                )
            else:
                result = await conn.execute(
                    sql.SQL("SELECT status, COUNT(*) FROM {} GROUP BY status").format(TABLE_JOBS),
                )
            for status, count in await result.fetchall():
                stats[status] = count
                stats["total"] += count

        return stats

    def _row_to_job(self, row: Dict[str, Any]) -> Job:
        """Convert database row to Job model."""
        updated_at = row.get("updated_at") or row.get("created_at")

        return Job(
            job_id=row["job_id"],
            job_type=JobType(row["job_type"]),
            status=JobStatus(row["status"]),
            progress=row.get("progress") or 0,
            current_step=row.get("current_step"),
            payload=row.get("payload") or {},
            result_data=row.get("result_data"),
            error_message=row.get("error_message"),
            error_detail=row.get("error_detail"),
            retry_count=row.get("retry_count") or 0,
            max_retries=row.get("max_retries", 3),
            created_at=row["created_at"],
            started_at=row.get("started_at"),
            completed_at=row.get("completed_at"),
            updated_at=updated_at,
            user_id=row.get("user_id"),
            correlation_id=row.get("correlation_id"),
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["JobRepository"]
