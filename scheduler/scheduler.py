# ============================================================================
# JOB SCHEDULER
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Scheduler - Admission control and in-flight registry
# PURPOSE: Bounded concurrency, sliding-window health, auto-recovery, stale sweep
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Scheduler

The scheduler is the ONLY component that mutates the in-flight registry
and the health window. Pipeline code never touches them; it returns an
ExecutionResult and the scheduler records it in release().

Admission:
    try_admit(job_id, job_type) -> bool
        False when at max_concurrent_jobs or when the id is already in
        flight (duplicate polls are de-duplicated here). Never raises.

Health:
    is_healthy = below capacity
                 AND (window failure rate <= max_failure_rate
                      OR recovery window elapsed)
                 AND timeout rate < max_timeout_rate

    The window failure rate is 0 until min_sample_size samples exist.
    The timeout rate is lifetime (timeouts / processed); recovery leaves it alone.

Background loops (start/stop):
    poll      process_next_batch() every poll interval, skipped while unhealthy
    recovery  clear the window when strictly unhealthy and the recovery
              window has elapsed
    sweep     evict in-flight entries older than the stale threshold

Every admitted job also runs under a hard deadline equal to the stale
threshold, so a wedged external call is cancelled rather than leaked.

Single event loop: admission, registry mutation and window updates are
synchronous and never await, so they are atomic per job id.
"""

import asyncio
import logging
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from core.config import SchedulerDefaults
from core.contracts import ErrorType, JobType
from core.errors import JobError, JobTimeout
from core.logging import log_context, log_checkpoint
from core.models import ExecutionResult, InFlightJob, Job
from health.core import HealthStatus
from .health import SlidingWindow

logger = logging.getLogger(__name__)

TIMEOUT_ERROR_KEY = f"scheduler_{ErrorType.JOB_TIMEOUT.value}"


class JobScheduler:
    """
    Concurrency-bounded job scheduler with self-healing admission control.

    Collaborators are injected:
        job_repo: fetch_pending_jobs() and mark_failed()
        executor: async execute(job) -> ExecutionResult, never raises
        clock:    monotonic seconds (tests pass a fake)
    """

    def __init__(
        self,
        job_repo,
        executor,
        config: Optional[SchedulerDefaults] = None,
        clock: Callable[[], float] = time.monotonic,
        job_types: Optional[Iterable[JobType]] = None,
        worker_id: Optional[str] = None,
    ):
        self._job_repo = job_repo
        self._executor = executor
        self.config = config or SchedulerDefaults()
        self._clock = clock
        self._job_types = list(job_types) if job_types else None
        self.worker_id = worker_id

        self._in_flight: Dict[str, InFlightJob] = {}
        self._job_tasks: Dict[str, asyncio.Task] = {}
        self._window = SlidingWindow(self.config.sliding_window_size, self.config.min_sample_size)
        self._batch_in_progress = False

        # Lifecycle
        self._running = False
        self._stop_event = asyncio.Event()
        self._loop_tasks: List[asyncio.Task] = []
        self._started_at: Optional[datetime] = None

        self._reset_counters()

    def _reset_counters(self) -> None:
        self._total_processed = 0
        self._successful = 0
        self._failed = 0
        self._timeouts = 0
        self._concurrent_peak = 0
        self._last_processed_at: Optional[datetime] = None
        self._errors_by_service: Counter = Counter()
        self._service_usage: Counter = Counter()
        self._recoveries = 0
        self._stale_evictions = 0
        self._batches = 0
        self._skipped_polls = 0
        self._last_recovery = self._clock()

    # =========================================================================
    # ADMISSION
    # =========================================================================

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def is_in_flight(self, job_id: str) -> bool:
        return job_id in self._in_flight

    def try_admit(self, job_id: str, job_type: JobType) -> bool:
        """
        Claim a concurrency slot for a job.

        Returns:
            True if admitted; False if at capacity or already in flight
        """
        if job_id in self._in_flight:
            logger.debug(f"Job {job_id} already in flight, not admitting again")
            return False
        if len(self._in_flight) >= self.config.max_concurrent_jobs:
            logger.debug(
                f"At capacity ({len(self._in_flight)}/{self.config.max_concurrent_jobs}), "
                f"deferring job {job_id}"
            )
            return False

        self._in_flight[job_id] = InFlightJob(job_id=job_id, job_type=job_type, start_time=self._clock())
        self._concurrent_peak = max(self._concurrent_peak, len(self._in_flight))
        logger.info(
            f"Admitted {job_type.value} job {job_id} "
            f"({len(self._in_flight)}/{self.config.max_concurrent_jobs} in flight)"
        )
        return True

    def release(
        self,
        job_id: str,
        success: bool,
        *,
        timed_out: bool = False,
        services_used: Iterable[str] = (),
        error_key: Optional[str] = None,
    ) -> bool:
        """
        Free a job's slot and record its outcome.

        Returns:
            False if the job was not in flight (already released or evicted),
            in which case nothing is recorded
        """
        entry = self._in_flight.pop(job_id, None)
        if entry is None:
            logger.debug(f"Release of job {job_id} ignored: not in flight")
            return False

        self._window.record(success, self._clock())
        self._total_processed += 1
        if success:
            self._successful += 1
        else:
            self._failed += 1
            if error_key:
                self._errors_by_service[error_key] += 1
        if timed_out:
            self._timeouts += 1

        entry.services_used.update(services_used)
        for service in entry.services_used:
            self._service_usage[service] += 1

        self._last_processed_at = datetime.now(timezone.utc)
        return True

    # =========================================================================
    # HEALTH
    # =========================================================================

    def timeout_rate(self) -> float:
        """Lifetime timeouts over lifetime completions."""
        if self._total_processed == 0:
            return 0.0
        return self._timeouts / self._total_processed

    def recovery_eligible(self, now: Optional[float] = None) -> bool:
        now = self._clock() if now is None else now
        return now - self._last_recovery > self.config.recovery_window_seconds

    def _base_health(self) -> bool:
        return len(self._in_flight) < self.config.max_concurrent_jobs

    def _failure_rate_ok(self) -> bool:
        return self._window.failure_rate() <= self.config.max_failure_rate

    def _timeout_rate_ok(self) -> bool:
        return self.timeout_rate() < self.config.max_timeout_rate

    def is_healthy(self, now: Optional[float] = None) -> bool:
        """Admission health, including the recovery-eligibility escape."""
        return (
            self._base_health()
            and (self._failure_rate_ok() or self.recovery_eligible(now))
            and self._timeout_rate_ok()
        )

    def is_strictly_healthy(self) -> bool:
        """Health without the recovery escape; drives auto-recovery."""
        return self._base_health() and self._failure_rate_ok() and self._timeout_rate_ok()

    def check_auto_recovery(self, now: Optional[float] = None) -> bool:
        """
        Forgive and retry: clear the window if unhealthy and the recovery
        window has elapsed.

        Returns:
            True if a recovery was performed
        """
        now = self._clock() if now is None else now
        if self.is_strictly_healthy() or not self.recovery_eligible(now):
            return False

        logger.warning(
            f"Auto-recovery: clearing health window "
            f"(failure_rate={self._window.failure_rate():.2f}, "
            f"timeout_rate={self.timeout_rate():.2f}, in_flight={len(self._in_flight)})"
        )
        self._window.clear()
        self._last_recovery = now
        self._recoveries += 1
        return True

    def health_snapshot(self) -> Dict[str, Any]:
        """Read-only health view for monitoring."""
        failure_rate = self._window.failure_rate()
        failure_percent = failure_rate * 100
        utilization = len(self._in_flight) / self.config.max_concurrent_jobs * 100

        if self.is_healthy():
            if failure_percent > self.config.degraded_failure_percent:
                status = HealthStatus.DEGRADED
                availability = max(50.0, 100.0 - failure_percent)
                message = f"Elevated failure rate: {failure_percent:.1f}% (recent jobs)"
            else:
                status = HealthStatus.HEALTHY
                availability = 100.0
                message = "Processing normally"
        else:
            status = HealthStatus.UNHEALTHY
            availability = 0.0
            if not self._base_health():
                message = f"At capacity ({len(self._in_flight)}/{self.config.max_concurrent_jobs})"
            elif not self._timeout_rate_ok():
                message = f"High timeout rate: {self.timeout_rate() * 100:.1f}%"
            else:
                message = f"High failure rate: {failure_percent:.1f}% (recent jobs)"

        return {
            "status": status.value,
            "message": message,
            "availability": round(availability, 1),
            "concurrency_utilization": round(utilization, 1),
            "sliding_window_failure_rate": round(failure_rate, 4),
            "in_flight": len(self._in_flight),
            "max_concurrent": self.config.max_concurrent_jobs,
            "checked_at": datetime.now(timezone.utc).isoformat(),
        }

    # =========================================================================
    # STALE SWEEP
    # =========================================================================

    async def cleanup_stale_jobs(self, now: Optional[float] = None) -> List[str]:
        """
        Evict in-flight entries older than the stale threshold.

        Each evicted job counts as a timed-out failure, its task is
        cancelled, and it is marked failed (retryable) in the database.

        Returns:
            Evicted job ids
        """
        now = self._clock() if now is None else now
        threshold = self.config.stale_job_threshold_seconds
        stale = [
            (job_id, entry.age_seconds(now))
            for job_id, entry in self._in_flight.items()
            if entry.age_seconds(now) > threshold
        ]

        for job_id, age in stale:
            logger.warning(f"Evicting stale job {job_id} (in flight {age:.0f}s > {threshold:.0f}s)")
            self.release(job_id, success=False, timed_out=True, error_key=TIMEOUT_ERROR_KEY)
            self._stale_evictions += 1
            task = self._job_tasks.pop(job_id, None)
            if task is not None and not task.done():
                task.cancel()
            await self._fail_timed_out(job_id, age)

        return [job_id for job_id, _ in stale]

    async def _fail_timed_out(self, job_id: str, elapsed: float) -> None:
        error = JobTimeout(job_id, elapsed)
        try:
            await self._job_repo.mark_failed(
                job_id, error.message, retryable=error.retryable, error_detail=error.to_dict()
            )
        except JobError as e:
            logger.error(f"Could not record timeout for job {job_id}: {e}")

    # =========================================================================
    # BATCH PROCESSING
    # =========================================================================

    async def process_next_batch(self) -> bool:
        """
        Fetch pending jobs and start every one that can be admitted.

        Re-entrant: a call made while another is fetching returns False.

        Returns:
            True if at least one job was started
        """
        if self._batch_in_progress or not self._base_health():
            return False

        self._batch_in_progress = True
        processed_any = False
        try:
            jobs = await self._job_repo.fetch_pending_jobs(
                self._job_types, limit=self.config.batch_size
            )
            self._batches += 1
            for job in jobs:
                if not self.try_admit(job.job_id, job.job_type):
                    continue
                processed_any = True
                task = asyncio.create_task(self._run_job(job), name=f"job-{job.job_id[:8]}")
                self._job_tasks[job.job_id] = task
                task.add_done_callback(lambda t, jid=job.job_id: self._forget_task(jid, t))
        except JobError as e:
            # Database unavailable: skip this cycle, try again next poll
            logger.warning(f"Could not fetch pending jobs: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error processing batch: {e}")
        finally:
            self._batch_in_progress = False

        return processed_any

    def _forget_task(self, job_id: str, task: asyncio.Task) -> None:
        if self._job_tasks.get(job_id) is task:
            del self._job_tasks[job_id]

    async def _run_job(self, job: Job) -> None:
        """Run one admitted job under its hard deadline and release it."""
        deadline = self.config.stale_job_threshold_seconds
        start = self._clock()

        with log_context(
            job_id=job.job_id,
            job_type=job.job_type.value,
            correlation_id=job.correlation_id,
            worker_id=self.worker_id,
        ):
            log_checkpoint("job_admitted", {"retry_count": job.retry_count}, logger)
            try:
                result: ExecutionResult = await asyncio.wait_for(
                    self._executor.execute(job), timeout=deadline
                )
            except asyncio.TimeoutError:
                elapsed = self._clock() - start
                logger.error(f"Job {job.job_id} exceeded its {deadline:.0f}s deadline")
                if self.release(job.job_id, success=False, timed_out=True, error_key=TIMEOUT_ERROR_KEY):
                    await self._fail_timed_out(job.job_id, elapsed)
                return
            except asyncio.CancelledError:
                if self._in_flight.pop(job.job_id, None) is not None:
                    logger.warning(f"Job {job.job_id} cancelled during shutdown; left in processing state")
                raise
            except Exception as e:
                logger.exception(f"Executor raised for job {job.job_id}: {e}")
                self.release(job.job_id, success=False, error_key="unknown")
                return

            self.release(
                job.job_id,
                success=result.success,
                services_used=result.services_used,
                error_key=result.error_key,
            )
            log_checkpoint(
                "job_released",
                {"success": result.success, "final_status": result.final_status},
                logger,
            )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """Start the poll, recovery and stale-sweep loops."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        self._stop_event.clear()
        self._started_at = datetime.now(timezone.utc)
        self._loop_tasks = [
            asyncio.create_task(self._poll_loop(), name="scheduler-poll"),
            asyncio.create_task(self._recovery_loop(), name="scheduler-recovery"),
            asyncio.create_task(self._sweep_loop(), name="scheduler-sweep"),
        ]
        logger.info(
            f"Scheduler started (max_concurrent={self.config.max_concurrent_jobs}, "
            f"poll={self.config.poll_interval_seconds}s, "
            f"stale_threshold={self.config.stale_job_threshold_seconds}s)"
        )

    async def stop(self) -> None:
        """
        Stop gracefully.

        Stops the loops, waits up to the shutdown timeout for in-flight
        jobs, then cancels whatever is left.
        """
        if not self._running:
            return
        logger.info(f"Stopping scheduler ({len(self._job_tasks)} job task(s) in flight)")
        self._running = False
        self._stop_event.set()

        for task in self._loop_tasks:
            task.cancel()
        await asyncio.gather(*self._loop_tasks, return_exceptions=True)
        self._loop_tasks = []

        pending = list(self._job_tasks.values())
        if pending:
            done, not_done = await asyncio.wait(pending, timeout=self.config.shutdown_timeout_seconds)
            for task in not_done:
                task.cancel()
            if not_done:
                await asyncio.gather(*not_done, return_exceptions=True)
                logger.warning(f"Cancelled {len(not_done)} job(s) still running at shutdown")

        logger.info(
            f"Scheduler stopped (processed={self._total_processed}, "
            f"successful={self._successful}, failed={self._failed}, timeouts={self._timeouts})"
        )

    async def _sleep_or_stop(self, seconds: float) -> bool:
        """Wait for the interval; True if stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def _poll_loop(self) -> None:
        if await self._sleep_or_stop(self.config.initial_scan_delay_seconds):
            return
        while self._running:
            try:
                if self.is_healthy():
                    await self.process_next_batch()
                else:
                    self._skipped_polls += 1
                    logger.debug("Scheduler unhealthy, skipping poll")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Error in poll cycle: {e}")
            if await self._sleep_or_stop(self.config.poll_interval_seconds):
                break

    async def _recovery_loop(self) -> None:
        while self._running:
            if await self._sleep_or_stop(self.config.recovery_check_interval_seconds):
                break
            self.check_auto_recovery()

    async def _sweep_loop(self) -> None:
        while self._running:
            if await self._sleep_or_stop(self.config.stale_sweep_interval_seconds):
                break
            try:
                await self.cleanup_stale_jobs()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Error in stale sweep: {e}")

    # =========================================================================
    # STATISTICS
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> Dict[str, Any]:
        """Processing statistics."""
        now = self._clock()
        uptime_seconds = None
        if self._started_at:
            uptime_seconds = (datetime.now(timezone.utc) - self._started_at).total_seconds()
        return {
            "running": self._running,
            "worker_id": self.worker_id,
            "uptime_seconds": uptime_seconds,
            "total_processed": self._total_processed,
            "successful": self._successful,
            "failed": self._failed,
            "timeouts": self._timeouts,
            "concurrent_peak": self._concurrent_peak,
            "last_processed_at": self._last_processed_at.isoformat() if self._last_processed_at else None,
            "errors_by_service": dict(self._errors_by_service),
            "service_usage": dict(self._service_usage),
            "in_flight": [entry.to_dict(now) for entry in self._in_flight.values()],
            "sliding_window_size": len(self._window),
            "sliding_window_failure_rate": round(self._window.failure_rate(), 4),
            "timeout_rate": round(self.timeout_rate(), 4),
            "recoveries": self._recoveries,
            "stale_evictions": self._stale_evictions,
            "batches": self._batches,
            "skipped_polls": self._skipped_polls,
        }

    def reset_metrics(self) -> None:
        """Clear counters and the health window. In-flight jobs are untouched."""
        self._window.clear()
        self._reset_counters()
        logger.info("Scheduler metrics reset")


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["JobScheduler", "TIMEOUT_ERROR_KEY"]
