# ============================================================================
# WORKER CONTRACTS
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Core - Worker process configuration and per-run context
# PURPOSE: WorkerConfig (from env) and the JobRun passed through pipelines
# CREATED: 19 OCT 2026
# ============================================================================
"""
Worker Contracts

WorkerConfig: process-level settings read once at startup.

JobRun: the per-job context threaded explicitly through a pipeline. It
carries the job, collects which external services the run touched, and
reports progress. Progress writes are best-effort: a database outage
while reporting progress is logged and the pipeline continues.

Service names recorded in services_used:
    ai        generative content service
    analysis  comparative analysis service
    database  job persistence
"""

import logging
import os
import socket
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from core.config import Defaults
from core.contracts import JobType
from core.errors import JobError
from core.models import Job

logger = logging.getLogger(__name__)

SERVICE_AI = "ai"
SERVICE_ANALYSIS = "analysis"
SERVICE_DATABASE = "database"


# ============================================================================
# WORKER CONFIG
# ============================================================================

@dataclass
class WorkerConfig:
    """Configuration for a worker process."""

    # Identity
    worker_id: str

    # Probe server
    health_port: int = 8000

    # PostgreSQL DSN (None = DATABASE_URL / POSTGRES_* at pool init)
    database_url: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False

    # Which job kinds this worker takes (None = all)
    job_types: Optional[List[JobType]] = None

    # Apply the DDL on startup
    deploy_schema: bool = False

    # Component defaults
    defaults: Defaults = field(default_factory=Defaults)

    @classmethod
    def from_env(cls) -> "WorkerConfig":
        """Create config from environment variables."""
        raw_types = os.getenv("WORKER_JOB_TYPES", "")
        job_types = [JobType(t.strip()) for t in raw_types.split(",") if t.strip()] or None

        return cls(
            worker_id=os.getenv("WORKER_ID", f"worker-{socket.gethostname()}"),
            health_port=int(os.getenv("PORT", "8000")),
            database_url=os.getenv("DATABASE_URL") or None,
            log_level=os.getenv("WORKER_LOG_LEVEL", os.getenv("LOG_LEVEL", "INFO")),
            json_logs=os.getenv("WORKER_LOG_FORMAT", os.getenv("LOG_FORMAT", "")).lower() == "json",
            job_types=job_types,
            deploy_schema=os.getenv("DEPLOY_SCHEMA_ON_START", "").lower() == "true",
            defaults=Defaults.from_env(),
        )

    @property
    def shutdown_timeout_seconds(self) -> float:
        return self.defaults.scheduler.shutdown_timeout_seconds


# ============================================================================
# PER-RUN CONTEXT
# ============================================================================

class JobRun:
    """Context for one execution of one job."""

    def __init__(self, job: Job, job_repo):
        self.job = job
        self._job_repo = job_repo
        self.services_used: Set[str] = set()
        self.quality: List[Dict[str, Any]] = []
        self.progress = 0

    @property
    def job_id(self) -> str:
        return self.job.job_id

    def use(self, service: str) -> None:
        self.services_used.add(service)

    async def report(self, progress: int, note: str) -> None:
        """Write progress. Never raises for persistence problems."""
        self.progress = progress
        self.use(SERVICE_DATABASE)
        try:
            await self._job_repo.update_progress(self.job.job_id, progress, note)
        except JobError as e:
            logger.warning(f"Progress update for job {self.job.job_id} not recorded ({progress}%): {e}")

    def record_checkpoint(self, checkpoint: str, outcome) -> None:
        """Keep a compact summary of a passed checkpoint for the result's quality metrics."""
        report = outcome.final_report
        self.quality.append({
            "checkpoint": checkpoint,
            "gate": report.gate.value,
            "score": report.overall_score,
            "degraded": report.degraded,
            "skipped": report.skipped,
            "regenerations": outcome.regenerations,
            "validations": outcome.validations,
        })


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "WorkerConfig",
    "JobRun",
    "SERVICE_AI",
    "SERVICE_ANALYSIS",
    "SERVICE_DATABASE",
]
