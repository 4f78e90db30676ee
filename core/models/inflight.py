# ============================================================================
# IN-FLIGHT STATE
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Core model - Scheduler-owned transient state
# PURPOSE: In-flight registry entries and sliding-window health samples
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: InFlightJob, HealthSample, ExecutionResult
# DEPENDENCIES: dataclasses
# ============================================================================
"""
In-Flight State

Transient, process-local records owned by the JobScheduler. Nothing
outside the scheduler mutates them. ExecutionResult is what the executor
hands back so the scheduler can record the outcome.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Set

from core.contracts import JobType


@dataclass
class InFlightJob:
    """Projection of a job while it holds a concurrency slot."""
    job_id: str
    job_type: JobType
    start_time: float
    services_used: Set[str] = field(default_factory=set)

    def age_seconds(self, now: float) -> float:
        return now - self.start_time

    def to_dict(self, now: float) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "job_type": self.job_type.value,
            "running_seconds": round(self.age_seconds(now), 1),
            "services_used": sorted(self.services_used),
        }


@dataclass(frozen=True)
class HealthSample:
    """One job outcome in the sliding window."""
    success: bool
    timestamp: float


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one pipeline run, as seen by the scheduler."""
    success: bool
    services_used: FrozenSet[str] = frozenset()
    error_key: Optional[str] = None
    error: Optional[str] = None
    final_status: Optional[str] = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["InFlightJob", "HealthSample", "ExecutionResult"]
