# ============================================================================
# HEALTH CHECK CORE TYPES
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Infrastructure - Health status and probe checks
# PURPOSE: Status values, check results and the readiness check runner
# CREATED: 19 OCT 2026
# ============================================================================
"""
Health Check Core Types

Status hierarchy (worst wins):
- healthy: all systems operational
- degraded: operational with an elevated failure rate
- unhealthy: not admitting work

A HealthCheck is a small async probe (database ping, scheduler state).
run_checks() executes a set of them with per-check timeouts and folds
the results into one AggregatedHealthResult.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthStatus(str, Enum):
    """Health check status values."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    def __lt__(self, other: "HealthStatus") -> bool:
        """Enable comparison for 'worst wins' aggregation."""
        order = {
            HealthStatus.HEALTHY: 0,
            HealthStatus.DEGRADED: 1,
            HealthStatus.UNHEALTHY: 2,
        }
        return order[self] < order[other]

    @classmethod
    def aggregate(cls, statuses: List["HealthStatus"]) -> "HealthStatus":
        """Aggregate multiple statuses (worst wins)."""
        if not statuses:
            return cls.HEALTHY
        return max(statuses)


@dataclass
class HealthCheckResult:
    """Result from a single health check."""
    status: HealthStatus
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    duration_ms: float = 0.0
    checked_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def healthy(cls, message: str = None, **details) -> "HealthCheckResult":
        return cls(status=HealthStatus.HEALTHY, message=message, details=details)

    @classmethod
    def degraded(cls, message: str, **details) -> "HealthCheckResult":
        return cls(status=HealthStatus.DEGRADED, message=message, details=details)

    @classmethod
    def unhealthy(cls, message: str, **details) -> "HealthCheckResult":
        return cls(status=HealthStatus.UNHEALTHY, message=message, details=details)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        result = {
            "status": self.status.value,
            "duration_ms": round(self.duration_ms, 2),
        }
        if self.message:
            result["message"] = self.message
        if self.details:
            result["details"] = self.details
        return result


@dataclass
class AggregatedHealthResult:
    """Aggregated result from multiple health checks."""
    status: HealthStatus
    checks: Dict[str, HealthCheckResult]
    total_duration_ms: float
    checked_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "checks": {name: result.to_dict() for name, result in self.checks.items()},
            "total_duration_ms": round(self.total_duration_ms, 2),
            "checked_at": self.checked_at.isoformat(),
        }


class HealthCheck:
    """
    Base class for probe checks.

    Subclasses set name and implement check().
    """

    name: str = "unnamed"
    timeout_seconds: float = 5.0

    async def check(self) -> HealthCheckResult:
        raise NotImplementedError


async def _run_one(check: HealthCheck) -> HealthCheckResult:
    start = time.perf_counter()
    try:
        result = await asyncio.wait_for(check.check(), timeout=check.timeout_seconds)
    except asyncio.TimeoutError:
        result = HealthCheckResult.unhealthy(f"check timed out after {check.timeout_seconds:g}s")
    result.duration_ms = (time.perf_counter() - start) * 1000
    return result


async def run_checks(checks: Sequence[HealthCheck]) -> AggregatedHealthResult:
    """Run checks concurrently; the worst status wins."""
    start = time.perf_counter()
    results = await asyncio.gather(*[_run_one(c) for c in checks])
    by_name = {check.name: result for check, result in zip(checks, results)}
    status = HealthStatus.aggregate([r.status for r in results])
    if status != HealthStatus.HEALTHY:
        logger.warning(f"Health checks {status.value}: " + ", ".join(
            f"{name}={r.status.value}" for name, r in by_name.items()
        ))
    return AggregatedHealthResult(
        status=status,
        checks=by_name,
        total_duration_ms=(time.perf_counter() - start) * 1000,
    )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "HealthStatus",
    "HealthCheckResult",
    "AggregatedHealthResult",
    "HealthCheck",
    "run_checks",
]
