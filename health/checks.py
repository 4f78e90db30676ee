# ============================================================================
# WORKER HEALTH CHECKS
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Infrastructure - Readiness probes
# PURPOSE: Database connectivity and scheduler admission state
# CREATED: 19 OCT 2026
# ============================================================================
"""
Worker Health Checks

- DatabaseCheck: SELECT 1 through the pool
- SchedulerCheck: maps the scheduler's health snapshot onto a check result
"""

import logging

import psycopg
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from .core import HealthCheck, HealthCheckResult, HealthStatus

logger = logging.getLogger(__name__)


class DatabaseCheck(HealthCheck):
    """PostgreSQL connectivity."""

    name = "database"
    timeout_seconds = 5.0

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def check(self) -> HealthCheckResult:
        try:
            async with self.pool.connection(timeout=self.timeout_seconds) as conn:
                result = await conn.execute("SELECT 1")
                row = await result.fetchone()
        except (psycopg.Error, PoolTimeout) as e:
            return HealthCheckResult.unhealthy(
                f"PostgreSQL connection failed: {e}",
                exception_type=type(e).__name__,
            )
        if not row or row[0] != 1:
            return HealthCheckResult.unhealthy("PostgreSQL query returned unexpected result")
        stats = self.pool.get_stats()
        return HealthCheckResult.healthy(
            "PostgreSQL connected",
            pool_size=stats.get("pool_size"),
            pool_available=stats.get("pool_available"),
        )


class SchedulerCheck(HealthCheck):
    """Scheduler admission health, from its snapshot."""

    name = "scheduler"
    timeout_seconds = 1.0

    def __init__(self, scheduler):
        self.scheduler = scheduler

    async def check(self) -> HealthCheckResult:
        snapshot = self.scheduler.health_snapshot()
        status = HealthStatus(snapshot["status"])
        details = {
            "availability": snapshot["availability"],
            "concurrency_utilization": snapshot["concurrency_utilization"],
            "sliding_window_failure_rate": snapshot["sliding_window_failure_rate"],
        }
        return HealthCheckResult(status=status, message=snapshot["message"], details=details)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["DatabaseCheck", "SchedulerCheck"]
