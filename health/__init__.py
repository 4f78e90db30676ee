# ============================================================================
# HEALTH MODULE
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Infrastructure - Probe types and checks
# PURPOSE: Status values and readiness checks for the worker probe server
# CREATED: 19 OCT 2026
# ============================================================================
"""
Health Module

Usage:
    from health import run_checks, DatabaseCheck, SchedulerCheck

    result = await run_checks([DatabaseCheck(pool), SchedulerCheck(scheduler)])
"""

from .core import (
    HealthStatus,
    HealthCheckResult,
    AggregatedHealthResult,
    HealthCheck,
    run_checks,
)
from .checks import DatabaseCheck, SchedulerCheck

__all__ = [
    "HealthStatus",
    "HealthCheckResult",
    "AggregatedHealthResult",
    "HealthCheck",
    "run_checks",
    "DatabaseCheck",
    "SchedulerCheck",
]
