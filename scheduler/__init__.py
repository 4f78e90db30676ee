# ============================================================================
# SCHEDULER MODULE
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Scheduler - Admission control
# PURPOSE: Decide which jobs run, and whether the worker is healthy
# CREATED: 19 OCT 2026
# ============================================================================
"""
Scheduler Module

Usage:
    from scheduler import JobScheduler

    scheduler = JobScheduler(job_repo, executor, config=defaults.scheduler)
    await scheduler.start()
"""

from .health import SlidingWindow
from .scheduler import JobScheduler

__all__ = ["SlidingWindow", "JobScheduler"]
