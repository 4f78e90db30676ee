# ============================================================================
# MODELS MODULE
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Model exports
# PURPOSE: Central export point for all models
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

Pydantic models for jobs, payloads and validation reports, plus the
scheduler's in-flight dataclasses.
"""

from core.models.payloads import (
    PanelSpec,
    PageSpec,
    StorybookPayload,
    AutoStoryPayload,
    ScenesPayload,
    CartoonizePayload,
    ImageGenerationPayload,
    PAYLOAD_MODELS,
)
from core.models.job import Job
from core.models.validation import ValidationReport, RegenerationAttempt, SENTINEL_SCORE
from core.models.inflight import InFlightJob, HealthSample, ExecutionResult

__all__ = [
    # Job
    "Job",
    # Payloads
    "PanelSpec",
    "PageSpec",
    "StorybookPayload",
    "AutoStoryPayload",
    "ScenesPayload",
    "CartoonizePayload",
    "ImageGenerationPayload",
    "PAYLOAD_MODELS",
    # Validation
    "ValidationReport",
    "RegenerationAttempt",
    "SENTINEL_SCORE",
    # Scheduler state
    "InFlightJob",
    "HealthSample",
    "ExecutionResult",
]
