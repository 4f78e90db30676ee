# ============================================================================
# CORE MODULE
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Core module initialization
# PURPOSE: Export core contracts, errors and models
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================

from core.contracts import JobStatus, JobType, Audience, GateKind, RegenerationState, ErrorType
from core.errors import (
    JobError,
    ValidationFailure,
    CriticalValidationFailure,
    ExternalServiceUnavailable,
    JobTimeout,
    InputValidationError,
)
from core.models import Job, ValidationReport, RegenerationAttempt, InFlightJob, HealthSample

__all__ = [
    # Enums
    "JobStatus",
    "JobType",
    "Audience",
    "GateKind",
    "RegenerationState",
    "ErrorType",
    # Errors
    "JobError",
    "ValidationFailure",
    "CriticalValidationFailure",
    "ExternalServiceUnavailable",
    "JobTimeout",
    "InputValidationError",
    # Models
    "Job",
    "ValidationReport",
    "RegenerationAttempt",
    "InFlightJob",
    "HealthSample",
]
