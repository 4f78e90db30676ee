# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Foundation - Core enums shared across the worker
# PURPOSE: Job lifecycle, job kinds, gate kinds and regeneration states
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: JobStatus, JobType, Audience, GateKind, RegenerationState, ErrorType
# DEPENDENCIES: enum
# ============================================================================
"""
Base contracts for the job worker.

These enums cross every boundary:
- SQL (PostgreSQL job rows and validation rows)
- HTTP (health snapshot, analysis/generation clients)
- Python (scheduler, executor, quality gates)
"""

from enum import Enum


# ============================================================================
# STATUS ENUMS
# ============================================================================

class JobStatus(str, Enum):
    """
    Job lifecycle states.

    State transitions:
        PENDING -> PROCESSING -> COMPLETED
                              -> FAILED
                              -> PENDING (retryable failure, budget left)
        PENDING/PROCESSING -> CANCELLED
        FAILED -> PENDING (operator retry)
    """
    PENDING = "pending"          # Waiting to be picked up
    PROCESSING = "processing"    # Admitted by a scheduler, pipeline running
    COMPLETED = "completed"      # Pipeline finished, quality bar met
    FAILED = "failed"            # Terminal failure (budget exhausted or not retryable)
    CANCELLED = "cancelled"      # Cancelled by an operator

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (no further automatic transitions)."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class JobType(str, Enum):
    """Closed set of job kinds the executor knows how to run."""
    STORYBOOK = "storybook"
    AUTO_STORY = "auto_story"
    SCENES = "scenes"
    CARTOONIZE = "cartoonize"
    IMAGE_GENERATION = "image_generation"


class Audience(str, Enum):
    """Target audience; drives the panel budget of a storybook."""
    CHILDREN = "children"
    YOUNG_ADULTS = "young_adults"
    ADULTS = "adults"

    @property
    def target_panels(self) -> int:
        """Panel budget for a generated layout."""
        return {
            Audience.CHILDREN: 8,
            Audience.YOUNG_ADULTS: 15,
            Audience.ADULTS: 24,
        }[self]


# ============================================================================
# QUALITY ENUMS
# ============================================================================

class GateKind(str, Enum):
    """Which quality gate produced a validation report."""
    CHARACTER_CONSISTENCY = "character_consistency"
    SEQUENTIAL_CONTINUITY = "sequential_continuity"
    STYLE_FIDELITY = "style_fidelity"


class RegenerationState(str, Enum):
    """
    Regeneration controller states.

    VALIDATING -> PASSED
               -> FAILED_RETRYABLE -> (regenerate) -> VALIDATING
               -> FAILED_TERMINAL
    """
    VALIDATING = "validating"
    PASSED = "passed"
    FAILED_RETRYABLE = "failed_retryable"
    FAILED_TERMINAL = "failed_terminal"

    def is_terminal(self) -> bool:
        return self in (RegenerationState.PASSED, RegenerationState.FAILED_TERMINAL)


class ErrorType(str, Enum):
    """Classification recorded in errors_by_service counters."""
    VALIDATION_FAILURE = "validation_failure"
    CRITICAL_VALIDATION_FAILURE = "critical_validation_failure"
    SERVICE_UNAVAILABLE = "service_unavailable"
    JOB_TIMEOUT = "job_timeout"
    INPUT_VALIDATION = "input_validation"
    PERSISTENCE = "persistence"
    UNKNOWN = "unknown"


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "JobStatus",
    "JobType",
    "Audience",
    "GateKind",
    "RegenerationState",
    "ErrorType",
]
