# ============================================================================
# ERROR TAXONOMY
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Foundation - Exception hierarchy for jobs, gates and services
# PURPOSE: Normalize every failure into a small, classifiable set
# CREATED: 19 OCT 2026
# ============================================================================
"""
Error Taxonomy

Every failure that crosses a component boundary is one of these:

    JobError
    ├── ValidationFailure            score below threshold after regeneration
    │   └── CriticalValidationFailure    a single dimension below its floor
    ├── ExternalServiceUnavailable   transport/availability problem
    │   ├── RateLimited                  still throttled (429) on the last attempt
    │   └── ServiceTimeout               request deadline hit (not retried)
    ├── MalformedResponse            provider answered, but not parseable
    ├── JobTimeout                   stale sweep / hard deadline eviction
    ├── InputValidationError         malformed payload (never retried)
    └── RepositoryError              any other persistence failure

Quality gates and the regeneration controller never let a raw parse or
transport exception escape; they raise one of these instead.
"""

from typing import Any, Dict, List, Optional

from core.contracts import ErrorType, GateKind


class JobError(Exception):
    """Base exception for anything that can fail a job."""

    error_type: ErrorType = ErrorType.UNKNOWN
    retryable: bool = True

    def __init__(self, message: str, service: Optional[str] = None):
        self.message = message
        self.service = service
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Structured form, stored as the job's error detail."""
        result: Dict[str, Any] = {
            "error_type": self.error_type.value,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.service:
            result["service"] = self.service
        return result


# ============================================================================
# QUALITY FAILURES
# ============================================================================

class ValidationFailure(JobError):
    """
    Generated artifacts stayed below the gate threshold.

    Raised by the regeneration controller once the attempt budget is spent.
    Retryable at the job level: the whole job may be re-run.
    """

    error_type = ErrorType.VALIDATION_FAILURE
    retryable = True

    def __init__(
        self,
        gate: GateKind,
        score: float,
        reasons: List[str],
        attempts: int = 1,
        checkpoint: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.gate = gate
        self.score = score
        self.reasons = list(reasons)
        self.attempts = attempts
        self.checkpoint = checkpoint
        if message is None:
            message = (
                f"{gate.value} validation failed after {attempts} attempt(s) "
                f"(final score: {score:g}%): {'; '.join(self.reasons) or 'no reasons given'}"
            )
        super().__init__(message, service="analysis")

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update({
            "gate": self.gate.value,
            "score": self.score,
            "reasons": self.reasons,
            "attempts": self.attempts,
        })
        if self.checkpoint:
            result["checkpoint"] = self.checkpoint
        return result


class CriticalValidationFailure(ValidationFailure):
    """A single dimension fell below its floor; escalated without waiting for the budget."""

    error_type = ErrorType.CRITICAL_VALIDATION_FAILURE

    def __init__(
        self,
        gate: GateKind,
        score: float,
        reasons: List[str],
        critical_failures: List[str],
        attempts: int = 1,
        checkpoint: Optional[str] = None,
    ):
        self.critical_failures = list(critical_failures)
        message = (
            f"{gate.value} critical failure on attempt {attempts} "
            f"(score: {score:g}%): {'; '.join(self.critical_failures)}"
        )
        super().__init__(
            gate=gate,
            score=score,
            reasons=reasons,
            attempts=attempts,
            checkpoint=checkpoint,
            message=message,
        )

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["critical_failures"] = self.critical_failures
        return result


# ============================================================================
# EXTERNAL SERVICE FAILURES
# ============================================================================

class ExternalServiceUnavailable(JobError):
    """An external dependency (analysis, generation, database) could not be reached."""

    error_type = ErrorType.SERVICE_UNAVAILABLE
    retryable = True

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(f"{service} unavailable: {message}", service=service)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        if self.status_code is not None:
            result["status_code"] = self.status_code
        return result


class RateLimited(ExternalServiceUnavailable):
    """Provider returned 429."""

    def __init__(self, service: str, message: str = "rate limited"):
        super().__init__(service, message, status_code=429)


class ServiceTimeout(ExternalServiceUnavailable):
    """Provider did not answer within the request deadline."""

    def __init__(self, service: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(service, f"timed out after {timeout_seconds:g}s")


class MalformedResponse(JobError):
    """Provider answered but the body could not be parsed."""

    error_type = ErrorType.UNKNOWN
    retryable = True

    def __init__(self, service: str, message: str):
        super().__init__(message, service=service)


# ============================================================================
# JOB-LEVEL FAILURES
# ============================================================================

class JobTimeout(JobError):
    """Job exceeded the stale threshold and was evicted."""

    error_type = ErrorType.JOB_TIMEOUT
    retryable = True

    def __init__(self, job_id: str, elapsed_seconds: float):
        self.job_id = job_id
        self.elapsed_seconds = elapsed_seconds
        super().__init__(
            f"Job {job_id} timed out after {elapsed_seconds:.0f}s",
            service="scheduler",
        )


class InputValidationError(JobError):
    """Malformed job payload. Never retried."""

    error_type = ErrorType.INPUT_VALIDATION
    retryable = False

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, service="job")

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        return result


class RepositoryError(JobError):
    """Persistence operation failed for a reason other than availability."""

    error_type = ErrorType.PERSISTENCE
    retryable = True

    def __init__(self, message: str, operation: str = None, entity_id: str = None):
        self.operation = operation
        self.entity_id = entity_id
        super().__init__(message, service="database")


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "JobError",
    "ValidationFailure",
    "CriticalValidationFailure",
    "ExternalServiceUnavailable",
    "RateLimited",
    "ServiceTimeout",
    "MalformedResponse",
    "JobTimeout",
    "InputValidationError",
    "RepositoryError",
]
