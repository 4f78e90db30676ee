# ============================================================================
# REGENERATION CONTROLLER
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Quality - Bounded validate/regenerate loop
# PURPOSE: Retry generation at a checkpoint until it passes or the budget is spent
# CREATED: 19 OCT 2026
# ============================================================================
"""
Regeneration Controller

Wraps a quality gate with a bounded retry loop:

    VALIDATING --pass--------------------------------> PASSED
    VALIDATING --fail, attempt < max--> FAILED_RETRYABLE
        -> regenerate whole unit with directive -> VALIDATING (attempt + 1)
    VALIDATING --fail, attempt == max--> FAILED_TERMINAL (ValidationFailure)
    VALIDATING --critical dimension----> FAILED_TERMINAL (CriticalValidationFailure)
    VALIDATING --analysis unavailable--> PASSED (degraded, sentinel score)

The caller supplies both steps as coroutines, so the controller knows
nothing about what a "unit" is (one image, one page of panels, ...).

Usage:
    controller = RegenerationController(gate, max_attempts=2)
    outcome = await controller.run(
        validate=lambda attempt: gate.validate(refs, ctx, job_id=job_id, attempt=attempt),
        regenerate=regenerate_page,
        job_id=job_id,
        checkpoint="page-1",
    )
"""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from core.contracts import RegenerationState
from core.errors import CriticalValidationFailure, ExternalServiceUnavailable, ValidationFailure
from core.logging import log_context
from core.models import RegenerationAttempt, ValidationReport
from .directives import build_enhancement_directive
from .gate import QualityGate

logger = logging.getLogger(__name__)

ValidateFunc = Callable[[int], Awaitable[ValidationReport]]
RegenerateFunc = Callable[[str, int], Awaitable[None]]


@dataclass
class RegenerationOutcome:
    """Result of a checkpoint that passed (possibly degraded)."""
    state: RegenerationState
    final_report: ValidationReport
    attempts: List[RegenerationAttempt] = field(default_factory=list)
    regenerations: int = 0
    degraded: bool = False

    @property
    def passed(self) -> bool:
        return self.state == RegenerationState.PASSED

    @property
    def validations(self) -> int:
        return len(self.attempts)


class RegenerationController:
    """Bounded validate/regenerate loop around one quality gate."""

    def __init__(self, gate: QualityGate, max_attempts: int = 2):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.gate = gate
        self.max_attempts = max_attempts

    async def run(
        self,
        validate: ValidateFunc,
        regenerate: RegenerateFunc,
        *,
        job_id: Optional[str] = None,
        checkpoint: Optional[str] = None,
    ) -> RegenerationOutcome:
        """
        Drive one checkpoint to a terminal state.

        Args:
            validate: validate(attempt) -> report; may raise ExternalServiceUnavailable
            regenerate: regenerate(directive, attempt) regenerates the entire unit
            job_id: For logging and degraded-report persistence
            checkpoint: Checkpoint name (e.g. "page-2:continuity")

        Returns:
            RegenerationOutcome in state PASSED

        Raises:
            CriticalValidationFailure: A dimension fell below its floor
            ValidationFailure: Still failing after max_attempts validations
            ExternalServiceUnavailable: Raised by regenerate() (job-level retryable)
        """
        gate_name = self.gate.GATE_KIND.value
        attempts: List[RegenerationAttempt] = []
        regenerations = 0
        attempt = 1

        while True:
            state = RegenerationState.VALIDATING
            logger.debug(f"{gate_name} {state.value} for job {job_id} at {checkpoint} (attempt {attempt})")
            try:
                with log_context(attempt=attempt):
                    report = await validate(attempt)
            except ExternalServiceUnavailable as e:
                logger.warning(
                    f"{gate_name} unavailable for job {job_id} at {checkpoint} "
                    f"(attempt {attempt}); continuing unvalidated: {e}"
                )
                report = self.gate.degraded_report()
                await self.gate.persist(job_id, attempt, report, checkpoint)
                attempts.append(RegenerationAttempt(attempt_number=attempt, report=report))
                return RegenerationOutcome(
                    state=RegenerationState.PASSED,
                    final_report=report,
                    attempts=attempts,
                    regenerations=regenerations,
                    degraded=True,
                )

            if report.has_critical_failure:
                attempts.append(RegenerationAttempt(attempt_number=attempt, report=report))
                logger.error(
                    f"{gate_name} critical failure for job {job_id} at {checkpoint} "
                    f"(attempt {attempt}): {'; '.join(report.critical_failures)}"
                )
                raise CriticalValidationFailure(
                    gate=self.gate.GATE_KIND,
                    score=report.overall_score,
                    reasons=report.failure_reasons,
                    critical_failures=report.critical_failures,
                    attempts=attempt,
                    checkpoint=checkpoint,
                )

            if report.passes_threshold:
                attempts.append(RegenerationAttempt(attempt_number=attempt, report=report))
                if regenerations:
                    logger.info(
                        f"{gate_name} passed for job {job_id} at {checkpoint} "
                        f"after {regenerations} regeneration(s)"
                    )
                return RegenerationOutcome(
                    state=RegenerationState.PASSED,
                    final_report=report,
                    attempts=attempts,
                    regenerations=regenerations,
                    degraded=report.degraded,
                )

            if attempt >= self.max_attempts:
                state = RegenerationState.FAILED_TERMINAL
                attempts.append(RegenerationAttempt(attempt_number=attempt, report=report))
                logger.error(
                    f"{gate_name} {state.value} for job {job_id} at {checkpoint}: "
                    f"{report.overall_score:g}% after {attempt} attempt(s)"
                )
                raise ValidationFailure(
                    gate=self.gate.GATE_KIND,
                    score=report.overall_score,
                    reasons=report.failure_reasons,
                    attempts=attempt,
                    checkpoint=checkpoint,
                )

            state = RegenerationState.FAILED_RETRYABLE
            attempts.append(
                RegenerationAttempt(attempt_number=attempt, report=report, triggered_regeneration=True)
            )
            directive = build_enhancement_directive(report.failure_reasons, attempt + 1, self.max_attempts)
            logger.info(
                f"{gate_name} {state.value} for job {job_id} at {checkpoint} "
                f"({report.overall_score:g}% < {report.threshold:g}%), regenerating "
                f"(attempt {attempt + 1}/{self.max_attempts})"
            )
            await regenerate(directive, attempt + 1)
            regenerations += 1
            attempt += 1


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["RegenerationController", "RegenerationOutcome", "ValidateFunc", "RegenerateFunc"]
