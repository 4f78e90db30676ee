# ============================================================================
# VALIDATION REPORT MODELS
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Core model - Quality gate results
# PURPOSE: Scored, multi-dimension verdict on generated artifacts
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: ValidationReport, RegenerationAttempt, SENTINEL_SCORE
# DEPENDENCIES: pydantic
# ============================================================================
"""
Validation Report Models

A ValidationReport is produced fresh by a quality gate for every
validation call and never mutated afterwards (frozen model).

Sentinel reports (score -1) mark "not actually validated": either the
analysis service was unavailable (degraded=True) or validation was
skipped (skipped=True). They pass the threshold so the job can make
progress, but they are never counted as a good score.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, computed_field

from core.contracts import GateKind

SENTINEL_SCORE: float = -1.0


class ValidationReport(BaseModel):
    """
    Result of one quality gate call.

    Maps to: storyworker.panel_validation_results (one row per attempt)
    """

    model_config = {"frozen": True}

    gate: GateKind
    threshold: float = Field(..., ge=0, le=100)
    overall_score: float = Field(..., ge=SENTINEL_SCORE, le=100)
    dimension_scores: Dict[str, float] = Field(default_factory=dict)
    passes_threshold: bool
    failure_reasons: List[str] = Field(default_factory=list)
    critical_failures: List[str] = Field(default_factory=list)
    detailed_analysis: str = ""
    panel_numbers: List[int] = Field(default_factory=list)

    degraded: bool = False
    skipped: bool = False

    @computed_field
    @property
    def is_sentinel(self) -> bool:
        """True when the score is a placeholder rather than a measurement."""
        return self.overall_score == SENTINEL_SCORE

    @property
    def has_critical_failure(self) -> bool:
        return bool(self.critical_failures)

    @classmethod
    def scored(
        cls,
        gate: GateKind,
        threshold: float,
        overall_score: float,
        dimension_scores: Dict[str, float],
        failure_reasons: Optional[List[str]] = None,
        critical_failures: Optional[List[str]] = None,
        detailed_analysis: str = "",
        panel_numbers: Optional[List[int]] = None,
    ) -> "ValidationReport":
        """Build a measured report; passes_threshold is overall >= threshold."""
        return cls(
            gate=gate,
            threshold=threshold,
            overall_score=overall_score,
            dimension_scores=dict(dimension_scores),
            passes_threshold=overall_score >= threshold,
            failure_reasons=list(failure_reasons or []),
            critical_failures=list(critical_failures or []),
            detailed_analysis=detailed_analysis,
            panel_numbers=list(panel_numbers or []),
        )

    @classmethod
    def degraded_pass(
        cls,
        gate: GateKind,
        threshold: float,
        dimensions: List[str],
        reason: str = "Analysis service unavailable",
        panel_numbers: Optional[List[int]] = None,
    ) -> "ValidationReport":
        """Synthetic pass used when the analysis service cannot be reached."""
        return cls(
            gate=gate,
            threshold=threshold,
            overall_score=SENTINEL_SCORE,
            dimension_scores={d: SENTINEL_SCORE for d in dimensions},
            passes_threshold=True,
            failure_reasons=[reason],
            detailed_analysis="Validation skipped: analysis service unavailable",
            panel_numbers=list(panel_numbers or []),
            degraded=True,
        )

    @classmethod
    def skipped_pass(
        cls,
        gate: GateKind,
        threshold: float,
        dimensions: List[str],
        reason: str,
        panel_numbers: Optional[List[int]] = None,
    ) -> "ValidationReport":
        """Synthetic pass for a check that was intentionally not run."""
        return cls(
            gate=gate,
            threshold=threshold,
            overall_score=SENTINEL_SCORE,
            dimension_scores={d: SENTINEL_SCORE for d in dimensions},
            passes_threshold=True,
            failure_reasons=[],
            detailed_analysis=reason,
            panel_numbers=list(panel_numbers or []),
            skipped=True,
        )

    @classmethod
    def parse_failure(
        cls,
        gate: GateKind,
        threshold: float,
        dimensions: List[str],
        message: str,
        panel_numbers: Optional[List[int]] = None,
    ) -> "ValidationReport":
        """Pessimistic all-zero report for an unparseable analysis response."""
        return cls(
            gate=gate,
            threshold=threshold,
            overall_score=0.0,
            dimension_scores={d: 0.0 for d in dimensions},
            passes_threshold=False,
            failure_reasons=["Parse error", message],
            detailed_analysis=f"Failed to parse analysis response: {message}",
            panel_numbers=list(panel_numbers or []),
        )

    def summary(self) -> str:
        """One-line summary for logs and job error messages."""
        if self.degraded:
            return f"{self.gate.value}: unvalidated (analysis unavailable)"
        if self.skipped:
            return f"{self.gate.value}: skipped ({self.detailed_analysis})"
        verdict = "PASSED" if self.passes_threshold else "FAILED"
        return f"{self.gate.value}: {self.overall_score:g}% {verdict} (threshold {self.threshold:g}%)"


class RegenerationAttempt(BaseModel):
    """One validate/regenerate round inside a checkpoint. Never persisted as a whole."""

    model_config = {"frozen": True}

    attempt_number: int = Field(..., ge=1)
    report: ValidationReport
    triggered_regeneration: bool = False


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ValidationReport",
    "RegenerationAttempt",
    "SENTINEL_SCORE",
]
