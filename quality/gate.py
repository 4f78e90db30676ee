# ============================================================================
# QUALITY GATE BASE
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Quality - Generic validator contract
# PURPOSE: Score generated artifacts against a rubric via the analysis service
# CREATED: 19 OCT 2026
# ============================================================================
"""
Quality Gate Base

A quality gate takes one or more generated artifacts plus context, asks
the comparative analysis service to score them across a fixed set of
dimensions, and turns the answer into a ValidationReport.

Contract:
    validate(artifacts, context) -> ValidationReport
    raises ExternalServiceUnavailable when the analysis service is down
    raises InputValidationError for artifact refs that are not URLs

The provider's response is never trusted as-is:
    - markdown fences and surrounding prose are stripped
    - dimension scores are clamped to [0, 100]
    - the overall score is recomputed when absent or out of range
    - an unparseable response becomes a pessimistic all-zero report

Every report the gate produces is persisted best-effort: a storage
failure is logged and the report is still returned.
"""

import logging
import math
from statistics import mean
from typing import Any, Dict, List, Optional, Sequence, Tuple

from core.config import QualityDefaults
from core.contracts import GateKind
from core.errors import InputValidationError, JobError, MalformedResponse
from core.models import ValidationReport
from services.analysis_client import AnalysisClient, SERVICE_NAME as ANALYSIS_SERVICE
from services.http import extract_json_object

logger = logging.getLogger(__name__)


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%"))
        except ValueError:
            return None
    if not isinstance(value, (int, float)) or math.isnan(value):
        return None
    return float(value)


def clamp_score(value: Any) -> Optional[float]:
    """Coerce a provider score to [0, 100]; None when it is not a number."""
    number = _to_float(value)
    if number is None:
        return None
    return max(0.0, min(100.0, number))


def _dimension_label(dimension: str) -> str:
    return dimension.replace("_", " ")


class QualityGate:
    """
    Base class for the concrete gates.

    Subclasses set GATE_KIND and DIMENSIONS, and implement build_prompt()
    and critical_floors().
    """

    GATE_KIND: GateKind
    # dimension -> accepted response keys (first match wins)
    DIMENSIONS: Dict[str, Tuple[str, ...]] = {}

    def __init__(
        self,
        analysis: AnalysisClient,
        threshold: float,
        quality: Optional[QualityDefaults] = None,
        repo=None,
    ):
        self.analysis = analysis
        self.threshold = threshold
        self.quality = quality or QualityDefaults()
        self.repo = repo

    @property
    def dimensions(self) -> List[str]:
        return list(self.DIMENSIONS)

    # ------------------------------------------------------------------
    # SUBCLASS HOOKS
    # ------------------------------------------------------------------

    def build_prompt(self, artifacts: Sequence[str], context: Dict[str, Any]) -> str:
        raise NotImplementedError

    def critical_floors(self) -> Dict[str, float]:
        """Per-dimension floors; a score below one is fatal regardless of the aggregate."""
        return {}

    def any_dimension_floor(self) -> Optional[float]:
        """Floor applied to every dimension, if the gate has one."""
        return None

    # ------------------------------------------------------------------
    # VALIDATION
    # ------------------------------------------------------------------

    async def validate(
        self,
        artifacts: Sequence[str],
        context: Optional[Dict[str, Any]] = None,
        *,
        job_id: Optional[str] = None,
        attempt: int = 1,
        checkpoint: Optional[str] = None,
        panel_numbers: Optional[List[int]] = None,
    ) -> ValidationReport:
        """
        Score artifacts and persist the report.

        Raises:
            InputValidationError: An artifact ref is not an http(s) URL
            ExternalServiceUnavailable: Analysis service unreachable after retries
        """
        self.check_artifacts(artifacts)
        prompt = self.build_prompt(artifacts, context or {})

        try:
            raw = await self.analysis.compare(list(artifacts), prompt)
            report = self.parse_response(raw, panel_numbers)
        except MalformedResponse as e:
            logger.warning(f"{self.GATE_KIND.value}: unusable analysis response for job {job_id}: {e}")
            report = ValidationReport.parse_failure(
                self.GATE_KIND, self.threshold, self.dimensions, e.message, panel_numbers
            )

        self._log_report(report, job_id, attempt, checkpoint)
        await self.persist(job_id, attempt, report, checkpoint)
        return report

    def check_artifacts(self, artifacts: Sequence[str]) -> None:
        if not artifacts:
            raise InputValidationError(f"{self.GATE_KIND.value}: no artifacts to validate", field="artifacts")
        for ref in artifacts:
            if not isinstance(ref, str) or not ref.startswith(("http://", "https://")):
                raise InputValidationError(
                    f"{self.GATE_KIND.value}: invalid artifact reference {ref!r}",
                    field="artifacts",
                )

    def degraded_report(self, panel_numbers: Optional[List[int]] = None) -> ValidationReport:
        """Sentinel pass for when the analysis service cannot be reached."""
        return ValidationReport.degraded_pass(
            self.GATE_KIND, self.threshold, self.dimensions, panel_numbers=panel_numbers
        )

    # ------------------------------------------------------------------
    # PARSING
    # ------------------------------------------------------------------

    def parse_response(self, raw: str, panel_numbers: Optional[List[int]] = None) -> ValidationReport:
        """
        Turn raw analysis text into a report.

        Raises:
            MalformedResponse: No JSON object could be extracted
        """
        data = extract_json_object(raw, ANALYSIS_SERVICE)
        source = data.get("dimension_scores") or data.get("dimensionScores") or data
        if not isinstance(source, dict):
            source = data

        scores: Dict[str, float] = {}
        missing: List[str] = []
        for dimension, keys in self.DIMENSIONS.items():
            value = None
            for key in (dimension,) + keys:
                if key in source:
                    value = clamp_score(source[key])
                    break
            if value is None:
                missing.append(dimension)
                value = 0.0
            scores[dimension] = value

        overall = _to_float(data.get("overall_score", data.get("overallScore")))
        if overall is None or not 0 <= overall <= 100:
            # Absent or out of range: the provider's aggregate is not used
            overall = float(round(mean(scores.values()))) if scores else 0.0

        measured = {d: s for d, s in scores.items() if d not in missing}
        reasons = self.failure_reasons(measured)
        reasons.extend(f"{_dimension_label(d)} score missing" for d in missing)
        for key in ("failure_reasons", "failureReasons", "discontinuities", "issues"):
            provided = data.get(key)
            if isinstance(provided, list):
                reasons.extend(str(r) for r in provided if r and str(r) not in reasons)

        detailed = data.get("detailed_analysis") or data.get("detailedAnalysis") or ""

        return ValidationReport.scored(
            gate=self.GATE_KIND,
            threshold=self.threshold,
            overall_score=overall,
            dimension_scores=scores,
            failure_reasons=reasons,
            critical_failures=self.critical_failures(measured),
            detailed_analysis=str(detailed),
            panel_numbers=panel_numbers,
        )

    def failure_reasons(self, scores: Dict[str, float]) -> List[str]:
        """One reason per dimension below the gate threshold."""
        return [
            f"{_dimension_label(d)} below threshold ({s:g}% < {self.threshold:g}%)"
            for d, s in scores.items()
            if s < self.threshold
        ]

    def critical_failures(self, scores: Dict[str, float]) -> List[str]:
        failures: List[str] = []
        flagged = set()
        for dimension, floor in self.critical_floors().items():
            score = scores.get(dimension)
            if score is not None and score < floor:
                failures.append(f"{_dimension_label(dimension)} critically low ({score:g}% < {floor:g}%)")
                flagged.add(dimension)

        floor = self.any_dimension_floor()
        if floor is not None:
            for dimension, score in scores.items():
                if dimension not in flagged and score < floor:
                    failures.append(f"{_dimension_label(dimension)} critically low ({score:g}% < {floor:g}%)")
        return failures

    # ------------------------------------------------------------------
    # PERSISTENCE
    # ------------------------------------------------------------------

    async def persist(
        self,
        job_id: Optional[str],
        attempt: int,
        report: ValidationReport,
        checkpoint: Optional[str] = None,
    ) -> None:
        """Store a report. Never raises: validation must not depend on storage."""
        if self.repo is None or job_id is None:
            return
        try:
            await self.repo.store_validation_result(job_id, attempt, report, checkpoint)
        except JobError as e:
            logger.warning(
                f"Failed to store {self.GATE_KIND.value} result for job {job_id} "
                f"(attempt {attempt}): {e}"
            )

    def _log_report(
        self,
        report: ValidationReport,
        job_id: Optional[str],
        attempt: int,
        checkpoint: Optional[str],
    ) -> None:
        where = f"job {job_id} {checkpoint or ''} attempt {attempt}".strip()
        if report.has_critical_failure:
            logger.error(f"{report.summary()} [{where}] critical: {'; '.join(report.critical_failures)}")
        elif report.passes_threshold:
            logger.info(f"{report.summary()} [{where}]")
        elif report.overall_score < self.quality.warning_threshold:
            logger.error(f"{report.summary()} [{where}] reasons: {'; '.join(report.failure_reasons)}")
        else:
            logger.warning(f"{report.summary()} [{where}] reasons: {'; '.join(report.failure_reasons)}")


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["QualityGate", "clamp_score"]
