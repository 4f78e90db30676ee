# ============================================================================
# SEQUENTIAL CONTINUITY GATE
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Quality - Panel-to-panel continuity
# PURPOSE: Consecutive panels must read as one continuous scene
# CREATED: 19 OCT 2026
# ============================================================================
"""
Sequential Continuity Gate

validate() scores one (previous, current) panel pair. validate_page()
scores every consecutive pair of a page concurrently and folds them into
one page report:

    - overall = mean of the measured (non-sentinel) pair scores
    - a pair whose analysis call is unavailable becomes a degraded pair
      and is excluded from the mean
    - failed transitions are listed in the failure reasons
    - any critical pair failure is carried into the page report

Critical floors: character continuity < 80, art style < 75, and any
dimension < 60.
"""

import asyncio
import logging
from statistics import mean
from typing import Any, Dict, List, Optional, Sequence

from core.config import QualityDefaults
from core.contracts import GateKind
from core.errors import ExternalServiceUnavailable
from core.models import ValidationReport
from services.analysis_client import AnalysisClient
from .gate import QualityGate

logger = logging.getLogger(__name__)


class SequentialContinuityGate(QualityGate):
    """Continuity between consecutive panels."""

    GATE_KIND = GateKind.SEQUENTIAL_CONTINUITY
    DIMENSIONS = {
        "character_continuity": ("characterContinuity",),
        "environmental_continuity": ("environmentalContinuity",),
        "lighting": ("lightingConsistency", "lighting_consistency"),
        "color_palette": ("colorPaletteConsistency", "color_palette_consistency"),
        "art_style": ("artStyleConsistency", "art_style_consistency"),
        "spatial_logic": ("spatialLogic",),
    }

    def __init__(
        self,
        analysis: AnalysisClient,
        quality: Optional[QualityDefaults] = None,
        repo=None,
    ):
        quality = quality or QualityDefaults()
        super().__init__(analysis, quality.consistency_threshold, quality, repo)

    def critical_floors(self) -> Dict[str, float]:
        return {
            "character_continuity": self.quality.character_continuity_floor,
            "art_style": self.quality.art_style_floor,
        }

    def any_dimension_floor(self) -> Optional[float]:
        return self.quality.any_dimension_floor

    def build_prompt(self, artifacts: Sequence[str], context: Dict[str, Any]) -> str:
        previous_number = context.get("previous_panel_number", 1)
        current_number = context.get("current_panel_number", previous_number + 1)
        return f"""Compare two consecutive comic panels.
Image 1 is panel {previous_number}; image 2 is panel {current_number}, which immediately follows it.

Score 0-100:
- character_continuity: the character looks identical (only pose/expression may change)
- environmental_continuity: background and location elements match
- lighting: light direction and mood are the same
- color_palette: colors and temperature are consistent
- art_style: rendering and line weight are indistinguishable
- spatial_logic: camera movement and spatial relationships make sense

Be strict. The panels must feel like one continuous story.

Return ONLY JSON:
{{"overall_score": number, "character_continuity": number,
  "environmental_continuity": number, "lighting": number, "color_palette": number,
  "art_style": number, "spatial_logic": number,
  "detailed_analysis": "text", "discontinuities": ["..."]}}"""

    # ------------------------------------------------------------------
    # PAGE VALIDATION
    # ------------------------------------------------------------------

    async def _validate_pair(
        self,
        previous_ref: str,
        current_ref: str,
        previous_number: int,
        context: Dict[str, Any],
        job_id: Optional[str],
        attempt: int,
        checkpoint: Optional[str],
    ) -> ValidationReport:
        panel_numbers = [previous_number, previous_number + 1]
        pair_context = dict(
            context,
            previous_panel_number=previous_number,
            current_panel_number=previous_number + 1,
        )
        try:
            return await self.validate(
                [previous_ref, current_ref],
                pair_context,
                job_id=job_id,
                attempt=attempt,
                checkpoint=checkpoint,
                panel_numbers=panel_numbers,
            )
        except ExternalServiceUnavailable as e:
            logger.warning(
                f"Continuity check {previous_number}->{previous_number + 1} unvalidated "
                f"for job {job_id}: {e}"
            )
            report = self.degraded_report(panel_numbers)
            await self.persist(job_id, attempt, report, checkpoint)
            return report

    async def validate_page(
        self,
        panels: Sequence[str],
        context: Optional[Dict[str, Any]] = None,
        *,
        job_id: Optional[str] = None,
        attempt: int = 1,
        checkpoint: Optional[str] = None,
        first_panel_number: int = 1,
    ) -> ValidationReport:
        """
        Validate every consecutive pair of a page.

        Args:
            panels: Panel artifact refs in reading order
            first_panel_number: Job-wide number of panels[0]

        Returns:
            Aggregated page report
        """
        panel_numbers = list(range(first_panel_number, first_panel_number + len(panels)))
        if len(panels) < 2:
            return ValidationReport.skipped_pass(
                self.GATE_KIND,
                self.threshold,
                self.dimensions,
                "Fewer than two panels on page",
                panel_numbers,
            )
        self.check_artifacts(panels)

        pair_reports = await asyncio.gather(*[
            self._validate_pair(
                panels[i], panels[i + 1], first_panel_number + i,
                context or {}, job_id, attempt, checkpoint,
            )
            for i in range(len(panels) - 1)
        ])

        measured = [r for r in pair_reports if not r.is_sentinel]
        if not measured:
            return self.degraded_report(panel_numbers)

        overall = mean(r.overall_score for r in measured)
        dimension_scores = {
            d: mean(r.dimension_scores.get(d, 0.0) for r in measured) for d in self.dimensions
        }

        reasons: List[str] = []
        critical: List[str] = []
        for report in measured:
            a, b = report.panel_numbers
            if not report.passes_threshold:
                detail = "; ".join(report.failure_reasons) or "below threshold"
                reasons.append(f"Transition {a}->{b} failed ({report.overall_score:g}%): {detail}")
            critical.extend(f"Transition {a}->{b}: {c}" for c in report.critical_failures)

        page = ValidationReport.scored(
            gate=self.GATE_KIND,
            threshold=self.threshold,
            overall_score=overall,
            dimension_scores=dimension_scores,
            failure_reasons=reasons,
            critical_failures=critical,
            detailed_analysis=(
                f"{len(measured)}/{len(pair_reports)} transitions measured, "
                f"{sum(1 for r in measured if not r.passes_threshold)} failed"
            ),
            panel_numbers=panel_numbers,
        )
        logger.info(f"Page continuity for job {job_id} ({checkpoint}): {page.summary()}")
        return page


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["SequentialContinuityGate"]
