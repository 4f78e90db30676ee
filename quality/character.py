# ============================================================================
# CHARACTER CONSISTENCY GATE
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Quality - Cross-panel character consistency
# PURPOSE: Same character, same look, across every panel of a page
# CREATED: 19 OCT 2026
# ============================================================================
"""
Character Consistency Gate

Compares the panels of one page (optionally with the character reference
image first) and scores how consistently the main character is drawn.

Threshold 85. Facial identity below 60 is a critical failure even when
the aggregate passes.

Smart skip: once the first nine panels of a job have all passed with 90+,
later panels are not re-validated. The skip report is a sentinel with
skipped=True so it never counts as a measured score.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from core.config import QualityDefaults
from core.contracts import GateKind
from core.models import ValidationReport
from services.analysis_client import AnalysisClient
from .gate import QualityGate

logger = logging.getLogger(__name__)


class CharacterConsistencyGate(QualityGate):
    """Cross-panel consistency of one character."""

    GATE_KIND = GateKind.CHARACTER_CONSISTENCY
    DIMENSIONS = {
        "facial": ("facialConsistency", "facial_consistency"),
        "body_proportion": ("bodyProportionConsistency", "body_proportion_consistency"),
        "clothing": ("clothingConsistency", "clothing_consistency"),
        "color_palette": ("colorPaletteConsistency", "color_palette_consistency"),
        "art_style": ("artStyleConsistency", "art_style_consistency"),
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
        return {"facial": self.quality.identity_floor}

    def build_prompt(self, artifacts: Sequence[str], context: Dict[str, Any]) -> str:
        description = context.get("character_description") or "the main character"
        has_reference = bool(context.get("reference_image"))
        images = (
            "The first image is the character reference; the rest are story panels in order."
            if has_reference
            else "The images are story panels in reading order."
        )
        return f"""You are a comic book quality control reviewer.
{images}

CHARACTER:
{description}

ART STYLE: {context.get("art_style", "storybook")}

Score 0-100 how consistently the character is drawn across ALL images:
- facial: face shape, eyes, hair, skin tone
- body_proportion: build, height, proportions
- clothing: every garment and accessory
- color_palette: character colors
- art_style: rendering, line weight, shading

Be strict: a different-looking character must score low on facial.

Return ONLY JSON:
{{"overall_score": number, "facial": number, "body_proportion": number,
  "clothing": number, "color_palette": number, "art_style": number,
  "detailed_analysis": "text", "failure_reasons": ["..."]}}"""

    # ------------------------------------------------------------------
    # SMART SKIP
    # ------------------------------------------------------------------

    def should_skip(self, history: Sequence[ValidationReport], next_panel_number: int) -> bool:
        """
        True when validation of later panels can be skipped for this job.

        Args:
            history: One report per already-validated panel, in panel order
            next_panel_number: First panel number about to be validated
        """
        window = self.quality.smart_skip_after_panels
        if next_panel_number <= window or len(history) < window:
            return False
        opening = history[:window]
        return all(
            r.passes_threshold and not r.is_sentinel and r.overall_score >= self.quality.smart_skip_min_score
            for r in opening
        )

    def skip_report(self, panel_numbers: Optional[List[int]] = None) -> ValidationReport:
        reason = (
            f"Validation skipped: first {self.quality.smart_skip_after_panels} panels "
            f"all scored >= {self.quality.smart_skip_min_score:g}"
        )
        logger.info(f"{reason} (panels {panel_numbers})")
        return ValidationReport.skipped_pass(
            self.GATE_KIND, self.threshold, self.dimensions, reason, panel_numbers
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["CharacterConsistencyGate"]
