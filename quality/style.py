# ============================================================================
# STYLE FIDELITY GATE
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Quality - Generated image vs. reference
# PURPOSE: Cartoonized/illustrated output must stay true to its reference
# CREATED: 19 OCT 2026
# ============================================================================
"""
Style Fidelity Gate

Artifacts are [reference_image, generated_image]. Threshold 70; age
appropriateness below 60 is a critical failure.
"""

from typing import Any, Dict, Optional, Sequence

from core.config import QualityDefaults
from core.contracts import GateKind
from services.analysis_client import AnalysisClient
from .gate import QualityGate


class StyleFidelityGate(QualityGate):
    """Fidelity of a styled image to its source."""

    GATE_KIND = GateKind.STYLE_FIDELITY
    DIMENSIONS = {
        "visual_clarity": ("visualClarity",),
        "character_fidelity": ("characterFidelity",),
        "style_accuracy": ("styleAccuracy",),
        "age_appropriateness": ("ageAppropriateness",),
        "professional_standard": ("professionalStandard",),
    }

    def __init__(
        self,
        analysis: AnalysisClient,
        quality: Optional[QualityDefaults] = None,
        repo=None,
    ):
        quality = quality or QualityDefaults()
        super().__init__(analysis, quality.style_threshold, quality, repo)

    def critical_floors(self) -> Dict[str, float]:
        return {"age_appropriateness": self.quality.content_safety_floor}

    def build_prompt(self, artifacts: Sequence[str], context: Dict[str, Any]) -> str:
        return f"""Image 1 is the original reference. Image 2 is a {context.get("style", "cartoon")}-style rendition for a {context.get("audience", "children")} audience.

Character notes: {context.get("character_description") or "none"}

Score 0-100:
- visual_clarity: clean lines, readable shapes
- character_fidelity: recognisably the same subject as the reference
- style_accuracy: matches the requested style
- age_appropriateness: suitable for the audience
- professional_standard: publishable quality

Return ONLY JSON:
{{"overall_score": number, "visual_clarity": number, "character_fidelity": number,
  "style_accuracy": number, "age_appropriateness": number,
  "professional_standard": number, "detailed_analysis": "text",
  "failure_reasons": ["..."]}}"""


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["StyleFidelityGate"]
