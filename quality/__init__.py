# ============================================================================
# QUALITY MODULE
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Quality - Gates, directives and the regeneration loop
# PURPOSE: Decide whether generated artifacts are good enough to keep
# CREATED: 19 OCT 2026
# ============================================================================
"""
Quality Module

Three gates share one contract (QualityGate.validate). The regeneration
controller wraps any of them with a bounded retry loop.
"""

from .gate import QualityGate, clamp_score
from .character import CharacterConsistencyGate
from .sequential import SequentialContinuityGate
from .style import StyleFidelityGate
from .directives import build_enhancement_directive, enhance_prompt, directives_for_reasons
from .regeneration import RegenerationController, RegenerationOutcome

__all__ = [
    "QualityGate",
    "clamp_score",
    "CharacterConsistencyGate",
    "SequentialContinuityGate",
    "StyleFidelityGate",
    "build_enhancement_directive",
    "enhance_prompt",
    "directives_for_reasons",
    "RegenerationController",
    "RegenerationOutcome",
]
