# ============================================================================
# ENHANCEMENT DIRECTIVES
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Quality - Corrective instructions for regeneration
# PURPOSE: Map validation failure reasons to explicit generation directives
# CREATED: 19 OCT 2026
# ============================================================================
"""
Enhancement Directives

When a checkpoint fails, the failure reasons are pattern-matched to
corrective instructions that are appended to the next generation prompt.
A reason that mentions lighting adds a lighting directive, and so on.
"""

import re
from typing import List, Sequence, Tuple

# (keywords, directive); checked in order, each directive emitted once
KEYWORD_DIRECTIVES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("face", "facial", "identity", "character"),
     "FACIAL FEATURES MUST MATCH EXACTLY - eyes, nose, mouth, face shape, hair"),
    (("body", "proportion"),
     "BODY PROPORTIONS MUST BE IDENTICAL - height, build, posture"),
    (("clothing", "outfit"),
     "CLOTHING MUST BE EXACTLY AS SPECIFIED - every garment detail matters"),
    (("color", "palette"),
     "COLOR PALETTE MUST MATCH PRECISELY - all colors exactly as specified"),
    (("style", "art"),
     "ART STYLE MUST BE CONSISTENT - line weight, shading, rendering"),
    (("lighting", "light"),
     "LIGHTING MUST BE CONSISTENT - same light direction, intensity and mood as the previous panel"),
    (("environment", "location", "background"),
     "ENVIRONMENT MUST MATCH - same location, background elements and props"),
    (("spatial", "camera"),
     "SPATIAL LOGIC MUST HOLD - camera movement and positions must follow from the previous panel"),
)

FINAL_ATTEMPT_CLAUSE = (
    "FINAL ATTEMPT - MAXIMUM CONSISTENCY ENFORCEMENT\n"
    "Zero tolerance for any deviation from the character and style above."
)


def directives_for_reasons(reasons: Sequence[str]) -> List[str]:
    """Corrective instructions matched from failure reasons, de-duplicated, in table order."""
    # Dimension names like "art_style" count as separate words
    lowered = [r.lower().replace("_", " ") for r in reasons]
    matched: List[str] = []
    for keywords, directive in KEYWORD_DIRECTIVES:
        if directive in matched:
            continue
        if any(_mentions(reason, k) for reason in lowered for k in keywords):
            matched.append(directive)
    return matched


def _mentions(reason: str, keyword: str) -> bool:
    """Keyword at the start of a word: "light" matches "lighting" but "art" never matches "start"."""
    return re.search(rf"\b{re.escape(keyword)}", reason) is not None


def build_enhancement_directive(reasons: Sequence[str], attempt: int, max_attempts: int) -> str:
    """
    Build the directive for a regeneration attempt.

    Args:
        reasons: Failure reasons of the report that triggered regeneration
        attempt: Attempt number the regenerated output will be validated as
        max_attempts: Attempt budget of the checkpoint

    Returns:
        Multi-line directive text
    """
    unique_reasons = list(dict.fromkeys(r for r in reasons if r))
    header = (
        f"RETRY ATTEMPT {attempt}/{max_attempts} - Previous validation failed: "
        f"{', '.join(unique_reasons) or 'score below threshold'}"
    )
    lines = [header, "CRITICAL:"]
    lines.extend(directives_for_reasons(unique_reasons))
    if attempt >= max_attempts:
        lines.append(FINAL_ATTEMPT_CLAUSE)
    return "\n".join(lines)


def enhance_prompt(prompt: str, directive: str) -> str:
    """Append a directive to a generation prompt."""
    if not directive:
        return prompt
    return f"{prompt}\n\n{directive}"


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "KEYWORD_DIRECTIVES",
    "FINAL_ATTEMPT_CLAUSE",
    "directives_for_reasons",
    "build_enhancement_directive",
    "enhance_prompt",
]
