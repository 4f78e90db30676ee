# ============================================================================
# REGENERATION CONTROLLER TESTS
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Tests - Bounded validate/regenerate loop and directives
# PURPOSE: Verify attempt budget, escalation, degraded mode and directive text
# CREATED: 19 OCT 2026
# ============================================================================
"""
Regeneration Controller Tests

Covers:
1. Pass on first attempt (no regeneration)
2. Fail then pass (one regeneration, directive passed to regenerate)
3. Budget exhaustion -> ValidationFailure after exactly max_attempts validations
4. Critical failure -> immediate CriticalValidationFailure
5. Analysis unavailable -> degraded pass, zero regenerations
6. Regeneration failure propagates
7. Enhancement directive content

Run with:
    pytest tests/test_regeneration.py -v
"""

import asyncio
import pytest
from typing import List
from unittest.mock import AsyncMock, MagicMock

from core.contracts import GateKind, RegenerationState
from core.errors import (
    CriticalValidationFailure,
    ExternalServiceUnavailable,
    ValidationFailure,
)
from core.models import ValidationReport
from quality import (
    CharacterConsistencyGate,
    RegenerationController,
    build_enhancement_directive,
    directives_for_reasons,
    enhance_prompt,
)
from quality.directives import FINAL_ATTEMPT_CLAUSE


# ============================================================================
# FIXTURES
# ============================================================================

DIMENSIONS = ["facial", "body_proportion", "clothing", "color_palette", "art_style"]


def report(score: float, reasons=None, critical=None) -> ValidationReport:
    return ValidationReport.scored(
        GateKind.CHARACTER_CONSISTENCY,
        85,
        score,
        {d: score for d in DIMENSIONS},
        failure_reasons=reasons or ([] if score >= 85 else ["clothing below threshold"]),
        critical_failures=critical,
    )


class ScriptedValidator:
    """validate(attempt) returning queued results (reports or exceptions)."""

    def __init__(self, *results):
        self.results = list(results)
        self.attempts: List[int] = []

    async def __call__(self, attempt: int) -> ValidationReport:
        self.attempts.append(attempt)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def repo():
    r = MagicMock()
    r.store_validation_result = AsyncMock(return_value=1)
    return r


@pytest.fixture
def gate(repo):
    return CharacterConsistencyGate(MagicMock(), repo=repo)


@pytest.fixture
def controller(gate):
    return RegenerationController(gate, max_attempts=2)


def run(controller, validate, regenerate):
    return asyncio.run(controller.run(validate, regenerate, job_id="job-001", checkpoint="page-1:character"))


# ============================================================================
# CONTROLLER
# ============================================================================

class TestRegenerationController:
    """State machine outcomes."""

    def test_pass_first_attempt(self, controller):
        validate = ScriptedValidator(report(92))
        regenerate = AsyncMock()

        outcome = run(controller, validate, regenerate)

        assert outcome.state == RegenerationState.PASSED
        assert outcome.passed
        assert outcome.regenerations == 0
        assert outcome.validations == 1
        assert outcome.degraded is False
        regenerate.assert_not_awaited()

    def test_fail_then_pass(self, controller):
        validate = ScriptedValidator(report(70), report(88))
        regenerate = AsyncMock()

        outcome = run(controller, validate, regenerate)

        assert outcome.passed
        assert outcome.regenerations == 1
        assert validate.attempts == [1, 2]
        assert outcome.attempts[0].triggered_regeneration is True
        assert outcome.attempts[1].triggered_regeneration is False
        assert outcome.final_report.overall_score == 88

        directive, attempt = regenerate.call_args.args
        assert attempt == 2
        assert directive.startswith("RETRY ATTEMPT 2/2")
        assert "CLOTHING MUST BE EXACTLY AS SPECIFIED" in directive

    def test_budget_exhausted(self, controller):
        validate = ScriptedValidator(report(70), report(75))
        regenerate = AsyncMock()

        with pytest.raises(ValidationFailure) as exc_info:
            run(controller, validate, regenerate)

        error = exc_info.value
        assert not isinstance(error, CriticalValidationFailure)
        assert error.attempts == 2
        assert error.score == 75
        assert error.retryable is True
        assert error.checkpoint == "page-1:character"
        assert validate.attempts == [1, 2]
        assert regenerate.await_count == 1

    def test_single_attempt_budget_never_regenerates(self, gate):
        controller = RegenerationController(gate, max_attempts=1)
        regenerate = AsyncMock()

        with pytest.raises(ValidationFailure):
            run(controller, ScriptedValidator(report(70)), regenerate)
        regenerate.assert_not_awaited()

    def test_critical_failure_is_immediate(self, controller):
        validate = ScriptedValidator(report(87, critical=["facial critically low (50% < 60%)"]))
        regenerate = AsyncMock()

        with pytest.raises(CriticalValidationFailure) as exc_info:
            run(controller, validate, regenerate)

        assert exc_info.value.attempts == 1
        assert exc_info.value.critical_failures == ["facial critically low (50% < 60%)"]
        regenerate.assert_not_awaited()

    def test_critical_on_second_attempt(self, controller):
        validate = ScriptedValidator(report(70), report(80, critical=["facial critically low"]))

        with pytest.raises(CriticalValidationFailure) as exc_info:
            run(controller, validate, AsyncMock())
        assert exc_info.value.attempts == 2

    def test_analysis_unavailable_degrades(self, controller, repo):
        validate = ScriptedValidator(ExternalServiceUnavailable("analysis", "HTTP 503"))
        regenerate = AsyncMock()

        outcome = run(controller, validate, regenerate)

        assert outcome.passed
        assert outcome.degraded is True
        assert outcome.regenerations == 0
        assert outcome.final_report.is_sentinel
        regenerate.assert_not_awaited()
        # degraded report is persisted for the audit trail
        repo.store_validation_result.assert_awaited_once()

    def test_unavailable_after_regeneration_degrades(self, controller):
        validate = ScriptedValidator(report(70), ExternalServiceUnavailable("analysis", "timeout"))

        outcome = run(controller, validate, AsyncMock())

        assert outcome.degraded is True
        assert outcome.regenerations == 1

    def test_regeneration_failure_propagates(self, controller):
        validate = ScriptedValidator(report(70))
        regenerate = AsyncMock(side_effect=ExternalServiceUnavailable("generation", "HTTP 502"))

        with pytest.raises(ExternalServiceUnavailable) as exc_info:
            run(controller, validate, regenerate)
        assert exc_info.value.service == "generation"

    def test_rejects_empty_budget(self, gate):
        with pytest.raises(ValueError):
            RegenerationController(gate, max_attempts=0)


# ============================================================================
# DIRECTIVES
# ============================================================================

class TestEnhancementDirective:
    """Failure reasons become corrective instructions."""

    def test_keywords_mapped(self):
        directives = directives_for_reasons([
            "facial below threshold (70% < 85%)",
            "lighting below threshold (60% < 85%)",
        ])
        assert len(directives) == 2
        assert directives[0].startswith("FACIAL FEATURES")
        assert directives[1].startswith("LIGHTING")

    def test_keywords_match_whole_word_starts(self):
        assert directives_for_reasons(["pose changed from the start", "arms apart", "surface texture"]) == []

    def test_dimension_names_split_on_underscore(self):
        directives = directives_for_reasons(["character_continuity below critical floor"])
        assert directives == [directives_for_reasons(["facial drift"])[0]]

    def test_directives_deduplicated(self):
        directives = directives_for_reasons(["face drifted", "facial identity lost", "character changed"])
        assert len(directives) == 1

    def test_header_and_final_clause(self):
        text = build_enhancement_directive(["clothing below threshold"], attempt=2, max_attempts=2)
        lines = text.splitlines()

        assert lines[0] == "RETRY ATTEMPT 2/2 - Previous validation failed: clothing below threshold"
        assert lines[1] == "CRITICAL:"
        assert FINAL_ATTEMPT_CLAUSE in text

    def test_no_final_clause_before_last_attempt(self):
        text = build_enhancement_directive(["art style drift"], attempt=2, max_attempts=3)
        assert FINAL_ATTEMPT_CLAUSE not in text
        assert "ART STYLE MUST BE CONSISTENT" in text

    def test_duplicate_reasons_listed_once(self):
        text = build_enhancement_directive(["spatial jump", "spatial jump"], attempt=2, max_attempts=2)
        assert text.splitlines()[0].endswith("failed: spatial jump")

    def test_enhance_prompt(self):
        assert enhance_prompt("A fox", "") == "A fox"
        assert enhance_prompt("A fox", "BE CONSISTENT") == "A fox\n\nBE CONSISTENT"
