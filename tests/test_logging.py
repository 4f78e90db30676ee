# ============================================================================
# STRUCTURED LOGGING TESTS
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Tests - Context fields and formatters
# PURPOSE: Verify per-task log context and JSON/human output
# CREATED: 19 OCT 2026
# ============================================================================
"""
Structured Logging Tests

Run with:
    pytest tests/test_logging.py -v
"""

import asyncio
import json
import logging

from core.logging import (
    HumanFormatter,
    StructuredFormatter,
    get_current_context,
    log_checkpoint,
    log_context,
)


def make_record(message: str = "Validating page") -> logging.LogRecord:
    return logging.LogRecord(
        name="quality.gate", level=logging.INFO, pathname=__file__, lineno=10,
        msg=message, args=(), exc_info=None,
    )


class TestLogContext:
    """Nested and task-local context."""

    def test_nested_blocks_inherit(self):
        with log_context(job_id="job-001", checkpoint="page-1"):
            with log_context(attempt=2, panel=3):
                context = get_current_context().to_dict()
            assert get_current_context().attempt is None

        assert context == {"job_id": "job-001", "checkpoint": "page-1", "attempt": 2, "panel": 3}
        assert get_current_context().to_dict() == {}

    def test_concurrent_tasks_isolated(self):
        async def job(job_id: str, delay: float) -> str:
            with log_context(job_id=job_id):
                await asyncio.sleep(delay)
                return get_current_context().job_id

        async def main():
            return await asyncio.gather(job("job-a", 0.02), job("job-b", 0.0))

        assert asyncio.run(main()) == ["job-a", "job-b"]


class TestFormatters:
    """JSON for aggregation, inline fields for humans."""

    def test_structured(self):
        with log_context(job_id="job-001", checkpoint="page-2:continuity"):
            line = StructuredFormatter().format(make_record())

        data = json.loads(line)
        assert data["message"] == "Validating page"
        assert data["level"] == "INFO"
        assert data["timestamp"].endswith("Z")
        assert data["context"] == {"job_id": "job-001", "checkpoint": "page-2:continuity"}
        assert data["source"]["line"] == 10

    def test_human(self):
        with log_context(job_id="job-001", attempt=1):
            line = HumanFormatter().format(make_record())

        assert "quality.gate [job=job-001, attempt=1]: Validating page" in line

    def test_human_without_context(self):
        assert line_suffix(HumanFormatter().format(make_record())) == "quality.gate: Validating page"


def line_suffix(line: str) -> str:
    return line.split("INFO", 1)[1].strip()


class TestLogCheckpoint:
    def test_milestone_record(self, caplog):
        logger = logging.getLogger("test.checkpoint")
        with caplog.at_level(logging.INFO, logger="test.checkpoint"):
            with log_context(job_id="job-001"):
                log_checkpoint("job_completed", {"recorded": True}, logger)

        record = caplog.records[-1]
        assert record.getMessage() == "CHECKPOINT: job_completed"
        assert record.extra["milestone"] == "job_completed"
        assert record.extra["job_id"] == "job-001"
        assert record.extra["data"] == {"recorded": True}
