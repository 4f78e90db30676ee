# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Core - Structured logging with per-job context
# PURPOSE: Consistent, queryable logging across scheduler, executor and gates
# CREATED: 19 OCT 2026
# ============================================================================
"""
Structured Logging

Provides JSON or human-readable logging for the worker.

Features:
- Contextual fields (job_id, checkpoint, attempt, correlation_id)
- Context is task-local (contextvars), so concurrently running jobs on the
  same event loop never see each other's fields
- JSON output for log aggregation
- Named checkpoints for pipeline milestones

Usage:
    import logging
    from core.logging import log_context

    logger = logging.getLogger(__name__)

    with log_context(job_id="job-123", checkpoint="page-1"):
        logger.info("Validating page")
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union


@dataclass
class LogContext:
    """
    Context for structured logging.

    One instance per `log_context` block; nested blocks inherit the
    parent's fields.
    """
    job_id: Optional[str] = None
    job_type: Optional[str] = None
    checkpoint: Optional[str] = None
    attempt: Optional[int] = None
    correlation_id: Optional[str] = None
    worker_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict, excluding None values."""
        result = {}
        for key, value in asdict(self).items():
            if value is not None and key != "extra":
                result[key] = value
        if self.extra:
            result.update(self.extra)
        return result


_current_context: ContextVar[Optional[LogContext]] = ContextVar(
    "storyworker_log_context", default=None
)


def get_current_context() -> LogContext:
    """Get current logging context."""
    context = _current_context.get()
    if context is None:
        return LogContext()
    return context


@contextmanager
def log_context(**kwargs):
    """
    Context manager for adding logging context.

    Args:
        **kwargs: Context fields to add (unknown keys go to `extra`)

    Example:
        with log_context(job_id="job-123", checkpoint="page-2", attempt=1):
            logger.info("Validating")
    """
    parent = get_current_context()
    known = {k: v for k, v in kwargs.items() if k in LogContext.__dataclass_fields__ and k != "extra"}
    unknown = {k: v for k, v in kwargs.items() if k not in LogContext.__dataclass_fields__}

    new_context = LogContext(
        job_id=known.get("job_id", parent.job_id),
        job_type=known.get("job_type", parent.job_type),
        checkpoint=known.get("checkpoint", parent.checkpoint),
        attempt=known.get("attempt", parent.attempt),
        correlation_id=known.get("correlation_id", parent.correlation_id),
        worker_id=known.get("worker_id", parent.worker_id),
        extra={**parent.extra, **kwargs.get("extra", {}), **unknown},
    )

    token = _current_context.set(new_context)
    try:
        yield new_context
    finally:
        _current_context.reset(token)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs log records as JSON for easy parsing by log aggregators.
    """

    def __init__(self, include_context: bool = True, include_source: bool = True):
        super().__init__()
        self.include_context = include_context
        self.include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": _utc_timestamp(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_context:
            context_dict = get_current_context().to_dict()
            if context_dict:
                log_data["context"] = context_dict

        if hasattr(record, "extra") and record.extra:
            log_data["data"] = record.extra

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.include_source:
            log_data["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class HumanFormatter(logging.Formatter):
    """
    Human-readable formatter for development.

    Includes context fields inline for easy reading.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for human reading."""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname.ljust(8)

        context = get_current_context()
        context_parts = []
        if context.job_id:
            context_parts.append(f"job={context.job_id}")
        if context.checkpoint:
            context_parts.append(f"checkpoint={context.checkpoint}")
        if context.attempt is not None:
            context_parts.append(f"attempt={context.attempt}")

        context_str = f" [{', '.join(context_parts)}]" if context_parts else ""

        result = f"{timestamp} {level} {record.name}{context_str}: {record.getMessage()}"

        if record.exc_info:
            result += f"\n{self.formatException(record.exc_info)}"

        return result


def configure_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = False,
) -> None:
    """
    Configure logging for the worker process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_output: Use JSON format (for production)
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_output or os.getenv("LOG_FORMAT", "").lower() == "json":
        formatter: logging.Formatter = StructuredFormatter(include_context=True)
    else:
        formatter = HumanFormatter()

    root = logging.getLogger()
    root.setLevel(level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ============================================================================
# CHECKPOINT LOGGING
# ============================================================================

def log_checkpoint(
    name: str,
    data: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Log a named pipeline milestone.

    Args:
        name: Checkpoint name (e.g., "job_admitted", "page_validated")
        data: Optional checkpoint data
        logger: Optional specific logger to use
    """
    if logger is None:
        logger = logging.getLogger("checkpoint")

    checkpoint_data: Dict[str, Any] = get_current_context().to_dict()
    checkpoint_data["milestone"] = name
    checkpoint_data["timestamp"] = _utc_timestamp()

    if data:
        checkpoint_data["data"] = data

    logger.info(f"CHECKPOINT: {name}", extra={"extra": checkpoint_data})


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "LogContext",
    "StructuredFormatter",
    "HumanFormatter",
    "configure_logging",
    "log_context",
    "get_current_context",
    "log_checkpoint",
]
