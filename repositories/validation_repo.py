# ============================================================================
# VALIDATION RESULT REPOSITORY
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Core - Quality gate audit trail
# PURPOSE: One row per validation attempt, keyed by (job_id, attempt)
# CREATED: 19 OCT 2026
# ============================================================================
"""
Validation Result Repository

Stores every ValidationReport a quality gate produces, tagged with the
checkpoint and attempt number, so the retry history of any checkpoint can
be reconstructed for audit. Writes are best-effort from the gate's point
of view: the gate logs and swallows failures from here.
"""

import logging
from typing import Any, Dict, List, Optional

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json

from core.models import ValidationReport
from .base import AsyncBaseRepository
from .database import TABLE_VALIDATION_RESULTS

logger = logging.getLogger(__name__)


class ValidationResultRepository(AsyncBaseRepository):
    """Repository for persisted validation reports."""

    async def store_validation_result(
        self,
        job_id: str,
        attempt_number: int,
        report: ValidationReport,
        checkpoint: Optional[str] = None,
    ) -> None:
        """
        Persist one validation report.

        Args:
            job_id: Job the artifacts belong to
            attempt_number: 1-based attempt within the checkpoint
            report: Report to store
            checkpoint: Checkpoint name (e.g. "page-2")
        """
        panel_number = report.panel_numbers[-1] if report.panel_numbers else None

        async with self._connection("store validation result", job_id) as conn:
            await conn.execute(
                sql.SQL("""
                INSERT INTO {} (
                    job_id, gate, checkpoint, panel_number, attempt_number,
                    overall_score, dimension_scores, passes_threshold, threshold,
                    failure_reasons, critical_failures, detailed_analysis,
                    degraded, skipped
                ) VALUES (
                    %(job_id)s, %(gate)s, %(checkpoint)s, %(panel_number)s, %(attempt_number)s,
                    %(overall_score)s, %(dimension_scores)s, %(passes_threshold)s, %(threshold)s,
                    %(failure_reasons)s, %(critical_failures)s, %(detailed_analysis)s,
                    %(degraded)s, %(skipped)s
                )
                """).format(TABLE_VALIDATION_RESULTS),
                {
                    "job_id": job_id,
                    "gate": report.gate.value,
                    "checkpoint": checkpoint,
                    "panel_number": panel_number,
                    "attempt_number": attempt_number,
                    "overall_score": report.overall_score,
                    "dimension_scores": Json(report.dimension_scores),
                    "passes_threshold": report.passes_threshold,
                    "threshold": report.threshold,
                    "failure_reasons": Json(report.failure_reasons),
                    "critical_failures": Json(report.critical_failures),
                    "detailed_analysis": report.detailed_analysis[:4000],
                    "degraded": report.degraded,
                    "skipped": report.skipped,
                },
            )
            logger.debug(
                f"Stored {report.gate.value} result for job {job_id} "
                f"(checkpoint={checkpoint}, attempt={attempt_number}, score={report.overall_score:g})"
            )

    async def list_for_job(self, job_id: str) -> List[Dict[str, Any]]:
        """
        Read back the validation history of a job, oldest first.

        Returns:
            List of row dicts
        """
        async with self._connection("list validation results", job_id) as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("""
                SELECT * FROM {}
                WHERE job_id = %s
                ORDER BY created_at ASC, attempt_number ASC
                """).format(TABLE_VALIDATION_RESULTS),
                (job_id,),
            )
            return list(await result.fetchall())


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["ValidationResultRepository"]
