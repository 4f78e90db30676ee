# ============================================================================
# SCHEMA DDL
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Infrastructure - Table definitions
# PURPOSE: Idempotent DDL for the jobs and validation result tables
# CREATED: 19 OCT 2026
# ============================================================================
"""
Schema DDL

All statements are idempotent (IF NOT EXISTS) and composed with
psycopg.sql so the schema name is always quoted as an identifier.

Usage:
    statements = build_schema_statements("storyworker")
    await deploy_schema(pool)
"""

import logging
from typing import List

from psycopg import sql
from psycopg_pool import AsyncConnectionPool

from .database import SCHEMA

logger = logging.getLogger(__name__)


def build_schema_statements(schema: str = SCHEMA, default_max_retries: int = 3) -> List[sql.Composed]:
    """Build the ordered list of DDL statements for a schema."""
    jobs = sql.Identifier(schema, "jobs")
    results = sql.Identifier(schema, "panel_validation_results")

    return [
        sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(schema)),
        sql.SQL("""
        CREATE TABLE IF NOT EXISTS {} (
            job_id VARCHAR(64) PRIMARY KEY,
            job_type VARCHAR(32) NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            progress INTEGER NOT NULL DEFAULT 0 CHECK (progress BETWEEN 0 AND 100),
            current_step VARCHAR(500),
            payload JSONB NOT NULL DEFAULT '{{}}'::jsonb,
            result_data JSONB,
            error_message VARCHAR(2000),
            error_detail JSONB,
            retry_count INTEGER NOT NULL DEFAULT 0,
            max_retries INTEGER NOT NULL DEFAULT {},
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            started_at TIMESTAMPTZ,
            completed_at TIMESTAMPTZ,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            user_id VARCHAR(64),
            correlation_id VARCHAR(64)
        )
        """).format(jobs, sql.Literal(int(default_max_retries))),
        sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {} (status, created_at)").format(
            sql.Identifier("idx_jobs_status_created"), jobs
        ),
        sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {} (user_id)").format(
            sql.Identifier("idx_jobs_user"), jobs
        ),
        sql.SQL("""
        CREATE TABLE IF NOT EXISTS {} (
            id BIGSERIAL PRIMARY KEY,
            job_id VARCHAR(64) NOT NULL,
            gate VARCHAR(32) NOT NULL,
            checkpoint VARCHAR(128),
            panel_number INTEGER,
            attempt_number INTEGER NOT NULL,
            overall_score DOUBLE PRECISION NOT NULL,
            dimension_scores JSONB NOT NULL,
            passes_threshold BOOLEAN NOT NULL,
            threshold DOUBLE PRECISION NOT NULL,
            failure_reasons JSONB NOT NULL DEFAULT '[]'::jsonb,
            critical_failures JSONB NOT NULL DEFAULT '[]'::jsonb,
            detailed_analysis TEXT,
            degraded BOOLEAN NOT NULL DEFAULT false,
            skipped BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """).format(results),
        sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {} (job_id, attempt_number)").format(
            sql.Identifier("idx_validation_job_attempt"), results
        ),
    ]


def render_schema_sql(schema: str = SCHEMA, default_max_retries: int = 3) -> str:
    """Render the DDL as a script (for --dry-run)."""
    return ";\n".join(
        statement.as_string(None).strip()
        for statement in build_schema_statements(schema, default_max_retries)
    ) + ";\n"


async def deploy_schema(
    pool: AsyncConnectionPool,
    schema: str = SCHEMA,
    default_max_retries: int = 3,
) -> int:
    """
    Apply the DDL in one transaction.

    Returns:
        Number of statements executed
    """
    statements = build_schema_statements(schema, default_max_retries)
    async with pool.connection() as conn:
        async with conn.transaction():
            for statement in statements:
                await conn.execute(statement)
    logger.info(f"Deployed schema {schema} ({len(statements)} statements)")
    return len(statements)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["build_schema_statements", "render_schema_sql", "deploy_schema"]
