# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Persistence layer exports
# PURPOSE: Database access for jobs and validation results
# CREATED: 19 OCT 2026
# ============================================================================
"""
Repositories Module

Async PostgreSQL repositories (psycopg3 + psycopg_pool).
"""

from .database import (
    init_pool,
    close_pool,
    DatabasePool,
    get_connection_string,
    SCHEMA,
    TABLE_JOBS,
    TABLE_VALIDATION_RESULTS,
)
from .base import AsyncBaseRepository
from .job_repo import JobRepository
from .validation_repo import ValidationResultRepository
from .schema import build_schema_statements, render_schema_sql, deploy_schema

__all__ = [
    # Pool
    "init_pool",
    "close_pool",
    "DatabasePool",
    "get_connection_string",
    "SCHEMA",
    "TABLE_JOBS",
    "TABLE_VALIDATION_RESULTS",
    # Repositories
    "AsyncBaseRepository",
    "JobRepository",
    "ValidationResultRepository",
    # Schema
    "build_schema_statements",
    "render_schema_sql",
    "deploy_schema",
]
