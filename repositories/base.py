# ============================================================================
# BASE REPOSITORY - ERROR HANDLING PATTERNS
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Infrastructure - Base repository patterns
# PURPOSE: Map driver errors into the job error taxonomy, standard logging
# CREATED: 19 OCT 2026
# ============================================================================
"""
Base Repository Patterns

Every repository borrows connections through `_connection()`, which turns
driver failures into the error taxonomy:

- connection / pool exhaustion -> ExternalServiceUnavailable("database")
- anything else from psycopg   -> RepositoryError

Callers decide whether a persistence failure is fatal. The scheduler and
the quality gates treat ExternalServiceUnavailable as non-fatal.
"""

import logging
from abc import ABC
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import psycopg
from psycopg import AsyncConnection
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from core.errors import ExternalServiceUnavailable, RepositoryError


class AsyncBaseRepository(ABC):
    """
    Abstract base repository with common patterns.

    Provides:
    - Connection context manager with error normalization
    - Standardized operation logging
    """

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool
        self.logger = logging.getLogger(self.__class__.__module__)

    @asynccontextmanager
    async def _connection(
        self,
        operation: str,
        entity_id: Optional[str] = None,
    ) -> AsyncIterator[AsyncConnection]:
        """
        Borrow a pooled connection for one operation.

        Args:
            operation: Human-readable description of the operation
            entity_id: Optional entity ID for context

        Example:
            async with self._connection("mark completed", job_id) as conn:
                await conn.execute(...)
        """
        try:
            async with self.pool.connection() as conn:
                yield conn
        except (ExternalServiceUnavailable, RepositoryError):
            raise
        except (psycopg.OperationalError, PoolTimeout) as e:
            target = f" for {entity_id}" if entity_id else ""
            self.logger.warning(f"Database unavailable during {operation}{target}: {e}")
            raise ExternalServiceUnavailable("database", f"{operation}: {e}") from e
        except psycopg.Error as e:
            error_msg = f"{operation} failed"
            if entity_id:
                error_msg += f" for {entity_id}"
            error_msg += f": {e}"
            self.logger.error(error_msg)
            raise RepositoryError(error_msg, operation=operation, entity_id=entity_id) from e

    def _log_operation(
        self,
        success: bool,
        operation: str,
        entity_id: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log operation result with consistent formatting.

        Format:
            Success: "operation: entity_id | details"
            Failure: "operation failed: entity_id | details"
        """
        short_id = entity_id[:16] + "..." if len(entity_id) > 16 else entity_id

        msg = f"{operation}: {short_id}" if success else f"{operation} failed: {short_id}"
        if details:
            msg += f" | {details}"

        if success:
            self.logger.info(msg)
        else:
            self.logger.warning(msg)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["AsyncBaseRepository"]
