#!/usr/bin/env python
# ============================================================================
# SCHEMA DEPLOYMENT SCRIPT
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# PURPOSE: Print or apply the storyworker DDL (jobs, panel_validation_results)
# USAGE:
#   python scripts/deploy_schema.py --dry-run    # Preview SQL
#   python scripts/deploy_schema.py              # Execute deployment
#   python scripts/deploy_schema.py --stats      # Job counts by status
#   python scripts/deploy_schema.py --cleanup    # Delete old terminal jobs
# ============================================================================

import argparse
import asyncio
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import PersistenceDefaults
from repositories import (
    JobRepository,
    DatabasePool,
    deploy_schema,
    render_schema_sql,
)
from repositories.database import get_connection_string, mask_connection_string


async def _deploy(connection: str, schema: str, default_max_retries: int) -> int:
    async with DatabasePool(min_size=1, max_size=1, connection_string=connection) as pool:
        return await deploy_schema(pool, schema, default_max_retries)


async def _stats(connection: str) -> dict:
    async with DatabasePool(min_size=1, max_size=1, connection_string=connection) as pool:
        return await JobRepository(pool).get_job_stats()


async def _cleanup(connection: str, older_than_days: int) -> int:
    async with DatabasePool(min_size=1, max_size=1, connection_string=connection) as pool:
        return await JobRepository(pool).cleanup_old_jobs(older_than_days)


def main():
    persistence = PersistenceDefaults.from_env()

    parser = argparse.ArgumentParser(
        description="Deploy the storyworker schema to PostgreSQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/deploy_schema.py --dry-run     # Preview DDL without executing
  python scripts/deploy_schema.py               # Deploy schema
  python scripts/deploy_schema.py --stats       # Job counts by status
  python scripts/deploy_schema.py --cleanup 7   # Delete terminal jobs older than 7 days

Environment Variables:
  DATABASE_URL             Full PostgreSQL connection string
  POSTGRES_HOST            Database host (default: localhost)
  POSTGRES_DB              Database name (default: postgres)
  POSTGRES_USER            Database user (default: postgres)
  POSTGRES_PASSWORD        Database password
  POSTGRES_PORT            Database port (default: 5432)
  DB_SCHEMA                Schema name (default: storyworker)
  JOB_DEFAULT_MAX_RETRIES  Column default for max_retries (default: 3)
  JOB_CLEANUP_DAYS         Default age for --cleanup (default: 30)
        """
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print DDL without executing"
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print job counts by status"
    )
    parser.add_argument(
        "--cleanup",
        type=int,
        nargs="?",
        const=persistence.cleanup_after_days,
        metavar="DAYS",
        help=f"Delete terminal jobs older than DAYS (default: {persistence.cleanup_after_days})"
    )
    parser.add_argument(
        "--connection",
        type=str,
        help="PostgreSQL connection string (overrides environment)"
    )
    parser.add_argument(
        "--schema",
        type=str,
        default=persistence.schema,
        help=f"Schema name (default: {persistence.schema})"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if args.dry_run:
        print(render_schema_sql(args.schema, persistence.default_max_retries))
        return

    connection = args.connection or get_connection_string()

    print("=" * 70)
    print("STORY WORKER - Schema Deployment")
    print("=" * 70)
    print(f"Database: {mask_connection_string(connection)}")
    print(f"Schema: {args.schema}")
    print("=" * 70)

    if args.stats:
        counts = asyncio.run(_stats(connection))
        print("\nJobs by status:")
        for status, count in sorted(counts.items()):
            print(f"  - {status}: {count}")
        return

    if args.cleanup is not None:
        deleted = asyncio.run(_cleanup(connection, args.cleanup))
        print(f"\nDeleted {deleted} terminal jobs older than {args.cleanup} days")
        return

    try:
        executed = asyncio.run(_deploy(connection, args.schema, persistence.default_max_retries))
    except Exception as e:
        print(f"\nDeployment failed: {e}")
        sys.exit(1)

    print(f"\nDeployment completed: {executed} statements executed")
    print("=" * 70)


if __name__ == "__main__":
    main()
