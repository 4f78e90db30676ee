# ============================================================================
# WORKER MAIN ENTRY POINT
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Core - Worker process entry point
# PURPOSE: Wire components, serve probes, run the scheduler until signalled
# CREATED: 19 OCT 2026
# ============================================================================
"""
Worker Main Entry Point

Starts a worker process that:
1. Opens the PostgreSQL pool (optionally deploying the schema)
2. Wires repositories, clients, gates, pipelines, executor and scheduler
3. Serves health probes
4. Polls and runs jobs until SIGINT/SIGTERM

Usage:
    python -m worker.main

Environment Variables:
    WORKER_ID: Unique worker identifier (default: worker-<hostname>)
    PORT: Probe server port (default: 8000)
    DATABASE_URL / POSTGRES_*: PostgreSQL connection
    WORKER_LOG_LEVEL / WORKER_LOG_FORMAT: Logging ("json" for structured)
    WORKER_JOB_TYPES: Comma-separated job types this worker takes
    DEPLOY_SCHEMA_ON_START: "true" to apply the DDL before polling
    ANALYSIS_SERVICE_URL / GENERATION_SERVICE_URL: External services
    JOB_* / QUALITY_*: Scheduler and quality tuning (see core.config)

Probe endpoints:
    /health           scheduler health snapshot (always 200)
    /livez            same snapshot, 503 only when the scheduler is not running
    /readyz           database + scheduler checks (503 when unhealthy)
    /stats            scheduler statistics
"""

import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import Optional

from aiohttp import web
from psycopg_pool import AsyncConnectionPool

from core.logging import configure_logging
from health import DatabaseCheck, HealthStatus, SchedulerCheck, run_checks
from quality import CharacterConsistencyGate, SequentialContinuityGate, StyleFidelityGate
from repositories import (
    JobRepository,
    ValidationResultRepository,
    close_pool,
    deploy_schema,
    init_pool,
)
from scheduler import JobScheduler
from services import AnalysisClient, GenerationClient
from worker.contracts import WorkerConfig
from worker.executor import JobExecutor
from worker.pipelines import PipelineServices, build_pipelines
from __version__ import __version__, BUILD_DATE

logger = logging.getLogger(__name__)


# ============================================================================
# COMPONENT WIRING
# ============================================================================

@dataclass
class WorkerComponents:
    """Everything built at startup, for shutdown and the probe server."""
    pool: AsyncConnectionPool
    job_repo: JobRepository
    generation: GenerationClient
    analysis: AnalysisClient
    executor: JobExecutor
    scheduler: JobScheduler

    async def aclose(self) -> None:
        await self.generation.aclose()
        await self.analysis.aclose()


def build_components(config: WorkerConfig, pool: AsyncConnectionPool) -> WorkerComponents:
    """Construct the worker graph by explicit constructor injection."""
    defaults = config.defaults
    job_repo = JobRepository(pool)
    validation_repo = (
        ValidationResultRepository(pool)
        if defaults.persistence.store_validation_results
        else None
    )

    generation = GenerationClient(defaults.generation)
    analysis = AnalysisClient(defaults.analysis)

    services = PipelineServices(
        generation=generation,
        character_gate=CharacterConsistencyGate(analysis, defaults.quality, validation_repo),
        sequential_gate=SequentialContinuityGate(analysis, defaults.quality, validation_repo),
        style_gate=StyleFidelityGate(analysis, defaults.quality, validation_repo),
        quality=defaults.quality,
    )
    executor = JobExecutor(job_repo, build_pipelines(services))
    scheduler = JobScheduler(
        job_repo,
        executor,
        config=defaults.scheduler,
        job_types=config.job_types,
        worker_id=config.worker_id,
    )
    return WorkerComponents(
        pool=pool,
        job_repo=job_repo,
        generation=generation,
        analysis=analysis,
        executor=executor,
        scheduler=scheduler,
    )


# ============================================================================
# HEALTH SERVER
# ============================================================================

def create_health_app(
    scheduler: JobScheduler,
    pool: Optional[AsyncConnectionPool] = None,
    worker_id: Optional[str] = None,
) -> web.Application:
    """Build the probe application (no server started)."""

    def snapshot() -> dict:
        body = scheduler.health_snapshot()
        body.update({
            "version": __version__,
            "build_date": BUILD_DATE,
            "worker_id": worker_id,
            "running": scheduler.is_running,
        })
        return body

    async def health_handler(request: web.Request) -> web.Response:
        # Informational: a worker at full capacity is busy, not broken
        return web.json_response(snapshot())

    async def live_handler(request: web.Request) -> web.Response:
        status = 200 if scheduler.is_running else 503
        return web.json_response(snapshot(), status=status)

    async def ready_handler(request: web.Request) -> web.Response:
        checks = [SchedulerCheck(scheduler)]
        if pool is not None:
            checks.insert(0, DatabaseCheck(pool))
        result = await run_checks(checks)
        status = 503 if result.status == HealthStatus.UNHEALTHY else 200
        return web.json_response(result.to_dict(), status=status)

    async def stats_handler(request: web.Request) -> web.Response:
        return web.json_response(scheduler.stats)

    app = web.Application()
    app.router.add_get("/", health_handler)
    app.router.add_get("/health", health_handler)
    app.router.add_get("/livez", live_handler)
    app.router.add_get("/readyz", ready_handler)
    app.router.add_get("/stats", stats_handler)
    return app


async def start_health_server(app: web.Application, port: int = 8000) -> web.AppRunner:
    """Start the HTTP server for health probes."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", port)
    await site.start()
    logger.info(f"Health server started on port {port}")
    return runner


# ============================================================================
# MAIN
# ============================================================================

def install_signal_handlers(stop_event: asyncio.Event) -> None:
    """Set stop_event on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops: fall back to KeyboardInterrupt
            logger.debug(f"Signal handler for {sig.name} not supported on this platform")


async def main(config: Optional[WorkerConfig] = None) -> None:
    """Main entry point."""
    config = config or WorkerConfig.from_env()
    configure_logging(level=config.log_level, json_output=config.json_logs)

    logger.info("=" * 60)
    logger.info(f"Story Worker Starting v{__version__}")
    logger.info("=" * 60)
    logger.info(f"Worker ID: {config.worker_id}")
    logger.info(f"Job types: {[t.value for t in config.job_types] if config.job_types else 'all'}")
    logger.info(f"Max Concurrent: {config.defaults.scheduler.max_concurrent_jobs}")

    persistence = config.defaults.persistence
    pool = await init_pool(
        min_size=persistence.pool_min_size,
        max_size=persistence.pool_max_size,
        connection_string=config.database_url,
    )
    components: Optional[WorkerComponents] = None
    runner: Optional[web.AppRunner] = None
    try:
        if config.deploy_schema:
            await deploy_schema(pool, persistence.schema, persistence.default_max_retries)

        components = build_components(config, pool)
        runner = await start_health_server(
            create_health_app(components.scheduler, pool, config.worker_id),
            config.health_port,
        )

        stop_event = asyncio.Event()
        install_signal_handlers(stop_event)

        await components.scheduler.start()
        await stop_event.wait()
        logger.info("Shutdown signal received")
    finally:
        if components is not None:
            await components.scheduler.stop()
        if runner is not None:
            await runner.cleanup()
        if components is not None:
            await components.aclose()
        await close_pool()

    logger.info("Story Worker stopped")


def run() -> None:
    """Synchronous entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


if __name__ == "__main__":
    run()
