# ============================================================================
# WORKER MODULE
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Core - Worker execution components
# PURPOSE: Job pipelines, execution and the process entry point
# CREATED: 19 OCT 2026
# ============================================================================
"""
Worker Module

Components for running jobs on a worker process:
- contracts: Worker configuration and the per-run JobRun context
- pipelines: One pipeline per job type (closed dispatch)
- executor: Runs a job and classifies its outcome
- main: Worker entry point (python -m worker.main)
"""

from worker.contracts import (
    WorkerConfig,
    JobRun,
    SERVICE_AI,
    SERVICE_ANALYSIS,
    SERVICE_DATABASE,
)
from worker.pipelines import (
    PipelineServices,
    PanelResult,
    Pipeline,
    StorybookPipeline,
    AutoStoryPipeline,
    ScenesPipeline,
    CartoonizePipeline,
    ImageGenerationPipeline,
    PIPELINE_CLASSES,
    build_pipelines,
    quality_metrics,
)
from worker.executor import JobExecutor, classify_error

__all__ = [
    # Contracts
    "WorkerConfig",
    "JobRun",
    "SERVICE_AI",
    "SERVICE_ANALYSIS",
    "SERVICE_DATABASE",
    # Pipelines
    "PipelineServices",
    "PanelResult",
    "Pipeline",
    "StorybookPipeline",
    "AutoStoryPipeline",
    "ScenesPipeline",
    "CartoonizePipeline",
    "ImageGenerationPipeline",
    "PIPELINE_CLASSES",
    "build_pipelines",
    "quality_metrics",
    # Executor
    "JobExecutor",
    "classify_error",
]
