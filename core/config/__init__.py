# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the job worker.
"""

from core.config.defaults import (
    SchedulerDefaults,
    QualityDefaults,
    HttpServiceDefaults,
    AnalysisDefaults,
    GenerationDefaults,
    PersistenceDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "SchedulerDefaults",
    "QualityDefaults",
    "HttpServiceDefaults",
    "AnalysisDefaults",
    "GenerationDefaults",
    "PersistenceDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
