# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for scheduling, quality gates, external calls
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides defaults for the scheduler, the quality gates, the external
service clients and persistence. Each group can be overridden via
environment variables.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides read once, in from_env()
- Components receive their group by constructor injection
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class SchedulerDefaults:
    """
    Defaults for admission control and health estimation.

    A worker stays admitting until 70% of its recent jobs have failed.
    """
    # Concurrency
    max_concurrent_jobs: int = 5
    batch_size: int = 10

    # Sliding window health
    sliding_window_size: int = 10
    min_sample_size: int = 3
    max_failure_rate: float = 0.7
    max_timeout_rate: float = 0.2
    degraded_failure_percent: float = 30.0

    # Auto-recovery
    recovery_window_seconds: float = 300.0
    recovery_check_interval_seconds: float = 60.0

    # Stale sweep
    stale_job_threshold_seconds: float = 600.0
    stale_sweep_interval_seconds: float = 300.0

    # Poll loop
    poll_interval_seconds: float = 5.0
    initial_scan_delay_seconds: float = 1.0
    shutdown_timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> "SchedulerDefaults":
        """Create from environment variables."""
        return cls(
            max_concurrent_jobs=int(os.getenv("JOB_MAX_CONCURRENT", 5)),
            batch_size=int(os.getenv("JOB_BATCH_SIZE", 10)),
            sliding_window_size=int(os.getenv("JOB_WINDOW_SIZE", 10)),
            min_sample_size=int(os.getenv("JOB_MIN_SAMPLE_SIZE", 3)),
            max_failure_rate=float(os.getenv("JOB_MAX_FAILURE_RATE", 0.7)),
            recovery_window_seconds=float(os.getenv("JOB_RECOVERY_WINDOW_SEC", 300)),
            recovery_check_interval_seconds=float(os.getenv("JOB_RECOVERY_CHECK_SEC", 60)),
            stale_job_threshold_seconds=float(os.getenv("JOB_STALE_THRESHOLD_SEC", 600)),
            stale_sweep_interval_seconds=float(os.getenv("JOB_STALE_SWEEP_SEC", 300)),
            poll_interval_seconds=float(os.getenv("JOB_POLL_INTERVAL_SEC", 5)),
            shutdown_timeout_seconds=float(os.getenv("SHUTDOWN_TIMEOUT", 30)),
        )


@dataclass(frozen=True)
class QualityDefaults:
    """
    Defaults for quality gates and regeneration.

    Consistency checks use 85; style-fidelity checks use 70.
    """
    consistency_threshold: float = 85.0
    style_threshold: float = 70.0
    warning_threshold: float = 70.0
    max_regeneration_attempts: int = 2

    # Per-dimension critical floors
    identity_floor: float = 60.0
    character_continuity_floor: float = 80.0
    art_style_floor: float = 75.0
    any_dimension_floor: float = 60.0
    content_safety_floor: float = 60.0

    # Skip validation for long jobs once the opening panels are excellent
    smart_skip_after_panels: int = 9
    smart_skip_min_score: float = 90.0

    @classmethod
    def from_env(cls) -> "QualityDefaults":
        """Create from environment variables."""
        return cls(
            consistency_threshold=float(os.getenv("QUALITY_CONSISTENCY_THRESHOLD", 85)),
            style_threshold=float(os.getenv("QUALITY_STYLE_THRESHOLD", 70)),
            max_regeneration_attempts=int(os.getenv("QUALITY_MAX_ATTEMPTS", 2)),
        )


@dataclass(frozen=True)
class HttpServiceDefaults:
    """Shared settings for an external HTTP service with bounded retries."""
    base_url: str = ""
    api_key: Optional[str] = None
    timeout_seconds: float = 120.0
    max_attempts: int = 3
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 10.0
    jitter_ratio: float = 0.25


@dataclass(frozen=True)
class AnalysisDefaults(HttpServiceDefaults):
    """Comparative analysis (vision scoring) service."""
    base_url: str = "http://localhost:8081"
    model: str = "gpt-4o"
    temperature: float = 0.3
    max_tokens: int = 1500
    timeout_seconds: float = 180.0

    @classmethod
    def from_env(cls) -> "AnalysisDefaults":
        """Create from environment variables."""
        return cls(
            base_url=os.getenv("ANALYSIS_SERVICE_URL", "http://localhost:8081"),
            api_key=os.getenv("ANALYSIS_API_KEY"),
            model=os.getenv("ANALYSIS_MODEL", "gpt-4o"),
            timeout_seconds=float(os.getenv("ANALYSIS_TIMEOUT_SEC", 180)),
            max_attempts=int(os.getenv("ANALYSIS_MAX_ATTEMPTS", 3)),
        )


@dataclass(frozen=True)
class GenerationDefaults(HttpServiceDefaults):
    """Generative content service (text and image)."""
    base_url: str = "http://localhost:8082"
    timeout_seconds: float = 120.0

    @classmethod
    def from_env(cls) -> "GenerationDefaults":
        """Create from environment variables."""
        return cls(
            base_url=os.getenv("GENERATION_SERVICE_URL", "http://localhost:8082"),
            api_key=os.getenv("GENERATION_API_KEY"),
            timeout_seconds=float(os.getenv("GENERATION_TIMEOUT_SEC", 120)),
            max_attempts=int(os.getenv("GENERATION_MAX_ATTEMPTS", 3)),
        )


@dataclass(frozen=True)
class PersistenceDefaults:
    """Defaults for the PostgreSQL persistence layer."""
    schema: str = "storyworker"
    pool_min_size: int = 2
    pool_max_size: int = 10
    default_max_retries: int = 3
    cleanup_after_days: int = 30
    store_validation_results: bool = True

    @classmethod
    def from_env(cls) -> "PersistenceDefaults":
        """Create from environment variables."""
        return cls(
            schema=os.getenv("DB_SCHEMA", "storyworker"),
            pool_min_size=int(os.getenv("DB_POOL_MIN", 2)),
            pool_max_size=int(os.getenv("DB_POOL_MAX", 10)),
            default_max_retries=int(os.getenv("JOB_DEFAULT_MAX_RETRIES", 3)),
            cleanup_after_days=int(os.getenv("JOB_CLEANUP_DAYS", 30)),
            store_validation_results=_env_bool("STORE_VALIDATION_RESULTS", True),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    scheduler: SchedulerDefaults = field(default_factory=SchedulerDefaults)
    quality: QualityDefaults = field(default_factory=QualityDefaults)
    analysis: AnalysisDefaults = field(default_factory=AnalysisDefaults)
    generation: GenerationDefaults = field(default_factory=GenerationDefaults)
    persistence: PersistenceDefaults = field(default_factory=PersistenceDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            scheduler=SchedulerDefaults.from_env(),
            quality=QualityDefaults.from_env(),
            analysis=AnalysisDefaults.from_env(),
            generation=GenerationDefaults.from_env(),
            persistence=PersistenceDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

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
