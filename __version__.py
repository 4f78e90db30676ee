# ============================================================================
# VERSION - STORY WORKER
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# ============================================================================
"""
Version information for the story worker.

Single source of truth for the application version; pyproject.toml
carries the same number.
"""
# Version format: major.minor.patch
__version__ = "0.1.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Build metadata
BUILD_DATE = "2026-10-19"

EPOCH = 1
CODENAME = "Quality-Gated Worker"
