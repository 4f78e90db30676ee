# ============================================================================
# SERVICES MODULE
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Services - External AI service clients
# PURPOSE: Generation and comparative analysis over httpx
# CREATED: 19 OCT 2026
# ============================================================================
"""
Services Module

Clients for the external generative and analysis services. Both own an
httpx.AsyncClient and share one retry policy (services.http).

Usage:
    from services import GenerationClient, AnalysisClient

    async with AnalysisClient(settings) as analysis:
        raw = await analysis.compare([url_a, url_b], rubric)
"""

from .http import backoff_delay, request_with_retries, extract_json_object, response_json
from .generation_client import GenerationClient
from .analysis_client import AnalysisClient

__all__ = [
    "backoff_delay",
    "request_with_retries",
    "extract_json_object",
    "response_json",
    "GenerationClient",
    "AnalysisClient",
]
