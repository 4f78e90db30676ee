# ============================================================================
# ANALYSIS CLIENT
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Services - Async HTTP client for the comparative analysis service
# PURPOSE: Send artifacts plus a rubric, get raw scored text back
# CREATED: 19 OCT 2026
# ============================================================================
"""
Analysis Client

Async httpx client for the comparative (vision) analysis service.

    POST /v1/compare  {model, temperature, max_tokens, artifact_refs, prompt}
                      -> {content}

compare() returns the raw model text. Parsing it into scores is the
quality gate's job, because the text is frequently wrapped in prose or
truncated.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from core.config import AnalysisDefaults
from core.errors import MalformedResponse
from .http import build_client, request_with_retries, response_json

logger = logging.getLogger(__name__)

SERVICE_NAME = "analysis"


class AnalysisClient:
    """Async client for the comparative analysis service."""

    def __init__(
        self,
        settings: Optional[AnalysisDefaults] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or AnalysisDefaults()
        self._client = client or build_client(self.settings)

    async def __aenter__(self) -> "AnalysisClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def compare(self, artifact_refs: List[str], rubric_prompt: str) -> str:
        """
        Score artifacts against a rubric.

        Args:
            artifact_refs: Image URLs, in the order the rubric refers to them
            rubric_prompt: Comparison task and required JSON shape

        Returns:
            Raw response text from the analysis model

        Raises:
            ExternalServiceUnavailable: Transport failure after retries
            MalformedResponse: Body has no content
        """
        body: Dict[str, Any] = {
            "model": self.settings.model,
            "temperature": self.settings.temperature,
            "max_tokens": self.settings.max_tokens,
            "artifact_refs": list(artifact_refs),
            "prompt": rubric_prompt,
        }
        response = await request_with_retries(
            self._client,
            "POST",
            "/v1/compare",
            service=SERVICE_NAME,
            settings=self.settings,
            json_body=body,
        )
        payload = response_json(response, SERVICE_NAME)
        content = payload.get("content")
        if not isinstance(content, str):
            raise MalformedResponse(SERVICE_NAME, "response has no content")
        logger.debug(f"Analysis returned {len(content)} chars for {len(artifact_refs)} artifact(s)")
        return content


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["AnalysisClient", "SERVICE_NAME"]
