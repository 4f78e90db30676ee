# ============================================================================
# GENERATION CLIENT
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Services - Async HTTP client for the generative content service
# PURPOSE: Text and image generation behind the shared retry policy
# CREATED: 19 OCT 2026
# ============================================================================
"""
Generation Client

Async httpx client for the generative content service.

    POST /v1/generate        {prompt, context}          -> {artifact_ref} | {url}
    POST /v1/generate/text   {prompt, context, format}  -> {text}

The service is a black box with highly variable latency. Transport
failures surface as ExternalServiceUnavailable; bodies that cannot be
read surface as MalformedResponse.

Usage:
    async with GenerationClient(GenerationDefaults.from_env()) as client:
        ref = await client.generate("A fox in a red scarf", {"style": "cartoon"})
"""

import logging
from typing import Any, Dict, Optional

import httpx

from core.config import GenerationDefaults
from core.errors import MalformedResponse
from .http import build_client, extract_json_object, request_with_retries, response_json

logger = logging.getLogger(__name__)

SERVICE_NAME = "generation"


class GenerationClient:
    """Async client for the generative content service."""

    def __init__(
        self,
        settings: Optional[GenerationDefaults] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or GenerationDefaults()
        self._client = client or build_client(self.settings)
        self._calls = 0

    async def __aenter__(self) -> "GenerationClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def calls(self) -> int:
        """Number of generation requests issued (successful or not)."""
        return self._calls

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        self._calls += 1
        response = await request_with_retries(
            self._client,
            "POST",
            path,
            service=SERVICE_NAME,
            settings=self.settings,
            json_body=body,
        )
        return response_json(response, SERVICE_NAME)

    # ------------------------------------------------------------------
    # IMAGES
    # ------------------------------------------------------------------

    async def generate(self, prompt: str, context: Optional[Dict[str, Any]] = None) -> str:
        """
        Generate one image artifact.

        Args:
            prompt: Full generation prompt (directives already appended)
            context: Style, audience, reference image, etc.

        Returns:
            Artifact reference (URL of the generated image)
        """
        body = await self._post("/v1/generate", {"prompt": prompt, "context": context or {}})
        artifact_ref = body.get("artifact_ref") or body.get("url")
        if not artifact_ref or not isinstance(artifact_ref, str):
            raise MalformedResponse(SERVICE_NAME, "response has no artifact_ref")
        if not artifact_ref.startswith(("http://", "https://")):
            raise MalformedResponse(SERVICE_NAME, f"artifact_ref is not a URL: {artifact_ref[:100]}")
        logger.debug(f"Generated artifact {artifact_ref}")
        return artifact_ref

    # ------------------------------------------------------------------
    # TEXT
    # ------------------------------------------------------------------

    async def generate_text(
        self,
        prompt: str,
        context: Optional[Dict[str, Any]] = None,
        response_format: str = "text",
    ) -> str:
        """Generate free text (story, character profile)."""
        body = await self._post(
            "/v1/generate/text",
            {"prompt": prompt, "context": context or {}, "format": response_format},
        )
        text = body.get("text")
        if not isinstance(text, str) or not text.strip():
            raise MalformedResponse(SERVICE_NAME, "response has no text")
        return text

    async def generate_json(self, prompt: str, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Generate structured output (scene plans) and decode it."""
        text = await self.generate_text(prompt, context, response_format="json")
        return extract_json_object(text, SERVICE_NAME)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["GenerationClient", "SERVICE_NAME"]
