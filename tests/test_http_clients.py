# ============================================================================
# HTTP CLIENT TESTS
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Tests - Retry policy and the two service clients
# PURPOSE: Verify backoff, retry classification and response validation
# CREATED: 19 OCT 2026
# ============================================================================
"""
HTTP Client Tests

Covers:
1. Backoff delay (exponential, capped, jittered)
2. Retry on 5xx and transport errors; 429 honours Retry-After
3. No retry on timeouts and other 4xx
4. JSON extraction from model output
5. GenerationClient / AnalysisClient request and response shapes

All HTTP traffic goes through httpx.MockTransport.

Run with:
    pytest tests/test_http_clients.py -v
"""

import asyncio
import json
import pytest
from typing import List
from unittest.mock import AsyncMock

import httpx

from core.config import AnalysisDefaults, GenerationDefaults, HttpServiceDefaults
from core.errors import (
    ExternalServiceUnavailable,
    MalformedResponse,
    RateLimited,
    ServiceTimeout,
)
from services import (
    AnalysisClient,
    GenerationClient,
    backoff_delay,
    extract_json_object,
    request_with_retries,
)
from services.http import build_client


# ============================================================================
# FIXTURES
# ============================================================================

FAST = dict(backoff_base_seconds=0.0, backoff_max_seconds=0.0, jitter_ratio=0.0)


class ScriptedHandler:
    """MockTransport handler replaying queued responses (or exceptions)."""

    def __init__(self, *steps):
        self.steps = list(steps)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if isinstance(step, httpx.RequestError):
            step.request = request
        if isinstance(step, Exception):
            raise step
        return step


def mock_client(handler, settings: HttpServiceDefaults) -> httpx.AsyncClient:
    return build_client(settings, transport=httpx.MockTransport(handler))


def call(handler, settings=None, sleep=None):
    settings = settings or HttpServiceDefaults(base_url="http://svc.test", max_attempts=3)
    sleep = sleep or AsyncMock()

    async def run():
        async with mock_client(handler, settings) as client:
            return await request_with_retries(
                client, "POST", "/v1/test", service="generation",
                settings=settings, json_body={"x": 1}, sleep=sleep,
            )
    return asyncio.run(run())


# ============================================================================
# BACKOFF
# ============================================================================

class TestBackoff:
    """min(base * 2^(n-1), max) plus jitter."""

    def test_exponential(self):
        assert backoff_delay(1, 1.0, 10.0) == 1.0
        assert backoff_delay(2, 1.0, 10.0) == 2.0
        assert backoff_delay(3, 1.0, 10.0) == 4.0

    def test_capped(self):
        assert backoff_delay(10, 1.0, 10.0) == 10.0

    def test_jitter_bounded(self):
        for _ in range(50):
            delay = backoff_delay(2, 1.0, 10.0, jitter_ratio=0.25)
            assert 2.0 <= delay <= 2.5


# ============================================================================
# RETRY POLICY
# ============================================================================

class TestRequestWithRetries:
    """Shared retry loop."""

    def test_success_first_try(self):
        handler = ScriptedHandler(httpx.Response(200, json={"ok": True}))
        response = call(handler)

        assert response.status_code == 200
        assert len(handler.requests) == 1
        assert json.loads(handler.requests[0].content) == {"x": 1}

    def test_retries_server_errors(self):
        handler = ScriptedHandler(
            httpx.Response(503), httpx.Response(502), httpx.Response(200, json={}),
        )
        sleep = AsyncMock()
        response = call(handler, sleep=sleep)

        assert response.status_code == 200
        assert len(handler.requests) == 3
        assert sleep.await_count == 2

    def test_retries_transport_errors(self):
        handler = ScriptedHandler(
            httpx.ConnectError("connection refused"), httpx.Response(200, json={}),
        )
        assert call(handler).status_code == 200
        assert len(handler.requests) == 2

    def test_exhausted_raises_unavailable(self):
        handler = ScriptedHandler(httpx.Response(500))
        with pytest.raises(ExternalServiceUnavailable) as exc_info:
            call(handler)

        assert not isinstance(exc_info.value, RateLimited)
        assert exc_info.value.status_code == 500
        assert exc_info.value.service == "generation"
        assert len(handler.requests) == 3

    def test_rate_limit_honours_retry_after(self):
        handler = ScriptedHandler(
            httpx.Response(429, headers={"Retry-After": "3"}), httpx.Response(200, json={}),
        )
        settings = HttpServiceDefaults(
            base_url="http://svc.test", backoff_base_seconds=1.0, backoff_max_seconds=10.0, jitter_ratio=0.0
        )
        sleep = AsyncMock()
        call(handler, settings=settings, sleep=sleep)

        sleep.assert_awaited_once_with(3.0)

    def test_retry_after_capped_by_backoff_max(self):
        handler = ScriptedHandler(
            httpx.Response(429, headers={"Retry-After": "120"}), httpx.Response(200, json={}),
        )
        settings = HttpServiceDefaults(
            base_url="http://svc.test", backoff_base_seconds=1.0, backoff_max_seconds=10.0, jitter_ratio=0.0
        )
        sleep = AsyncMock()
        call(handler, settings=settings, sleep=sleep)

        sleep.assert_awaited_once_with(10.0)

    def test_persistent_rate_limit(self):
        handler = ScriptedHandler(httpx.Response(429))
        with pytest.raises(RateLimited) as exc_info:
            call(handler)

        assert exc_info.value.status_code == 429
        assert exc_info.value.retryable is True
        assert len(handler.requests) == 3

    def test_timeout_not_retried(self):
        handler = ScriptedHandler(httpx.ReadTimeout("read timed out"))
        with pytest.raises(ServiceTimeout):
            call(handler)
        assert len(handler.requests) == 1

    def test_client_error_not_retried(self):
        handler = ScriptedHandler(httpx.Response(400, text="bad prompt"))
        with pytest.raises(ExternalServiceUnavailable) as exc_info:
            call(handler)

        assert exc_info.value.status_code == 400
        assert "bad prompt" in exc_info.value.message
        assert len(handler.requests) == 1


# ============================================================================
# JSON EXTRACTION
# ============================================================================

class TestExtractJsonObject:
    """Model output is rarely bare JSON."""

    def test_plain(self):
        assert extract_json_object('{"a": 1}', "analysis") == {"a": 1}

    def test_fenced_with_prose(self):
        text = 'Sure!\n```json\n{"a": {"b": 2}}\n```\nLet me know.'
        assert extract_json_object(text, "analysis") == {"a": {"b": 2}}

    @pytest.mark.parametrize("text", ["", "no braces here", "{broken: json", "{'single': 'quotes'}"])
    def test_malformed(self, text):
        with pytest.raises(MalformedResponse) as exc_info:
            extract_json_object(text, "analysis")
        assert exc_info.value.service == "analysis"


# ============================================================================
# SERVICE CLIENTS
# ============================================================================

class TestGenerationClient:
    """POST /v1/generate and /v1/generate/text."""

    @pytest.fixture
    def settings(self):
        return GenerationDefaults(base_url="http://gen.test", api_key="secret", **FAST)

    def run(self, handler, settings, method: str, *args):
        async def go():
            async with GenerationClient(settings, mock_client(handler, settings)) as client:
                return await getattr(client, method)(*args)
        return asyncio.run(go())

    def test_generate_returns_artifact_ref(self, settings):
        handler = ScriptedHandler(httpx.Response(200, json={"artifact_ref": "https://cdn.test/a.png"}))
        ref = self.run(handler, settings, "generate", "A fox", {"style": "cartoon"})

        assert ref == "https://cdn.test/a.png"
        request = handler.requests[0]
        assert request.url.path == "/v1/generate"
        assert request.headers["Authorization"] == "Bearer secret"
        assert json.loads(request.content) == {"prompt": "A fox", "context": {"style": "cartoon"}}

    def test_generate_accepts_url_key(self, settings):
        handler = ScriptedHandler(httpx.Response(200, json={"url": "https://cdn.test/b.png"}))
        assert self.run(handler, settings, "generate", "A fox") == "https://cdn.test/b.png"

    @pytest.mark.parametrize("body", [{}, {"artifact_ref": 42}, {"artifact_ref": "file:///tmp/a.png"}])
    def test_generate_rejects_bad_artifact(self, settings, body):
        handler = ScriptedHandler(httpx.Response(200, json=body))
        with pytest.raises(MalformedResponse):
            self.run(handler, settings, "generate", "A fox")

    def test_generate_text(self, settings):
        handler = ScriptedHandler(httpx.Response(200, json={"text": "Once upon a time"}))
        assert self.run(handler, settings, "generate_text", "Write a story") == "Once upon a time"
        assert json.loads(handler.requests[0].content)["format"] == "text"

    def test_generate_json(self, settings):
        handler = ScriptedHandler(httpx.Response(200, json={"text": '```json\n{"pages": []}\n```'}))
        assert self.run(handler, settings, "generate_json", "Plan") == {"pages": []}
        assert json.loads(handler.requests[0].content)["format"] == "json"

    def test_non_json_body(self, settings):
        handler = ScriptedHandler(httpx.Response(200, text="<html>gateway</html>"))
        with pytest.raises(MalformedResponse):
            self.run(handler, settings, "generate_text", "Write")


class TestAnalysisClient:
    """POST /v1/compare."""

    def test_compare(self):
        settings = AnalysisDefaults(base_url="http://analysis.test", model="vision-1", **FAST)
        handler = ScriptedHandler(httpx.Response(200, json={"content": '{"overall_score": 90}'}))

        async def go():
            async with AnalysisClient(settings, mock_client(handler, settings)) as client:
                return await client.compare(["https://cdn.test/1.png"], "Score this")

        raw = asyncio.run(go())
        assert raw == '{"overall_score": 90}'

        body = json.loads(handler.requests[0].content)
        assert handler.requests[0].url.path == "/v1/compare"
        assert body["model"] == "vision-1"
        assert body["temperature"] == 0.3
        assert body["artifact_refs"] == ["https://cdn.test/1.png"]
        assert body["prompt"] == "Score this"

    def test_compare_unavailable(self):
        settings = AnalysisDefaults(base_url="http://analysis.test", **FAST)
        handler = ScriptedHandler(httpx.Response(503))

        async def go():
            async with AnalysisClient(settings, mock_client(handler, settings)) as client:
                return await client.compare(["https://cdn.test/1.png"], "Score this")

        with pytest.raises(ExternalServiceUnavailable) as exc_info:
            asyncio.run(go())
        assert exc_info.value.service == "analysis"
        assert len(handler.requests) == settings.max_attempts
