# ============================================================================
# HTTP RETRY HELPER
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Services - Shared transport policy for external AI services
# PURPOSE: Bounded retries with exponential backoff and jitter over httpx
# CREATED: 19 OCT 2026
# ============================================================================
"""
HTTP Retry Helper

Transport policy shared by the generation and analysis clients:

- network errors and 5xx: retried with backoff
- 429: retried, honouring Retry-After up to the backoff cap
- request timeout: not retried (a single call may already take minutes)
- other 4xx: not retried

Exhausted retries surface as ExternalServiceUnavailable (or RateLimited),
never as a raw httpx exception.
"""

import asyncio
import json
import logging
import random
import re
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from core.config import HttpServiceDefaults
from core.errors import ExternalServiceUnavailable, MalformedResponse, RateLimited, ServiceTimeout

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


def backoff_delay(
    attempt: int,
    base_seconds: float,
    max_seconds: float,
    jitter_ratio: float = 0.0,
) -> float:
    """
    Delay before the next attempt.

    min(base * 2^(attempt-1), max) plus up to jitter_ratio of that.
    """
    delay = min(base_seconds * (2 ** (attempt - 1)), max_seconds)
    if jitter_ratio > 0:
        delay += random.uniform(0, delay * jitter_ratio)
    return delay


def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


async def request_with_retries(
    client: httpx.AsyncClient,
    method: str,
    path: str,
    *,
    service: str,
    settings: HttpServiceDefaults,
    json_body: Optional[Dict[str, Any]] = None,
    sleep: SleepFunc = asyncio.sleep,
) -> httpx.Response:
    """
    Send a request with the shared retry policy.

    Args:
        client: Open httpx client (base_url already set)
        method: HTTP method
        path: Request path
        service: Service name used in errors and logs
        settings: Retry/backoff/timeout settings
        json_body: Optional JSON body
        sleep: Injectable sleep (tests pass a no-op)

    Returns:
        The successful (2xx/3xx) response

    Raises:
        ServiceTimeout: Request deadline hit
        RateLimited: Still throttled on the last attempt
        ExternalServiceUnavailable: Retries exhausted or non-retryable 4xx
    """
    last_error = "no attempt made"
    last_status: Optional[int] = None

    for attempt in range(1, settings.max_attempts + 1):
        retry_after: Optional[float] = None
        try:
            response = await client.request(method, path, json=json_body)
        except httpx.TimeoutException as e:
            logger.error(f"{service} request timed out ({method} {path}): {e}")
            raise ServiceTimeout(service, settings.timeout_seconds) from e
        except httpx.TransportError as e:
            last_error = f"{type(e).__name__}: {e}"
            last_status = None
        else:
            status = response.status_code
            if status < 400:
                return response

            last_status = status
            if status == 429:
                last_error = "rate limited"
                retry_after = _retry_after_seconds(response)
            elif status >= 500:
                last_error = f"HTTP {status}"
            else:
                detail = response.text[:200]
                logger.error(f"{service} rejected request ({method} {path}): HTTP {status} {detail}")
                raise ExternalServiceUnavailable(service, f"HTTP {status}: {detail}", status_code=status)

        if attempt < settings.max_attempts:
            delay = backoff_delay(
                attempt,
                settings.backoff_base_seconds,
                settings.backoff_max_seconds,
                settings.jitter_ratio,
            )
            if retry_after is not None:
                delay = min(max(delay, retry_after), settings.backoff_max_seconds)
            logger.warning(
                f"{service} attempt {attempt}/{settings.max_attempts} failed ({last_error}), "
                f"retrying in {delay:.2f}s"
            )
            await sleep(delay)

    logger.error(f"{service} unavailable after {settings.max_attempts} attempts: {last_error}")
    if last_status == 429:
        raise RateLimited(service, f"rate limited after {settings.max_attempts} attempts")
    raise ExternalServiceUnavailable(
        service,
        f"{last_error} after {settings.max_attempts} attempts",
        status_code=last_status,
    )


# ============================================================================
# RESPONSE PARSING
# ============================================================================

_FENCE_PATTERN = re.compile(r"```(?:json)?")
_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


def extract_json_object(text: str, service: str) -> Dict[str, Any]:
    """
    Pull the first {...} block out of model output.

    Providers wrap JSON in markdown fences or prose often enough that
    json.loads on the raw text is not an option.

    Raises:
        MalformedResponse: No object found, or it does not decode
    """
    if not text:
        raise MalformedResponse(service, "empty response")
    cleaned = _FENCE_PATTERN.sub("", text)
    match = _OBJECT_PATTERN.search(cleaned)
    if not match:
        raise MalformedResponse(service, "no JSON object in response")
    try:
        value = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise MalformedResponse(service, f"invalid JSON: {e.msg}") from e
    if not isinstance(value, dict):
        raise MalformedResponse(service, "JSON response is not an object")
    return value


def response_json(response: httpx.Response, service: str) -> Dict[str, Any]:
    """Decode a provider response body, mapping decode errors to MalformedResponse."""
    try:
        body = response.json()
    except ValueError as e:
        raise MalformedResponse(service, f"response body is not JSON: {e}") from e
    if not isinstance(body, dict):
        raise MalformedResponse(service, "response body is not a JSON object")
    return body


# ============================================================================
# CLIENT FACTORY
# ============================================================================

def build_client(settings: HttpServiceDefaults, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Create an AsyncClient for one external service."""
    headers = {"Content-Type": "application/json"}
    if settings.api_key:
        headers["Authorization"] = f"Bearer {settings.api_key}"
    return httpx.AsyncClient(
        base_url=settings.base_url,
        headers=headers,
        timeout=httpx.Timeout(settings.timeout_seconds, connect=min(30.0, settings.timeout_seconds)),
        transport=transport,
    )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "backoff_delay",
    "request_with_retries",
    "extract_json_object",
    "response_json",
    "build_client",
]
