"""Shared HTTP plumbing for network-bound providers."""

import logging
from typing import Any

import httpx

from phishlens.config import settings
from phishlens.exceptions import ProviderError

logger = logging.getLogger(__name__)


def create_client(timeout: float) -> httpx.AsyncClient:
    """HTTP client with connection pooling and the service user agent."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
        headers={"User-Agent": settings.user_agent},
        follow_redirects=True,
    )


def check_response(response: httpx.Response, service: str) -> None:
    """Raise a ProviderError matching the HTTP status."""
    status = response.status_code
    if status < 400:
        return
    if status in (401, 403):
        raise ProviderError(f"{service}: authentication failed ({status})", code="auth")
    if status == 429:
        raise ProviderError(f"{service}: rate limited", code="rate_limit", retryable=True)
    if status >= 500:
        raise ProviderError(
            f"{service}: upstream error ({status})", code="unavailable", retryable=True
        )
    raise ProviderError(f"{service}: request rejected ({status})", code="parsing")


async def request_json(
    client: httpx.AsyncClient, method: str, url: str, service: str, **kwargs: Any
) -> Any:
    """Perform a request and decode its JSON body, mapping failures to ProviderError."""
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise ProviderError(f"{service}: request timed out", code="timeout", retryable=True) from e
    except httpx.RequestError as e:
        raise ProviderError(f"{service}: {type(e).__name__}: {e}", code="network", retryable=True) from e

    check_response(response, service)
    try:
        return response.json()
    except ValueError as e:
        raise ProviderError(f"{service}: invalid JSON response", code="parsing") from e
