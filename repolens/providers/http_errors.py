"""Maps httpx responses and transport failures onto the repolens error taxonomy."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from repolens.exceptions import (
    AuthenticationError,
    NotFoundError,
    ProviderError,
    RateLimitError,
    TransientProviderError,
)


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _detail(response: httpx.Response) -> str:
    try:
        text = response.text
    except httpx.ResponseNotRead:
        return ""
    return text[:300]


def _is_throttled(response: httpx.Response, detail: str) -> bool:
    if response.headers.get("x-ratelimit-remaining") == "0":
        return True
    if "retry-after" in response.headers:
        return True
    return "rate limit" in detail.lower()


def raise_for_provider_status(response: httpx.Response, provider: str) -> None:
    """Raise the taxonomy error matching a non-2xx response."""
    status = response.status_code
    if status < 400:
        return

    detail = _detail(response)
    message = f"{provider} returned HTTP {status}"
    if detail:
        message = f"{message}: {detail}"

    if status == 429:
        raise RateLimitError(
            message, provider=provider, status_code=status, retry_after=_retry_after(response)
        )
    if status == 403 and _is_throttled(response, detail):
        # GitHub reports exhausted and secondary rate limits as 403
        raise RateLimitError(
            message, provider=provider, status_code=status, retry_after=_retry_after(response)
        )
    if status >= 500:
        raise TransientProviderError(message, provider=provider, status_code=status)
    if status == 404:
        raise NotFoundError(message)
    if status in (401, 403):
        raise AuthenticationError(message)
    raise ProviderError(message, provider=provider, status_code=status)


@asynccontextmanager
async def translate_transport_errors(provider: str) -> AsyncIterator[None]:
    """Re-raise timeouts and connection failures as TransientProviderError."""
    try:
        yield
    except httpx.TimeoutException as e:
        raise TransientProviderError(f"{provider} timed out: {e}", provider=provider) from e
    except httpx.TransportError as e:
        raise TransientProviderError(
            f"{provider} network error: {e}", provider=provider
        ) from e
