"""OpenAI-compatible chat-completions client (Groq, OpenRouter, ...)."""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from repolens.exceptions import (
    ConfigurationError,
    ProviderError,
    RateLimitError,
    TransientProviderError,
)

from .http_errors import raise_for_provider_status, translate_transport_errors

logger = logging.getLogger(__name__)


class ChatCompletionStream:
    """An accepted streaming response; yields content deltas from its SSE body."""

    def __init__(self, response: httpx.Response, provider: str):
        self._response = response
        self._provider = provider
        self._consumed = False

    async def deltas(self) -> AsyncIterator[str]:
        if self._consumed:
            raise RuntimeError("Completion stream can only be iterated once")
        self._consumed = True
        try:
            async with translate_transport_errors(self._provider):
                async for line in self._response.aiter_lines():
                    line = line.strip()
                    if not line or not line.startswith("data:"):
                        continue
                    payload = line[len("data:") :].strip()
                    if payload == "[DONE]":
                        break
                    event = json.loads(payload)
                    if "error" in event:
                        raise _stream_error(event["error"], self._provider)
                    for choice in event.get("choices") or []:
                        text = (choice.get("delta") or {}).get("content")
                        if text:
                            yield text
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if not self._response.is_closed:
            await self._response.aclose()


def _stream_error(error: Any, provider: str) -> Exception:
    message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
    code = error.get("code") if isinstance(error, dict) else None
    if code in (429, "429", "rate_limit_exceeded") or "rate limit" in message.lower():
        return RateLimitError(f"{provider} stream error: {message}", provider=provider)
    return ProviderError(f"{provider} stream error: {message}", provider=provider)


class ChatCompletionClient:
    """Chat/completion provider over an OpenAI-compatible HTTP API.

    The API key is checked lazily so an unconfigured provider surfaces as a
    ConfigurationError at call time instead of at wiring time.
    """

    def __init__(
        self,
        name: str,
        api_url: str,
        api_key: str,
        model: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._name = name
        self.model = model
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return self._name

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        if not self._api_key:
            raise ConfigurationError(f"No API key configured for {self._name}")
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _payload(
        self,
        prompt: str,
        temperature: float,
        max_tokens: int,
        system: Optional[str],
        stream: bool,
    ) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": stream,
        }

    async def complete(
        self,
        prompt: str,
        *,
        temperature: float = 0.2,
        max_tokens: int = 300,
        system: Optional[str] = None,
    ) -> str:
        headers = self._headers()
        async with translate_transport_errors(self._name):
            response = await self._client.post(
                "/chat/completions",
                headers=headers,
                json=self._payload(prompt, temperature, max_tokens, system, stream=False),
            )
        raise_for_provider_status(response, self._name)

        choices = response.json().get("choices") or []
        content = ""
        if choices:
            content = ((choices[0].get("message") or {}).get("content") or "").strip()
        if not content:
            raise TransientProviderError(
                f"{self._name} returned an empty completion", provider=self._name
            )
        return content

    async def open_stream(
        self,
        prompt: str,
        *,
        temperature: float = 0.1,
        max_tokens: int = 4000,
        system: Optional[str] = None,
    ) -> ChatCompletionStream:
        headers = self._headers()
        request = self._client.build_request(
            "POST",
            "/chat/completions",
            headers=headers,
            json=self._payload(prompt, temperature, max_tokens, system, stream=True),
        )
        async with translate_transport_errors(self._name):
            response = await self._client.send(request, stream=True)
        if response.status_code >= 400:
            try:
                await response.aread()
            finally:
                await response.aclose()
            raise_for_provider_status(response, self._name)
        return ChatCompletionStream(response, self._name)
