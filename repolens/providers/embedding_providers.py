"""Embedding providers: the hosted Gemini API and a local sentence-transformers model."""

import asyncio
import logging
from typing import List, Optional

import httpx
from sentence_transformers import SentenceTransformer

from repolens.exceptions import ConfigurationError, TransientProviderError

from .http_errors import raise_for_provider_status, translate_transport_errors

logger = logging.getLogger(__name__)


class GeminiEmbeddingProvider:
    """Embeds text with the Gemini ``embedContent`` endpoint."""

    name = "gemini"

    def __init__(
        self,
        api_url: str,
        api_key: str,
        model: str = "text-embedding-004",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model = model
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"), timeout=timeout, transport=transport
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def embed(self, text: str) -> List[float]:
        if not self._api_key:
            raise ConfigurationError("No API key configured for the embedding provider")

        async with translate_transport_errors(self.name):
            response = await self._client.post(
                f"/models/{self.model}:embedContent",
                params={"key": self._api_key},
                json={
                    "model": f"models/{self.model}",
                    "content": {"parts": [{"text": text}]},
                },
            )
        raise_for_provider_status(response, self.name)

        values = (response.json().get("embedding") or {}).get("values") or []
        if not values:
            raise TransientProviderError(
                "Embedding provider returned an empty vector", provider=self.name
            )
        return [float(v) for v in values]


class SentenceTransformerEmbeddingProvider:
    """Local embedding model; encoding runs in a worker thread."""

    name = "sentence-transformers"

    def __init__(self, model_name: str):
        self.model_name = model_name
        logger.info("Loading local embedding model %s", model_name)
        self._model = SentenceTransformer(model_name)

    async def embed(self, text: str) -> List[float]:
        vector = await asyncio.to_thread(
            self._model.encode, [text], show_progress_bar=False
        )
        return [float(v) for v in vector[0]]
