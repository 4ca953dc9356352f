"""Embedding and completion provider protocol interfaces."""

from typing import AsyncIterator, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Converts text into fixed-dimension float vectors."""

    @property
    def name(self) -> str:
        """Provider name, used to pick its rate limiter."""
        ...

    async def embed(self, text: str) -> List[float]:
        """Embed a single text string."""
        ...


@runtime_checkable
class CompletionStream(Protocol):
    """An opened streaming completion. Iterate once, then close."""

    def deltas(self) -> AsyncIterator[str]:
        """Yield text fragments as the provider emits them."""
        ...

    async def aclose(self) -> None:
        """Abort the response if it is still open."""
        ...


@runtime_checkable
class CompletionProvider(Protocol):
    """Chat/completion provider with a blocking and a streaming variant."""

    @property
    def name(self) -> str:
        ...

    async def complete(
        self,
        prompt: str,
        *,
        temperature: float = 0.2,
        max_tokens: int = 300,
        system: Optional[str] = None,
    ) -> str:
        """Return the full completion text."""
        ...

    async def open_stream(
        self,
        prompt: str,
        *,
        temperature: float = 0.1,
        max_tokens: int = 4000,
        system: Optional[str] = None,
    ) -> CompletionStream:
        """Issue the request and return once the provider has accepted it."""
        ...
