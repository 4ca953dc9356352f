"""Single-pass, cancellable stream of answer text with a bounded buffer."""

import asyncio
import logging
from typing import AsyncIterator, List, Optional

from ..exceptions import (
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    RateLimitError,
    TransientProviderError,
    ValidationError,
)
from ..protocols.provider_protocol import CompletionStream
from ..schemas import AnswerState
from .prompts import estimate_tokens

logger = logging.getLogger(__name__)

VALIDATION_MESSAGE = "Invalid input: question and projectId are required."
RATE_LIMIT_MESSAGE = "Rate limit reached. Please try again in a few moments."
AUTHENTICATION_MESSAGE = "Authentication error. Please check your API configuration."
NETWORK_MESSAGE = "Network error. Please check your connection and try again."
GENERIC_MESSAGE = "Something went wrong while processing your request."
MID_STREAM_MESSAGE = "Something went wrong while streaming the response. Please try again."

LOG_EVERY_CHUNKS = 10

_END = object()


def user_message_for(error: BaseException) -> str:
    """User-readable text for a failure before streaming began."""
    if isinstance(error, ValidationError):
        return VALIDATION_MESSAGE
    if isinstance(error, AuthenticationError):
        return AUTHENTICATION_MESSAGE
    if isinstance(error, ConfigurationError):
        return f"Configuration error: {error}"
    if isinstance(error, RateLimitError):
        return RATE_LIMIT_MESSAGE
    if isinstance(error, (TransientProviderError, asyncio.TimeoutError)):
        return NETWORK_MESSAGE
    if isinstance(error, NotFoundError):
        return str(error)
    return GENERIC_MESSAGE


def mid_stream_message_for(error: BaseException) -> str:
    if isinstance(error, RateLimitError):
        return RATE_LIMIT_MESSAGE
    return MID_STREAM_MESSAGE


class _FixedCompletion:
    """A completion that emits one pre-computed message."""

    def __init__(self, message: str):
        self._message = message

    async def deltas(self) -> AsyncIterator[str]:
        yield self._message

    async def aclose(self) -> None:
        return None


class AnswerStream:
    """Relays provider deltas to one consumer.

    A producer task is started on first read and pushes into a bounded queue,
    so a slow consumer applies backpressure to the provider. Closing the
    stream, or leaving ``async with``, cancels the producer and closes the
    provider response. A failure after the first delta ends the stream with an
    explanatory message instead of raising into the consumer.
    """

    def __init__(
        self,
        completion: CompletionStream,
        buffer_size: int = 64,
        state: AnswerState = AnswerState.STREAMING,
    ):
        self._completion = completion
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, buffer_size))
        self._producer: Optional[asyncio.Task] = None
        self._iterated = False
        self._closed = False
        self.state = state
        self.error: Optional[BaseException] = None
        self.chunks = 0
        self.estimated_tokens = 0

    @classmethod
    def from_message(cls, message: str, state: AnswerState) -> "AnswerStream":
        return cls(_FixedCompletion(message), buffer_size=1, state=state)

    def __aiter__(self) -> "AnswerStream":
        if self._iterated:
            raise RuntimeError("AnswerStream can only be iterated once")
        self._iterated = True
        return self

    async def __anext__(self) -> str:
        if self._closed:
            raise StopAsyncIteration
        if self._producer is None:
            self._producer = asyncio.create_task(self._produce())
        item = await self._queue.get()
        if item is _END:
            self._closed = True
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "AnswerStream":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop reading; aborts the provider call if it is still running."""
        if self._producer is None:
            self._closed = True
            await self._completion.aclose()
        elif not self._producer.done():
            self._closed = True
            self._producer.cancel()
            await asyncio.gather(self._producer, return_exceptions=True)
            logger.info("Answer stream closed by consumer after %d chunks", self.chunks)
        else:
            self._closed = True
        if self.state == AnswerState.STREAMING:
            self.state = AnswerState.FAILED

    async def read_all(self) -> str:
        parts: List[str] = []
        async for part in self:
            parts.append(part)
        return "".join(parts)

    async def _produce(self) -> None:
        try:
            async for delta in self._completion.deltas():
                self.chunks += 1
                self.estimated_tokens += estimate_tokens(delta)
                if self.chunks % LOG_EVERY_CHUNKS == 0:
                    logger.debug(
                        "Streamed %d chunks (~%d tokens)", self.chunks, self.estimated_tokens
                    )
                await self._queue.put(delta)
            if self.state == AnswerState.STREAMING:
                self.state = AnswerState.DONE
                logger.info(
                    "Answer stream complete: %d chunks (~%d tokens)",
                    self.chunks,
                    self.estimated_tokens,
                )
        except Exception as e:
            self.error = e
            self.state = AnswerState.FAILED
            logger.error("Answer stream failed after %d chunks: %s", self.chunks, e)
            prefix = "\n\n" if self.chunks else ""
            await self._queue.put(prefix + mid_stream_message_for(e))
        finally:
            await self._completion.aclose()
        await self._queue.put(_END)
