"""Retrieval-augmented answering over a project's indexed files."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from ..config.settings import Settings
from ..exceptions import ValidationError
from ..models import EmbeddingRecordStore, ProjectStore
from ..protocols.provider_protocol import CompletionProvider, EmbeddingProvider
from ..protocols.storage_protocol import VectorIndexProtocol
from ..providers import RateLimiterRegistry, RetryExecutor
from ..schemas import AnswerState, RetrievedReference
from .answer_stream import AnswerStream, user_message_for
from .prompts import build_answer_prompt, build_context, estimate_tokens

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No relevant code files found for this question in the project."


@dataclass
class AnswerResult:
    """A lazily produced answer plus the references it was grounded on."""

    stream: AnswerStream
    references: List[RetrievedReference] = field(default_factory=list)
    states: List[AnswerState] = field(default_factory=list)

    @property
    def state(self) -> AnswerState:
        return self.stream.state


class AnsweringEngine:
    """Validating → Embedding → Retrieving → ContextBuilding → RateGate →
    Generating → Streaming → Done, with Failed reachable from every step.

    ``answer`` never raises provider errors: every terminal state comes back
    as a stream carrying a user-readable message.
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        completion_provider: CompletionProvider,
        records: EmbeddingRecordStore,
        vector_index: VectorIndexProtocol,
        projects: ProjectStore,
        limiters: RateLimiterRegistry,
        settings: Settings,
        retry: Optional[RetryExecutor] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.embedding_provider = embedding_provider
        self.completion_provider = completion_provider
        self.records = records
        self.vector_index = vector_index
        self.projects = projects
        self.embedding_limiter = limiters.get(RateLimiterRegistry.EMBEDDING)
        self.chat_limiter = limiters.get(RateLimiterRegistry.CHAT)
        self.settings = settings
        self.retry = retry or RetryExecutor()
        self._sleep = sleep

    async def answer(self, question: str, project_id: str) -> AnswerResult:
        states: List[AnswerState] = [AnswerState.VALIDATING]
        references: List[RetrievedReference] = []
        try:
            question = (question or "").strip()
            project_id = (project_id or "").strip()
            if not question or not project_id:
                raise ValidationError("question and project_id are required")
            await asyncio.to_thread(self.projects.get, project_id)

            states.append(AnswerState.EMBEDDING)
            vector = await self.retry.with_retry(
                lambda: self.embedding_provider.embed(question),
                max_attempts=self.settings.ANSWER_RETRY_ATTEMPTS,
                base_delay=self.settings.EMBEDDING_RETRY_BASE_DELAY_SECONDS,
                limiter=self.embedding_limiter,
                context="embed question",
            )

            states.append(AnswerState.RETRIEVING)
            references = await asyncio.to_thread(self.retrieve, project_id, vector)
            if not references:
                states.append(AnswerState.DONE)
                logger.info("No searchable records matched in project %s", project_id)
                return AnswerResult(
                    stream=AnswerStream.from_message(NO_RESULTS_MESSAGE, AnswerState.DONE),
                    references=[],
                    states=states,
                )

            states.append(AnswerState.CONTEXT_BUILDING)
            prompt = build_answer_prompt(question, build_context(references))
            estimated = estimate_tokens(prompt)

            states.append(AnswerState.RATE_GATE)
            await self._rate_gate(estimated)

            states.append(AnswerState.GENERATING)
            completion = await self.retry.with_retry(
                lambda: self.completion_provider.open_stream(
                    prompt,
                    temperature=self.settings.ANSWER_TEMPERATURE,
                    max_tokens=self.settings.ANSWER_MAX_TOKENS,
                ),
                max_attempts=self.settings.ANSWER_RETRY_ATTEMPTS,
                base_delay=self.settings.STREAM_RETRY_BASE_DELAY_SECONDS,
                limiter=self.chat_limiter,
                estimated_cost=estimated,
                context="open answer stream",
            )
        except Exception as e:
            failed_in = states[-1]
            states.append(AnswerState.FAILED)
            logger.error("Answer failed during %s: %s", failed_in.value, e)
            return AnswerResult(
                stream=AnswerStream.from_message(user_message_for(e), AnswerState.FAILED),
                references=references,
                states=states,
            )

        states.append(AnswerState.STREAMING)
        logger.info(
            "Streaming answer for project %s from %d references (~%d prompt tokens)",
            project_id,
            len(references),
            estimated,
        )
        return AnswerResult(
            stream=AnswerStream(completion, buffer_size=self.settings.STREAM_BUFFER_SIZE),
            references=references,
            states=states,
        )

    def retrieve(self, project_id: str, vector: List[float]) -> List[RetrievedReference]:
        """Top-K searchable records of the project, most similar first."""
        top_k = self.settings.ANSWER_TOP_K
        fetch = top_k
        while True:
            hits = self.vector_index.query(project_id, vector, fetch)
            if not hits:
                return []
            rows = {
                row.id: row
                for row in self.records.get_records(
                    [record_id for record_id, _ in hits], project_id
                )
            }
            # Vectors without a searchable row take slots; widen until K rows or the index runs out
            if len(rows) >= top_k or len(hits) < fetch:
                break
            fetch *= 2

        references = []
        for record_id, distance in hits:
            row = rows.get(record_id)
            if row is None:
                # Vector exists but the row is not (yet) searchable
                continue
            references.append(
                RetrievedReference(
                    id=row.id,
                    project_id=row.project_id,
                    file_name=row.file_name,
                    source_code=row.source_code,
                    summary=row.summary,
                    similarity=1.0 - distance,
                )
            )
        references.sort(key=lambda ref: ref.similarity, reverse=True)
        return references[:top_k]

    async def _rate_gate(self, estimated_cost: int) -> None:
        while not self.chat_limiter.can_proceed(estimated_cost):
            wait = self.chat_limiter.time_until_window_frees()
            logger.info(
                "[RateLimit] Near ceiling (~%d tokens requested), waiting %.1fs",
                estimated_cost,
                wait,
            )
            await self._sleep(wait)
