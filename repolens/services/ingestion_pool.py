"""Bounded-concurrency summarize → embed → persist pipeline for loaded files."""

import asyncio
import hashlib
import logging
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence

from ..config.settings import Settings
from ..models import EmbeddingRecordStore
from ..protocols.provider_protocol import CompletionProvider, EmbeddingProvider
from ..protocols.storage_protocol import VectorIndexProtocol
from ..providers import RateLimiterRegistry, RetryExecutor
from ..schemas import (
    FileDocument,
    FileOutcome,
    IngestReport,
    NewEmbeddingRecord,
    OutcomeStatus,
)
from .prompts import SUMMARY_SYSTEM_PROMPT, build_summary_prompt, estimate_tokens

logger = logging.getLogger(__name__)


class SummaryCache:
    """Prompt-keyed summaries for one ingestion run.

    Concurrent lookups of the same prompt share one in-flight computation;
    failed computations are not cached.
    """

    def __init__(self):
        self._entries: Dict[str, asyncio.Future] = {}
        self.hits = 0

    @staticmethod
    def key_for(prompt: str) -> str:
        return hashlib.sha256(prompt.encode("utf-8")).hexdigest()

    async def get_or_compute(
        self, prompt: str, compute: Callable[[], Awaitable[str]]
    ) -> str:
        key = self.key_for(prompt)
        future = self._entries.get(key)
        if future is not None:
            self.hits += 1
            return await asyncio.shield(future)

        future = asyncio.get_running_loop().create_future()
        self._entries[key] = future
        try:
            result = await compute()
        except asyncio.CancelledError:
            del self._entries[key]
            future.cancel()
            raise
        except Exception as e:
            del self._entries[key]
            future.set_exception(e)
            # Retrieved here; the owner re-raises it below
            future.exception()
            raise
        future.set_result(result)
        return result


class IngestionWorkerPool:
    """Turns FileDocuments into searchable embedding records.

    At most ``INGEST_CONCURRENCY`` files are in their provider-call phase at
    once. A file whose summary fails is skipped; a file whose summary succeeds
    but whose embedding or vector write fails is still persisted, unsearchable.
    """

    def __init__(
        self,
        completion_provider: CompletionProvider,
        embedding_provider: EmbeddingProvider,
        records: EmbeddingRecordStore,
        vector_index: VectorIndexProtocol,
        limiters: RateLimiterRegistry,
        settings: Settings,
        retry: Optional[RetryExecutor] = None,
    ):
        self.completion_provider = completion_provider
        self.embedding_provider = embedding_provider
        self.records = records
        self.vector_index = vector_index
        self.chat_limiter = limiters.get(RateLimiterRegistry.CHAT)
        self.embedding_limiter = limiters.get(RateLimiterRegistry.EMBEDDING)
        self.settings = settings
        self.concurrency = max(1, settings.INGEST_CONCURRENCY)
        self.retry = retry or RetryExecutor()

    async def ingest(
        self, project_id: str, documents: Sequence[FileDocument]
    ) -> IngestReport:
        cache = SummaryCache()
        outcomes: List[FileOutcome] = []
        async for outcome in self.ingest_iter(project_id, documents, cache):
            outcomes.append(outcome)

        report = IngestReport(project_id=project_id, outcomes=outcomes, cache_hits=cache.hits)
        logger.info("Ingestion finished for project %s: %s", project_id, report.stats())
        return report

    async def ingest_iter(
        self,
        project_id: str,
        documents: Sequence[FileDocument],
        cache: Optional[SummaryCache] = None,
    ) -> AsyncIterator[FileOutcome]:
        """Yield one outcome per document, in completion order."""
        cache = cache if cache is not None else SummaryCache()
        semaphore = asyncio.Semaphore(self.concurrency)
        tasks = [
            asyncio.create_task(self._process(project_id, doc, cache, semaphore))
            for doc in documents
        ]
        try:
            for next_done in asyncio.as_completed(tasks):
                yield await next_done
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def summarize(self, document: FileDocument, cache: SummaryCache) -> str:
        prompt = build_summary_prompt(
            document.path, document.raw_content, self.settings.MAX_PROMPT_CHARS
        )

        async def call() -> str:
            return await self.retry.with_retry(
                lambda: self.completion_provider.complete(
                    prompt,
                    temperature=self.settings.SUMMARY_TEMPERATURE,
                    max_tokens=self.settings.SUMMARY_MAX_TOKENS,
                    system=SUMMARY_SYSTEM_PROMPT,
                ),
                max_attempts=self.settings.RETRY_MAX_ATTEMPTS,
                base_delay=self.settings.RETRY_BASE_DELAY_SECONDS,
                limiter=self.chat_limiter,
                estimated_cost=estimate_tokens(prompt) + self.settings.SUMMARY_MAX_TOKENS,
                context=f"summarize {document.path}",
            )

        return await cache.get_or_compute(SUMMARY_SYSTEM_PROMPT + "\n" + prompt, call)

    async def embed(self, text: str, context: str) -> List[float]:
        return await self.retry.with_retry(
            lambda: self.embedding_provider.embed(text),
            max_attempts=self.settings.RETRY_MAX_ATTEMPTS,
            base_delay=self.settings.EMBEDDING_RETRY_BASE_DELAY_SECONDS,
            limiter=self.embedding_limiter,
            context=f"embed {context}",
        )

    async def _process(
        self,
        project_id: str,
        document: FileDocument,
        cache: SummaryCache,
        semaphore: asyncio.Semaphore,
    ) -> FileOutcome:
        async with semaphore:
            try:
                summary = await self.summarize(document, cache)
            except Exception as e:
                logger.warning("Skipping %s: summarization failed: %s", document.path, e)
                return FileOutcome(
                    file_name=document.path, status=OutcomeStatus.FAILED, error=str(e)
                )

            vector: Optional[List[float]] = None
            embed_error: Optional[str] = None
            try:
                vector = await self.embed(summary, document.path)
            except Exception as e:
                embed_error = str(e)
                logger.warning("Embedding failed for %s: %s", document.path, e)

            return await self._persist(project_id, document, summary, vector, embed_error)

    async def _persist(
        self,
        project_id: str,
        document: FileDocument,
        summary: str,
        vector: Optional[List[float]],
        embed_error: Optional[str],
    ) -> FileOutcome:
        try:
            if self.settings.EMBEDDING_PATH_POLICY == "replace":
                await asyncio.to_thread(self._remove_existing, project_id, document.path)
            record_id = await asyncio.to_thread(
                self.records.create_record,
                NewEmbeddingRecord(
                    project_id=project_id,
                    file_name=document.path,
                    source_code=document.raw_content,
                    summary=summary,
                ),
            )
        except Exception as e:
            logger.warning("Skipping %s: could not persist record: %s", document.path, e)
            return FileOutcome(
                file_name=document.path, status=OutcomeStatus.FAILED, error=str(e)
            )

        if vector is None:
            return FileOutcome(
                file_name=document.path,
                status=OutcomeStatus.UNSEARCHABLE,
                record_id=record_id,
                error=embed_error,
            )

        try:
            await asyncio.to_thread(self.vector_index.upsert, record_id, project_id, vector)
            await asyncio.to_thread(self.records.mark_searchable, record_id)
        except Exception as e:
            logger.warning("Record %s for %s left unsearchable: %s", record_id, document.path, e)
            await self._drop_vector(record_id)
            return FileOutcome(
                file_name=document.path,
                status=OutcomeStatus.UNSEARCHABLE,
                record_id=record_id,
                error=str(e),
            )

        logger.debug("Indexed %s as %s", document.path, record_id)
        return FileOutcome(
            file_name=document.path, status=OutcomeStatus.INDEXED, record_id=record_id
        )

    async def _drop_vector(self, record_id: str) -> None:
        try:
            await asyncio.to_thread(self.vector_index.delete, [record_id])
        except Exception as e:
            logger.error("Could not remove orphan vector %s: %s", record_id, e)

    def _remove_existing(self, project_id: str, file_name: str) -> None:
        existing = self.records.find_ids_by_file(project_id, file_name)
        if existing:
            self.vector_index.delete(existing)
            self.records.delete_records(existing)
            logger.info("Replaced %d existing records for %s", len(existing), file_name)
