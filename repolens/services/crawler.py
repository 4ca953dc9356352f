"""Walks a hosted repository tree and loads eligible source files."""

import asyncio
import logging
import posixpath
from typing import List, Optional

from ..config.settings import Settings
from ..protocols.hosting_protocol import HostingClientProtocol
from ..providers import RateLimiterRegistry, RetryExecutor, parse_repository_url
from ..schemas import ContentEntry, EntryType, FileDocument, RepositoryReference
from .hosting_client_factory import HostingClientFactory

logger = logging.getLogger(__name__)


class RepositoryCrawler:
    """Counts and loads the files of a repository through the hosting API.

    Directory listings are driven by an explicit work queue drained by a fixed
    number of worker tasks, so at most ``CRAWLER_MAX_CONCURRENCY`` listing
    requests are ever in flight. Counting and loading share one walk and one
    eligibility rule, which keeps the pre-flight count equal to the number of
    documents a load produces.
    """

    def __init__(
        self,
        client_factory: HostingClientFactory,
        settings: Settings,
        limiters: RateLimiterRegistry,
        retry: Optional[RetryExecutor] = None,
    ):
        self.client_factory = client_factory
        self.settings = settings
        self.max_concurrency = max(1, settings.CRAWLER_MAX_CONCURRENCY)
        self.ignore_files = set(settings.CRAWLER_IGNORE_FILES)
        self.binary_extensions = {ext.lower() for ext in settings.CRAWLER_BINARY_EXTENSIONS}
        self.max_file_bytes = settings.CRAWLER_MAX_FILE_BYTES
        self.limiter = limiters.get(RateLimiterRegistry.HOSTING)
        self.retry = retry or RetryExecutor()

    # Eligibility ------------------------------------------------------------

    def skip_reason(self, entry: ContentEntry) -> Optional[str]:
        """Why a file entry is not ingested, or None when it is eligible."""
        if entry.name in self.ignore_files:
            return "ignored"
        _, ext = posixpath.splitext(entry.name)
        if ext.lower() in self.binary_extensions:
            return "binary"
        if entry.size > self.max_file_bytes:
            return f"oversized ({entry.size} bytes)"
        return None

    # Public contract ----------------------------------------------------------

    async def count_eligible_files(self, repo: RepositoryReference) -> int:
        client = self.client_factory(repo.access_credential)
        try:
            entries = await self._walk(client, repo)
        finally:
            await client.aclose()
        return len(entries)

    async def load_files(self, repo: RepositoryReference) -> List[FileDocument]:
        client = self.client_factory(repo.access_credential)
        try:
            entries = await self._walk(client, repo)
            owner, name = parse_repository_url(repo.hosting_url)
            semaphore = asyncio.Semaphore(self.max_concurrency)

            async def load(entry: ContentEntry) -> FileDocument:
                async with semaphore:
                    raw = await self.retry.with_retry(
                        lambda: client.get_file_content(
                            owner, name, entry.path, ref=repo.default_branch
                        ),
                        max_attempts=self.settings.RETRY_MAX_ATTEMPTS,
                        base_delay=self.settings.RETRY_BASE_DELAY_SECONDS,
                        limiter=self.limiter,
                        context=f"load {entry.path}",
                    )
                return self._to_document(entry, raw)

            tasks = [asyncio.create_task(load(entry)) for entry in entries]
            try:
                documents = await asyncio.gather(*tasks)
            except BaseException:
                # Nothing may touch the client once it is closed
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise
        finally:
            await client.aclose()

        logger.info("Loaded %d files from %s", len(documents), repo.hosting_url)
        return list(documents)

    # Internals --------------------------------------------------------------

    @staticmethod
    def _to_document(entry: ContentEntry, raw: bytes) -> FileDocument:
        # Stored source is canonical text: undecodable bytes are replaced and
        # NULs dropped, never skipped, so the load matches the count
        text = raw.decode("utf-8", errors="replace").replace("\x00", "")
        return FileDocument(path=entry.path, raw_content=text, size_bytes=len(raw))

    async def _list(
        self, client: HostingClientProtocol, owner: str, name: str, path: str, ref: str
    ) -> List[ContentEntry]:
        result = await self.retry.with_retry(
            lambda: client.get_content(owner, name, path, ref=ref),
            max_attempts=self.settings.RETRY_MAX_ATTEMPTS,
            base_delay=self.settings.RETRY_BASE_DELAY_SECONDS,
            limiter=self.limiter,
            context=f"list {path or '/'}",
        )
        return result if isinstance(result, list) else [result]

    async def _walk(
        self, client: HostingClientProtocol, repo: RepositoryReference
    ) -> List[ContentEntry]:
        """Eligible file entries of the whole tree, sorted by path."""
        owner, name = parse_repository_url(repo.hosting_url)
        ref = repo.default_branch

        queue: asyncio.Queue = asyncio.Queue()
        queue.put_nowait("")
        eligible: List[ContentEntry] = []
        errors: List[BaseException] = []

        async def worker() -> None:
            while True:
                path = await queue.get()
                try:
                    if errors:
                        continue
                    for entry in await self._list(client, owner, name, path, ref):
                        if entry.type == EntryType.DIR:
                            queue.put_nowait(entry.path)
                        elif entry.type == EntryType.FILE:
                            reason = self.skip_reason(entry)
                            if reason is None:
                                eligible.append(entry)
                            else:
                                logger.info("Skipping %s: %s", entry.path, reason)
                        else:
                            logger.debug("Skipping %s entry %s", entry.type.value, entry.path)
                except Exception as e:
                    errors.append(e)
                finally:
                    queue.task_done()

        workers = [asyncio.create_task(worker()) for _ in range(self.max_concurrency)]
        try:
            await queue.join()
        finally:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        if errors:
            raise errors[0]

        eligible.sort(key=lambda entry: entry.path)
        logger.info(
            "Found %d eligible files in %s/%s@%s", len(eligible), owner, name, ref
        )
        return eligible
