"""Fetches, summarizes and stores the most recent commits of a project's repository."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional

from ..config.settings import Settings
from ..models import CommitStore, ProjectStore
from ..protocols.hosting_protocol import HostingClientProtocol
from ..protocols.provider_protocol import CompletionProvider
from ..providers import RateLimiterRegistry, RetryExecutor, parse_repository_url
from ..schemas import CommitIngestReport, CommitInfo, CommitOutcome, CommitRecordCreate
from .hosting_client_factory import HostingClientFactory
from .prompts import build_diff_prompt, estimate_tokens

logger = logging.getLogger(__name__)

EMPTY_DIFF_SUMMARY = "No changes to summarize."

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def fallback_summary(commit_hash: str) -> str:
    return f"Could not summarize commit {commit_hash}"


def _sort_key(commit: CommitInfo) -> datetime:
    if commit.commit_date is None:
        return _EPOCH
    if commit.commit_date.tzinfo is None:
        return commit.commit_date.replace(tzinfo=timezone.utc)
    return commit.commit_date


class CommitIngestionPipeline:
    """Persists a summary for each of the newest ``MAX_COMMITS`` unseen commits.

    Already-stored hashes are filtered out before any diff is fetched, so a
    re-run without new upstream commits writes nothing. Per-commit failures
    are replaced by a fallback summary; everything is written in one bulk insert.
    """

    def __init__(
        self,
        client_factory: HostingClientFactory,
        completion_provider: CompletionProvider,
        commits: CommitStore,
        projects: ProjectStore,
        limiters: RateLimiterRegistry,
        settings: Settings,
        retry: Optional[RetryExecutor] = None,
    ):
        self.client_factory = client_factory
        self.completion_provider = completion_provider
        self.commits = commits
        self.projects = projects
        self.hosting_limiter = limiters.get(RateLimiterRegistry.HOSTING)
        self.summary_limiter = limiters.get(RateLimiterRegistry.DIFF_SUMMARY)
        self.settings = settings
        self.retry = retry or RetryExecutor()

    async def ingest_recent_commits(
        self, project_id: str, credential: Optional[str] = None
    ) -> CommitIngestReport:
        project = await asyncio.to_thread(self.projects.get, project_id)
        owner, repo = parse_repository_url(project.repo_url)

        client = self.client_factory(credential)
        try:
            listed = await self.retry.with_retry(
                lambda: client.list_commits(owner, repo),
                max_attempts=self.settings.RETRY_MAX_ATTEMPTS,
                base_delay=self.settings.RETRY_BASE_DELAY_SECONDS,
                limiter=self.hosting_limiter,
                context=f"list commits {owner}/{repo}",
            )
            recent = sorted(listed, key=_sort_key, reverse=True)[: self.settings.MAX_COMMITS]

            stored = await asyncio.to_thread(
                self.commits.existing_hashes, project_id, [c.commit_hash for c in recent]
            )
            pending = [c for c in recent if c.commit_hash not in stored]
            report = CommitIngestReport(
                project_id=project_id,
                fetched=len(recent),
                skipped_existing=len(recent) - len(pending),
            )
            if not pending:
                logger.info("No new commits for project %s", project_id)
                return report

            semaphore = asyncio.Semaphore(max(1, self.settings.INGEST_CONCURRENCY))
            results = await asyncio.gather(
                *(
                    self._summarize_commit(client, owner, repo, commit, semaphore)
                    for commit in pending
                )
            )
        finally:
            await client.aclose()

        records: List[CommitRecordCreate] = []
        for commit, (summary, outcome) in zip(pending, results):
            records.append(
                CommitRecordCreate(
                    project_id=project_id, summary=summary, **commit.model_dump()
                )
            )
            report.outcomes.append(outcome)

        await asyncio.to_thread(self.commits.bulk_insert, records)
        logger.info(
            "Stored %d commits for project %s (%d fallback summaries)",
            report.persisted,
            project_id,
            report.fallbacks,
        )
        return report

    async def summarize_diff(self, diff: str, commit_hash: str) -> str:
        if not diff.strip():
            return EMPTY_DIFF_SUMMARY
        prompt = build_diff_prompt(diff, self.settings.MAX_PROMPT_CHARS)
        return await self.retry.with_retry(
            lambda: self.completion_provider.complete(
                prompt,
                temperature=self.settings.SUMMARY_TEMPERATURE,
                max_tokens=self.settings.SUMMARY_MAX_TOKENS,
            ),
            max_attempts=self.settings.RETRY_MAX_ATTEMPTS,
            base_delay=self.settings.RETRY_BASE_DELAY_SECONDS,
            limiter=self.summary_limiter,
            estimated_cost=estimate_tokens(prompt),
            context=f"summarize commit {commit_hash[:7]}",
        )

    async def _summarize_commit(
        self,
        client: HostingClientProtocol,
        owner: str,
        repo: str,
        commit: CommitInfo,
        semaphore: asyncio.Semaphore,
    ):
        async with semaphore:
            try:
                diff = await self.retry.with_retry(
                    lambda: client.get_commit_diff(owner, repo, commit.commit_hash),
                    max_attempts=self.settings.RETRY_MAX_ATTEMPTS,
                    base_delay=self.settings.RETRY_BASE_DELAY_SECONDS,
                    limiter=self.hosting_limiter,
                    context=f"diff {commit.commit_hash[:7]}",
                )
                summary = await self.summarize_diff(diff, commit.commit_hash)
            except Exception as e:
                logger.warning(
                    "Using fallback summary for commit %s: %s", commit.commit_hash, e
                )
                return fallback_summary(commit.commit_hash), CommitOutcome(
                    commit_hash=commit.commit_hash, summarized=False, error=str(e)
                )
        return summary, CommitOutcome(commit_hash=commit.commit_hash, summarized=True)
