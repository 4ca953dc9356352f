"""Coordinates crawling, ingestion, commit summaries and answering for projects."""

import asyncio
import time
from typing import Any, AsyncGenerator, Dict, List, Optional

from ..models import CommitStore, EmbeddingRecordStore, ProjectStore
from ..protocols.storage_protocol import VectorIndexProtocol
from ..schemas import (
    CommitIngestReport,
    IngestReport,
    OutcomeStatus,
    RepositoryReference,
)
from .answer_engine import AnswerResult, AnsweringEngine
from .commit_pipeline import CommitIngestionPipeline
from .crawler import RepositoryCrawler
from .ingestion_pool import IngestionWorkerPool, SummaryCache


class IngestionCoordinator:
    """Entry point used by the request layer for everything a project does."""

    def __init__(
        self,
        crawler: RepositoryCrawler,
        pool: IngestionWorkerPool,
        commit_pipeline: CommitIngestionPipeline,
        engine: AnsweringEngine,
        projects: ProjectStore,
        records: EmbeddingRecordStore,
        commits: CommitStore,
        vector_index: VectorIndexProtocol,
    ):
        self.crawler = crawler
        self.pool = pool
        self.commit_pipeline = commit_pipeline
        self.engine = engine
        self.projects = projects
        self.records = records
        self.commits = commits
        self.vector_index = vector_index

    @staticmethod
    def _with_credential(
        repo: RepositoryReference, credential: Optional[str]
    ) -> RepositoryReference:
        if credential is None:
            return repo
        return repo.model_copy(update={"access_credential": credential})

    async def count_eligible_files(
        self, repo: RepositoryReference, credential: Optional[str] = None
    ) -> int:
        return await self.crawler.count_eligible_files(self._with_credential(repo, credential))

    async def ingest_repository(
        self,
        project_id: str,
        repo: RepositoryReference,
        credential: Optional[str] = None,
    ) -> IngestReport:
        await asyncio.to_thread(self.projects.get, project_id)
        documents = await self.crawler.load_files(self._with_credential(repo, credential))
        return await self.pool.ingest(project_id, documents)

    async def ingest_repository_stream(
        self,
        project_id: str,
        repo: RepositoryReference,
        credential: Optional[str] = None,
    ) -> AsyncGenerator[Dict[str, Any], None]:
        """Index a repository with streaming progress updates."""
        try:
            yield {
                "type": "status",
                "message": "Starting repository indexing...",
                "progress": 0,
            }
            await asyncio.to_thread(self.projects.get, project_id)

            yield {
                "type": "status",
                "message": "Loading repository files...",
                "progress": 10,
            }
            documents = await self.crawler.load_files(self._with_credential(repo, credential))

            if not documents:
                yield {
                    "type": "complete",
                    "message": "No eligible files found",
                    "stats": {"processed": 0, "indexed": 0, "unsearchable": 0, "failed": 0},
                    "progress": 100,
                }
                return

            total_files = len(documents)
            yield {
                "type": "status",
                "message": f"Found {total_files} files to process",
                "progress": 20,
                "total_files": total_files,
            }

            cache = SummaryCache()
            outcomes = []
            start_time = time.time()
            async for outcome in self.pool.ingest_iter(project_id, documents, cache):
                outcomes.append(outcome)
                done = len(outcomes)
                elapsed = time.time() - start_time
                eta_seconds = (total_files - done) * (elapsed / done)
                yield {
                    "type": "progress",
                    "message": f"Processed: {outcome.file_name}",
                    "progress": 20 + (done / total_files) * 75,
                    "current_file": done,
                    "total_files": total_files,
                    "eta": f"{int(eta_seconds / 60)}m {int(eta_seconds % 60)}s",
                }
                if outcome.status == OutcomeStatus.INDEXED:
                    yield {
                        "type": "file_complete",
                        "message": f"Indexed: {outcome.file_name}",
                        "file_path": outcome.file_name,
                    }
                else:
                    yield {
                        "type": "warning",
                        "message": f"{outcome.status.value}: {outcome.file_name} ({outcome.error})",
                        "file_path": outcome.file_name,
                    }

            report = IngestReport(project_id=project_id, outcomes=outcomes, cache_hits=cache.hits)
            stats = report.stats()
            yield {
                "type": "complete",
                "message": (
                    f"Indexing complete! Indexed {stats['indexed']} files, "
                    f"{stats['unsearchable']} unsearchable, {stats['failed']} failed"
                ),
                "stats": stats,
                "total_time_seconds": round(time.time() - start_time, 2),
                "progress": 100,
            }

        except Exception as e:  # noqa: BLE001 - stream safety
            yield {"type": "error", "message": f"Indexing failed: {str(e)}"}

    async def ingest_recent_commits(
        self, project_id: str, credential: Optional[str] = None
    ) -> CommitIngestReport:
        return await self.commit_pipeline.ingest_recent_commits(project_id, credential)

    async def answer(self, question: str, project_id: str) -> AnswerResult:
        return await self.engine.answer(question, project_id)

    async def list_commits(self, project_id: str) -> List[Dict[str, Any]]:
        await asyncio.to_thread(self.projects.get, project_id)
        rows = await asyncio.to_thread(self.commits.list_commits, project_id)
        return [
            {
                "commit_hash": row.commit_hash,
                "commit_message": row.commit_message,
                "commit_author_name": row.commit_author_name,
                "commit_author_avatar": row.commit_author_avatar,
                "commit_date": row.commit_date.isoformat() if row.commit_date else None,
                "summary": row.summary,
            }
            for row in rows
        ]

    async def archive_project(self, project_id: str) -> Dict[str, Any]:
        """Archive a project and drop its embedding records, rows and vectors."""
        await asyncio.to_thread(self.projects.archive, project_id)
        record_ids = await asyncio.to_thread(self.records.list_ids_for_project, project_id)
        await asyncio.to_thread(self.vector_index.delete, record_ids)
        deleted = await asyncio.to_thread(self.records.delete_records, record_ids)
        return {"project_id": project_id, "archived": True, "deleted_records": deleted}

    async def get_project_status(self, project_id: str) -> Dict[str, Any]:
        project = await asyncio.to_thread(self.projects.get, project_id)
        total = await asyncio.to_thread(self.records.count_for_project, project_id)
        searchable = await asyncio.to_thread(
            self.records.count_for_project, project_id, True
        )
        commits = await asyncio.to_thread(self.commits.list_commits, project_id)
        return {
            "project_id": project.id,
            "name": project.name,
            "repo_url": project.repo_url,
            "default_branch": project.default_branch,
            "records": total,
            "searchable_records": searchable,
            "unsearchable_records": total - searchable,
            "commits": len(commits),
        }
