"""Project onboarding: pre-flight cost check, creation, ingestion and billing."""

import asyncio
import logging
from typing import Any, Dict

from ..exceptions import InsufficientCreditsError
from ..models import ProjectStore
from ..protocols.storage_protocol import BillingProtocol
from ..providers import parse_repository_url
from ..schemas import RepositoryReference
from .ingestion_coordinator import IngestionCoordinator

logger = logging.getLogger(__name__)


class OnboardingService:
    """Charges one credit per eligible file, counted with the same walk the load uses."""

    def __init__(
        self,
        coordinator: IngestionCoordinator,
        projects: ProjectStore,
        billing: BillingProtocol,
    ):
        self.coordinator = coordinator
        self.projects = projects
        self.billing = billing

    async def check_credits(self, user_id: str, repo: RepositoryReference) -> Dict[str, int]:
        parse_repository_url(repo.hosting_url)
        file_count = await self.coordinator.count_eligible_files(repo)
        user_credits = await asyncio.to_thread(self.billing.get_remaining_credits, user_id)
        return {"file_count": file_count, "user_credits": user_credits}

    async def create_project(
        self, user_id: str, name: str, repo: RepositoryReference
    ) -> Dict[str, Any]:
        parse_repository_url(repo.hosting_url)
        file_count = await self.coordinator.count_eligible_files(repo)
        available = await asyncio.to_thread(self.billing.get_remaining_credits, user_id)
        if file_count > available:
            raise InsufficientCreditsError(required=file_count, available=available)

        project = await asyncio.to_thread(
            self.projects.create, name, repo.hosting_url, repo.default_branch
        )
        logger.info(
            "Created project %s for %s (%d eligible files)", project.id, repo.hosting_url, file_count
        )

        ingest_report = await self.coordinator.ingest_repository(project.id, repo)
        commit_report = await self.coordinator.ingest_recent_commits(
            project.id, repo.access_credential
        )
        remaining = await asyncio.to_thread(self.billing.debit, user_id, file_count)

        return {
            "project_id": project.id,
            "name": project.name,
            "file_count": file_count,
            "ingestion": ingest_report.stats(),
            "commits": {
                "persisted": commit_report.persisted,
                "skipped_existing": commit_report.skipped_existing,
                "fallbacks": commit_report.fallbacks,
            },
            "remaining_credits": remaining,
        }
