"""Services for the application."""

from .answer_engine import AnswerResult, AnsweringEngine
from .answer_stream import AnswerStream
from .commit_pipeline import CommitIngestionPipeline
from .crawler import RepositoryCrawler
from .hosting_client_factory import (
    create_hosting_client,
    hosting_client_factory_from_settings,
)
from .ingestion_coordinator import IngestionCoordinator
from .ingestion_pool import IngestionWorkerPool, SummaryCache
from .onboarding import OnboardingService

__all__ = [
    "AnswerResult",
    "AnswerStream",
    "AnsweringEngine",
    "CommitIngestionPipeline",
    "IngestionCoordinator",
    "IngestionWorkerPool",
    "OnboardingService",
    "RepositoryCrawler",
    "SummaryCache",
    "create_hosting_client",
    "hosting_client_factory_from_settings",
]
