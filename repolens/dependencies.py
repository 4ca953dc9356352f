from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import sessionmaker

from repolens.config.settings import Settings, get_settings
from repolens.db import get_session_factory
from repolens.models import (
    ChromaVectorIndex,
    CommitStore,
    CreditLedger,
    EmbeddingRecordStore,
    ProjectStore,
)
from repolens.protocols.provider_protocol import CompletionProvider, EmbeddingProvider
from repolens.providers import (
    ChatCompletionClient,
    GeminiEmbeddingProvider,
    RateLimiterRegistry,
    RetryExecutor,
    SentenceTransformerEmbeddingProvider,
)
from repolens.services import (
    AnsweringEngine,
    CommitIngestionPipeline,
    IngestionCoordinator,
    IngestionWorkerPool,
    OnboardingService,
    RepositoryCrawler,
    hosting_client_factory_from_settings,
)
from repolens.services.hosting_client_factory import HostingClientFactory

# Process-wide collaborators: built once, then injected everywhere they are used


@lru_cache
def get_rate_limiters() -> RateLimiterRegistry:
    return RateLimiterRegistry.from_settings(get_settings())


@lru_cache
def get_vector_index() -> ChromaVectorIndex:
    return ChromaVectorIndex(settings=get_settings())


@lru_cache
def get_embedding_provider() -> EmbeddingProvider:
    settings = get_settings()
    if settings.EMBEDDING_PROVIDER == "sentence-transformers":
        return SentenceTransformerEmbeddingProvider(settings.LOCAL_EMBEDDING_MODEL_NAME)
    return GeminiEmbeddingProvider(
        api_url=settings.GEMINI_API_URL,
        api_key=settings.GEMINI_API_KEY,
        model=settings.EMBEDDING_MODEL_NAME,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    )


@lru_cache
def get_chat_provider() -> CompletionProvider:
    settings = get_settings()
    return ChatCompletionClient(
        name="chat",
        api_url=settings.CHAT_API_URL,
        api_key=settings.CHAT_API_KEY,
        model=settings.CHAT_MODEL,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    )


@lru_cache
def get_diff_summary_provider() -> CompletionProvider:
    settings = get_settings()
    return ChatCompletionClient(
        name="diff_summary",
        api_url=settings.DIFF_SUMMARY_API_URL,
        api_key=settings.DIFF_SUMMARY_API_KEY,
        model=settings.DIFF_SUMMARY_MODEL,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    )


def get_retry_executor() -> RetryExecutor:
    return RetryExecutor()


def get_hosting_client_factory(
    settings: Settings = Depends(get_settings),
) -> HostingClientFactory:
    return hosting_client_factory_from_settings(settings)


# Model layer: relational stores share the process-wide session factory


def get_db_session_factory() -> sessionmaker:
    return get_session_factory()


def get_project_store(
    session_factory: sessionmaker = Depends(get_db_session_factory),
) -> ProjectStore:
    return ProjectStore(session_factory)


def get_embedding_store(
    session_factory: sessionmaker = Depends(get_db_session_factory),
) -> EmbeddingRecordStore:
    return EmbeddingRecordStore(session_factory)


def get_commit_store(
    session_factory: sessionmaker = Depends(get_db_session_factory),
) -> CommitStore:
    return CommitStore(session_factory)


def get_credit_ledger(
    session_factory: sessionmaker = Depends(get_db_session_factory),
) -> CreditLedger:
    return CreditLedger(session_factory)


# Service layer depends on the model-layer getters above


def get_crawler(
    client_factory: HostingClientFactory = Depends(get_hosting_client_factory),
    settings: Settings = Depends(get_settings),
    limiters: RateLimiterRegistry = Depends(get_rate_limiters),
    retry: RetryExecutor = Depends(get_retry_executor),
) -> RepositoryCrawler:
    return RepositoryCrawler(client_factory, settings, limiters, retry)


def get_ingestion_pool(
    completion_provider: CompletionProvider = Depends(get_chat_provider),
    embedding_provider: EmbeddingProvider = Depends(get_embedding_provider),
    records: EmbeddingRecordStore = Depends(get_embedding_store),
    vector_index: ChromaVectorIndex = Depends(get_vector_index),
    limiters: RateLimiterRegistry = Depends(get_rate_limiters),
    settings: Settings = Depends(get_settings),
    retry: RetryExecutor = Depends(get_retry_executor),
) -> IngestionWorkerPool:
    return IngestionWorkerPool(
        completion_provider,
        embedding_provider,
        records,
        vector_index,
        limiters,
        settings,
        retry,
    )


def get_commit_pipeline(
    client_factory: HostingClientFactory = Depends(get_hosting_client_factory),
    completion_provider: CompletionProvider = Depends(get_diff_summary_provider),
    commits: CommitStore = Depends(get_commit_store),
    projects: ProjectStore = Depends(get_project_store),
    limiters: RateLimiterRegistry = Depends(get_rate_limiters),
    settings: Settings = Depends(get_settings),
    retry: RetryExecutor = Depends(get_retry_executor),
) -> CommitIngestionPipeline:
    return CommitIngestionPipeline(
        client_factory, completion_provider, commits, projects, limiters, settings, retry
    )


def get_answer_engine(
    embedding_provider: EmbeddingProvider = Depends(get_embedding_provider),
    completion_provider: CompletionProvider = Depends(get_chat_provider),
    records: EmbeddingRecordStore = Depends(get_embedding_store),
    vector_index: ChromaVectorIndex = Depends(get_vector_index),
    projects: ProjectStore = Depends(get_project_store),
    limiters: RateLimiterRegistry = Depends(get_rate_limiters),
    settings: Settings = Depends(get_settings),
    retry: RetryExecutor = Depends(get_retry_executor),
) -> AnsweringEngine:
    return AnsweringEngine(
        embedding_provider,
        completion_provider,
        records,
        vector_index,
        projects,
        limiters,
        settings,
        retry,
    )


def get_ingestion_coordinator(
    crawler: RepositoryCrawler = Depends(get_crawler),
    pool: IngestionWorkerPool = Depends(get_ingestion_pool),
    commit_pipeline: CommitIngestionPipeline = Depends(get_commit_pipeline),
    engine: AnsweringEngine = Depends(get_answer_engine),
    projects: ProjectStore = Depends(get_project_store),
    records: EmbeddingRecordStore = Depends(get_embedding_store),
    commits: CommitStore = Depends(get_commit_store),
    vector_index: ChromaVectorIndex = Depends(get_vector_index),
) -> IngestionCoordinator:
    return IngestionCoordinator(
        crawler=crawler,
        pool=pool,
        commit_pipeline=commit_pipeline,
        engine=engine,
        projects=projects,
        records=records,
        commits=commits,
        vector_index=vector_index,
    )


def get_onboarding_service(
    coordinator: IngestionCoordinator = Depends(get_ingestion_coordinator),
    projects: ProjectStore = Depends(get_project_store),
    billing: CreditLedger = Depends(get_credit_ledger),
) -> OnboardingService:
    return OnboardingService(coordinator=coordinator, projects=projects, billing=billing)
