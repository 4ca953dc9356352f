from datetime import datetime, timezone
from typing import Generator

import pytest
from sqlalchemy.orm import sessionmaker

from repolens.db import build_engine, build_session_factory, init_db
from repolens.models import CommitStore, CreditLedger, EmbeddingRecordStore, ProjectStore
from repolens.schemas import CommitInfo
from repolens.services import (
    AnsweringEngine,
    CommitIngestionPipeline,
    IngestionCoordinator,
    IngestionWorkerPool,
    RepositoryCrawler,
)

from tests.fakes import (
    FakeClock,
    FakeCompletionProvider,
    FakeEmbeddingProvider,
    FakeHostingClient,
    InMemoryVectorIndex,
    fast_retry,
    make_limiters,
    make_settings,
)


@pytest.fixture
def settings():
    return make_settings(RETRY_BASE_DELAY_SECONDS=0.0, EMBEDDING_RETRY_BASE_DELAY_SECONDS=0.0)


@pytest.fixture
def session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """Fresh SQLite database file per test; worker threads get their own connections."""
    engine = build_engine(f"sqlite:///{tmp_path / 'repolens-test.db'}")
    init_db(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def project_store(session_factory) -> ProjectStore:
    return ProjectStore(session_factory)


@pytest.fixture
def embedding_store(session_factory) -> EmbeddingRecordStore:
    return EmbeddingRecordStore(session_factory)


@pytest.fixture
def commit_store(session_factory) -> CommitStore:
    return CommitStore(session_factory)


@pytest.fixture
def credit_ledger(session_factory) -> CreditLedger:
    return CreditLedger(session_factory)


@pytest.fixture
def project(project_store):
    return project_store.create("demo", "https://github.com/acme/widgets")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiters(clock):
    return make_limiters(clock)


@pytest.fixture
def vector_index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def completion_provider() -> FakeCompletionProvider:
    return FakeCompletionProvider()


REPOSITORY_FILES = {
    "README.md": "# widgets",
    "package-lock.json": "{}",
    "src/app.py": "print('app')",
    "src/util.py": "def util(): pass",
    "src/broken.py": "raise SystemExit",
}


@pytest.fixture
def hosting_client() -> FakeHostingClient:
    """Four eligible files and a lockfile, plus three commits on consecutive days."""
    commits = [
        CommitInfo(
            commit_hash=f"{i:040x}",
            commit_message=f"commit {i}",
            commit_date=datetime(2024, 1, i, tzinfo=timezone.utc),
        )
        for i in range(1, 4)
    ]
    return FakeHostingClient(REPOSITORY_FILES, commits=commits)


@pytest.fixture
def coordinator(
    hosting_client,
    completion_provider,
    embedding_provider,
    embedding_store,
    commit_store,
    project_store,
    vector_index,
    limiters,
) -> IngestionCoordinator:
    """Fully wired coordinator over the in-process fakes and a per-test database."""
    settings = make_settings(
        RETRY_BASE_DELAY_SECONDS=0.0,
        EMBEDDING_RETRY_BASE_DELAY_SECONDS=0.0,
        STREAM_RETRY_BASE_DELAY_SECONDS=0.0,
    )

    def client_factory(token):
        return hosting_client

    retry = fast_retry()
    crawler = RepositoryCrawler(client_factory, settings, limiters, retry)
    pool = IngestionWorkerPool(
        completion_provider,
        embedding_provider,
        embedding_store,
        vector_index,
        limiters,
        settings,
        retry,
    )
    pipeline = CommitIngestionPipeline(
        client_factory, completion_provider, commit_store, project_store, limiters, settings, retry
    )
    engine = AnsweringEngine(
        embedding_provider,
        completion_provider,
        embedding_store,
        vector_index,
        project_store,
        limiters,
        settings,
        retry,
    )
    return IngestionCoordinator(
        crawler, pool, pipeline, engine, project_store, embedding_store, commit_store, vector_index
    )
