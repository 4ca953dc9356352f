"""Unit tests for IngestionWorkerPool and SummaryCache."""

import asyncio

import pytest

from repolens.exceptions import TransientProviderError
from repolens.schemas import FileDocument, OutcomeStatus
from repolens.services import IngestionWorkerPool, SummaryCache
from repolens.services.prompts import SUMMARY_SYSTEM_PROMPT
from tests.fakes import fast_retry, make_settings


def _doc(path: str, content: str = None) -> FileDocument:
    content = content if content is not None else f"# {path}\nprint('{path}')\n"
    return FileDocument(path=path, raw_content=content, size_bytes=len(content))


class TestSummaryCache:
    @pytest.mark.asyncio
    async def test_concurrent_identical_prompts_compute_once(self):
        cache = SummaryCache()
        calls = 0

        async def compute():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return "summary"

        results = await asyncio.gather(
            *(cache.get_or_compute("same prompt", compute) for _ in range(5))
        )

        assert results == ["summary"] * 5
        assert calls == 1
        assert cache.hits == 4

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self):
        cache = SummaryCache()
        attempts = []

        async def failing():
            attempts.append("fail")
            raise TransientProviderError("down")

        async def working():
            attempts.append("ok")
            return "summary"

        with pytest.raises(TransientProviderError):
            await cache.get_or_compute("p", failing)
        assert await cache.get_or_compute("p", working) == "summary"
        assert attempts == ["fail", "ok"]


class TestIngestionWorkerPool:
    @pytest.fixture(autouse=True)
    def _pool(
        self,
        completion_provider,
        embedding_provider,
        embedding_store,
        vector_index,
        limiters,
        project,
    ):
        self.completion_provider = completion_provider
        self.embedding_provider = embedding_provider
        self.records = embedding_store
        self.vector_index = vector_index
        self.limiters = limiters
        self.project_id = project.id

    def _make_pool(self, **overrides) -> IngestionWorkerPool:
        settings = make_settings(
            RETRY_BASE_DELAY_SECONDS=0.0,
            EMBEDDING_RETRY_BASE_DELAY_SECONDS=0.0,
            **overrides,
        )
        return IngestionWorkerPool(
            self.completion_provider,
            self.embedding_provider,
            self.records,
            self.vector_index,
            self.limiters,
            settings,
            fast_retry(),
        )

    @pytest.mark.asyncio
    async def test_ingest_persists_searchable_records(self):
        pool = self._make_pool()
        documents = [_doc("a.py"), _doc("b.py"), _doc("c.py")]

        report = await pool.ingest(self.project_id, documents)

        assert report.indexed == 3
        assert not report.is_partial_failure
        assert self.records.count_for_project(self.project_id, searchable_only=True) == 3
        assert len(self.vector_index.vectors) == 3
        assert {o.file_name for o in report.outcomes} == {"a.py", "b.py", "c.py"}

    @pytest.mark.asyncio
    async def test_concurrency_never_exceeds_pool_size(self):
        self.completion_provider.delay = 0.01
        pool = self._make_pool(INGEST_CONCURRENCY=3)
        documents = [_doc(f"file_{i}.py") for i in range(10)]

        report = await pool.ingest(self.project_id, documents)

        assert report.indexed == 10
        assert 1 < self.completion_provider.max_in_flight <= 3

    @pytest.mark.asyncio
    async def test_summary_failure_skips_only_that_file(self):
        self.completion_provider.failing_substrings = ["broken.py"]
        pool = self._make_pool()
        documents = [_doc("ok1.py"), _doc("broken.py"), _doc("ok2.py")]

        report = await pool.ingest(self.project_id, documents)

        failed = [o for o in report.outcomes if o.status == OutcomeStatus.FAILED]
        assert [o.file_name for o in failed] == ["broken.py"]
        assert "provider unavailable" in failed[0].error
        assert report.indexed == 2
        assert report.is_partial_failure
        assert self.records.count_for_project(self.project_id) == 2
        # Retried up to RETRY_MAX_ATTEMPTS before giving up
        broken_calls = [p for p in self.completion_provider.prompts if "broken.py" in p]
        assert len(broken_calls) == 2

    @pytest.mark.asyncio
    async def test_embedding_failure_leaves_record_unsearchable(self):
        self.completion_provider.reply = "Summary of the file."
        self.embedding_provider.failing.add("Summary of the file.")
        pool = self._make_pool()

        report = await pool.ingest(self.project_id, [_doc("a.py")])

        assert report.unsearchable == 1
        outcome = report.outcomes[0]
        assert outcome.record_id is not None
        assert self.records.count_for_project(self.project_id) == 1
        assert self.records.count_for_project(self.project_id, searchable_only=True) == 0
        assert self.vector_index.vectors == {}

    @pytest.mark.asyncio
    async def test_vector_write_failure_leaves_record_unsearchable(self):
        self.vector_index.failing_upserts = True
        pool = self._make_pool()

        report = await pool.ingest(self.project_id, [_doc("a.py")])

        assert report.unsearchable == 1
        assert self.records.get_records([report.outcomes[0].record_id]) == []

    @pytest.mark.asyncio
    async def test_mark_searchable_failure_removes_vector(self, monkeypatch):
        def fail(record_id):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(self.records, "mark_searchable", fail)
        pool = self._make_pool()

        report = await pool.ingest(self.project_id, [_doc("a.py")])

        assert report.unsearchable == 1
        assert "database is locked" in report.outcomes[0].error
        assert self.vector_index.vectors == {}

    @pytest.mark.asyncio
    async def test_duplicate_content_hits_cache(self):
        pool = self._make_pool()
        documents = [_doc("same.py", "x = 1"), _doc("same.py", "x = 1"), _doc("other.py")]

        report = await pool.ingest(self.project_id, documents)

        assert report.cache_hits == 1
        assert len(self.completion_provider.prompts) == 2
        # Each file still gets its own record
        assert report.indexed == 3

    @pytest.mark.asyncio
    async def test_prompt_is_truncated(self):
        pool = self._make_pool(MAX_PROMPT_CHARS=50)
        long_code = "a" * 500

        await pool.ingest(self.project_id, [_doc("long.py", long_code)])

        prompt = self.completion_provider.prompts[0]
        assert "a" * 50 in prompt
        assert "a" * 51 not in prompt
        assert "long.py" in prompt

    @pytest.mark.asyncio
    async def test_append_policy_keeps_previous_records(self):
        pool = self._make_pool(EMBEDDING_PATH_POLICY="append")

        await pool.ingest(self.project_id, [_doc("a.py")])
        await pool.ingest(self.project_id, [_doc("a.py")])

        assert len(self.records.find_ids_by_file(self.project_id, "a.py")) == 2

    @pytest.mark.asyncio
    async def test_replace_policy_keeps_one_record_per_path(self):
        pool = self._make_pool(EMBEDDING_PATH_POLICY="replace")

        first = await pool.ingest(self.project_id, [_doc("a.py")])
        second = await pool.ingest(self.project_id, [_doc("a.py")])

        ids = self.records.find_ids_by_file(self.project_id, "a.py")
        assert ids == [second.outcomes[0].record_id]
        assert first.outcomes[0].record_id not in self.vector_index.vectors

    @pytest.mark.asyncio
    async def test_summary_uses_system_prompt(self):
        seen = {}

        async def complete(prompt, *, temperature, max_tokens, system=None):
            seen.update(temperature=temperature, max_tokens=max_tokens, system=system)
            return "summary"

        self.completion_provider.complete = complete
        pool = self._make_pool()

        await pool.ingest(self.project_id, [_doc("a.py")])

        assert seen == {"temperature": 0.2, "max_tokens": 300, "system": SUMMARY_SYSTEM_PROMPT}
