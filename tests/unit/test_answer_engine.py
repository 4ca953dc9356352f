"""Unit tests for AnsweringEngine."""

import pytest

from repolens.exceptions import AuthenticationError, RateLimitError, TransientProviderError
from repolens.providers import RateLimiterRegistry
from repolens.schemas import AnswerState, NewEmbeddingRecord
from repolens.services import AnsweringEngine
from repolens.services.answer_engine import NO_RESULTS_MESSAGE
from repolens.services.answer_stream import (
    AUTHENTICATION_MESSAGE,
    MID_STREAM_MESSAGE,
    NETWORK_MESSAGE,
    RATE_LIMIT_MESSAGE,
    VALIDATION_MESSAGE,
)
from tests.fakes import FakeEmbeddingProvider, fast_retry, make_limiters, make_settings

QUESTION = "How are users greeted?"


class TestAnsweringEngine:
    @pytest.fixture(autouse=True)
    def _setup(self, completion_provider, embedding_store, vector_index, project_store, project, clock):
        self.embedding_provider = FakeEmbeddingProvider({QUESTION: [1.0, 0.0, 0.0]})
        self.completion_provider = completion_provider
        self.records = embedding_store
        self.vector_index = vector_index
        self.projects = project_store
        self.project = project
        self.clock = clock
        self.limiters = make_limiters(clock)

    def _engine(self, **overrides) -> AnsweringEngine:
        settings = make_settings(
            EMBEDDING_RETRY_BASE_DELAY_SECONDS=0.0,
            STREAM_RETRY_BASE_DELAY_SECONDS=0.0,
            **overrides,
        )
        return AnsweringEngine(
            self.embedding_provider,
            self.completion_provider,
            self.records,
            self.vector_index,
            self.projects,
            self.limiters,
            settings,
            fast_retry(),
            sleep=self.clock.sleep,
        )

    def _index(self, file_name, vector, searchable=True, project_id=None):
        project_id = project_id or self.project.id
        record_id = self.records.create_record(
            NewEmbeddingRecord(
                project_id=project_id,
                file_name=file_name,
                source_code=f"# {file_name}",
                summary=f"Summary of {file_name}",
            )
        )
        self.vector_index.upsert(record_id, project_id, vector)
        if searchable:
            self.records.mark_searchable(record_id)
        return record_id

    @pytest.mark.asyncio
    async def test_empty_question_fails_validation_without_provider_calls(self):
        result = await self._engine().answer("   ", self.project.id)

        assert await result.stream.read_all() == VALIDATION_MESSAGE
        assert result.state == AnswerState.FAILED
        assert result.states == [AnswerState.VALIDATING, AnswerState.FAILED]
        assert self.embedding_provider.calls == []
        assert self.completion_provider.stream_prompts == []

    @pytest.mark.asyncio
    async def test_missing_project_id_fails_validation(self):
        result = await self._engine().answer(QUESTION, "")

        assert await result.stream.read_all() == VALIDATION_MESSAGE
        assert self.embedding_provider.calls == []

    @pytest.mark.asyncio
    async def test_unknown_project_fails(self):
        result = await self._engine().answer(QUESTION, "no-such-project")

        assert result.state == AnswerState.FAILED
        assert "no-such-project" in await result.stream.read_all()
        assert self.embedding_provider.calls == []

    @pytest.mark.asyncio
    async def test_no_searchable_records_returns_fixed_message(self):
        self._index("hidden.py", [1.0, 0.0, 0.0], searchable=False)

        result = await self._engine().answer(QUESTION, self.project.id)

        assert await result.stream.read_all() == NO_RESULTS_MESSAGE
        assert result.state == AnswerState.DONE
        assert result.references == []
        assert result.states[-2:] == [AnswerState.RETRIEVING, AnswerState.DONE]
        assert self.completion_provider.stream_prompts == []

    @pytest.mark.asyncio
    async def test_references_are_ranked_and_capped(self):
        for i in range(12):
            self._index(f"file_{i:02d}.py", [1.0, float(i), 0.0])
        self._index("hidden.py", [0.0, 0.0, 1.0], searchable=False)
        other = self.projects.create("other", "https://github.com/acme/other")
        self._index("elsewhere.py", [1.0, 0.0, 0.0], project_id=other.id)

        result = await self._engine().answer(QUESTION, self.project.id)
        await result.stream.aclose()

        names = [ref.file_name for ref in result.references]
        similarities = [ref.similarity for ref in result.references]
        assert len(names) == 10
        assert names[0] == "file_00.py"
        assert similarities == sorted(similarities, reverse=True)
        assert "hidden.py" not in names
        assert "elsewhere.py" not in names
        assert similarities[0] == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_vectors_without_searchable_rows_do_not_shrink_results(self):
        for i in range(10):
            self._index(f"orphan_{i}.py", [1.0, 0.0, 0.0], searchable=False)
        for i in range(12):
            self._index(f"file_{i:02d}.py", [1.0, 1.0 + i, 0.0])

        result = await self._engine().answer(QUESTION, self.project.id)
        await result.stream.aclose()

        names = [ref.file_name for ref in result.references]
        assert len(names) == 10
        assert not any(name.startswith("orphan_") for name in names)
        assert names[0] == "file_00.py"

    @pytest.mark.asyncio
    async def test_streams_answer_built_from_context(self):
        self._index("greeter.py", [1.0, 0.0, 0.0])
        self.completion_provider.stream_deltas = ["Users ", "are ", "greeted."]

        result = await self._engine().answer(f"  {QUESTION}  ", self.project.id)

        assert result.states == [
            AnswerState.VALIDATING,
            AnswerState.EMBEDDING,
            AnswerState.RETRIEVING,
            AnswerState.CONTEXT_BUILDING,
            AnswerState.RATE_GATE,
            AnswerState.GENERATING,
            AnswerState.STREAMING,
        ]
        assert await result.stream.read_all() == "Users are greeted."
        assert result.state == AnswerState.DONE
        prompt = self.completion_provider.stream_prompts[0]
        assert "source: greeter.py" in prompt
        assert "summary of file: Summary of greeter.py" in prompt
        assert QUESTION in prompt
        assert self.completion_provider.streams[0].closed

    @pytest.mark.asyncio
    async def test_mid_stream_failure_appends_message(self):
        self._index("greeter.py", [1.0, 0.0, 0.0])
        self.completion_provider.stream_deltas = ["Partial ", "answer", "never"]
        self.completion_provider.stream_fail_after = 2
        self.completion_provider.stream_error = TransientProviderError("connection reset")

        result = await self._engine().answer(QUESTION, self.project.id)
        text = await result.stream.read_all()

        assert text == "Partial answer\n\n" + MID_STREAM_MESSAGE
        assert result.state == AnswerState.FAILED

    @pytest.mark.asyncio
    async def test_transient_open_failure_is_retried(self):
        self._index("greeter.py", [1.0, 0.0, 0.0])
        self.completion_provider.open_stream_errors = [TransientProviderError("502")]

        result = await self._engine().answer(QUESTION, self.project.id)

        assert await result.stream.read_all() == "Hello world"
        assert len(self.completion_provider.stream_prompts) == 2

    @pytest.mark.asyncio
    async def test_persistent_network_failure_maps_to_message(self):
        self._index("greeter.py", [1.0, 0.0, 0.0])
        self.completion_provider.open_stream_errors = [
            TransientProviderError("down") for _ in range(3)
        ]

        result = await self._engine(ANSWER_RETRY_ATTEMPTS=3).answer(QUESTION, self.project.id)

        assert await result.stream.read_all() == NETWORK_MESSAGE
        assert result.states[-2:] == [AnswerState.GENERATING, AnswerState.FAILED]
        assert len(self.completion_provider.stream_prompts) == 3

    @pytest.mark.asyncio
    async def test_authentication_failure_is_not_retried(self):
        self._index("greeter.py", [1.0, 0.0, 0.0])
        self.completion_provider.open_stream_errors = [AuthenticationError("bad key")]

        result = await self._engine().answer(QUESTION, self.project.id)

        assert await result.stream.read_all() == AUTHENTICATION_MESSAGE
        assert len(self.completion_provider.stream_prompts) == 1

    @pytest.mark.asyncio
    async def test_rate_limited_embedding_maps_to_message(self):
        async def throttled(text):
            raise RateLimitError("slow down", provider="gemini")

        self.embedding_provider.embed = throttled

        result = await self._engine(ANSWER_RETRY_ATTEMPTS=1).answer(QUESTION, self.project.id)

        assert await result.stream.read_all() == RATE_LIMIT_MESSAGE
        assert result.states[-2:] == [AnswerState.EMBEDDING, AnswerState.FAILED]

    @pytest.mark.asyncio
    async def test_rate_gate_waits_for_window(self):
        self.limiters = make_limiters(self.clock, **{RateLimiterRegistry.CHAT: 1})
        self.limiters.get(RateLimiterRegistry.CHAT).record_usage()
        self._index("greeter.py", [1.0, 0.0, 0.0])

        result = await self._engine().answer(QUESTION, self.project.id)

        assert await result.stream.read_all() == "Hello world"
        assert self.clock.sleeps == [60.0]
