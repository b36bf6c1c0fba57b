"""Tests for the in-process memory manager."""

import pytest

from taskloop.agent import (
    ActionMetadata,
    ActionProposal,
    ActionResult,
    InMemoryMemoryManager,
    MemoryManager,
)
from taskloop.agent.memory import cosine_similarity
from taskloop.errors import ProviderError


def test_satisfies_protocol():
    assert isinstance(InMemoryMemoryManager(), MemoryManager)


class TestCosineSimilarity:
    def test_identical(self):
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)

    def test_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0

    def test_degenerate(self):
        assert cosine_similarity([], []) == 0.0
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
        assert cosine_similarity([1.0], [1.0, 2.0]) == 0.0


@pytest.mark.asyncio
class TestCapture:
    async def test_proposal_and_result(self):
        memory = InMemoryMemoryManager()
        metadata = ActionMetadata(cycle=2)
        await memory.capture_proposal(
            ActionProposal("write_file", {"path": "a"}, ["need a file", "then check"], metadata=metadata)
        )
        await memory.capture_result(
            ActionResult(True, "ok", "Successfully executed write_file", metadata)
        )

        plan, result = memory.records
        assert plan.type == "plan"
        assert plan.content == "Planned: write_file - need a file; then check"
        assert plan.metadata == {"command": "write_file", "cycle": 2}
        assert result.type == "result"
        assert result.content == "Result: Successfully executed write_file"
        assert result.metadata["success"] is True


@pytest.mark.asyncio
class TestSnapshot:
    async def test_short_and_long_term_split(self):
        memory = InMemoryMemoryManager()
        for i in range(13):
            memory.add("observation", f"obs {i}")

        snapshot = await memory.snapshot()

        assert [r.content for r in snapshot.short_term] == [f"obs {i}" for i in range(3, 13)]
        assert [r.content for r in snapshot.long_term] == ["obs 2", "obs 1", "obs 0"]

    async def test_small_memory_is_all_short_term(self):
        memory = InMemoryMemoryManager()
        memory.add("observation", "only")
        snapshot = await memory.snapshot()
        assert len(snapshot.short_term) == 1
        assert snapshot.long_term == []


@pytest.mark.asyncio
class TestRecall:
    async def test_keyword_match(self):
        memory = InMemoryMemoryManager()
        memory.add("observation", "The config file is missing")
        memory.add("observation", "Tests passed")
        memory.add("result", "Created CONFIG.yaml")

        matches = await memory.recall("config")
        assert [m.content for m in matches] == ["The config file is missing", "Created CONFIG.yaml"]

    async def test_limit_keeps_most_recent(self):
        memory = InMemoryMemoryManager()
        for i in range(5):
            memory.add("observation", f"step {i}")
        matches = await memory.recall("step", limit=2)
        assert [m.content for m in matches] == ["step 3", "step 4"]

    async def test_empty_query_and_zero_limit(self):
        memory = InMemoryMemoryManager()
        memory.add("observation", "anything")
        assert await memory.recall("") == []
        assert await memory.recall("anything", limit=0) == []


@pytest.mark.asyncio
class TestVectorSearch:
    async def test_without_embeddings_returns_recent(self):
        memory = InMemoryMemoryManager()
        for i in range(4):
            memory.add("observation", f"r{i}")
        results = await memory.vector_search("q", limit=2)
        assert [r.content for r in results] == ["r2", "r3"]

    async def test_ranked_by_similarity(self):
        vectors = {"cats": [1.0, 0.0], "dogs": [0.8, 0.2], "taxes": [0.0, 1.0], "pets": [1.0, 0.1]}
        embedded = []

        async def embed(texts):
            embedded.append(list(texts))
            return [vectors[t] for t in texts]

        memory = InMemoryMemoryManager(embed=embed)
        for text in ("taxes", "cats", "dogs"):
            memory.add("observation", text)

        results = await memory.vector_search("pets", limit=2)
        assert [r.content for r in results] == ["cats", "dogs"]

        await memory.vector_search("pets", limit=1)
        # Record vectors are cached; only the query is embedded again.
        assert embedded[-1] == ["pets"]
        assert embedded[0] == ["taxes", "cats", "dogs"]

    async def test_zero_limit(self):
        assert await InMemoryMemoryManager().vector_search("q", limit=0) == []

    async def test_short_embedding_batch_raises(self):
        async def embed(texts):
            return [[1.0, 0.0]]

        memory = InMemoryMemoryManager(embed=embed)
        memory.add("observation", "first")
        memory.add("observation", "second")

        with pytest.raises(ProviderError, match="returned 1 vector\\(s\\) for 2 input\\(s\\)") as exc:
            await memory.vector_search("q")
        assert exc.value.context == {"expected": 2, "received": 1}

    async def test_empty_query_embedding_raises(self):
        async def embed(texts):
            return [[1.0]] if texts != ["q"] else []

        memory = InMemoryMemoryManager(embed=embed)
        memory.add("observation", "only")

        with pytest.raises(ProviderError, match="0 vector"):
            await memory.vector_search("q")
