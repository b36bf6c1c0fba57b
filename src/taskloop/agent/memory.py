"""Agent memory interface and the in-process default implementation."""

import math
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

from ..errors import ProviderError
from .actions import ActionProposal, ActionResult

MemoryType = Literal["observation", "reflection", "plan", "result"]

EmbedFn = Callable[[list[str]], Awaitable[list[list[float]]]]

SHORT_TERM_SIZE = 10


@dataclass(frozen=True)
class MemoryRecord:
    id: str
    type: MemoryType
    content: str
    timestamp: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MemorySnapshot:
    short_term: list[MemoryRecord] = field(default_factory=list)
    long_term: list[MemoryRecord] = field(default_factory=list)


@runtime_checkable
class MemoryManager(Protocol):
    """Storage the loop writes proposals and results into."""

    async def capture_proposal(self, proposal: ActionProposal) -> None: ...

    async def capture_result(self, result: ActionResult) -> None: ...

    async def snapshot(self) -> MemorySnapshot: ...

    async def recall(self, query: str, limit: int = 10) -> list[MemoryRecord]: ...

    async def vector_search(self, query: str, limit: int = 5) -> list[MemoryRecord]: ...


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either is zero or lengths differ."""
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class InMemoryMemoryManager:
    """Keeps records in a list for the lifetime of one run.

    The ten newest records form short-term memory; everything older is
    long-term, newest first. Vector search embeds with ``embed`` when
    given and otherwise returns the most recent records.
    """

    def __init__(self, embed: EmbedFn | None = None, short_term_size: int = SHORT_TERM_SIZE) -> None:
        self._records: list[MemoryRecord] = []
        self._embed = embed
        self._short_term_size = short_term_size
        self._vectors: dict[str, list[float]] = {}

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> list[MemoryRecord]:
        return list(self._records)

    def add(
        self,
        type: MemoryType,
        content: str,
        metadata: dict[str, Any] | None = None,
        timestamp: float | None = None,
    ) -> MemoryRecord:
        record = MemoryRecord(
            id=f"mem_{uuid.uuid4().hex[:12]}",
            type=type,
            content=content,
            timestamp=timestamp if timestamp is not None else time.time(),
            metadata=metadata or {},
        )
        self._records.append(record)
        return record

    async def capture_proposal(self, proposal: ActionProposal) -> None:
        self.add(
            "plan",
            f"Planned: {proposal.command} - {'; '.join(proposal.reasoning)}",
            {"command": proposal.command, "cycle": proposal.metadata.cycle},
            proposal.metadata.created_at,
        )

    async def capture_result(self, result: ActionResult) -> None:
        self.add(
            "result",
            f"Result: {result.summary}",
            {"success": result.success, "cycle": result.metadata.cycle},
            result.metadata.created_at,
        )

    async def snapshot(self) -> MemorySnapshot:
        size = self._short_term_size
        short_term = self._records[-size:]
        older = self._records[:-size] if len(self._records) > size else []
        return MemorySnapshot(short_term=list(short_term), long_term=list(reversed(older)))

    async def recall(self, query: str, limit: int = 10) -> list[MemoryRecord]:
        """Records containing any query keyword, most recent last."""
        keywords = query.lower().split()
        if not keywords or limit <= 0:
            return []
        matches = [r for r in self._records if any(kw in r.content.lower() for kw in keywords)]
        return matches[-limit:]

    async def _embed_checked(self, texts: list[str]) -> list[list[float]]:
        vectors = await self._embed(texts)
        if len(vectors) != len(texts):
            raise ProviderError(
                f"Embedding backend returned {len(vectors)} vector(s) for {len(texts)} input(s)",
                {"expected": len(texts), "received": len(vectors)},
            )
        return vectors

    async def vector_search(self, query: str, limit: int = 5) -> list[MemoryRecord]:
        if limit <= 0:
            return []
        if self._embed is None or not self._records:
            return self._records[-limit:]

        missing = [r for r in self._records if r.id not in self._vectors]
        if missing:
            vectors = await self._embed_checked([r.content for r in missing])
            for record, vector in zip(missing, vectors):
                self._vectors[record.id] = vector

        (query_vector,) = await self._embed_checked([query])
        ranked = sorted(
            self._records,
            key=lambda r: cosine_similarity(query_vector, self._vectors[r.id]),
            reverse=True,
        )
        return ranked[:limit]
