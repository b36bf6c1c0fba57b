"""Model backend interface."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from .types import ChatMessage, ChatOptions, ChatResponse, ChatStreamChunk


class LLMProvider(ABC):
    """Uniform chat/stream/embed contract over a model backend.

    Implementations raise ProviderError for any backend failure so the
    fallback layer can treat every backend the same way.
    """

    name: str = "provider"

    @abstractmethod
    async def chat(
        self, messages: list[ChatMessage], options: ChatOptions | None = None
    ) -> ChatResponse:
        """Return one complete response."""
        ...

    @abstractmethod
    def chat_stream(
        self, messages: list[ChatMessage], options: ChatOptions | None = None
    ) -> AsyncIterator[ChatStreamChunk]:
        """Yield response deltas as they arrive."""
        ...

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Return one embedding vector per input text."""
        ...

    async def aclose(self) -> None:
        """Release network resources. Default is a no-op."""
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
