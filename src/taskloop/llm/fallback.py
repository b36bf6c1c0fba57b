"""Ordered failover across several backends."""

import logging
from collections.abc import AsyncIterator, Sequence

from ..errors import ProviderError
from .base import LLMProvider
from .types import ChatMessage, ChatOptions, ChatResponse, ChatStreamChunk

logger = logging.getLogger(__name__)


class FallbackProvider(LLMProvider):
    """Try providers in order; raise only when every one has failed.

    Each call starts again from the first provider. Holds no per-call state.
    """

    name = "fallback"

    def __init__(self, providers: Sequence[LLMProvider]) -> None:
        if not providers:
            raise ValueError("FallbackProvider requires at least one provider")
        self._providers = list(providers)

    @property
    def providers(self) -> list[LLMProvider]:
        return list(self._providers)

    def _exhausted(self, last_error: Exception | None) -> ProviderError:
        count = len(self._providers)
        return ProviderError(
            f"All {count} provider(s) failed. Last error: {last_error}",
            {"providers": [p.name for p in self._providers]},
        )

    async def chat(
        self, messages: list[ChatMessage], options: ChatOptions | None = None
    ) -> ChatResponse:
        last_error: Exception | None = None
        for index, provider in enumerate(self._providers):
            try:
                return await provider.chat(messages, options)
            except Exception as e:
                last_error = e
                logger.warning("Provider %d (%s) failed on chat: %s", index, provider.name, e)
        raise self._exhausted(last_error) from last_error

    async def chat_stream(
        self, messages: list[ChatMessage], options: ChatOptions | None = None
    ) -> AsyncIterator[ChatStreamChunk]:
        last_error: Exception | None = None
        for index, provider in enumerate(self._providers):
            started = False
            try:
                async for chunk in provider.chat_stream(messages, options):
                    started = True
                    yield chunk
                return
            except Exception as e:
                # Once output has reached the caller, switching backends
                # would duplicate content.
                if started:
                    raise
                last_error = e
                logger.warning("Provider %d (%s) failed on stream: %s", index, provider.name, e)
        raise self._exhausted(last_error) from last_error

    async def embed(self, texts: list[str]) -> list[list[float]]:
        last_error: Exception | None = None
        for index, provider in enumerate(self._providers):
            try:
                return await provider.embed(texts)
            except Exception as e:
                last_error = e
                logger.warning("Provider %d (%s) failed on embed: %s", index, provider.name, e)
        raise self._exhausted(last_error) from last_error

    async def aclose(self) -> None:
        for provider in self._providers:
            await provider.aclose()
