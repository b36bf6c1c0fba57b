"""Groq backend on the official async SDK."""

import logging
from collections.abc import AsyncIterator
from typing import Any

from groq import AsyncGroq, GroqError

from ..config import LLMConfig
from ..errors import ConfigurationError, ProviderError
from .base import LLMProvider
from .types import (
    ChatMessage,
    ChatOptions,
    ChatResponse,
    ChatStreamChunk,
    FunctionCall,
    Usage,
)

logger = logging.getLogger(__name__)


def _to_groq_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    """Groq has no ``function`` role; fold function results into user turns."""
    converted: list[dict[str, Any]] = []
    for m in messages:
        if m.get("role") == "function":
            name = m.get("name") or "function"
            converted.append({"role": "user", "content": f"[{name} result]\n{m.get('content', '')}"})
        else:
            converted.append({"role": m["role"], "content": m.get("content") or ""})
    return converted


class GroqProvider(LLMProvider):
    """LLMProvider that wraps AsyncGroq.

    Functions in ChatOptions are sent as tools with ``tool_choice="auto"``;
    the first tool call in the reply becomes ``ChatResponse.function_call``.
    Transient failures are retried by the SDK itself (``max_retries``).
    """

    name = "groq"

    def __init__(self, config: LLMConfig, client: AsyncGroq | None = None) -> None:
        self.config = config
        if client is None:
            try:
                client = AsyncGroq(
                    api_key=config.api_key,
                    base_url=config.base_url,
                    timeout=config.timeout,
                    max_retries=config.max_retries,
                )
            except GroqError as e:
                raise ConfigurationError(f"Groq client could not be created: {e}") from e
        self._client = client

    @property
    def model(self) -> str:
        return self.config.model

    def _request_kwargs(
        self, messages: list[ChatMessage], options: ChatOptions | None
    ) -> dict[str, Any]:
        options = options or ChatOptions()
        kwargs: dict[str, Any] = {
            "model": options.model or self.config.model,
            "messages": _to_groq_messages(messages),
            "temperature": options.temperature
            if options.temperature is not None
            else self.config.temperature,
            "max_tokens": options.max_tokens or self.config.max_tokens,
        }
        if options.functions:
            kwargs["tools"] = [f.to_tool() for f in options.functions]
            if isinstance(options.function_call, dict):
                kwargs["tool_choice"] = {"type": "function", "function": options.function_call}
            else:
                kwargs["tool_choice"] = options.function_call or "auto"
        return kwargs

    async def chat(
        self, messages: list[ChatMessage], options: ChatOptions | None = None
    ) -> ChatResponse:
        kwargs = self._request_kwargs(messages, options)
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except GroqError as e:
            raise ProviderError(f"Groq request failed: {e}", {"provider": self.name}) from e

        choice = response.choices[0]
        message = choice.message

        function_call = None
        if message.tool_calls:
            tc = message.tool_calls[0]
            function_call = FunctionCall(name=tc.function.name, arguments=tc.function.arguments)

        usage = None
        if response.usage is not None:
            usage = Usage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        return ChatResponse(
            content=message.content or "",
            function_call=function_call,
            finish_reason=choice.finish_reason,
            usage=usage,
        )

    async def chat_stream(
        self, messages: list[ChatMessage], options: ChatOptions | None = None
    ) -> AsyncIterator[ChatStreamChunk]:
        kwargs = self._request_kwargs(messages, options)
        kwargs["stream"] = True
        try:
            stream = await self._client.chat.completions.create(**kwargs)
            async for chunk in stream:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta

                function_call = None
                if delta.tool_calls:
                    fn = delta.tool_calls[0].function
                    function_call = FunctionCall(
                        name=(fn.name if fn else None) or "",
                        arguments=(fn.arguments if fn else None) or "",
                    )

                yield ChatStreamChunk(
                    content=delta.content or None,
                    function_call=function_call,
                    finish_reason=choice.finish_reason,
                )
        except GroqError as e:
            raise ProviderError(f"Groq stream failed: {e}", {"provider": self.name}) from e

    async def embed(self, texts: list[str]) -> list[list[float]]:
        raise ProviderError("Groq does not provide an embeddings endpoint", {"provider": self.name})

    async def aclose(self) -> None:
        await self._client.close()
