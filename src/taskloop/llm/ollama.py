"""Ollama backend over its HTTP API."""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from ..config import LLMConfig
from ..errors import ProviderError
from ..retry import with_retry
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

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"


def _is_transient(error: Exception) -> bool:
    """Connection failures, 429 and 5xx are worth another attempt."""
    if not isinstance(error, ProviderError):
        return False
    status = error.context.get("status_code")
    return status is None or status == 429 or status >= 500


def _to_ollama_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    converted = []
    for m in messages:
        role = m.get("role", "user")
        if role == "function":
            role = "tool"
        converted.append({"role": role, "content": m.get("content") or ""})
    return converted


def _function_call(message: dict[str, Any]) -> FunctionCall | None:
    tool_calls = message.get("tool_calls") or []
    if not tool_calls:
        return None
    fn = tool_calls[0].get("function", {})
    arguments = fn.get("arguments", {})
    # Ollama returns arguments as an object, not a JSON string.
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return FunctionCall(name=fn.get("name", ""), arguments=arguments)


class OllamaProvider(LLMProvider):
    """LLMProvider for a local or remote Ollama server (``/api/chat``, ``/api/embed``)."""

    name = "ollama"

    def __init__(self, config: LLMConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._base_url = (config.base_url or DEFAULT_BASE_URL).rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self._base_url, timeout=config.timeout)

    @property
    def model(self) -> str:
        return self.config.model

    def _payload(
        self, messages: list[ChatMessage], options: ChatOptions | None, stream: bool
    ) -> dict[str, Any]:
        options = options or ChatOptions()
        payload: dict[str, Any] = {
            "model": options.model or self.config.model,
            "messages": _to_ollama_messages(messages),
            "stream": stream,
            "options": {
                "temperature": options.temperature
                if options.temperature is not None
                else self.config.temperature,
                "num_predict": options.max_tokens or self.config.max_tokens,
            },
        }
        if options.functions:
            payload["tools"] = [f.to_tool() for f in options.functions]
        return payload

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"Ollama returned HTTP {e.response.status_code}: {e.response.text[:200]}",
                {"provider": self.name, "status_code": e.response.status_code},
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(
                f"Ollama request failed: {e}", {"provider": self.name}
            ) from e
        except ValueError as e:
            raise ProviderError(
                f"Ollama returned invalid JSON: {e}", {"provider": self.name, "status_code": 200}
            ) from e

    async def _post_with_retry(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await with_retry(
            lambda: self._post(path, payload),
            max_attempts=self.config.max_retries + 1,
            initial_delay=0.5,
            max_delay=5.0,
            should_retry=_is_transient,
        )

    async def chat(
        self, messages: list[ChatMessage], options: ChatOptions | None = None
    ) -> ChatResponse:
        data = await self._post_with_retry("/api/chat", self._payload(messages, options, stream=False))
        message = data.get("message") or {}

        prompt_tokens = data.get("prompt_eval_count") or 0
        completion_tokens = data.get("eval_count") or 0
        function_call = _function_call(message)

        return ChatResponse(
            content=message.get("content") or "",
            function_call=function_call,
            finish_reason="function_call" if function_call else data.get("done_reason", "stop"),
            usage=Usage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
        )

    async def chat_stream(
        self, messages: list[ChatMessage], options: ChatOptions | None = None
    ) -> AsyncIterator[ChatStreamChunk]:
        payload = self._payload(messages, options, stream=True)
        try:
            async with self._client.stream("POST", "/api/chat", json=payload) as response:
                if response.is_error:
                    await response.aread()
                    raise ProviderError(
                        f"Ollama returned HTTP {response.status_code}: {response.text[:200]}",
                        {"provider": self.name, "status_code": response.status_code},
                    )
                # Newline-delimited JSON, one object per delta.
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    data = json.loads(line)
                    message = data.get("message") or {}
                    function_call = _function_call(message)
                    finish_reason = None
                    if data.get("done"):
                        finish_reason = data.get("done_reason", "stop")
                    if function_call:
                        finish_reason = "function_call"
                    yield ChatStreamChunk(
                        content=message.get("content") or None,
                        function_call=function_call,
                        finish_reason=finish_reason,
                    )
        except httpx.RequestError as e:
            raise ProviderError(f"Ollama stream failed: {e}", {"provider": self.name}) from e
        except json.JSONDecodeError as e:
            raise ProviderError(f"Ollama stream sent invalid JSON: {e}", {"provider": self.name}) from e

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        model = self.config.embedding_model or DEFAULT_EMBEDDING_MODEL
        data = await self._post_with_retry("/api/embed", {"model": model, "input": texts})
        embeddings = data.get("embeddings")
        if not isinstance(embeddings, list) or len(embeddings) != len(texts):
            raise ProviderError(
                "Ollama returned an unexpected embeddings payload",
                {"provider": self.name, "status_code": 200},
            )
        return embeddings

    async def aclose(self) -> None:
        await self._client.aclose()
