"""Turn task state into a model call and the reply into an ActionProposal."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from ..config import LLMConfig
from ..llm.base import LLMProvider
from ..llm.types import ChatFunction, ChatMessage, ChatOptions
from ..tools.registry import ToolRegistry
from .actions import ActionMetadata, ActionProposal
from .memory import MemorySnapshot
from .prompt import (
    DEFAULT_DIRECTIVES,
    DirectiveBundle,
    build_system_prompt,
    build_task_prompt,
    format_tools_as_functions,
)

logger = logging.getLogger(__name__)

MODEL_CALL_TIMEOUT = 60.0


@dataclass(frozen=True)
class ThoughtInputs:
    task: str
    cycle: int
    memory: MemorySnapshot = field(default_factory=MemorySnapshot)
    directives: DirectiveBundle = DEFAULT_DIRECTIVES
    user_feedback: str | None = None


@dataclass(frozen=True)
class PromptPayload:
    messages: list[ChatMessage]
    functions: list[ChatFunction]
    temperature: float
    model: str


@dataclass(frozen=True)
class ThoughtResponse:
    """Raw model text plus the structured call, when there was one.

    ``parsed`` holds ``name``, ``arguments`` (JSON string or dict) and an
    optional ``reasoning`` list.
    """

    raw: str
    parsed: dict[str, Any] | None = None


def _first_json_object(text: str) -> dict[str, Any] | None:
    """First ``{...}`` in ``text`` that decodes to a JSON object."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    return None


def _as_reasoning(value: Any, fallback: str) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value]
    if value:
        return [str(value)]
    return [fallback] if fallback else []


class ThoughtProcess:
    """Prompt building, the model call, and response parsing for one agent."""

    def __init__(
        self,
        provider: LLMProvider,
        config: LLMConfig,
        registry: ToolRegistry,
        timeout: float = MODEL_CALL_TIMEOUT,
    ) -> None:
        self.provider = provider
        self.config = config
        self.registry = registry
        self.timeout = timeout

    def prepare_prompt(self, inputs: ThoughtInputs) -> PromptPayload:
        tools = self.registry.tools()
        return PromptPayload(
            messages=[
                {"role": "system", "content": build_system_prompt(inputs.directives)},
                {
                    "role": "user",
                    "content": build_task_prompt(
                        inputs.task, inputs.cycle, inputs.memory, tools, inputs.user_feedback
                    ),
                },
            ],
            functions=format_tools_as_functions(tools),
            temperature=self.config.temperature,
            model=self.config.model,
        )

    async def call_model(self, prompt: PromptPayload) -> ThoughtResponse:
        """Call the provider once.

        Failures are not retried here. They become a synthetic
        ``task_complete`` response so the loop ends cleanly.
        """
        options = ChatOptions(
            temperature=prompt.temperature,
            max_tokens=self.config.max_tokens,
            model=prompt.model,
            functions=list(prompt.functions),
            function_call="auto" if prompt.functions else None,
        )

        try:
            response = await asyncio.wait_for(
                self.provider.chat(prompt.messages, options), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            reason = f"Model call timed out after {self.timeout:g}s"
            logger.error(reason)
            return self._failure_response(reason)
        except Exception as e:
            reason = f"Failed to generate thought from LLM: {e}"
            logger.error(reason)
            return self._failure_response(reason)

        content = (response.content or "").strip()
        parts = [content] if content else []
        if response.function_call:
            fc = response.function_call
            parts.append(f"function_call: {fc.name}({fc.arguments})")
            reasoning = [line.strip() for line in content.splitlines() if line.strip()]
            return ThoughtResponse(
                raw="\n".join(parts),
                parsed={
                    "name": fc.name,
                    "arguments": fc.arguments,
                    "reasoning": reasoning or None,
                },
            )

        return ThoughtResponse(raw="\n".join(parts) or response.content or "")

    @staticmethod
    def _failure_response(reason: str) -> ThoughtResponse:
        return ThoughtResponse(
            raw=reason,
            parsed={
                "name": "task_complete",
                "arguments": {"summary": reason},
                "reasoning": [reason],
            },
        )

    def parse_response(self, response: ThoughtResponse) -> ActionProposal:
        """Build a proposal from a response. Never raises.

        Cycle is left at 0; the loop stamps the real one.
        """
        metadata = ActionMetadata()
        try:
            if isinstance(response.parsed, dict):
                return self._from_function_call(response, metadata)
            return self._from_text(response.raw, metadata)
        except Exception as e:
            logger.warning("Could not parse model response: %s", e)
            return ActionProposal(
                command="task_complete",
                arguments={"summary": response.raw},
                reasoning=[response.raw],
                metadata=metadata,
            )

    def _from_function_call(
        self, response: ThoughtResponse, metadata: ActionMetadata
    ) -> ActionProposal:
        parsed = response.parsed or {}
        raw_args = parsed.get("arguments")

        if isinstance(raw_args, str):
            try:
                arguments = json.loads(raw_args) if raw_args.strip() else {}
            except json.JSONDecodeError:
                arguments = {"raw": raw_args}
            if not isinstance(arguments, dict):
                arguments = {"raw": raw_args}
        elif isinstance(raw_args, dict):
            arguments = raw_args
        else:
            arguments = {}

        return ActionProposal(
            command=str(parsed.get("name") or "unknown"),
            arguments=arguments,
            reasoning=_as_reasoning(parsed.get("reasoning"), response.raw),
            plan=parsed.get("plan"),
            metadata=metadata,
        )

    def _from_text(self, raw: str, metadata: ActionMetadata) -> ActionProposal:
        data = _first_json_object(raw)
        if data is not None:
            arguments = data.get("arguments") or data.get("args") or {}
            if not isinstance(arguments, dict):
                arguments = {"raw": arguments}
            return ActionProposal(
                command=str(data.get("command") or data.get("tool") or "unknown"),
                arguments=arguments,
                reasoning=_as_reasoning(data.get("reasoning"), raw),
                plan=data.get("plan"),
                metadata=metadata,
            )

        # Plain prose: treat it as the final answer.
        return ActionProposal(
            command="task_complete",
            arguments={"summary": raw},
            reasoning=[raw] if raw else [],
            metadata=metadata,
        )

    async def think(self, inputs: ThoughtInputs) -> ActionProposal:
        """prepare_prompt, call_model, parse_response in one step."""
        prompt = self.prepare_prompt(inputs)
        response = await self.call_model(prompt)
        return self.parse_response(response)
