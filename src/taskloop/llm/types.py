"""Chat request/response types shared by all model backends."""

from dataclasses import dataclass, field
from typing import Any

# Messages are plain dicts in the OpenAI shape:
# {"role": "system" | "user" | "assistant" | "function", "content": str, "name"?: str}
ChatMessage = dict[str, Any]


@dataclass
class ChatFunction:
    """A callable function advertised to the model."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_tool(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass
class ChatOptions:
    """Per-call overrides. Unset fields fall back to the provider's config."""

    temperature: float | None = None
    max_tokens: int | None = None
    model: str | None = None
    functions: list[ChatFunction] = field(default_factory=list)
    function_call: str | dict[str, str] | None = None


@dataclass
class FunctionCall:
    """A structured call returned by the model. ``arguments`` is a JSON string."""

    name: str
    arguments: str = ""


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatResponse:
    content: str
    function_call: FunctionCall | None = None
    finish_reason: str | None = None
    usage: Usage | None = None
    role: str = "assistant"


@dataclass
class ChatStreamChunk:
    """One streamed delta. Function call fields may be partial."""

    content: str | None = None
    function_call: FunctionCall | None = None
    finish_reason: str | None = None
