"""Base tool interface."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# JSON Schema type -> accepted Python types
_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    "string": str,
    "integer": int,
    "number": (int, float),
    "boolean": bool,
    "array": list,
    "object": dict,
}


@dataclass(frozen=True)
class ToolParameter:
    """One typed argument of a tool."""

    name: str
    type: str
    description: str = ""
    required: bool = False
    enum: tuple[str, ...] | None = None

    def to_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type}
        if self.description:
            schema["description"] = self.description
        if self.enum:
            schema["enum"] = list(self.enum)
        return schema


@dataclass
class ToolContext:
    """Uniform context handed to every tool invocation."""

    workspace_root: Path
    config: dict[str, Any] = field(default_factory=dict)
    logger: logging.Logger | logging.LoggerAdapter = field(
        default_factory=lambda: logging.getLogger("taskloop.tools")
    )
    agent_id: str | None = None
    cycle: int | None = None


class Tool(ABC):
    """Base interface for all tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Tool description for LLM."""
        ...

    @property
    def parameters(self) -> list[ToolParameter]:
        """Typed parameters. Empty for tools without arguments."""
        return []

    @abstractmethod
    async def invoke(self, args: dict[str, Any], ctx: ToolContext) -> Any:
        """Run the tool. Raise on failure; the executor converts errors."""
        ...

    def get_schema(self) -> dict[str, Any]:
        """Get tool schema for LLM function calling."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {p.name: p.to_schema() for p in self.parameters},
                    "required": [p.name for p in self.parameters if p.required],
                },
            },
        }

    def validate_args(self, args: dict[str, Any]) -> tuple[bool, str | None]:
        """Validate arguments against parameters. Returns (valid, error_message)."""
        params = {p.name: p for p in self.parameters}

        # Check required fields
        for param in params.values():
            if param.required and param.name not in args:
                return False, f"Missing required argument: {param.name}"

        # Check types (basic validation)
        for key, value in args.items():
            param = params.get(key)
            if param is None or value is None:
                continue
            expected = _TYPE_MAP.get(param.type)
            if expected is None:
                continue
            # bool is an int subclass; don't let True pass as an integer
            if isinstance(value, bool) and param.type in ("integer", "number"):
                return False, f"Argument '{key}' must be a {param.type}"
            if not isinstance(value, expected):
                return False, f"Argument '{key}' must be a {param.type}"
            if param.enum and value not in param.enum:
                return False, f"Argument '{key}' must be one of {list(param.enum)}"

        return True, None
