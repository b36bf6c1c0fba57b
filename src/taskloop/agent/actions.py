"""Action proposal and result types."""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

TERMINAL_COMMANDS = frozenset({"task_complete", "finish"})


class ActionSource(Enum):
    AGENT = "agent"
    HUMAN = "human"


@dataclass(frozen=True)
class ActionMetadata:
    created_at: float = field(default_factory=time.time)
    cycle: int = 0
    source: ActionSource = ActionSource.AGENT

    def to_dict(self) -> dict[str, Any]:
        return {
            "created_at": self.created_at,
            "cycle": self.cycle,
            "source": self.source.value,
        }


@dataclass(frozen=True)
class ActionProposal:
    """What the model wants to do next."""

    command: str
    arguments: dict[str, Any] = field(default_factory=dict)
    reasoning: list[str] = field(default_factory=list)
    plan: list[Any] | dict[str, Any] | None = None
    metadata: ActionMetadata = field(default_factory=ActionMetadata)

    @property
    def is_terminal(self) -> bool:
        return self.command in TERMINAL_COMMANDS

    def with_cycle(self, cycle: int) -> "ActionProposal":
        """Copy of this proposal stamped with ``cycle``."""
        return replace(self, metadata=replace(self.metadata, cycle=cycle))

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "arguments": self.arguments,
            "reasoning": self.reasoning,
            "plan": self.plan,
            "metadata": self.metadata.to_dict(),
        }


@dataclass(frozen=True)
class ActionResult:
    """Outcome of executing a proposal. ``error`` is set only on failure."""

    success: bool
    output: Any
    summary: str
    metadata: ActionMetadata
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "output": self.output,
            "summary": self.summary,
            "metadata": self.metadata.to_dict(),
            "error": self.error,
        }
