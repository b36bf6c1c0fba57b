"""Agent loop, thought process and action execution."""

from .actions import TERMINAL_COMMANDS, ActionMetadata, ActionProposal, ActionResult, ActionSource
from .executor import ActionExecutor
from .loop import (
    AgentCycleContext,
    AgentLoop,
    LifecycleEvent,
    LifecycleHooks,
    LoopOutcome,
    LoopState,
    StopReason,
)
from .memory import InMemoryMemoryManager, MemoryManager, MemoryRecord, MemorySnapshot
from .prompt import DEFAULT_DIRECTIVES, DirectiveBundle
from .thought import PromptPayload, ThoughtInputs, ThoughtProcess, ThoughtResponse

__all__ = [
    "DEFAULT_DIRECTIVES",
    "TERMINAL_COMMANDS",
    "ActionExecutor",
    "ActionMetadata",
    "ActionProposal",
    "ActionResult",
    "ActionSource",
    "AgentCycleContext",
    "AgentLoop",
    "DirectiveBundle",
    "InMemoryMemoryManager",
    "LifecycleEvent",
    "LifecycleHooks",
    "LoopOutcome",
    "LoopState",
    "MemoryManager",
    "MemoryRecord",
    "MemorySnapshot",
    "PromptPayload",
    "StopReason",
    "ThoughtInputs",
    "ThoughtProcess",
    "ThoughtResponse",
]
