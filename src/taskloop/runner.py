"""Run agents by id: guard, compose components, report status and events."""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from .agent.actions import ActionProposal, ActionResult
from .agent.executor import ActionExecutor
from .agent.loop import (
    AgentCycleContext,
    AgentLoop,
    LifecycleHooks,
    LoopOutcome,
    StopReason,
)
from .agent.memory import InMemoryMemoryManager, MemoryManager
from .agent.thought import ThoughtProcess
from .config import AgentConfig, LLMConfig
from .errors import AgentAlreadyRunningError
from .llm.base import LLMProvider
from .logging import JSONLLogger
from .tools.registry import ToolRegistry
from .transcript import TranscriptLogger

logger = logging.getLogger(__name__)


class AgentStatus(Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


@runtime_checkable
class AgentStore(Protocol):
    """Persistence for agent status and cycle history."""

    async def update_status(self, agent_id: str, status: str) -> None: ...

    async def record_cycle(
        self,
        agent_id: str,
        cycle: int,
        proposal: ActionProposal,
        result: ActionResult | None,
    ) -> None: ...


@runtime_checkable
class EventSink(Protocol):
    """Push channel for live agent events (e.g. a websocket hub)."""

    async def broadcast(self, agent_id: str, event: dict[str, Any]) -> None: ...


# Returns queued operator feedback for an agent, or None.
FeedbackSource = Callable[[str], Awaitable[str | None] | str | None]


class RunningAgents:
    """Thread-safe set of agent ids with a live loop."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._loops: dict[str, AgentLoop | None] = {}

    def try_acquire(self, agent_id: str) -> bool:
        """Claim ``agent_id``. False when it is already running."""
        with self._lock:
            if agent_id in self._loops:
                return False
            self._loops[agent_id] = None
            return True

    def attach(self, agent_id: str, loop: AgentLoop) -> None:
        with self._lock:
            if agent_id in self._loops:
                self._loops[agent_id] = loop

    def release(self, agent_id: str) -> None:
        with self._lock:
            self._loops.pop(agent_id, None)

    def get(self, agent_id: str) -> AgentLoop | None:
        with self._lock:
            return self._loops.get(agent_id)

    def __contains__(self, agent_id: object) -> bool:
        with self._lock:
            return agent_id in self._loops

    def __len__(self) -> int:
        with self._lock:
            return len(self._loops)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class AgentRunner:
    """Builds and runs one AgentLoop per agent id.

    The registry and provider are shared across agents; memory, thought
    process and executor are created per run.
    """

    def __init__(
        self,
        provider: LLMProvider,
        registry: ToolRegistry,
        llm_config: LLMConfig,
        agent_config: AgentConfig | None = None,
        *,
        store: AgentStore | None = None,
        events: EventSink | None = None,
        feedback: FeedbackSource | None = None,
        running: RunningAgents | None = None,
        memory_factory: Callable[[], MemoryManager] = InMemoryMemoryManager,
        event_log: JSONLLogger | None = None,
        transcript: TranscriptLogger | None = None,
        tool_config: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self.provider = provider
        self.registry = registry
        self.llm_config = llm_config
        self.agent_config = agent_config or AgentConfig()
        self.store = store
        self.events = events
        self.feedback = feedback
        self.running = running or RunningAgents()
        self.memory_factory = memory_factory
        self.event_log = event_log
        self.transcript = transcript
        self.tool_config = tool_config or {}
        self._pending: dict[str, ActionProposal] = {}

    def is_running(self, agent_id: str) -> bool:
        return agent_id in self.running

    def stop(self, agent_id: str) -> bool:
        """Request a cooperative stop. False when the agent is not running."""
        loop = self.running.get(agent_id)
        if loop is None:
            return False
        loop.stop()
        logger.info("Stop requested for agent %s", agent_id)
        return True

    def start(self, agent_id: str, task: str) -> asyncio.Task[LoopOutcome]:
        """Launch the agent as a background task.

        Raises:
            AgentAlreadyRunningError: If ``agent_id`` already has a live loop.
        """
        if not self.running.try_acquire(agent_id):
            raise AgentAlreadyRunningError(agent_id)
        return asyncio.create_task(self._run_acquired(agent_id, task), name=f"agent-{agent_id}")

    async def run(self, agent_id: str, task: str) -> LoopOutcome:
        """Run the agent to completion in the current task."""
        if not self.running.try_acquire(agent_id):
            raise AgentAlreadyRunningError(agent_id)
        return await self._run_acquired(agent_id, task)

    async def _run_acquired(self, agent_id: str, task: str) -> LoopOutcome:
        try:
            workspace = self.agent_config.workspace_root
            workspace.mkdir(parents=True, exist_ok=True)

            context = AgentCycleContext(
                agent_id=agent_id,
                task=task,
                memory=self.memory_factory(),
                thought_process=ThoughtProcess(self.provider, self.llm_config, self.registry),
                action_executor=ActionExecutor(
                    self.registry,
                    workspace,
                    tool_config=self.tool_config,
                    event_log=self.event_log,
                    agent_id=agent_id,
                ),
                config={"workspace_root": str(workspace)},
            )
            loop = AgentLoop(
                max_cycles=self.agent_config.max_cycles,
                continuous=self.agent_config.continuous,
                hooks=LifecycleHooks.combine(
                    self._hooks(),
                    self.transcript.hooks() if self.transcript else None,
                ),
                feedback_provider=self._feedback_for if self.feedback else None,
            )
            self.running.attach(agent_id, loop)

            await self._set_status(agent_id, AgentStatus.RUNNING)
            await self._broadcast(agent_id, {"type": "agent_status", "running": True})
            if self.transcript:
                self.transcript.log_task_start(agent_id, task)

            try:
                outcome = await loop.start(context)
            except Exception as e:
                logger.error("Agent %s failed: %s", agent_id, e)
                await self._set_status(agent_id, AgentStatus.FAILED)
                await self._broadcast(agent_id, {"type": "agent_error", "error": str(e)})
                if self.event_log:
                    self.event_log.log_agent_stop("failed", agent_id=agent_id, cycles=loop.cycle + 1)
                raise

            status = (
                AgentStatus.STOPPED
                if outcome.stop_reason is StopReason.STOPPED
                else AgentStatus.COMPLETED
            )
            await self._set_status(agent_id, status)
            if self.event_log:
                self.event_log.log_agent_stop(
                    outcome.stop_reason.value, agent_id=agent_id, cycles=outcome.cycles
                )
            if self.transcript:
                self.transcript.log_task_end(agent_id, outcome)
            return outcome
        finally:
            self._pending.pop(agent_id, None)
            self.running.release(agent_id)
            await self._broadcast(agent_id, {"type": "agent_status", "running": False})

    async def _feedback_for(self, ctx: AgentCycleContext) -> str | None:
        if self.feedback is None:
            return None
        return await _maybe_await(self.feedback(ctx.agent_id))

    async def _set_status(self, agent_id: str, status: AgentStatus) -> None:
        if self.store is not None:
            await self.store.update_status(agent_id, status.value)

    async def _broadcast(self, agent_id: str, event: dict[str, Any]) -> None:
        if self.events is None:
            return
        try:
            await self.events.broadcast(agent_id, event)
        except Exception:
            # A broken listener must not take the agent down.
            logger.exception("Failed to broadcast %s for agent %s", event.get("type"), agent_id)

    def _hooks(self) -> LifecycleHooks:
        async def on_cycle_start(ctx: AgentCycleContext) -> None:
            await self._broadcast(ctx.agent_id, {"type": "cycle_start", "cycle": ctx.cycle})

        async def on_action_proposed(proposal: ActionProposal, ctx: AgentCycleContext) -> None:
            self._pending[ctx.agent_id] = proposal
            await self._broadcast(ctx.agent_id, {"type": "thought", **proposal.to_dict()})
            if proposal.is_terminal and self.store is not None:
                await self.store.record_cycle(ctx.agent_id, ctx.cycle, proposal, None)

        async def on_action_completed(result: ActionResult, ctx: AgentCycleContext) -> None:
            await self._broadcast(ctx.agent_id, {"type": "result", **result.to_dict()})
            proposal = self._pending.pop(ctx.agent_id, None)
            if proposal is not None and self.store is not None:
                await self.store.record_cycle(ctx.agent_id, ctx.cycle, proposal, result)

        async def on_terminate(ctx: AgentCycleContext) -> None:
            await self._broadcast(ctx.agent_id, {"type": "terminated", "cycle": ctx.cycle})

        return LifecycleHooks(
            on_cycle_start=on_cycle_start,
            on_action_proposed=on_action_proposed,
            on_action_completed=on_action_completed,
            on_terminate=on_terminate,
        )
