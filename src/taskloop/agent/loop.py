"""Agent loop implementation."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any

from .actions import ActionProposal, ActionResult
from .prompt import DEFAULT_DIRECTIVES, DirectiveBundle
from .thought import ThoughtInputs

if TYPE_CHECKING:
    from .executor import ActionExecutor
    from .memory import MemoryManager
    from .thought import ThoughtProcess

logger = logging.getLogger(__name__)

DEFAULT_MAX_CYCLES = 25


class LoopState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    TERMINATED = "terminated"


class StopReason(Enum):
    """Why ``AgentLoop.start`` returned."""

    TASK_COMPLETE = "task_complete"
    MAX_CYCLES = "max_cycles"
    STOPPED = "stopped"


class LifecycleEvent(Enum):
    CYCLE_START = "on_cycle_start"
    ACTION_PROPOSED = "on_action_proposed"
    ACTION_COMPLETED = "on_action_completed"
    CYCLE_END = "on_cycle_end"
    TERMINATE = "on_terminate"


@dataclass(frozen=True)
class AgentCycleContext:
    """Everything one cycle needs. A new context is derived per cycle."""

    agent_id: str
    task: str
    memory: MemoryManager
    thought_process: ThoughtProcess
    action_executor: ActionExecutor
    cycle: int = 0
    user_feedback: str | None = None
    config: Mapping[str, Any] = field(default_factory=dict)
    directives: DirectiveBundle = DEFAULT_DIRECTIVES

    def next_cycle(self) -> AgentCycleContext:
        return replace(self, cycle=self.cycle + 1, user_feedback=None)


# Handlers may be plain functions or coroutines.
HookResult = Awaitable[None] | None
FeedbackProvider = Callable[[AgentCycleContext], Awaitable[str | None] | str | None]


@dataclass
class LifecycleHooks:
    """Optional callbacks fired at fixed points of every cycle."""

    on_cycle_start: Callable[[AgentCycleContext], HookResult] | None = None
    on_action_proposed: Callable[[ActionProposal, AgentCycleContext], HookResult] | None = None
    on_action_completed: Callable[[ActionResult, AgentCycleContext], HookResult] | None = None
    on_cycle_end: Callable[[AgentCycleContext], HookResult] | None = None
    on_terminate: Callable[[AgentCycleContext], HookResult] | None = None

    def handler(self, event: LifecycleEvent) -> Callable[..., HookResult] | None:
        return getattr(self, event.value)

    @classmethod
    def combine(cls, *hooks: LifecycleHooks | None) -> LifecycleHooks:
        """Merge several hook sets into one; handlers run in argument order."""
        present = [h for h in hooks if h is not None]
        merged = cls()
        for event in LifecycleEvent:
            handlers = [h.handler(event) for h in present if h.handler(event) is not None]
            if not handlers:
                continue

            async def run_all(*args: Any, _handlers=tuple(handlers)) -> None:
                for handler in _handlers:
                    await _maybe_await(handler(*args))

            setattr(merged, event.value, run_all)
        return merged


@dataclass
class LoopOutcome:
    cycles: int
    stop_reason: StopReason
    last_proposal: ActionProposal | None = None


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class AgentLoop:
    """Main agent loop: think → execute → reflect, one cycle at a time.

    Runs until a terminal command is proposed, ``max_cycles`` is reached, or
    ``stop()`` is called. ``stop()`` is cooperative: it is read at the top
    of the next cycle and never interrupts one in progress.
    """

    def __init__(
        self,
        max_cycles: int = DEFAULT_MAX_CYCLES,
        continuous: bool = False,
        hooks: LifecycleHooks | None = None,
        feedback_provider: FeedbackProvider | None = None,
    ) -> None:
        if max_cycles < 1:
            raise ValueError(f"max_cycles must be at least 1, got {max_cycles}")
        self.max_cycles = max_cycles
        self.continuous = continuous
        self.hooks = hooks or LifecycleHooks()
        self.feedback_provider = feedback_provider
        self._state = LoopState.IDLE
        self._stop_requested = False
        self._cycle = 0

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def cycle(self) -> int:
        """Index of the current (or last) cycle."""
        return self._cycle

    def stop(self) -> None:
        """Ask the loop to stop before its next cycle."""
        self._stop_requested = True

    async def _fire(self, event: LifecycleEvent, *args: Any) -> None:
        handler = self.hooks.handler(event)
        if handler is not None:
            await _maybe_await(handler(*args))

    async def start(self, context: AgentCycleContext) -> LoopOutcome:
        """Run cycles until completion, the cycle bound, or stop().

        Raises:
            RuntimeError: If the loop is already running.
            Exception: Anything uncaught inside a cycle, after
                ``on_terminate`` has fired.
        """
        if self._state is LoopState.RUNNING:
            raise RuntimeError("Agent loop is already running")

        self._state = LoopState.RUNNING
        self._stop_requested = False
        self._cycle = 0
        ctx = replace(context, cycle=0)
        last_proposal: ActionProposal | None = None
        cycles_run = 0

        try:
            while True:
                if self._stop_requested:
                    reason = StopReason.STOPPED
                    break
                if ctx.cycle >= self.max_cycles:
                    reason = StopReason.MAX_CYCLES
                    break

                self._cycle = ctx.cycle
                ctx = await self._with_feedback(ctx)
                last_proposal, should_continue = await self._run_cycle(ctx)
                cycles_run += 1

                if not should_continue and not self.continuous:
                    reason = StopReason.TASK_COMPLETE
                    break
                ctx = ctx.next_cycle()
        except (Exception, asyncio.CancelledError) as e:
            self._state = LoopState.TERMINATED
            logger.error("Agent %s terminated at cycle %d: %s", ctx.agent_id, ctx.cycle, e)
            try:
                await self._fire(LifecycleEvent.TERMINATE, ctx)
            except Exception:
                logger.exception("on_terminate hook failed")
            raise

        self._state = LoopState.STOPPED
        logger.info(
            "Agent %s stopped after %d cycle(s): %s", ctx.agent_id, cycles_run, reason.value
        )
        return LoopOutcome(cycles=cycles_run, stop_reason=reason, last_proposal=last_proposal)

    async def _with_feedback(self, ctx: AgentCycleContext) -> AgentCycleContext:
        if self.feedback_provider is None:
            return ctx
        feedback = await _maybe_await(self.feedback_provider(ctx))
        if feedback:
            return replace(ctx, user_feedback=feedback)
        return ctx

    async def _run_cycle(self, ctx: AgentCycleContext) -> tuple[ActionProposal, bool]:
        """One think/execute/reflect pass. Returns (proposal, should_continue)."""
        await self._fire(LifecycleEvent.CYCLE_START, ctx)

        proposal = await self._think(ctx)
        await self._fire(LifecycleEvent.ACTION_PROPOSED, proposal, ctx)
        await ctx.memory.capture_proposal(proposal)

        if proposal.is_terminal:
            logger.info("Agent %s proposed %s at cycle %d", ctx.agent_id, proposal.command, ctx.cycle)
            return proposal, False

        result = await ctx.action_executor.execute(proposal)
        await self._fire(LifecycleEvent.ACTION_COMPLETED, result, ctx)
        await ctx.memory.capture_result(result)

        self._reflect(result, ctx)
        await self._fire(LifecycleEvent.CYCLE_END, ctx)
        return proposal, True

    async def _think(self, ctx: AgentCycleContext) -> ActionProposal:
        snapshot = await ctx.memory.snapshot()
        inputs = ThoughtInputs(
            task=ctx.task,
            cycle=ctx.cycle,
            memory=snapshot,
            directives=ctx.directives,
            user_feedback=ctx.user_feedback,
        )
        thought = ctx.thought_process
        prompt = thought.prepare_prompt(inputs)
        response = await thought.call_model(prompt)
        # The model's idea of the cycle number is never trusted.
        return thought.parse_response(response).with_cycle(ctx.cycle)

    def _reflect(self, result: ActionResult, ctx: AgentCycleContext) -> None:
        if result.success:
            logger.info("Cycle %d: %s", ctx.cycle, result.summary)
        else:
            logger.warning("Cycle %d: %s", ctx.cycle, result.summary)
