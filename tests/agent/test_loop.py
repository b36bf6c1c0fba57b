"""Tests for AgentLoop with a scripted provider and real components."""

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest

from taskloop.agent import (
    ActionExecutor,
    AgentCycleContext,
    AgentLoop,
    InMemoryMemoryManager,
    LifecycleHooks,
    LoopState,
    StopReason,
    ThoughtProcess,
)
from taskloop.config import LLMConfig
from taskloop.llm import ChatResponse, FunctionCall, LLMProvider
from taskloop.tools import Tool, ToolContext, ToolParameter, ToolRegistry


class ScriptedProvider(LLMProvider):
    """Replays a list of (command, arguments); repeats ``default`` afterwards."""

    name = "scripted"

    def __init__(self, script=None, default=("counter", {})):
        self.script = list(script or [])
        self.default = default
        self.prompts: list[str] = []

    async def chat(self, messages, options=None):
        self.prompts.append(messages[-1]["content"])
        command, arguments = self.script.pop(0) if self.script else self.default
        return ChatResponse(
            content=f"Calling {command}",
            function_call=FunctionCall(command, json.dumps(arguments)),
        )

    async def chat_stream(self, messages, options=None):
        yield

    async def embed(self, texts):
        return []


class CounterTool(Tool):
    def __init__(self) -> None:
        self.calls = 0

    @property
    def name(self) -> str:
        return "counter"

    @property
    def description(self) -> str:
        return "Increment a counter"

    @property
    def parameters(self) -> list[ToolParameter]:
        return [ToolParameter("fail", "boolean", "Raise instead of counting")]

    async def invoke(self, args: dict[str, Any], ctx: ToolContext) -> int:
        if args.get("fail"):
            raise RuntimeError("counter jammed")
        self.calls += 1
        return self.calls


class ExplodingExecutor:
    async def execute(self, proposal):
        raise RuntimeError("executor crashed")


def make_context(provider: LLMProvider, tmp_path: Path, tool: CounterTool | None = None, **overrides):
    registry = ToolRegistry()
    registry.register(tool or CounterTool())
    fields = dict(
        agent_id="agent-1",
        task="Count things",
        memory=InMemoryMemoryManager(),
        thought_process=ThoughtProcess(provider, LLMConfig(provider="ollama", model="m"), registry),
        action_executor=ActionExecutor(registry, tmp_path),
    )
    fields.update(overrides)
    return AgentCycleContext(**fields)


class Recorder:
    """Collects lifecycle events in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def hooks(self) -> LifecycleHooks:
        async def on_cycle_start(ctx):
            self.events.append(("cycle_start", ctx.cycle))

        async def on_action_proposed(proposal, ctx):
            self.events.append(("proposed", proposal))

        def on_action_completed(result, ctx):
            self.events.append(("completed", result))

        def on_cycle_end(ctx):
            self.events.append(("cycle_end", ctx.cycle))

        def on_terminate(ctx):
            self.events.append(("terminate", ctx.cycle))

        return LifecycleHooks(
            on_cycle_start=on_cycle_start,
            on_action_proposed=on_action_proposed,
            on_action_completed=on_action_completed,
            on_cycle_end=on_cycle_end,
            on_terminate=on_terminate,
        )

    def of(self, kind: str) -> list[Any]:
        return [value for k, value in self.events if k == kind]


def test_rejects_zero_max_cycles():
    with pytest.raises(ValueError):
        AgentLoop(max_cycles=0)


@pytest.mark.asyncio
class TestAgentLoop:
    async def test_runs_until_max_cycles(self, tmp_path: Path):
        tool = CounterTool()
        recorder = Recorder()
        loop = AgentLoop(max_cycles=3, hooks=recorder.hooks())

        outcome = await loop.start(make_context(ScriptedProvider(), tmp_path, tool))

        assert outcome.cycles == 3
        assert outcome.stop_reason is StopReason.MAX_CYCLES
        assert loop.state is LoopState.STOPPED
        assert tool.calls == 3
        assert [p.metadata.cycle for p in recorder.of("proposed")] == [0, 1, 2]
        assert [r.metadata.cycle for r in recorder.of("completed")] == [0, 1, 2]
        assert recorder.of("cycle_end") == [0, 1, 2]

    async def test_event_order_within_cycle(self, tmp_path: Path):
        recorder = Recorder()
        await AgentLoop(max_cycles=1, hooks=recorder.hooks()).start(
            make_context(ScriptedProvider(), tmp_path)
        )
        assert [k for k, _ in recorder.events] == ["cycle_start", "proposed", "completed", "cycle_end"]

    async def test_task_complete_stops_without_execution(self, tmp_path: Path):
        tool = CounterTool()
        recorder = Recorder()
        provider = ScriptedProvider(
            [("counter", {}), ("counter", {}), ("task_complete", {"summary": "done"})]
        )

        outcome = await AgentLoop(max_cycles=10, hooks=recorder.hooks()).start(
            make_context(provider, tmp_path, tool)
        )

        assert outcome.cycles == 3
        assert outcome.stop_reason is StopReason.TASK_COMPLETE
        assert outcome.last_proposal.command == "task_complete"
        assert outcome.last_proposal.arguments == {"summary": "done"}
        assert tool.calls == 2
        assert len(recorder.of("completed")) == 2
        assert recorder.of("cycle_end") == [0, 1]

    async def test_finish_is_terminal(self, tmp_path: Path):
        outcome = await AgentLoop().start(
            make_context(ScriptedProvider([("finish", {})]), tmp_path)
        )
        assert outcome.cycles == 1
        assert outcome.stop_reason is StopReason.TASK_COMPLETE

    async def test_continuous_ignores_terminal(self, tmp_path: Path):
        provider = ScriptedProvider(default=("task_complete", {"summary": "again"}))
        outcome = await AgentLoop(max_cycles=3, continuous=True).start(make_context(provider, tmp_path))
        assert outcome.cycles == 3
        assert outcome.stop_reason is StopReason.MAX_CYCLES

    async def test_tool_failure_does_not_stop_loop(self, tmp_path: Path):
        recorder = Recorder()
        provider = ScriptedProvider([("counter", {"fail": True}), ("task_complete", {"summary": "x"})])

        outcome = await AgentLoop(hooks=recorder.hooks()).start(make_context(provider, tmp_path))

        failed = recorder.of("completed")[0]
        assert failed.success is False
        assert failed.summary == "Failed to execute counter: counter jammed"
        assert outcome.stop_reason is StopReason.TASK_COMPLETE
        # The failure is visible to the model on the next cycle.
        assert "Result: Failed to execute counter: counter jammed" in provider.prompts[1]

    async def test_unknown_command_is_failed_result(self, tmp_path: Path):
        recorder = Recorder()
        provider = ScriptedProvider([("fly", {}), ("task_complete", {"summary": "x"})])
        await AgentLoop(hooks=recorder.hooks()).start(make_context(provider, tmp_path))
        assert recorder.of("completed")[0].output["type"] == "ToolNotFound"

    async def test_memory_records_each_cycle(self, tmp_path: Path):
        memory = InMemoryMemoryManager()
        provider = ScriptedProvider([("counter", {}), ("task_complete", {"summary": "x"})])
        await AgentLoop().start(make_context(provider, tmp_path, memory=memory))
        assert [r.type for r in memory.records] == ["plan", "result", "plan"]

    async def test_stop_before_next_cycle(self, tmp_path: Path):
        loop = AgentLoop(max_cycles=50)

        def stop_after_second(ctx):
            if ctx.cycle == 1:
                loop.stop()

        loop.hooks = LifecycleHooks(on_cycle_end=stop_after_second)
        outcome = await loop.start(make_context(ScriptedProvider(), tmp_path))

        assert outcome.cycles == 2
        assert outcome.stop_reason is StopReason.STOPPED
        assert loop.state is LoopState.STOPPED

    async def test_exception_terminates(self, tmp_path: Path):
        recorder = Recorder()
        loop = AgentLoop(hooks=recorder.hooks())
        context = make_context(ScriptedProvider(), tmp_path, action_executor=ExplodingExecutor())

        with pytest.raises(RuntimeError, match="executor crashed"):
            await loop.start(context)

        assert loop.state is LoopState.TERMINATED
        assert recorder.of("terminate") == [0]

    async def test_failing_terminate_hook_keeps_original_error(self, tmp_path: Path):
        def bad_terminate(ctx):
            raise ValueError("hook broke")

        loop = AgentLoop(hooks=LifecycleHooks(on_terminate=bad_terminate))
        context = make_context(ScriptedProvider(), tmp_path, action_executor=ExplodingExecutor())

        with pytest.raises(RuntimeError, match="executor crashed"):
            await loop.start(context)

    async def test_cancellation_fires_terminate(self, tmp_path: Path):
        recorder = Recorder()
        started = asyncio.Event()

        class SlowProvider(ScriptedProvider):
            async def chat(self, messages, options=None):
                started.set()
                await asyncio.sleep(10)

        loop = AgentLoop(hooks=recorder.hooks())
        task = asyncio.create_task(loop.start(make_context(SlowProvider(), tmp_path)))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert loop.state is LoopState.TERMINATED
        assert recorder.of("terminate") == [0]

    async def test_cannot_start_twice(self, tmp_path: Path):
        started = asyncio.Event()

        class SlowProvider(ScriptedProvider):
            async def chat(self, messages, options=None):
                started.set()
                await asyncio.sleep(10)

        loop = AgentLoop()
        task = asyncio.create_task(loop.start(make_context(SlowProvider(), tmp_path)))
        await started.wait()

        with pytest.raises(RuntimeError, match="already running"):
            await loop.start(make_context(ScriptedProvider(), tmp_path))

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    async def test_feedback_applied_to_one_cycle(self, tmp_path: Path):
        queue = ["focus on tests"]

        def feedback(ctx):
            return queue.pop(0) if queue else None

        provider = ScriptedProvider()
        await AgentLoop(max_cycles=2, feedback_provider=feedback).start(make_context(provider, tmp_path))

        assert "USER FEEDBACK: focus on tests" in provider.prompts[0]
        assert "USER FEEDBACK" not in provider.prompts[1]

    async def test_async_feedback_provider(self, tmp_path: Path):
        async def feedback(ctx):
            return "async note"

        provider = ScriptedProvider()
        await AgentLoop(max_cycles=1, feedback_provider=feedback).start(make_context(provider, tmp_path))
        assert "USER FEEDBACK: async note" in provider.prompts[0]

    async def test_loop_can_restart(self, tmp_path: Path):
        loop = AgentLoop(max_cycles=1)
        first = await loop.start(make_context(ScriptedProvider(), tmp_path))
        second = await loop.start(make_context(ScriptedProvider(), tmp_path))
        assert first.cycles == second.cycles == 1


@pytest.mark.asyncio
class TestLifecycleHooks:
    async def test_combine_runs_in_order(self, tmp_path: Path):
        calls = []

        def first(ctx):
            calls.append(("first", ctx.cycle))

        async def second(ctx):
            calls.append(("second", ctx.cycle))

        hooks = LifecycleHooks.combine(
            LifecycleHooks(on_cycle_start=first),
            None,
            LifecycleHooks(on_cycle_start=second),
        )
        await AgentLoop(max_cycles=2, hooks=hooks).start(make_context(ScriptedProvider(), tmp_path))

        assert calls == [("first", 0), ("second", 0), ("first", 1), ("second", 1)]
        assert hooks.on_cycle_end is None


class TestAgentCycleContext:
    def test_next_cycle_clears_feedback(self, tmp_path: Path):
        ctx = make_context(ScriptedProvider(), tmp_path, user_feedback="note", cycle=4)
        nxt = ctx.next_cycle()
        assert nxt.cycle == 5
        assert nxt.user_feedback is None
        assert ctx.cycle == 4
