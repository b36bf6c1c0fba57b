"""Tests for AgentRunner."""

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest

from taskloop.agent import InMemoryMemoryManager, StopReason
from taskloop.config import AgentConfig, LLMConfig
from taskloop.errors import AgentAlreadyRunningError
from taskloop.llm import ChatResponse, FunctionCall, LLMProvider
from taskloop.logging import JSONLLogger
from taskloop.runner import AgentRunner, AgentStore, EventSink, RunningAgents
from taskloop.tools import Tool, ToolContext, ToolRegistry
from taskloop.transcript import TranscriptLogger


class ScriptedProvider(LLMProvider):
    name = "scripted"

    def __init__(self, script=None):
        self.script = list(script or [])

    async def chat(self, messages, options=None):
        command, arguments = self.script.pop(0) if self.script else ("ping", {})
        return ChatResponse(content="", function_call=FunctionCall(command, json.dumps(arguments)))

    async def chat_stream(self, messages, options=None):
        yield

    async def embed(self, texts):
        return []


class PingTool(Tool):
    @property
    def name(self) -> str:
        return "ping"

    @property
    def description(self) -> str:
        return "Reply with pong"

    async def invoke(self, args: dict[str, Any], ctx: ToolContext) -> str:
        return "pong"


class FakeStore:
    def __init__(self) -> None:
        self.statuses: list[str] = []
        self.cycles: list[tuple[int, str, bool | None]] = []

    async def update_status(self, agent_id: str, status: str) -> None:
        self.statuses.append(status)

    async def record_cycle(self, agent_id, cycle, proposal, result) -> None:
        self.cycles.append((cycle, proposal.command, None if result is None else result.success))


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    async def broadcast(self, agent_id: str, event: dict[str, Any]) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [e["type"] for e in self.events]


class BrokenMemory(InMemoryMemoryManager):
    async def capture_result(self, result):
        raise OSError("disk full")


def make_runner(tmp_path: Path, script=None, max_cycles: int = 10, **kwargs) -> AgentRunner:
    registry = ToolRegistry()
    registry.register(PingTool())
    return AgentRunner(
        ScriptedProvider(script),
        registry,
        LLMConfig(provider="ollama", model="m"),
        AgentConfig(max_cycles=max_cycles, workspace_root=tmp_path / "ws"),
        **kwargs,
    )


DONE = ("task_complete", {"summary": "all done"})


def test_protocols():
    assert isinstance(FakeStore(), AgentStore)
    assert isinstance(RecordingSink(), EventSink)


class TestRunningAgents:
    def test_acquire_release(self):
        running = RunningAgents()
        assert running.try_acquire("a") is True
        assert running.try_acquire("a") is False
        assert "a" in running
        assert len(running) == 1
        running.release("a")
        assert "a" not in running
        assert running.try_acquire("a") is True

    def test_attach_requires_acquire(self):
        running = RunningAgents()
        running.attach("ghost", object())
        assert running.get("ghost") is None


@pytest.mark.asyncio
class TestAgentRunner:
    async def test_run_to_completion(self, tmp_path: Path):
        store, sink = FakeStore(), RecordingSink()
        runner = make_runner(tmp_path, [("ping", {}), DONE], store=store, events=sink)

        outcome = await runner.run("a1", "say ping")

        assert outcome.stop_reason is StopReason.TASK_COMPLETE
        assert outcome.cycles == 2
        assert store.statuses == ["running", "completed"]
        assert store.cycles == [(0, "ping", True), (1, "task_complete", None)]
        assert sink.types() == [
            "agent_status",
            "cycle_start",
            "thought",
            "result",
            "cycle_start",
            "thought",
            "agent_status",
        ]
        assert sink.events[0]["running"] is True
        assert sink.events[-1]["running"] is False
        thought = sink.events[2]
        assert thought["command"] == "ping"
        assert thought["metadata"]["cycle"] == 0
        assert sink.events[3]["output"] == "pong"
        assert (tmp_path / "ws").is_dir()
        assert not runner.is_running("a1")

    async def test_max_cycles_is_completed(self, tmp_path: Path):
        store = FakeStore()
        outcome = await make_runner(tmp_path, max_cycles=2, store=store).run("a1", "loop")
        assert outcome.stop_reason is StopReason.MAX_CYCLES
        assert store.statuses[-1] == "completed"

    async def test_start_rejects_duplicate(self, tmp_path: Path):
        runner = make_runner(tmp_path, [DONE])
        task = runner.start("a1", "t")
        assert runner.is_running("a1")

        with pytest.raises(AgentAlreadyRunningError):
            runner.start("a1", "t")
        with pytest.raises(AgentAlreadyRunningError):
            await runner.run("a1", "t")

        outcome = await task
        assert outcome.stop_reason is StopReason.TASK_COMPLETE
        assert not runner.is_running("a1")

    async def test_shared_running_set(self, tmp_path: Path):
        running = RunningAgents()
        running.try_acquire("a1")
        runner = make_runner(tmp_path, [DONE], running=running)
        with pytest.raises(AgentAlreadyRunningError):
            await runner.run("a1", "t")

    async def test_stop(self, tmp_path: Path):
        store = FakeStore()
        runner = make_runner(tmp_path, max_cycles=50, store=store)

        class StopOnSecondCycle(RecordingSink):
            async def broadcast(self, agent_id, event):
                await super().broadcast(agent_id, event)
                if event["type"] == "cycle_start" and event["cycle"] == 1:
                    assert runner.stop(agent_id) is True

        runner.events = StopOnSecondCycle()
        outcome = await runner.run("a1", "t")

        assert outcome.stop_reason is StopReason.STOPPED
        assert outcome.cycles == 2
        assert store.statuses == ["running", "stopped"]
        assert runner.stop("a1") is False

    async def test_failure_reported_and_reraised(self, tmp_path: Path):
        store, sink = FakeStore(), RecordingSink()
        log = JSONLLogger(log_dir=tmp_path / "logs")
        runner = make_runner(
            tmp_path, store=store, events=sink, memory_factory=BrokenMemory, event_log=log
        )

        with pytest.raises(OSError, match="disk full"):
            await runner.run("a1", "t")

        assert store.statuses == ["running", "failed"]
        assert "terminated" in sink.types()
        error = next(e for e in sink.events if e["type"] == "agent_error")
        assert error["error"] == "disk full"
        assert sink.events[-1] == {"type": "agent_status", "running": False}
        assert not runner.is_running("a1")
        assert '"stopped_reason": "failed"' in log.log_path.read_text()

    async def test_broken_event_sink_is_ignored(self, tmp_path: Path):
        class BrokenSink:
            async def broadcast(self, agent_id, event):
                raise ConnectionError("socket closed")

        outcome = await make_runner(tmp_path, [DONE], events=BrokenSink()).run("a1", "t")
        assert outcome.stop_reason is StopReason.TASK_COMPLETE

    async def test_feedback_source(self, tmp_path: Path):
        seen = []

        class CapturingProvider(ScriptedProvider):
            async def chat(self, messages, options=None):
                seen.append(messages[-1]["content"])
                return await super().chat(messages, options)

        registry = ToolRegistry()
        registry.register(PingTool())
        runner = AgentRunner(
            CapturingProvider([DONE]),
            registry,
            LLMConfig(provider="ollama", model="m"),
            AgentConfig(workspace_root=tmp_path),
            feedback=lambda agent_id: f"note for {agent_id}",
        )
        await runner.run("a1", "t")
        assert "USER FEEDBACK: note for a1" in seen[0]

    async def test_agent_stop_and_transcript_written(self, tmp_path: Path):
        log = JSONLLogger(log_dir=tmp_path / "logs")
        transcript = TranscriptLogger(tmp_path / "transcripts")
        runner = make_runner(tmp_path, [("ping", {}), DONE], event_log=log, transcript=transcript)

        await runner.run("a1", "t")

        stops = [json.loads(line) for line in log.log_path.read_text().splitlines()]
        stop = [e for e in stops if e["event"] == "agent_stop"][0]
        assert stop["stopped_reason"] == "task_complete"
        assert stop["cycles"] == 2

        events = [
            json.loads(line)["event"]
            for line in transcript.log_file("a1").read_text().splitlines()
        ]
        assert events[0] == "task_start"
        assert events[-1] == "task_end"
        assert events.count("action_proposed") == 2
        assert events.count("action_completed") == 1

    async def test_concurrent_agents(self, tmp_path: Path):
        runner = make_runner(tmp_path, max_cycles=3)
        outcomes = await asyncio.gather(runner.run("a", "t"), runner.run("b", "t"))
        assert [o.cycles for o in outcomes] == [3, 3]
