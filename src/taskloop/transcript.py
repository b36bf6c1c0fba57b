"""Per-agent transcripts of every cycle.

Each agent gets one JSONL file per day under the log directory with cycle
starts, proposals, results, cycle ends and termination.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .agent.loop import LifecycleHooks

if TYPE_CHECKING:
    from .agent.actions import ActionProposal, ActionResult
    from .agent.loop import AgentCycleContext, LoopOutcome

MAX_OUTPUT_CHARS = 2000


def _preview(value: Any) -> str:
    if isinstance(value, str):
        text = value
    else:
        text = json.dumps(value, ensure_ascii=False, default=str)
    return text[:MAX_OUTPUT_CHARS]


class TranscriptLogger:
    """Writes agent transcripts for later analysis."""

    def __init__(self, log_dir: Path | str | None = None) -> None:
        """Initialize the transcript logger.

        Args:
            log_dir: Directory to store transcripts. Defaults to ./logs in cwd.
        """
        if log_dir is None:
            log_dir = Path.cwd() / "logs"
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def log_file(self, agent_id: str) -> Path:
        date_str = datetime.now().strftime("%Y-%m-%d")
        return self.log_dir / f"{date_str}_{agent_id}.jsonl"

    def _write(self, agent_id: str, entry: dict[str, Any]) -> None:
        entry["timestamp"] = datetime.now(timezone.utc).isoformat()
        entry["agent_id"] = agent_id

        with open(self.log_file(agent_id), "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")

    def log_task_start(self, agent_id: str, task: str) -> None:
        self._write(agent_id, {"event": "task_start", "task": task})

    def log_cycle_start(self, agent_id: str, cycle: int) -> None:
        self._write(agent_id, {"event": "cycle_start", "cycle": cycle})

    def log_proposal(self, agent_id: str, proposal: ActionProposal) -> None:
        self._write(agent_id, {
            "event": "action_proposed",
            "cycle": proposal.metadata.cycle,
            "command": proposal.command,
            "arguments": proposal.arguments,
            "reasoning": proposal.reasoning,
            "plan": proposal.plan,
        })

    def log_result(self, agent_id: str, result: ActionResult) -> None:
        entry = {
            "event": "action_completed",
            "cycle": result.metadata.cycle,
            "success": result.success,
            "summary": result.summary,
            "output": _preview(result.output),
        }
        if result.error:
            entry["error"] = result.error
        self._write(agent_id, entry)

    def log_cycle_end(self, agent_id: str, cycle: int) -> None:
        self._write(agent_id, {"event": "cycle_end", "cycle": cycle})

    def log_terminate(self, agent_id: str, cycle: int) -> None:
        self._write(agent_id, {"event": "terminated", "cycle": cycle})

    def log_task_end(self, agent_id: str, outcome: LoopOutcome) -> None:
        self._write(agent_id, {
            "event": "task_end",
            "stop_reason": outcome.stop_reason.value,
            "cycles": outcome.cycles,
        })

    def hooks(self) -> LifecycleHooks:
        """Lifecycle hooks that write to this transcript."""

        def on_cycle_start(ctx: AgentCycleContext) -> None:
            self.log_cycle_start(ctx.agent_id, ctx.cycle)

        def on_action_proposed(proposal: ActionProposal, ctx: AgentCycleContext) -> None:
            self.log_proposal(ctx.agent_id, proposal)

        def on_action_completed(result: ActionResult, ctx: AgentCycleContext) -> None:
            self.log_result(ctx.agent_id, result)

        def on_cycle_end(ctx: AgentCycleContext) -> None:
            self.log_cycle_end(ctx.agent_id, ctx.cycle)

        def on_terminate(ctx: AgentCycleContext) -> None:
            self.log_terminate(ctx.agent_id, ctx.cycle)

        return LifecycleHooks(
            on_cycle_start=on_cycle_start,
            on_action_proposed=on_action_proposed,
            on_action_completed=on_action_completed,
            on_cycle_end=on_cycle_end,
            on_terminate=on_terminate,
        )
