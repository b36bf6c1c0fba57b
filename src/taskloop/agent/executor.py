"""Dispatch action proposals to registered tools."""

import logging
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from ..logging import JSONLLogger
from ..tools.base import ToolContext
from ..tools.registry import ToolRegistry
from .actions import ActionProposal, ActionResult

logger = logging.getLogger(__name__)


class ActionExecutor:
    """Runs a proposal's command through the tool registry.

    ``execute`` never raises for tool-level problems: unknown commands,
    invalid arguments, and exceptions from the tool all come back as a
    failed ActionResult.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        workspace_root: Path | str,
        tool_config: Mapping[str, dict[str, Any]] | None = None,
        event_log: JSONLLogger | None = None,
        agent_id: str | None = None,
    ) -> None:
        self.registry = registry
        self.workspace_root = Path(workspace_root)
        self.tool_config = dict(tool_config or {})
        self.event_log = event_log
        self.agent_id = agent_id

    def _failure(
        self, proposal: ActionProposal, message: str, error_type: str, summary: str
    ) -> ActionResult:
        return ActionResult(
            success=False,
            output={"error": message, "type": error_type},
            summary=summary,
            metadata=proposal.metadata,
            error=message,
        )

    def _record(
        self, proposal: ActionProposal, success: bool, duration_ms: float, error: str | None
    ) -> None:
        if self.event_log is None:
            return
        self.event_log.log_tool_result(
            proposal.command,
            success,
            agent_id=self.agent_id,
            cycle=proposal.metadata.cycle,
            duration_ms=round(duration_ms, 2),
            error=error,
        )

    async def execute(self, proposal: ActionProposal) -> ActionResult:
        command = proposal.command
        start = time.monotonic()
        logger.info("Executing action: %s", command)

        if self.event_log is not None:
            self.event_log.log_tool_call(
                command, proposal.arguments, agent_id=self.agent_id, cycle=proposal.metadata.cycle
            )

        tool = self.registry.get(command)
        if tool is None:
            message = f"Tool '{command}' not found"
            logger.warning(message)
            self._record(proposal, False, (time.monotonic() - start) * 1000, message)
            return self._failure(proposal, message, "ToolNotFound", f"Failed: {message}")

        valid, error = tool.validate_args(proposal.arguments)
        if not valid:
            message = error or "Invalid arguments"
            logger.warning("Invalid arguments for %s: %s", command, message)
            self._record(proposal, False, (time.monotonic() - start) * 1000, message)
            return self._failure(
                proposal, message, "InvalidArguments", f"Invalid arguments for {command}: {message}"
            )

        ctx = ToolContext(
            workspace_root=self.workspace_root,
            config=dict(self.tool_config.get(command, {})),
            logger=logging.getLogger(f"taskloop.tools.{command}"),
            agent_id=self.agent_id,
            cycle=proposal.metadata.cycle,
        )

        try:
            output = await tool.invoke(proposal.arguments, ctx)
        except Exception as e:
            duration_ms = (time.monotonic() - start) * 1000
            message = str(e) or type(e).__name__
            logger.error("Action failed: %s after %.0fms: %s", command, duration_ms, message)
            self._record(proposal, False, duration_ms, message)
            return self._failure(
                proposal, message, type(e).__name__, f"Failed to execute {command}: {message}"
            )

        duration_ms = (time.monotonic() - start) * 1000
        logger.info("Action completed: %s in %.0fms", command, duration_ms)
        self._record(proposal, True, duration_ms, None)

        return ActionResult(
            success=True,
            output=output,
            summary=f"Successfully executed {command}",
            metadata=proposal.metadata,
        )
