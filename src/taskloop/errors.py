"""Exception hierarchy for taskloop.

Every error carries a stable ``code`` and a ``retryable`` flag so callers
(the retry helper, the fallback provider) can decide what to do without
matching on class names.
"""

from typing import Any


class TaskloopError(Exception):
    """Base class for all taskloop errors."""

    code = "TASKLOOP_ERROR"
    retryable = False

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Structured payload used in failed action results."""
        return {
            "error": self.message,
            "code": self.code,
            "retryable": self.retryable,
            "context": self.context,
        }


class ProviderError(TaskloopError):
    """An upstream model backend failed."""

    code = "LLM_PROVIDER_ERROR"
    retryable = True


class ToolExecutionError(TaskloopError):
    """A specific tool failed on its own terms."""

    code = "TOOL_EXECUTION_ERROR"

    def __init__(
        self,
        message: str,
        tool_name: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, {**(context or {}), "tool_name": tool_name})
        self.tool_name = tool_name


class OperationTimeoutError(TaskloopError):
    """A network operation exceeded its time bound.

    Raised by the web tools when a request times out. Sandbox timeouts are
    reported in the execution result (exit code -1) instead.
    """

    code = "TIMEOUT_ERROR"
    retryable = True


class ConfigurationError(TaskloopError):
    """Invalid configuration. Fatal, never retried."""

    code = "CONFIGURATION_ERROR"


class AgentAlreadyRunningError(TaskloopError):
    """A second run was requested for an agent that is still running."""

    code = "AGENT_ALREADY_RUNNING"

    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent '{agent_id}' is already running", {"agent_id": agent_id})
        self.agent_id = agent_id
