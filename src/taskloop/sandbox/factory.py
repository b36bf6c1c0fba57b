"""Executor selection by name."""

from typing import Literal

from ..errors import ConfigurationError
from ..logging import JSONLLogger
from .policy import DEFAULT_SANDBOX_POLICY, CodeExecutor, SandboxPolicy
from .utils import DEFAULT_MAX_OUTPUT_CHARS

ExecutorKind = Literal["local", "docker"]


def create_executor(
    kind: str = "local",
    policy: SandboxPolicy | None = None,
    max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS,
    event_log: JSONLLogger | None = None,
) -> CodeExecutor:
    """Build a validated executor.

    Raises:
        ConfigurationError: Unknown kind, out-of-range policy, or (docker)
            unreachable daemon.
    """
    policy = policy or DEFAULT_SANDBOX_POLICY
    kind = kind.strip().lower()

    if kind == "local":
        from .local import LocalSandboxExecutor

        return LocalSandboxExecutor(policy, max_output_chars=max_output_chars, event_log=event_log)

    if kind == "docker":
        from .docker import DockerExecutor

        return DockerExecutor(policy, max_output_chars=max_output_chars, event_log=event_log)

    raise ConfigurationError(
        f"Unknown executor: {kind}. Supported executors: local, docker",
        {"executor": kind},
    )
