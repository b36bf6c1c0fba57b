"""Sandbox policy, execution request/result types and the executor interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from ..errors import ConfigurationError


class NetworkAccess(Enum):
    """How much network the executed code may use."""

    NONE = "none"
    OUTBOUND = "outbound"
    FULL = "full"


class FilesystemScope(Enum):
    """Where executed code runs and may write.

    WORKSPACE runs in the request's working directory; TEMP and SANDBOX run
    inside the per-call scratch directory.
    """

    WORKSPACE = "workspace"
    TEMP = "temp"
    SANDBOX = "sandbox"


@dataclass(frozen=True)
class SandboxPolicy:
    """Resource and isolation envelope for executed code.

    Bounds are checked by the executor that receives the policy, since the
    memory ceiling differs between the local and docker variants.
    """

    max_cpu_seconds: int = 30
    max_memory_mb: int = 512
    network_access: NetworkAccess = NetworkAccess.OUTBOUND
    filesystem_scope: FilesystemScope = FilesystemScope.WORKSPACE

    def __post_init__(self) -> None:
        # Accept plain strings from config/env for the enum fields.
        if not isinstance(self.network_access, NetworkAccess):
            try:
                object.__setattr__(self, "network_access", NetworkAccess(self.network_access))
            except ValueError:
                raise ConfigurationError(f"Invalid network_access: {self.network_access!r}")
        if not isinstance(self.filesystem_scope, FilesystemScope):
            try:
                object.__setattr__(
                    self, "filesystem_scope", FilesystemScope(self.filesystem_scope)
                )
            except ValueError:
                raise ConfigurationError(f"Invalid filesystem_scope: {self.filesystem_scope!r}")


DEFAULT_SANDBOX_POLICY = SandboxPolicy()

MAX_CPU_SECONDS = 300


def verify_policy(policy: SandboxPolicy, max_memory_mb: int) -> None:
    """Raise ConfigurationError when the policy is out of bounds."""
    cpu = policy.max_cpu_seconds
    if isinstance(cpu, bool) or not isinstance(cpu, int) or not 1 <= cpu <= MAX_CPU_SECONDS:
        raise ConfigurationError(
            f"max_cpu_seconds must be between 1 and {MAX_CPU_SECONDS}, got {cpu!r}",
            {"max_cpu_seconds": cpu},
        )
    mem = policy.max_memory_mb
    if isinstance(mem, bool) or not isinstance(mem, int) or not 1 <= mem <= max_memory_mb:
        raise ConfigurationError(
            f"max_memory_mb must be between 1 and {max_memory_mb}, got {mem!r}",
            {"max_memory_mb": mem},
        )


@dataclass(frozen=True)
class ExecutionFile:
    """Auxiliary file materialized next to the submitted code."""

    path: str
    content: str
    executable: bool = False


@dataclass(frozen=True)
class ExecutionRequest:
    """Code submitted for execution."""

    language: str
    code: str
    timeout: float | None = None
    working_directory: Path | str | None = None
    files: list[ExecutionFile] = field(default_factory=list)
    environment: dict[str, str] = field(default_factory=dict)
    # Attribution stamped on the command event log.
    agent_id: str | None = None
    cycle: int | None = None


@dataclass
class CodeExecutionResult:
    """Outcome of an execution. Always returned, never None."""

    stdout: str
    stderr: str
    exit_code: int
    duration_ms: float
    truncated: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, object]:
        return {
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
            "truncated": self.truncated,
        }


class CodeExecutor(ABC):
    """Runs source code under a validated SandboxPolicy."""

    MAX_MEMORY_MB = 2048

    def __init__(self, policy: SandboxPolicy | None = None) -> None:
        policy = policy or DEFAULT_SANDBOX_POLICY
        self.verify_policy(policy)
        self._policy = policy

    @property
    def policy(self) -> SandboxPolicy:
        return self._policy

    def verify_policy(self, policy: SandboxPolicy) -> None:
        verify_policy(policy, self.MAX_MEMORY_MB)

    def timeout_for(self, request: ExecutionRequest) -> float:
        """Seconds allowed for this request."""
        if request.timeout is not None and request.timeout > 0:
            return float(request.timeout)
        return float(self._policy.max_cpu_seconds)

    @abstractmethod
    async def execute(self, request: ExecutionRequest) -> CodeExecutionResult:
        """Execute the request and return its result."""
        ...
