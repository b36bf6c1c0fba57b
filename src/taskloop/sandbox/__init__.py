"""Sandboxed code execution."""

from .factory import ExecutorKind, create_executor
from .local import LocalSandboxExecutor
from .policy import (
    DEFAULT_SANDBOX_POLICY,
    CodeExecutionResult,
    CodeExecutor,
    ExecutionFile,
    ExecutionRequest,
    FilesystemScope,
    NetworkAccess,
    SandboxPolicy,
)
from .utils import truncate_output

__all__ = [
    "DEFAULT_SANDBOX_POLICY",
    "CodeExecutionResult",
    "CodeExecutor",
    "ExecutionFile",
    "ExecutionRequest",
    "ExecutorKind",
    "FilesystemScope",
    "LocalSandboxExecutor",
    "NetworkAccess",
    "SandboxPolicy",
    "create_executor",
    "truncate_output",
]
