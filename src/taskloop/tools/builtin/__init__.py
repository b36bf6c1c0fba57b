"""Built-in tools."""

from ...sandbox import CodeExecutor
from ..registry import ToolRegistry
from .code import ExecuteCodeTool
from .filesystem import (
    AppendToFileTool,
    DeleteFileTool,
    ListDirectoryTool,
    ReadFileTool,
    WriteFileTool,
)
from .search import WebSearchTool
from .web import WebFetchTool


def register_builtin_tools(
    registry: ToolRegistry,
    executor: CodeExecutor | None = None,
    *,
    web: bool = True,
    code_timeout: float | None = None,
) -> ToolRegistry:
    """Register the standard tool set.

    ``execute_code`` is only registered when an executor is supplied.
    """
    for tool in (
        ReadFileTool(),
        WriteFileTool(),
        AppendToFileTool(),
        DeleteFileTool(),
        ListDirectoryTool(),
    ):
        registry.register(tool)

    if executor is not None:
        registry.register(ExecuteCodeTool(executor, timeout=code_timeout))
    if web:
        registry.register(WebFetchTool())
        registry.register(WebSearchTool())

    return registry


__all__ = [
    "AppendToFileTool",
    "DeleteFileTool",
    "ExecuteCodeTool",
    "ListDirectoryTool",
    "ReadFileTool",
    "WebFetchTool",
    "WebSearchTool",
    "WriteFileTool",
    "register_builtin_tools",
]
