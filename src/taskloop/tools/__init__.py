"""Tool registry and tool implementations."""

from .base import Tool, ToolContext, ToolParameter
from .builtin import (
    AppendToFileTool,
    DeleteFileTool,
    ExecuteCodeTool,
    ListDirectoryTool,
    ReadFileTool,
    WebFetchTool,
    WebSearchTool,
    WriteFileTool,
    register_builtin_tools,
)
from .registry import ToolRegistry

__all__ = [
    "AppendToFileTool",
    "DeleteFileTool",
    "ExecuteCodeTool",
    "ListDirectoryTool",
    "ReadFileTool",
    "Tool",
    "ToolContext",
    "ToolParameter",
    "ToolRegistry",
    "WebFetchTool",
    "WebSearchTool",
    "WriteFileTool",
    "register_builtin_tools",
]
