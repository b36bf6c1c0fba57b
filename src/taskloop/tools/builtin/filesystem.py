"""Workspace-confined file tools."""

from pathlib import Path
from typing import Any

from ...errors import ToolExecutionError
from ...sandbox.utils import is_within, truncate_output
from ..base import Tool, ToolContext, ToolParameter

MAX_READ_CHARS = 100_000

_PATH = ToolParameter("path", "string", "Path relative to the workspace root", required=True)
_CONTENT = ToolParameter("content", "string", "Text content", required=True)


def _resolve(tool: Tool, ctx: ToolContext, path: str | None) -> Path:
    root = Path(ctx.workspace_root).resolve()
    if not path:
        return root
    if not is_within(path, root):
        raise ToolExecutionError(f"Access denied: path outside workspace: {path}", tool.name)
    return (root / path).resolve()


class ReadFileTool(Tool):
    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return "Read the contents of a text file in the workspace."

    @property
    def parameters(self) -> list[ToolParameter]:
        return [_PATH]

    async def invoke(self, args: dict[str, Any], ctx: ToolContext) -> str:
        target = _resolve(self, ctx, args["path"])
        if not target.is_file():
            raise ToolExecutionError(f"File not found: {args['path']}", self.name)

        content = target.read_text(encoding="utf-8", errors="replace")
        ctx.logger.info("Read file %s (%d chars)", args["path"], len(content))
        content, _ = truncate_output(content, MAX_READ_CHARS)
        return content


class WriteFileTool(Tool):
    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return "Write content to a file in the workspace, replacing it if it exists."

    @property
    def parameters(self) -> list[ToolParameter]:
        return [_PATH, _CONTENT]

    async def invoke(self, args: dict[str, Any], ctx: ToolContext) -> str:
        target = _resolve(self, ctx, args["path"])
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(args["content"], encoding="utf-8")
        ctx.logger.info("Wrote file %s (%d chars)", args["path"], len(args["content"]))
        return f"Successfully wrote {len(args['content'])} characters to {args['path']}"


class AppendToFileTool(Tool):
    @property
    def name(self) -> str:
        return "append_to_file"

    @property
    def description(self) -> str:
        return "Append content to the end of a file in the workspace, creating it if needed."

    @property
    def parameters(self) -> list[ToolParameter]:
        return [_PATH, _CONTENT]

    async def invoke(self, args: dict[str, Any], ctx: ToolContext) -> str:
        target = _resolve(self, ctx, args["path"])
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "a", encoding="utf-8") as f:
            f.write(args["content"])
        ctx.logger.info("Appended to file %s (%d chars)", args["path"], len(args["content"]))
        return f"Successfully appended {len(args['content'])} characters to {args['path']}"


class DeleteFileTool(Tool):
    @property
    def name(self) -> str:
        return "delete_file"

    @property
    def description(self) -> str:
        return "Delete a file from the workspace. Directories are refused."

    @property
    def parameters(self) -> list[ToolParameter]:
        return [_PATH]

    async def invoke(self, args: dict[str, Any], ctx: ToolContext) -> str:
        target = _resolve(self, ctx, args["path"])
        if target.is_dir():
            raise ToolExecutionError(f"Path is a directory, not a file: {args['path']}", self.name)
        if not target.exists():
            raise ToolExecutionError(f"File not found: {args['path']}", self.name)

        target.unlink()
        ctx.logger.info("Deleted file %s", args["path"])
        return f"Successfully deleted file: {args['path']}"


class ListDirectoryTool(Tool):
    @property
    def name(self) -> str:
        return "list_directory"

    @property
    def description(self) -> str:
        return "List files and directories in a workspace path (defaults to the root)."

    @property
    def parameters(self) -> list[ToolParameter]:
        return [ToolParameter("path", "string", "Directory to list, relative to the workspace root")]

    async def invoke(self, args: dict[str, Any], ctx: ToolContext) -> list[str]:
        target = _resolve(self, ctx, args.get("path"))
        if not target.is_dir():
            raise ToolExecutionError(f"Directory not found: {args.get('path') or '.'}", self.name)

        entries = []
        for entry in sorted(target.iterdir(), key=lambda p: p.name):
            if entry.is_dir():
                entries.append(f"dir: {entry.name}")
            else:
                entries.append(f"file: {entry.name} ({entry.stat().st_size} bytes)")

        ctx.logger.info("Listed directory %s (%d entries)", args.get("path") or ".", len(entries))
        return entries
