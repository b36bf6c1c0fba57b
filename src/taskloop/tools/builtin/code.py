"""execute_code: run a snippet through a CodeExecutor."""

from typing import Any

from ...errors import ToolExecutionError
from ...sandbox import CodeExecutor, ExecutionFile, ExecutionRequest
from ..base import Tool, ToolContext, ToolParameter

SUPPORTED_LANGUAGES = ("python", "javascript", "bash", "sh")


class ExecuteCodeTool(Tool):
    """Executes code in the sandbox the tool was built with.

    A non-zero exit status is reported as a tool failure so the agent sees
    a failed action carrying stdout/stderr in its error payload.
    """

    def __init__(self, executor: CodeExecutor, timeout: float | None = None) -> None:
        self._executor = executor
        self._timeout = timeout

    @property
    def executor(self) -> CodeExecutor:
        return self._executor

    @property
    def name(self) -> str:
        return "execute_code"

    @property
    def description(self) -> str:
        return (
            "Execute code in a sandboxed environment with CPU, memory and time "
            "limits. Returns stdout, stderr and the exit code."
        )

    @property
    def parameters(self) -> list[ToolParameter]:
        return [
            ToolParameter(
                "language",
                "string",
                "Programming language (python, javascript, bash, sh)",
                required=True,
                enum=SUPPORTED_LANGUAGES,
            ),
            ToolParameter("code", "string", "Code to execute", required=True),
            ToolParameter(
                "files",
                "object",
                "Optional auxiliary files as a mapping of relative path to content",
            ),
        ]

    async def invoke(self, args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
        files = [
            ExecutionFile(path=str(path), content=str(content))
            for path, content in (args.get("files") or {}).items()
        ]
        ctx.logger.info(
            "Executing %s code (%d chars, %d files)",
            args["language"],
            len(args["code"]),
            len(files),
        )

        result = await self._executor.execute(
            ExecutionRequest(
                language=args["language"],
                code=args["code"],
                timeout=self._timeout,
                working_directory=ctx.workspace_root,
                files=files,
                agent_id=ctx.agent_id,
                cycle=ctx.cycle,
            )
        )

        ctx.logger.info(
            "Code execution finished: exit_code=%s duration_ms=%.0f",
            result.exit_code,
            result.duration_ms,
        )

        if result.exit_code != 0:
            detail = result.stderr.strip().splitlines()[-1] if result.stderr.strip() else ""
            message = f"Code exited with status {result.exit_code}"
            if detail:
                message += f": {detail}"
            raise ToolExecutionError(message, self.name, result.to_dict())

        return result.to_dict()
