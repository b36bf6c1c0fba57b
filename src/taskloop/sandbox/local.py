"""Local subprocess executor with POSIX resource limits."""

import asyncio
import contextlib
import logging
import os
import resource
import signal
import time
from collections.abc import Callable
from pathlib import Path

from ..logging import JSONLLogger
from .policy import (
    CodeExecutionResult,
    CodeExecutor,
    ExecutionRequest,
    FilesystemScope,
    SandboxPolicy,
)
from .utils import (
    DEFAULT_MAX_OUTPUT_CHARS,
    LanguageSpec,
    UnsupportedLanguageError,
    create_scratch_dir,
    materialize,
    remove_scratch_dir,
    resolve_language,
    sanitize_environment,
    truncate_output,
)

logger = logging.getLogger(__name__)

LOCAL_LANGUAGES = ("python", "javascript", "typescript", "bash", "sh")


class LocalSandboxExecutor(CodeExecutor):
    """Runs code as a child process of the current host.

    The child gets a sanitized environment, CPU and address-space rlimits,
    and its own process group so a timeout can kill everything it spawned.
    Network isolation is not enforced locally; use the docker executor when
    ``network_access`` must be ``none``.
    """

    MAX_MEMORY_MB = 2048

    def __init__(
        self,
        policy: SandboxPolicy | None = None,
        max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS,
        event_log: JSONLLogger | None = None,
    ) -> None:
        super().__init__(policy)
        self.max_output_chars = max_output_chars
        self.event_log = event_log

    def _limits(self, spec: LanguageSpec) -> Callable[[], None]:
        cpu_seconds = self.policy.max_cpu_seconds
        memory_bytes = self.policy.max_memory_mb * 1024 * 1024

        def apply() -> None:
            # Runs in the child between fork and exec. The CPU limit trails the
            # wall-clock timeout by a second so a busy loop reports as a timeout.
            with contextlib.suppress(ValueError, OSError):
                resource.setrlimit(resource.RLIMIT_CPU, (cpu_seconds + 1, cpu_seconds + 2))
            if spec.limit_address_space:
                with contextlib.suppress(ValueError, OSError):
                    resource.setrlimit(resource.RLIMIT_AS, (memory_bytes, memory_bytes))

        return apply

    def _failure(self, message: str, start: float, exit_code: int = 1) -> CodeExecutionResult:
        return CodeExecutionResult(
            stdout="",
            stderr=message,
            exit_code=exit_code,
            duration_ms=(time.monotonic() - start) * 1000,
        )

    @staticmethod
    def _kill(proc: asyncio.subprocess.Process) -> None:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except PermissionError:
            proc.kill()

    async def execute(self, request: ExecutionRequest) -> CodeExecutionResult:
        """Execute code in a subprocess bounded by the policy."""
        start = time.monotonic()
        timeout = self.timeout_for(request)
        scratch: Path | None = None

        try:
            _, spec = resolve_language(request.language, LOCAL_LANGUAGES)

            workdir = Path(request.working_directory or Path.cwd())
            in_workspace = self.policy.filesystem_scope == FilesystemScope.WORKSPACE
            if in_workspace and not workdir.is_dir():
                return self._failure(f"Working directory not found: {workdir}", start)

            scratch = create_scratch_dir()
            script = materialize(scratch, request.code, spec.extension, list(request.files))
            cwd = workdir if in_workspace else scratch

            argv = [*spec.command, str(script)]
            env = sanitize_environment(overrides=request.environment)

            try:
                proc = await asyncio.create_subprocess_exec(
                    *argv,
                    cwd=str(cwd),
                    env=env,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    start_new_session=True,
                    preexec_fn=self._limits(spec),
                )
            except FileNotFoundError:
                return self._failure(f"Interpreter not found: {argv[0]}", start, exit_code=127)

            try:
                raw_out, raw_err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
            except asyncio.TimeoutError:
                self._kill(proc)
                await proc.wait()
                logger.info("Execution timed out after %ss (pid %s)", timeout, proc.pid)
                result = self._failure(f"Execution timed out after {timeout:g}s", start, exit_code=-1)
                self._log_command(request, argv, result)
                return result
            except asyncio.CancelledError:
                self._kill(proc)
                raise

            stdout, out_truncated = truncate_output(
                raw_out.decode("utf-8", errors="replace"), self.max_output_chars
            )
            stderr, err_truncated = truncate_output(
                raw_err.decode("utf-8", errors="replace"), self.max_output_chars
            )

            result = CodeExecutionResult(
                stdout=stdout,
                stderr=stderr,
                exit_code=proc.returncode if proc.returncode is not None else 1,
                duration_ms=(time.monotonic() - start) * 1000,
                truncated=out_truncated or err_truncated,
            )
            self._log_command(request, argv, result)
            return result

        except UnsupportedLanguageError as e:
            return self._failure(str(e), start)
        except Exception as e:
            logger.exception("Local execution failed")
            return self._failure(f"Execution failed: {e}", start)
        finally:
            remove_scratch_dir(scratch)

    def _log_command(
        self, request: ExecutionRequest, argv: list[str], result: CodeExecutionResult
    ) -> None:
        if self.event_log is None:
            return
        self.event_log.log_command(
            argv,
            result.exit_code,
            result.duration_ms,
            agent_id=request.agent_id,
            cycle=request.cycle,
            truncated=result.truncated,
        )
