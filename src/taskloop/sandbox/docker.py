"""Docker executor for isolated code execution."""

import asyncio
import logging
import time
import uuid
from pathlib import Path

import docker
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from docker.models.containers import Container

from ..errors import ConfigurationError
from ..logging import JSONLLogger
from .frames import demultiplex
from .policy import (
    CodeExecutionResult,
    CodeExecutor,
    ExecutionRequest,
    FilesystemScope,
    NetworkAccess,
    SandboxPolicy,
)
from .utils import (
    DEFAULT_MAX_OUTPUT_CHARS,
    UnsupportedLanguageError,
    create_scratch_dir,
    materialize,
    remove_scratch_dir,
    resolve_language,
    sanitize_environment,
    truncate_output,
)

logger = logging.getLogger(__name__)

DOCKER_LANGUAGES = ("python", "javascript", "bash", "sh")

# Variables that describe the host, not the image.
HOST_ONLY_ENV = ("PATH", "HOME", "USER", "SHELL")

CONTAINER_WORKDIR = "/workspace"


class DockerExecutor(CodeExecutor):
    """Runs each execution in a fresh, throwaway container.

    The scratch directory holding the code is bind-mounted read-only at
    /workspace. The container is force-removed on every exit path.
    """

    MAX_MEMORY_MB = 4096
    CONTAINER_PREFIX = "taskloop-exec"

    def __init__(
        self,
        policy: SandboxPolicy | None = None,
        client: docker.DockerClient | None = None,
        max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS,
        pids_limit: int = 128,
        event_log: JSONLLogger | None = None,
    ) -> None:
        super().__init__(policy)
        self.max_output_chars = max_output_chars
        self.pids_limit = pids_limit
        self.event_log = event_log

        try:
            self.client = client or docker.from_env()
            self.client.ping()
        except DockerException as e:
            raise ConfigurationError(
                f"Docker daemon is not running or not accessible: {e}"
            ) from e

    def _network_mode(self) -> str:
        if self.policy.network_access == NetworkAccess.NONE:
            return "none"
        return "bridge"

    def _container_name(self) -> str:
        return f"{self.CONTAINER_PREFIX}-{uuid.uuid4().hex[:12]}"

    def ensure_image(self, image: str) -> None:
        """Pull ``image`` if it is not present locally. Blocks until done."""
        try:
            self.client.images.get(image)
        except ImageNotFound:
            logger.info("Pulling Docker image %s", image)
            self.client.images.pull(image)
            logger.info("Pulled Docker image %s", image)

    def _create_container(
        self,
        image: str,
        argv: list[str],
        scratch: Path,
        env: dict[str, str],
    ) -> Container:
        memory = f"{self.policy.max_memory_mb}m"
        return self.client.containers.create(
            image,
            command=argv,
            name=self._container_name(),
            detach=True,
            environment=env,
            working_dir=CONTAINER_WORKDIR,
            # Security flags
            cap_drop=["ALL"],
            security_opt=["no-new-privileges"],
            read_only=self.policy.filesystem_scope == FilesystemScope.SANDBOX,
            pids_limit=self.pids_limit,
            mem_limit=memory,
            memswap_limit=memory,
            nano_cpus=1_000_000_000,
            network_mode=self._network_mode(),
            volumes={
                str(scratch): {"bind": CONTAINER_WORKDIR, "mode": "ro"},
            },
            tmpfs={"/tmp": "size=64M,mode=1777"},
        )

    @staticmethod
    def _start_and_wait(container: Container) -> int:
        container.start()
        status = container.wait()
        return int(status.get("StatusCode", 1))

    def _fetch_logs(self, container: Container) -> bytes:
        """Fetch the raw multiplexed log stream of a finished container."""
        api = self.client.api
        url = f"{api.base_url}/v{api.api_version}/containers/{container.id}/logs"
        response = api.get(
            url,
            params={"stdout": 1, "stderr": 1, "follow": 0, "timestamps": 0},
        )
        response.raise_for_status()
        return response.content

    @staticmethod
    def _kill(container: Container) -> None:
        try:
            container.kill()
        except (NotFound, APIError) as e:
            logger.debug("Kill of container %s failed: %s", container.id, e)

    @staticmethod
    def _remove(container: Container) -> None:
        try:
            container.remove(force=True)
        except NotFound:
            pass
        except DockerException as e:
            logger.warning("Failed to remove container %s: %s", container.id, e)

    def _failure(self, message: str, start: float, exit_code: int = 1) -> CodeExecutionResult:
        return CodeExecutionResult(
            stdout="",
            stderr=message,
            exit_code=exit_code,
            duration_ms=(time.monotonic() - start) * 1000,
        )

    async def execute(self, request: ExecutionRequest) -> CodeExecutionResult:
        """Execute code in a new container bounded by the policy."""
        start = time.monotonic()
        timeout = self.timeout_for(request)
        loop = asyncio.get_running_loop()
        scratch: Path | None = None
        container: Container | None = None

        try:
            name, spec = resolve_language(request.language, DOCKER_LANGUAGES)
            # Alpine images ship sh, not bash.
            command = ("sh",) if name == "bash" else spec.command

            scratch = create_scratch_dir()
            script = materialize(scratch, request.code, spec.extension, list(request.files))
            argv = [*command, f"{CONTAINER_WORKDIR}/{script.name}"]

            env = sanitize_environment(overrides=request.environment)
            for key in HOST_ONLY_ENV:
                if key not in request.environment:
                    env.pop(key, None)

            await loop.run_in_executor(None, self.ensure_image, spec.image)
            container = await loop.run_in_executor(
                None,
                lambda: self._create_container(spec.image, argv, scratch, env),
            )

            try:
                exit_code = await asyncio.wait_for(
                    loop.run_in_executor(None, self._start_and_wait, container),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                await loop.run_in_executor(None, self._kill, container)
                logger.info("Container %s timed out after %ss", container.id, timeout)
                result = self._failure(f"Execution timed out after {timeout:g}s", start, exit_code=-1)
                self._log_command(request, argv, result, container)
                return result

            raw = await loop.run_in_executor(None, self._fetch_logs, container)
            raw_out, raw_err = demultiplex(raw)

            stdout, out_truncated = truncate_output(
                raw_out.decode("utf-8", errors="replace").strip(), self.max_output_chars
            )
            stderr, err_truncated = truncate_output(
                raw_err.decode("utf-8", errors="replace").strip(), self.max_output_chars
            )

            result = CodeExecutionResult(
                stdout=stdout,
                stderr=stderr,
                exit_code=exit_code,
                duration_ms=(time.monotonic() - start) * 1000,
                truncated=out_truncated or err_truncated,
            )
            self._log_command(request, argv, result, container)
            return result

        except UnsupportedLanguageError as e:
            return self._failure(str(e), start)
        except DockerException as e:
            logger.warning("Docker execution failed: %s", e)
            return self._failure(f"Docker API error: {e}", start)
        except Exception as e:
            logger.exception("Docker execution failed")
            return self._failure(f"Execution failed: {e}", start)
        finally:
            if container is not None:
                await loop.run_in_executor(None, self._remove, container)
            remove_scratch_dir(scratch)

    def _log_command(
        self,
        request: ExecutionRequest,
        argv: list[str],
        result: CodeExecutionResult,
        container: Container,
    ) -> None:
        if self.event_log is None:
            return
        self.event_log.log_command(
            argv,
            result.exit_code,
            result.duration_ms,
            agent_id=request.agent_id,
            cycle=request.cycle,
            container_id=container.id,
            truncated=result.truncated,
        )

    def cleanup_all(self) -> int:
        """Remove leftover taskloop containers. Returns count removed."""
        count = 0
        for container in self.client.containers.list(all=True):
            if container.name.startswith(self.CONTAINER_PREFIX):
                self._remove(container)
                count += 1
        return count
