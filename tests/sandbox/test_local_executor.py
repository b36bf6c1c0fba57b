"""Tests for the local subprocess executor.

These run real python3/sh child processes.
"""

import json
import os
import time
from pathlib import Path

import pytest

from taskloop.logging import JSONLLogger
from taskloop.sandbox import (
    ExecutionFile,
    ExecutionRequest,
    FilesystemScope,
    LocalSandboxExecutor,
    SandboxPolicy,
)


@pytest.fixture
def executor() -> LocalSandboxExecutor:
    return LocalSandboxExecutor(SandboxPolicy(max_cpu_seconds=10, max_memory_mb=512))


@pytest.mark.asyncio
class TestLocalExecution:
    async def test_python_stdout(self, executor: LocalSandboxExecutor, tmp_path: Path):
        result = await executor.execute(
            ExecutionRequest(language="python", code="print('hello')", working_directory=tmp_path)
        )
        assert result.exit_code == 0
        assert result.stdout.strip() == "hello"
        assert result.stderr == ""
        assert result.truncated is False
        assert result.duration_ms > 0

    async def test_alias_py(self, executor: LocalSandboxExecutor, tmp_path: Path):
        result = await executor.execute(
            ExecutionRequest(language="py", code="print(2 + 2)", working_directory=tmp_path)
        )
        assert result.stdout.strip() == "4"

    async def test_sh(self, executor: LocalSandboxExecutor, tmp_path: Path):
        result = await executor.execute(
            ExecutionRequest(language="sh", code="echo out; echo err >&2; exit 3", working_directory=tmp_path)
        )
        assert result.exit_code == 3
        assert result.stdout.strip() == "out"
        assert result.stderr.strip() == "err"

    async def test_python_exception(self, executor: LocalSandboxExecutor, tmp_path: Path):
        result = await executor.execute(
            ExecutionRequest(language="python", code="raise ValueError('boom')", working_directory=tmp_path)
        )
        assert result.exit_code != 0
        assert "ValueError: boom" in result.stderr

    async def test_unsupported_language(self, executor: LocalSandboxExecutor):
        result = await executor.execute(ExecutionRequest(language="cobol", code="DISPLAY 'HI'."))
        assert result.exit_code == 1
        assert "Unsupported language" in result.stderr

    async def test_workspace_scope_runs_in_working_directory(
        self, executor: LocalSandboxExecutor, tmp_path: Path
    ):
        result = await executor.execute(
            ExecutionRequest(
                language="python",
                code="open('made.txt', 'w').write('x')",
                working_directory=tmp_path,
            )
        )
        assert result.exit_code == 0
        assert (tmp_path / "made.txt").exists()

    async def test_auxiliary_files_in_temp_scope(self, tmp_path: Path):
        executor = LocalSandboxExecutor(SandboxPolicy(filesystem_scope=FilesystemScope.TEMP))
        result = await executor.execute(
            ExecutionRequest(
                language="python",
                code="print(open('data/input.txt').read())",
                files=[ExecutionFile("data/input.txt", "from file")],
                working_directory=tmp_path,
            )
        )
        assert result.exit_code == 0
        assert result.stdout.strip() == "from file"

    async def test_auxiliary_file_escape_fails(self, executor: LocalSandboxExecutor, tmp_path: Path):
        result = await executor.execute(
            ExecutionRequest(
                language="python",
                code="print(1)",
                files=[ExecutionFile("../../escape.txt", "x")],
                working_directory=tmp_path,
            )
        )
        assert result.exit_code != 0
        assert "escapes" in result.stderr

    async def test_environment_is_sanitized(
        self, executor: LocalSandboxExecutor, tmp_path: Path, monkeypatch
    ):
        monkeypatch.setenv("TASKLOOP_TEST_SECRET", "leak")
        result = await executor.execute(
            ExecutionRequest(
                language="python",
                code="import os; print(os.environ.get('TASKLOOP_TEST_SECRET', 'absent'), os.environ.get('EXTRA'))",
                environment={"EXTRA": "given"},
                working_directory=tmp_path,
            )
        )
        assert result.stdout.strip() == "absent given"

    async def test_output_truncated(self, tmp_path: Path):
        executor = LocalSandboxExecutor(max_output_chars=100)
        result = await executor.execute(
            ExecutionRequest(language="python", code="print('x' * 250, end='')", working_directory=tmp_path)
        )
        assert result.truncated is True
        assert result.stdout.endswith("[truncated 150 more characters]")

    async def test_scratch_directory_removed(self, executor: LocalSandboxExecutor, tmp_path: Path):
        result = await executor.execute(
            ExecutionRequest(
                language="python",
                code="import os, sys; print(os.path.dirname(os.path.abspath(sys.argv[0])))",
                working_directory=tmp_path,
            )
        )
        scratch = Path(result.stdout.strip())
        assert scratch.name.startswith("taskloop-")
        assert not scratch.exists()

    async def test_event_log_records_command(self, tmp_path: Path):
        log = JSONLLogger(log_dir=tmp_path / "logs")
        executor = LocalSandboxExecutor(event_log=log)
        await executor.execute(ExecutionRequest(language="sh", code="true", working_directory=tmp_path))
        content = log.log_path.read_text()
        assert '"event": "command"' in content
        assert '"exit_code": 0' in content

    async def test_event_log_attributes_agent_and_cycle(self, tmp_path: Path):
        log = JSONLLogger(log_dir=tmp_path / "logs")
        executor = LocalSandboxExecutor(event_log=log)
        await executor.execute(
            ExecutionRequest(
                language="sh", code="true", working_directory=tmp_path, agent_id="a-3", cycle=6
            )
        )
        entry = json.loads(log.log_path.read_text().splitlines()[0])
        assert entry["agent_id"] == "a-3"
        assert entry["cycle"] == 6
        assert entry["argv"][0] == "sh"

    async def test_missing_working_directory(self, executor: LocalSandboxExecutor, tmp_path: Path):
        missing = tmp_path / "gone"
        result = await executor.execute(
            ExecutionRequest(language="python", code="print(1)", working_directory=missing)
        )
        assert result.exit_code == 1
        assert result.stderr == f"Working directory not found: {missing}"
        assert "Interpreter" not in result.stderr

    async def test_missing_working_directory_ignored_outside_workspace(self, tmp_path: Path):
        executor = LocalSandboxExecutor(SandboxPolicy(filesystem_scope=FilesystemScope.TEMP))
        result = await executor.execute(
            ExecutionRequest(language="sh", code="echo ok", working_directory=tmp_path / "gone")
        )
        assert result.exit_code == 0
        assert result.stdout.strip() == "ok"


@pytest.mark.asyncio
class TestLocalTimeout:
    async def test_infinite_loop_times_out(self, tmp_path: Path):
        executor = LocalSandboxExecutor(SandboxPolicy(max_cpu_seconds=1))
        start = time.monotonic()
        result = await executor.execute(
            ExecutionRequest(language="python", code="while True:\n    pass\n", working_directory=tmp_path)
        )
        elapsed = time.monotonic() - start

        assert result.exit_code != 0
        assert result.exit_code == -1
        assert "timed out after 1s" in result.stderr
        assert elapsed < 5

    async def test_timeout_kills_process_group(self, tmp_path: Path):
        executor = LocalSandboxExecutor(SandboxPolicy(max_cpu_seconds=5))
        pid_file = tmp_path / "child.pid"
        code = f"sleep 30 &\necho $! > {pid_file}\nwait\n"
        result = await executor.execute(
            ExecutionRequest(language="sh", code=code, timeout=1, working_directory=tmp_path)
        )
        assert result.exit_code == -1

        child = int(pid_file.read_text().strip())
        # The orphaned sleep must be gone (or a zombie awaiting reaping).
        for _ in range(20):
            try:
                os.kill(child, 0)
            except ProcessLookupError:
                break
            try:
                with open(f"/proc/{child}/stat") as f:
                    if f.read().split()[2] == "Z":
                        break
            except FileNotFoundError:
                break
            time.sleep(0.1)
        else:
            pytest.fail("child process survived the timeout")
