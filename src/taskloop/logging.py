"""JSONL event log for tool calls, sandbox commands and loop stops.

Every record is one flat JSON object::

    {"timestamp": "...", "event": "command", "agent_id": "a1", "cycle": 3,
     "argv": ["python3", "main.py"], "exit_code": 0, "duration_ms": 41.2}

Fields whose value is None are omitted, so a command run outside an agent
simply has no ``agent_id`` or ``cycle`` key.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

DEFAULT_LOG_DIR = Path.home() / ".taskloop" / "logs"


class JSONLLogger:
    """Append-only JSONL writer with size-based rotation.

    When the active file reaches ``max_size_mb`` it is renamed to
    ``<stem>_<utc timestamp>.jsonl`` and a fresh file is started. At most
    ``backup_count`` rotated files are kept; older ones are deleted.
    """

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "events.jsonl",
        max_size_mb: float = 10.0,
        backup_count: int = 5,
    ) -> None:
        self.log_dir = Path(log_dir) if log_dir is not None else DEFAULT_LOG_DIR
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)
        self.backup_count = backup_count

    @property
    def log_path(self) -> Path:
        return self.log_dir / self.filename

    def rotated_files(self) -> list[Path]:
        """Rotated files, oldest first."""
        stem = Path(self.filename).stem
        return sorted(p for p in self.log_dir.glob(f"{stem}_*.jsonl") if p != self.log_path)

    def _rotate(self) -> None:
        path = self.log_path
        if not path.exists() or path.stat().st_size < self.max_size_bytes:
            return

        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
        path.rename(self.log_dir / f"{path.stem}_{stamp}.jsonl")

        backups = self.rotated_files()
        for old in backups[: max(len(backups) - self.backup_count, 0)]:
            old.unlink(missing_ok=True)

    def emit(
        self,
        event: str,
        *,
        agent_id: str | None = None,
        cycle: int | None = None,
        **fields: Any,
    ) -> dict[str, Any]:
        """Write one record and return it."""
        record: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "agent_id": agent_id,
            "cycle": cycle,
            **fields,
        }
        record = {key: value for key, value in record.items() if value is not None}

        self._rotate()
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, default=str) + "\n")
        return record

    def log_tool_call(
        self,
        tool_name: str,
        args: dict[str, Any],
        *,
        agent_id: str | None = None,
        cycle: int | None = None,
    ) -> None:
        self.emit("tool_call", agent_id=agent_id, cycle=cycle, tool_name=tool_name, tool_args=args)

    def log_tool_result(
        self,
        tool_name: str,
        success: bool,
        *,
        agent_id: str | None = None,
        cycle: int | None = None,
        duration_ms: float | None = None,
        error: str | None = None,
    ) -> None:
        """Record a tool outcome; ``error`` is only kept for failures."""
        self.emit(
            "tool_result",
            agent_id=agent_id,
            cycle=cycle,
            tool_name=tool_name,
            success=success,
            duration_ms=duration_ms,
            error=None if success else error,
        )

    def log_command(
        self,
        argv: list[str],
        exit_code: int,
        duration_ms: float,
        *,
        agent_id: str | None = None,
        cycle: int | None = None,
        container_id: str | None = None,
        truncated: bool = False,
    ) -> None:
        self.emit(
            "command",
            agent_id=agent_id,
            cycle=cycle,
            argv=argv,
            exit_code=exit_code,
            duration_ms=duration_ms,
            container_id=container_id,
            truncated=truncated,
        )

    def log_agent_stop(
        self,
        reason: str,
        *,
        agent_id: str | None = None,
        cycles: int | None = None,
    ) -> None:
        self.emit("agent_stop", agent_id=agent_id, stopped_reason=reason, cycles=cycles)
