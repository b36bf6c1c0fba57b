"""Helpers shared by the local and docker executors."""

import logging
import os
import shutil
import tempfile
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .policy import ExecutionFile

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_CHARS = 8000

ALLOWED_ENV_KEYS = ("PATH", "HOME", "USER", "SHELL", "LANG", "TZ")

SCRATCH_PREFIX = "taskloop-"


@dataclass(frozen=True)
class LanguageSpec:
    """How to run one language: file extension, interpreter argv, image."""

    extension: str
    command: tuple[str, ...]
    image: str
    # V8 reserves far more virtual memory than it uses, so RLIMIT_AS kills node.
    limit_address_space: bool = True


LANGUAGES: dict[str, LanguageSpec] = {
    "python": LanguageSpec(".py", ("python3",), "python:3.11-alpine"),
    "javascript": LanguageSpec(".js", ("node",), "node:20-alpine", limit_address_space=False),
    "typescript": LanguageSpec(".ts", ("ts-node",), "", limit_address_space=False),
    "bash": LanguageSpec(".sh", ("bash",), "alpine:latest"),
    "sh": LanguageSpec(".sh", ("sh",), "alpine:latest"),
}

LANGUAGE_ALIASES = {
    "py": "python",
    "js": "javascript",
    "ts": "typescript",
    "shell": "bash",
}


class UnsupportedLanguageError(ValueError):
    """Raised when no interpreter is known for a language."""


def resolve_language(language: str, supported: tuple[str, ...] | None = None) -> tuple[str, LanguageSpec]:
    """Normalize ``language`` and return (canonical name, spec)."""
    name = (language or "").strip().lower()
    name = LANGUAGE_ALIASES.get(name, name)
    if name not in LANGUAGES or (supported is not None and name not in supported):
        raise UnsupportedLanguageError(f"Unsupported language: {language}")
    return name, LANGUAGES[name]


def truncate_output(output: str, max_chars: int = DEFAULT_MAX_OUTPUT_CHARS) -> tuple[str, bool]:
    """Cut ``output`` to ``max_chars`` and append a marker with the elided count."""
    if len(output) <= max_chars:
        return output, False

    remaining = len(output) - max_chars
    return f"{output[:max_chars]}\n\n... [truncated {remaining} more characters]", True


def sanitize_environment(
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Keep only allow-listed variables from ``env``, then apply ``overrides``."""
    source = os.environ if env is None else env
    sanitized = {key: source[key] for key in ALLOWED_ENV_KEYS if source.get(key)}
    if overrides:
        sanitized.update({str(k): str(v) for k, v in overrides.items()})
    return sanitized


def is_within(path: Path | str, root: Path | str) -> bool:
    """True when ``path`` resolves to ``root`` or somewhere below it."""
    resolved_root = Path(root).resolve()
    resolved = (resolved_root / path).resolve()
    return resolved == resolved_root or resolved_root in resolved.parents


def resolve_inside(root: Path, relative: str) -> Path:
    """Resolve ``relative`` under ``root``, refusing escapes."""
    if not is_within(relative, root):
        raise PermissionError(f"Path escapes sandbox directory: {relative}")
    return (root.resolve() / relative).resolve()


def create_scratch_dir(base: Path | None = None) -> Path:
    """Create an ephemeral directory for one execution."""
    if base is not None:
        base.mkdir(parents=True, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix=SCRATCH_PREFIX, dir=base))


def materialize(
    scratch: Path,
    code: str,
    extension: str,
    files: list[ExecutionFile],
) -> Path:
    """Write the script and auxiliary files into ``scratch``.

    Returns:
        Path of the written script.
    """
    script = scratch / f"script_{uuid.uuid4().hex[:12]}{extension}"
    script.write_text(code, encoding="utf-8")

    for file in files:
        target = resolve_inside(scratch, file.path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(file.content, encoding="utf-8")
        if file.executable:
            target.chmod(0o755)

    return script


def remove_scratch_dir(scratch: Path | None) -> None:
    """Best-effort removal; failures are logged, never raised."""
    if scratch is None:
        return
    try:
        shutil.rmtree(scratch)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to remove scratch directory %s: %s", scratch, e)
