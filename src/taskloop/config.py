"""Environment-backed configuration.

Values come from the process environment; the CLI loads a ``.env`` file
with python-dotenv before calling :func:`load_settings`.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ConfigurationError
from .sandbox.policy import SandboxPolicy
from .sandbox.utils import DEFAULT_MAX_OUTPUT_CHARS

DEFAULT_MODELS = {
    "groq": "llama-3.1-70b-versatile",
    "ollama": "llama3.1",
}

PROVIDER_ALIASES = {"local": "ollama"}


@dataclass
class LLMConfig:
    """Settings for one model backend."""

    provider: str = "groq"
    model: str = DEFAULT_MODELS["groq"]
    api_key: str | None = None
    base_url: str | None = None
    temperature: float = 0.7
    max_tokens: int = 2000
    embedding_model: str | None = None
    timeout: float = 60.0
    max_retries: int = 2

    def __post_init__(self) -> None:
        self.provider = PROVIDER_ALIASES.get(self.provider.lower(), self.provider.lower())
        if not 0 <= self.temperature <= 2:
            raise ConfigurationError(f"temperature must be between 0 and 2, got {self.temperature}")
        if self.max_tokens <= 0:
            raise ConfigurationError(f"max_tokens must be positive, got {self.max_tokens}")


@dataclass
class AgentConfig:
    """Settings for the agent loop."""

    max_cycles: int = 25
    continuous: bool = False
    workspace_root: Path = field(default_factory=lambda: Path.cwd() / "workspace")

    def __post_init__(self) -> None:
        if self.max_cycles < 1:
            raise ConfigurationError(f"max_cycles must be at least 1, got {self.max_cycles}")
        self.workspace_root = Path(self.workspace_root)


@dataclass
class SandboxConfig:
    """Settings for code execution."""

    executor: str = "local"
    max_cpu_seconds: int = 30
    max_memory_mb: int = 512
    network_access: str = "outbound"
    filesystem_scope: str = "workspace"
    max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS

    def policy(self) -> SandboxPolicy:
        """Policy built from these settings. Bounds are checked by the executor."""
        return SandboxPolicy(
            max_cpu_seconds=self.max_cpu_seconds,
            max_memory_mb=self.max_memory_mb,
            network_access=self.network_access,
            filesystem_scope=self.filesystem_scope,
        )


@dataclass
class Settings:
    """Complete runtime configuration."""

    llm: LLMConfig = field(default_factory=LLMConfig)
    fallbacks: list[LLMConfig] = field(default_factory=list)
    agent: AgentConfig = field(default_factory=AgentConfig)
    sandbox: SandboxConfig = field(default_factory=SandboxConfig)
    log_dir: Path = field(default_factory=lambda: Path.home() / ".taskloop" / "logs")


def _to_bool(value: str | None, default: bool = False) -> bool:
    """Convert common env var truthy/falsy values into booleans."""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _to_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}", {"key": key})


def _to_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}", {"key": key})


def _llm_config(env: Mapping[str, str], provider: str, model: str | None = None) -> LLMConfig:
    provider = PROVIDER_ALIASES.get(provider.strip().lower(), provider.strip().lower())
    temperature = _to_float(env, "LLM_TEMPERATURE", 0.7)
    max_tokens = _to_int(env, "LLM_MAX_TOKENS", 2000)
    timeout = _to_float(env, "LLM_TIMEOUT", 60.0)

    if provider == "groq":
        return LLMConfig(
            provider="groq",
            model=model or env.get("GROQ_MODEL", DEFAULT_MODELS["groq"]),
            api_key=env.get("GROQ_API_KEY"),
            base_url=env.get("GROQ_BASE_URL"),
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    if provider == "ollama":
        return LLMConfig(
            provider="ollama",
            model=model or env.get("OLLAMA_MODEL", DEFAULT_MODELS["ollama"]),
            base_url=env.get("OLLAMA_BASE_URL", "http://localhost:11434"),
            embedding_model=env.get("OLLAMA_EMBEDDING_MODEL", "nomic-embed-text"),
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    raise ConfigurationError(
        f"Unknown LLM provider: {provider}. Supported providers: groq, ollama",
        {"provider": provider},
    )


def _parse_fallbacks(env: Mapping[str, str]) -> list[LLMConfig]:
    """Parse ``LLM_FALLBACKS=ollama:llama3.1,groq:llama-3.1-8b-instant``."""
    raw = env.get("LLM_FALLBACKS", "").strip()
    if not raw:
        return []

    configs = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        provider, _, model = item.partition(":")
        configs.append(_llm_config(env, provider, model or None))
    return configs


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from environment variables.

    Raises:
        ConfigurationError: On malformed or out-of-range values.
    """
    env = os.environ if env is None else env

    agent = AgentConfig(
        max_cycles=_to_int(env, "AGENT_MAX_CYCLES", 25),
        continuous=_to_bool(env.get("AGENT_CONTINUOUS")),
        workspace_root=Path(env.get("WORKSPACE_ROOT", str(Path.cwd() / "workspace"))),
    )

    sandbox = SandboxConfig(
        executor=env.get("SANDBOX_EXECUTOR", "local").strip().lower(),
        max_cpu_seconds=_to_int(env, "SANDBOX_CPU_SECONDS", 30),
        max_memory_mb=_to_int(env, "SANDBOX_MEMORY_MB", 512),
        network_access=env.get("SANDBOX_NETWORK", "outbound").strip().lower(),
        filesystem_scope=env.get("SANDBOX_FILESYSTEM", "workspace").strip().lower(),
        max_output_chars=_to_int(env, "SANDBOX_MAX_OUTPUT", DEFAULT_MAX_OUTPUT_CHARS),
    )
    if sandbox.executor not in ("local", "docker"):
        raise ConfigurationError(
            f"SANDBOX_EXECUTOR must be 'local' or 'docker', got {sandbox.executor!r}"
        )

    log_dir = env.get("LOG_DIR")

    return Settings(
        llm=_llm_config(env, env.get("LLM_PROVIDER", "groq")),
        fallbacks=_parse_fallbacks(env),
        agent=agent,
        sandbox=sandbox,
        log_dir=Path(log_dir) if log_dir else Path.home() / ".taskloop" / "logs",
    )
