"""Build providers from configuration."""

import logging

from ..config import LLMConfig
from ..errors import ConfigurationError
from .base import LLMProvider
from .fallback import FallbackProvider
from .types import ChatOptions

logger = logging.getLogger(__name__)


def create_provider(config: LLMConfig) -> LLMProvider:
    """Instantiate the backend named by ``config.provider``."""
    if config.provider == "groq":
        from .groq import GroqProvider

        return GroqProvider(config)
    if config.provider == "ollama":
        from .ollama import OllamaProvider

        return OllamaProvider(config)
    raise ConfigurationError(
        f"Unknown LLM provider: {config.provider}. Supported providers: groq, ollama",
        {"provider": config.provider},
    )


def create_with_fallback(
    primary: LLMConfig, fallbacks: list[LLMConfig] | None = None
) -> FallbackProvider:
    """Primary provider first, then each fallback in the given order."""
    providers = [create_provider(primary)]
    for config in fallbacks or []:
        providers.append(create_provider(config))
    return FallbackProvider(providers)


async def check_provider(provider: LLMProvider) -> bool:
    """Send a one-token request. True when the backend answered."""
    try:
        await provider.chat(
            [{"role": "user", "content": "ping"}],
            ChatOptions(max_tokens=1, temperature=0),
        )
        return True
    except Exception as e:
        logger.warning("Provider %s is not reachable: %s", provider.name, e)
        return False
