"""Model backends behind a common interface."""

from .base import LLMProvider
from .factory import check_provider, create_provider, create_with_fallback
from .fallback import FallbackProvider
from .types import (
    ChatFunction,
    ChatMessage,
    ChatOptions,
    ChatResponse,
    ChatStreamChunk,
    FunctionCall,
    Usage,
)

__all__ = [
    "ChatFunction",
    "ChatMessage",
    "ChatOptions",
    "ChatResponse",
    "ChatStreamChunk",
    "FallbackProvider",
    "FunctionCall",
    "LLMProvider",
    "Usage",
    "check_provider",
    "create_provider",
    "create_with_fallback",
]
