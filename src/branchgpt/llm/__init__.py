"""Completion provider layer.

The conversation core only depends on :class:`CompletionProvider`; concrete
providers (OpenAI, Echo) are created through :func:`create_llm_provider`.
"""

from .base import CompletionProvider, LLMConfig, LLMMessage, normalize_llm_config
from .providers import (
    EchoProvider,
    LLMProviderFactory,
    OpenAIAdapter,
    OpenAIProvider,
    create_llm_provider,
)

__all__ = [
    "CompletionProvider",
    "LLMConfig",
    "LLMMessage",
    "normalize_llm_config",
    "EchoProvider",
    "OpenAIAdapter",
    "OpenAIProvider",
    "LLMProviderFactory",
    "create_llm_provider",
]
