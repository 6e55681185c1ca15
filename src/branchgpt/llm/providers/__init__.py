"""Completion provider implementations and factory."""

from typing import Any, Dict, Type, Union

from branchgpt.exceptions import ConfigurationError

from ..base import CompletionProvider, LLMConfig, LLMMessage, normalize_llm_config
from .echo import EchoProvider
from .openai import OpenAIAdapter, OpenAIProvider


class LLMProviderFactory:
    """Factory for creating completion providers from configuration.

    Example:
        ```python
        factory = LLMProviderFactory()
        provider = factory.create({"provider": "echo"})

        # Extend with a custom provider
        LLMProviderFactory.register_provider("custom", CustomProvider)
        ```
    """

    _providers: Dict[str, Type[CompletionProvider]] = {
        "openai": OpenAIProvider,
        "echo": EchoProvider,
    }

    def create(self, config: Union[LLMConfig, Dict[str, Any]]) -> CompletionProvider:
        """Create a provider from configuration.

        Raises:
            ConfigurationError: If the provider name is unknown
        """
        llm_config = normalize_llm_config(config)

        provider_class = self._providers.get(llm_config.provider.lower())
        if not provider_class:
            raise ConfigurationError(
                f"Unknown provider: {llm_config.provider}. "
                f"Available providers: {sorted(self._providers)}",
                context={"provider": llm_config.provider},
            )
        return provider_class(llm_config)

    @classmethod
    def register_provider(cls, name: str, provider_class: Type[CompletionProvider]) -> None:
        """Register a custom provider class under ``name``."""
        cls._providers[name.lower()] = provider_class

    def __call__(self, config: Union[LLMConfig, Dict[str, Any]]) -> CompletionProvider:
        return self.create(config)


def create_llm_provider(config: Union[LLMConfig, Dict[str, Any]]) -> CompletionProvider:
    """Create the provider named by ``config.provider``.

    Example:
        ```python
        provider = create_llm_provider({"provider": "openai", "api_key": "..."})
        ```
    """
    return LLMProviderFactory().create(config)


__all__ = [
    "CompletionProvider",
    "LLMConfig",
    "LLMMessage",
    "OpenAIAdapter",
    "OpenAIProvider",
    "EchoProvider",
    "LLMProviderFactory",
    "create_llm_provider",
    "normalize_llm_config",
]
