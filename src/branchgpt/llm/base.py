"""Base completion provider abstractions.

The conversation core treats the remote chat-completion service as an
injected capability: anything implementing :class:`CompletionProvider` can
answer a linear sequence of messages with one or more candidate responses.
Concrete providers live in :mod:`branchgpt.llm.providers`.

Example:
    ```python
    from branchgpt.llm import LLMConfig, LLMMessage, create_llm_provider
    from branchgpt.conversations import CompletionParameters

    config = LLMConfig(provider="openai", model="gpt-4")

    async with create_llm_provider(config) as llm:
        messages = [
            LLMMessage(role="system", content="You are helpful"),
            LLMMessage(role="user", content="Hello!"),
        ]
        responses = await llm.complete(messages, CompletionParameters(n=2))
        for text in responses:
            print(text)
    ```
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Dict, List, Union

if TYPE_CHECKING:
    from branchgpt.conversations.parameters import CompletionParameters


@dataclass
class LLMMessage:
    """Provider-facing message: a role and its content.

    Attributes:
        role: 'system', 'user' or 'assistant'
        content: Message text
    """
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class LLMConfig:
    """Configuration used to construct a provider.

    Generation settings (temperature, samples, model, max tokens) are not part
    of this object; they travel with each request as CompletionParameters.

    Attributes:
        provider: Provider name registered with the factory ('openai', 'echo')
        model: Default model name, used by providers that need one at init
        api_key: API key; providers fall back to their environment variable
        api_base: Custom API endpoint
        timeout: Request timeout in seconds
        options: Provider-specific options
    """
    provider: str
    model: str | None = None
    api_key: str | None = None
    api_base: str | None = None
    timeout: float = 60.0
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "LLMConfig":
        """Create LLMConfig from a dictionary, ignoring unknown keys."""
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        return cls(**{k: v for k, v in config_dict.items() if k in valid_fields})

    def clone(self, **overrides: Any) -> "LLMConfig":
        """Create a copy of this config with optional overrides."""
        return replace(self, **overrides)


def normalize_llm_config(config: Union[LLMConfig, Dict[str, Any]]) -> LLMConfig:
    """Accept an LLMConfig or a plain dictionary and return an LLMConfig."""
    if isinstance(config, LLMConfig):
        return config
    if isinstance(config, dict):
        return LLMConfig.from_dict(config)
    raise TypeError(
        f"Unsupported config type: {type(config).__name__}. "
        f"Expected LLMConfig or dict."
    )


class CompletionProvider(ABC):
    """Async completion provider interface.

    A provider receives the ordered messages of one branch (root first) and
    the effective parameters, and returns the text of every choice, in the
    order the service produced them. Failures are raised, never returned.
    """

    def __init__(self, config: Union[LLMConfig, Dict[str, Any]]):
        self.config = normalize_llm_config(config)
        self._client: Any = None
        self._is_initialized = False

    @abstractmethod
    async def complete(
        self,
        messages: List[LLMMessage],
        parameters: "CompletionParameters",
    ) -> List[str]:
        """Generate one response per requested sample.

        Args:
            messages: Linear conversation, root system message first
            parameters: Effective completion parameters (``n`` samples)

        Returns:
            Content of every returned choice, in provider order

        Raises:
            CompletionFailedError: On transport or protocol failure
        """
        pass

    async def initialize(self) -> None:
        """Initialize the underlying client."""
        self._is_initialized = True

    async def close(self) -> None:
        """Release the underlying client."""
        self._is_initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
