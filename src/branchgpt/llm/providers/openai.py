"""OpenAI chat completion provider."""

import logging
import os
from typing import TYPE_CHECKING, Any, Dict, List, Union

from branchgpt.exceptions import CompletionFailedError, ConfigurationError

from ..base import CompletionProvider, LLMConfig, LLMMessage

if TYPE_CHECKING:
    from branchgpt.conversations.parameters import CompletionParameters

logger = logging.getLogger(__name__)


class OpenAIAdapter:
    """Adapter between branchgpt types and the OpenAI chat API format."""

    def adapt_messages(self, messages: List[LLMMessage]) -> List[Dict[str, Any]]:
        """Convert messages to OpenAI format."""
        return [{"role": msg.role, "content": msg.content} for msg in messages]

    def adapt_parameters(self, parameters: "CompletionParameters") -> Dict[str, Any]:
        """Convert completion parameters to OpenAI request arguments."""
        return {
            "model": parameters.model.value,
            "n": parameters.n,
            "max_tokens": parameters.max_tokens,
            "temperature": parameters.temperature,
        }

    def adapt_response(self, response: Any) -> List[str]:
        """Collect the content of every choice, skipping choices without one."""
        return [
            choice.message.content
            for choice in response.choices
            if choice.message.content is not None
        ]


class OpenAIProvider(CompletionProvider):
    """OpenAI completion provider backed by ``openai.AsyncOpenAI``."""

    def __init__(self, config: Union[LLMConfig, Dict[str, Any]]):
        super().__init__(config)
        self.adapter = OpenAIAdapter()

    async def initialize(self) -> None:
        """Initialize OpenAI client."""
        try:
            import openai
        except ImportError as e:
            raise ImportError("openai package not installed. Install with: pip install openai") from e

        api_key = self.config.api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ConfigurationError(
                "OpenAI API key not provided",
                context={"env_var": "OPENAI_API_KEY"},
            )

        self._client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=self.config.api_base,
            timeout=self.config.timeout,
        )
        self._is_initialized = True

    async def close(self) -> None:
        """Close OpenAI client."""
        if self._client:
            await self._client.close()
            self._client = None
        self._is_initialized = False

    async def complete(
        self,
        messages: List[LLMMessage],
        parameters: "CompletionParameters",
    ) -> List[str]:
        """Request ``parameters.n`` chat completions."""
        if not self._is_initialized:
            await self.initialize()

        import openai

        request = self.adapter.adapt_parameters(parameters)
        logger.debug(f"Sending request to OpenAI: model={request['model']}, n={request['n']}")
        try:
            response = await self._client.chat.completions.create(
                messages=self.adapter.adapt_messages(messages),
                **request,
            )
        except openai.OpenAIError as e:
            logger.error(f"OpenAI request failed: {e}")
            raise CompletionFailedError(
                f"OpenAI request failed: {e}",
                context={"model": request["model"], "error_type": type(e).__name__},
            ) from e

        responses = self.adapter.adapt_response(response)
        logger.debug(f"Received {len(responses)} choices from OpenAI")
        return responses
