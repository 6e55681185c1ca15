"""Echo provider for testing and offline use."""

import asyncio
import logging
from collections import deque
from typing import TYPE_CHECKING, Any, Deque, Dict, List, Union

from ..base import CompletionProvider, LLMConfig, LLMMessage

if TYPE_CHECKING:
    from branchgpt.conversations.parameters import CompletionParameters

logger = logging.getLogger(__name__)

ScriptedResponse = Union[List[str], BaseException]


class EchoProvider(CompletionProvider):
    """Echo provider for testing and debugging.

    Echoes back the last user message, once per requested sample. Responses
    can also be scripted with :meth:`set_responses`, which makes it the fake
    provider of choice in tests.

    Features:
    - Deterministic responses, no network access
    - One response per sample (``parameters.n``), suffixed ``[k]`` when n > 1
    - Scripted responses or exceptions, consumed in order
    - Every call is recorded in ``calls``

    Options (``LLMConfig.options``):
        echo_prefix: Prefix added to echoed content (default ``"Echo: "``)
        delay: Seconds to sleep before answering (default 0.0)

    Example:
        ```python
        provider = EchoProvider({"provider": "echo"})
        provider.set_responses([
            ["First answer", "Second answer"],
            CompletionFailedError("rate limited"),
        ])
        ```
    """

    def __init__(self, config: Union[LLMConfig, Dict[str, Any]] | None = None):
        super().__init__(config or LLMConfig(provider="echo"))
        self.echo_prefix = self.config.options.get("echo_prefix", "Echo: ")
        self.delay = float(self.config.options.get("delay", 0.0))
        self._responses: Deque[ScriptedResponse] = deque()
        self.calls: List[Dict[str, Any]] = []

    def set_responses(self, responses: List[ScriptedResponse]) -> None:
        """Queue scripted results for the next calls to :meth:`complete`.

        Args:
            responses: Each entry is either the list of choice contents to
                return or an exception instance to raise
        """
        self._responses = deque(responses)

    async def complete(
        self,
        messages: List[LLMMessage],
        parameters: "CompletionParameters",
    ) -> List[str]:
        """Echo back the last user message ``parameters.n`` times.

        Args:
            messages: Input messages
            parameters: Effective completion parameters

        Returns:
            Echoed or scripted responses
        """
        if not self._is_initialized:
            await self.initialize()

        self.calls.append({"messages": list(messages), "parameters": parameters})

        if self.delay > 0:
            await asyncio.sleep(self.delay)

        if self._responses:
            scripted = self._responses.popleft()
            if isinstance(scripted, BaseException):
                raise scripted
            return list(scripted)

        user_messages = [msg for msg in messages if msg.role == "user"]
        if user_messages:
            content = self.echo_prefix + user_messages[-1].content
        else:
            content = self.echo_prefix + "(no user message)"

        if parameters.n == 1:
            return [content]
        logger.debug(f"Echoing {parameters.n} samples")
        return [f"{content} [{k}]" for k in range(1, parameters.n + 1)]
