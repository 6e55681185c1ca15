"""Conversation service: a message tree plus its completion settings.

ConversationService wraps one :class:`MessageTree` together with the default
completion parameters, a display name and the location the conversation is
stored at. It exposes the two mutations of a conversation:

1. :meth:`ConversationService.add_queries` appends user queries below an
   assistant (or the system) message, creating sibling branches.
2. :meth:`ConversationService.complete` sends the branch ending at a user
   message to a completion provider and appends every returned sample as an
   assistant message.

Example:
    ```python
    from pathlib import Path
    from branchgpt.conversations import CompletionParameters, ConversationService
    from branchgpt.llm import create_llm_provider

    service = ConversationService.build(
        CompletionParameters(n=2),
        Path("conversation.yaml"),
        "You are a helpful assistant",
    )
    service.set_name("Trip planning")

    root = service.root()
    query, = service.add_queries(root.id, ["Where should I go in May?"])

    async with create_llm_provider({"provider": "openai"}) as llm:
        answers = await service.complete(query.id, llm)

    await service.save()

    # Later, possibly from a different directory
    service = await ConversationService.load("moved/conversation.yaml")
    for message in service.message_list():
        print(message.role.value, message.content)
    ```

Concurrency:
    The provider call and the file write of ``save`` are the only
    suspension points. While one is pending the service is checked out:
    another ``complete`` or ``save`` waits for it, and ``add_queries`` raises
    ConcurrencyError. Reads never wait. A failed or cancelled completion
    inserts nothing.
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Union

from branchgpt.exceptions import (
    BranchGPTError,
    CompletionFailedError,
    ConcurrencyError,
    InvalidMessageRoleError,
    NotFoundError,
    NotPartOfConversationError,
)
from branchgpt.conversations.message import Message, Role
from branchgpt.conversations.parameters import CompletionParameters
from branchgpt.conversations.tree import MessageTree, TraversalIterator
from branchgpt.llm.base import CompletionProvider, LLMMessage

logger = logging.getLogger(__name__)


class ConversationService:
    """A branching conversation with a completion service.

    Note: Use ConversationService.build() or ConversationService.load()
    instead of calling __init__ directly.

    Attributes:
        default_parameters: Parameters used for every completion unless
            overridden per call
        path: Where the conversation is stored; bound at runtime, never
            persisted
    """

    def __init__(
        self,
        tree: MessageTree,
        default_parameters: CompletionParameters,
        path: Union[str, Path],
        name: str = "",
    ):
        self._tree = tree
        self.default_parameters = default_parameters
        self.path = Path(path)
        self._name = name
        self._lock = asyncio.Lock()
        # "completion" or "save" while the lock is held
        self._pending: str | None = None

    @classmethod
    def build(
        cls,
        parameters: Union[CompletionParameters, Dict[str, Any]],
        path: Union[str, Path],
        system_content: str,
    ) -> "ConversationService":
        """Create a new conversation seeded with a system message.

        The conversation is not written to ``path`` until :meth:`save`.

        Args:
            parameters: Default completion parameters (or their dict form)
            path: Storage location of the conversation
            system_content: Content of the root system message

        Raises:
            ValidationError: If the parameters are invalid or the system
                content is empty
        """
        if not isinstance(parameters, CompletionParameters):
            parameters = CompletionParameters.from_dict(parameters)
        return cls(MessageTree.create(system_content), parameters, path)

    @classmethod
    async def load(cls, path: Union[str, Path]) -> "ConversationService":
        """Load a conversation and bind it to the path it was loaded from.

        Raises:
            StorageError: If the file cannot be read
            SerializationError: If the file cannot be decoded
            CorruptAggregateError: If the messages do not form a valid tree
        """
        from branchgpt.conversations.storage import load_conversation

        return await load_conversation(path)

    async def save(self) -> None:
        """Write the conversation to :attr:`path`.

        Waits for an in-flight completion to finish first.
        """
        from branchgpt.conversations.storage import save_conversation

        async with self._lock:
            self._pending = "save"
            try:
                await save_conversation(self)
            finally:
                self._pending = None

    @property
    def tree(self) -> MessageTree:
        """The underlying tree. Use it for reads only."""
        return self._tree

    @property
    def name(self) -> str:
        return self._name

    def set_name(self, name: str) -> str:
        """Set a new display name and return the previous one."""
        previous, self._name = self._name, name
        return previous

    @property
    def is_completing(self) -> bool:
        """True while a completion request is in flight."""
        return self._pending == "completion"

    @property
    def is_busy(self) -> bool:
        """True while a completion or a save is in flight."""
        return self._pending is not None

    def root(self) -> Message:
        return self._tree.root()

    def get(self, message_id: uuid.UUID) -> Message:
        return self._tree.get(message_id)

    def latest_messages(self) -> List[Message]:
        """The latest message of every branch (leaves of the tree)."""
        return self._tree.frontier()

    def message_list(self, anchor_id: uuid.UUID | None = None) -> List[Message]:
        """One linear conversation through ``anchor_id`` (root if omitted)."""
        return self._tree.path_to(anchor_id)

    def siblings(self, message_id: uuid.UUID) -> List[Message]:
        """Alternatives of a message, including the message itself."""
        return self._tree.siblings_of(message_id)

    def iter(self) -> TraversalIterator:
        """Depth-first iterator over all messages."""
        return self._tree.iter_depth_first()

    def __iter__(self) -> TraversalIterator:
        return self.iter()

    def add_queries(self, parent_id: uuid.UUID, queries: List[str]) -> List[Message]:
        """Add user queries as new children of an assistant or system message.

        Args:
            parent_id: Message the queries answer to
            queries: Query texts, one new branch each

        Returns:
            The inserted user messages, in order

        Raises:
            NotFoundError: If the parent is not part of the conversation
            InvalidMessageRoleError: If the parent is a user message
            ValidationError: If a query is empty
            ConcurrencyError: If a completion or a save is in flight
        """
        if self.is_busy:
            raise ConcurrencyError(
                f"Cannot add queries while a {self._pending} is in progress",
                context={"parent_id": str(parent_id), "pending": self._pending},
            )

        parent = self._tree.get(parent_id)
        if parent.role not in (Role.ASSISTANT, Role.SYSTEM):
            raise InvalidMessageRoleError(
                "Queries can only be added to assistant or system messages",
                context={"parent_id": str(parent_id), "role": parent.role.value},
            )

        return self._tree.insert_children(parent_id, queries, Role.USER)

    async def complete(
        self,
        message_id: uuid.UUID,
        provider: CompletionProvider,
        n: int | None = None,
    ) -> List[Message]:
        """Answer a user message with one assistant message per sample.

        The branch from the root down to ``message_id`` is sent to the
        provider; sibling branches are not included.

        Args:
            message_id: User message to answer
            provider: Completion provider to call
            n: Number of samples, overriding ``default_parameters.n``

        Returns:
            The inserted assistant messages, in provider order

        Raises:
            NotPartOfConversationError: If the message is not in the tree
            InvalidMessageRoleError: If the message is not a user message
            ValidationError: If ``n`` is invalid
            CompletionFailedError: If the provider fails or returns no choices
        """
        try:
            message = self._tree.get(message_id)
        except NotFoundError:
            logger.error(f"Completion requested for unknown message {message_id}")
            raise NotPartOfConversationError(
                "Message is not part of the conversation",
                context={"message_id": str(message_id)},
            ) from None

        if message.role is not Role.USER:
            logger.error(f"Completion requested for a {message.role.value} message")
            raise InvalidMessageRoleError(
                "Only user messages can be completed",
                context={"message_id": str(message_id), "role": message.role.value},
            )

        parameters = self.default_parameters if n is None else self.default_parameters.with_n(n)
        messages = [m.to_llm_message() for m in self._tree.ancestry(message_id)]

        async with self._lock:
            self._pending = "completion"
            try:
                return await self._complete_locked(message_id, provider, messages, parameters)
            finally:
                self._pending = None

    async def _complete_locked(
        self,
        message_id: uuid.UUID,
        provider: CompletionProvider,
        messages: List[LLMMessage],
        parameters: CompletionParameters,
    ) -> List[Message]:
        logger.debug(f"Sending {len(messages)} messages to {type(provider).__name__}")
        try:
            responses = await provider.complete(messages, parameters)
        except BranchGPTError:
            raise
        except Exception as e:
            logger.error(f"Completion provider failed: {e}")
            raise CompletionFailedError(
                f"Completion provider failed: {e}",
                context={"message_id": str(message_id), "error_type": type(e).__name__},
            ) from e
        logger.debug(f"Received {len(responses)} responses")

        choices = [text for text in responses if text]
        if len(choices) < len(responses):
            logger.warning(f"Dropped {len(responses) - len(choices)} empty choice(s)")
        if not choices:
            raise CompletionFailedError(
                "No choices returned by the completion provider",
                context={"message_id": str(message_id), "n": parameters.n},
            )

        return self._tree.insert_children(message_id, choices, Role.ASSISTANT)
