"""branchgpt: branching conversations with chat-completion services.

Example:
    ```python
    from branchgpt import CompletionParameters, ConversationService, EchoProvider

    service = ConversationService.build(
        CompletionParameters(), "chat.yaml", "You are a helpful assistant"
    )
    query, = service.add_queries(service.root().id, ["Hello!"])
    answers = await service.complete(query.id, EchoProvider(), n=2)
    await service.save()
    ```
"""

from branchgpt.exceptions import (
    BranchGPTError,
    CompletionFailedError,
    ConcurrencyError,
    ConfigurationError,
    CorruptAggregateError,
    InvalidMessageRoleError,
    NotFoundError,
    NotPartOfConversationError,
    SchemaVersionError,
    SerializationError,
    StorageError,
    ValidationError,
)
from branchgpt.llm import (
    CompletionProvider,
    EchoProvider,
    LLMConfig,
    LLMMessage,
    OpenAIProvider,
    create_llm_provider,
)
from branchgpt.conversations import (
    CompletionModel,
    CompletionParameters,
    ConversationDirectory,
    ConversationService,
    Message,
    MessageTree,
    Role,
    TraversalIterator,
)
from branchgpt.config import BranchGPTSettings

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Exceptions
    "BranchGPTError",
    "CompletionFailedError",
    "ConcurrencyError",
    "ConfigurationError",
    "CorruptAggregateError",
    "InvalidMessageRoleError",
    "NotFoundError",
    "NotPartOfConversationError",
    "SchemaVersionError",
    "SerializationError",
    "StorageError",
    "ValidationError",
    # Providers
    "CompletionProvider",
    "EchoProvider",
    "LLMConfig",
    "LLMMessage",
    "OpenAIProvider",
    "create_llm_provider",
    # Conversations
    "CompletionModel",
    "CompletionParameters",
    "ConversationDirectory",
    "ConversationService",
    "Message",
    "MessageTree",
    "Role",
    "TraversalIterator",
    # Settings
    "BranchGPTSettings",
]
