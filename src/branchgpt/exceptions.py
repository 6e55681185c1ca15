"""Exception hierarchy for branchgpt.

Every error raised by the package derives from :class:`BranchGPTError`, which
carries an optional context dictionary with the identifiers involved (message
ids, roles, paths). Callers can catch the base class to handle any failure or
one of the specific subclasses to recover from a particular condition.

Example:
    ```python
    from branchgpt.exceptions import BranchGPTError, InvalidMessageRoleError

    try:
        service.add_queries(message_id, ["Hello"])
    except InvalidMessageRoleError as e:
        logger.warning(f"Cannot add queries: {e}")
        logger.debug(f"Context: {e.context}")
    except BranchGPTError as e:
        logger.error(f"Error: {e}")
    ```

Recoverability:
    - ``ValidationError``, ``NotFoundError``, ``InvalidMessageRoleError`` are
      caller errors raised before any mutation. Retry with corrected input.
    - ``CompletionFailedError`` leaves the conversation untouched, so the same
      ``complete`` call can simply be retried.
    - ``CorruptAggregateError`` is fatal for the loaded conversation. It is
      never repaired automatically.
"""

from typing import Any, Dict


class BranchGPTError(Exception):
    """Base exception for all branchgpt errors.

    Attributes:
        context: Dictionary containing contextual information about the error
        details: Alias for context

    Args:
        message: Human-readable error message
        context: Optional dictionary with error context (ids, roles, paths)
        details: Alternative to context (both are supported)

    Example:
        ```python
        error = BranchGPTError(
            "Operation failed",
            context={"message_id": "6f1c..."}
        )
        str(error)
        # 'Operation failed'
        ```
    """

    def __init__(
        self,
        message: str,
        context: Dict[str, Any] | None = None,
        details: Dict[str, Any] | None = None,
    ):
        super().__init__(message)
        # Details takes precedence if both are provided
        self.context = details or context or {}
        self.details = self.context


class ValidationError(BranchGPTError):
    """Raised when input fails validation.

    Examples are empty message content, a temperature outside ``[0.0, 2.0]``
    or an unknown model identifier.
    """

    pass


class ConfigurationError(BranchGPTError):
    """Raised when settings are invalid or a provider cannot be configured."""

    pass


class NotFoundError(BranchGPTError):
    """Raised when a referenced message id does not exist in the tree."""

    pass


class NotPartOfConversationError(NotFoundError):
    """Raised when a completion is requested for a message outside the conversation."""

    pass


class InvalidMessageRoleError(BranchGPTError):
    """Raised when a message has the wrong role for the requested operation.

    Queries can only be added under assistant or system messages, and a
    completion can only answer a user message.
    """

    pass


class CompletionFailedError(BranchGPTError):
    """Raised when the completion provider fails or returns no choices.

    No messages are inserted when this is raised.
    """

    pass


class CorruptAggregateError(BranchGPTError):
    """Raised when a message tree violates its structural invariants.

    Typical causes are a missing or duplicated root, a dangling parent
    reference, duplicated sibling indices or a parent cycle.
    """

    pass


class SerializationError(BranchGPTError):
    """Raised when a persisted conversation cannot be encoded or decoded."""

    pass


class StorageError(BranchGPTError):
    """Raised for filesystem errors while reading or writing conversations."""

    pass


class SchemaVersionError(BranchGPTError):
    """Raised for schema version incompatibilities."""

    pass


class ConcurrencyError(BranchGPTError):
    """Raised when a mutation is issued while a completion is in flight."""

    pass


__all__ = [
    "BranchGPTError",
    "ValidationError",
    "ConfigurationError",
    "NotFoundError",
    "NotPartOfConversationError",
    "InvalidMessageRoleError",
    "CompletionFailedError",
    "CorruptAggregateError",
    "SerializationError",
    "StorageError",
    "SchemaVersionError",
    "ConcurrencyError",
]
