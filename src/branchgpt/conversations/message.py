"""Messages: the vertices of a branching conversation.

A message never changes once it has been created. The conversation grows only
by inserting new messages whose ``parent_id`` points at an existing one.
Messages that share a parent are siblings, ordered by ``sibling_index``.
"""

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict

from branchgpt.exceptions import ValidationError
from branchgpt.llm.base import LLMMessage


class Role(Enum):
    """Role of the author of a message.

    Attributes:
        SYSTEM: Seed instructions; only the root message has this role
        USER: A query typed by the user
        ASSISTANT: A response returned by the completion provider
    """
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def parse(cls, value: "str | Role") -> "Role":
        """Convert a wire string (case-insensitive) to a Role."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValidationError(
                f"Unknown message role: {value!r}",
                context={"role": value, "valid_roles": [r.value for r in cls]},
            ) from None


@dataclass(frozen=True)
class Message:
    """A single, immutable message of a conversation tree.

    Attributes:
        id: Unique identifier, assigned at creation and never reused
        parent_id: Identifier of the previous message, None only for the root
        sibling_index: 1-based position among the messages sharing parent_id
        role: Author of the message
        content: Message text, never empty

    Example:
        >>> root = Message.create(Role.SYSTEM, "You are a helpful assistant")
        >>> query = Message.create(Role.USER, "Hello", parent_id=root.id)
        >>> query.sibling_index
        1
    """
    role: Role
    content: str
    parent_id: uuid.UUID | None = None
    sibling_index: int = 1
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @classmethod
    def create(
        cls,
        role: Role,
        content: str,
        parent_id: uuid.UUID | None = None,
        sibling_index: int = 1,
    ) -> "Message":
        """Validate the fields and create a message with a fresh id.

        Args:
            role: Role of the message
            content: Message text
            parent_id: Parent message id, None only for system messages
            sibling_index: Position among siblings (starts at 1)

        Returns:
            New message

        Raises:
            ValidationError: If the content is empty or not a string, the
                index is not positive, or a non-system message has no parent
        """
        if not isinstance(content, str):
            raise ValidationError(
                f"Message content must be a string, got {type(content).__name__}",
                context={"role": role.value, "parent_id": str(parent_id)},
            )
        if not content:
            raise ValidationError(
                "Message must have a content",
                context={"role": role.value, "parent_id": str(parent_id)},
            )
        if parent_id is None and role is not Role.SYSTEM:
            raise ValidationError(
                "Parent can only be None when the role is system",
                context={"role": role.value},
            )
        if sibling_index < 1:
            raise ValidationError(
                f"Sibling index must be positive, got {sibling_index}",
                context={"sibling_index": sibling_index},
            )
        return cls(
            role=role,
            content=content,
            parent_id=parent_id,
            sibling_index=sibling_index,
        )

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def to_llm_message(self) -> LLMMessage:
        """Convert to the provider-facing message format."""
        return LLMMessage(role=self.role.value, content=self.content)

    def to_dict(self) -> Dict[str, Any]:
        """Convert message to dictionary for storage."""
        return {
            "id": str(self.id),
            "parent_id": str(self.parent_id) if self.parent_id is not None else None,
            "index": self.sibling_index,
            "role": self.role.value,
            "content": self.content,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        """Create message from dictionary.

        Field values are validated like in :meth:`create`, but the stored id
        is kept.
        """
        parent_id = data.get("parent_id")
        message = cls.create(
            role=Role.parse(data["role"]),
            content=data["content"],
            parent_id=uuid.UUID(str(parent_id)) if parent_id is not None else None,
            sibling_index=int(data["index"]),
        )
        return replace(message, id=uuid.UUID(str(data["id"])))
