"""Branching message tree.

The tree is stored as a flat arena: a mapping from message id to message, plus
a derived index of children per parent that is maintained incrementally.
Messages reference their parent by id, so no message ever owns another one.

Invariants:
    - Exactly one message has ``parent_id is None``; it is the system root.
    - Every other ``parent_id`` refers to a message of the same tree.
    - Among siblings, ``sibling_index`` values are unique and follow creation
      order, starting at 1.

Example:
    ```python
    tree = MessageTree.create("You are a helpful assistant")
    root = tree.root()

    q1, q2 = tree.insert_children(root.id, ["Q1", "Q2"], Role.USER)
    tree.insert_children(q1.id, ["A1", "A2"], Role.ASSISTANT)

    [m.content for m in tree.path_to()]
    # ['You are a helpful assistant', 'Q1', 'A1']

    [m.content for m in tree]
    # ['You are a helpful assistant', 'Q1', 'A1', 'A2', 'Q2']
    ```
"""

import logging
import uuid
from collections import deque
from typing import Deque, Dict, Iterable, Iterator, List

from branchgpt.exceptions import (
    CorruptAggregateError,
    InvalidMessageRoleError,
    NotFoundError,
    ValidationError,
)
from branchgpt.conversations.message import Message, Role

logger = logging.getLogger(__name__)


class TraversalIterator(Iterator[Message]):
    """Lazy pre-order, depth-first walk over a message tree.

    Children are visited in ascending ``sibling_index`` order and each child's
    descendants are exhausted before its next sibling. The iterator never
    modifies the tree; create a new one to restart.
    """

    def __init__(self, tree: "MessageTree"):
        self._tree = tree
        self._stack: Deque[Message] = deque([tree.root()])

    def __iter__(self) -> "TraversalIterator":
        return self

    def __next__(self) -> Message:
        if not self._stack:
            raise StopIteration
        current = self._stack.popleft()
        self._stack.extendleft(reversed(self._tree.children_of(current.id)))
        return current


class MessageTree:
    """Arena of immutable messages forming a single rooted tree.

    Use :meth:`create` for a new conversation and :meth:`from_messages` when
    restoring persisted messages.
    """

    def __init__(self, root: Message):
        if not root.is_root or root.role is not Role.SYSTEM:
            raise CorruptAggregateError(
                "The root message must be a system message without parent",
                context={"message_id": str(root.id), "role": root.role.value},
            )
        self._root_id = root.id
        self._messages: Dict[uuid.UUID, Message] = {root.id: root}
        self._children: Dict[uuid.UUID, List[Message]] = {}

    @classmethod
    def create(cls, system_content: str) -> "MessageTree":
        """Create a tree holding only the system root message.

        Raises:
            ValidationError: If ``system_content`` is empty
        """
        return cls(Message.create(Role.SYSTEM, system_content))

    @classmethod
    def from_messages(cls, messages: Iterable[Message]) -> "MessageTree":
        """Rebuild a tree from previously persisted messages.

        Raises:
            CorruptAggregateError: If the messages do not form a valid tree
        """
        by_id: Dict[uuid.UUID, Message] = {}
        for message in messages:
            if message.id in by_id:
                raise CorruptAggregateError(
                    "Duplicate message id",
                    context={"message_id": str(message.id)},
                )
            by_id[message.id] = message

        roots = [m for m in by_id.values() if m.is_root]
        if len(roots) != 1:
            raise CorruptAggregateError(
                f"Expected exactly one root message, found {len(roots)}",
                context={"root_ids": [str(m.id) for m in roots]},
            )

        tree = cls(roots[0])
        for message in by_id.values():
            if message.is_root:
                continue
            if message.parent_id not in by_id:
                raise CorruptAggregateError(
                    "Message references a parent outside the conversation",
                    context={
                        "message_id": str(message.id),
                        "parent_id": str(message.parent_id),
                    },
                )
            tree._messages[message.id] = message
            tree._children.setdefault(message.parent_id, []).append(message)

        for children in tree._children.values():
            children.sort(key=lambda m: m.sibling_index)
        tree.validate()
        return tree

    def validate(self) -> None:
        """Check the structural invariants of the tree.

        Raises:
            CorruptAggregateError: On a missing or duplicated root, a dangling
                parent, duplicated sibling indices or a parent cycle
        """
        roots = [m for m in self._messages.values() if m.is_root]
        if len(roots) != 1 or roots[0].role is not Role.SYSTEM:
            raise CorruptAggregateError(
                "The tree must have exactly one system root message",
                context={"root_ids": [str(m.id) for m in roots]},
            )

        for parent_id, children in self._children.items():
            indexes = [m.sibling_index for m in children]
            if len(set(indexes)) != len(indexes):
                raise CorruptAggregateError(
                    "Sibling indexes must be unique",
                    context={"parent_id": str(parent_id), "indexes": indexes},
                )

        # Every message must reach the root without revisiting a message
        reachable = {self._root_id}
        for message in self._messages.values():
            seen: List[uuid.UUID] = []
            current = message
            while current.id not in reachable:
                if current.parent_id is None or current.parent_id not in self._messages:
                    raise CorruptAggregateError(
                        "Message references a parent outside the conversation",
                        context={"message_id": str(current.id)},
                    )
                seen.append(current.id)
                if len(seen) > len(self._messages):
                    raise CorruptAggregateError(
                        "Parent references form a cycle",
                        context={"message_id": str(message.id)},
                    )
                current = self._messages[current.parent_id]
            reachable.update(seen)

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._messages

    def __iter__(self) -> TraversalIterator:
        return TraversalIterator(self)

    def iter_depth_first(self) -> TraversalIterator:
        """Return a fresh depth-first iterator starting at the root."""
        return TraversalIterator(self)

    def messages(self) -> List[Message]:
        """All messages of the tree, in no particular order."""
        return list(self._messages.values())

    def get(self, message_id: uuid.UUID) -> Message:
        """Look up a message by id.

        Raises:
            NotFoundError: If no message has this id
        """
        message = self._messages.get(message_id)
        if message is None:
            raise NotFoundError(
                "Message is not part of the conversation",
                context={"message_id": str(message_id)},
            )
        return message

    def root(self) -> Message:
        """Return the system root message."""
        return self._messages[self._root_id]

    def children_of(self, message_id: uuid.UUID) -> List[Message]:
        """Children of a message, sorted by ascending sibling index.

        Unknown ids and leaves both yield an empty list.
        """
        return list(self._children.get(message_id, ()))

    def siblings_of(self, message_id: uuid.UUID) -> List[Message]:
        """Messages sharing the parent of ``message_id``, including itself.

        The root has no siblings, so ``[root]`` is returned for it.

        Raises:
            NotFoundError: If no message has this id
        """
        message = self.get(message_id)
        if message.parent_id is None:
            return [message]
        return self.children_of(message.parent_id)

    def frontier(self) -> List[Message]:
        """Messages that are not the parent of any other message.

        These are the latest messages of every branch, sorted by id so the
        order is stable for a given tree.
        """
        leaves = [m for m in self._messages.values() if not self._children.get(m.id)]
        return sorted(leaves, key=lambda m: str(m.id))

    def ancestry(self, message_id: uuid.UUID) -> List[Message]:
        """Messages from the root down to ``message_id`` (inclusive).

        Raises:
            NotFoundError: If no message has this id
        """
        path: Deque[Message] = deque()
        current: Message | None = self.get(message_id)
        while current is not None:
            path.appendleft(current)
            current = self._messages[current.parent_id] if current.parent_id is not None else None
        return list(path)

    def depth(self, message_id: uuid.UUID) -> int:
        """Number of edges between the root and ``message_id``."""
        return len(self.ancestry(message_id)) - 1

    def path_to(self, anchor_id: uuid.UUID | None = None) -> List[Message]:
        """Linear view of the conversation through an anchor message.

        Walks from the root to the anchor, then continues below the anchor
        by always taking the child with the lowest sibling index until a leaf
        is reached. Without an anchor the root is used.

        Args:
            anchor_id: Message that must appear in the returned path

        Returns:
            Messages from root to a leaf, each the parent of the next

        Raises:
            NotFoundError: If ``anchor_id`` is not part of the tree
        """
        anchor = self.root() if anchor_id is None else self.get(anchor_id)
        path = self.ancestry(anchor.id)

        children = self._children.get(anchor.id)
        while children:
            first = children[0]
            path.append(first)
            children = self._children.get(first.id)
        return path

    def insert_children(
        self,
        parent_id: uuid.UUID,
        contents: List[str],
        role: Role,
    ) -> List[Message]:
        """Append new messages as the youngest children of ``parent_id``.

        Each new message gets ``sibling_index`` = existing children + its
        position in ``contents`` + 1. All messages are validated before any is
        inserted, so a failure leaves the tree unchanged.

        Args:
            parent_id: Id of the parent message
            contents: Content of each new message, in order
            role: Role of the new messages (user or assistant)

        Returns:
            The inserted messages, in input order

        Raises:
            NotFoundError: If the parent is not part of the tree
            InvalidMessageRoleError: If ``role`` is system
            ValidationError: If ``contents`` is empty or holds empty content
        """
        if parent_id not in self._messages:
            raise NotFoundError(
                "Parent message is not part of the conversation",
                context={"parent_id": str(parent_id)},
            )
        if role is Role.SYSTEM:
            raise InvalidMessageRoleError(
                "Only the root can be a system message",
                context={"parent_id": str(parent_id), "role": role.value},
            )
        if not contents:
            raise ValidationError(
                "At least one message content is required",
                context={"parent_id": str(parent_id)},
            )

        siblings = self._children.get(parent_id, [])
        next_index = siblings[-1].sibling_index + 1 if siblings else 1
        created = [
            Message.create(role, content, parent_id=parent_id, sibling_index=next_index + i)
            for i, content in enumerate(contents)
        ]

        for message in created:
            self._messages[message.id] = message
        self._children.setdefault(parent_id, []).extend(created)

        logger.debug(f"Inserted {len(created)} {role.value} message(s) under {parent_id}")
        return created
