"""Branching conversations.

Conversations are stored as trees where each node is an immutable message.
Re-querying an earlier assistant message (or the system root) creates a
sibling branch; completions with several samples create sibling assistant
messages.
"""

from branchgpt.conversations.message import Message, Role
from branchgpt.conversations.parameters import CompletionModel, CompletionParameters
from branchgpt.conversations.tree import MessageTree, TraversalIterator
from branchgpt.conversations.service import ConversationService
from branchgpt.conversations.storage import (
    SCHEMA_VERSION,
    ConversationCodec,
    ConversationDirectory,
    JsonCodec,
    YamlCodec,
    codec_for_path,
    conversation_from_dict,
    conversation_to_dict,
    load_conversation,
    save_conversation,
)

__all__ = [
    "Message",
    "Role",
    "CompletionModel",
    "CompletionParameters",
    "MessageTree",
    "TraversalIterator",
    "ConversationService",
    "SCHEMA_VERSION",
    "ConversationCodec",
    "ConversationDirectory",
    "JsonCodec",
    "YamlCodec",
    "codec_for_path",
    "conversation_from_dict",
    "conversation_to_dict",
    "load_conversation",
    "save_conversation",
]
