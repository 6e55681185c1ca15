"""Conversation persistence.

This module provides:
- ConversationCodec: text codecs for the persisted aggregate (YAML, JSON)
- conversation_to_dict / conversation_from_dict: the logical schema
- save_conversation / load_conversation: file persistence
- ConversationDirectory: discovery of the conversations stored in a directory

Schema Versioning:
    The storage format uses semantic versioning (MAJOR.MINOR.PATCH).
    Current schema version: 1.0.0. Files written before versioning was
    introduced carry no ``schema_version`` and are read as 0.0.0.

Serialization Format:
    ```yaml
    schema_version: 1.0.0
    name: Trip planning
    default_parameters:
      temperature: 1.0
      n: 1
      model: gpt-3.5-turbo
      max_tokens: 512
    interactions:
      5b0c...:
        id: 5b0c...
        parent_id: null
        index: 1
        role: system
        content: You are a helpful assistant
      9e41...:
        id: 9e41...
        parent_id: 5b0c...
        index: 1
        role: user
        content: Where should I go in May?
    ```

    Stored keys differ from attribute names in two places: ``index`` holds
    ``Message.sibling_index`` and ``max_tokens`` is the maximum number of
    output tokens per response.

    Interactions are written in depth-first order, so saving an unchanged
    conversation always produces the same bytes. The storage location is not
    part of the payload: it is bound to the path used for loading.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Union

import aiofiles
import aiofiles.os
import yaml

from branchgpt.exceptions import (
    BranchGPTError,
    CorruptAggregateError,
    SchemaVersionError,
    SerializationError,
    StorageError,
    ValidationError,
)
from branchgpt.conversations.message import Message
from branchgpt.conversations.parameters import CompletionParameters
from branchgpt.conversations.service import ConversationService
from branchgpt.conversations.tree import MessageTree

# Current schema version - increment when making schema changes
SCHEMA_VERSION = "1.0.0"

CONVERSATION_PREFIX = "conversation_"
CONVERSATION_SUFFIXES = (".yaml", ".yml", ".json")

logger = logging.getLogger(__name__)


class ConversationCodec(ABC):
    """Converts the persisted aggregate between a dict and text."""

    @abstractmethod
    def encode(self, data: Dict[str, Any]) -> str:
        pass

    @abstractmethod
    def decode(self, text: str) -> Dict[str, Any]:
        pass


class YamlCodec(ConversationCodec):
    """YAML codec, the default format for conversation files."""

    def encode(self, data: Dict[str, Any]) -> str:
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)

    def decode(self, text: str) -> Dict[str, Any]:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise SerializationError(f"Invalid YAML: {e}", context={"format": "yaml"}) from e
        if not isinstance(data, dict):
            raise SerializationError(
                "Conversation document must be a mapping",
                context={"format": "yaml", "data_type": type(data).__name__},
            )
        return data


class JsonCodec(ConversationCodec):
    """JSON codec."""

    def __init__(self, indent: int | None = 2):
        self.indent = indent

    def encode(self, data: Dict[str, Any]) -> str:
        return json.dumps(data, indent=self.indent, ensure_ascii=False) + "\n"

    def decode(self, text: str) -> Dict[str, Any]:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise SerializationError(f"Invalid JSON: {e}", context={"format": "json"}) from e
        if not isinstance(data, dict):
            raise SerializationError(
                "Conversation document must be an object",
                context={"format": "json", "data_type": type(data).__name__},
            )
        return data


def codec_for_path(path: Union[str, Path]) -> ConversationCodec:
    """Pick the codec matching the file extension (YAML unless ``.json``)."""
    if Path(path).suffix.lower() == ".json":
        return JsonCodec()
    return YamlCodec()


def conversation_to_dict(service: ConversationService) -> Dict[str, Any]:
    """Convert a conversation to its persisted dictionary form."""
    return {
        "schema_version": SCHEMA_VERSION,
        "name": service.name,
        "default_parameters": service.default_parameters.to_dict(),
        "interactions": {str(m.id): m.to_dict() for m in service.tree},
    }


def conversation_from_dict(
    data: Dict[str, Any],
    path: Union[str, Path],
) -> ConversationService:
    """Rebuild a conversation from its persisted dictionary form.

    Args:
        data: Persisted aggregate
        path: Location to bind the conversation to

    Raises:
        SerializationError: If required keys are missing or malformed
        SchemaVersionError: If the data uses a newer schema major version
        CorruptAggregateError: If the messages do not form a valid tree
    """
    stored_version = str(data.get("schema_version", "0.0.0"))
    if stored_version != SCHEMA_VERSION:
        logger.info(f"Migrating conversation {path} from schema {stored_version} to {SCHEMA_VERSION}")
        data = _migrate_schema(dict(data), stored_version, SCHEMA_VERSION)

    try:
        interactions = data["interactions"]
        if not isinstance(interactions, dict):
            raise TypeError(f"interactions must be a mapping, got {type(interactions).__name__}")
        messages: List[Message] = []
        for key, value in interactions.items():
            message = Message.from_dict(value)
            if str(message.id) != str(key):
                raise ValueError(f"interaction key {key} does not match id {message.id}")
            messages.append(message)
        parameters = CompletionParameters.from_dict(data["default_parameters"])
        name = str(data.get("name") or "")
    except ValidationError as e:
        raise CorruptAggregateError(
            f"Invalid conversation data: {e}",
            context={"path": str(path), **e.context},
        ) from e
    except BranchGPTError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise SerializationError(
            f"Malformed conversation data: {e}",
            context={"path": str(path), "error": str(e)},
        ) from e

    tree = MessageTree.from_messages(messages)
    return ConversationService(tree, parameters, path, name=name)


def _migrate_schema(data: Dict[str, Any], from_version: str, to_version: str) -> Dict[str, Any]:
    """Migrate data from one schema version to another.

    Raises:
        SchemaVersionError: If the stored version is newer or unparsable
    """
    try:
        from_major = int(from_version.split(".")[0])
        to_major = int(to_version.split(".")[0])
    except ValueError:
        raise SchemaVersionError(
            f"Invalid schema version: {from_version}",
            context={"schema_version": from_version},
        ) from None

    if from_version == "0.0.0":
        # Unversioned files share the 1.0.0 layout
        logger.debug("Migrating from unversioned schema to 1.0.0 (no changes needed)")
        data["schema_version"] = "1.0.0"
        return data

    if from_major > to_major:
        raise SchemaVersionError(
            f"Cannot downgrade from schema {from_version} to {to_version}",
            context={"schema_version": from_version, "supported": to_version},
        )

    logger.warning(f"No migration path defined from {from_version} to {to_version}. Using data as-is.")
    data["schema_version"] = to_version
    return data


async def _write_atomic(path: Path, text: str) -> None:
    await aiofiles.os.makedirs(path.parent, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(text)
        await aiofiles.os.replace(tmp_path, path)
    except BaseException:
        if await aiofiles.os.path.exists(tmp_path):
            await aiofiles.os.remove(tmp_path)
        raise


async def _read_text(path: Path) -> str:
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        return await f.read()


async def save_conversation(
    service: ConversationService,
    codec: ConversationCodec | None = None,
) -> None:
    """Write a conversation to its path, replacing any previous version.

    Raises:
        StorageError: If the file cannot be written
    """
    path = service.path
    codec = codec or codec_for_path(path)
    text = codec.encode(conversation_to_dict(service))
    try:
        await _write_atomic(path, text)
    except OSError as e:
        raise StorageError(
            f"Couldn't write conversation: {e}",
            context={"path": str(path)},
        ) from e
    logger.info(f"Saved conversation '{service.name}' to {path}")


async def load_conversation(
    path: Union[str, Path],
    codec: ConversationCodec | None = None,
) -> ConversationService:
    """Read a conversation and bind it to ``path``.

    Raises:
        StorageError: If the file cannot be read
        SerializationError: If the file cannot be decoded
        CorruptAggregateError: If the messages do not form a valid tree
    """
    path = Path(path)
    codec = codec or codec_for_path(path)
    try:
        text = await _read_text(path)
    except OSError as e:
        raise StorageError(
            f"Couldn't read conversation: {e}",
            context={"path": str(path)},
        ) from e
    except UnicodeDecodeError as e:
        raise SerializationError(
            f"Conversation file is not valid UTF-8: {e}",
            context={"path": str(path), "position": e.start},
        ) from e

    service = conversation_from_dict(codec.decode(text), path)
    logger.info(f"Loaded conversation '{service.name}' from {path} ({len(service.tree)} messages)")
    return service


class ConversationDirectory:
    """Helps discovering and creating conversation files in a directory.

    Example:
        ```python
        directory = ConversationDirectory("~/.branchgpt")
        service = ConversationService.build(params, directory.new_path(), "Be brief")
        await service.save()

        for conversation in await directory.find_conversations():
            print(conversation.name, conversation.path)
        ```
    """

    def __init__(self, base_path: Union[str, Path]):
        """Create the directory if needed.

        Raises:
            StorageError: If the path exists and is not a directory, or
                cannot be created
        """
        self.base_path = Path(base_path).expanduser()
        if self.base_path.exists() and not self.base_path.is_dir():
            raise StorageError(
                f"Path {self.base_path} points to a file",
                context={"path": str(self.base_path)},
            )
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Couldn't create directory: {e}",
                context={"path": str(self.base_path)},
            ) from e

    def list_paths(self) -> List[Path]:
        """Conversation files in the directory, sorted by name."""
        return sorted(
            p for p in self.base_path.iterdir()
            if p.is_file() and p.suffix.lower() in CONVERSATION_SUFFIXES
        )

    async def find_conversations(self) -> List[ConversationService]:
        """Load every readable conversation in the directory.

        Files that fail to load are logged and skipped.
        """
        conversations = []
        for path in self.list_paths():
            try:
                conversations.append(await load_conversation(path))
            except BranchGPTError as e:
                logger.warning(f"Skipping {path}: {e}")
        return conversations

    def new_path(self, now: datetime | None = None) -> Path:
        """Unused path named after the current time.

        Returns:
            e.g. ``<base>/conversation_20240101120000.yaml``
        """
        stamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
        path = self.base_path / f"{CONVERSATION_PREFIX}{stamp}.yaml"
        counter = 1
        while path.exists():
            path = self.base_path / f"{CONVERSATION_PREFIX}{stamp}_{counter}.yaml"
            counter += 1
        return path
