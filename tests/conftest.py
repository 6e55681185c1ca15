"""Shared fixtures for branchgpt tests."""

import pytest

from branchgpt.conversations import CompletionParameters, ConversationService, Role
from branchgpt.llm import EchoProvider


@pytest.fixture
def parameters():
    """Default completion parameters."""
    return CompletionParameters()


@pytest.fixture
def service(tmp_path, parameters):
    """Fresh conversation bound to a temporary file."""
    return ConversationService.build(parameters, tmp_path / "conversation.yaml", "S")


@pytest.fixture
def echo_provider():
    """Echo provider without network access."""
    return EchoProvider({"provider": "echo"})


@pytest.fixture
def branched_service(service):
    """Conversation with two query branches and two answers to the first.

    Layout::

        S
        ├── Q1
        │   ├── A1
        │   └── A2
        └── Q2
    """
    root = service.root()
    q1, _ = service.add_queries(root.id, ["Q1", "Q2"])
    service.tree.insert_children(q1.id, ["A1", "A2"], Role.ASSISTANT)
    return service


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep user settings out of the tests."""
    monkeypatch.delenv("BRANCHGPT_CONFIG", raising=False)
    for name in ("PROVIDER", "MODEL", "TEMPERATURE", "N", "MAX_TOKENS", "API_KEY", "CONVERSATIONS_DIR"):
        monkeypatch.delenv(f"BRANCHGPT_{name}", raising=False)
