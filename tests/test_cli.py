"""Tests for the branchgpt command-line interface."""

import pytest
import yaml
from click.testing import CliRunner

from branchgpt import __version__
from branchgpt.cli import cli
from branchgpt.conversations import SCHEMA_VERSION


@pytest.fixture
def runner():
    """Create CLI runner."""
    return CliRunner()


@pytest.fixture
def echo_env():
    """Environment selecting the offline echo provider."""
    return {"BRANCHGPT_PROVIDER": "echo"}


@pytest.fixture
def conversation_file(runner, tmp_path, echo_env):
    """Conversation created through the CLI."""
    path = tmp_path / "chat.yaml"
    result = runner.invoke(cli, ["new", str(path), "Trip", "Be brief"], env=echo_env)
    assert result.exit_code == 0, result.output
    return path


def read(path):
    return yaml.safe_load(path.read_text())


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_cli_help(self, runner):
        """Test CLI help command."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("new", "complete", "show", "list"):
            assert command in result.output

    def test_cli_version(self, runner):
        """Test version command."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_invalid_config_file(self, runner, tmp_path):
        """Test an unreadable settings file."""
        result = runner.invoke(cli, ["--config", str(tmp_path / "missing.yaml"), "list", str(tmp_path)])
        assert result.exit_code != 0
        assert "Configuration file not readable" in result.output


class TestNewCommand:
    """Test the new command."""

    def test_new(self, runner, conversation_file):
        """Test a conversation file is written."""
        data = read(conversation_file)

        assert data["schema_version"] == SCHEMA_VERSION
        assert data["name"] == "Trip"
        interactions = list(data["interactions"].values())
        assert len(interactions) == 1
        assert interactions[0]["role"] == "system"
        assert interactions[0]["content"] == "Be brief"

    def test_new_with_parameters(self, runner, tmp_path):
        """Test parameter options are stored as defaults."""
        path = tmp_path / "chat.yaml"
        result = runner.invoke(
            cli,
            ["new", str(path), "Trip", "Be brief", "-m", "64", "-t", "0.5", "--model", "gpt-4", "-n", "2"],
        )

        assert result.exit_code == 0, result.output
        assert read(path)["default_parameters"] == {
            "temperature": 0.5,
            "n": 2,
            "model": "gpt-4",
            "max_tokens": 64,
        }

    def test_new_invalid_temperature(self, runner, tmp_path):
        """Test invalid parameters are reported."""
        path = tmp_path / "chat.yaml"
        result = runner.invoke(cli, ["new", str(path), "Trip", "Be brief", "-t", "9"])

        assert result.exit_code != 0
        assert "Temperature" in result.output
        assert not path.exists()


class TestCompleteCommand:
    """Test the complete command."""

    def test_complete(self, runner, conversation_file, echo_env):
        """Test a query and its answer are added and saved."""
        result = runner.invoke(cli, ["complete", str(conversation_file), "Hello"], env=echo_env)

        assert result.exit_code == 0, result.output
        assert "Echo: Hello" in result.output

        contents = [m["content"] for m in read(conversation_file)["interactions"].values()]
        assert contents == ["Be brief", "Hello", "Echo: Hello"]

    def test_complete_continues_main_branch(self, runner, conversation_file, echo_env):
        """Test the next query follows the previous answer."""
        runner.invoke(cli, ["complete", str(conversation_file), "First"], env=echo_env)
        result = runner.invoke(cli, ["complete", str(conversation_file), "Second"], env=echo_env)

        assert result.exit_code == 0, result.output
        interactions = list(read(conversation_file)["interactions"].values())
        assert [m["content"] for m in interactions] == [
            "Be brief", "First", "Echo: First", "Second", "Echo: Second",
        ]
        assert interactions[3]["parent_id"] == interactions[2]["id"]

    def test_complete_with_parent_and_samples(self, runner, conversation_file, echo_env):
        """Test branching from the root with several samples."""
        root_id = next(iter(read(conversation_file)["interactions"]))
        runner.invoke(cli, ["complete", str(conversation_file), "First"], env=echo_env)

        result = runner.invoke(
            cli,
            ["complete", str(conversation_file), "Other", "--parent", root_id, "-n", "2"],
            env=echo_env,
        )

        assert result.exit_code == 0, result.output
        interactions = list(read(conversation_file)["interactions"].values())
        other = next(m for m in interactions if m["content"] == "Other")
        assert other["parent_id"] == root_id
        assert other["index"] == 2
        answers = [m for m in interactions if m["parent_id"] == other["id"]]
        assert [m["content"] for m in answers] == ["Echo: Other [1]", "Echo: Other [2]"]

    def test_complete_under_user_message(self, runner, conversation_file, echo_env):
        """Test an invalid parent is reported and nothing is saved."""
        runner.invoke(cli, ["complete", str(conversation_file), "First"], env=echo_env)
        data = read(conversation_file)
        query_id = next(k for k, v in data["interactions"].items() if v["role"] == "user")

        result = runner.invoke(
            cli,
            ["complete", str(conversation_file), "Again", "--parent", query_id],
            env=echo_env,
        )

        assert result.exit_code != 0
        assert "assistant or system" in result.output
        assert read(conversation_file) == data

    def test_complete_missing_file(self, runner, tmp_path, echo_env):
        """Test completing a conversation that does not exist."""
        result = runner.invoke(cli, ["complete", str(tmp_path / "missing.yaml"), "Hi"], env=echo_env)
        assert result.exit_code != 0


class TestShowCommand:
    """Test the show command."""

    def test_show(self, runner, conversation_file, echo_env):
        """Test the linear view."""
        runner.invoke(cli, ["complete", str(conversation_file), "Hello"], env=echo_env)

        result = runner.invoke(cli, ["show", str(conversation_file)])

        assert result.exit_code == 0, result.output
        assert "Trip" in result.output
        assert "Be brief" in result.output
        assert "Echo: Hello" in result.output

    def test_show_tree(self, runner, conversation_file, echo_env):
        """Test the tree view shows every branch."""
        root_id = next(iter(read(conversation_file)["interactions"]))
        runner.invoke(cli, ["complete", str(conversation_file), "First"], env=echo_env)
        runner.invoke(
            cli, ["complete", str(conversation_file), "Other", "--parent", root_id], env=echo_env
        )

        linear = runner.invoke(cli, ["show", str(conversation_file)])
        tree = runner.invoke(cli, ["show", str(conversation_file), "--tree"])

        assert tree.exit_code == 0, tree.output
        assert "Other" not in linear.output
        assert "First" in tree.output
        assert "Other" in tree.output

    def test_show_unknown_anchor(self, runner, conversation_file):
        """Test an anchor outside the conversation."""
        result = runner.invoke(
            cli,
            ["show", str(conversation_file), "--anchor", "00000000-0000-0000-0000-000000000000"],
        )
        assert result.exit_code != 0


class TestListCommand:
    """Test the list command."""

    def test_list(self, runner, conversation_file):
        """Test conversations in a directory are listed."""
        result = runner.invoke(cli, ["list", str(conversation_file.parent)])

        assert result.exit_code == 0, result.output
        assert "chat.yaml" in result.output
        assert "Trip" in result.output

    def test_list_default_directory(self, runner, tmp_path):
        """Test the configured directory is used by default."""
        conversations = tmp_path / "conversations"
        result = runner.invoke(cli, ["list"], env={"BRANCHGPT_CONVERSATIONS_DIR": str(conversations)})

        assert result.exit_code == 0, result.output
        assert conversations.is_dir()
