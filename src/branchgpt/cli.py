"""Command-line interface for branchgpt.

Commands:
- new: create a conversation file seeded with a system message
- complete: add a query to a conversation and complete it
- show: print one linear view, or the whole tree, of a conversation
- list: list the conversations stored in a directory
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from . import __version__
from .config import BranchGPTSettings
from .conversations import ConversationDirectory, ConversationService, Message, Role
from .exceptions import BranchGPTError
from .llm import create_llm_provider

console = Console()

ROLE_STYLES = {
    Role.SYSTEM: "bold magenta",
    Role.USER: "bold yellow",
    Role.ASSISTANT: "bold cyan",
}


def _fail(error: BranchGPTError) -> NoReturn:
    raise click.ClickException(str(error)) from error


def _label(message: Message) -> str:
    style = ROLE_STYLES[message.role]
    return f"[{style}]--{message.role.value}[/{style}] [dim]{message.id}[/dim]"


def _print_messages(messages: list[Message]) -> None:
    for message in messages:
        console.print(_label(message))
        console.print(message.content, markup=False, highlight=False)


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="YAML settings file")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool):
    """branchgpt - branching conversations with chat models"""
    try:
        settings = BranchGPTSettings.load(config_path)
    except BranchGPTError as e:
        _fail(e)
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = settings


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.argument("name")
@click.argument("system_query")
@click.option("--max-tokens", "-m", type=int, help="Maximum tokens per response")
@click.option("--temperature", "-t", type=float, help="Sampling temperature (0.0-2.0)")
@click.option("--model", help="Model identifier, e.g. gpt-4")
@click.option("-n", "samples", type=int, help="Responses generated per query")
@click.pass_obj
def new(
    settings: BranchGPTSettings,
    path: Path,
    name: str,
    system_query: str,
    max_tokens: int | None,
    temperature: float | None,
    model: str | None,
    samples: int | None,
):
    """Create a new conversation at PATH"""
    overrides = {
        "max_tokens": max_tokens,
        "temperature": temperature,
        "model": model,
        "n": samples,
    }
    settings = settings.clone(**{k: v for k, v in overrides.items() if v is not None})

    async def create() -> None:
        service = ConversationService.build(settings.completion_parameters(), path, system_query)
        service.set_name(name)
        await service.save()

    try:
        asyncio.run(create())
    except BranchGPTError as e:
        _fail(e)
    console.print(f"Conversation saved at: {path}", markup=False, highlight=False)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("query")
@click.option("--parent", type=click.UUID, help="Message to branch from (default: end of the main branch)")
@click.option("-n", "samples", type=int, help="Responses to generate")
@click.pass_obj
def complete(
    settings: BranchGPTSettings,
    path: Path,
    query: str,
    parent: uuid.UUID | None,
    samples: int | None,
):
    """Add QUERY to the conversation at PATH and complete it"""

    async def run_completion() -> list[Message]:
        service = await ConversationService.load(path)
        parent_id = parent or service.message_list()[-1].id
        added = service.add_queries(parent_id, [query])

        async with create_llm_provider(settings.provider_config()) as llm:
            responses = await service.complete(added[0].id, llm, samples)

        await service.save()
        return responses

    try:
        responses = asyncio.run(run_completion())
    except BranchGPTError as e:
        _fail(e)
    _print_messages(responses)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--anchor", type=click.UUID, help="Message the linear view must go through")
@click.option("--tree", "as_tree", is_flag=True, help="Show every branch")
def show(path: Path, anchor: uuid.UUID | None, as_tree: bool):
    """Show the conversation at PATH"""
    try:
        service = asyncio.run(ConversationService.load(path))
        messages = service.message_list(anchor)
    except BranchGPTError as e:
        _fail(e)

    if service.name:
        console.print(f"[bold]{escape(service.name)}[/bold]")

    if not as_tree:
        _print_messages(messages)
        return

    root = service.root()
    nodes = {root.id: Tree(_label(root))}
    for message in service:
        if message.parent_id is None:
            continue
        branch = nodes[message.parent_id].add(
            f"{_label(message)} [dim]#{message.sibling_index}[/dim]\n{escape(message.content)}"
        )
        nodes[message.id] = branch
    console.print(nodes[root.id])


@cli.command(name="list")
@click.argument("directory", required=False, type=click.Path(file_okay=False, path_type=Path))
@click.pass_obj
def list_conversations(settings: BranchGPTSettings, directory: Path | None):
    """List the conversations stored in DIRECTORY"""
    try:
        conversation_dir = ConversationDirectory(directory or settings.conversations_path)
        conversations = asyncio.run(conversation_dir.find_conversations())
    except BranchGPTError as e:
        _fail(e)

    table = Table(title=str(conversation_dir.base_path))
    table.add_column("File")
    table.add_column("Name")
    table.add_column("Model")
    table.add_column("Messages", justify="right")
    table.add_column("Branches", justify="right")
    for service in conversations:
        table.add_row(
            service.path.name,
            escape(service.name),
            service.default_parameters.model.value,
            str(len(service.tree)),
            str(len(service.latest_messages())),
        )
    console.print(table)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
