"""CLI entrypoint for agent-relay."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import rich_click as click

from agent_relay import __version__
from agent_relay.config import BUILTIN_AGENT_IDS, env_bool
from agent_relay.orchestrator.controllers import (
    AgentsCreateCommand,
    AgentsDeleteCommand,
    AgentsEditCommand,
    AgentsListCommand,
    AskCommand,
    ChatCommand,
    CommandResult,
    NotesForgetCommand,
    NotesListCommand,
    NotesRememberCommand,
    PingCommand,
    RelayCliController,
)

click.rich_click.USE_MARKDOWN = True
CONTROLLER = RelayCliController()

_DATA_DIR_HELP = (
    "Data directory for custom agents, notes and sessions. Defaults to AGENT_RELAY_DATA_DIR."
)


def configure_logging(*, debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@click.group()
@click.version_option(version=__version__, prog_name="agent-relay")
@click.option(
    "--debug/--no-debug",
    default=None,
    help="Verbose logging. Defaults to AGENT_RELAY_DEBUG.",
)
def agent_relay(debug: bool | None) -> None:
    """Relay chat tasks to Claude Code, Gemini CLI and Codex CLI agents."""

    if debug is None:
        try:
            debug = env_bool("AGENT_RELAY_DEBUG", default=False)
        except ValueError as error:
            raise click.ClickException(f"Invalid configuration: {error}") from error
    configure_logging(debug=debug)


@agent_relay.group()
def agents() -> None:
    """Built-in and custom agent catalog."""


@agents.command("list")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help=_DATA_DIR_HELP)
def agents_list(data_dir: Path | None) -> None:
    """List built-in agents with their aliases, then custom agents."""

    _run(CONTROLLER.list_agents, AgentsListCommand(data_dir=data_dir))


@agents.command("create")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help=_DATA_DIR_HELP)
@click.option(
    "--name",
    required=True,
    help='Display name, optionally with a leading emoji: "🦑 Kraken".',
)
@click.option(
    "--engine",
    type=click.Choice(list(BUILTIN_AGENT_IDS), case_sensitive=False),
    default="claude",
    show_default=True,
    help="Built-in CLI that runs this agent.",
)
@click.option("--description", default="", help="Short description shown in listings.")
@click.option("--system-prompt", required=True, help="Instructions injected before every task.")
def agents_create(
    data_dir: Path | None,
    name: str,
    engine: str,
    description: str,
    system_prompt: str,
) -> None:
    """Create a custom agent, or update the one with the same generated id."""

    _run(
        CONTROLLER.create_agent,
        AgentsCreateCommand(
            data_dir=data_dir,
            name=name,
            engine=engine,
            description=description,
            system_prompt=system_prompt,
        ),
    )


@agents.command("edit")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help=_DATA_DIR_HELP)
@click.option("--name", default=None, help="New display name, optionally with a leading emoji.")
@click.option(
    "--engine",
    type=click.Choice(list(BUILTIN_AGENT_IDS), case_sensitive=False),
    default=None,
    help="Built-in CLI that runs this agent.",
)
@click.option("--description", default=None, help="Short description shown in listings.")
@click.option("--system-prompt", default=None, help="Instructions injected before every task.")
@click.argument("agent_id")
def agents_edit(  # noqa: PLR0913
    data_dir: Path | None,
    name: str | None,
    engine: str | None,
    description: str | None,
    system_prompt: str | None,
    agent_id: str,
) -> None:
    """Edit a custom agent in place; its id never changes."""

    _run(
        CONTROLLER.edit_agent,
        AgentsEditCommand(
            data_dir=data_dir,
            agent_id=agent_id,
            name=name,
            description=description,
            system_prompt=system_prompt,
            engine=engine,
        ),
    )


@agents.command("delete")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help=_DATA_DIR_HELP)
@click.argument("agent_id")
def agents_delete(data_dir: Path | None, agent_id: str) -> None:
    """Delete a custom agent by id."""

    _run(CONTROLLER.delete_agent, AgentsDeleteCommand(data_dir=data_dir, agent_id=agent_id))


@agent_relay.command("ask")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help=_DATA_DIR_HELP)
@click.option("--agent", default=None, help="Agent alias or custom agent id.")
@click.option(
    "--user",
    "user_id",
    default=None,
    help="Reuse and extend the stored session of this user.",
)
@click.argument("prompt")
def ask(data_dir: Path | None, agent: str | None, user_id: str | None, prompt: str) -> None:
    """Send one prompt to an agent and print the answer."""

    _run(
        CONTROLLER.ask,
        AskCommand(data_dir=data_dir, prompt=prompt, agent=agent, user_id=user_id),
    )


@agent_relay.command("chat")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help=_DATA_DIR_HELP)
@click.option("--user", "user_id", default="console", show_default=True, help="Session owner.")
def chat(data_dir: Path | None, user_id: str) -> None:
    """Interactive chat with background task handling.

    Long tasks keep running while you type; messages sent meanwhile are
    answered by the active agent. Use `/help` for commands.
    """

    _run(CONTROLLER.chat, ChatCommand(data_dir=data_dir, user_id=user_id))


@agent_relay.command("ping")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help=_DATA_DIR_HELP)
@click.option(
    "--agent",
    "agents_",
    multiple=True,
    help="Agent alias to ping. Repeat to ping several; defaults to all built-in agents.",
)
def ping(data_dir: Path | None, agents_: tuple[str, ...]) -> None:
    """Check that agent CLIs are installed and answer a synthetic prompt."""

    _run(CONTROLLER.ping, PingCommand(data_dir=data_dir, agents=agents_))


@agent_relay.group()
def notes() -> None:
    """Notes injected into prompts as memories."""


@notes.command("remember")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help=_DATA_DIR_HELP)
@click.argument("text")
def notes_remember(data_dir: Path | None, text: str) -> None:
    """Save a note."""

    _run(CONTROLLER.remember, NotesRememberCommand(data_dir=data_dir, text=text))


@notes.command("list")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help=_DATA_DIR_HELP)
@click.option("--page", type=click.IntRange(min=1), default=1, show_default=True)
@click.option("--limit", type=click.IntRange(min=1, max=100), default=10, show_default=True)
def notes_list(data_dir: Path | None, page: int, limit: int) -> None:
    """List notes, newest first."""

    _run(CONTROLLER.list_notes, NotesListCommand(data_dir=data_dir, page=page, limit=limit))


@notes.command("forget")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help=_DATA_DIR_HELP)
@click.argument("note_id")
def notes_forget(data_dir: Path | None, note_id: str) -> None:
    """Delete a note by id, or `last` for the newest one."""

    _run(CONTROLLER.forget, NotesForgetCommand(data_dir=data_dir, note_id=note_id))


def _run(action: Callable[[Any], CommandResult], command: object) -> None:
    try:
        result = action(command)
    except ValueError as error:
        raise click.ClickException(f"Invalid configuration: {error}") from error
    _emit(result)


def _emit(result: CommandResult) -> None:
    for line in result.lines:
        click.echo(line)
    if not result.success:
        raise click.ClickException("Command failed.")


if __name__ == "__main__":  # pragma: no cover
    agent_relay()
