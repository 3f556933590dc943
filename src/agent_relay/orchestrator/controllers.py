"""Controllers for agent-relay CLI commands."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path

from agent_relay.config import Settings
from agent_relay.console import HELP_TEXT, ConsoleChat, ConsoleSession
from agent_relay.memory import NotesStore, PersonaProvider
from agent_relay.orchestrator.backend import CliAgentBackend
from agent_relay.orchestrator.context import ContextBuilder
from agent_relay.orchestrator.custom_agents import (
    CustomAgentError,
    CustomAgentStore,
    split_leading_emoji,
)
from agent_relay.orchestrator.dispatcher import AgentDispatcher
from agent_relay.orchestrator.models import AgentRunError, Session
from agent_relay.orchestrator.registry import AgentRegistry
from agent_relay.orchestrator.sessions import SessionStore
from agent_relay.orchestrator.smoke import probe_binaries, run_ping
from agent_relay.orchestrator.worker import TaskOrchestrator

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RelayRuntime:
    """Fully wired object graph for one process."""

    settings: Settings
    custom_agents: CustomAgentStore
    registry: AgentRegistry
    persona: PersonaProvider
    notes: NotesStore
    sessions: SessionStore
    dispatcher: AgentDispatcher
    orchestrator: TaskOrchestrator


@dataclass(slots=True)
class CommandResult:
    """Output lines to render and whether the command succeeded."""

    lines: list[str]
    success: bool = True


@dataclass(slots=True)
class AgentsListCommand:
    """CLI input for the agent catalog listing."""

    data_dir: Path | None


@dataclass(slots=True)
class AgentsCreateCommand:
    """CLI input for custom agent creation."""

    data_dir: Path | None
    name: str
    engine: str
    description: str
    system_prompt: str


@dataclass(slots=True)
class AgentsEditCommand:
    """CLI input for editing a custom agent; `None` leaves a field unchanged."""

    data_dir: Path | None
    agent_id: str
    name: str | None = None
    description: str | None = None
    system_prompt: str | None = None
    engine: str | None = None


@dataclass(slots=True)
class AgentsDeleteCommand:
    """CLI input for custom agent removal."""

    data_dir: Path | None
    agent_id: str


@dataclass(slots=True)
class AskCommand:
    """CLI input for a one-shot dispatch."""

    data_dir: Path | None
    prompt: str
    agent: str | None
    user_id: str | None


@dataclass(slots=True)
class ChatCommand:
    """CLI input for the interactive console chat."""

    data_dir: Path | None
    user_id: str


@dataclass(slots=True)
class PingCommand:
    """CLI input for the synthetic agent round-trip."""

    data_dir: Path | None
    agents: tuple[str, ...]


@dataclass(slots=True)
class NotesRememberCommand:
    """CLI input for saving a note."""

    data_dir: Path | None
    text: str


@dataclass(slots=True)
class NotesListCommand:
    """CLI input for note listing."""

    data_dir: Path | None
    page: int
    limit: int


@dataclass(slots=True)
class NotesForgetCommand:
    """CLI input for note removal."""

    data_dir: Path | None
    note_id: str


def load_settings(data_dir: Path | None) -> Settings:
    settings = Settings.from_env(data_dir=data_dir)
    settings.validate()
    return settings


def build_runtime(settings: Settings) -> RelayRuntime:
    """Wire stores, registry, backend, dispatcher and orchestrator from settings."""

    custom_agents = CustomAgentStore(settings.custom_agents_path)
    registry = AgentRegistry.from_settings(settings.agents, custom_store=custom_agents)
    persona = PersonaProvider(settings.resolved_persona_path)
    notes = NotesStore(settings.notes_dir)
    sessions = SessionStore(
        settings.sessions,
        sessions_dir=settings.sessions_dir,
        default_agent_id=registry.default_agent_id,
        history_window=settings.context.history_window,
    )
    dispatcher = AgentDispatcher(
        registry,
        ContextBuilder(settings.context, persona=persona, notes=notes),
        CliAgentBackend.from_settings(settings.runner),
    )
    orchestrator = TaskOrchestrator(sessions, registry, dispatcher, settings.orchestrator)
    return RelayRuntime(
        settings=settings,
        custom_agents=custom_agents,
        registry=registry,
        persona=persona,
        notes=notes,
        sessions=sessions,
        dispatcher=dispatcher,
        orchestrator=orchestrator,
    )


class RelayCliController:
    """Coordinates agent catalog, dispatch, chat and notes CLI operations."""

    def list_agents(self, command: AgentsListCommand) -> CommandResult:
        runtime = build_runtime(load_settings(command.data_dir))
        lines = ["Agents:"]
        for agent in runtime.registry.list_all():
            aliases = ", ".join(agent.aliases) if agent.aliases else agent.agent_id
            engine = f" engine={agent.engine.value}" if agent.engine is not None else ""
            lines.append(f"- {agent.display_label} [{aliases}]{engine}")
            if agent.description:
                lines.append(f"  {agent.description}")
        return CommandResult(lines=lines)

    def create_agent(self, command: AgentsCreateCommand) -> CommandResult:
        settings = load_settings(command.data_dir)
        store = CustomAgentStore(settings.custom_agents_path)
        try:
            agent = store.create(
                name=command.name,
                description=command.description,
                system_prompt=command.system_prompt,
                engine=command.engine,
            )
        except CustomAgentError as error:
            return CommandResult(lines=[f"❌ {error}"], success=False)
        return CommandResult(
            lines=[
                f"Custom agent saved: {agent.emoji} {agent.name} "
                f"(id=custom:{agent.id} engine={agent.engine})",
            ],
        )

    def edit_agent(self, command: AgentsEditCommand) -> CommandResult:
        settings = load_settings(command.data_dir)
        store = CustomAgentStore(settings.custom_agents_path)
        agent_id = command.agent_id.removeprefix("custom:")
        fields: dict[str, str] = {}
        if command.name is not None:
            emoji, name = split_leading_emoji(command.name)
            if not name:
                return CommandResult(lines=["❌ Name must not be empty."], success=False)
            fields["name"] = name
            if emoji:
                fields["emoji"] = emoji
        if command.description is not None:
            fields["description"] = command.description.strip()
        if command.system_prompt is not None:
            fields["system_prompt"] = command.system_prompt.strip()
        if command.engine is not None:
            fields["engine"] = command.engine
        if not fields:
            return CommandResult(lines=["❌ Nothing to change."], success=False)
        try:
            agent = store.update(agent_id, **fields)
        except CustomAgentError as error:
            return CommandResult(lines=[f"❌ {error}"], success=False)
        if agent is None:
            return CommandResult(lines=[f"❌ Custom agent not found: {agent_id}"], success=False)
        return CommandResult(
            lines=[
                f"Custom agent updated: {agent.emoji} {agent.name} "
                f"(id=custom:{agent.id} engine={agent.engine}; "
                f"changed: {', '.join(sorted(fields))})",
            ],
        )

    def delete_agent(self, command: AgentsDeleteCommand) -> CommandResult:
        settings = load_settings(command.data_dir)
        store = CustomAgentStore(settings.custom_agents_path)
        agent_id = command.agent_id.removeprefix("custom:")
        if not store.remove(agent_id):
            return CommandResult(lines=[f"❌ Custom agent not found: {agent_id}"], success=False)
        return CommandResult(lines=[f"Custom agent deleted: {agent_id}"])

    def ask(self, command: AskCommand) -> CommandResult:
        runtime = build_runtime(load_settings(command.data_dir))
        agent_id = None
        if command.agent:
            agent_id = runtime.registry.resolve_alias(command.agent)
            if agent_id is None:
                return CommandResult(lines=[f"❌ Unknown agent: {command.agent}"], success=False)

        if command.user_id is not None:
            session = runtime.sessions.get_or_create(command.user_id)
        else:
            session = Session(
                session_id=uuid.uuid4().hex,
                user_id="cli",
                active_agent_id=runtime.registry.default_agent_id,
            )
        try:
            response = asyncio.run(runtime.dispatcher.dispatch(agent_id, command.prompt, session))
        except AgentRunError as error:
            target = agent_id or session.active_agent_id
            descriptor = runtime.registry.describe(target)
            name = descriptor.name if descriptor is not None else target
            return CommandResult(
                lines=[f"❌ {name} failed: {error.short_message()}"],
                success=False,
            )
        if command.user_id is not None:
            effective = agent_id or session.active_agent_id
            runtime.sessions.append_history(command.user_id, "user", command.prompt, effective)
            runtime.sessions.append_history(command.user_id, "assistant", response, effective)
        return CommandResult(lines=[response])

    def chat(self, command: ChatCommand) -> CommandResult:
        runtime = build_runtime(load_settings(command.data_dir))
        status = probe_binaries(runtime.registry.list_builtins())
        chat = ConsoleChat()
        session = runtime.sessions.get_or_create(command.user_id)
        descriptor = runtime.registry.describe(session.active_agent_id)
        banner = [
            f"agent-relay chat as {command.user_id!r}",
            f"Active agent: {descriptor.display_label if descriptor else session.active_agent_id}",
            *(
                f"Warning: {agent_id} CLI not found"
                for agent_id, found in status.items()
                if not found
            ),
            HELP_TEXT,
        ]
        for line in banner:
            chat.echo(line)
        console = ConsoleSession(
            runtime.orchestrator,
            runtime.registry,
            runtime.sessions,
            user_id=command.user_id,
            chat=chat,
            cleanup_interval_seconds=runtime.settings.sessions.cleanup_interval_seconds,
        )
        asyncio.run(console.run())
        return CommandResult(lines=["Bye."])

    def ping(self, command: PingCommand) -> CommandResult:
        runtime = build_runtime(load_settings(command.data_dir))
        if command.agents:
            descriptors = []
            for alias in command.agents:
                agent_id = runtime.registry.resolve_alias(alias)
                descriptor = runtime.registry.describe(agent_id) if agent_id is not None else None
                if descriptor is None:
                    return CommandResult(lines=[f'❌ Unknown agent: "{alias}"'], success=False)
                descriptors.append(descriptor)
        else:
            descriptors = runtime.registry.list_builtins()
        available = probe_binaries(descriptors)
        results = asyncio.run(run_ping(runtime.dispatcher, descriptors, available=available))
        return CommandResult(
            lines=["Agent ping:", *(result.render() for result in results)],
            success=all(result.ok for result in results),
        )

    def remember(self, command: NotesRememberCommand) -> CommandResult:
        settings = load_settings(command.data_dir)
        notes = NotesStore(settings.notes_dir)
        try:
            note_id = notes.save(command.text)
        except ValueError as error:
            return CommandResult(lines=[f"❌ {error}"], success=False)
        return CommandResult(lines=[f"Note saved: {note_id}"])

    def list_notes(self, command: NotesListCommand) -> CommandResult:
        settings = load_settings(command.data_dir)
        entries = NotesStore(settings.notes_dir).list(page=command.page, limit=command.limit)
        if not entries:
            return CommandResult(lines=["No notes saved."])
        lines = [f"Notes (page {command.page}):"]
        for entry in entries:
            lines.append(f"- {entry.id} [{entry.date[:10]}] {entry.preview}")
        return CommandResult(lines=lines)

    def forget(self, command: NotesForgetCommand) -> CommandResult:
        settings = load_settings(command.data_dir)
        if not NotesStore(settings.notes_dir).remove(command.note_id):
            return CommandResult(lines=[f"❌ Note not found: {command.note_id}"], success=False)
        return CommandResult(lines=[f"Note deleted: {command.note_id}"])
