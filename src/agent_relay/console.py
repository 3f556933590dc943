"""Interactive terminal chat driving the task orchestrator."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable

import rich_click as click

from agent_relay.orchestrator.cancellation import CancellationToken
from agent_relay.orchestrator.registry import AgentRegistry
from agent_relay.orchestrator.sessions import SessionStore
from agent_relay.orchestrator.worker import TaskOrchestrator

logger = logging.getLogger(__name__)

PROMPT = "> "
HELP_TEXT = (
    "Commands:\n"
    "  /agent [alias]  show or switch the active agent\n"
    "  /cancel         cancel the running task\n"
    "  /clear          cancel the running task and forget the history\n"
    "  /quit           leave the chat\n"
    "  @alias task     run one task with another agent"
)


class ConsoleChat:
    """Chat adapter that renders replies and edits on the terminal.

    Edits that extend the previous text of a message (streamed output) print
    only the new tail; any other edit reprints the message.
    """

    def __init__(self, echo: Callable[[str], None] = click.echo) -> None:
        self._echo = echo
        self._messages: dict[int, str] = {}
        self._ids = itertools.count(1)

    def echo(self, text: str) -> None:
        self._echo(text)

    @property
    def open_messages(self) -> dict[int, str]:
        return dict(self._messages)

    async def reply(self, text: str) -> int:
        ref = next(self._ids)
        self._messages[ref] = text
        self._echo(text)
        return ref

    async def edit_message(self, ref: int, text: str) -> None:
        previous = self._messages.get(ref)
        if previous is None:
            raise KeyError(f"Unknown message: {ref}")
        self._messages[ref] = text
        if text.startswith(previous):
            tail = text[len(previous) :]
            if tail.strip():
                self._echo(tail.lstrip("\n"))
            return
        self._echo(text)

    async def delete_message(self, ref: int) -> None:
        self._messages.pop(ref, None)


def read_stdin_line() -> str | None:
    try:
        return input(PROMPT)
    except EOFError:
        return None


class ConsoleSession:
    """Read lines, route slash commands and hand everything else to the orchestrator."""

    def __init__(  # noqa: PLR0913
        self,
        orchestrator: TaskOrchestrator,
        registry: AgentRegistry,
        sessions: SessionStore,
        *,
        user_id: str,
        chat: ConsoleChat,
        read_line: Callable[[], str | None] = read_stdin_line,
        cleanup_interval_seconds: float = 3_600.0,
    ) -> None:
        self.orchestrator = orchestrator
        self.registry = registry
        self.sessions = sessions
        self.user_id = user_id
        self.chat = chat
        self.read_line = read_line
        self.cleanup_interval_seconds = cleanup_interval_seconds

    async def run(self) -> None:
        lifetime = CancellationToken()
        lifetime.call_every(self.cleanup_interval_seconds, self._evict_inactive)
        pending: set[asyncio.Task] = set()
        try:
            while True:
                line = await asyncio.to_thread(self.read_line)
                if line is None:
                    break
                text = line.strip()
                if not text:
                    continue
                if text == "/quit":
                    break
                if await self._run_command(text):
                    continue
                task = asyncio.create_task(
                    self.orchestrator.handle_message(self.user_id, text, self.chat),
                )
                pending.add(task)
                task.add_done_callback(pending.discard)
        finally:
            lifetime.cancel()
            await self.orchestrator.cancel_task(self.user_id, self.chat)
            if pending:
                results = await asyncio.gather(*pending, return_exceptions=True)
                for result in results:
                    if isinstance(result, Exception):
                        logger.error("Chat task crashed: %s", result, exc_info=result)

    async def _run_command(self, text: str) -> bool:
        command, _, argument = text.partition(" ")
        if command == "/help":
            await self.chat.reply(HELP_TEXT)
        elif command == "/clear":
            await self.orchestrator.clear_history(self.user_id, self.chat)
        elif command == "/cancel":
            cancelled = await self.orchestrator.cancel_task(self.user_id, self.chat)
            await self.chat.reply("🛑 Task cancelled." if cancelled else "No task is running.")
        elif command == "/agent":
            await self._switch_agent(argument.strip())
        else:
            return False
        return True

    async def _switch_agent(self, alias: str) -> None:
        session = self.sessions.get_or_create(self.user_id)
        if not alias:
            lines = [
                f"{'▶' if agent.agent_id == session.active_agent_id else ' '} "
                f"{agent.display_label} ({agent.agent_id})"
                for agent in self.registry.list_all()
            ]
            await self.chat.reply("\n".join(lines))
            return
        agent_id = self.registry.resolve_alias(alias)
        descriptor = self.registry.describe(agent_id) if agent_id is not None else None
        if descriptor is None:
            await self.chat.reply(f"❌ Unknown agent: {alias}")
            return
        self.sessions.set_agent(self.user_id, descriptor.agent_id)
        await self.chat.reply(f"Active agent: {descriptor.display_label}")

    async def _evict_inactive(self) -> None:
        self.sessions.evict_inactive()
