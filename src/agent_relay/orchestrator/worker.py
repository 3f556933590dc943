"""Per-user single-flight task orchestration between a chat and agent CLIs."""

from __future__ import annotations

import asyncio
import logging
import random
import re
import time
from collections.abc import Callable
from functools import partial
from typing import Any, Protocol

from agent_relay.config import OrchestratorSettings
from agent_relay.orchestrator.dispatcher import AgentDispatcher
from agent_relay.orchestrator.models import (
    AgentDescriptor,
    AgentRunError,
    FailureClass,
    TaskHandle,
    TaskOutcome,
    TaskPhase,
)
from agent_relay.orchestrator.registry import AgentRegistry
from agent_relay.orchestrator.sanitization import prompt_preview
from agent_relay.orchestrator.sessions import SessionStore

logger = logging.getLogger(__name__)

MENTION_RE = re.compile(r"^@(\w[\w-]*)\s+([\s\S]+)$")

VIBE_PHRASES: tuple[str, ...] = (
    "🔥 Generating code at full speed...",
    "🧠 Thinking like an octopus on caffeine...",
    "⚡ Processing... the agent is in beast mode.",
    "🪄 Magically cooking up your answer...",
    "🚀 The task is complex but it's on its way...",
    "💡 Looking at every detail carefully...",
    "🔮 The oracle is consulting the universe...",
    "🐙 Eight tentacles working at once...",
    "🎯 Aiming straight at the target...",
    "🏗️ Building the answer brick by brick...",
    "🌊 Navigating the context... there's a lot of data.",
    "⚙️ Engines running, it's almost there...",
    "🧩 Putting the puzzle pieces together...",
    "🦑 The kraken is awake and working...",
)

HISTORY_CLEARED_TEXT = "🗑 History cleared. The next answer will start without previous context."


class ChatAdapter(Protocol):
    """Outgoing side of a chat transport; message refs are opaque."""

    async def reply(self, text: str) -> Any: ...

    async def edit_message(self, ref: Any, text: str) -> None: ...

    async def delete_message(self, ref: Any) -> None: ...


def split_message(text: str, max_length: int) -> list[str]:
    """Split ``text`` into chunks of at most ``max_length`` characters.

    Prefers cutting at the last newline of the window unless that newline sits
    in the first half of it.
    """

    if max_length <= 0:
        raise ValueError("max_length must be > 0")
    if len(text) <= max_length:
        return [text]
    chunks: list[str] = []
    remaining = text
    while len(remaining) > max_length:
        cut_at = remaining.rfind("\n", 0, max_length + 1)
        if cut_at < max_length * 0.5:
            cut_at = max_length
        chunks.append(remaining[:cut_at])
        remaining = remaining[cut_at:].lstrip()
    if remaining:
        chunks.append(remaining)
    return chunks


class TaskOrchestrator:
    """Keep the chat responsive while one agent task per user runs in the background.

    A task moves through ``starting -> immediate -> vibing -> background`` and
    ends settled as succeeded, failed or cancelled. Messages that arrive while
    a task is in flight take the continuity path and never touch the in-flight
    slot. All timers of a task live on its cancellation token.
    """

    def __init__(  # noqa: PLR0913
        self,
        sessions: SessionStore,
        registry: AgentRegistry,
        dispatcher: AgentDispatcher,
        settings: OrchestratorSettings | None = None,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sessions = sessions
        self.registry = registry
        self.dispatcher = dispatcher
        self.settings = settings or OrchestratorSettings()
        self._rng = rng or random.Random()
        self._clock = clock

    async def handle_message(self, user_id: str, text: str, chat: ChatAdapter) -> TaskOutcome:
        mentioned_agent, prompt = self._parse_mention(text)
        async with self.sessions.lock(user_id):
            session = self.sessions.get_or_create(user_id)
            if session.in_flight is not None:
                handle = None
            else:
                handle = TaskHandle(
                    agent_id=mentioned_agent or session.active_agent_id,
                    prompt=prompt,
                    started_at=self._clock(),
                )
                self.sessions.set_in_flight_task(user_id, handle)
        if handle is None:
            return await self._handle_continuity(user_id, text, chat)
        return await self._run_task(user_id, handle, chat, mentioned=mentioned_agent is not None)

    async def cancel_task(self, user_id: str, chat: ChatAdapter) -> bool:
        """Cancel the in-flight task, remove its status messages and free the slot."""

        handle = self.sessions.get_in_flight_task(user_id)
        if handle is None:
            return False
        handle.cancel()
        self.sessions.clear_in_flight_task(user_id, handle)
        status, handle.status_ref = handle.status_ref, None
        notice, handle.transition_ref = handle.transition_ref, None
        logger.info("Task cancelled for user %s (agent: %s)", user_id, handle.agent_id)
        for ref in (status, notice):
            if ref is not None:
                await self._delete(chat, ref)
        return True

    async def clear_history(self, user_id: str, chat: ChatAdapter) -> None:
        await self.cancel_task(user_id, chat)
        self.sessions.clear_history(user_id)
        await self._send(chat, HISTORY_CLEARED_TEXT)

    def _parse_mention(self, text: str) -> tuple[str | None, str]:
        match = MENTION_RE.match(text)
        if match is None:
            return None, text
        resolved = self.registry.resolve_alias(match.group(1))
        if resolved is None:
            return None, text
        logger.debug("Mention resolved: @%s -> %s", match.group(1), resolved)
        return resolved, match.group(2).strip()

    async def _run_task(
        self,
        user_id: str,
        handle: TaskHandle,
        chat: ChatAdapter,
        *,
        mentioned: bool,
    ) -> TaskOutcome:
        descriptor = self.registry.describe(handle.agent_id)
        name = descriptor.name if descriptor is not None else handle.agent_id
        logger.info(
            "Task started for user %s (agent: %s): %s",
            user_id,
            handle.agent_id,
            prompt_preview(handle.prompt),
        )
        try:
            if descriptor is None:
                raise AgentRunError(
                    f"Unknown agent: {handle.agent_id}",
                    failure_class=FailureClass.UNKNOWN_AGENT,
                )
            handle.status_ref = await self._send(
                chat,
                f"{descriptor.emoji} Processing with {descriptor.name}...",
            )
            handle.phase = TaskPhase.IMMEDIATE
            handle.token.call_later(
                self.settings.vibe_delay_seconds,
                partial(self._enter_vibing, user_id, handle, descriptor, chat),
            )
            session = self.sessions.get_or_create(user_id)
            response = await self.dispatcher.dispatch_streaming(
                handle.agent_id,
                handle.prompt,
                session,
                handle.token,
                partial(self._on_chunk, user_id, handle, chat),
            )
        except AgentRunError as error:
            return await self._fail(user_id, handle, name, error, chat)
        else:
            current = self._is_current(user_id, handle)
            handle.settle()
            if not current:
                logger.info("Task for user %s was discarded before delivery", user_id)
                return TaskOutcome.CANCELLED
            self._record_success(user_id, handle, descriptor, response)
            await self._deliver(handle, descriptor, response, chat, mentioned=mentioned)
            logger.info(
                "Task finished for user %s (agent: %s) in %.1fs",
                user_id,
                handle.agent_id,
                self._clock() - handle.started_at,
            )
            return TaskOutcome.SUCCEEDED
        finally:
            handle.settle()
            self.sessions.clear_in_flight_task(user_id, handle)
            status, handle.status_ref = handle.status_ref, None
            if status is not None:
                await self._delete(chat, status)

    def _record_success(
        self,
        user_id: str,
        handle: TaskHandle,
        descriptor: AgentDescriptor,
        response: str,
    ) -> None:
        self.sessions.append_history(user_id, "user", handle.prompt, handle.agent_id)
        self.sessions.append_history(user_id, "assistant", response, handle.agent_id)
        session = self.sessions.get_or_create(user_id)
        if descriptor.is_custom and handle.agent_id != session.active_agent_id:
            self.sessions.set_agent(user_id, handle.agent_id)

    async def _deliver(
        self,
        handle: TaskHandle,
        descriptor: AgentDescriptor,
        response: str,
        chat: ChatAdapter,
        *,
        mentioned: bool,
    ) -> None:
        max_length = self.settings.max_response_length
        if handle.transition_ref is not None:
            banner = f"✅ {descriptor.name} finished:\n\n"
            for chunk in split_message(banner + response, max_length):
                await self._send(chat, chunk)
            notice, handle.transition_ref = handle.transition_ref, None
            await self._delete(chat, notice)
            return

        prefix = f"{descriptor.display_label}:\n" if mentioned or descriptor.is_custom else ""
        chunks = split_message(prefix + response, max_length)
        status, handle.status_ref = handle.status_ref, None
        if status is None or not await self._edit(chat, status, chunks[0]):
            if status is not None:
                await self._delete(chat, status)
            await self._send(chat, chunks[0])
        for chunk in chunks[1:]:
            await self._send(chat, chunk)

    async def _fail(
        self,
        user_id: str,
        handle: TaskHandle,
        name: str,
        error: AgentRunError,
        chat: ChatAdapter,
    ) -> TaskOutcome:
        handle.settle()
        notice, handle.transition_ref = handle.transition_ref, None
        if notice is not None:
            await self._delete(chat, notice)
        if error.cancelled:
            logger.info("Task cancelled for user %s (agent: %s)", user_id, handle.agent_id)
            return TaskOutcome.CANCELLED
        logger.error(
            "Task failed for user %s (agent: %s, class: %s): %s",
            user_id,
            handle.agent_id,
            error.failure_class.value,
            error,
        )
        await self._send(chat, f"❌ {name} failed: {error.short_message()}")
        return TaskOutcome.FAILED

    async def _handle_continuity(self, user_id: str, text: str, chat: ChatAdapter) -> TaskOutcome:
        session = self.sessions.get_or_create(user_id)
        descriptor = self.registry.describe(session.active_agent_id)
        logger.info("Continuity reply for user %s (agent: %s)", user_id, session.active_agent_id)
        status = None
        try:
            if descriptor is not None:
                status = await self._send(
                    chat,
                    f"{descriptor.emoji} Processing with {descriptor.name}...",
                )
            response = await self.dispatcher.dispatch(None, text, session)
            self.sessions.append_history(user_id, "user", text)
            self.sessions.append_history(user_id, "assistant", response)
            for chunk in split_message(response, self.settings.max_response_length):
                await self._send(chat, chunk)
        except AgentRunError as error:
            logger.error("Continuity task failed for user %s: %s", user_id, error)
            await self._send(chat, f"❌ {error.short_message()}")
            return TaskOutcome.FAILED
        finally:
            if status is not None:
                await self._delete(chat, status)
        return TaskOutcome.CONTINUITY

    async def _enter_vibing(
        self,
        user_id: str,
        handle: TaskHandle,
        descriptor: AgentDescriptor,
        chat: ChatAdapter,
    ) -> None:
        if not self._is_current(user_id, handle):
            return
        handle.phase = TaskPhase.VIBING
        rotation = handle.token.call_every(
            self.settings.vibe_interval_seconds,
            partial(self._show_vibe, user_id, handle, descriptor, chat),
            immediately=True,
        )

        async def _background() -> None:
            if rotation is not None:
                rotation.cancel()
            await self._enter_background(user_id, handle, descriptor, chat)

        handle.token.call_later(self.settings.background_delay_seconds, _background)

    async def _show_vibe(
        self,
        user_id: str,
        handle: TaskHandle,
        descriptor: AgentDescriptor,
        chat: ChatAdapter,
    ) -> None:
        if not self._is_current(user_id, handle) or handle.phase is not TaskPhase.VIBING:
            return
        if handle.streaming_started or handle.status_ref is None:
            return
        index = self._next_vibe_index(handle.last_vibe_index)
        handle.last_vibe_index = index
        await self._edit(chat, handle.status_ref, f"{descriptor.emoji} {VIBE_PHRASES[index]}")

    async def _enter_background(
        self,
        user_id: str,
        handle: TaskHandle,
        descriptor: AgentDescriptor,
        chat: ChatAdapter,
    ) -> None:
        if not self._is_current(user_id, handle):
            return
        handle.phase = TaskPhase.BACKGROUND
        send = asyncio.ensure_future(
            self._send(
                chat,
                f"{descriptor.emoji} {descriptor.name} is still working on your task. "
                "Meanwhile, you can keep chatting with me.",
            ),
        )
        try:
            notice = await asyncio.shield(send)
        except asyncio.CancelledError:
            # The task settled mid-send; the notice may already be on the platform.
            orphan = await send
            if orphan is not None:
                await self._delete(chat, orphan)
            raise
        if notice is None:
            return
        if not self._is_current(user_id, handle):
            await self._delete(chat, notice)
            return
        handle.transition_ref = notice
        logger.info("Task for user %s moved to background (agent: %s)", user_id, handle.agent_id)

    def _on_chunk(self, user_id: str, handle: TaskHandle, chat: ChatAdapter, chunk: str) -> None:
        handle.streamed_text += chunk
        handle.streaming_started = True
        if handle.stream_edit_pending:
            return
        elapsed = self._clock() - handle.last_stream_edit
        delay = max(0.0, self.settings.stream_edit_interval_seconds - elapsed)
        scheduled = handle.token.call_later(
            delay,
            partial(self._flush_stream, user_id, handle, chat),
        )
        handle.stream_edit_pending = scheduled is not None

    async def _flush_stream(self, user_id: str, handle: TaskHandle, chat: ChatAdapter) -> None:
        handle.stream_edit_pending = False
        handle.last_stream_edit = self._clock()
        if not self._is_current(user_id, handle) or handle.status_ref is None:
            return
        text = handle.streamed_text
        limit = self.settings.stream_preview_chars
        preview = "..." + text[-limit:] if len(text) > limit else text
        if preview.strip():
            await self._edit(chat, handle.status_ref, preview)

    def _is_current(self, user_id: str, handle: TaskHandle) -> bool:
        return not handle.settled and self.sessions.get_in_flight_task(user_id) is handle

    def _next_vibe_index(self, last_index: int) -> int:
        candidates = [index for index in range(len(VIBE_PHRASES)) if index != last_index]
        return self._rng.choice(candidates)

    async def _send(self, chat: ChatAdapter, text: str) -> Any:
        try:
            return await chat.reply(text)
        except Exception as error:  # noqa: BLE001
            logger.warning("Chat reply failed: %s", error)
            return None

    async def _edit(self, chat: ChatAdapter, ref: Any, text: str) -> bool:
        try:
            await chat.edit_message(ref, text)
        except Exception as error:  # noqa: BLE001
            logger.warning("Chat edit failed: %s", error)
            return False
        return True

    async def _delete(self, chat: ChatAdapter, ref: Any) -> None:
        try:
            await chat.delete_message(ref)
        except Exception as error:  # noqa: BLE001
            logger.debug("Chat delete failed: %s", error)
