"""In-memory stand-ins for the agent backend and the chat transport."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field

from agent_relay.orchestrator.backend import AgentRunRequest, OutputChunk, RunCompleted
from agent_relay.orchestrator.backend.base import StreamEvent
from agent_relay.orchestrator.models import AgentRunError, FailureClass, RunResult


@dataclass(slots=True)
class FakeRun:
    """Scripted behaviour of one agent invocation."""

    output: str = "answer"
    chunks: tuple[str, ...] = ()
    release: asyncio.Event | None = None
    error: AgentRunError | None = None


@dataclass(slots=True)
class FakeBackend:
    """Backend replaying scripted runs in call order."""

    runs: list[FakeRun] = field(default_factory=list)
    requests: list[AgentRunRequest] = field(default_factory=list)

    async def stream(self, request: AgentRunRequest) -> AsyncGenerator[StreamEvent, None]:
        self.requests.append(request)
        run = self.runs.pop(0) if self.runs else FakeRun()
        token = request.cancel_token
        for chunk in run.chunks:
            yield OutputChunk(chunk)
            await asyncio.sleep(0)
        if run.release is not None:
            waiters = {asyncio.create_task(run.release.wait())}
            if token is not None:
                waiters.add(asyncio.create_task(token.wait()))
            _, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            for waiter in pending:
                waiter.cancel()
        if token is not None and token.cancelled:
            raise AgentRunError("cancelled", failure_class=FailureClass.CANCELLED)
        if run.error is not None:
            raise run.error
        yield RunCompleted(
            RunResult(stdout=run.output, stderr="", exit_code=0, elapsed_seconds=0.0),
        )


class RecordingChat:
    """Chat adapter keeping every operation and the currently visible messages."""

    def __init__(self) -> None:
        self.visible: dict[int, str] = {}
        self.log: list[tuple[str, int, str]] = []
        self._next_ref = 0

    async def reply(self, text: str) -> int:
        self._next_ref += 1
        self.visible[self._next_ref] = text
        self.log.append(("reply", self._next_ref, text))
        return self._next_ref

    async def edit_message(self, ref: int, text: str) -> None:
        self.visible[ref] = text
        self.log.append(("edit", ref, text))

    async def delete_message(self, ref: int) -> None:
        self.visible.pop(ref, None)
        self.log.append(("delete", ref, ""))

    def texts(self, kind: str) -> list[str]:
        return [text for entry_kind, _, text in self.log if entry_kind == kind]

    def edits_of(self, ref: int) -> list[str]:
        return [text for kind, entry_ref, text in self.log if kind == "edit" and entry_ref == ref]


class LaggingChat(RecordingChat):
    """Replies land on the platform before the call returns to the sender."""

    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay

    async def reply(self, text: str) -> int:
        ref = await super().reply(text)
        await asyncio.sleep(self.delay)
        return ref
