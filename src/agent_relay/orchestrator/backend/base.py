"""Backend interface for agent subprocess execution."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from contextlib import aclosing
from dataclasses import dataclass
from typing import Protocol

from agent_relay.orchestrator.cancellation import CancellationToken
from agent_relay.orchestrator.models import AgentRunError, FailureClass, RunResult


@dataclass(slots=True)
class AgentRunRequest:
    """Inputs required to execute one agent invocation."""

    argv: list[str]
    stdin_text: str = ""
    cancel_token: CancellationToken | None = None
    agent_id: str = ""
    config_hint: str = ""


@dataclass(slots=True)
class OutputChunk:
    """Incremental piece of agent stdout."""

    text: str


@dataclass(slots=True)
class RunCompleted:
    """Terminal event of a successful run."""

    result: RunResult


StreamEvent = OutputChunk | RunCompleted


class AgentBackend(Protocol):
    """Protocol implemented by backend runners."""

    def stream(self, request: AgentRunRequest) -> AsyncGenerator[StreamEvent, None]:
        """Yield stdout chunks, then a ``RunCompleted``; failures raise ``AgentRunError``."""


async def collect_run(
    events: AsyncGenerator[StreamEvent, None],
    on_chunk: Callable[[str], None] | None = None,
) -> RunResult:
    """Drain a run stream, forwarding chunks to ``on_chunk``."""

    result: RunResult | None = None
    async with aclosing(events) as stream:
        async for event in stream:
            if isinstance(event, OutputChunk):
                if on_chunk is not None:
                    on_chunk(event.text)
                continue
            result = event.result
    if result is None:
        raise AgentRunError(
            "Agent stream ended without a result.",
            failure_class=FailureClass.GENERIC_EXIT,
        )
    return result
