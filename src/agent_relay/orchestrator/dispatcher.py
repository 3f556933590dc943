"""Resolve an agent, build its prompt and run it through the backend."""

from __future__ import annotations

import logging
from collections.abc import Callable

from agent_relay.orchestrator.backend import AgentBackend, AgentRunRequest, collect_run
from agent_relay.orchestrator.cancellation import CancellationToken
from agent_relay.orchestrator.context import ContextBuilder
from agent_relay.orchestrator.models import (
    AgentDescriptor,
    AgentRunError,
    FailureClass,
    Session,
)
from agent_relay.orchestrator.registry import AgentRegistry
from agent_relay.orchestrator.sanitization import prompt_preview

logger = logging.getLogger(__name__)


class AgentDispatcher:
    """Single entry point used by the orchestrator and the CLI."""

    def __init__(
        self,
        registry: AgentRegistry,
        context_builder: ContextBuilder,
        backend: AgentBackend,
    ) -> None:
        self.registry = registry
        self.context_builder = context_builder
        self.backend = backend

    async def dispatch(
        self,
        agent_id: str | None,
        task: str,
        session: Session,
        cancel_token: CancellationToken | None = None,
    ) -> str:
        return await self._run(agent_id, task, session, cancel_token, None)

    async def dispatch_streaming(
        self,
        agent_id: str | None,
        task: str,
        session: Session,
        cancel_token: CancellationToken | None,
        on_chunk: Callable[[str], None],
    ) -> str:
        return await self._run(agent_id, task, session, cancel_token, on_chunk)

    def resolve(self, agent_id: str | None, session: Session) -> AgentDescriptor:
        """Descriptor for ``agent_id`` or the session's active agent."""

        target = agent_id or session.active_agent_id
        descriptor = self.registry.describe(target)
        if descriptor is None:
            raise AgentRunError(
                f"Unknown agent: {target}",
                failure_class=FailureClass.UNKNOWN_AGENT,
            )
        return descriptor

    async def _run(
        self,
        agent_id: str | None,
        task: str,
        session: Session,
        cancel_token: CancellationToken | None,
        on_chunk: Callable[[str], None] | None,
    ) -> str:
        descriptor = self.resolve(agent_id, session)
        prompt = self.context_builder.build(
            task,
            session,
            system_prompt=descriptor.system_prompt,
        )
        logger.info(
            "Dispatching to %s (%d chars): %s",
            descriptor.agent_id,
            len(prompt),
            prompt_preview(task),
        )
        request = AgentRunRequest(
            argv=descriptor.build_argv(prompt),
            cancel_token=cancel_token,
            agent_id=descriptor.agent_id,
            config_hint=descriptor.config_hint,
        )
        result = await collect_run(self.backend.stream(request), on_chunk)
        logger.info(
            "Agent %s finished in %.1fs (%d chars)",
            descriptor.agent_id,
            result.elapsed_seconds,
            len(result.stdout),
        )
        return result.stdout.strip()
