"""Lightweight health checks for the configured agent CLIs."""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
import uuid
from collections.abc import Iterable
from dataclasses import dataclass

from agent_relay.orchestrator.dispatcher import AgentDispatcher
from agent_relay.orchestrator.models import AgentDescriptor, AgentRunError, Session

logger = logging.getLogger(__name__)

PING_PROMPT = "Reply only with the word OK"
_PROBE_TIMEOUT_SECONDS = 10


@dataclass(slots=True)
class AgentPingResult:
    """One synthetic round-trip through an agent."""

    agent_id: str
    label: str
    available: bool
    ok: bool
    latency_ms: int
    reply_preview: str
    error: str | None

    def render(self) -> str:
        if not self.available:
            return f"{self.label}: ❌ CLI not found"
        if self.ok:
            return f"{self.label}: ✅ OK ({self.latency_ms}ms)\n  {self.reply_preview}"
        return f"{self.label}: ❌ {self.error} ({self.latency_ms}ms)"


def probe_binaries(
    descriptors: Iterable[AgentDescriptor],
    *,
    timeout_seconds: int = _PROBE_TIMEOUT_SECONDS,
) -> dict[str, bool]:
    """Check that each agent executable resolves and answers ``--version``."""

    status: dict[str, bool] = {}
    for descriptor in descriptors:
        found = _probe(descriptor.executable, timeout_seconds=timeout_seconds)
        status[descriptor.agent_id] = found
        if found:
            logger.info("CLI %s: found", descriptor.executable)
        else:
            logger.warning(
                "CLI %s: not found. Install it or set %s.",
                descriptor.executable,
                descriptor.config_hint,
            )
    return status


async def run_ping(
    dispatcher: AgentDispatcher,
    descriptors: Iterable[AgentDescriptor],
    *,
    available: dict[str, bool] | None = None,
    prompt: str = PING_PROMPT,
) -> list[AgentPingResult]:
    """Send a synthetic prompt to each agent and measure latency."""

    results: list[AgentPingResult] = []
    for descriptor in descriptors:
        found = available.get(descriptor.agent_id, False) if available is not None else True
        if not found:
            results.append(
                AgentPingResult(
                    agent_id=descriptor.agent_id,
                    label=descriptor.display_label,
                    available=False,
                    ok=False,
                    latency_ms=0,
                    reply_preview="",
                    error="CLI not found",
                ),
            )
            continue

        session = Session(
            session_id=uuid.uuid4().hex,
            user_id="ping",
            active_agent_id=descriptor.agent_id,
        )
        started = time.monotonic()
        try:
            reply = await dispatcher.dispatch(descriptor.agent_id, prompt, session)
        except AgentRunError as error:
            results.append(
                AgentPingResult(
                    agent_id=descriptor.agent_id,
                    label=descriptor.display_label,
                    available=True,
                    ok=False,
                    latency_ms=_elapsed_ms(started),
                    reply_preview="",
                    error=str(error)[:80],
                ),
            )
            continue
        results.append(
            AgentPingResult(
                agent_id=descriptor.agent_id,
                label=descriptor.display_label,
                available=True,
                ok=True,
                latency_ms=_elapsed_ms(started),
                reply_preview=reply[:100].strip(),
                error=None,
            ),
        )
    return results


def _probe(executable: str, *, timeout_seconds: int) -> bool:
    resolved = shutil.which(executable)
    if resolved is None:
        return False
    try:
        completed = subprocess.run(  # noqa: S603
            [resolved, "--version"],
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
        )
    except subprocess.TimeoutExpired:
        logger.warning("CLI %s: --version probe timed out", executable)
        return False
    except OSError as error:
        logger.warning("CLI %s: probe failed to start: %s", executable, error)
        return False
    return completed.returncode == 0


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
