"""Agent backend implementations."""

from agent_relay.orchestrator.backend.base import (
    AgentBackend,
    AgentRunRequest,
    OutputChunk,
    RunCompleted,
    StreamEvent,
    collect_run,
)
from agent_relay.orchestrator.backend.cli_backend import NO_RESPONSE_PLACEHOLDER, CliAgentBackend

__all__ = [
    "NO_RESPONSE_PLACEHOLDER",
    "AgentBackend",
    "AgentRunRequest",
    "CliAgentBackend",
    "OutputChunk",
    "RunCompleted",
    "StreamEvent",
    "collect_run",
]
