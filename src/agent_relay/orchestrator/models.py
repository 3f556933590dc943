"""Domain models for agent invocation, sessions and in-flight tasks."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agent_relay.orchestrator.cancellation import CancellationToken

CUSTOM_AGENT_PREFIX = "custom:"


class AgentKind(str, Enum):
    """Closed set of agent engines the relay knows how to invoke."""

    CLAUDE = "claude"
    GEMINI = "gemini"
    CODEX = "codex"
    CUSTOM = "custom"


class PromptPosition(str, Enum):
    """Where the prompt goes in the argv of an engine."""

    AFTER_PRINT_FLAG = "after_print_flag"
    LAST = "last"


class FailureClass(str, Enum):
    """Normalized failure classes surfaced to the chat user."""

    UNKNOWN_AGENT = "unknown_agent"
    BINARY_NOT_FOUND = "binary_not_found"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    RATE_LIMITED = "rate_limited"
    CAPACITY_EXHAUSTED = "capacity_exhausted"
    QUOTA_EXCEEDED = "quota_exceeded"
    AUTH_FAILURE = "auth_failure"
    GENERIC_EXIT = "generic_exit"


class TaskPhase(str, Enum):
    """Lifecycle of one orchestrated task."""

    STARTING = "starting"
    IMMEDIATE = "immediate"
    VIBING = "vibing"
    BACKGROUND = "background"
    SETTLED = "settled"


class TaskOutcome(str, Enum):
    """How a handled message ended."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    CONTINUITY = "continuity"


class AgentRunError(RuntimeError):
    """Agent execution error with a failure class for user-facing reporting."""

    def __init__(
        self,
        message: str,
        *,
        failure_class: FailureClass,
        exit_code: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.failure_class = failure_class
        self.exit_code = exit_code
        self.stderr = stderr

    @property
    def cancelled(self) -> bool:
        return self.failure_class is FailureClass.CANCELLED

    def short_message(self, *, limit: int = 200) -> str:
        """First line of the message, clamped for chat display."""

        first_line = (str(self) or "Unknown error").split("\n", 1)[0]
        return first_line[:limit]


@dataclass(frozen=True, slots=True)
class AgentDescriptor:
    """Invocation descriptor for one built-in or custom agent."""

    agent_id: str
    kind: AgentKind
    executable: str
    print_flag: str
    static_args: tuple[str, ...] = ()
    prompt_position: PromptPosition = PromptPosition.LAST
    name: str = ""
    emoji: str = "🤖"
    description: str = ""
    aliases: tuple[str, ...] = ()
    system_prompt: str | None = None
    engine: AgentKind | None = None

    @property
    def display_label(self) -> str:
        return f"{self.emoji} {self.name}".strip()

    @property
    def is_custom(self) -> bool:
        return self.kind is AgentKind.CUSTOM

    @property
    def config_hint(self) -> str:
        """Environment variable that configures the executable of this agent."""

        engine = self.engine or self.kind
        return f"{engine.value.upper()}_CLI_PATH"

    def build_argv(self, prompt: str) -> list[str]:
        """Build the argv list; the prompt is always a discrete entry."""

        head = [self.executable]
        if self.print_flag:
            head.append(self.print_flag)
        if self.prompt_position is PromptPosition.AFTER_PRINT_FLAG:
            return [*head, prompt, *self.static_args]
        return [*head, *self.static_args, prompt]


@dataclass(slots=True)
class HistoryEntry:
    """One conversation turn."""

    role: str
    text: str
    agent_id: str
    timestamp: float

    def to_payload(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "text": self.text,
            "agent_id": self.agent_id,
            "timestamp": self.timestamp,
        }


@dataclass(slots=True)
class TaskHandle:
    """Ephemeral record of the task currently in flight for a session."""

    agent_id: str
    prompt: str
    started_at: float
    token: CancellationToken = field(default_factory=CancellationToken)
    status_ref: Any = None
    transition_ref: Any = None
    phase: TaskPhase = TaskPhase.STARTING
    streamed_text: str = ""
    streaming_started: bool = False
    last_stream_edit: float = 0.0
    stream_edit_pending: bool = False
    last_vibe_index: int = -1

    @property
    def settled(self) -> bool:
        return self.phase is TaskPhase.SETTLED

    def cancel(self) -> None:
        """Signal the runner and tear down every timer of this task."""

        self.token.cancel()

    def settle(self) -> None:
        self.phase = TaskPhase.SETTLED
        self.token.cancel()


@dataclass(slots=True)
class Session:
    """Per-user conversation state owned by the session store."""

    session_id: str
    user_id: str
    active_agent_id: str
    history: list[HistoryEntry] = field(default_factory=list)
    task_count: int = 0
    last_activity: float = 0.0
    in_flight: TaskHandle | None = None


@dataclass(slots=True)
class RunResult:
    """Successful agent execution output."""

    stdout: str
    stderr: str
    exit_code: int
    elapsed_seconds: float
