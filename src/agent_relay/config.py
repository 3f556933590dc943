"""Runtime configuration for agent execution, context assembly and sessions."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

SUPPORTED_MEMORY_MODES = ("recent", "none")
BUILTIN_AGENT_IDS = ("claude", "gemini", "codex")
_DEFAULT_HISTORY_WINDOW = 6


@dataclass(slots=True)
class AgentSettings:
    """Built-in agent executables and optional model overrides."""

    claude_cli_path: str = "claude"
    gemini_cli_path: str = "gemini"
    codex_cli_path: str = "codex"
    claude_model: str | None = None
    gemini_model: str | None = None
    codex_model: str | None = None
    default_agent: str = "claude"


@dataclass(slots=True)
class RunnerSettings:
    """Subprocess execution limits."""

    safety_timeout_seconds: float = 1_800.0
    kill_grace_seconds: float = 2.0
    workdir: Path | None = None


@dataclass(slots=True)
class ContextSettings:
    """Prompt assembly budget."""

    prompt_limit_chars: int = 12_000
    history_window: int = _DEFAULT_HISTORY_WINDOW
    history_entry_max_chars: int = 500
    memory_mode: str = "recent"
    memory_count: int = 5
    memory_limit_chars: int = 2_000
    persona_trim_chars: int = 1_000


@dataclass(slots=True)
class OrchestratorSettings:
    """Status-message pacing for long running tasks."""

    vibe_delay_seconds: float = 60.0
    vibe_interval_seconds: float = 15.0
    background_delay_seconds: float = 60.0
    stream_edit_interval_seconds: float = 1.5
    stream_preview_chars: int = 3_800
    max_response_length: int = 4_000


@dataclass(slots=True)
class SessionSettings:
    """Per-user session lifetime and persistence."""

    ttl_hours: float = 0.0
    persist: bool = True
    cleanup_interval_seconds: float = 3_600.0

    @property
    def ttl_seconds(self) -> float:
        return max(0.0, self.ttl_hours) * 3_600


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    data_dir: Path = Path("data")
    persona_path: Path | None = None
    debug: bool = False
    agents: AgentSettings = field(default_factory=AgentSettings)
    runner: RunnerSettings = field(default_factory=RunnerSettings)
    context: ContextSettings = field(default_factory=ContextSettings)
    orchestrator: OrchestratorSettings = field(default_factory=OrchestratorSettings)
    sessions: SessionSettings = field(default_factory=SessionSettings)

    @property
    def resolved_persona_path(self) -> Path:
        return self.persona_path or self.data_dir / "SOUL.md"

    @property
    def custom_agents_path(self) -> Path:
        return self.data_dir / "custom-agents.json"

    @property
    def notes_dir(self) -> Path:
        return self.data_dir / "memories"

    @property
    def sessions_dir(self) -> Path:
        return self.data_dir / "sessions"

    @classmethod
    def from_env(cls, data_dir: Path | None = None) -> Settings:
        """Load settings from environment with defaults suited to a single-host bot."""

        workdir_raw = os.getenv("AGENT_RELAY_WORKDIR", "").strip()
        persona_raw = os.getenv("AGENT_RELAY_SOUL_PATH", os.getenv("SOUL_PATH", "")).strip()
        return cls(
            data_dir=data_dir or Path(os.getenv("AGENT_RELAY_DATA_DIR", "data")),
            persona_path=Path(persona_raw) if persona_raw else None,
            debug=env_bool("AGENT_RELAY_DEBUG", default=False),
            agents=AgentSettings(
                claude_cli_path=_env_first(
                    ("AGENT_RELAY_CLAUDE_CLI_PATH", "CLAUDE_CLI_PATH"),
                    "claude",
                ),
                gemini_cli_path=_env_first(
                    ("AGENT_RELAY_GEMINI_CLI_PATH", "GEMINI_CLI_PATH"),
                    "gemini",
                ),
                codex_cli_path=_env_first(
                    ("AGENT_RELAY_CODEX_CLI_PATH", "CODEX_CLI_PATH"),
                    "codex",
                ),
                claude_model=_env_optional(("AGENT_RELAY_CLAUDE_MODEL", "CLAUDE_MODEL")),
                gemini_model=_env_optional(("AGENT_RELAY_GEMINI_MODEL", "GEMINI_MODEL")),
                codex_model=_env_optional(("AGENT_RELAY_CODEX_MODEL", "CODEX_MODEL")),
                default_agent=_env_first(
                    ("AGENT_RELAY_DEFAULT_AGENT", "DEFAULT_AGENT"),
                    "claude",
                ).lower(),
            ),
            runner=RunnerSettings(
                safety_timeout_seconds=float(
                    os.getenv("AGENT_RELAY_SAFETY_TIMEOUT_SECONDS", "1800"),
                ),
                kill_grace_seconds=float(os.getenv("AGENT_RELAY_KILL_GRACE_SECONDS", "2")),
                workdir=Path(workdir_raw) if workdir_raw else None,
            ),
            context=ContextSettings(
                prompt_limit_chars=int(os.getenv("AGENT_RELAY_PROMPT_LIMIT_CHARS", "12000")),
                history_window=_history_window(
                    _env_first(("AGENT_RELAY_HISTORY_WINDOW", "HISTORY_WINDOW"), ""),
                ),
                memory_mode=_env_first(
                    ("AGENT_RELAY_MEMORY_INJECT", "MEMORY_INJECT"),
                    "recent",
                ).lower(),
                memory_limit_chars=int(
                    _env_first(("AGENT_RELAY_MEMORY_INJECT_LIMIT", "MEMORY_INJECT_LIMIT"), "2000"),
                ),
            ),
            orchestrator=OrchestratorSettings(
                vibe_delay_seconds=float(os.getenv("AGENT_RELAY_VIBE_DELAY_SECONDS", "60")),
                vibe_interval_seconds=float(
                    os.getenv("AGENT_RELAY_VIBE_INTERVAL_SECONDS", "15"),
                ),
                background_delay_seconds=float(
                    os.getenv("AGENT_RELAY_BACKGROUND_DELAY_SECONDS", "60"),
                ),
                stream_edit_interval_seconds=float(
                    os.getenv("AGENT_RELAY_STREAM_EDIT_INTERVAL_SECONDS", "1.5"),
                ),
                max_response_length=int(
                    _env_first(
                        ("AGENT_RELAY_MAX_RESPONSE_LENGTH", "MAX_RESPONSE_LENGTH"),
                        "4000",
                    ),
                ),
            ),
            sessions=SessionSettings(
                ttl_hours=float(
                    _env_first(("AGENT_RELAY_SESSION_TTL_HOURS", "SESSION_TTL_HOURS"), "0"),
                ),
                persist=env_bool("AGENT_RELAY_PERSIST_SESSIONS", default=True),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for out-of-range values."""

        if self.agents.default_agent not in BUILTIN_AGENT_IDS:
            raise ValueError(
                f"Unsupported AGENT_RELAY_DEFAULT_AGENT: {self.agents.default_agent!r}. "
                f"Use one of {BUILTIN_AGENT_IDS}.",
            )
        if self.runner.safety_timeout_seconds <= 0:
            raise ValueError("AGENT_RELAY_SAFETY_TIMEOUT_SECONDS must be > 0.")
        if self.runner.kill_grace_seconds < 0:
            raise ValueError("AGENT_RELAY_KILL_GRACE_SECONDS must be >= 0.")
        if self.context.prompt_limit_chars <= 0:
            raise ValueError("AGENT_RELAY_PROMPT_LIMIT_CHARS must be > 0.")
        if self.context.history_window < 0:
            raise ValueError("AGENT_RELAY_HISTORY_WINDOW must be >= 0.")
        if self.context.memory_mode not in SUPPORTED_MEMORY_MODES:
            raise ValueError(
                f"Unsupported AGENT_RELAY_MEMORY_INJECT: {self.context.memory_mode!r}. "
                f"Use one of {SUPPORTED_MEMORY_MODES}.",
            )
        if self.context.memory_limit_chars < 0:
            raise ValueError("AGENT_RELAY_MEMORY_INJECT_LIMIT must be >= 0.")
        for name, value in (
            ("AGENT_RELAY_VIBE_DELAY_SECONDS", self.orchestrator.vibe_delay_seconds),
            ("AGENT_RELAY_VIBE_INTERVAL_SECONDS", self.orchestrator.vibe_interval_seconds),
            ("AGENT_RELAY_BACKGROUND_DELAY_SECONDS", self.orchestrator.background_delay_seconds),
        ):
            if value <= 0:
                raise ValueError(f"{name} must be > 0.")
        if self.orchestrator.stream_edit_interval_seconds < 0:
            raise ValueError("AGENT_RELAY_STREAM_EDIT_INTERVAL_SECONDS must be >= 0.")
        if self.orchestrator.max_response_length < 100:
            raise ValueError("AGENT_RELAY_MAX_RESPONSE_LENGTH must be >= 100.")
        if self.sessions.ttl_hours < 0:
            raise ValueError("AGENT_RELAY_SESSION_TTL_HOURS must be >= 0.")


def _history_window(raw: str) -> int:
    # Unparseable or negative values fall back to the default window.
    try:
        value = int(raw)
    except ValueError:
        return _DEFAULT_HISTORY_WINDOW
    if value < 0:
        return _DEFAULT_HISTORY_WINDOW
    return value


def _env_first(names: tuple[str, ...], default: str) -> str:
    for name in names:
        value = os.getenv(name)
        if value is not None and value.strip():
            return value.strip()
    return default


def _env_optional(names: tuple[str, ...]) -> str | None:
    value = _env_first(names, "")
    return value or None


def env_bool(name: str, default: bool) -> bool:
    """Read a boolean flag such as `1`, `yes` or `off`; anything else is an error."""

    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
