"""Agent catalog: built-in CLI engines plus user-defined custom agents."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import replace
from types import MappingProxyType

from agent_relay.config import AgentSettings
from agent_relay.orchestrator.contracts import CustomAgentDefinition
from agent_relay.orchestrator.custom_agents import CustomAgentStore
from agent_relay.orchestrator.models import (
    CUSTOM_AGENT_PREFIX,
    AgentDescriptor,
    AgentKind,
    PromptPosition,
)

logger = logging.getLogger(__name__)

CHAT_ASSISTANT_INSTRUCTION = (
    "You are a conversational AI assistant. Answer the user's questions and tasks "
    "directly. Do not interpret messages as development commands or CLI slash commands."
)


def build_builtin_agents(settings: AgentSettings) -> Mapping[str, AgentDescriptor]:
    """Build the immutable table of built-in agents from configuration."""

    claude = AgentDescriptor(
        agent_id=AgentKind.CLAUDE.value,
        kind=AgentKind.CLAUDE,
        executable=settings.claude_cli_path,
        print_flag="--print",
        static_args=(
            "--dangerously-skip-permissions",
            "--no-session-persistence",
            "--disable-slash-commands",
            "--append-system-prompt",
            CHAT_ASSISTANT_INSTRUCTION,
            *(("--model", settings.claude_model) if settings.claude_model else ()),
        ),
        prompt_position=PromptPosition.LAST,
        name="Claude Code",
        emoji="🤖",
        description="Anthropic Claude Code: strong at code and complex reasoning.",
        aliases=("claude", "cc", "c"),
    )
    gemini = AgentDescriptor(
        agent_id=AgentKind.GEMINI.value,
        kind=AgentKind.GEMINI,
        executable=settings.gemini_cli_path,
        print_flag="-p",
        static_args=(
            "--yolo",
            *(("-m", settings.gemini_model) if settings.gemini_model else ()),
        ),
        prompt_position=PromptPosition.AFTER_PRINT_FLAG,
        name="Gemini CLI",
        emoji="✨",
        description="Google Gemini CLI: huge context window, good for large inputs.",
        aliases=("gemini", "gem", "g"),
    )
    codex = AgentDescriptor(
        agent_id=AgentKind.CODEX.value,
        kind=AgentKind.CODEX,
        executable=settings.codex_cli_path,
        print_flag="exec",
        static_args=(
            "--full-auto",
            "--skip-git-repo-check",
            *(("-m", settings.codex_model) if settings.codex_model else ()),
        ),
        prompt_position=PromptPosition.LAST,
        name="OpenAI Codex CLI",
        emoji="🧠",
        description="OpenAI Codex CLI: focused on code generation and editing.",
        aliases=("codex", "gpt", "o"),
    )
    return MappingProxyType({agent.agent_id: agent for agent in (claude, gemini, codex)})


class AgentRegistry:
    """Resolve aliases and ids to invocation descriptors."""

    def __init__(
        self,
        builtins: Mapping[str, AgentDescriptor],
        *,
        custom_store: CustomAgentStore | None = None,
        default_agent_id: str = AgentKind.CLAUDE.value,
    ) -> None:
        if default_agent_id not in builtins:
            raise ValueError(f"Default agent {default_agent_id!r} is not a built-in agent")
        self._builtins = MappingProxyType(dict(builtins))
        self._aliases = MappingProxyType(
            {
                alias.lower(): agent.agent_id
                for agent in self._builtins.values()
                for alias in agent.aliases
            },
        )
        self._custom_store = custom_store
        self.default_agent_id = default_agent_id

    @classmethod
    def from_settings(
        cls,
        settings: AgentSettings,
        *,
        custom_store: CustomAgentStore | None = None,
    ) -> AgentRegistry:
        return cls(
            build_builtin_agents(settings),
            custom_store=custom_store,
            default_agent_id=settings.default_agent,
        )

    @property
    def custom_store(self) -> CustomAgentStore | None:
        return self._custom_store

    def resolve_alias(self, token: str) -> str | None:
        """Map a user-typed alias or custom id to a canonical agent id."""

        normalized = token.strip()
        if not normalized:
            return None
        builtin = self._aliases.get(normalized.lower())
        if builtin is not None:
            return builtin
        if self._custom_store is None:
            return None
        custom_id = normalized.removeprefix(CUSTOM_AGENT_PREFIX)
        if self._custom_store.exists(custom_id):
            return f"{CUSTOM_AGENT_PREFIX}{custom_id}"
        return None

    def describe(self, agent_id: str) -> AgentDescriptor | None:
        builtin = self._builtins.get(agent_id)
        if builtin is not None:
            return builtin
        if self._custom_store is None or not agent_id.startswith(CUSTOM_AGENT_PREFIX):
            return None
        definition = self._custom_store.get(agent_id.removeprefix(CUSTOM_AGENT_PREFIX))
        if definition is None:
            return None
        return self._custom_descriptor(definition)

    def list_builtins(self) -> list[AgentDescriptor]:
        return list(self._builtins.values())

    def list_all(self) -> list[AgentDescriptor]:
        agents = self.list_builtins()
        if self._custom_store is None:
            return agents
        for definition in self._custom_store.list():
            descriptor = self._custom_descriptor(definition)
            if descriptor is not None:
                agents.append(descriptor)
        return agents

    def _custom_descriptor(self, definition: CustomAgentDefinition) -> AgentDescriptor | None:
        engine = self._builtins.get(definition.engine)
        if engine is None:
            logger.warning(
                "Custom agent %s uses unknown engine %r; skipping",
                definition.id,
                definition.engine,
            )
            return None
        return replace(
            engine,
            agent_id=f"{CUSTOM_AGENT_PREFIX}{definition.id}",
            kind=AgentKind.CUSTOM,
            name=definition.name,
            emoji=definition.emoji,
            description=definition.description,
            aliases=(),
            system_prompt=definition.system_prompt or None,
            engine=engine.kind,
        )
