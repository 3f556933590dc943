from __future__ import annotations

import allure
import pytest

from agent_relay.config import AgentSettings
from agent_relay.orchestrator.custom_agents import CustomAgentStore
from agent_relay.orchestrator.models import AgentKind
from agent_relay.orchestrator.registry import (
    CHAT_ASSISTANT_INSTRUCTION,
    AgentRegistry,
    build_builtin_agents,
)

pytestmark = [
    allure.epic("Agent Catalog"),
    allure.feature("Registry & Invocation Layouts"),
]


def test_claude_argv_puts_prompt_last() -> None:
    claude = build_builtin_agents(AgentSettings())["claude"]

    assert claude.build_argv("hi; rm -rf /") == [
        "claude",
        "--print",
        "--dangerously-skip-permissions",
        "--no-session-persistence",
        "--disable-slash-commands",
        "--append-system-prompt",
        CHAT_ASSISTANT_INSTRUCTION,
        "hi; rm -rf /",
    ]


def test_gemini_argv_puts_prompt_after_print_flag_with_model() -> None:
    gemini = build_builtin_agents(
        AgentSettings(gemini_cli_path="/opt/gemini", gemini_model="gemini-2.5-pro"),
    )["gemini"]

    assert gemini.build_argv("hello") == [
        "/opt/gemini",
        "-p",
        "hello",
        "--yolo",
        "-m",
        "gemini-2.5-pro",
    ]


def test_codex_argv_uses_exec_subcommand() -> None:
    codex = build_builtin_agents(AgentSettings(codex_model="o3"))["codex"]

    assert codex.build_argv("hello") == [
        "codex",
        "exec",
        "--full-auto",
        "--skip-git-repo-check",
        "-m",
        "o3",
        "hello",
    ]
    assert codex.config_hint == "CODEX_CLI_PATH"


def test_builtin_table_is_immutable() -> None:
    agents = build_builtin_agents(AgentSettings())

    with pytest.raises(TypeError):
        agents["other"] = agents["claude"]  # type: ignore[index]


@pytest.mark.parametrize(
    ("token", "expected"),
    [
        ("claude", "claude"),
        ("CC", "claude"),
        ("c", "claude"),
        ("Gem", "gemini"),
        ("g", "gemini"),
        ("gpt", "codex"),
        ("o", "codex"),
        ("unknown", None),
        ("", None),
    ],
)
def test_resolve_builtin_aliases(token: str, expected: str | None) -> None:
    registry = AgentRegistry.from_settings(AgentSettings())

    assert registry.resolve_alias(token) == expected


def test_registry_rejects_unknown_default_agent() -> None:
    with pytest.raises(ValueError, match="not a built-in agent"):
        AgentRegistry.from_settings(AgentSettings(default_agent="llama"))


def test_custom_agent_resolves_and_inherits_engine_layout(tmp_path) -> None:
    store = CustomAgentStore(tmp_path / "custom-agents.json")
    store.create(
        name="📜 Poet",
        description="Writes verse",
        system_prompt="Answer in rhyme.",
        engine="gemini",
    )
    registry = AgentRegistry.from_settings(AgentSettings(), custom_store=store)

    assert registry.resolve_alias("poet") == "custom:poet"
    assert registry.resolve_alias("custom:poet") == "custom:poet"

    descriptor = registry.describe("custom:poet")
    assert descriptor is not None
    assert descriptor.is_custom
    assert descriptor.engine is AgentKind.GEMINI
    assert descriptor.display_label == "📜 Poet"
    assert descriptor.system_prompt == "Answer in rhyme."
    assert descriptor.config_hint == "GEMINI_CLI_PATH"
    assert descriptor.build_argv("hello") == ["gemini", "-p", "hello", "--yolo"]


def test_builtin_alias_wins_over_custom_agent_with_same_id(tmp_path) -> None:
    store = CustomAgentStore(tmp_path / "custom-agents.json")
    store.create(name="Gem", description="", system_prompt="Sparkle.", engine="claude")
    registry = AgentRegistry.from_settings(AgentSettings(), custom_store=store)

    assert registry.resolve_alias("gem") == "gemini"
    assert registry.resolve_alias("custom:gem") == "custom:gem"


def test_list_all_appends_custom_agents_after_builtins(tmp_path) -> None:
    store = CustomAgentStore(tmp_path / "custom-agents.json")
    store.create(name="Helper", description="", system_prompt="", engine="codex")
    registry = AgentRegistry.from_settings(AgentSettings(), custom_store=store)

    ids = [agent.agent_id for agent in registry.list_all()]

    assert ids == ["claude", "gemini", "codex", "custom:helper"]
    assert registry.describe("custom:helper").system_prompt is None
    assert registry.describe("custom:missing") is None
    assert registry.describe("helper") is None
