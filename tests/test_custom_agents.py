from __future__ import annotations

import json

import allure
import pytest

from agent_relay.orchestrator.custom_agents import (
    AgentCapacityError,
    CustomAgentError,
    CustomAgentStore,
    InvalidAgentNameError,
    generate_agent_id,
    split_leading_emoji,
)

pytestmark = [
    allure.epic("Agent Catalog"),
    allure.feature("Custom Agents"),
]


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("🦑 Kraken", "kraken"),
        ("Code Reviewer 2000", "code-reviewer-2000"),
        ("  Über   Helper!! ", "ber-helper"),
        ("🤖", ""),
        ("x" * 60, "x" * 40),
    ],
)
def test_generate_agent_id(name: str, expected: str) -> None:
    assert generate_agent_id(name) == expected


def test_split_leading_emoji() -> None:
    assert split_leading_emoji("🦑 Kraken") == ("🦑", "Kraken")
    assert split_leading_emoji("Plain name") == (None, "Plain name")


def test_create_persists_and_reloads(tmp_path) -> None:
    path = tmp_path / "custom-agents.json"
    store = CustomAgentStore(path)

    created = store.create(
        name="🦑 Kraken",
        description="  Deep sea answers ",
        system_prompt=" Speak like a kraken. ",
        engine="Codex",
    )

    assert created.id == "kraken"
    assert created.emoji == "🦑"
    assert created.name == "Kraken"
    assert created.description == "Deep sea answers"
    assert created.system_prompt == "Speak like a kraken."
    assert created.engine == "codex"

    reloaded = CustomAgentStore(path)
    assert [agent.id for agent in reloaded.list()] == ["kraken"]
    assert reloaded.get("kraken").system_prompt == "Speak like a kraken."
    payload = json.loads(path.read_text("utf-8"))
    assert payload["version"] == 1


def test_create_without_emoji_uses_default(tmp_path) -> None:
    store = CustomAgentStore(tmp_path / "custom-agents.json")

    created = store.create(name="Helper", description="", system_prompt="", engine="claude")

    assert created.emoji == "🤖"
    assert created.name == "Helper"


def test_create_with_same_name_replaces_in_place(tmp_path) -> None:
    store = CustomAgentStore(tmp_path / "custom-agents.json")
    store.create(name="First", description="", system_prompt="", engine="claude")
    store.create(name="Helper", description="", system_prompt="old", engine="claude")
    store.create(name="🛠 Helper", description="", system_prompt="new", engine="gemini")

    agents = store.list()

    assert [agent.id for agent in agents] == ["first", "helper"]
    assert agents[1].system_prompt == "new"
    assert agents[1].engine == "gemini"


def test_create_rejects_unusable_name(tmp_path) -> None:
    store = CustomAgentStore(tmp_path / "custom-agents.json")

    with pytest.raises(InvalidAgentNameError):
        store.create(name="🤖 !!!", description="", system_prompt="", engine="claude")


def test_create_rejects_unknown_engine(tmp_path) -> None:
    store = CustomAgentStore(tmp_path / "custom-agents.json")

    with pytest.raises(CustomAgentError, match="Unsupported engine"):
        store.create(name="Helper", description="", system_prompt="", engine="llama")


def test_create_enforces_capacity(tmp_path) -> None:
    store = CustomAgentStore(tmp_path / "custom-agents.json", max_agents=2)
    store.create(name="One", description="", system_prompt="", engine="claude")
    store.create(name="Two", description="", system_prompt="", engine="claude")

    with pytest.raises(AgentCapacityError):
        store.create(name="Three", description="", system_prompt="", engine="claude")
    store.create(name="Two", description="updated", system_prompt="", engine="claude")

    assert store.get("two").description == "updated"


def test_update_patches_fields_but_keeps_id(tmp_path) -> None:
    store = CustomAgentStore(tmp_path / "custom-agents.json")
    store.create(name="Helper", description="", system_prompt="", engine="claude")

    updated = store.update("helper", name="Renamed", engine="GEMINI")

    assert updated is not None
    assert updated.id == "helper"
    assert updated.name == "Renamed"
    assert updated.engine == "gemini"
    assert store.update("missing", name="x") is None
    with pytest.raises(CustomAgentError, match="Unsupported custom agent field"):
        store.update("helper", id="other")


def test_remove(tmp_path) -> None:
    path = tmp_path / "custom-agents.json"
    store = CustomAgentStore(path)
    store.create(name="Helper", description="", system_prompt="", engine="claude")

    assert store.remove("helper") is True
    assert store.remove("helper") is False
    assert CustomAgentStore(path).list() == []


def test_corrupt_catalog_loads_as_empty(tmp_path) -> None:
    path = tmp_path / "custom-agents.json"
    path.write_text("{not json", "utf-8")

    assert CustomAgentStore(path).list() == []


def test_catalog_accepts_legacy_field_names(tmp_path) -> None:
    path = tmp_path / "custom-agents.json"
    path.write_text(
        json.dumps(
            {"agents": [{"id": "poet", "name": "Poet", "cli": "gemini", "systemPrompt": "Rhyme."}]},
        ),
        "utf-8",
    )

    agent = CustomAgentStore(path).get("poet")

    assert agent is not None
    assert agent.engine == "gemini"
    assert agent.system_prompt == "Rhyme."
    assert agent.emoji == "🤖"
