"""File-based contracts for persisted sessions and custom agent definitions."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from agent_relay.orchestrator.models import HistoryEntry

CONTRACT_VERSION = 1


@dataclass(slots=True)
class CustomAgentDefinition:
    """User-defined agent: an engine plus a bespoke system prompt."""

    id: str
    name: str
    emoji: str
    description: str
    system_prompt: str
    engine: str
    created_at: str


@dataclass(slots=True)
class SessionRecord:
    """Durable subset of a session; in-flight state is never persisted."""

    session_id: str
    user_id: str
    active_agent_id: str
    history: list[HistoryEntry]
    task_count: int


def write_json(path: Path, payload: dict[str, Any]) -> None:
    """Persist JSON payload using deterministic formatting."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True), "utf-8")


def load_json(path: Path) -> dict[str, Any]:
    """Load JSON document and validate top-level object type."""

    payload = json.loads(path.read_text("utf-8"))
    if not isinstance(payload, dict):
        raise TypeError(f"Expected JSON object in {path}")
    return payload


def write_custom_agents(path: Path, agents: list[CustomAgentDefinition]) -> None:
    """Serialize the custom agent catalog."""

    write_json(
        path,
        {"version": CONTRACT_VERSION, "agents": [asdict(agent) for agent in agents]},
    )


def read_custom_agents(path: Path) -> list[CustomAgentDefinition]:
    """Deserialize and validate the custom agent catalog."""

    raw = load_json(path)
    raw_agents = raw.get("agents", [])
    if not isinstance(raw_agents, list):
        raise TypeError("custom_agents.agents must be an array")

    agents: list[CustomAgentDefinition] = []
    for item in raw_agents:
        if not isinstance(item, dict):
            raise TypeError("custom_agents entry must be an object")
        agent_id = item.get("id")
        if not isinstance(agent_id, str) or not agent_id.strip():
            raise ValueError("custom_agents.id must be a non-empty string")
        engine = item.get("engine", item.get("cli"))
        if not isinstance(engine, str) or not engine.strip():
            raise ValueError(f"custom_agents.engine must be a non-empty string for {agent_id!r}")
        agents.append(
            CustomAgentDefinition(
                id=agent_id,
                name=_as_str(item.get("name"), default=agent_id),
                emoji=_as_str(item.get("emoji"), default="🤖"),
                description=_as_str(item.get("description")),
                system_prompt=_as_str(item.get("system_prompt", item.get("systemPrompt"))),
                engine=engine.strip().lower(),
                created_at=_as_str(item.get("created_at")),
            ),
        )
    return agents


def write_session_record(path: Path, record: SessionRecord) -> None:
    """Serialize one user session."""

    write_json(
        path,
        {
            "version": CONTRACT_VERSION,
            "session_id": record.session_id,
            "user_id": record.user_id,
            "active_agent_id": record.active_agent_id,
            "history": [entry.to_payload() for entry in record.history],
            "task_count": record.task_count,
        },
    )


def read_session_record(path: Path) -> SessionRecord:
    """Load and validate one persisted session."""

    raw = load_json(path)
    user_id = raw.get("user_id")
    active_agent_id = raw.get("active_agent_id")
    raw_history = raw.get("history")
    if not isinstance(user_id, str) or not user_id:
        raise ValueError("session.user_id must be a non-empty string")
    if not isinstance(active_agent_id, str) or not active_agent_id:
        raise ValueError("session.active_agent_id must be a non-empty string")
    if not isinstance(raw_history, list):
        raise TypeError("session.history must be an array")

    history: list[HistoryEntry] = []
    for item in raw_history:
        if not isinstance(item, dict):
            raise TypeError("session.history entry must be an object")
        role = item.get("role")
        text = item.get("text")
        if role not in {"user", "assistant"}:
            raise ValueError(f"session.history.role is invalid: {role!r}")
        if not isinstance(text, str):
            raise TypeError("session.history.text must be a string")
        timestamp = item.get("timestamp", 0.0)
        history.append(
            HistoryEntry(
                role=role,
                text=text,
                agent_id=_as_str(item.get("agent_id"), default=active_agent_id),
                timestamp=float(timestamp) if isinstance(timestamp, int | float) else 0.0,
            ),
        )

    task_count = raw.get("task_count", 0)
    return SessionRecord(
        session_id=_as_str(raw.get("session_id")),
        user_id=user_id,
        active_agent_id=active_agent_id,
        history=history,
        task_count=task_count if isinstance(task_count, int) else 0,
    )


def _as_str(value: object, *, default: str = "") -> str:
    return value if isinstance(value, str) else default
