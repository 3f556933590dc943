"""File-backed catalog of user-defined agents."""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path

from agent_relay.config import BUILTIN_AGENT_IDS
from agent_relay.orchestrator.contracts import (
    CustomAgentDefinition,
    read_custom_agents,
    write_custom_agents,
)

logger = logging.getLogger(__name__)

MAX_CUSTOM_AGENTS = 20
MAX_AGENT_ID_CHARS = 40
DEFAULT_CUSTOM_EMOJI = "🤖"
_EDITABLE_FIELDS = frozenset({"name", "emoji", "description", "system_prompt", "engine"})

_ZERO_WIDTH_JOINER = "\u200d"
_VARIATION_SELECTOR = "\ufe0f"


class CustomAgentError(ValueError):
    """Custom agent definition rejected."""


class InvalidAgentNameError(CustomAgentError):
    """Display name does not produce a usable identifier."""


class AgentCapacityError(CustomAgentError):
    """Catalog already holds the maximum number of agents."""


def split_leading_emoji(name: str) -> tuple[str | None, str]:
    """Split ``"🦑 Kraken"`` into ``("🦑", "Kraken")``."""

    stripped = name.strip()
    if not stripped or not _is_emoji(stripped[0]):
        return None, stripped
    end = 1
    while end < len(stripped) and (
        _is_emoji(stripped[end]) or stripped[end] in {_ZERO_WIDTH_JOINER, _VARIATION_SELECTOR}
        or unicodedata.category(stripped[end]) == "Sk"
    ):
        end += 1
    return stripped[:end], stripped[end:].strip()


def generate_agent_id(name: str) -> str:
    """Slugify a display name; returns an empty string when nothing usable is left."""

    _, rest = split_leading_emoji(name)
    slug = rest.lower()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug[:MAX_AGENT_ID_CHARS].strip("-")


class CustomAgentStore:
    """CRUD over ``custom-agents.json``; ids are immutable once created."""

    def __init__(self, path: Path, *, max_agents: int = MAX_CUSTOM_AGENTS) -> None:
        self.path = path
        self.max_agents = max_agents
        self._agents = self._load()

    def list(self) -> list[CustomAgentDefinition]:
        return list(self._agents)

    def get(self, agent_id: str) -> CustomAgentDefinition | None:
        for agent in self._agents:
            if agent.id == agent_id:
                return agent
        return None

    def exists(self, agent_id: str) -> bool:
        return self.get(agent_id) is not None

    def create(
        self,
        *,
        name: str,
        description: str,
        system_prompt: str,
        engine: str,
    ) -> CustomAgentDefinition:
        """Create an agent, or replace the one with the same generated id."""

        agent_id = generate_agent_id(name)
        if not agent_id:
            raise InvalidAgentNameError(f"Invalid name {name!r}: could not generate an id.")
        existing = self.exists(agent_id)
        if not existing and len(self._agents) >= self.max_agents:
            raise AgentCapacityError(
                f"Limit of {self.max_agents} custom agents reached. Delete one first.",
            )
        emoji, display_name = split_leading_emoji(name)
        agent = CustomAgentDefinition(
            id=agent_id,
            name=display_name,
            emoji=emoji or DEFAULT_CUSTOM_EMOJI,
            description=description.strip(),
            system_prompt=system_prompt.strip(),
            engine=_validate_engine(engine),
            created_at=datetime.now(tz=UTC).isoformat(),
        )
        if existing:
            self._agents = [agent if item.id == agent_id else item for item in self._agents]
            logger.info("Custom agent updated in place: %s", agent_id)
        else:
            self._agents.append(agent)
            logger.info("Custom agent created: %s (engine=%s)", agent_id, agent.engine)
        self._save()
        return agent

    def update(self, agent_id: str, **fields: str) -> CustomAgentDefinition | None:
        """Patch editable fields; the id never changes."""

        current = self.get(agent_id)
        if current is None:
            return None
        unknown = set(fields) - _EDITABLE_FIELDS
        if unknown:
            raise CustomAgentError(
                f"Unsupported custom agent field(s): {', '.join(sorted(unknown))}",
            )
        if "engine" in fields:
            fields["engine"] = _validate_engine(fields["engine"])
        updated = replace(current, **fields)
        self._agents = [updated if item.id == agent_id else item for item in self._agents]
        self._save()
        return updated

    def remove(self, agent_id: str) -> bool:
        before = len(self._agents)
        self._agents = [agent for agent in self._agents if agent.id != agent_id]
        if len(self._agents) == before:
            return False
        self._save()
        logger.info("Custom agent deleted: %s", agent_id)
        return True

    def _load(self) -> list[CustomAgentDefinition]:
        if not self.path.exists():
            return []
        try:
            agents = read_custom_agents(self.path)
        except (OSError, ValueError, TypeError) as error:
            logger.error("Custom agent catalog %s could not be loaded: %s", self.path, error)
            return []
        logger.info("Loaded %d custom agent(s) from %s", len(agents), self.path)
        return agents

    def _save(self) -> None:
        write_custom_agents(self.path, self._agents)


def _validate_engine(engine: str) -> str:
    normalized = engine.strip().lower()
    if normalized not in BUILTIN_AGENT_IDS:
        raise CustomAgentError(
            f"Unsupported engine {engine!r}. Use one of {', '.join(BUILTIN_AGENT_IDS)}.",
        )
    return normalized


def _is_emoji(char: str) -> bool:
    return unicodedata.category(char) == "So" or 0x1F000 <= ord(char) <= 0x1FAFF
