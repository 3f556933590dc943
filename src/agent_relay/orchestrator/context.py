"""Bounded prompt assembly from persona, agent instructions, notes and history."""

from __future__ import annotations

from typing import Protocol

from agent_relay.config import ContextSettings
from agent_relay.orchestrator.models import Session

_ROLE_LABELS = {"user": "User", "assistant": "Assistant"}


class PersonaSource(Protocol):
    def get(self) -> str | None: ...


class NotesSource(Protocol):
    def get_recent(self, count: int = 5, char_budget: int = 2_000) -> str: ...


class ContextBuilder:
    """Compose the single prompt string handed to an agent.

    Blocks appear in a fixed order: persona, agent instructions, memories and
    history, followed by the task. When the result exceeds the prompt limit,
    memories are dropped first, then the persona is cut down; the task text
    itself is never truncated, so the prompt may still end up oversized.
    """

    def __init__(
        self,
        settings: ContextSettings,
        *,
        persona: PersonaSource | None = None,
        notes: NotesSource | None = None,
    ) -> None:
        self.settings = settings
        self.persona = persona
        self.notes = notes

    def build(self, task: str, session: Session, *, system_prompt: str | None = None) -> str:
        persona = self.persona.get() if self.persona is not None else None
        persona_block = _block("PERSONA", persona)
        agent_block = _block("AGENT INSTRUCTIONS", system_prompt)
        memories_block = _block("MEMORIES", self._memories())
        history_block = self._history_block(session)
        suffix = f"---\nTask: {task}"

        prompt = _assemble(task, suffix, persona_block, agent_block, memories_block, history_block)
        if len(prompt) <= self.settings.prompt_limit_chars:
            return prompt

        prompt = _assemble(task, suffix, persona_block, agent_block, history_block)
        if len(prompt) <= self.settings.prompt_limit_chars:
            return prompt

        trimmed_persona = persona[: self.settings.persona_trim_chars] if persona else None
        return _assemble(
            task,
            suffix,
            _block("PERSONA", trimmed_persona),
            agent_block,
            history_block,
        )

    def _memories(self) -> str:
        if self.notes is None or self.settings.memory_mode == "none":
            return ""
        return self.notes.get_recent(
            count=self.settings.memory_count,
            char_budget=self.settings.memory_limit_chars,
        )

    def _history_block(self, session: Session) -> str:
        window = self.settings.history_window
        if window <= 0 or not session.history:
            return ""
        limit = self.settings.history_entry_max_chars
        lines = [
            f"{_ROLE_LABELS.get(entry.role, entry.role)}: {entry.text[:limit]}"
            for entry in session.history[-window * 2 :]
        ]
        return _block("HISTORY", "\n".join(lines))


def _block(label: str, body: str | None) -> str:
    if not body:
        return ""
    return f"[{label}]\n{body}\n[/{label}]"


def _assemble(task: str, suffix: str, *blocks: str) -> str:
    present = [block for block in blocks if block]
    if not present:
        return task
    return "\n\n".join(present) + f"\n\n{suffix}"
