"""Persona (SOUL.md) and user notes injected into agent prompts."""

from agent_relay.memory.notes import NoteEntry, NotesStore
from agent_relay.memory.persona import PersonaProvider

__all__ = ["NoteEntry", "NotesStore", "PersonaProvider"]
