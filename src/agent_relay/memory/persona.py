"""Operator-authored persona file prepended to every prompt."""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

PERSONA_MAX_CHARS = 4_000


class PersonaProvider:
    """Cached view over ``SOUL.md``; missing file means no persona."""

    def __init__(self, path: Path, *, max_chars: int = PERSONA_MAX_CHARS) -> None:
        self.path = path
        self.max_chars = max_chars
        self._cache: str | None = None
        self._load()

    def get(self) -> str | None:
        return self._cache

    def exists(self) -> bool:
        return self._cache is not None

    def reload(self) -> None:
        self._load()
        logger.debug("Persona reloaded from %s", self.path)

    def write(self, content: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(content, "utf-8")
        self._load()
        logger.info("Persona written to %s", self.path)

    def _load(self) -> None:
        if not self.path.exists():
            self._cache = None
            return
        try:
            content = self.path.read_text("utf-8")
        except OSError as error:
            logger.error("Persona file %s could not be read: %s", self.path, error)
            self._cache = None
            return
        if len(content) > self.max_chars:
            logger.warning(
                "Persona file exceeds %d chars and will be truncated when injected",
                self.max_chars,
            )
            content = content[: self.max_chars]
        self._cache = content
