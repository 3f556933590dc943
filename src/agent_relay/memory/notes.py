"""Markdown notes remembered on behalf of the user.

Each note is one file named ``YYYYMMDD-HHMMSS-<slug>.md`` with a small front
matter block carrying the ISO timestamp. The file stem is the note id, so
lexical order of filenames is chronological order.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

LAST_NOTE = "last"
_MIN_TAIL_CHARS = 20
_PREVIEW_CHARS = 80
_SLUG_WORDS = 5
_SLUG_MAX_CHARS = 40
_FRONT_MATTER_RE = re.compile(r"^---\ndate:\s*(.+?)\n---\n", re.DOTALL)
_ANY_FRONT_MATTER_RE = re.compile(r"^---\n[\s\S]*?---\n")


@dataclass(slots=True)
class NoteEntry:
    """Parsed note file."""

    id: str
    date: str
    content: str

    @property
    def preview(self) -> str:
        return self.content[:_PREVIEW_CHARS]


class NotesStore:
    """Directory of note files with newest-first listing."""

    def __init__(
        self,
        directory: Path,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.directory = directory
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    def save(self, text: str) -> str:
        content = text.strip()
        if not content:
            raise ValueError("Note text must not be empty.")
        now = self._clock()
        note_id = f"{now.strftime('%Y%m%d-%H%M%S')}-{_slug(content)}"
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"{note_id}.md"
        path.write_text(f"---\ndate: {now.isoformat()}\n---\n\n{content}\n", "utf-8")
        logger.debug("Note saved: %s", path.name)
        return note_id

    def list(self, page: int = 1, limit: int = 10) -> list[NoteEntry]:
        start = max(0, page - 1) * limit
        entries: list[NoteEntry] = []
        for path in self._files()[start : start + limit]:
            entry = self._parse(path)
            if entry is not None:
                entries.append(entry)
        return entries

    def remove(self, note_id: str) -> bool:
        """Delete a note by id, or the newest one when given ``"last"``."""

        files = self._files()
        if not files:
            return False
        if note_id == LAST_NOTE:
            target = files[0]
        else:
            target = next((path for path in files if path.stem == note_id), None)
        if target is None:
            return False
        try:
            target.unlink()
        except OSError as error:
            logger.error("Note %s could not be deleted: %s", target.name, error)
            return False
        logger.debug("Note deleted: %s", target.name)
        return True

    def get_recent(self, count: int = 5, char_budget: int = 2_000) -> str:
        """Newest notes as ``[YYYY-MM-DD] text`` blocks within ``char_budget``."""

        parts: list[str] = []
        total = 0
        for path in self._files()[:count]:
            entry = self._parse(path)
            if entry is None:
                continue
            text = f"[{entry.date[:10]}] {entry.content}"
            if total + len(text) > char_budget:
                remaining = char_budget - total
                if remaining > _MIN_TAIL_CHARS:
                    parts.append(text[:remaining])
                break
            parts.append(text)
            total += len(text)
        return "\n\n".join(parts)

    def _files(self) -> list[Path]:
        if not self.directory.is_dir():
            return []
        return sorted(self.directory.glob("*.md"), reverse=True)

    def _parse(self, path: Path) -> NoteEntry | None:
        try:
            raw = path.read_text("utf-8")
        except OSError as error:
            logger.warning("Note %s could not be read: %s", path.name, error)
            return None
        match = _FRONT_MATTER_RE.match(raw)
        return NoteEntry(
            id=path.stem,
            date=match.group(1).strip() if match else "",
            content=_ANY_FRONT_MATTER_RE.sub("", raw, count=1).strip(),
        )


def _slug(content: str) -> str:
    cleaned = re.sub(r"[^a-z0-9\s]", "", content.lower())
    slug = "-".join(cleaned.split()[:_SLUG_WORDS])
    slug = re.sub(r"-{2,}", "-", slug)[:_SLUG_MAX_CHARS]
    return slug or "note"
