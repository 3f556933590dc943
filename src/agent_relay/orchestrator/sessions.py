"""Per-user sessions: active agent, rolling history and the in-flight task slot."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
import time
import uuid
from collections.abc import Callable
from pathlib import Path

from agent_relay.config import SessionSettings
from agent_relay.orchestrator.contracts import (
    SessionRecord,
    read_session_record,
    write_session_record,
)
from agent_relay.orchestrator.models import HistoryEntry, Session, TaskHandle

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class SessionStore:
    """In-memory session map with optional per-user JSON persistence.

    In-flight task handles are ephemeral and never written to disk.
    """

    def __init__(
        self,
        settings: SessionSettings | None = None,
        *,
        sessions_dir: Path | None = None,
        default_agent_id: str = "claude",
        history_window: int = 6,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or SessionSettings()
        self.sessions_dir = sessions_dir if self.settings.persist else None
        self.default_agent_id = default_agent_id
        self.history_window = max(0, history_window)
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def size(self) -> int:
        return len(self._sessions)

    def get_or_create(self, user_id: str) -> Session:
        key = str(user_id)
        session = self._sessions.get(key)
        if session is not None:
            return session
        session = self._load(key)
        if session is None:
            session = Session(
                session_id=uuid.uuid4().hex,
                user_id=key,
                active_agent_id=self.default_agent_id,
                last_activity=self._clock(),
            )
            logger.debug("Session created for user %s (agent: %s)", key, session.active_agent_id)
        self._sessions[key] = session
        return session

    def lock(self, user_id: str) -> asyncio.Lock:
        """Lock serializing state transitions of one session."""

        key = str(user_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def set_agent(self, user_id: str, agent_id: str) -> None:
        session = self.get_or_create(user_id)
        session.active_agent_id = agent_id
        session.last_activity = self._clock()
        logger.debug("User %s switched to agent %s", session.user_id, agent_id)
        self._save(session)

    def append_history(
        self,
        user_id: str,
        role: str,
        text: str,
        agent_id: str | None = None,
    ) -> None:
        session = self.get_or_create(user_id)
        now = self._clock()
        session.last_activity = now
        if role == "user":
            session.task_count += 1
        if self.history_window == 0:
            self._save(session)
            return
        session.history.append(
            HistoryEntry(
                role=role,
                text=text,
                agent_id=agent_id or session.active_agent_id,
                timestamp=now,
            ),
        )
        max_entries = self.history_window * 2
        if len(session.history) > max_entries:
            del session.history[:-max_entries]
        self._save(session)

    def clear_history(self, user_id: str) -> None:
        """Reset history and drop any in-flight task, cancelling it first."""

        session = self.get_or_create(user_id)
        handle = session.in_flight
        if handle is not None:
            handle.cancel()
            session.in_flight = None
        session.history = []
        session.task_count = 0
        session.last_activity = self._clock()
        logger.debug("History cleared for user %s", session.user_id)
        path = self._path(session.user_id)
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as error:
            logger.error("Session file %s could not be deleted: %s", path, error)

    def set_in_flight_task(self, user_id: str, handle: TaskHandle) -> None:
        session = self.get_or_create(user_id)
        if session.in_flight is not None and session.in_flight is not handle:
            raise RuntimeError(f"Session {session.user_id} already has a task in flight")
        session.in_flight = handle
        session.last_activity = self._clock()
        logger.debug("Task in flight for user %s (agent: %s)", session.user_id, handle.agent_id)

    def get_in_flight_task(self, user_id: str) -> TaskHandle | None:
        return self.get_or_create(user_id).in_flight

    def clear_in_flight_task(self, user_id: str, handle: TaskHandle | None = None) -> bool:
        """Empty the slot; with ``handle`` only when the slot still holds it."""

        session = self.get_or_create(user_id)
        if session.in_flight is None:
            return False
        if handle is not None and session.in_flight is not handle:
            return False
        session.in_flight = None
        logger.debug("In-flight task cleared for user %s", session.user_id)
        return True

    def evict_inactive(self, ttl_seconds: float | None = None) -> int:
        ttl = self.settings.ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            logger.debug("Session eviction disabled; active sessions: %d", self.size)
            return 0
        now = self._clock()
        expired = [
            key
            for key, session in self._sessions.items()
            if session.in_flight is None and now - session.last_activity > ttl
        ]
        for key in expired:
            del self._sessions[key]
            lock = self._locks.get(key)
            if lock is not None and not lock.locked():
                del self._locks[key]
        if expired:
            logger.info("Session cleanup: removed %d inactive session(s)", len(expired))
        return len(expired)

    def _path(self, user_id: str) -> Path | None:
        if self.sessions_dir is None:
            return None
        return self.sessions_dir / f"{session_file_stem(user_id)}.json"

    def _load(self, user_id: str) -> Session | None:
        path = self._path(user_id)
        if path is None or not path.exists():
            return None
        try:
            record = read_session_record(path)
        except (OSError, ValueError, TypeError) as error:
            logger.error("Session load failed for user %s: %s", user_id, error)
            return None
        history = record.history
        if self.history_window == 0:
            history = []
        else:
            history = history[-self.history_window * 2 :]
        logger.debug("Session loaded from disk for user %s (%d entries)", user_id, len(history))
        return Session(
            session_id=record.session_id or uuid.uuid4().hex,
            user_id=user_id,
            active_agent_id=record.active_agent_id,
            history=history,
            task_count=record.task_count,
            last_activity=self._clock(),
        )

    def _save(self, session: Session) -> None:
        path = self._path(session.user_id)
        if path is None:
            return
        record = SessionRecord(
            session_id=session.session_id,
            user_id=session.user_id,
            active_agent_id=session.active_agent_id,
            history=session.history,
            task_count=session.task_count,
        )
        try:
            write_session_record(path, record)
        except OSError as error:
            logger.error("Session save failed for user %s: %s", session.user_id, error)


def session_file_stem(user_id: str) -> str:
    """Filesystem-safe stem; ids that needed escaping get a digest of the raw id."""

    safe = _UNSAFE_FILENAME_CHARS.sub("_", user_id)
    if safe == user_id:
        return safe
    digest = hashlib.sha256(user_id.encode("utf-8")).hexdigest()[:8]
    return f"{safe}-{digest}"
