"""Process-wide registry of live chat sessions.

Single-process scope: sessions are not shared across server instances.
Ended or idle sessions are dropped from memory by the scheduled sweep;
their transcripts stay in the store.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import structlog

from heritagebox_chat.core.exceptions import SessionExistsError, SessionNotFoundError
from heritagebox_chat.models.session import Session, utcnow

logger = structlog.get_logger(__name__)


class SessionRegistry:
    """session_id -> Session, plus one asyncio.Lock per session.

    The per-session lock serializes transcript writes for that session.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def add(self, session: Session) -> Session:
        if session.session_id in self._sessions:
            raise SessionExistsError(f"Session {session.session_id} already exists")
        self._sessions[session.session_id] = session
        self._locks[session.session_id] = asyncio.Lock()
        return session

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    def lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def remove(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._locks.pop(session_id, None)

    def evict_idle(self, max_idle: timedelta) -> int:
        """Drop ended sessions and sessions idle longer than *max_idle*."""
        cutoff = utcnow() - max_idle
        stale = [
            sid
            for sid, session in self._sessions.items()
            if not session.is_active or session.last_activity_at < cutoff
        ]
        for sid in stale:
            self.remove(sid)
        if stale:
            logger.info("sessions_evicted", count=len(stale))
        return len(stale)
