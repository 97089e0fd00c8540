"""Liveness tracking for client sessions.

A session is *live* while ``now - last_heartbeat_at <= window``.  Expiry is
lazy: nothing runs on a timer, so callers sweep with :meth:`expire_stale`
before reporting the online count.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)


@dataclass
class SessionRecord:
    session_id: str
    user_id: str
    display_name: str
    created_at: datetime
    last_heartbeat_at: datetime
    game_id: str | None = None


@dataclass
class HeartbeatOutcome:
    success: bool
    message: str | None = None
    created: bool = False


class SessionLivenessTracker:
    def __init__(
        self,
        window: timedelta,
        records: dict[str, SessionRecord] | None = None,
    ) -> None:
        self._window = window
        self._sessions: dict[str, SessionRecord] = dict(records or {})

    @property
    def window(self) -> timedelta:
        return self._window

    @property
    def online(self) -> int:
        return len(self._sessions)

    def is_live(self, session: SessionRecord, now: datetime) -> bool:
        return now - session.last_heartbeat_at <= self._window

    def expire_stale(self, now: datetime) -> int:
        """Drop every session past the liveness window; return how many."""
        stale = [
            session_id
            for session_id, session in self._sessions.items()
            if not self.is_live(session, now)
        ]
        for session_id in stale:
            del self._sessions[session_id]
        if stale:
            logger.debug("Expired %d stale session(s), %d online", len(stale), self.online)
        return len(stale)

    def upsert(
        self,
        session_id: str,
        user_id: str,
        display_name: str,
        now: datetime,
        game_id: str | None = None,
    ) -> SessionRecord:
        """Register *session_id* as a fresh session, replacing any previous record."""
        record = SessionRecord(
            session_id=session_id,
            user_id=user_id,
            display_name=display_name,
            created_at=now,
            last_heartbeat_at=now,
            game_id=game_id,
        )
        self._sessions[session_id] = record
        return record

    def find_live_for_user(self, user_id: str, now: datetime) -> SessionRecord | None:
        for session in self._sessions.values():
            if session.user_id == user_id and self.is_live(session, now):
                return session
        return None

    def heartbeat(
        self,
        session_id: str,
        user_id: str,
        display_name: str,
        now: datetime,
    ) -> HeartbeatOutcome:
        """Keep a session alive.

        Known session ids are refreshed, but only for their owner.  An unseen
        session id is folded into the user's existing live session when there
        is one, so a user never holds two live sessions through heartbeats
        alone.  Otherwise a new session is opened.
        """
        session = self._sessions.get(session_id)
        if session is not None:
            if session.user_id != user_id:
                logger.warning(
                    "Rejected heartbeat for session %s: owned by another user", session_id
                )
                return HeartbeatOutcome(success=False, message="Session belongs to another user")
            session.last_heartbeat_at = now
            return HeartbeatOutcome(success=True)

        existing = self.find_live_for_user(user_id, now)
        if existing is not None:
            existing.last_heartbeat_at = now
            return HeartbeatOutcome(success=True)

        self.upsert(session_id, user_id, display_name, now)
        return HeartbeatOutcome(success=True, created=True)

    def records(self) -> dict[str, SessionRecord]:
        return self._sessions
