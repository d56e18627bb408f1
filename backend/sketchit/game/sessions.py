from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from threading import RLock
from typing import Callable

from ..errors import NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class Session:
    token: str
    room_code: str
    username: str
    player_id: str
    created_at: float
    last_seen: float


class SessionStore:
    """Reconnection tokens: token -> (room code, username, current player id).

    One live token per (room, username): issuing a new one revokes the old.
    Tokens idle for longer than ``ttl_sec`` are rejected (0 disables expiry).
    """

    def __init__(self, ttl_sec: int = 0, clock: Callable[[], float] = time.time) -> None:
        self.ttl_sec = ttl_sec
        self.clock = clock
        self._lock = RLock()
        self._sessions: dict[str, Session] = {}
        self._slots: dict[tuple[str, str], str] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def issue(self, room_code: str, username: str, player_id: str) -> str:
        with self._lock:
            previous = self._slots.get((room_code, username))
            if previous:
                self._sessions.pop(previous, None)

            token = secrets.token_urlsafe(24)
            now = self.clock()
            self._sessions[token] = Session(
                token=token,
                room_code=room_code,
                username=username,
                player_id=player_id,
                created_at=now,
                last_seen=now,
            )
            self._slots[(room_code, username)] = token
            return token

    def resolve(self, token: str) -> Session:
        with self._lock:
            session = self._sessions.get(token) if isinstance(token, str) else None
            if session is None:
                raise NotFoundError("Session not found or expired")
            if self.ttl_sec and self.clock() - session.last_seen > self.ttl_sec:
                logger.info("Session for %s in %s expired", session.username, session.room_code)
                self._drop(session)
                raise NotFoundError("Session not found or expired")
            return session

    def rebind(self, token: str, player_id: str) -> Session:
        with self._lock:
            session = self.resolve(token)
            session.player_id = player_id
            session.last_seen = self.clock()
            return session

    def revoke(self, token: str) -> None:
        with self._lock:
            session = self._sessions.get(token)
            if session:
                self._drop(session)

    def revoke_player(self, room_code: str, username: str) -> None:
        with self._lock:
            token = self._slots.get((room_code, username))
            if token:
                self.revoke(token)

    def revoke_room(self, room_code: str) -> None:
        with self._lock:
            for session in [s for s in self._sessions.values() if s.room_code == room_code]:
                self._drop(session)

    def _drop(self, session: Session) -> None:
        self._sessions.pop(session.token, None)
        slot = (session.room_code, session.username)
        if self._slots.get(slot) == session.token:
            del self._slots[slot]
