from __future__ import annotations

import logging
from typing import Protocol

from flask_socketio import SocketIO

logger = logging.getLogger(__name__)


class Broadcaster(Protocol):
    def to_room(self, room: str, event: str, payload: dict | list | None = None, skip_sid: str | None = None) -> None: ...

    def to_sid(self, sid: str, event: str, payload: dict | list | None = None) -> None: ...

    def join(self, sid: str, room: str) -> None: ...

    def leave(self, sid: str, room: str) -> None: ...


class SocketIOBroadcaster:
    """Fire-and-forget emits; a failing recipient never blocks the caller."""

    def __init__(self, socketio: SocketIO, namespace: str = "/") -> None:
        self.socketio = socketio
        self.namespace = namespace

    def to_room(self, room: str, event: str, payload: dict | list | None = None, skip_sid: str | None = None) -> None:
        try:
            self.socketio.emit(event, payload, to=room, skip_sid=skip_sid, namespace=self.namespace)
        except Exception:
            logger.exception("Failed to emit %s to room %s", event, room)

    def to_sid(self, sid: str, event: str, payload: dict | list | None = None) -> None:
        try:
            self.socketio.emit(event, payload, to=sid, namespace=self.namespace)
        except Exception:
            logger.exception("Failed to emit %s to %s", event, sid)

    def join(self, sid: str, room: str) -> None:
        self.socketio.server.enter_room(sid, room, namespace=self.namespace)

    def leave(self, sid: str, room: str) -> None:
        try:
            self.socketio.server.leave_room(sid, room, namespace=self.namespace)
        except Exception:
            logger.debug("Could not remove %s from room %s", sid, room, exc_info=True)
