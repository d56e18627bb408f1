from __future__ import annotations

import functools
import logging
from typing import Any, Callable

from flask import request
from flask_socketio import SocketIO, emit

from ..errors import GameError, InternalError
from ..game.service import GameService

logger = logging.getLogger(__name__)


def _payload(data: Any) -> dict:
    return data if isinstance(data, dict) else {}


def _isolated(error_event: str | None) -> Callable:
    """Report GameErrors to the sender and keep unexpected failures contained.

    ``error_event=None`` drops failures silently (drawing operations).
    """

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return fn(*args, **kwargs)
            except GameError as exc:
                logger.debug("%s rejected for %s: %s", fn.__name__, request.sid, exc.code)
                if error_event:
                    emit(error_event, exc.to_payload())
                return {"ok": False, "error": exc.code}
            except Exception:
                logger.exception("Error in %s", fn.__name__)
                failure = InternalError("Something went wrong, please try again")
                if error_event:
                    emit(error_event, failure.to_payload())
                return {"ok": False, "error": failure.code}

        return wrapper

    return decorator


def register_socketio_handlers(socketio: SocketIO, service: GameService) -> None:
    @socketio.on("connect")
    def on_connect(auth=None):
        logger.debug("Client connected: %s", request.sid)

    @socketio.on("create-room")
    @_isolated("room-error")
    def create_room(data):
        payload = _payload(data)
        service.create_room(request.sid, payload.get("username"))
        return {"ok": True}

    @socketio.on("join-room")
    @_isolated("room-error")
    def join_room(data):
        payload = _payload(data)
        service.join_room(request.sid, payload.get("roomCode"), payload.get("username"))
        return {"ok": True}

    @socketio.on("leave-room")
    @_isolated("room-error")
    def leave_room(data=None):
        service.leave_room(request.sid)
        return {"ok": True}

    @socketio.on("update-settings")
    @_isolated("settings-error")
    def update_settings(data):
        payload = _payload(data)
        service.update_settings(request.sid, payload.get("settings"))
        return {"ok": True}

    @socketio.on("start-game")
    @_isolated("game-error")
    def start_game(data=None):
        payload = _payload(data)
        service.start_game(request.sid, payload.get("settings"))
        return {"ok": True}

    @socketio.on("request-words")
    @_isolated("game-error")
    def request_words(data=None):
        service.request_words(request.sid)
        return {"ok": True}

    @socketio.on("select-word")
    @_isolated("game-error")
    def select_word(data):
        payload = _payload(data)
        service.select_word(request.sid, payload.get("word"))
        return {"ok": True}

    @socketio.on("send-guess")
    @_isolated("game-error")
    def send_guess(data):
        payload = _payload(data)
        text = payload.get("guess", payload.get("text"))
        service.submit_guess(request.sid, text)
        return {"ok": True}

    @socketio.on("restart-game")
    @_isolated("game-error")
    def restart_game(data=None):
        service.restart_game(request.sid)
        return {"ok": True}

    @socketio.on("draw-stroke")
    @_isolated(None)
    def draw_stroke(data):
        service.draw_stroke(request.sid, data)

    @socketio.on("clear-canvas")
    @_isolated(None)
    def clear_canvas(data=None):
        service.clear_canvas(request.sid)

    @socketio.on("undo-stroke")
    @_isolated(None)
    def undo_stroke(data=None):
        service.undo_stroke(request.sid)

    @socketio.on("redo-stroke")
    @_isolated(None)
    def redo_stroke(data):
        service.redo_stroke(request.sid, data)

    @socketio.on("reconnect-player")
    @_isolated("reconnect-error")
    def reconnect_player(data):
        payload = _payload(data)
        service.reconnect(request.sid, payload.get("sessionToken"))
        return {"ok": True}

    @socketio.on("disconnect")
    def on_disconnect(reason=None):
        try:
            service.handle_disconnect(request.sid)
        except Exception:
            logger.exception("Error handling disconnect for %s", request.sid)
