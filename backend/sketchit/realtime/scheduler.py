"""Cancellable delayed calls on top of Socket.IO background tasks."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Protocol

from flask_socketio import SocketIO

logger = logging.getLogger(__name__)


class ScheduledTask:
    def __init__(self, name: str = "") -> None:
        self.name = name
        self.cancelled = False
        self.done = False

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.done)

    def cancel(self) -> None:
        self.cancelled = True


class Scheduler(Protocol):
    def call_later(self, delay: float, fn: Callable[..., Any], *args: Any, name: str = "") -> ScheduledTask: ...

    def time(self) -> float: ...


class SocketIOScheduler:
    def __init__(self, socketio: SocketIO) -> None:
        self.socketio = socketio

    def time(self) -> float:
        return time.time()

    def call_later(self, delay: float, fn: Callable[..., Any], *args: Any, name: str = "") -> ScheduledTask:
        task = ScheduledTask(name)

        def _runner() -> None:
            if delay > 0:
                self.socketio.sleep(delay)
            if task.cancelled:
                return
            task.done = True
            try:
                fn(*args)
            except Exception:
                logger.exception("Scheduled task %s failed", name or fn)

        self.socketio.start_background_task(_runner)
        return task
