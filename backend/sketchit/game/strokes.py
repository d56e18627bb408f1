from __future__ import annotations

import time
from typing import Any, Callable

from .models import RoundState


STROKE_FIELDS = ("type", "x0", "y0", "x1", "y1", "color", "size", "tool")
COORDS = ("x0", "y0", "x1", "y1")


def _is_coord(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def clean_stroke(data: Any) -> dict | None:
    """Return the whitelisted stroke fields, or None if the stroke is malformed."""
    if not isinstance(data, dict):
        return None
    if data.get("type") == "clear":
        return {"type": "clear"}
    if not all(_is_coord(data.get(k)) for k in COORDS):
        return None
    return {k: data[k] for k in STROKE_FIELDS if k in data}


class StrokeRelay:
    """Validates artist drawing operations and keeps the round's replay log.

    Authorization (artist only, drawing phase only) is checked by the caller;
    this class only decides what gets recorded and relayed.
    """

    def __init__(
        self,
        rate_limit_ms: int = 10,
        history_limit: int = 2000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.rate_limit_ms = rate_limit_ms
        self.history_limit = history_limit
        self.clock = clock
        self._last_stroke_ms: dict[str, float] = {}

    def _throttled(self, sid: str) -> bool:
        now = self.clock() * 1000
        last = self._last_stroke_ms.get(sid)
        if last is not None and now - last < self.rate_limit_ms:
            return True
        self._last_stroke_ms[sid] = now
        return False

    def _append(self, state: RoundState, stroke: dict) -> None:
        state.strokes.append(stroke)
        if len(state.strokes) > self.history_limit:
            state.strokes = state.strokes[-self.history_limit:]

    def draw(self, state: RoundState, sid: str, data: Any) -> dict | None:
        stroke = clean_stroke(data)
        if stroke is None:
            return None
        if stroke.get("type") == "clear":
            self.clear(state)
            return stroke
        if self._throttled(sid):
            return None
        self._append(state, stroke)
        return stroke

    def clear(self, state: RoundState) -> None:
        state.strokes = []

    def undo(self, state: RoundState) -> bool:
        if not state.strokes:
            return False
        if state.strokes[-1].get("type") == "clear":
            return False
        state.strokes.pop()
        return True

    def redo(self, state: RoundState, data: Any) -> dict | None:
        stroke = clean_stroke(data)
        if stroke is None or stroke.get("type") == "clear":
            return None
        self._append(state, stroke)
        return stroke

    def forget(self, sid: str) -> None:
        self._last_stroke_ms.pop(sid, None)
