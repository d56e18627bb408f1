"""Per-room round countdown with optional letter hints."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable

from ..realtime.scheduler import ScheduledTask, Scheduler


TICK_SECONDS = 1
HINT_REVEAL_COUNT = 2


def hint_checkpoints(duration: int) -> tuple[int, ...]:
    """Remaining-time values at which a hint is revealed."""
    if duration >= 60:
        return (duration * 2 // 3, duration // 3)
    if duration >= 30:
        return (duration // 2,)
    return ()


def hint_candidates(word: str) -> list[int]:
    # Never the first or last letter, never a space.
    return [i for i, ch in enumerate(word) if ch != " " and 0 < i < len(word) - 1]


def hint_pattern(word: str, revealed: set[int] | frozenset[int] = frozenset()) -> str:
    cells = []
    for i, ch in enumerate(word):
        if ch == " ":
            cells.append(" ")
        elif i in revealed:
            cells.append(ch)
        else:
            cells.append("_")
    return " ".join(cells)


@dataclass
class Tick:
    time_left: int
    hint: str | None = None
    expired: bool = False


class RoundTimer:
    def __init__(
        self,
        duration: int,
        word: str | None = None,
        hints_enabled: bool = False,
        rng: random.Random | None = None,
    ) -> None:
        self.duration = duration
        self.time_left = duration
        self.word = word or ""
        self.revealed: set[int] = set()
        self.cancelled = False
        self.expired = False

        self.checkpoints = hint_checkpoints(duration) if hints_enabled and self.word else ()
        self._order = hint_candidates(self.word)
        (rng or random).shuffle(self._order)
        self._task: ScheduledTask | None = None
        self._scheduler: Scheduler | None = None
        self._on_tick: Callable[[RoundTimer], None] | None = None

    @property
    def running(self) -> bool:
        return not (self.cancelled or self.expired)

    def start(self, scheduler: Scheduler, on_tick: Callable[[RoundTimer], None]) -> None:
        """Call ``on_tick(self)`` every second until expired or cancelled.

        ``on_tick`` is expected to call ``tick()``.
        """
        self._scheduler = scheduler
        self._on_tick = on_tick
        self._schedule()

    def _schedule(self) -> None:
        if self._scheduler is None or not self.running:
            return
        self._task = self._scheduler.call_later(TICK_SECONDS, self._fire, name="round-timer")

    def _fire(self) -> None:
        self._task = None
        if not self.running or self._on_tick is None:
            return
        self._on_tick(self)
        self._schedule()

    def tick(self) -> Tick | None:
        if not self.running:
            return None

        self.time_left = max(0, self.time_left - 1)
        hint = None
        if self.time_left in self.checkpoints:
            hint = self.reveal()
        if self.time_left <= 0:
            self.expired = True
            self._cancel_task()
        return Tick(time_left=self.time_left, hint=hint, expired=self.expired)

    def reveal(self) -> str | None:
        fresh = [i for i in self._order if i not in self.revealed][:HINT_REVEAL_COUNT]
        if not fresh:
            return None
        self.revealed.update(fresh)
        return self.pattern()

    def pattern(self) -> str:
        return hint_pattern(self.word, self.revealed)

    def cancel(self) -> None:
        self.cancelled = True
        self._cancel_task()

    def _cancel_task(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
