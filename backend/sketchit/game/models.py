from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Literal

from ..errors import ValidationError


Phase = Literal["lobby", "round_start", "drawing", "round_end"]

ROUND_TIME_RANGE = (30, 180)
MAX_ROUNDS_RANGE = (1, 10)
MAX_PLAYERS_RANGE = (2, 12)


def _new_key() -> str:
    return uuid.uuid4().hex


@dataclass
class Settings:
    round_time: int = 90
    max_rounds: int = 3
    max_players: int = 8
    hints_enabled: bool = True

    def to_payload(self) -> dict:
        return {
            "roundTime": self.round_time,
            "maxRounds": self.max_rounds,
            "maxPlayers": self.max_players,
            "hintsEnabled": self.hints_enabled,
        }

    def updated(self, raw: Any) -> Settings:
        """Return a copy with the fields present in ``raw`` applied.

        Raises ``ValidationError`` when a value is not an integer or falls
        outside its allowed range.
        """
        if not isinstance(raw, dict):
            raise ValidationError("Settings must be an object", code="bad-settings")

        round_time = _bounded_int(raw, "roundTime", self.round_time, ROUND_TIME_RANGE, "Round time", " seconds")
        max_rounds = _bounded_int(raw, "maxRounds", self.max_rounds, MAX_ROUNDS_RANGE, "Max rounds")
        max_players = _bounded_int(raw, "maxPlayers", self.max_players, MAX_PLAYERS_RANGE, "Max players")
        hints_enabled = bool(raw["hintsEnabled"]) if "hintsEnabled" in raw else self.hints_enabled

        return Settings(
            round_time=round_time,
            max_rounds=max_rounds,
            max_players=max_players,
            hints_enabled=hints_enabled,
        )


def _bounded_int(raw: dict, key: str, current: int, bounds: tuple[int, int], label: str, unit: str = "") -> int:
    if key not in raw:
        return current
    low, high = bounds
    message = f"{label} must be between {low} and {high}{unit}"
    value = raw[key]
    if isinstance(value, bool):
        raise ValidationError(message, code="bad-settings")
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(message, code="bad-settings")
    if value < low or value > high:
        raise ValidationError(message, code="bad-settings")
    return value


@dataclass
class Player:
    id: str
    username: str
    key: str = field(default_factory=_new_key)
    score: int = 0
    has_guessed: bool = False
    streak: int = 0
    connected: bool = True

    def to_payload(self, is_host: bool = False) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "score": self.score,
            "hasGuessed": self.has_guessed,
            "streak": self.streak,
            "connected": self.connected,
            "isHost": is_host,
        }


@dataclass
class RoundState:
    current_round: int
    max_rounds: int
    round_time: int
    hints_enabled: bool
    ring: list[str]
    artist_key: str | None
    phase: Phase = "round_start"
    word_options: list[str] = field(default_factory=list)
    target_word: str | None = None
    start_time: float | None = None
    time_left: int = 0
    revealed: set[int] = field(default_factory=set)
    strokes: list[dict] = field(default_factory=list)
    used_words: set[str] = field(default_factory=set)


@dataclass
class Room:
    code: str
    players: list[Player] = field(default_factory=list)
    settings: Settings = field(default_factory=Settings)
    round: RoundState | None = None
    created_at: float = 0.0
    lock: RLock = field(default_factory=RLock, repr=False, compare=False)
    # Running RoundTimer, if any.
    timer: Any = field(default=None, repr=False, compare=False)
    # Named ScheduledTask handles (choice timeout, next round, disconnect grace).
    tasks: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def host(self) -> Player | None:
        return self.players[0] if self.players else None

    @property
    def phase(self) -> Phase:
        return self.round.phase if self.round else "lobby"

    @property
    def in_game(self) -> bool:
        return self.round is not None

    @property
    def artist(self) -> Player | None:
        if not self.round or not self.round.artist_key:
            return None
        return self.player_by_key(self.round.artist_key)

    @property
    def artist_index(self) -> int | None:
        artist = self.artist
        if artist is None:
            return None
        return self.players.index(artist)

    @property
    def guessers(self) -> list[Player]:
        artist = self.artist
        return [p for p in self.players if p is not artist]

    def player_by_id(self, player_id: str) -> Player | None:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def player_by_key(self, key: str) -> Player | None:
        for p in self.players:
            if p.key == key:
                return p
        return None

    def player_by_username(self, username: str) -> Player | None:
        for p in self.players:
            if p.username == username:
                return p
        return None

    def is_host(self, player: Player) -> bool:
        return self.host is player

    def players_payload(self) -> list[dict]:
        host = self.host
        return [p.to_payload(is_host=p is host) for p in self.players]

    def public_state(self) -> dict:
        return {
            "code": self.code,
            "phase": self.phase,
            "inGame": self.in_game,
            "hostId": self.host.id if self.host else None,
            "players": self.players_payload(),
            "settings": self.settings.to_payload(),
        }
