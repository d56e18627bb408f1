"""Round phase transitions.

lobby -> round_start (artist picks from offered words)
      -> drawing (word set, timer running)
      -> round_end
      -> round_start of the next round, or back to lobby once the last round
         is over (game end).

The machine only mutates room state; timers and broadcasts live in
``GameService``. Callers hold ``room.lock``.
"""

from __future__ import annotations

import logging
import random

from ..errors import AuthorizationError, StateError, ValidationError
from .models import Player, Room, RoundState, Settings
from .scoring import RoundEndBonus, ScoringEngine
from .words import WordBank

logger = logging.getLogger(__name__)

MIN_PLAYERS = 2


class RoundStateMachine:
    def __init__(
        self,
        words: WordBank,
        scoring: ScoringEngine,
        choices: int = 3,
        rng: random.Random | None = None,
    ) -> None:
        self.words = words
        self.scoring = scoring
        self.choices = choices
        self._rng = rng or random.Random()

    def start_game(self, room: Room, settings: Settings | None = None) -> RoundState:
        """Start round one; ``settings`` replace the room's only once the start is allowed."""
        if room.in_game:
            raise StateError("Game already in progress", code="in-progress")
        if len(room.players) < MIN_PLAYERS:
            raise StateError(f"Need at least {MIN_PLAYERS} players to start", code="not-enough-players")
        if settings is not None:
            room.settings = settings

        self.scoring.reset_scores(room.players)
        artist = room.players[self._rng.randrange(len(room.players))]
        state = RoundState(
            current_round=1,
            max_rounds=room.settings.max_rounds,
            round_time=room.settings.round_time,
            hints_enabled=room.settings.hints_enabled,
            ring=[p.key for p in room.players],
            artist_key=artist.key,
        )
        room.round = state
        self.offer_words(state)
        logger.info("Game started in room %s, %d rounds, artist %s", room.code, state.max_rounds, artist.username)
        return state

    def offer_words(self, state: RoundState) -> list[str]:
        state.word_options = self.words.pick(self.choices, exclude=state.used_words)
        return state.word_options

    def select_word(self, room: Room, player: Player, word: object, now: float) -> RoundState:
        state = room.round
        if state is None:
            raise StateError("Game not in progress", code="not-in-game")
        if room.artist is not player:
            raise AuthorizationError("Not your turn to draw", code="not-your-turn")
        if state.phase != "round_start":
            raise StateError("A word was already chosen this round", code="wrong-phase")

        w = word.strip().lower() if isinstance(word, str) else ""
        if not w or w not in state.word_options or not self.words.contains(w):
            raise ValidationError("Invalid word selected", code="invalid-word")

        self.begin_drawing(state, w, now)
        return state

    def begin_drawing(self, state: RoundState, word: str, now: float) -> None:
        state.phase = "drawing"
        state.target_word = word
        state.used_words.add(word)
        state.word_options = []
        state.start_time = now
        state.time_left = state.round_time
        state.revealed = set()
        state.strokes = []

    def all_guessed(self, room: Room) -> bool:
        guessers = room.guessers
        return bool(guessers) and all(p.has_guessed for p in guessers)

    def end_round(self, room: Room) -> RoundEndBonus | None:
        """Apply round-end scoring once; returns None if the round already ended."""
        state = room.round
        if state is None or state.phase not in ("round_start", "drawing"):
            return None
        state.phase = "round_end"
        result = self.scoring.process_round_end(room)
        self.scoring.validate_player_scores(room.players)
        logger.info(
            "Round %d ended in room %s: %d/%d guessed",
            state.current_round,
            room.code,
            result.guessers_count,
            result.total_players,
        )
        return result

    def next_round(self, room: Room) -> bool:
        """Advance to the next round; False means the game is over."""
        state = room.round
        if state is None:
            return False
        state.current_round += 1
        if state.current_round > state.max_rounds:
            return False
        if not room.players:
            return False

        state.artist_key = self.rotate(room, state)
        state.phase = "round_start"
        state.target_word = None
        state.start_time = None
        state.time_left = 0
        state.revealed = set()
        state.strokes = []
        for p in room.players:
            p.has_guessed = False
        self.offer_words(state)
        return True

    def rotate(self, room: Room, state: RoundState) -> str:
        """Next artist: the first ring entry after the current one still present."""
        present = {p.key for p in room.players}
        ring = state.ring
        start = ring.index(state.artist_key) if state.artist_key in ring else -1
        successor = None
        for step in range(1, len(ring) + 1):
            key = ring[(start + step) % len(ring)]
            if key in present:
                successor = key
                break

        state.ring = [k for k in ring if k in present]
        if successor is None:
            successor = room.players[0].key
            state.ring = [p.key for p in room.players]
        return successor

    def end_game(self, room: Room) -> list[Player]:
        self.scoring.validate_player_scores(room.players)
        standings = self.scoring.leaderboard(room.players)
        room.round = None
        for p in room.players:
            p.has_guessed = False
        logger.info("Game ended in room %s", room.code)
        return standings

    def reset_game(self, room: Room) -> None:
        room.round = None
        self.scoring.reset_scores(room.players)
