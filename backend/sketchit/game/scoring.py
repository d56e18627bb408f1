"""Point computation for guesses and round ends.

Rules:

- a correct guess is worth ``base_points - decay_per_second * elapsed``,
  never less than ``min_points``;
- guesses within ``speed_threshold`` seconds earn ``speed_bonus``;
- the first correct guesser of a round earns ``first_guess_bonus``;
- every two consecutive rounds guessed add ``streak_bonus_per_two``;
- the artist earns ``drawer_share`` of each guess award (streak excluded), plus
  ``drawer_completion_bonus`` at round end when anybody guessed.

Scores never go negative and are capped at ``max_score``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from .models import Player, Room

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoringConfig:
    base_points: int = 100
    min_points: int = 10
    decay_per_second: int = 2
    drawer_share: float = 0.5
    first_guess_bonus: int = 20
    speed_threshold: int = 10
    speed_bonus: int = 30
    streak_bonus_per_two: int = 15
    drawer_completion_bonus: int = 25
    max_score: int = 999_999
    default_round_duration: int = 90


@dataclass
class GuessAward:
    guesser_points: int = 0
    drawer_points: int = 0
    first_guess: int = 0
    speed_bonus: int = 0
    streak: int = 0
    time_elapsed: int = 0

    def to_payload(self) -> dict:
        return {
            "guesserPoints": self.guesser_points,
            "drawerPoints": self.drawer_points,
            "bonuses": {
                "firstGuess": self.first_guess,
                "speedBonus": self.speed_bonus,
                "streak": self.streak,
            },
            "timeElapsed": self.time_elapsed,
        }


@dataclass
class RoundEndBonus:
    drawer_bonus: int = 0
    guessers_count: int = 0
    total_players: int = 0

    def to_payload(self) -> dict:
        return {
            "drawerBonus": self.drawer_bonus,
            "guessersCount": self.guessers_count,
            "totalPlayers": self.total_players,
        }


class ScoringEngine:
    def __init__(self, config: ScoringConfig | None = None) -> None:
        self.config = config or ScoringConfig()

    def guess_points(self, elapsed: float, is_first: bool = False, round_duration: int | None = None) -> int:
        cfg = self.config
        duration = round_duration or cfg.default_round_duration
        elapsed = _clamp_elapsed(elapsed, duration)

        points = max(cfg.min_points, cfg.base_points - cfg.decay_per_second * elapsed)
        if elapsed <= cfg.speed_threshold:
            points += cfg.speed_bonus
        if is_first:
            points += cfg.first_guess_bonus
        return int(math.floor(points))

    def drawer_points(self, guesser_points: float) -> int:
        if not _is_number(guesser_points) or guesser_points < 0:
            return 0
        return max(0, int(math.floor(guesser_points * self.config.drawer_share)))

    def streak_bonus(self, streak: int) -> int:
        if not _is_number(streak) or streak < 2:
            return 0
        return self.config.streak_bonus_per_two * (int(streak) // 2)

    def completion_bonus(self, guessers_count: int) -> int:
        return self.config.drawer_completion_bonus if guessers_count > 0 else 0

    def award_points(self, player: Player, points: int) -> bool:
        if not _is_number(points) or points < 0:
            logger.error("Refusing to award invalid points %r to %s", points, player.username)
            return False
        player.score = min(player.score + int(points), self.config.max_score)
        return True

    def process_correct_guess(self, room: Room, guesser: Player, elapsed: float) -> GuessAward:
        """Credit ``guesser`` and the artist for a correct guess.

        The caller sets ``guesser.has_guessed`` before calling, so the first
        guess check counts everyone else who already guessed.
        """
        state = room.round
        artist = room.artist
        if state is None or artist is None:
            logger.error("Correct guess in room %s without an artist", room.code)
            return GuessAward()
        if guesser is artist:
            logger.error("Artist %s cannot score as a guesser in room %s", guesser.username, room.code)
            return GuessAward()

        elapsed_sec = _clamp_elapsed(elapsed, state.round_time)
        earlier = [p for p in room.guessers if p is not guesser and p.has_guessed]
        is_first = not earlier

        points = self.guess_points(elapsed_sec, is_first, round_duration=state.round_time)
        drawer_points = self.drawer_points(points)
        streak = self.streak_bonus(guesser.streak)

        self.award_points(guesser, points + streak)
        self.award_points(artist, drawer_points)
        guesser.streak += 1

        return GuessAward(
            guesser_points=points + streak,
            drawer_points=drawer_points,
            first_guess=self.config.first_guess_bonus if is_first else 0,
            speed_bonus=self.config.speed_bonus if elapsed_sec <= self.config.speed_threshold else 0,
            streak=streak,
            time_elapsed=int(elapsed_sec),
        )

    def process_round_end(self, room: Room) -> RoundEndBonus:
        artist = room.artist
        guessers = room.guessers
        correct = [p for p in guessers if p.has_guessed]

        bonus = 0
        if artist is not None:
            bonus = self.completion_bonus(len(correct))
            if bonus:
                self.award_points(artist, bonus)

        for p in guessers:
            if not p.has_guessed:
                p.streak = 0

        return RoundEndBonus(drawer_bonus=bonus, guessers_count=len(correct), total_players=len(guessers))

    def leaderboard(self, players: list[Player]) -> list[Player]:
        # Ties: username ascending, case-insensitive so 'Bob' sorts between 'amy' and 'zed'.
        return sorted(players, key=lambda p: (-p.score, p.username.lower(), p.username))

    def reset_scores(self, players: list[Player]) -> None:
        for p in players:
            p.score = 0
            p.has_guessed = False
            p.streak = 0

    def validate_player_scores(self, players: list[Player]) -> None:
        for p in players:
            if not _is_number(p.score) or p.score < 0:
                logger.warning("Invalid score %r for %s, resetting to 0", p.score, p.username)
                p.score = 0
            p.score = min(int(p.score), self.config.max_score)
            if not isinstance(p.has_guessed, bool):
                p.has_guessed = False
            if not _is_number(p.streak) or p.streak < 0:
                p.streak = 0
            p.streak = int(p.streak)


def _is_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _clamp_elapsed(elapsed: float, duration: int) -> float:
    if not _is_number(elapsed):
        return 0
    return max(0, min(elapsed, duration))
