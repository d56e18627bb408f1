"""Room orchestration: every inbound action and timer callback ends up here.

Each public method resolves the caller's room, holds ``room.lock`` for the
whole operation, mutates state through the round machine, scoring engine and
stroke relay, and emits the resulting events. Errors are raised as
``GameError`` subclasses for the socket layer to report to the sender.
"""

from __future__ import annotations

import logging
import random
from contextlib import contextmanager
from functools import partial
from typing import Any, Iterator, Mapping

from ..errors import AuthorizationError, NotFoundError, StateError, ValidationError
from ..realtime.broadcast import Broadcaster
from ..realtime.scheduler import ScheduledTask, Scheduler
from .guessing import Verdict, classify, contains_answer
from .models import Player, Room, RoundState, Settings
from .registry import RoomRegistry, normalize_room_code, normalize_username
from .rounds import RoundStateMachine
from .scoring import ScoringEngine
from .sessions import SessionStore
from .strokes import StrokeRelay
from .timer import RoundTimer, hint_pattern
from .words import WordBank

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 100
ROUND_TASKS = ("choose", "next-round")


def _system_message(text: str) -> dict:
    return {"username": "System", "message": text, "type": "system"}


class GameService:
    def __init__(
        self,
        registry: RoomRegistry,
        sessions: SessionStore,
        rounds: RoundStateMachine,
        relay: StrokeRelay,
        broadcaster: Broadcaster,
        scheduler: Scheduler,
        *,
        choose_duration: int = 20,
        round_end_delay: int = 5,
        reconnect_grace: int = 30,
        rng: random.Random | None = None,
    ) -> None:
        self.registry = registry
        self.sessions = sessions
        self.rounds = rounds
        self.scoring: ScoringEngine = rounds.scoring
        self.words: WordBank = rounds.words
        self.relay = relay
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self.choose_duration = choose_duration
        self.round_end_delay = round_end_delay
        self.reconnect_grace = reconnect_grace
        self._rng = rng or random.Random()

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        broadcaster: Broadcaster,
        scheduler: Scheduler,
        rng: random.Random | None = None,
    ) -> GameService:
        words = WordBank.from_file(config["WORDS_FILE"], rng=rng)
        defaults = Settings(
            round_time=int(config.get("DEFAULT_ROUND_TIME", 90)),
            max_rounds=int(config.get("DEFAULT_MAX_ROUNDS", 3)),
            max_players=int(config.get("DEFAULT_MAX_PLAYERS", 8)),
            hints_enabled=bool(config.get("DEFAULT_HINTS_ENABLED", True)),
        )
        rounds = RoundStateMachine(
            words,
            ScoringEngine(),
            choices=int(config.get("WORD_CHOICES_COUNT", 3)),
            rng=rng,
        )
        return cls(
            registry=RoomRegistry(defaults, rng=rng),
            sessions=SessionStore(ttl_sec=int(config.get("SESSION_TTL_SEC", 0)), clock=scheduler.time),
            rounds=rounds,
            relay=StrokeRelay(
                rate_limit_ms=int(config.get("STROKE_RATE_LIMIT_MS", 10)),
                history_limit=int(config.get("STROKE_HISTORY_LIMIT", 2000)),
                clock=scheduler.time,
            ),
            broadcaster=broadcaster,
            scheduler=scheduler,
            choose_duration=int(config.get("CHOOSE_DURATION_SEC", 20)),
            round_end_delay=int(config.get("ROUND_END_DELAY_SEC", 5)),
            reconnect_grace=int(config.get("RECONNECT_GRACE_SEC", 30)),
            rng=rng,
        )

    def now(self) -> float:
        return self.scheduler.time()

    # ---- lookups ----

    @contextmanager
    def _locked(self, sid: str) -> Iterator[tuple[Room, Player]]:
        room = self.registry.lookup_by_sid(sid)
        if room is None:
            raise NotFoundError("You are not in a room")
        with room.lock:
            player = room.player_by_id(sid)
            if player is None:
                raise NotFoundError("You are not in a room")
            yield room, player

    def get_room(self, code: str) -> Room | None:
        return self.registry.get_room(code)

    def pick_words(self, count: int) -> list[str]:
        return self.words.pick(count)

    # ---- scheduled tasks ----

    def _schedule(self, room: Room, name: str, delay: float, fn, *args) -> None:
        self._cancel_task(room, name)
        room.tasks[name] = self.scheduler.call_later(delay, fn, *args, name=f"{room.code}:{name}")

    def _cancel_task(self, room: Room, name: str) -> None:
        task: ScheduledTask | None = room.tasks.pop(name, None)
        if task is not None:
            task.cancel()

    def _stop_timer(self, room: Room) -> None:
        if room.timer is not None:
            room.timer.cancel()
            room.timer = None

    def _stop_round(self, room: Room) -> None:
        self._stop_timer(room)
        for name in ROUND_TASKS:
            self._cancel_task(room, name)

    def _teardown(self, room: Room) -> None:
        self._stop_timer(room)
        for name in list(room.tasks):
            self._cancel_task(room, name)
        self.sessions.revoke_room(room.code)
        logger.info("Room %s torn down", room.code)

    # ---- membership ----

    def create_room(self, sid: str, username: Any) -> dict:
        name = normalize_username(username)
        room = self.registry.create_room(Player(id=sid, username=name))
        with room.lock:
            token = self.sessions.issue(room.code, name, sid)
            self.broadcaster.join(sid, room.code)
            payload = {
                "roomCode": room.code,
                "playerId": sid,
                "players": room.players_payload(),
                "sessionToken": token,
                "settings": room.settings.to_payload(),
            }
            self.broadcaster.to_sid(sid, "room-created", payload)
            return payload

    def join_room(self, sid: str, code: Any, username: Any) -> dict:
        name = normalize_username(username)
        room_code = normalize_room_code(code)
        player = Player(id=sid, username=name)
        room = self.registry.join_room(room_code, player)
        with room.lock:
            token = self.sessions.issue(room.code, name, sid)
            self.broadcaster.join(sid, room.code)
            payload = {
                "roomCode": room.code,
                "playerId": sid,
                "players": room.players_payload(),
                "sessionToken": token,
                "settings": room.settings.to_payload(),
            }
            self.broadcaster.to_sid(sid, "room-joined", payload)
            self.broadcaster.to_room(
                room.code,
                "player-joined",
                {"player": player.to_payload(), "players": room.players_payload()},
                skip_sid=sid,
            )
            return payload

    def leave_room(self, sid: str) -> None:
        room = self.registry.lookup_by_sid(sid)
        if room is None:
            return
        with room.lock:
            player = room.player_by_id(sid)
            if player is None:
                return
            self.sessions.revoke_player(room.code, player.username)
            self._remove_player(room, player)

    def handle_disconnect(self, sid: str) -> None:
        room = self.registry.lookup_by_sid(sid)
        if room is None:
            return
        with room.lock:
            player = room.player_by_id(sid)
            if player is None:
                return
            if self.reconnect_grace <= 0:
                self.sessions.revoke_player(room.code, player.username)
                self._remove_player(room, player)
                return

            player.connected = False
            logger.info("%s disconnected from %s, holding slot for %ss", player.username, room.code, self.reconnect_grace)
            self.broadcaster.to_room(
                room.code,
                "player-disconnected",
                {"playerId": sid, "username": player.username, "players": room.players_payload()},
                skip_sid=sid,
            )
            self._schedule(room, f"drop:{player.key}", self.reconnect_grace, self._expire_disconnected, room.code, player.key)

    def _expire_disconnected(self, code: str, key: str) -> None:
        room = self.registry.get_room(code)
        if room is None:
            return
        with room.lock:
            room.tasks.pop(f"drop:{key}", None)
            player = room.player_by_key(key)
            if player is None or player.connected:
                return
            logger.info("%s did not reconnect to %s in time", player.username, code)
            self.sessions.revoke_player(code, player.username)
            self._remove_player(room, player)

    def _remove_player(self, room: Room, player: Player) -> None:
        state = room.round
        was_artist = room.artist is player
        sid = player.id

        self.registry.remove_player(sid)
        self.relay.forget(sid)
        self.broadcaster.leave(sid, room.code)
        self._cancel_task(room, f"drop:{player.key}")

        if not room.players:
            self._teardown(room)
            return

        self.broadcaster.to_room(
            room.code,
            "player-left",
            {"playerId": sid, "username": player.username, "players": room.players_payload()},
        )

        if state is None or room.round is not state:
            return
        if len(room.players) == 1:
            logger.info("Only one player left in %s, ending game", room.code)
            self._end_game(room)
            return
        if state.phase in ("round_start", "drawing"):
            if was_artist:
                self._end_round(room, reason="artist-left")
            elif state.phase == "drawing" and self.rounds.all_guessed(room):
                self._end_round(room, reason="all-guessed")

    # ---- game flow ----

    def start_game(self, sid: str, settings: Any = None) -> None:
        with self._locked(sid) as (room, player):
            if not room.is_host(player):
                raise AuthorizationError("Only the host can start the game", code="not-host")
            new_settings = room.settings.updated(settings) if settings is not None else None
            state = self.rounds.start_game(room, new_settings)
            if new_settings is not None:
                self.broadcaster.to_room(room.code, "settings-updated", {"settings": room.settings.to_payload()})

            artist = room.artist
            self.broadcaster.to_room(
                room.code,
                "game-started",
                {
                    "round": state.current_round,
                    "maxRounds": state.max_rounds,
                    "currentDrawer": room.artist_index,
                    "drawerId": artist.id,
                    "drawer": artist.username,
                    "players": room.players_payload(),
                },
            )
            self._announce_round(room)

    def _announce_round(self, room: Room) -> None:
        state = room.round
        artist = room.artist
        self.broadcaster.to_room(
            room.code,
            "round-started",
            {
                "round": state.current_round,
                "maxRounds": state.max_rounds,
                "currentDrawer": room.artist_index,
                "drawerId": artist.id,
                "drawer": artist.username,
                "players": room.players_payload(),
            },
        )
        self._offer_to_artist(room)
        if self.choose_duration > 0:
            self._schedule(room, "choose", self.choose_duration, self._auto_choose, room.code, state, state.current_round)

    def _offer_to_artist(self, room: Room) -> None:
        state = room.round
        artist = room.artist
        if not artist.connected:
            # Delivered with the reconnect snapshot instead.
            logger.info("Artist %s in %s is offline, holding word offer", artist.username, room.code)
            return
        self.broadcaster.to_sid(artist.id, "your-turn", {"words": list(state.word_options), "round": state.current_round})

    def request_words(self, sid: str) -> None:
        with self._locked(sid) as (room, player):
            state = room.round
            if state is None or state.phase != "round_start" or room.artist is not player:
                return
            self._offer_to_artist(room)

    def _auto_choose(self, code: str, state: RoundState, round_no: int) -> None:
        room = self.registry.get_room(code)
        if room is None:
            return
        with room.lock:
            room.tasks.pop("choose", None)
            if room.round is not state or state.phase != "round_start" or state.current_round != round_no:
                return
            if not state.word_options:
                self.rounds.offer_words(state)
            word = state.word_options[0]
            logger.info("Artist did not choose in %s, picking automatically", code)
            self.rounds.begin_drawing(state, word, self.now())
            self._start_drawing(room)

    def select_word(self, sid: str, word: Any) -> None:
        with self._locked(sid) as (room, player):
            self.rounds.select_word(room, player, word, self.now())
            self._start_drawing(room)

    def _start_drawing(self, room: Room) -> None:
        state = room.round
        word = state.target_word
        self._cancel_task(room, "choose")
        self._stop_timer(room)

        timer = RoundTimer(state.round_time, word, hints_enabled=state.hints_enabled, rng=self._rng)
        room.timer = timer

        artist = room.artist
        masked = {"wordLength": len(word), "underscores": timer.pattern()}
        self.broadcaster.to_room(room.code, "word-selected", masked, skip_sid=artist.id if artist else None)
        if artist is not None:
            self.broadcaster.to_sid(artist.id, "word-selected", {**masked, "word": word})
        self.broadcaster.to_room(
            room.code,
            "drawing-started",
            {
                "round": state.current_round,
                "drawer": artist.username if artist else None,
                "drawerId": artist.id if artist else None,
                "timeLeft": state.time_left,
            },
        )
        timer.start(self.scheduler, partial(self._on_timer_tick, room.code))

    def _on_timer_tick(self, code: str, timer: RoundTimer) -> None:
        room = self.registry.get_room(code)
        if room is None:
            timer.cancel()
            return
        with room.lock:
            if room.timer is not timer or room.round is None:
                timer.cancel()
                return
            try:
                tick = timer.tick()
                if tick is None:
                    return
                state = room.round
                state.time_left = tick.time_left
                state.revealed = set(timer.revealed)
                self.broadcaster.to_room(code, "timer-update", {"timeLeft": tick.time_left, "roomCode": code})
                if tick.hint:
                    artist = room.artist
                    self.broadcaster.to_room(
                        code,
                        "hint-revealed",
                        {"hint": tick.hint},
                        skip_sid=artist.id if artist else None,
                    )
                if tick.expired:
                    self._end_round(room, reason="time")
            except Exception:
                logger.exception("Timer tick failed in room %s", code)

    def _end_round(self, room: Room, reason: str) -> None:
        state = room.round
        result = self.rounds.end_round(room)
        if result is None:
            return
        self._stop_timer(room)
        self._cancel_task(room, "choose")

        artist = room.artist
        self.broadcaster.to_room(
            room.code,
            "round-end",
            {
                "word": state.target_word,
                "reason": reason,
                "round": state.current_round,
                "drawer": artist.username if artist else None,
                "scores": [
                    {"username": p.username, "score": p.score, "hasGuessed": p.has_guessed, "streak": p.streak}
                    for p in room.players
                ],
                "roundEndBonus": result.to_payload(),
            },
        )
        self._schedule(room, "next-round", self.round_end_delay, self._advance, room.code, state, state.current_round)

    def _advance(self, code: str, state: RoundState, round_no: int) -> None:
        room = self.registry.get_room(code)
        if room is None:
            return
        with room.lock:
            room.tasks.pop("next-round", None)
            if room.round is not state or state.phase != "round_end" or state.current_round != round_no:
                return
            self._next_round(room)

    def _next_round(self, room: Room) -> None:
        if not self.rounds.next_round(room):
            self._end_game(room)
            return
        self._announce_round(room)

    def _end_game(self, room: Room) -> None:
        self._stop_round(room)
        standings = self.rounds.end_game(room)
        winner = standings[0] if standings else None
        self.broadcaster.to_room(
            room.code,
            "game-ended",
            {
                "winner": {"username": winner.username, "score": winner.score} if winner else None,
                "scores": [{"username": p.username, "score": p.score, "streak": p.streak} for p in standings],
            },
        )

    def restart_game(self, sid: str) -> None:
        with self._locked(sid) as (room, player):
            if not room.is_host(player):
                raise AuthorizationError("Only the host can restart the game", code="not-host")
            self._stop_round(room)
            self.rounds.reset_game(room)
            self.broadcaster.to_room(room.code, "game-reset", {"players": room.players_payload()})

    def update_settings(self, sid: str, raw: Any) -> Settings:
        with self._locked(sid) as (room, player):
            if not room.is_host(player):
                raise AuthorizationError("Only the host can change settings", code="not-host")
            room.settings = room.settings.updated(raw)
            self.broadcaster.to_room(room.code, "settings-updated", {"settings": room.settings.to_payload()})
            return room.settings

    # ---- guesses ----

    def submit_guess(self, sid: str, text: Any) -> Verdict | None:
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Invalid guess format", code="bad-guess")
        text = text.strip()[:MAX_MESSAGE_LENGTH]

        with self._locked(sid) as (room, player):
            state = room.round
            if state is not None and state.phase in ("round_start", "drawing") and room.artist is player:
                self.broadcaster.to_sid(sid, "new-message", _system_message("You are drawing! You cannot guess."))
                return None

            if state is None or state.phase != "drawing" or not state.target_word:
                self._chat(room, player, text)
                return None

            verdict = classify(text, state.target_word)
            # Only misses that don't contain the word reach the room chat.
            leaks = verdict is not Verdict.MISS or contains_answer(text, state.target_word)
            if player.has_guessed:
                if leaks:
                    self.broadcaster.to_sid(sid, "new-message", _system_message("You already guessed the word!"))
                else:
                    self._chat(room, player, text)
                return verdict

            if verdict is Verdict.EXACT:
                self._correct_guess(room, state, player)
            elif leaks:
                self.broadcaster.to_sid(sid, "close-guess", {"guess": text, "message": f"'{text}' is close!"})
            else:
                self._chat(room, player, text)
            return verdict

    def _correct_guess(self, room: Room, state: RoundState, player: Player) -> None:
        # Flag first so a duplicate guess can never score twice.
        player.has_guessed = True
        self.scoring.validate_player_scores(room.players)
        elapsed = int(self.now() - state.start_time) if state.start_time else 0
        award = self.scoring.process_correct_guess(room, player, elapsed)

        artist = room.artist
        self.broadcaster.to_room(
            room.code,
            "correct-guess",
            {
                "username": player.username,
                "playerId": player.id,
                "points": award.guesser_points,
                "drawer": artist.username if artist else None,
                "drawerPoints": award.drawer_points,
                "bonuses": award.to_payload()["bonuses"],
                "timeElapsed": award.time_elapsed,
            },
        )
        self.broadcaster.to_room(room.code, "players-update", {"players": room.players_payload()})
        if self.rounds.all_guessed(room):
            self._end_round(room, reason="all-guessed")

    def _chat(self, room: Room, player: Player, text: str) -> None:
        self.broadcaster.to_room(room.code, "new-message", {"username": player.username, "message": text, "type": "message"})

    # ---- drawing ----

    def _drawing_state(self, sid: str) -> tuple[Room, RoundState] | None:
        room = self.registry.lookup_by_sid(sid)
        if room is None:
            return None
        state = room.round
        artist = room.artist
        if state is None or state.phase != "drawing" or artist is None or artist.id != sid:
            return None
        return room, state

    def draw_stroke(self, sid: str, data: Any) -> dict | None:
        room = self.registry.lookup_by_sid(sid)
        if room is None:
            return None
        with room.lock:
            found = self._drawing_state(sid)
            if found is None:
                return None
            _, state = found
            stroke = self.relay.draw(state, sid, data)
            if stroke is not None:
                self.broadcaster.to_room(room.code, "canvas-update", stroke, skip_sid=sid)
            return stroke

    def clear_canvas(self, sid: str) -> bool:
        room = self.registry.lookup_by_sid(sid)
        if room is None:
            return False
        with room.lock:
            found = self._drawing_state(sid)
            if found is None:
                return False
            self.relay.clear(found[1])
            self.broadcaster.to_room(room.code, "canvas-update", {"type": "clear"}, skip_sid=sid)
            return True

    def undo_stroke(self, sid: str) -> bool:
        room = self.registry.lookup_by_sid(sid)
        if room is None:
            return False
        with room.lock:
            found = self._drawing_state(sid)
            if found is None or not self.relay.undo(found[1]):
                return False
            self.broadcaster.to_room(room.code, "undo-stroke", None, skip_sid=sid)
            return True

    def redo_stroke(self, sid: str, data: Any) -> dict | None:
        room = self.registry.lookup_by_sid(sid)
        if room is None:
            return None
        with room.lock:
            found = self._drawing_state(sid)
            if found is None:
                return None
            stroke = self.relay.redo(found[1], data)
            if stroke is not None:
                self.broadcaster.to_room(room.code, "redo-stroke", stroke, skip_sid=sid)
            return stroke

    # ---- reconnection ----

    def reconnect(self, sid: str, token: Any) -> dict:
        if not isinstance(token, str) or not token:
            raise NotFoundError("Invalid session token")
        session = self.sessions.resolve(token)

        room = self.registry.get_room(session.room_code)
        if room is None:
            self.sessions.revoke(token)
            raise NotFoundError("Room no longer exists")
        current = self.registry.lookup_by_sid(sid)
        if current is not None and current is not room:
            raise StateError("You are already in another room", code="already-in-room")

        with room.lock:
            player = room.player_by_username(session.username)
            if player is None:
                self.sessions.revoke(token)
                raise NotFoundError("Player not found in room")
            seated = room.player_by_id(sid)
            if seated is not None and seated is not player:
                raise StateError("You are already in this room as another player", code="already-in-room")

            old_sid = player.id
            if old_sid != sid:
                self.registry.rebind(player, sid)
                self.broadcaster.leave(old_sid, room.code)
                self.relay.forget(old_sid)
            player.connected = True
            self._cancel_task(room, f"drop:{player.key}")
            self.sessions.rebind(token, sid)
            self.broadcaster.join(sid, room.code)

            payload = self.snapshot(room, player)
            self.broadcaster.to_sid(sid, "reconnect-success", payload)
            self.broadcaster.to_room(
                room.code,
                "player-reconnected",
                {"username": player.username, "playerId": sid, "players": room.players_payload()},
                skip_sid=sid,
            )
            logger.info("%s reconnected to %s", player.username, room.code)
            return payload

    def snapshot(self, room: Room, viewer: Player) -> dict:
        """Everything a (re)connecting client needs to redraw the game."""
        payload = {
            "roomCode": room.code,
            "username": viewer.username,
            "playerId": viewer.id,
            "hostId": room.host.id if room.host else None,
            "players": room.players_payload(),
            "settings": room.settings.to_payload(),
            "phase": room.phase,
            "gameState": None,
        }
        state = room.round
        if state is None:
            return payload

        artist = room.artist
        word = state.target_word
        game_state = {
            "phase": state.phase,
            "round": state.current_round,
            "maxRounds": state.max_rounds,
            "currentDrawer": room.artist_index,
            "drawerId": artist.id if artist else None,
            "drawer": artist.username if artist else None,
            "timeLeft": state.time_left,
            "strokes": list(state.strokes),
            "hasGuessed": viewer.has_guessed,
            "wordLength": len(word) if word else None,
            "hint": hint_pattern(word, state.revealed) if word else None,
        }
        if viewer is artist:
            if word:
                game_state["word"] = word
            if state.phase == "round_start":
                game_state["wordOptions"] = list(state.word_options)
        elif state.phase == "round_end" and word:
            game_state["word"] = word
        payload["gameState"] = game_state
        return payload
