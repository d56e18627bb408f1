from __future__ import annotations

import logging
import random
import re
import string
import time
from threading import RLock

from ..errors import NotFoundError, StateError, ValidationError
from .models import Player, Room, Settings

logger = logging.getLogger(__name__)

CODE_LENGTH = 6
CODE_RE = re.compile(r"^[A-Z]{6}$")
USERNAME_RE = re.compile(r"^[A-Za-z0-9_]{3,20}$")


def normalize_username(raw: object) -> str:
    name = raw.strip() if isinstance(raw, str) else ""
    if not USERNAME_RE.match(name):
        raise ValidationError(
            "Username must be 3-20 letters, numbers or underscores",
            code="bad-username",
        )
    return name


def normalize_room_code(raw: object) -> str:
    code = raw.strip().upper() if isinstance(raw, str) else ""
    if not CODE_RE.match(code):
        raise ValidationError("Room code must be exactly 6 letters", code="bad-code")
    return code


class RoomRegistry:
    def __init__(self, default_settings: Settings | None = None, rng: random.Random | None = None) -> None:
        self.default_settings = default_settings or Settings()
        self._rng = rng or random.Random()
        self._lock = RLock()
        self._rooms: dict[str, Room] = {}
        self._by_sid: dict[str, str] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)

    def _generate_code(self) -> str:
        return "".join(self._rng.choices(string.ascii_uppercase, k=CODE_LENGTH))

    def create_room(self, player: Player, settings: Settings | None = None) -> Room:
        with self._lock:
            if player.id in self._by_sid:
                raise StateError("You are already in a room", code="already-in-room")

            code = self._generate_code()
            while code in self._rooms:
                code = self._generate_code()

            d = settings or self.default_settings
            room = Room(
                code=code,
                players=[player],
                settings=Settings(d.round_time, d.max_rounds, d.max_players, d.hints_enabled),
                created_at=time.time(),
            )
            self._rooms[code] = room
            self._by_sid[player.id] = code
            logger.info("Room %s created by %s", code, player.username)
            return room

    # Lock order is always room lock, then registry lock.

    def join_room(self, code: str, player: Player) -> Room:
        with self._lock:
            if player.id in self._by_sid:
                raise StateError("You are already in a room", code="already-in-room")
            room = self._rooms.get(code)
        if room is None:
            raise NotFoundError("Room not found")

        with room.lock:
            if room.in_game:
                raise StateError("Game already in progress", code="in-progress")
            if len(room.players) >= room.settings.max_players:
                raise StateError("Room is full", code="full")
            if room.player_by_username(player.username) is not None:
                raise ValidationError("Username already taken in this room", code="bad-username")

            with self._lock:
                if self._rooms.get(code) is not room:
                    raise NotFoundError("Room not found")
                room.players.append(player)
                self._by_sid[player.id] = code

        logger.info("%s joined room %s", player.username, code)
        return room

    def remove_player(self, sid: str) -> Room | None:
        """Remove the player bound to ``sid``; returns the room they left.

        The room is deleted from the registry once it is empty; callers can
        tell by ``room.players`` being empty.
        """
        room = self.lookup_by_sid(sid)
        if room is None:
            return None

        with room.lock:
            with self._lock:
                self._by_sid.pop(sid, None)
                player = room.player_by_id(sid)
                if player is not None:
                    room.players.remove(player)
                    logger.info("%s left room %s", player.username, room.code)
                if not room.players:
                    self.delete_room(room.code)
        return room

    def rebind(self, player: Player, new_sid: str) -> None:
        with self._lock:
            code = self._by_sid.pop(player.id, None)
            player.id = new_sid
            if code:
                self._by_sid[new_sid] = code

    def lookup_by_sid(self, sid: str) -> Room | None:
        with self._lock:
            code = self._by_sid.get(sid)
            return self._rooms.get(code) if code else None

    def get_room(self, code: str) -> Room | None:
        with self._lock:
            return self._rooms.get(code)

    def delete_room(self, code: str) -> bool:
        with self._lock:
            room = self._rooms.pop(code, None)
            if room is None:
                return False
            for sid in [s for s, c in self._by_sid.items() if c == code]:
                del self._by_sid[sid]
            logger.info("Room %s deleted", code)
            return True

    def list_rooms(self) -> list[Room]:
        with self._lock:
            return list(self._rooms.values())
