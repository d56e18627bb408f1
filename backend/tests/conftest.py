import heapq
import itertools
import os
import random
import sys
from collections import defaultdict
from dataclasses import dataclass

import pytest

# Ensure the backend root (containing the `sketchit` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from sketchit.config import Config
from sketchit.game.service import GameService
from sketchit.realtime.scheduler import ScheduledTask
from sketchit.server import create_app


NAMES = ['alice', 'bob', 'carol', 'dave', 'erin', 'frank', 'grace', 'heidi']


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    SOCKETIO_ASYNC_MODE = 'threading'
    TRUST_PROXY_HEADERS = False
    CHOOSE_DURATION_SEC = 20
    ROUND_END_DELAY_SEC = 5
    RECONNECT_GRACE_SEC = 30
    SESSION_TTL_SEC = 3600
    STROKE_RATE_LIMIT_MS = 10
    STROKE_HISTORY_LIMIT = 2000


def config_mapping(config_class=TestConfig):
    return {k: getattr(config_class, k) for k in dir(config_class) if k.isupper()}


class ManualScheduler:
    """Virtual clock: scheduled calls only run when the test advances time."""

    def __init__(self, start=1_000_000.0):
        self.now = start
        self._queue = []
        self._seq = itertools.count()

    def time(self):
        return self.now

    def call_later(self, delay, fn, *args, name=''):
        task = ScheduledTask(name)
        heapq.heappush(self._queue, (self.now + delay, next(self._seq), task, fn, args))
        return task

    def advance(self, seconds):
        target = self.now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, task, fn, args = heapq.heappop(self._queue)
            self.now = max(self.now, when)
            if task.cancelled:
                continue
            task.done = True
            fn(*args)
        self.now = target

    def pending(self):
        return [entry[2] for entry in self._queue if entry[2].pending]


@dataclass
class Emit:
    event: str
    payload: object
    recipients: frozenset
    room: str = None


class RecordingBroadcaster:
    def __init__(self):
        self.sent = []
        self.groups = defaultdict(set)

    def to_room(self, room, event, payload=None, skip_sid=None):
        recipients = frozenset(s for s in self.groups[room] if s != skip_sid)
        self.sent.append(Emit(event, payload, recipients, room))

    def to_sid(self, sid, event, payload=None):
        self.sent.append(Emit(event, payload, frozenset([sid])))

    def join(self, sid, room):
        self.groups[room].add(sid)

    def leave(self, sid, room):
        self.groups[room].discard(sid)

    def events(self, name):
        return [e.payload for e in self.sent if e.event == name]

    def received(self, sid, name):
        return [e.payload for e in self.sent if e.event == name and sid in e.recipients]

    def clear(self):
        self.sent.clear()


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture()
def service(scheduler, broadcaster):
    return GameService.from_config(config_mapping(), broadcaster, scheduler, rng=random.Random(7))


@pytest.fixture()
def lobby(service):
    """Factory: a room with ``n`` players; returns (room, sids) with sids[0] the host."""

    def _make(n=4):
        sids = [f'sid-{i}' for i in range(n)]
        created = service.create_room(sids[0], NAMES[0])
        for sid, name in zip(sids[1:], NAMES[1:n]):
            service.join_room(sid, created['roomCode'], name)
        return service.get_room(created['roomCode']), sids

    return _make


@pytest.fixture()
def drawing(service, lobby):
    """Factory: a started game with the first word chosen; returns (room, sids, artist, word)."""

    def _make(n=4):
        room, sids = lobby(n)
        service.start_game(sids[0])
        artist = room.artist
        word = room.round.word_options[0]
        service.select_word(artist.id, word)
        return room, sids, artist, word

    return _make


@pytest.fixture()
def flask_app(scheduler):
    application, socketio = create_app(TestConfig, scheduler=scheduler)
    application.extensions['test_socketio'] = socketio
    yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app):
    socketio = flask_app.extensions['test_socketio']
    clients = []

    def _connect():
        c = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        clients.append(c)
        return c

    yield _connect
    for c in clients:
        try:
            if c.is_connected():
                c.disconnect()
        except Exception:
            pass
