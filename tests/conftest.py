import json
from types import SimpleNamespace

import pytest

from backend import RoomLocks, RoomStore
from broadcast import Broadcaster
from connections import Connection, ConnectionRegistry
from reaper import Reaper
from sync_handler import SyncProtocolHandler

START_MS = 1_700_000_000_000


class FakeClock:
    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float):
        self.now += int(seconds * 1000)


class FakeTransport:
    """Stands in for a Starlette WebSocket."""

    def __init__(self):
        self.sent = []
        self.closed = None
        self.fail = False

    async def send_text(self, text: str):
        if self.fail:
            raise RuntimeError("socket is gone")
        self.sent.append(json.loads(text))

    async def close(self, code: int = 1000, reason: str = None):
        self.closed = (code, reason)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(clock):
    registry = ConnectionRegistry()
    store = RoomStore(registry, clock=clock)
    locks = RoomLocks(stripes=8)
    broadcaster = Broadcaster(registry)
    handler = SyncProtocolHandler(store, registry, broadcaster, locks, clock=clock)
    reaper = Reaper(
        store, registry, broadcaster, locks,
        interval_seconds=60, inactivity_seconds=300, clock=clock,
    )
    return SimpleNamespace(
        registry=registry, store=store, locks=locks,
        broadcaster=broadcaster, handler=handler, reaper=reaper,
    )


@pytest.fixture
def connect():
    """Open a connection backed by a fake transport. Call from inside a running loop."""
    def _connect(viewer_id: str, **kwargs) -> Connection:
        connection = Connection(FakeTransport(), viewer_id=viewer_id, **kwargs)
        connection.start()
        return connection
    return _connect


@pytest.fixture
def frames():
    """Return (and forget) every frame written to a connection so far."""
    async def _frames(connection: Connection) -> list:
        await connection.flush()
        sent = list(connection.transport.sent)
        connection.transport.sent.clear()
        return sent
    return _frames
