"""
Live viewer connections and the per-room registry that owns them
"""
import asyncio
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from constants import DEFAULT_USERNAME, OUTBOX_MAX_FRAMES
from logging_config import get_logger

logger = get_logger(__name__)

# Protocol states of a connection
CONNECTED = "connected"
JOINED = "joined"
DISCONNECTED = "disconnected"

NORMAL_CLOSURE = 1000
POLICY_VIOLATION = 1008
OVERFLOW_REASON = "Too many undelivered messages"


@dataclass(frozen=True)
class _CloseRequest:
    code: int
    reason: str


class Connection:
    """One viewer's channel into the relay.

    Outbound frames are queued and written by a dedicated task, so callers
    can deliver while holding a room lock without waiting on the network.
    The transport only needs async ``send_text(str)`` and
    ``close(code, reason)``, which a Starlette ``WebSocket`` provides.
    """

    def __init__(
        self,
        transport,
        display_name: str = DEFAULT_USERNAME,
        viewer_id: Optional[str] = None,
        max_frames: int = OUTBOX_MAX_FRAMES,
    ):
        self.transport = transport
        self.viewer_id = viewer_id or str(uuid.uuid4())
        self.display_name = display_name
        self.room_code: Optional[str] = None
        self.state = CONNECTED
        self.is_open = True
        self.max_frames = max_frames
        # one slot beyond max_frames is kept for the close request
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=max_frames + 1)
        self._writer: Optional[asyncio.Task] = None

    def start(self):
        if self._writer is None or self._writer.done():
            self._writer = asyncio.create_task(self._write_loop())

    def send_text(self, text: str) -> bool:
        """Queue a frame. Returns False when the connection is no longer open."""
        if not self.is_open:
            return False
        if self._outbox.qsize() >= self.max_frames:
            logger.warning(f"Connection {self.viewer_id} is not reading, dropping it ({self.max_frames} frames pending)")
            self.close(POLICY_VIOLATION, OVERFLOW_REASON)
            return False
        self._outbox.put_nowait(text)
        return True

    def close(self, code: int = NORMAL_CLOSURE, reason: str = ""):
        """Close after every frame queued so far has been written."""
        if not self.is_open:
            return
        self.is_open = False
        self._outbox.put_nowait(_CloseRequest(code, reason))

    async def flush(self):
        await self._outbox.join()

    async def stop(self):
        self.is_open = False
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None

    async def _write_loop(self):
        while True:
            item = await self._outbox.get()
            try:
                if isinstance(item, _CloseRequest):
                    await self.transport.close(code=item.code, reason=item.reason)
                    logger.debug(f"Closed connection {self.viewer_id} ({item.code}: {item.reason})")
                else:
                    await self.transport.send_text(item)
            except Exception as e:
                # the receive loop of this connection will surface the closure
                self.is_open = False
                logger.debug(f"Dropping frame for connection {self.viewer_id}: {e}")
            finally:
                self._outbox.task_done()

    def __repr__(self):
        return f"Connection({self.viewer_id!r}, {self.display_name!r}, room={self.room_code!r}, state={self.state})"


class ConnectionRegistry:
    """Buckets of live connections keyed by room code.

    Format: {room_code: {viewer_id: Connection}}
    """

    def __init__(self):
        self._buckets: Dict[str, Dict[str, Connection]] = {}

    def create_bucket(self, code: str):
        self._buckets.setdefault(code, {})

    def drop(self, code: str) -> List[Connection]:
        """Remove a bucket, returning the connections it held."""
        bucket = self._buckets.pop(code, None)
        return list(bucket.values()) if bucket else []

    def has_bucket(self, code: str) -> bool:
        return code in self._buckets

    def join(self, code: str, connection: Connection) -> int:
        # rooms normally get their bucket at creation time
        bucket = self._buckets.setdefault(code, {})
        bucket[connection.viewer_id] = connection
        logger.debug(f"Added connection {connection.viewer_id} to room {code} (connections: {len(bucket)})")
        return len(bucket)

    def leave(self, code: str, viewer_id: str) -> int:
        bucket = self._buckets.get(code)
        if bucket is None:
            return 0
        for vid in [vid for vid in bucket if vid == viewer_id]:
            del bucket[vid]
        logger.debug(f"Removed connection {viewer_id} from room {code} (connections: {len(bucket)})")
        return len(bucket)

    def contains(self, code: str, viewer_id: str) -> bool:
        return viewer_id in self._buckets.get(code, {})

    def count(self, code: str) -> int:
        return len(self._buckets.get(code, {}))

    def total(self) -> int:
        return sum(len(bucket) for bucket in self._buckets.values())

    def connections(self, code: str) -> List[Connection]:
        """Snapshot of a room's connections, safe against mutation while iterating."""
        return list(self._buckets.get(code, {}).values())

    def viewer_ids(self, code: str) -> List[str]:
        return list(self._buckets.get(code, {}))

    def for_each(self, code: str, fn: Callable[[Connection], None]):
        for connection in self.connections(code):
            fn(connection)
