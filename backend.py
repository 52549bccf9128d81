import asyncio
from typing import Callable, List, Optional

from connections import ConnectionRegistry
from constants import ROOM_LOCK_STRIPES
from errors import DuplicateRoomCode, RoomNotFound
from logging_config import get_logger
from models import Room, normalize_code, now_ms

logger = get_logger(__name__)


class RoomLocks:
    """Striped per-room locks.

    Every mutation of a room (HTTP create, join, leave, sync, ack, reap) runs
    while holding ``for_room(code)``. Rooms hashing to different stripes
    proceed independently.
    """

    def __init__(self, stripes: int = ROOM_LOCK_STRIPES):
        self._locks = [asyncio.Lock() for _ in range(max(1, stripes))]

    def for_room(self, code: str) -> asyncio.Lock:
        return self._locks[hash(normalize_code(code)) % len(self._locks)]


class RoomStore:
    """In-process registry of rooms.

    The store owns the lifecycle of each room's connection bucket: a bucket
    exists exactly while its room does.
    """

    def __init__(self, registry: ConnectionRegistry, clock: Callable[[], int] = now_ms):
        self.registry = registry
        self.clock = clock
        self._rooms = {}
        logger.info("Initializing in-memory RoomStore")

    def create(self, code: str, video_id: str, host_name: str) -> Room:
        code = normalize_code(code)
        if code in self._rooms:
            logger.info(f"Refusing to create room {code}: code already taken")
            raise DuplicateRoomCode(code)
        room = Room.new(code, video_id, host_name, self.clock())
        self._rooms[code] = room
        self.registry.create_bucket(code)
        logger.info(f"Room created: {code} (video: {video_id}, host: {host_name})")
        return room

    def get(self, code: str) -> Optional[Room]:
        room = self._rooms.get(normalize_code(code))
        if room is None:
            logger.debug(f"Room {code} not found")
        return room

    def require(self, code: str) -> Room:
        room = self.get(code)
        if room is None:
            raise RoomNotFound(normalize_code(code))
        return room

    def touch(self, code: str):
        room = self._rooms.get(normalize_code(code))
        if room is not None:
            room.last_activity_at = self.clock()

    def delete(self, code: str) -> bool:
        """Remove a room and its bucket. Returns False if it was already gone."""
        code = normalize_code(code)
        room = self._rooms.pop(code, None)
        self.registry.drop(code)
        if room is None:
            logger.debug(f"Room {code} already deleted")
            return False
        logger.info(f"Room {code} deleted")
        return True

    def list(self) -> List[Room]:
        return list(self._rooms.values())

    def codes(self) -> List[str]:
        return list(self._rooms)

    def __contains__(self, code: str) -> bool:
        return normalize_code(code) in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)
