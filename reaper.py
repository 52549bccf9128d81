import asyncio
from typing import Callable, List, Optional

from backend import RoomLocks, RoomStore
from broadcast import Broadcaster
from connections import DISCONNECTED, NORMAL_CLOSURE, ConnectionRegistry
from constants import REAPER_INTERVAL_SECONDS, ROOM_INACTIVITY_SECONDS
from logging_config import get_logger
from models import now_ms
from schemas.messages import RoomClosingEvent

logger = get_logger(__name__)

INACTIVE_REASON = "inactive"
INACTIVE_MESSAGE = "Room closed due to inactivity"


def _close_inactive(connection):
    connection.state = DISCONNECTED
    connection.close(NORMAL_CLOSURE, INACTIVE_MESSAGE)


class Reaper:
    """Periodically evicts empty rooms and rooms idle past the threshold."""

    def __init__(
        self,
        store: RoomStore,
        registry: ConnectionRegistry,
        broadcaster: Broadcaster,
        locks: RoomLocks,
        interval_seconds: float = REAPER_INTERVAL_SECONDS,
        inactivity_seconds: float = ROOM_INACTIVITY_SECONDS,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.registry = registry
        self.broadcaster = broadcaster
        self.locks = locks
        self.interval_seconds = interval_seconds
        self.inactivity_ms = int(inactivity_seconds * 1000)
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    async def sweep(self) -> List[str]:
        """Run one eviction pass and return the codes of the rooms removed."""
        reaped = []
        for code in self.store.codes():
            async with self.locks.for_room(code):
                room = self.store.get(code)
                if room is None:
                    continue

                if self.registry.count(code) == 0:
                    if self.store.delete(code):
                        logger.info(f"Cleaned up empty room: {code}")
                        reaped.append(code)
                    continue

                idle_ms = self.clock() - room.last_activity_at
                if idle_ms <= self.inactivity_ms:
                    continue

                self.broadcaster.to_room_all(code, RoomClosingEvent(
                    reason=INACTIVE_REASON,
                    message=INACTIVE_MESSAGE,
                ))
                viewers = self.registry.count(code)
                self.registry.for_each(code, _close_inactive)
                if self.store.delete(code):
                    logger.info(f"Closed inactive room {code} ({idle_ms / 1000:.0f}s idle, {viewers} viewers)")
                    reaped.append(code)
        return reaped

    async def run(self):
        logger.info(f"Reaper started (interval {self.interval_seconds}s, inactivity {self.inactivity_ms / 1000:.0f}s)")
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                reaped = await self.sweep()
                if reaped:
                    logger.info(f"Reaper removed {len(reaped)} rooms, {len(self.store)} remaining")
            except Exception as e:
                logger.error(f"Reaper sweep failed: {e}", exc_info=True)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reaper stopped")
