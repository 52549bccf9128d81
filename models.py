"""
In-memory records for rooms and their playback state
"""
import time
from dataclasses import dataclass, field
from typing import Optional, Set

PAUSE = "pause"


def now_ms() -> int:
    """Current wall clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def normalize_code(code: str) -> str:
    return code.strip().upper()


@dataclass(frozen=True)
class PlaybackState:
    action: str
    current_time: float
    timestamp: int

    def to_wire(self) -> dict:
        return {
            "action": self.action,
            "currentTime": self.current_time,
            "timestamp": self.timestamp,
        }


@dataclass
class Room:
    code: str
    video_id: str
    host_name: str
    created_at: int
    last_activity_at: int
    state: PlaybackState
    acknowledged: Set[str] = field(default_factory=set)
    # viewer that emitted the current state, None for the creation default
    sync_origin: Optional[str] = None

    @classmethod
    def new(cls, code: str, video_id: str, host_name: str, now: int) -> "Room":
        return cls(
            code=code,
            video_id=video_id,
            host_name=host_name,
            created_at=now,
            last_activity_at=now,
            state=PlaybackState(action=PAUSE, current_time=0.0, timestamp=now),
        )

    def apply_sync(self, action: str, current_time: float, origin: str, now: int) -> PlaybackState:
        # acknowledgments belong to the previous state
        self.acknowledged.clear()
        self.state = PlaybackState(action=action, current_time=current_time, timestamp=now)
        self.sync_origin = origin
        self.last_activity_at = now
        return self.state
