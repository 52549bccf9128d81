from pydantic import BaseModel, Field
from typing import Literal, Optional


# Inbound frames

class JoinMessage(BaseModel):
    type: Literal["join"]
    roomCode: str = Field(min_length=1)
    username: Optional[str] = None

class SyncMessage(BaseModel):
    type: Literal["sync"]
    action: Literal["play", "pause", "seek"]
    # strict: JSON booleans are not positions
    currentTime: float = Field(ge=0, allow_inf_nan=False, strict=True)

class SyncAckMessage(BaseModel):
    type: Literal["sync_ack"]

class LeaveMessage(BaseModel):
    type: Literal["leave"]


INBOUND_MESSAGES = {
    "join": JoinMessage,
    "sync": SyncMessage,
    "sync_ack": SyncAckMessage,
    "leave": LeaveMessage,
}


# Outbound frames

class PlaybackStatePayload(BaseModel):
    action: str
    currentTime: float
    timestamp: int

class JoinedEvent(BaseModel):
    type: Literal["joined"] = "joined"
    roomCode: str
    videoId: str
    state: PlaybackStatePayload
    viewerCount: int

class SyncEvent(BaseModel):
    type: Literal["sync"] = "sync"
    action: str
    currentTime: float
    timestamp: int

class SyncAckEvent(BaseModel):
    type: Literal["sync_ack"] = "sync_ack"
    userId: str
    syncedCount: int
    totalViewers: int
    allSynced: bool

class ViewerUpdateEvent(BaseModel):
    type: Literal["viewer_update"] = "viewer_update"
    viewerCount: int

class RoomClosingEvent(BaseModel):
    type: Literal["room_closing"] = "room_closing"
    reason: str
    message: str

class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str
