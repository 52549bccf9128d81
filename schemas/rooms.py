from pydantic import BaseModel
from typing import Optional

from schemas.messages import PlaybackStatePayload


class CreateRoomRequest(BaseModel):
    roomCode: Optional[str] = None
    videoId: Optional[str] = None
    hostName: Optional[str] = None

class RoomInfo(BaseModel):
    code: str
    videoId: str
    host: str

class CreateRoomResponse(BaseModel):
    success: bool = True
    room: RoomInfo

class RoomDetails(RoomInfo):
    state: PlaybackStatePayload
    viewerCount: int

class RoomDetailsResponse(BaseModel):
    success: bool = True
    room: RoomDetails

class RoomSummary(RoomInfo):
    viewerCount: int
    createdAt: int

class RoomListResponse(BaseModel):
    success: bool = True
    rooms: list[RoomSummary]
    totalRooms: int

class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    activeRooms: int
    totalConnections: int
