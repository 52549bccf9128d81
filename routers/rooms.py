from fastapi import APIRouter, HTTPException, Request

from constants import DEFAULT_HOST_NAME
from errors import DuplicateRoomCode, RoomNotFound
from logging_config import get_logger
from models import normalize_code
from schemas.messages import PlaybackStatePayload
from schemas.rooms import (
    CreateRoomRequest, CreateRoomResponse, RoomDetails, RoomDetailsResponse,
    RoomInfo, RoomListResponse, RoomSummary,
)

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/api/rooms", tags=["rooms"])


@rooms_router.post("/create", response_model=CreateRoomResponse)
async def create_room(room: CreateRoomRequest, request: Request):
    # Body: { "roomCode": "ABC123", "videoId": "dQw4w9WgXcQ", "hostName": "optional" }
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room creation request from {client_host}: code={room.roomCode}, video={room.videoId}")

    code = normalize_code(room.roomCode or "")
    if not code or not room.videoId:
        logger.warning("Room creation failed: room code and video ID required")
        raise HTTPException(status_code=400, detail="Room code and video ID required")

    state = request.app.state
    async with state.locks.for_room(code):
        try:
            created = state.store.create(code, room.videoId, room.hostName or DEFAULT_HOST_NAME)
        except DuplicateRoomCode:
            logger.warning(f"Room creation failed: {code} already exists")
            raise HTTPException(status_code=409, detail="Room code already exists")

    return CreateRoomResponse(
        room=RoomInfo(code=created.code, videoId=created.video_id, host=created.host_name),
    )


@rooms_router.get("", response_model=RoomListResponse)
async def list_rooms(request: Request):
    """List all active rooms with their live viewer counts."""
    state = request.app.state
    rooms = [
        RoomSummary(
            code=room.code,
            videoId=room.video_id,
            host=room.host_name,
            viewerCount=state.registry.count(room.code),
            createdAt=room.created_at,
        )
        for room in state.store.list()
    ]
    return RoomListResponse(rooms=rooms, totalRooms=len(rooms))


@rooms_router.get("/{room_code}", response_model=RoomDetailsResponse)
async def get_room(room_code: str, request: Request):
    """
    Get room details including the current playback state.
    Room codes are case-insensitive.
    """
    code = normalize_code(room_code)
    state = request.app.state
    async with state.locks.for_room(code):
        try:
            room = state.store.require(code)
        except RoomNotFound:
            logger.info(f"Room details failed: room {code} not found")
            raise HTTPException(status_code=404, detail="Room not found")
        details = RoomDetails(
            code=room.code,
            videoId=room.video_id,
            host=room.host_name,
            state=PlaybackStatePayload(**room.state.to_wire()),
            viewerCount=state.registry.count(code),
        )
    return RoomDetailsResponse(room=details)
