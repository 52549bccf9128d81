"""
Per-connection state machine for the sync protocol.

A connection starts ``connected``, becomes ``joined`` after a successful
join and ends ``disconnected`` after leave or transport closure. Every room
mutation happens inside the room's lock; fan-out only enqueues frames.
"""
import json
from typing import Callable, Optional, Union

from pydantic import BaseModel, ValidationError

from backend import RoomLocks, RoomStore
from broadcast import Broadcaster
from connections import DISCONNECTED, JOINED, Connection, ConnectionRegistry
from constants import DEFAULT_USERNAME
from errors import MalformedMessage, RoomNotFound
from logging_config import get_logger
from models import normalize_code, now_ms
from schemas.messages import (
    INBOUND_MESSAGES, ErrorEvent, JoinMessage, JoinedEvent, LeaveMessage,
    PlaybackStatePayload, SyncAckEvent, SyncAckMessage, SyncEvent, SyncMessage,
    ViewerUpdateEvent,
)

logger = get_logger(__name__)

INVALID_FORMAT = "Invalid message format"
ROOM_NOT_FOUND = "Room not found"
ALREADY_JOINED = "Already in a room"


def decode_message(raw: Union[str, bytes]) -> Optional[BaseModel]:
    """Parse one inbound frame.

    Returns None for frames whose ``type`` is not part of the protocol, and
    raises MalformedMessage when the frame is not a JSON object or does not
    match the schema of its type.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, RecursionError) as e:
        raise MalformedMessage(f"not JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedMessage("frame is not a JSON object")

    message_type = data.get("type")
    if message_type is not None and not isinstance(message_type, str):
        raise MalformedMessage(f"type must be a string, got {type(message_type).__name__}")
    model = INBOUND_MESSAGES.get(message_type)
    if model is None:
        return None
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedMessage(str(e)) from e


class SyncProtocolHandler:
    def __init__(
        self,
        store: RoomStore,
        registry: ConnectionRegistry,
        broadcaster: Broadcaster,
        locks: RoomLocks,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.registry = registry
        self.broadcaster = broadcaster
        self.locks = locks
        self.clock = clock

    async def handle_frame(self, connection: Connection, raw: Union[str, bytes]):
        try:
            message = decode_message(raw)
        except MalformedMessage as e:
            logger.warning(f"Malformed message from {connection.viewer_id}: {e}")
            self.broadcaster.send(connection, ErrorEvent(message=INVALID_FORMAT))
            return

        if message is None:
            logger.info(f"Ignoring unknown message type from {connection.viewer_id}")
            return
        if connection.state == DISCONNECTED:
            logger.debug(f"Ignoring {message.type} from disconnected {connection.viewer_id}")
            return

        if isinstance(message, JoinMessage):
            await self.join(connection, message.roomCode, message.username)
        elif isinstance(message, SyncMessage):
            await self.sync(connection, message.action, message.currentTime)
        elif isinstance(message, SyncAckMessage):
            await self.sync_ack(connection)
        elif isinstance(message, LeaveMessage):
            await self.leave(connection)

    async def join(self, connection: Connection, room_code: str, username: Optional[str] = None) -> bool:
        code = normalize_code(room_code)
        if connection.state == JOINED:
            logger.info(f"{connection.viewer_id} tried to join {code} while in {connection.room_code}")
            self.broadcaster.send(connection, ErrorEvent(message=ALREADY_JOINED))
            return False

        async with self.locks.for_room(code):
            try:
                room = self.store.require(code)
            except RoomNotFound:
                logger.info(f"Join rejected for {connection.viewer_id}: room {code} not found")
                self.broadcaster.send(connection, ErrorEvent(message=ROOM_NOT_FOUND))
                return False

            self.store.touch(code)
            connection.display_name = username or DEFAULT_USERNAME
            viewer_count = self.registry.join(code, connection)
            connection.room_code = code
            connection.state = JOINED
            logger.info(f"{connection.display_name} ({connection.viewer_id}) joined room {code}")

            self.broadcaster.send(connection, JoinedEvent(
                roomCode=code,
                videoId=room.video_id,
                state=PlaybackStatePayload(**room.state.to_wire()),
                viewerCount=viewer_count,
            ))
            self.broadcaster.to_room_all(code, ViewerUpdateEvent(viewerCount=viewer_count))
        return True

    async def sync(self, connection: Connection, action: str, current_time: float):
        if connection.state != JOINED:
            return
        code = connection.room_code
        async with self.locks.for_room(code):
            room = self.store.get(code)
            if room is None or not self.registry.contains(code, connection.viewer_id):
                return
            state = room.apply_sync(action, current_time, connection.viewer_id, self.clock())
            logger.info(f"Sync from {connection.viewer_id} in {code}: {action} at {current_time:.2f}s")
            self.broadcaster.to_room_except(code, SyncEvent(
                action=state.action,
                currentTime=state.current_time,
                timestamp=state.timestamp,
            ), connection.viewer_id)

    async def sync_ack(self, connection: Connection):
        if connection.state != JOINED:
            return
        code = connection.room_code
        async with self.locks.for_room(code):
            room = self.store.get(code)
            if room is None or not self.registry.contains(code, connection.viewer_id):
                return
            room.acknowledged.add(connection.viewer_id)

            # everyone but the viewer who emitted the current state must ack
            expected = set(self.registry.viewer_ids(code))
            expected.discard(room.sync_origin)
            all_synced = expected <= room.acknowledged

            logger.debug(f"Ack from {connection.viewer_id} in {code}: {len(room.acknowledged)}/{len(expected)}")
            self.broadcaster.to_room_except(code, SyncAckEvent(
                userId=connection.viewer_id,
                syncedCount=len(room.acknowledged),
                totalViewers=self.registry.count(code),
                allSynced=all_synced,
            ), connection.viewer_id)

    async def leave(self, connection: Connection):
        if connection.state != JOINED:
            return
        code = connection.room_code
        async with self.locks.for_room(code):
            connection.state = DISCONNECTED
            # a reaped room may have been recreated under the same code
            if not self.registry.contains(code, connection.viewer_id):
                logger.debug(f"{connection.viewer_id} already gone from room {code}")
                return

            remaining = self.registry.leave(code, connection.viewer_id)
            room = self.store.get(code)
            if room is not None:
                room.acknowledged.discard(connection.viewer_id)
            logger.info(f"{connection.display_name} ({connection.viewer_id}) left room {code}")

            self.broadcaster.to_room_all(code, ViewerUpdateEvent(viewerCount=remaining))
            if remaining == 0:
                if self.store.delete(code):
                    logger.info(f"Room {code} deleted (empty)")
            else:
                self.store.touch(code)

    async def disconnect(self, connection: Connection):
        """Transport closed: run the leave path and make the state terminal."""
        connection.is_open = False
        await self.leave(connection)
        connection.state = DISCONNECTED
