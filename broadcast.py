import json
from typing import Optional, Union

from pydantic import BaseModel

from connections import Connection, ConnectionRegistry
from logging_config import get_logger

logger = get_logger(__name__)

Payload = Union[BaseModel, dict]


def encode(payload: Payload) -> str:
    if isinstance(payload, BaseModel):
        return payload.model_dump_json()
    return json.dumps(payload)


class Broadcaster:
    """Best-effort fan-out of frames to the connections of a room.

    Delivery only enqueues on each connection's outbox, so it never waits on
    the network and is safe to call while a room lock is held.
    """

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    def send(self, connection: Connection, payload: Payload) -> bool:
        delivered = connection.send_text(encode(payload))
        if not delivered:
            logger.debug(f"Skipping closed connection {connection.viewer_id}")
        return delivered

    def to_room_except(self, code: str, payload: Payload, excluded_viewer_id: Optional[str]) -> int:
        message = encode(payload)
        delivered = 0
        for connection in self.registry.connections(code):
            if connection.viewer_id == excluded_viewer_id or not connection.is_open:
                continue
            if connection.send_text(message):
                delivered += 1
        logger.debug(f"Broadcast to {delivered} connections in room {code}")
        return delivered

    def to_room_all(self, code: str, payload: Payload) -> int:
        return self.to_room_except(code, payload, None)
