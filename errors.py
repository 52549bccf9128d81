class SyncServiceError(Exception):
    """Base class for errors reported back to a single requester."""


class DuplicateRoomCode(SyncServiceError):
    def __init__(self, code: str):
        super().__init__(f"Room code already exists: {code}")
        self.code = code


class RoomNotFound(SyncServiceError):
    def __init__(self, code: str):
        super().__init__(f"Room not found: {code}")
        self.code = code


class MalformedMessage(SyncServiceError):
    """An inbound frame could not be decoded into a known message."""
