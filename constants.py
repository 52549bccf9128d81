import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Comma separated, "*" allows every origin
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")

REAPER_INTERVAL_SECONDS = float(os.getenv("REAPER_INTERVAL_SECONDS", 10 * 60))
ROOM_INACTIVITY_SECONDS = float(os.getenv("ROOM_INACTIVITY_SECONDS", 24 * 60 * 60))

SERVICE_NAME = os.getenv("SERVICE_NAME", "Watch Party Sync Backend")
SERVICE_VERSION = "1.0.0"

# Number of lock stripes guarding the room registry
ROOM_LOCK_STRIPES = int(os.getenv("ROOM_LOCK_STRIPES", 64))

DEFAULT_USERNAME = "Guest"
DEFAULT_HOST_NAME = "Host"

# Frames queued for a viewer before it is treated as gone
OUTBOX_MAX_FRAMES = int(os.getenv("OUTBOX_MAX_FRAMES", 256))
