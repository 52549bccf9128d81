from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from backend import RoomLocks, RoomStore
from broadcast import Broadcaster
from connections import Connection, ConnectionRegistry
from constants import (
    ALLOWED_ORIGINS, LOG_FILE, LOG_LEVEL, REAPER_INTERVAL_SECONDS,
    ROOM_INACTIVITY_SECONDS, SERVICE_NAME, SERVICE_VERSION,
)
from logging_config import get_logger, setup_logging
from models import now_ms
from reaper import Reaper
from routers.rooms import rooms_router
from schemas.rooms import HealthResponse
from sync_handler import SyncProtocolHandler

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


async def health(request: Request) -> HealthResponse:
    state = request.app.state
    return HealthResponse(
        status="online",
        service=SERVICE_NAME,
        version=SERVICE_VERSION,
        activeRooms=len(state.store),
        totalConnections=state.registry.total(),
    )


async def websocket_endpoint(websocket: WebSocket):
    """Sync protocol endpoint: one JSON text frame per message, both directions."""
    handler: SyncProtocolHandler = websocket.app.state.handler

    await websocket.accept()
    connection = Connection(websocket)
    connection.start()
    logger.info(f"New WebSocket connection: {connection.viewer_id}")

    frame_count = 0
    try:
        while True:
            # receive() rather than receive_text(): the reaper may close the
            # socket from our side while we wait here
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"WebSocket disconnected: {connection.viewer_id} (code {message.get('code')})")
                break

            frame_count += 1
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            logger.debug(f"Received frame #{frame_count} from {connection.viewer_id}")
            try:
                await handler.handle_frame(connection, raw)
            except Exception as e:
                # a failing frame leaves the session and room membership intact
                logger.error(f"Error handling frame #{frame_count} from {connection.viewer_id}: {e}", exc_info=True)
    except Exception as e:
        logger.error(f"WebSocket error for {connection.viewer_id}: {e}", exc_info=True)
    finally:
        await handler.disconnect(connection)
        await connection.stop()


def create_app(
    reaper_interval_seconds: float = REAPER_INTERVAL_SECONDS,
    room_inactivity_seconds: float = ROOM_INACTIVITY_SECONDS,
    clock: Callable[[], int] = now_ms,
    start_reaper: bool = True,
) -> FastAPI:
    registry = ConnectionRegistry()
    store = RoomStore(registry, clock=clock)
    locks = RoomLocks()
    broadcaster = Broadcaster(registry)
    handler = SyncProtocolHandler(store, registry, broadcaster, locks, clock=clock)
    reaper = Reaper(
        store, registry, broadcaster, locks,
        interval_seconds=reaper_interval_seconds,
        inactivity_seconds=room_inactivity_seconds,
        clock=clock,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_reaper:
            reaper.start()
        yield
        await reaper.stop()

    app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=ALLOWED_ORIGINS != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.registry = registry
    app.state.store = store
    app.state.locks = locks
    app.state.broadcaster = broadcaster
    app.state.handler = handler
    app.state.reaper = reaper

    app.add_api_route("/", health, methods=["GET"], response_model=HealthResponse)
    app.include_router(rooms_router)
    # browser clients connect on the root URL
    app.add_api_websocket_route("/", websocket_endpoint)
    app.add_api_websocket_route("/ws", websocket_endpoint)

    logger.info("FastAPI application initialized")
    return app


app = create_app()
