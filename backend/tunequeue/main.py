import logging
from contextlib import asynccontextmanager
from typing import Optional

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tunequeue.api import rooms, search
from tunequeue.api.socket import register_socket_handlers
from tunequeue.config import Settings, get_settings
from tunequeue.database import create_store
from tunequeue.errors import NotFoundError, register_exception_handlers
from tunequeue.services.autodj import AutoRecommender
from tunequeue.services.fanout import RoomHub
from tunequeue.services.playback import PlaybackController
from tunequeue.services.recommend import RecommendationProvider, create_recommender
from tunequeue.services.room import RoomStore
from tunequeue.services.search import TrackSearchProvider, create_search_provider

logger = logging.getLogger(__name__)

APP_VERSION = "0.1.0"


async def ensure_single_room(store: RoomStore, settings: Settings):
    code = settings.single_room_code.strip().upper()
    try:
        room = await store.get_room_by_code(code)
        logger.info(f"Single-room mode: using existing room {room.id} ({code})")
    except NotFoundError:
        room = await store.create_room(code, settings.single_room_name)
        logger.info(f"Single-room mode: created room {room.id} ({code})")
    return room


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[RoomStore] = None,
    search_provider: Optional[TrackSearchProvider] = None,
    recommender: Optional[RecommendationProvider] = None,
) -> FastAPI:
    settings = settings or get_settings()
    store = store or create_store(settings)
    search_provider = search_provider or create_search_provider(settings)
    recommender = recommender or create_recommender(settings)

    origins = settings.origins_list or ["*"]
    sio = socketio.AsyncServer(async_mode='asgi', cors_allowed_origins=origins if origins != ["*"] else "*")

    async def send(sid, event, data):
        await sio.emit(event, data, to=sid)

    hub = RoomHub(store, send)
    register_socket_handlers(sio, hub)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting tunequeue...")
        if settings.single_room_code:
            await ensure_single_room(store, settings)
        yield
        logger.info("Shutting down...")
        await store.close()

    app = FastAPI(
        title="tunequeue",
        description="Shared music queue rooms with real-time playback sync",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(rooms.router)
    app.include_router(search.router)

    app.state.settings = settings
    app.state.store = store
    app.state.sio = sio
    app.state.hub = hub
    app.state.search = search_provider
    app.state.playback = PlaybackController(store)
    app.state.autodj = AutoRecommender(
        store,
        search_provider,
        recommender,
        count=settings.recommend_count,
        history_limit=settings.history_limit,
        timeout=settings.recommend_timeout,
    )

    @app.get("/api/health")
    async def health():
        return {"status": "healthy", "version": APP_VERSION}

    return app


settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

app = create_app(settings)
socket_app = socketio.ASGIApp(app.state.sio, app)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "tunequeue.main:socket_app",
        host=settings.api_host,
        port=settings.api_port,
    )
