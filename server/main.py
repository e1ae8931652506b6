"""
Planning Poker — Backend Entry Point

FastAPI application with:
  - REST API to create rooms and read room metadata
  - WebSocket control channel for joining, voting, revealing and resetting
  - Timed owner succession and per-viewer state broadcasts
  - Background reaper deleting rooms left empty past a TTL
  - File, DynamoDB or in-memory room storage

Run:
    python main.py
    # or
    uvicorn main:app --host 0.0.0.0 --port 3000 --reload
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from broadcast import Broadcaster
from config import Settings, settings
from handler import ConnectionHandler
from reaper import Reaper
from routes import router
from sessions import SessionRegistry
from store import RoomStore, get_store

# ── Logging ──────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s │ %(name)-26s │ %(levelname)-7s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("planning-poker")


# ── App factory ──────────────────────────────────────────────────────────────

def create_app(store: RoomStore | None = None, config: Settings = settings,
               run_reaper: bool = True) -> FastAPI:
    """Build the app with its own registry, handler and reaper."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown hooks."""

        # ── Startup ──
        logger.info("Store     : %s", type(app.state.store).__name__)
        logger.info("CORS      : %s", config.CORS_ORIGINS)
        logger.info("Room TTL  : %ds", config.EMPTY_ROOM_TTL_SECONDS)

        reaper_task = None
        if run_reaper:
            reaper_task = asyncio.create_task(
                app.state.reaper.run(interval=config.REAPER_INTERVAL_SECONDS)
            )
        logger.info("✅  Planning Poker server ready on %s:%d", config.HOST, config.PORT)

        yield

        # ── Shutdown ──
        if reaper_task is not None:
            reaper_task.cancel()
            try:
                await reaper_task
            except asyncio.CancelledError:
                pass
        logger.info("Server shut down cleanly")

    app = FastAPI(
        title="Planning Poker API",
        version="1.0.0",
        lifespan=lifespan,
    )

    room_store = store if store is not None else get_store()
    registry = SessionRegistry()
    app.state.store = room_store
    app.state.registry = registry
    app.state.handler = ConnectionHandler(
        room_store,
        registry,
        Broadcaster(registry),
        owner_grace=timedelta(seconds=config.OWNER_ABSENCE_GRACE_SECONDS),
    )
    app.state.reaper = Reaper(
        room_store,
        registry,
        ttl=timedelta(seconds=config.EMPTY_ROOM_TTL_SECONDS),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    return app


app = create_app()


# ── Direct execution ─────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=False,
        log_level="info",
    )
