"""
API routes.

Endpoints:
  POST /api/rooms         → create a room, returns {slug, name, private}
  GET  /api/rooms/{slug}  → room metadata {slug, name, private}
  GET  /api/health        → health check for load balancers / monitoring
  WS   /ws                → room control channel (see handler.py)

Shared services (store, session registry, connection handler) are built once
in main.create_app and read from `app.state`.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field

import rooms
from store import StoreError

logger = logging.getLogger("planning-poker.routes")
router = APIRouter()


# ── Request / Response models ────────────────────────────────────────────────

class CreateRoomRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    private: bool = False
    access_code: str | None = Field(default=None, alias="accessCode")


class RoomInfo(BaseModel):
    slug: str
    name: str
    private: bool


# ── REST endpoints ───────────────────────────────────────────────────────────

@router.post("/api/rooms", status_code=201, response_model=RoomInfo)
async def create_room(body: CreateRoomRequest, request: Request):
    """Create and persist a new room."""
    if not body.name or not body.name.strip():
        raise HTTPException(status_code=400, detail='The room "name" field is required.')
    try:
        slug, room = await rooms.create_room(
            request.app.state.store, body.name, body.private, body.access_code,
        )
    except StoreError:
        logger.exception("Failed to create room")
        raise HTTPException(status_code=500, detail="Failed to create room")
    return RoomInfo(slug=slug, name=room.name, private=room.private)


@router.get("/api/rooms/{slug}", response_model=RoomInfo)
async def get_room(slug: str, request: Request):
    """Return public metadata for a room."""
    try:
        room = await request.app.state.store.load(slug)
    except StoreError:
        logger.exception("Failed to load room %s", slug)
        raise HTTPException(status_code=500, detail="Failed to retrieve room")
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found.")
    return RoomInfo(slug=slug, name=room.name, private=room.private)


@router.get("/api/health")
async def health_check(request: Request):
    """Lightweight health probe for ALB / monitoring."""
    registry = request.app.state.registry
    return {
        "status": "ok",
        "store": type(request.app.state.store).__name__,
        "rooms": registry.room_count,
        "connections": registry.connection_count,
    }


# ── WebSocket endpoint ──────────────────────────────────────────────────────

@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    """
    Room control channel.
    The connection starts unbound; a join_room message binds it to a room.
    Closing the socket leaves the room.
    """
    handler = ws.app.state.handler
    await ws.accept()
    try:
        while True:
            msg = await ws.receive()
            if msg["type"] == "websocket.disconnect":
                break
            data = msg.get("text")
            if data is None and msg.get("bytes") is not None:
                data = msg["bytes"].decode("utf-8", errors="replace")
            if data is not None:
                await handler.handle_text(ws, data)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS connection error")
    finally:
        await handler.disconnect(ws)
