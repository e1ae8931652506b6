"""
Per-viewer room broadcasts.

Every connection in a room gets its own `sync_state`: the public room view
plus that viewer's own vote, so a reconnecting client can restore its card
without learning anyone else's. A `room_stats` message to everyone follows.

Delivery is push-only: a failed send is logged and skipped. The failing
socket's receive loop notices the disconnect and cleans up after itself.
"""

from __future__ import annotations

import json
import logging

from fastapi import WebSocket

from models import Room
from rooms import build_public_view
from sessions import SessionRegistry
from stats import compute_stats

logger = logging.getLogger("planning-poker.broadcast")


def message(type_: str, payload: dict) -> str:
    return json.dumps({"type": type_, "payload": payload})


def error_message(code: str, text: str) -> str:
    return message("error", {"code": code, "message": text})


class Broadcaster:
    """Pushes room state to every live connection of a room."""

    def __init__(self, registry: SessionRegistry) -> None:
        self._registry = registry

    async def send(self, ws: WebSocket, payload: str) -> bool:
        try:
            await ws.send_text(payload)
            return True
        except Exception:
            logger.debug("WS send failed — skipping connection")
            return False

    async def broadcast_room(self, room_slug: str, room: Room) -> int:
        """Send personalised state to each viewer; returns how many got it."""
        clients = self._registry.connections_for(room_slug)
        if not clients:
            return 0

        public = build_public_view(room, room_slug).model_dump(mode="json", by_alias=True)
        delivered = 0
        for ws in clients:
            binding = self._registry.binding_for(ws)
            if binding is None:
                continue
            payload = message("sync_state", {
                "room": public,
                "selfSessionId": binding.session_id,
                "selfVote": room.votes.get(binding.session_id),
            })
            if await self.send(ws, payload):
                delivered += 1

        # Live figures over the current votes, not the snapshot cached at the last vote
        live = compute_stats(room.votes)
        stats = message("room_stats", {"stats": live.model_dump(mode="json", by_alias=True)})
        for ws in clients:
            await self.send(ws, stats)

        logger.debug("Broadcast room %s to %d/%d connections", room_slug, delivered, len(clients))
        return delivered
