"""
Live session registry.

Tracks, for one server process:
  - which room/session each WebSocket is bound to
  - which WebSockets are live in each room
  - one asyncio.Lock per room, guarding load → mutate → save

Only the live-connection index lives here; rooms themselves live in the store.
One registry is built per app (see main.create_app) and shared by the
connection handler, the broadcaster and the reaper.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass

from fastapi import WebSocket

logger = logging.getLogger("planning-poker.sessions")


@dataclass(frozen=True)
class Binding:
    room_slug: str
    session_id: str


class SessionRegistry:
    """Connection ↔ room bookkeeping for a single process."""

    def __init__(self) -> None:
        self._bindings: dict[WebSocket, Binding] = {}
        self._rooms: dict[str, set[WebSocket]] = {}
        # Locks live as long as someone holds or waits on them
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @property
    def connection_count(self) -> int:
        return len(self._bindings)

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    def lock_for(self, room_slug: str) -> asyncio.Lock:
        lock = self._locks.get(room_slug)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[room_slug] = lock
        return lock

    def binding_for(self, ws: WebSocket) -> Binding | None:
        return self._bindings.get(ws)

    def connections_for(self, room_slug: str) -> list[WebSocket]:
        return list(self._rooms.get(room_slug, ()))

    def bind(self, ws: WebSocket, room_slug: str, session_id: str) -> Binding:
        """Bind `ws` to a room, replacing any binding it already had."""
        previous = self._bindings.get(ws)
        if previous is not None and previous.room_slug != room_slug:
            self._discard(ws, previous.room_slug)

        binding = Binding(room_slug=room_slug, session_id=session_id)
        self._bindings[ws] = binding
        self._rooms.setdefault(room_slug, set()).add(ws)
        logger.info(
            "Bound session %s to room %s — %d live in room",
            session_id, room_slug, len(self._rooms[room_slug]),
        )
        return binding

    def unbind(self, ws: WebSocket) -> Binding | None:
        binding = self._bindings.pop(ws, None)
        if binding is None:
            return None
        self._discard(ws, binding.room_slug)
        logger.info("Unbound session %s from room %s", binding.session_id, binding.room_slug)
        return binding

    def _discard(self, ws: WebSocket, room_slug: str) -> None:
        conns = self._rooms.get(room_slug)
        if conns is None:
            return
        conns.discard(ws)
        if not conns:
            del self._rooms[room_slug]
