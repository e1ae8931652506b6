"""
Per-connection message dispatch.

Connection lifecycle:
  unbound  → bound(room, session)   on a successful join_room
  bound    → unbound                on leave_room, socket close or socket error

Every room mutation runs load → transition → save → broadcast while holding
that room's lock from the registry. The store is async (file and DynamoDB
backends await a worker thread), so without the lock two messages for the
same room could interleave between load and save and lose an update.

Errors:
  protocol / precondition failures → `error` frame to the sender only
  store failures                   → logged; the operation becomes a no-op
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable

from fastapi import WebSocket
from pydantic import ValidationError

import rooms
from broadcast import Broadcaster, error_message
from models import Room, utcnow
from protocol import Envelope, ErrorCode, EventType, JoinRoomPayload, NewVotePayload
from sessions import SessionRegistry
from store import RoomStore, StoreError

logger = logging.getLogger("planning-poker.handler")

_ERROR_TEXT = {
    ErrorCode.INVALID_MESSAGE: "Invalid message.",
    ErrorCode.UNKNOWN_EVENT: "Unknown WebSocket event.",
    ErrorCode.MISSING_ROOM: "No room given.",
    ErrorCode.ROOM_NOT_FOUND: "Room not found.",
    ErrorCode.INVALID_ACCESS_CODE: "Invalid access code for this room.",
    ErrorCode.NOT_IN_ROOM: "You are not in a room.",
    ErrorCode.INVALID_VOTE: "Invalid vote.",
    ErrorCode.NOT_OWNER: "Only the room owner can do that.",
}


class ConnectionHandler:
    """Applies control-channel messages to rooms."""

    def __init__(self, store: RoomStore, registry: SessionRegistry,
                 broadcaster: Broadcaster,
                 owner_grace: timedelta = rooms.OWNER_ABSENCE_GRACE,
                 clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.registry = registry
        self.broadcaster = broadcaster
        self.owner_grace = owner_grace
        self.clock = clock

    # ── Entry points ─────────────────────────────────────────────────────

    async def handle_text(self, ws: WebSocket, data: str) -> None:
        try:
            raw = json.loads(data)
            envelope = Envelope.model_validate(raw)
        except (ValueError, ValidationError, RecursionError):
            # ValidationError is a ValueError; RecursionError comes from over-nested JSON
            logger.warning("Invalid WS message received")
            await self.send_error(ws, ErrorCode.INVALID_MESSAGE)
            return

        payload = envelope.payload or {}
        try:
            event = EventType(envelope.type)
        except ValueError:
            await self.send_error(ws, ErrorCode.UNKNOWN_EVENT)
            return

        if event is EventType.JOIN_ROOM:
            await self.join(ws, payload)
        elif event is EventType.LEAVE_ROOM:
            await self.leave(ws)
        elif event is EventType.NEW_VOTE:
            await self.vote(ws, payload)
        elif event is EventType.REVEAL_VOTES:
            await self.owner_action(ws, rooms.reveal_votes)
        elif event is EventType.RESET_VOTES:
            await self.owner_action(ws, rooms.reset_votes)

    async def disconnect(self, ws: WebSocket) -> None:
        """Socket closed or errored: same as an explicit leave."""
        await self.leave(ws)

    async def send_error(self, ws: WebSocket, code: ErrorCode) -> None:
        await self.broadcaster.send(ws, error_message(code.value, _ERROR_TEXT[code]))

    # ── Join ─────────────────────────────────────────────────────────────

    def _admission_error(self, room: Room | None, access_code: str | None) -> ErrorCode | None:
        if room is None:
            return ErrorCode.ROOM_NOT_FOUND
        if room.private and room.access_code:
            provided = (access_code or "").strip()
            if not provided or provided != room.access_code:
                return ErrorCode.INVALID_ACCESS_CODE
        return None

    async def join(self, ws: WebSocket, payload: dict) -> None:
        try:
            p = JoinRoomPayload.model_validate(payload)
        except ValidationError:
            await self.send_error(ws, ErrorCode.INVALID_MESSAGE)
            return
        slug = (p.room_slug or "").strip()
        if not slug:
            await self.send_error(ws, ErrorCode.MISSING_ROOM)
            return

        current = self.registry.binding_for(ws)
        session_id = p.session_id or (
            current.session_id if current and current.room_slug == slug else None
        ) or str(uuid.uuid4())

        # Moving to another room (or another identity) leaves the old seat,
        # but only once the new room is known to admit us.
        if current is not None and (current.room_slug != slug or current.session_id != session_id):
            try:
                async with self.registry.lock_for(slug):
                    error = self._admission_error(await self.store.load(slug), p.access_code)
            except StoreError:
                logger.exception("Failed to load room %s for join", slug)
                return
            if error is not None:
                await self.send_error(ws, error)
                return
            await self.leave(ws)

        async with self.registry.lock_for(slug):
            try:
                room = await self.store.load(slug)
                error = self._admission_error(room, p.access_code)
                if error is not None:
                    logger.info("Join rejected — room=%s reason=%s", slug, error.value)
                    await self.send_error(ws, error)
                    return

                now = self.clock()
                rooms.refresh_owner(room, now, self.owner_grace)
                rooms.upsert_user(room, session_id, p.name, p.avatar)
                rooms.claim_ownership_if_vacant(room, session_id)
                await self.store.save(slug, room)
            except StoreError:
                logger.exception("Failed to persist join to room %s", slug)
                return

            self.registry.bind(ws, slug, session_id)
            await self.broadcaster.broadcast_room(slug, room)

    # ── Leave ────────────────────────────────────────────────────────────

    async def leave(self, ws: WebSocket) -> None:
        binding = self.registry.binding_for(ws)
        if binding is None:
            return

        slug = binding.room_slug
        async with self.registry.lock_for(slug):
            try:
                room = await self.store.load(slug)
                if room is not None:
                    now = self.clock()
                    rooms.remove_user(room, binding.session_id, now)
                    rooms.refresh_owner(room, now, self.owner_grace)
                    await self.store.save(slug, room)
                    await self.broadcaster.broadcast_room(slug, room)
            except StoreError:
                logger.exception("Failed to persist leave from room %s", slug)
            finally:
                self.registry.unbind(ws)

    # ── Voting ───────────────────────────────────────────────────────────

    async def vote(self, ws: WebSocket, payload: dict) -> None:
        binding = self.registry.binding_for(ws)
        if binding is None:
            await self.send_error(ws, ErrorCode.NOT_IN_ROOM)
            return
        try:
            value = NewVotePayload.model_validate(payload).value
        except ValidationError:
            value = None
        if value is None:
            await self.send_error(ws, ErrorCode.INVALID_VOTE)
            return

        slug = binding.room_slug
        async with self.registry.lock_for(slug):
            try:
                room = await self.store.load(slug)
                if room is None:
                    await self.send_error(ws, ErrorCode.ROOM_NOT_FOUND)
                    return
                if room.find_user(binding.session_id) is None:
                    # Seat was removed by another connection sharing this session
                    await self.send_error(ws, ErrorCode.NOT_IN_ROOM)
                    return
                rooms.set_vote(room, binding.session_id, value)
                await self.store.save(slug, room)
            except StoreError:
                logger.exception("Failed to persist vote in room %s", slug)
                return
            await self.broadcaster.broadcast_room(slug, room)

    async def owner_action(self, ws: WebSocket, transition: Callable[[Room], Room]) -> None:
        """Reveal or reset: allowed for the owner, or anyone if the room has none."""
        binding = self.registry.binding_for(ws)
        if binding is None:
            await self.send_error(ws, ErrorCode.NOT_IN_ROOM)
            return

        slug = binding.room_slug
        async with self.registry.lock_for(slug):
            try:
                room = await self.store.load(slug)
                if room is None:
                    await self.send_error(ws, ErrorCode.ROOM_NOT_FOUND)
                    return
                rooms.refresh_owner(room, self.clock(), self.owner_grace)
                if not rooms.is_owner_or_unowned(room, binding.session_id):
                    await self.send_error(ws, ErrorCode.NOT_OWNER)
                    return
                transition(room)
                await self.store.save(slug, room)
            except StoreError:
                logger.exception("Failed to persist %s in room %s", transition.__name__, slug)
                return
            await self.broadcaster.broadcast_room(slug, room)
