"""
Room state transitions.

Everything here except `create_room` is pure: functions take a loaded Room,
mutate it in place and return it. The caller owns loading and saving, and
must hold the room's lock across load → transition → save.

Owner succession:
  owner present          → nothing to do, absence timer cleared
  owner just went away   → absence timer starts, ownership unchanged
  owner away ≥ grace     → first participant in join order becomes owner
"""

from __future__ import annotations

import logging
import re
import secrets
import string
import unicodedata
from datetime import datetime, timedelta

from models import (
    ANONYMOUS,
    DEFAULT_ROOM_NAME,
    Participant,
    PublicParticipant,
    PublicRoomView,
    Room,
    RoomStats,
    utcnow,
)
from stats import compute_stats
from store import RoomStore

logger = logging.getLogger("planning-poker.rooms")

OWNER_ABSENCE_GRACE = timedelta(seconds=30)

_SLUG_ALPHABET = string.ascii_lowercase + string.digits
_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")


# ── Creation ─────────────────────────────────────────────────────────────────

def generate_slug(name: str) -> str:
    """`"Sprint Café"` → `"sprint-cafe-x7k2"`. Collisions are not checked."""
    normalized = unicodedata.normalize("NFKD", str(name or ""))
    ascii_only = "".join(c for c in normalized if not unicodedata.combining(c))
    base = _NON_SLUG_RE.sub("-", ascii_only.lower()).strip("-") or "room"
    suffix = "".join(secrets.choice(_SLUG_ALPHABET) for _ in range(4))
    return f"{base}-{suffix}"


def new_room(name: str | None, is_private: bool = False,
             access_code: str | None = None) -> Room:
    """Build a zeroed room. A private room without a usable code is left unprotected."""
    code = (str(access_code or "").strip() or None) if is_private else None
    return Room(
        name=(name or "").strip() or DEFAULT_ROOM_NAME,
        private=bool(is_private),
        access_code=code,
    )


async def create_room(store: RoomStore, name: str | None, is_private: bool = False,
                      access_code: str | None = None) -> tuple[str, Room]:
    room = new_room(name, is_private, access_code)
    slug = generate_slug(room.name)
    await store.save(slug, room)
    logger.info("Room created — slug=%s private=%s", slug, room.private)
    return slug, room


# ── Membership ───────────────────────────────────────────────────────────────

def upsert_user(room: Room, session_id: str, name: str | None,
                avatar: str | None = None) -> Room:
    clean_name = str(name or "").strip() or ANONYMOUS
    clean_avatar = str(avatar or "").strip() or None

    user = room.find_user(session_id)
    if user is None:
        room.users.append(Participant(
            session_id=session_id, name=clean_name, avatar=clean_avatar, connected=True,
        ))
    else:
        user.name = clean_name
        user.avatar = clean_avatar or user.avatar
        user.connected = True

    if room.users:
        room.emptied_at = None
    if room.owner_session_id is not None and room.owner_session_id == session_id:
        room.owner_left_at = None
    return room


def mark_user_disconnected(room: Room, session_id: str) -> Room:
    """Keep the seat but flag the participant as offline."""
    user = room.find_user(session_id)
    if user is not None:
        user.connected = False
    return room


def remove_user(room: Room, session_id: str, now: datetime | None = None) -> Room:
    now = now or utcnow()
    was_owner = room.owner_session_id is not None and room.owner_session_id == session_id

    room.users = [u for u in room.users if u.session_id != session_id]
    room.votes.pop(session_id, None)

    if was_owner:
        if room.users:
            room.owner_left_at = now
        else:
            room.owner_session_id = None
            room.owner_left_at = None

    if not room.users:
        room.emptied_at = now
    return room


def refresh_owner(room: Room, now: datetime | None = None,
                  grace: timedelta = OWNER_ABSENCE_GRACE) -> Room:
    if not room.users:
        room.owner_session_id = None
        room.owner_left_at = None
        return room

    # No owner: whoever joins next claims it
    if room.owner_session_id is None:
        room.owner_left_at = None
        return room

    if room.find_user(room.owner_session_id) is not None:
        room.owner_left_at = None
        return room

    now = now or utcnow()
    if room.owner_left_at is None:
        room.owner_left_at = now
        return room

    if now - room.owner_left_at >= grace:
        previous = room.owner_session_id
        room.owner_session_id = room.users[0].session_id
        room.owner_left_at = None
        logger.info("Ownership transferred — %s → %s", previous, room.owner_session_id)
    return room


def claim_ownership_if_vacant(room: Room, session_id: str) -> Room:
    if room.owner_session_id is None:
        room.owner_session_id = session_id
        room.owner_left_at = None
    return room


def is_owner_or_unowned(room: Room, session_id: str) -> bool:
    return room.owner_session_id is None or room.owner_session_id == session_id


# ── Voting ───────────────────────────────────────────────────────────────────

def set_vote(room: Room, session_id: str, value: str) -> Room:
    room.votes[session_id] = value
    room.stats = compute_stats(room.votes)
    return room


def reset_votes(room: Room) -> Room:
    room.votes = {}
    room.revealed = False
    room.stats = RoomStats()
    return room


def reveal_votes(room: Room) -> Room:
    room.revealed = True
    room.stats = compute_stats(room.votes)
    return room


# ── Views ────────────────────────────────────────────────────────────────────

def build_public_view(room: Room, slug: str) -> PublicRoomView:
    """Room state safe to show every viewer: votes stay hidden until revealed."""
    return PublicRoomView(
        slug=slug,
        name=room.name,
        private=room.private,
        revealed=room.revealed,
        owner_session_id=room.owner_session_id,
        users=[
            PublicParticipant(
                session_id=u.session_id,
                name=u.name,
                avatar=u.avatar,
                connected=u.connected,
                has_voted=room.votes.get(u.session_id) is not None,
            )
            for u in room.users
        ],
        votes=dict(room.votes) if room.revealed else {},
        stats=room.stats,
    )
