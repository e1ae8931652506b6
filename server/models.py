"""
Room data model.

Rooms are persisted as JSON documents with camelCase keys, so every model
uses a camel alias generator and accepts either spelling on input.

Instants (ownerLeftAt, emptiedAt) are timezone-aware UTC datetimes. A stored
instant that cannot be parsed loads as "now": it restarts the grace period
instead of making the room eligible for anything immediately.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_ROOM_NAME = "Room"
ANONYMOUS = "Anonymous"

_INSTANT_KEYS = {
    "owner_left_at": ("ownerLeftAt", "owner_left_at"),
    "emptied_at": ("emptiedAt", "emptied_at"),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _read_instant(value: Any) -> tuple[datetime | None, bool]:
    """Return (instant, repaired); repaired means the raw value was unreadable."""
    if value is None or value == "":
        return None, False
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError:
            return utcnow(), True
    return (parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)), False


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RoomStats(_CamelModel):
    total_votes: int = 0
    unique_values: int = 0
    most_frequent: str | None = None
    average: float | None = None


class Participant(_CamelModel):
    session_id: str
    name: str = ANONYMOUS
    avatar: str | None = None
    connected: bool = True


class Room(_CamelModel):
    name: str = DEFAULT_ROOM_NAME
    private: bool = False
    access_code: str | None = None
    users: list[Participant] = Field(default_factory=list)
    votes: dict[str, str] = Field(default_factory=dict)
    stats: RoomStats = Field(default_factory=RoomStats)
    revealed: bool = False
    owner_session_id: str | None = None
    owner_left_at: datetime | None = None
    emptied_at: datetime | None = None

    _repaired_instants: frozenset[str] = PrivateAttr(default=frozenset())

    @field_validator("votes", mode="before")
    @classmethod
    def _stringify_votes(cls, v: Any) -> dict[str, str]:
        # Older documents may hold numeric votes or explicit nulls
        if not v:
            return {}
        return {str(k): str(val) for k, val in dict(v).items() if val is not None}

    @field_validator("owner_left_at", "emptied_at", mode="before")
    @classmethod
    def _tolerant_instant(cls, v: Any) -> datetime | None:
        return _read_instant(v)[0]

    @field_validator("access_code", "owner_session_id", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> str | None:
        if v is None:
            return None
        v = str(v)
        return v or None

    @model_validator(mode="wrap")
    @classmethod
    def _note_repaired_instants(cls, data: Any, handler):
        room = handler(data)
        if isinstance(data, dict):
            room._repaired_instants = frozenset(
                field for field, keys in _INSTANT_KEYS.items()
                if any(_read_instant(data.get(key))[1] for key in keys)
            )
        return room

    @property
    def repaired_instants(self) -> frozenset[str]:
        """Fields whose stored instant was unreadable and loaded as "now"."""
        return self._repaired_instants

    @property
    def instants_repaired(self) -> bool:
        return bool(self._repaired_instants)

    # ── helpers ──────────────────────────────────────────────────────────

    def session_ids(self) -> list[str]:
        return [u.session_id for u in self.users]

    def find_user(self, session_id: str) -> Participant | None:
        for user in self.users:
            if user.session_id == session_id:
                return user
        return None

    def to_document(self) -> dict:
        """Serialise for a store (camelCase keys, ISO instants)."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, doc: dict) -> "Room":
        return cls.model_validate(doc)


# ── Outbound views ───────────────────────────────────────────────────────────

class PublicParticipant(_CamelModel):
    session_id: str
    name: str
    avatar: str | None = None
    connected: bool
    has_voted: bool


class PublicRoomView(_CamelModel):
    """What every viewer of a room may see."""

    slug: str
    name: str
    private: bool
    revealed: bool
    owner_session_id: str | None = None
    users: list[PublicParticipant]
    votes: dict[str, str]
    stats: RoomStats
