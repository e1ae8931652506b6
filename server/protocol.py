"""
Control-channel message models.

Client → server frames are JSON objects `{"type": ..., "payload": {...}}`.
Payload keys are camelCase on the wire.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class EventType(str, Enum):
    JOIN_ROOM = "join_room"
    LEAVE_ROOM = "leave_room"
    NEW_VOTE = "new_vote"
    REVEAL_VOTES = "reveal_votes"
    RESET_VOTES = "reset_votes"


class ErrorCode(str, Enum):
    INVALID_MESSAGE = "invalid_message"
    UNKNOWN_EVENT = "unknown_event"
    MISSING_ROOM = "missing_room"
    ROOM_NOT_FOUND = "room_not_found"
    INVALID_ACCESS_CODE = "invalid_access_code"
    NOT_IN_ROOM = "not_in_room"
    INVALID_VOTE = "invalid_vote"
    NOT_OWNER = "not_owner"


def _scalar_to_str(v: Any) -> str | None:
    if v is None or isinstance(v, str):
        return v
    if isinstance(v, bool):
        raise ValueError("booleans are not accepted")
    if isinstance(v, (int, float)):
        return str(v)
    raise ValueError("expected a string")


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Envelope(BaseModel):
    type: str
    payload: dict[str, Any] | None = None


class JoinRoomPayload(_Payload):
    room_slug: str | None = None
    name: str | None = None
    avatar: str | None = None
    session_id: str | None = None
    access_code: str | None = None

    @field_validator("room_slug", "name", "avatar", "session_id", "access_code", mode="before")
    @classmethod
    def _coerce(cls, v: Any) -> str | None:
        return _scalar_to_str(v)


class NewVotePayload(_Payload):
    value: str | None = None

    @field_validator("value", mode="before")
    @classmethod
    def _coerce(cls, v: Any) -> str | None:
        return _scalar_to_str(v)
