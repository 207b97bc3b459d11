"""Pydantic data schemas used across the planning poker service.

This module centralises all models so that other packages can import
from a single location instead of sprinkling the definitions across
multiple files. The wire format is snake_case: every outbound frame, ack and
REST response uses the field names below. Inbound payloads additionally
accept the camelCase keys browsers send (``roomId``, ``clientId`` ...).
"""
from __future__ import annotations

from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

# -----------------------------
# Runtime
# -----------------------------

class Participant(BaseModel):
    """A client bound to a room through its stable ``client_id``."""

    client_id: str
    name: str
    channel_id: Optional[str] = None  # rebound on every (re)join


class VoteDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    client_id: str
    name: str
    vote: str


class RoundRecord(BaseModel):
    """Immutable history entry written when a round is revealed."""

    model_config = ConfigDict(frozen=True)

    round: int
    votes: Dict[str, str]
    vote_details: List[VoteDetail]
    average: Optional[float] = None
    revealed_at: str
    auto_revealed: bool = False


class RoomSettings(BaseModel):
    voting_options: List[str]


class ParticipantView(BaseModel):
    client_id: str
    channel_id: Optional[str] = None
    name: str
    has_voted: bool = False
    vote: Optional[str] = None  # only populated once the round is revealed


class RoomState(BaseModel):
    id: str
    admin_client_id: Optional[str] = None
    status: str  # waiting | voting | revealed
    current_round: int
    settings: RoomSettings
    participants: List[ParticipantView]
    history: List[RoundRecord] = []


# -----------------------------
# Monitoring view
# -----------------------------

class ParticipantSummary(BaseModel):
    client_id: str
    name: str


class RoomSummary(BaseModel):
    id: str
    status: str
    current_round: int
    participant_count: int
    participants: List[ParticipantSummary]
    admin_name: Optional[str] = None
    creator_name: Optional[str] = None
    history_count: int
    created_at: int
    last_active_at: int


class RoomsSnapshot(BaseModel):
    rooms: List[RoomSummary]
    total_rooms: int
    generated_at: str


# -----------------------------
# Inbound payloads
# -----------------------------

def _trimmed(value: Any) -> Optional[str]:
    """Coerce scalars to a stripped string; blanks become None."""
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        raise ValueError("expected a scalar")
    return str(value).strip() or None


TrimmedStr = Annotated[Optional[str], BeforeValidator(_trimmed)]


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ClientMessage(_Payload):
    """Envelope of every frame sent over the websocket."""

    type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    ack: Optional[Union[int, str]] = None

    @field_validator("data", mode="before")
    @classmethod
    def _default_data(cls, value: Any) -> Any:
        return {} if value is None else value


class CreateRoomRequest(_Payload):
    client_id: TrimmedStr = Field(default=None, alias="clientId")


class JoinRoomPayload(_Payload):
    room_id: TrimmedStr = Field(default=None, alias="roomId")
    name: TrimmedStr = None
    client_id: TrimmedStr = Field(default=None, alias="clientId")


class VotePayload(_Payload):
    vote: Optional[str] = None


class UpdateSettingsPayload(_Payload):
    voting_options: Optional[List[Any]] = Field(default=None, alias="votingOptions")


# -----------------------------
# Responses
# -----------------------------

class Ack(BaseModel):
    """Discriminated success/failure result of a single inbound operation."""

    ok: bool
    error: Optional[str] = None
    code: Optional[str] = None
    room_id: Optional[str] = None
    url: Optional[str] = None
    is_admin: Optional[bool] = None
    voting_options: Optional[List[str]] = None


class RoomResponse(BaseModel):
    room_id: str
    url: str


class HealthResponse(BaseModel):
    ok: bool = True
    timestamp: str


__all__ = [
    # runtime
    "Participant",
    "VoteDetail",
    "RoundRecord",
    "RoomSettings",
    "ParticipantView",
    "RoomState",
    # monitoring
    "ParticipantSummary",
    "RoomSummary",
    "RoomsSnapshot",
    # inbound
    "ClientMessage",
    "CreateRoomRequest",
    "JoinRoomPayload",
    "VotePayload",
    "UpdateSettingsPayload",
    # responses
    "Ack",
    "RoomResponse",
    "HealthResponse",
]
