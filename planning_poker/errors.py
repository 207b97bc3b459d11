"""Domain errors raised by rooms and the registry.

Each error carries a stable machine-readable ``code`` and the human message
sent back to the client in a failure acknowledgement. None of them is fatal:
the handler layer turns them into ``Ack(ok=False, ...)``.
"""
from __future__ import annotations

from typing import Optional


class RoomError(Exception):
    code = "room_error"
    message = "Request failed."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


# -------------------- validation -------------------- #

class InvalidPayload(RoomError):
    code = "invalid_payload"
    message = "Invalid join payload."


class InvalidVote(RoomError):
    code = "invalid_vote"
    message = "Invalid vote option."


class InvalidScale(RoomError):
    code = "invalid_scale"
    message = "Invalid voting scale."


class UnknownEvent(RoomError):
    code = "unknown_event"
    message = "Unknown event."


# -------------------- lookup -------------------- #

class RoomNotFound(RoomError):
    code = "room_not_found"
    message = "Room not found."


class RoomContextMissing(RoomError):
    code = "room_context_missing"
    message = "Room context missing."


class NotParticipant(RoomError):
    code = "not_participant"
    message = "You are not a participant in this room."


class DuplicateName(RoomError):
    code = "duplicate_name"
    message = "Name already exists in this room."


# -------------------- authorization -------------------- #

class NotAdmin(RoomError):
    code = "not_admin"
    message = "Only admin can perform this action."


# -------------------- state -------------------- #

class InvalidTransition(RoomError):
    code = "invalid_transition"
    message = "Action not allowed in the current room state."


class VotingNotActive(RoomError):
    code = "voting_not_active"
    message = "Voting is not active."


class NoActiveRound(RoomError):
    code = "no_active_round"
    message = "No active voting round."


__all__ = [
    "RoomError",
    "InvalidPayload",
    "InvalidVote",
    "InvalidScale",
    "UnknownEvent",
    "RoomNotFound",
    "RoomContextMissing",
    "NotParticipant",
    "DuplicateName",
    "NotAdmin",
    "InvalidTransition",
    "VotingNotActive",
    "NoActiveRound",
]
