from __future__ import annotations

import asyncio
import math
import time
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from . import config
from .constants import STATUS_REVEALED, STATUS_VOTING, STATUS_WAITING
from .errors import (
    DuplicateName,
    InvalidPayload,
    InvalidScale,
    InvalidTransition,
    InvalidVote,
    NoActiveRound,
    NotAdmin,
    NotParticipant,
    VotingNotActive,
)
from .logging_config import get_logger
from .schemas import (
    Participant,
    ParticipantSummary,
    ParticipantView,
    RoomSettings,
    RoomState,
    RoomSummary,
    RoundRecord,
    VoteDetail,
)

logger = get_logger(__name__)

# NOTE: ``Room`` deliberately knows nothing about websockets. The fan-out
# layer in ``planning_poker.hub`` reads snapshots from it after each mutation.


def now_ms() -> int:
    return int(time.time() * 1000)


def utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def compute_average(votes: Iterable[str]) -> Optional[float]:
    """Mean of the numeric votes rounded to two places.

    Tokens that do not parse as a finite number ("?", "☕") are skipped.
    Returns ``None`` when nothing numeric is left.
    """
    numeric: List[float] = []
    for vote in votes:
        try:
            value = float(str(vote).strip())
        except ValueError:
            continue
        if math.isfinite(value):
            numeric.append(value)
    if not numeric:
        return None
    return round(sum(numeric) / len(numeric), 2)


class Room:
    """Runtime state of one planning poker session.

    All mutating methods are synchronous and never await, so on a single
    event loop each call is applied atomically. Callers that also broadcast
    hold :attr:`lock` from the mutation until the snapshot has been sent.
    """

    def __init__(
        self,
        room_id: str,
        created_by_client_id: Optional[str] = None,
        voting_options: Optional[List[str]] = None,
    ):
        self.id = room_id
        self.status = STATUS_WAITING
        self.current_round: int = 1
        self.voting_options: List[str] = list(voting_options or config.DEFAULT_VOTING_OPTIONS)
        self.created_by_client_id: Optional[str] = created_by_client_id or None
        self.admin_client_id: Optional[str] = None
        self.participants: List[Participant] = []
        # client_id -> last known display name, kept after the participant leaves
        self.participant_directory: Dict[str, str] = {}
        self.round_votes: Dict[str, str] = {}
        self.history: List[RoundRecord] = []
        self.created_at: int = now_ms()
        self.last_active_at: int = self.created_at

        self.lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"<Room {self.id} status={self.status} round={self.current_round}>"

    # ---------------------------------------------------------------------
    # Helper utilities
    # ---------------------------------------------------------------------

    def touch(self) -> None:
        self.last_active_at = now_ms()

    def find_participant(self, client_id: Optional[str]) -> Optional[Participant]:
        return next((p for p in self.participants if p.client_id == client_id), None)

    def find_participant_by_channel(self, channel_id: Optional[str]) -> Optional[Participant]:
        return next((p for p in self.participants if p.channel_id == channel_id), None)

    def is_admin(self, client_id: Optional[str]) -> bool:
        return client_id is not None and self.admin_client_id == client_id

    def _require_admin(self, client_id: Optional[str], message: str) -> None:
        if not self.is_admin(client_id):
            raise NotAdmin(message)

    def _ensure_admin(self) -> None:
        """Keep ``admin_client_id`` pointing at a present participant (or None)."""
        if self.admin_client_id and self.find_participant(self.admin_client_id):
            return
        self.admin_client_id = self.participants[0].client_id if self.participants else None

    # -------------------- Participant management -------------------- #

    def join(self, client_id: str, name: str, channel_id: Optional[str] = None) -> Participant:
        """Add *client_id* to the room, or rename/rebind it when already present."""
        client_id = (client_id or "").strip()
        name = (name or "").strip()
        if not client_id or not name:
            raise InvalidPayload()

        lowered = name.lower()
        for other in self.participants:
            if other.client_id != client_id and other.name.lower() == lowered:
                raise DuplicateName()

        participant = self.find_participant(client_id)
        if participant is not None:
            participant.name = name
            participant.channel_id = channel_id
        else:
            participant = Participant(client_id=client_id, name=name, channel_id=channel_id)
            self.participants.append(participant)
        self.participant_directory[client_id] = name

        # The creator always reclaims admin; otherwise first come, first served.
        if self.created_by_client_id and self.created_by_client_id == client_id:
            self.admin_client_id = client_id
        elif not self.admin_client_id:
            self.admin_client_id = client_id

        self.touch()
        logger.info("Room %s: %s joined as %r (admin=%s)", self.id, client_id, name, self.admin_client_id)
        return participant

    def leave(self, channel_id: Optional[str]) -> Optional[Participant]:
        """Remove the participant bound to *channel_id*.

        A channel that has since been replaced by a reconnect is bound to
        nobody and removes nothing. Pending votes are dropped; ``status`` and
        history are left untouched.
        """
        if channel_id is None:
            return None
        participant = self.find_participant_by_channel(channel_id)
        if participant is None:
            return None
        return self.remove_participant(participant.client_id)

    def remove_participant(self, client_id: str) -> Optional[Participant]:
        """Drop *client_id* and its pending vote, then re-run admin continuity."""
        participant = self.find_participant(client_id)
        if participant is None:
            return None

        self.participants = [p for p in self.participants if p.client_id != client_id]
        self.round_votes.pop(client_id, None)
        self._ensure_admin()
        self.touch()
        logger.info(
            "Room %s: %s left (%d remaining, admin=%s)",
            self.id,
            participant.client_id,
            len(self.participants),
            self.admin_client_id,
        )
        return participant

    # -------------------- Round lifecycle -------------------- #

    def start(self, client_id: Optional[str]) -> None:
        self._require_admin(client_id, "Only admin can start estimation.")
        if self.status != STATUS_WAITING:
            raise InvalidTransition("A round is already in progress or awaiting reset.")
        self.round_votes = {}
        self.status = STATUS_VOTING
        self.touch()
        logger.info("Room %s: round %d started", self.id, self.current_round)

    def submit_vote(self, client_id: Optional[str], value: Optional[str]) -> bool:
        """Record *value* for *client_id*; returns True when this vote auto-revealed the round."""
        if self.find_participant(client_id) is None:
            raise NotParticipant()
        if self.status != STATUS_VOTING:
            raise VotingNotActive()
        if value not in self.voting_options:
            raise InvalidVote()

        self.round_votes[client_id] = value
        self.touch()

        all_voted = bool(self.participants) and all(
            p.client_id in self.round_votes for p in self.participants
        )
        if all_voted:
            self._close_round(auto_revealed=True)
        return all_voted

    def reveal(self, client_id: Optional[str]) -> RoundRecord:
        self._require_admin(client_id, "Only admin can reveal votes.")
        if self.status != STATUS_VOTING:
            raise NoActiveRound()
        return self._close_round(auto_revealed=False)

    def reset(self, client_id: Optional[str]) -> None:
        self._require_admin(client_id, "Only admin can reset round.")
        if self.status != STATUS_REVEALED:
            raise InvalidTransition("Reveal the current round before resetting.")
        self.current_round += 1
        self.round_votes = {}
        self.status = STATUS_WAITING
        self.touch()
        logger.info("Room %s: reset to round %d", self.id, self.current_round)

    def update_voting_options(self, client_id: Optional[str], options) -> List[str]:
        self._require_admin(client_id, "Only admin can update settings.")
        if not isinstance(options, (list, tuple)) or not options:
            raise InvalidScale()

        cleaned: List[str] = []
        seen = set()
        for option in options:
            if option is None or isinstance(option, (dict, list)):
                raise InvalidScale()
            token = str(option).strip()
            if not token or token.lower() in seen:
                raise InvalidScale()
            seen.add(token.lower())
            cleaned.append(token)

        # Votes already cast against the previous scale are kept as-is.
        self.voting_options = cleaned
        self.touch()
        logger.info("Room %s: voting options set to %s", self.id, cleaned)
        return cleaned

    def _close_round(self, auto_revealed: bool) -> RoundRecord:
        present = {p.client_id for p in self.participants}
        votes = {cid: vote for cid, vote in self.round_votes.items() if cid in present}
        record = RoundRecord(
            round=self.current_round,
            votes=votes,
            vote_details=[
                VoteDetail(
                    client_id=cid,
                    name=self.participant_directory.get(cid, "Unknown"),
                    vote=vote,
                )
                for cid, vote in votes.items()
            ],
            average=compute_average(votes.values()),
            revealed_at=utc_iso(),
            auto_revealed=auto_revealed,
        )
        self.status = STATUS_REVEALED
        self.history.append(record)
        self.touch()
        logger.info(
            "Room %s: round %d revealed (%s, %d votes, average=%s)",
            self.id,
            record.round,
            "auto" if auto_revealed else "admin",
            len(votes),
            record.average,
        )
        return record

    # -------------------- Projections -------------------- #

    def public_state(self) -> RoomState:
        """Snapshot pushed to room subscribers; votes are hidden until reveal."""
        revealed = self.status == STATUS_REVEALED
        return RoomState(
            id=self.id,
            admin_client_id=self.admin_client_id,
            status=self.status,
            current_round=self.current_round,
            settings=RoomSettings(voting_options=list(self.voting_options)),
            participants=[
                ParticipantView(
                    client_id=p.client_id,
                    channel_id=p.channel_id,
                    name=p.name,
                    has_voted=p.client_id in self.round_votes,
                    vote=self.round_votes.get(p.client_id) if revealed else None,
                )
                for p in self.participants
            ],
            history=list(self.history),
        )

    def summary(self) -> RoomSummary:
        """Monitoring projection; never includes round votes."""
        admin = self.find_participant(self.admin_client_id)
        creator = self.find_participant(self.created_by_client_id)
        return RoomSummary(
            id=self.id,
            status=self.status,
            current_round=self.current_round,
            participant_count=len(self.participants),
            participants=[
                ParticipantSummary(client_id=p.client_id, name=p.name) for p in self.participants
            ],
            admin_name=admin.name if admin else None,
            creator_name=creator.name if creator else None,
            history_count=len(self.history),
            created_at=self.created_at,
            last_active_at=self.last_active_at,
        )


__all__ = ["Room", "compute_average", "now_ms", "utc_iso"]
