# Room codes avoid look-alike characters (I/1, O/0).
ROOM_ID_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_ID_LENGTH = 6

STATUS_WAITING = "waiting"
STATUS_VOTING = "voting"
STATUS_REVEALED = "revealed"

ROOM_STATUSES: set[str] = {STATUS_WAITING, STATUS_VOTING, STATUS_REVEALED}

__all__ = [
    "ROOM_ID_ALPHABET",
    "ROOM_ID_LENGTH",
    "STATUS_WAITING",
    "STATUS_VOTING",
    "STATUS_REVEALED",
    "ROOM_STATUSES",
]
