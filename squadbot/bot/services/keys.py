"""Redis key naming for squad data.

All squad data lives in one flat namespace of colon-delimited keys:

    squad:<squad_id>               HASH  capacity, members, posting, filled
    posting:<message_id>           HASH  squad, channel, message, role
    members:<squad_id>             SET   member keys of the squad
    member:<squad_id>:<user_id>    STR   user id, expires with the member's availability
    channels:<squad_id>            SET   ids of channels the squad was posted in
    postings                       SET   "<channel_id>:<message_id>" of every posting not yet sealed
"""

from __future__ import annotations

SQUAD_PREFIX = "squad"
POSTING_PREFIX = "posting"
MEMBERS_PREFIX = "members"
MEMBER_PREFIX = "member"
CHANNELS_PREFIX = "channels"
POSTING_INDEX_KEY = "postings"


def squad_key(squad_id: str) -> str:
    return f"{SQUAD_PREFIX}:{squad_id}"


def posting_key(message_id: int | str) -> str:
    return f"{POSTING_PREFIX}:{message_id}"


def members_key(squad_id: str) -> str:
    return f"{MEMBERS_PREFIX}:{squad_id}"


def member_key(squad_id: str, user_id: int | str) -> str:
    return f"{MEMBER_PREFIX}:{squad_id}:{user_id}"


def channels_key(squad_id: str) -> str:
    return f"{CHANNELS_PREFIX}:{squad_id}"


def squad_id_from_key(key: str) -> str:
    """Strip the namespace from a ``squad:<id>`` key."""
    prefix, _, squad_id = key.partition(":")
    if prefix != SQUAD_PREFIX or not squad_id:
        raise ValueError(f"Not a squad key: {key!r}")
    return squad_id


def pattern(prefix: str) -> str:
    """Glob pattern matching every key under ``prefix``."""
    return f"{prefix}:*"


def posting_ref(channel_id: int | str, message_id: int | str) -> str:
    """Entry of a posting in the ``postings`` index."""
    return f"{channel_id}:{message_id}"


def parse_posting_ref(ref: str) -> tuple[int, int]:
    """Split a ``postings`` index entry into (channel id, message id)."""
    channel_id, _, message_id = ref.partition(":")
    return int(channel_id), int(message_id)
