"""Data models shared by the squad services and the Discord layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from squadbot.bot.services.exceptions import MalformedArgumentError

HOURS_COMPONENT_PREFIX = "squad_hours:"
LEAVE_COMPONENT_ID = "squad_leave"


class SquadStatus(str, Enum):
    """Lifecycle state of a squad, computed on every query."""

    FORMING = "forming"
    FILLED = "filled"
    EXPIRED = "expired"


class JoinOutcome(str, Enum):
    """Result of a join attempt.

    Every outcome except ``NOT_FORMING`` refreshed the user's own member
    record, including ``CAPACITY_EXCEEDED``.
    """

    ADDED = "added"
    REFRESHED = "refreshed"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    NOT_FORMING = "not_forming"

    @property
    def is_member(self) -> bool:
        return self in (JoinOutcome.ADDED, JoinOutcome.REFRESHED)


@dataclass(frozen=True)
class Hours:
    """A posting button committing the user for ``hours`` hours."""

    hours: int

    @property
    def seconds(self) -> int:
        return self.hours * 60 * 60

    @property
    def custom_id(self) -> str:
        return f"{HOURS_COMPONENT_PREFIX}{self.hours}"


@dataclass(frozen=True)
class Leave:
    """The posting button removing the user from the squad."""

    @property
    def custom_id(self) -> str:
        return LEAVE_COMPONENT_ID


ButtonChoice = Hours | Leave


def parse_component_id(custom_id: str, max_hours: int = 10) -> ButtonChoice:
    """Map a raw button custom id to the action it stands for.

    Raises:
        MalformedArgumentError: If the id is not one of the posting buttons
    """
    if custom_id == LEAVE_COMPONENT_ID:
        return Leave()
    if custom_id.startswith(HOURS_COMPONENT_PREFIX):
        raw = custom_id[len(HOURS_COMPONENT_PREFIX):]
        try:
            hours = int(raw)
        except ValueError:
            raise MalformedArgumentError("custom_id", f"Invalid hours {raw!r}") from None
        if not 1 <= hours <= max_hours:
            raise MalformedArgumentError(
                "custom_id", f"Hours must be between 1 and {max_hours}, got {hours}"
            )
        return Hours(hours)
    raise MalformedArgumentError("custom_id", f"Unknown component {custom_id!r}")


def is_squad_component(custom_id: str) -> bool:
    return custom_id == LEAVE_COMPONENT_ID or custom_id.startswith(HOURS_COMPONENT_PREFIX)


@dataclass(frozen=True)
class CreateSquad:
    """Someone asked for a new posting."""

    capacity: int
    role_id: int | None = None
    cross_squad_id: str | None = None


@dataclass(frozen=True)
class JoinSquad:
    """Someone clicked an hours button on a posting."""

    message_id: int
    user_id: int
    hours: int


@dataclass(frozen=True)
class LeaveSquad:
    """Someone clicked the leave button on a posting."""

    message_id: int
    user_id: int


@dataclass
class SquadSnapshot:
    """Everything needed to render one posting."""

    squad_id: str | None
    status: SquadStatus
    capacity: int | None = None
    members: dict[int, int] = field(default_factory=dict)
    time_remaining: int | None = None


@dataclass
class DisplayPayload:
    """Rendered content of a posting or notification."""

    content: str | None = None
    embed: Any = None
    components: list[Any] = field(default_factory=list)
