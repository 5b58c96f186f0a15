"""Handling of user-driven squad events.

This module is Discord-agnostic: the plugin turns slash commands and button
clicks into ``CreateSquad``/``JoinSquad``/``LeaveSquad`` events and hands them
here.
"""

from __future__ import annotations

import logging

from squadbot.bot.services.exceptions import MalformedArgumentError
from squadbot.bot.services.exceptions import NotFoundError
from squadbot.bot.services.membership import MembershipEngine
from squadbot.bot.services.models import CreateSquad
from squadbot.bot.services.models import JoinOutcome
from squadbot.bot.services.models import JoinSquad
from squadbot.bot.services.models import LeaveSquad
from squadbot.bot.services.models import SquadStatus
from squadbot.bot.services.squad_store import SquadStore
from squadbot.bot.services.status import StatusResolver

logger = logging.getLogger(__name__)


class SquadEventHandler:
    """Applies create/join/leave events to the store."""

    def __init__(
        self,
        store: SquadStore,
        resolver: StatusResolver,
        membership: MembershipEngine,
        max_hours: int = 10,
    ):
        self._store = store
        self._resolver = resolver
        self._membership = membership
        self.max_hours = max_hours

    async def open_squad(self, event: CreateSquad) -> tuple[str, int]:
        """Create a squad, or resolve the squad a cross-post links to.

        Returns:
            Tuple of (squad id, capacity)

        Raises:
            MalformedArgumentError: If the capacity is out of range
            NotFoundError: If the cross-posted squad is gone or already filled
        """
        if event.cross_squad_id is None:
            squad_id = await self._store.create_squad(event.capacity)
            return squad_id, event.capacity

        squad_id = event.cross_squad_id.strip()
        if not squad_id:
            raise MalformedArgumentError("squad", "Squad ID must not be empty")
        status = await self._resolver.get_status(squad_id)
        if status is not SquadStatus.FORMING:
            raise NotFoundError("squad", squad_id)
        capacity = await self._store.get_capacity(squad_id)
        logger.info(f"Cross-posting squad {squad_id}")
        return squad_id, capacity

    async def attach_posting(
        self,
        squad_id: str,
        channel_id: int,
        message_id: int,
        role_id: int | None = None,
    ) -> None:
        """Record the message that shows the squad."""
        await self._store.create_posting(channel_id, message_id, squad_id, role_id)

    async def join(self, event: JoinSquad) -> JoinOutcome:
        """Commit a user to the squad behind a posting.

        Raises:
            MalformedArgumentError: If hours is out of range
            NotFoundError: If the posting is gone
        """
        if not 1 <= event.hours <= self.max_hours:
            raise MalformedArgumentError(
                "hours", f"Hours must be between 1 and {self.max_hours}"
            )
        squad_id = await self._store.get_squad_id_for_posting(event.message_id)
        return await self._membership.add_member(
            squad_id, event.user_id, event.hours * 60 * 60
        )

    async def leave(self, event: LeaveSquad) -> bool:
        """Remove a user from the squad behind a posting.

        Raises:
            NotFoundError: If the posting is gone
        """
        squad_id = await self._store.get_squad_id_for_posting(event.message_id)
        return await self._membership.delete_member(squad_id, event.user_id)
