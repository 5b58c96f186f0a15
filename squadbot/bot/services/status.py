"""Squad lifecycle status.

Status is never stored. It is derived on every query from the squad's
posting (the expiry clock) and its one-way ``filled`` flag:

    posting gone            -> EXPIRED (squad record collected)
    posting live, filled=0  -> FORMING
    posting live, filled=1  -> FILLED
"""

from __future__ import annotations

import logging

import redis.asyncio as redis

from squadbot.bot.services.base import RedisService
from squadbot.bot.services.models import SquadStatus
from squadbot.bot.services.squad_store import FILLED_FIELD
from squadbot.bot.services.squad_store import POSTING_FIELD
from squadbot.bot.services.squad_store import SquadStore

logger = logging.getLogger(__name__)


class StatusResolver(RedisService):
    """Computes squad status and collects squads whose posting expired."""

    def __init__(self, redis_client: redis.Redis, store: SquadStore):
        super().__init__(redis_client, "StatusResolver")
        self._store = store

    async def get_status(self, squad_id: str) -> SquadStatus:
        """Get the current status of a squad.

        Calling this on an expired squad any number of times keeps
        returning EXPIRED without error.
        """
        record = await self._store.get_squad_record(squad_id)
        if record is None:
            return SquadStatus.EXPIRED

        posting_ref = record.get(POSTING_FIELD)
        if posting_ref is None:
            # Created but not posted yet; the squad TTL reaps abandoned ones.
            return SquadStatus.FORMING

        async with self._store_call("get_status", squad_id=squad_id):
            posting_live = await self._redis.exists(posting_ref)
        if not posting_live:
            await self._collect_expired(squad_id, posting_ref)
            return SquadStatus.EXPIRED

        if record.get(FILLED_FIELD) == "1":
            return SquadStatus.FILLED
        return SquadStatus.FORMING

    async def _collect_expired(self, squad_id: str, posting_ref: str) -> None:
        """Delete what is left of a squad once its posting has expired."""
        removed = await self._store.delete_squad(squad_id)
        if removed:
            logger.info(f"Collected expired squad {squad_id} ({posting_ref} is gone)")
