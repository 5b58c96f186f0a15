"""Squad membership under a capacity constraint.

Each member has a personal record ``member:<squad>:<user>`` that expires
when their chosen availability runs out, and a pointer to that record in the
squad's member set. Pointers to expired records are removed the next time
the roster is read.
"""

from __future__ import annotations

import logging

import redis.asyncio as redis
from redis.asyncio.client import Pipeline

from squadbot.bot.services import keys
from squadbot.bot.services.base import RedisService
from squadbot.bot.services.exceptions import MalformedArgumentError
from squadbot.bot.services.models import JoinOutcome
from squadbot.bot.services.models import SquadStatus
from squadbot.bot.services.squad_store import CAPACITY_FIELD
from squadbot.bot.services.squad_store import MEMBERS_FIELD
from squadbot.bot.services.squad_store import POSTING_FIELD
from squadbot.bot.services.status import StatusResolver

logger = logging.getLogger(__name__)


class MembershipEngine(RedisService):
    """Adds, removes and lists squad members."""

    def __init__(self, redis_client: redis.Redis, resolver: StatusResolver):
        super().__init__(redis_client, "MembershipEngine")
        self._resolver = resolver

    async def _members_ref(self, squad_id: str) -> str | None:
        async with self._store_call("members_ref", squad_id=squad_id):
            return await self._redis.hget(keys.squad_key(squad_id), MEMBERS_FIELD)

    async def add_member(
        self, squad_id: str, user_id: int, availability_seconds: int
    ) -> JoinOutcome:
        """Commit a user to a forming squad for ``availability_seconds``.

        The capacity check and the insert run as one optimistic transaction.
        A join beyond capacity is dropped without error, but the user's own
        member record is still refreshed. When the member set goes from
        empty to non-empty its TTL is armed to the posting's remaining TTL.

        Returns:
            What happened to the join

        Raises:
            MalformedArgumentError: If availability is not positive
            StoreUnavailableError: If Redis cannot be reached
        """
        if availability_seconds <= 0:
            raise MalformedArgumentError(
                "availability_seconds", "Availability must be a positive number of seconds"
            )

        status = await self._resolver.get_status(squad_id)
        if status is not SquadStatus.FORMING:
            logger.debug(f"User {user_id} cannot join squad {squad_id}: {status.value}")
            return JoinOutcome.NOT_FORMING

        squad_key = keys.squad_key(squad_id)
        members_ref = await self._members_ref(squad_id) or keys.members_key(squad_id)
        member_key = keys.member_key(squad_id, user_id)

        async def join(pipe: Pipeline) -> JoinOutcome:
            capacity, posting_ref = await pipe.hmget(squad_key, [CAPACITY_FIELD, POSTING_FIELD])
            if capacity is None:
                pipe.multi()
                return JoinOutcome.NOT_FORMING
            count = await pipe.scard(members_ref)
            already_member = await pipe.sismember(members_ref, member_key)
            posting_ttl = await pipe.ttl(posting_ref) if count == 0 and posting_ref else -2

            pipe.multi()
            if already_member:
                outcome = JoinOutcome.REFRESHED
            elif count == 0:
                pipe.sadd(members_ref, member_key)
                if posting_ttl > 0:
                    pipe.expire(members_ref, posting_ttl)
                outcome = JoinOutcome.ADDED
            elif count < int(capacity):
                pipe.sadd(members_ref, member_key)
                outcome = JoinOutcome.ADDED
            else:
                outcome = JoinOutcome.CAPACITY_EXCEEDED
            pipe.set(member_key, str(user_id), ex=availability_seconds)
            return outcome

        async with self._store_call("add_member", squad_id=squad_id, user_id=user_id):
            outcome = await self._redis.transaction(
                join, squad_key, members_ref, value_from_callable=True
            )

        if outcome is JoinOutcome.CAPACITY_EXCEEDED:
            logger.info(f"Squad {squad_id} is full, user {user_id} was not added")
        else:
            logger.debug(f"User {user_id} joined squad {squad_id}: {outcome.value}")
        return outcome

    async def delete_member(self, squad_id: str, user_id: int) -> bool:
        """Remove a user from a squad.

        Returns:
            True if a member pointer or record was removed, False if the
            user was not a member
        """
        members_ref = await self._members_ref(squad_id) or keys.members_key(squad_id)
        member_key = keys.member_key(squad_id, user_id)
        async with self._store_call("delete_member", squad_id=squad_id, user_id=user_id):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.srem(members_ref, member_key)
                pipe.delete(member_key)
                unlinked, deleted = await pipe.execute()

        removed = bool(unlinked or deleted)
        if removed:
            logger.debug(f"User {user_id} left squad {squad_id}")
        return removed

    async def get_members(self, squad_id: str) -> dict[int, int]:
        """Get the live members of a squad.

        Returns:
            Mapping of user id to seconds of availability left. Empty if the
            squad or its member set is gone.
        """
        members_ref = await self._members_ref(squad_id)
        if members_ref is None:
            return {}

        async with self._store_call("get_members", squad_id=squad_id):
            member_keys = sorted(await self._redis.smembers(members_ref))
            if not member_keys:
                return {}
            async with self._redis.pipeline(transaction=False) as pipe:
                for member_key in member_keys:
                    pipe.get(member_key)
                    pipe.ttl(member_key)
                replies = await pipe.execute()

        members: dict[int, int] = {}
        stale: list[str] = []
        for member_key, user_id, ttl in zip(member_keys, replies[::2], replies[1::2]):
            if user_id is None:
                stale.append(member_key)
                continue
            members[int(user_id)] = max(ttl, 0)

        if stale:
            await self._reap_stale_members(squad_id, members_ref, stale)
        return members

    async def _reap_stale_members(
        self, squad_id: str, members_ref: str, stale: list[str]
    ) -> None:
        """Drop member pointers whose personal record has expired."""
        async with self._store_call("reap_stale_members", squad_id=squad_id):
            await self._redis.srem(members_ref, *stale)
        logger.debug(f"Removed {len(stale)} expired member(s) from squad {squad_id}")
