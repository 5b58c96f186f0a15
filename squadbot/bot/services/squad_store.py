"""Squad and posting records in Redis.

A squad is created together with its first posting. The posting hash is the
primary expiry clock for the squad; the squad hash carries a longer
safety-net TTL that is re-armed whenever a new posting links to it.
"""

from __future__ import annotations

import logging
import uuid

import redis.asyncio as redis
from redis.asyncio.client import Pipeline

from squadbot.bot.services import keys
from squadbot.bot.services.base import RedisService
from squadbot.bot.services.exceptions import MalformedArgumentError
from squadbot.bot.services.exceptions import NotFoundError

logger = logging.getLogger(__name__)

# Hash fields of squad:<id>
CAPACITY_FIELD = "capacity"
MEMBERS_FIELD = "members"
POSTING_FIELD = "posting"
FILLED_FIELD = "filled"

# Hash fields of posting:<message_id>
SQUAD_FIELD = "squad"
CHANNEL_FIELD = "channel"
MESSAGE_FIELD = "message"
ROLE_FIELD = "role"


class SquadStore(RedisService):
    """CRUD over squad and posting records and their TTLs."""

    def __init__(
        self,
        redis_client: redis.Redis,
        posting_ttl: int,
        squad_ttl: int,
        min_capacity: int = 1,
        max_capacity: int = 10,
    ):
        """Initialize the store.

        Args:
            redis_client: Redis client shared by all services
            posting_ttl: Lifetime of a posting in seconds
            squad_ttl: Safety-net lifetime of a squad record in seconds
            min_capacity: Smallest accepted squad size
            max_capacity: Largest accepted squad size
        """
        super().__init__(redis_client, "SquadStore")
        self.posting_ttl = posting_ttl
        self.squad_ttl = squad_ttl
        self.min_capacity = min_capacity
        self.max_capacity = max_capacity

    async def create_squad(self, capacity: int) -> str:
        """Create a new, empty squad.

        Args:
            capacity: Number of members needed to fill the squad

        Returns:
            Identifier of the new squad

        Raises:
            MalformedArgumentError: If capacity is out of range
            StoreUnavailableError: If Redis cannot be reached
        """
        if not self.min_capacity <= capacity <= self.max_capacity:
            raise MalformedArgumentError(
                "capacity",
                f"Capacity must be between {self.min_capacity} and {self.max_capacity}",
            )

        squad_id = uuid.uuid4().hex
        squad_key = keys.squad_key(squad_id)
        async with self._store_call("create_squad", squad_id=squad_id, capacity=capacity):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hset(
                    squad_key,
                    mapping={
                        CAPACITY_FIELD: capacity,
                        MEMBERS_FIELD: keys.members_key(squad_id),
                        FILLED_FIELD: 0,
                    },
                )
                pipe.expire(squad_key, self.squad_ttl)
                await pipe.execute()

        logger.info(f"Created squad {squad_id} with capacity {capacity}")
        return squad_id

    async def create_posting(
        self,
        channel_id: int,
        message_id: int,
        squad_id: str,
        role_id: int | None = None,
    ) -> None:
        """Link a posted message to a squad and start its expiry clock.

        Re-creating a posting for the same message overwrites it.

        Raises:
            NotFoundError: If the squad no longer exists
            StoreUnavailableError: If Redis cannot be reached
        """
        squad_key = keys.squad_key(squad_id)
        posting_key = keys.posting_key(message_id)
        channels_key = keys.channels_key(squad_id)

        async def link(pipe: Pipeline) -> None:
            if not await pipe.exists(squad_key):
                raise NotFoundError("squad", squad_id)
            posting = {
                SQUAD_FIELD: squad_id,
                CHANNEL_FIELD: str(channel_id),
                MESSAGE_FIELD: str(message_id),
            }
            if role_id is not None:
                posting[ROLE_FIELD] = str(role_id)

            pipe.multi()
            pipe.delete(posting_key)
            pipe.hset(posting_key, mapping=posting)
            pipe.expire(posting_key, self.posting_ttl)
            pipe.sadd(channels_key, str(channel_id))
            pipe.expire(channels_key, self.posting_ttl)
            pipe.sadd(keys.POSTING_INDEX_KEY, keys.posting_ref(channel_id, message_id))
            # The newest posting outlives the older ones, so it becomes the
            # squad's expiry clock and the member set follows it.
            pipe.hset(squad_key, POSTING_FIELD, posting_key)
            pipe.expire(squad_key, self.squad_ttl)
            pipe.expire(keys.members_key(squad_id), self.posting_ttl)

        async with self._store_call(
            "create_posting", squad_id=squad_id, message_id=message_id, channel_id=channel_id
        ):
            await self._redis.transaction(link, squad_key)

        logger.info(f"Posted squad {squad_id} as message {message_id} in channel {channel_id}")

    async def get_squad_id_for_posting(self, message_id: int) -> str:
        """Get the squad a posting belongs to.

        Raises:
            NotFoundError: If the posting does not exist
        """
        async with self._store_call("get_squad_id_for_posting", message_id=message_id):
            squad_id = await self._redis.hget(keys.posting_key(message_id), SQUAD_FIELD)
        if squad_id is None:
            raise NotFoundError("posting", message_id)
        return squad_id

    async def get_squad_record(self, squad_id: str) -> dict[str, str] | None:
        """Read the raw squad hash, or ``None`` if the squad is gone."""
        async with self._store_call("get_squad_record", squad_id=squad_id):
            record = await self._redis.hgetall(keys.squad_key(squad_id))
        return record or None

    async def get_capacity(self, squad_id: str) -> int:
        """Get the capacity of a squad.

        Raises:
            NotFoundError: If the squad does not exist
        """
        async with self._store_call("get_capacity", squad_id=squad_id):
            capacity = await self._redis.hget(keys.squad_key(squad_id), CAPACITY_FIELD)
        if capacity is None:
            raise NotFoundError("squad", squad_id)
        return int(capacity)

    async def get_channels(self, squad_id: str) -> set[int]:
        """Get every channel the squad was posted in.

        Raises:
            NotFoundError: If the squad does not exist
        """
        async with self._store_call("get_channels", squad_id=squad_id):
            async with self._redis.pipeline(transaction=False) as pipe:
                pipe.exists(keys.squad_key(squad_id))
                pipe.smembers(keys.channels_key(squad_id))
                exists, channels = await pipe.execute()
        if not exists:
            raise NotFoundError("squad", squad_id)
        return {int(channel) for channel in channels}

    async def get_role_id(self, message_id: int) -> int | None:
        """Get the role mentioned by a posting, if any.

        Raises:
            NotFoundError: If the posting does not exist
        """
        posting_key = keys.posting_key(message_id)
        async with self._store_call("get_role_id", message_id=message_id):
            async with self._redis.pipeline(transaction=False) as pipe:
                pipe.exists(posting_key)
                pipe.hget(posting_key, ROLE_FIELD)
                exists, role_id = await pipe.execute()
        if not exists:
            raise NotFoundError("posting", message_id)
        return int(role_id) if role_id is not None else None

    async def get_posting_ttl(self, message_id: int) -> int | None:
        """Seconds until a posting expires, ``None`` if it never does.

        Raises:
            NotFoundError: If the posting does not exist
        """
        async with self._store_call("get_posting_ttl", message_id=message_id):
            ttl = await self._redis.ttl(keys.posting_key(message_id))
        if ttl == -2:
            raise NotFoundError("posting", message_id)
        return ttl if ttl >= 0 else None

    async def list_postings(self) -> dict[int, int]:
        """Map the message id of every live posting to its channel id."""
        postings: dict[int, int] = {}
        async with self._store_call("list_postings"):
            async for posting_key in self._redis.scan_iter(
                match=keys.pattern(keys.POSTING_PREFIX)
            ):
                message_id, channel_id = await self._redis.hmget(
                    posting_key, [MESSAGE_FIELD, CHANNEL_FIELD]
                )
                if message_id is None or channel_id is None:
                    # Expired between the scan and the read
                    continue
                postings[int(message_id)] = int(channel_id)
        return postings

    async def pop_lapsed_postings(self) -> dict[int, int]:
        """Take every indexed posting whose record has expired off the index.

        Returns:
            Mapping of message id to channel id of postings that still show
            their last render and need sealing
        """
        async with self._store_call("pop_lapsed_postings"):
            refs = sorted(await self._redis.smembers(keys.POSTING_INDEX_KEY))
            if not refs:
                return {}
            parsed = [keys.parse_posting_ref(ref) for ref in refs]
            async with self._redis.pipeline(transaction=False) as pipe:
                for _, message_id in parsed:
                    pipe.exists(keys.posting_key(message_id))
                live = await pipe.execute()

            lapsed = [ref for ref, exists in zip(refs, live) if not exists]
            if lapsed:
                await self._redis.srem(keys.POSTING_INDEX_KEY, *lapsed)

        return {
            message_id: channel_id
            for (channel_id, message_id), exists in zip(parsed, live)
            if not exists
        }

    async def list_squad_ids(self) -> list[str]:
        """Get the ids of every squad record still in the store."""
        async with self._store_call("list_squad_ids"):
            return [
                keys.squad_id_from_key(squad_key)
                async for squad_key in self._redis.scan_iter(
                    match=keys.pattern(keys.SQUAD_PREFIX)
                )
            ]

    async def mark_filled(self, squad_id: str) -> bool:
        """Flag a squad as filled and notified.

        Returns:
            True if the flag changed, False if it was already set

        Raises:
            NotFoundError: If the squad does not exist
        """
        squad_key = keys.squad_key(squad_id)

        async def fill(pipe: Pipeline) -> bool:
            filled = await pipe.hget(squad_key, FILLED_FIELD)
            if filled is None and not await pipe.exists(squad_key):
                raise NotFoundError("squad", squad_id)
            pipe.multi()
            if filled == "1":
                return False
            pipe.hset(squad_key, FILLED_FIELD, 1)
            return True

        async with self._store_call("mark_filled", squad_id=squad_id):
            changed = await self._redis.transaction(fill, squad_key, value_from_callable=True)

        if changed:
            logger.info(f"Squad {squad_id} marked as filled")
        return changed

    async def delete_squad(self, squad_id: str) -> bool:
        """Remove a squad record together with its member and channel sets.

        Returns:
            True if the squad record existed
        """
        async with self._store_call("delete_squad", squad_id=squad_id):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(keys.squad_key(squad_id))
                pipe.delete(keys.members_key(squad_id), keys.channels_key(squad_id))
                removed, _ = await pipe.execute()
        return bool(removed)
