"""Pytest configuration for squadbot tests."""

from __future__ import annotations

import fakeredis
import pytest

from squadbot.bot.presenter import EmbedPresenter
from squadbot.bot.services.membership import MembershipEngine
from squadbot.bot.services.reconciliation import ReconciliationLoop
from squadbot.bot.services.squad_events import SquadEventHandler
from squadbot.bot.services.squad_store import SquadStore
from squadbot.bot.services.status import StatusResolver

POSTING_TTL = 11 * 60 * 60
SQUAD_TTL = 12 * 60 * 60


class RecordingChannel:
    """Message channel that records what it was asked to deliver."""

    def __init__(self):
        self.edits = []
        self.direct_messages = []
        self.failing_postings = set()
        self.failing_users = set()

    async def edit_posting(self, channel_id, message_id, payload):
        if message_id in self.failing_postings:
            raise RuntimeError(f"cannot edit {message_id}")
        self.edits.append((channel_id, message_id, payload))

    async def send_direct_message(self, user_id, payload):
        if user_id in self.failing_users:
            raise RuntimeError(f"cannot DM {user_id}")
        self.direct_messages.append((user_id, payload))

    def notified_users(self):
        return [user_id for user_id, _ in self.direct_messages]


@pytest.fixture()
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture()
async def redis_client(redis_server):
    client = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
    yield client
    redis_server.connected = True
    await client.flushall()
    await client.aclose()


@pytest.fixture()
def store(redis_client):
    return SquadStore(redis_client, posting_ttl=POSTING_TTL, squad_ttl=SQUAD_TTL)


@pytest.fixture()
def resolver(redis_client, store):
    return StatusResolver(redis_client, store)


@pytest.fixture()
def membership(redis_client, resolver):
    return MembershipEngine(redis_client, resolver)


@pytest.fixture()
def presenter():
    return EmbedPresenter()


@pytest.fixture()
def channel():
    return RecordingChannel()


@pytest.fixture()
def reconciler(store, resolver, membership, presenter, channel):
    return ReconciliationLoop(store, resolver, membership, presenter, channel, interval=0.01)


@pytest.fixture()
def events(store, resolver, membership):
    return SquadEventHandler(store, resolver, membership)


@pytest.fixture()
def post_squad(store):
    """Create a squad with one posting and return its id."""

    async def _post_squad(capacity, message_id=1001, channel_id=2001, role_id=None):
        squad_id = await store.create_squad(capacity)
        await store.create_posting(channel_id, message_id, squad_id, role_id)
        return squad_id

    return _post_squad
