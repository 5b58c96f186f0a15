import asyncio

import pytest

from squadbot.bot.services import keys
from squadbot.bot.services.exceptions import StoreUnavailableError
from squadbot.bot.services.models import JoinOutcome
from squadbot.bot.services.models import SquadStatus


@pytest.mark.asyncio
async def test_fill_scenario(reconciler, membership, store, resolver, channel, post_squad, redis_client):
    """
    Two seats, three users: the two members are notified once, the latecomer never.
    """
    squad_id = await post_squad(2, message_id=1001, channel_id=2001)
    user_a, user_b, user_c = 11, 12, 13

    assert await membership.add_member(squad_id, user_a, 3600) is JoinOutcome.ADDED
    assert 0 < await redis_client.ttl(keys.members_key(squad_id))
    assert await membership.add_member(squad_id, user_b, 7200) is JoinOutcome.ADDED
    assert await membership.add_member(squad_id, user_c, 3600) is JoinOutcome.CAPACITY_EXCEEDED
    assert await redis_client.get(keys.member_key(squad_id, user_c)) == str(user_c)

    report = await reconciler.tick()

    assert report.squads_notified == 1
    assert sorted(channel.notified_users()) == [user_a, user_b]
    assert await resolver.get_status(squad_id) is SquadStatus.FILLED

    await reconciler.tick()

    assert sorted(channel.notified_users()) == [user_a, user_b]
    _, _, payload = channel.edits[-1]
    assert payload.components == []
    assert "filled" in payload.embed.description


@pytest.mark.asyncio
async def test_notification_lists_roster_and_channels(reconciler, membership, store, channel, post_squad):
    squad_id = await post_squad(1, message_id=1001, channel_id=2001)
    await store.create_posting(2002, 1002, squad_id)
    await membership.add_member(squad_id, 11, 3600)

    await reconciler.tick()

    [(user_id, payload)] = channel.direct_messages
    assert user_id == 11
    assert "<@11>" in payload.embed.description
    assert "<#2001>" in payload.embed.description
    assert "<#2002>" in payload.embed.description


@pytest.mark.asyncio
async def test_tick_renders_every_posting(reconciler, membership, channel, post_squad):
    squad_id = await post_squad(3, message_id=1001, channel_id=2001)
    await post_squad(2, message_id=1002, channel_id=2002)
    await membership.add_member(squad_id, 11, 3600)

    report = await reconciler.tick()

    assert report.postings == 2
    assert report.rendered == 2
    edited = {message_id: payload for _, message_id, payload in channel.edits}
    assert set(edited) == {1001, 1002}
    assert "<@11>" in edited[1001].embed.description
    assert edited[1001].components


@pytest.mark.asyncio
async def test_render_failure_does_not_abort_tick(reconciler, membership, channel, post_squad):
    await post_squad(2, message_id=1001, channel_id=2001)
    squad_id = await post_squad(1, message_id=1002, channel_id=2002)
    await membership.add_member(squad_id, 11, 3600)
    channel.failing_postings.add(1001)

    report = await reconciler.tick()

    assert report.render_failures == 1
    assert report.rendered == 1
    assert report.squads_notified == 1
    assert channel.notified_users() == [11]


@pytest.mark.asyncio
async def test_failed_direct_message_still_marks_filled(reconciler, membership, resolver, channel, post_squad):
    squad_id = await post_squad(2)
    await membership.add_member(squad_id, 11, 3600)
    await membership.add_member(squad_id, 12, 3600)
    channel.failing_users.add(11)

    await reconciler.tick()

    assert channel.notified_users() == [12]
    assert await resolver.get_status(squad_id) is SquadStatus.FILLED


@pytest.mark.asyncio
async def test_expired_members_do_not_count_toward_capacity(reconciler, membership, channel, post_squad, redis_client):
    squad_id = await post_squad(2)
    await membership.add_member(squad_id, 11, 3600)
    await membership.add_member(squad_id, 12, 3600)
    await redis_client.delete(keys.member_key(squad_id, 12))

    report = await reconciler.tick()

    assert report.squads_notified == 0
    assert channel.direct_messages == []


@pytest.mark.asyncio
async def test_refresh_posting_of_expired_squad(reconciler, store, channel, post_squad, redis_client):
    squad_id = await post_squad(3, message_id=1001, channel_id=2001)
    await store.create_posting(2002, 1002, squad_id)
    await redis_client.delete(keys.posting_key(1002))

    status = await reconciler.refresh_posting(2001, 1001)

    assert status is SquadStatus.EXPIRED
    _, _, payload = channel.edits[-1]
    assert payload.components == []
    assert "expired" in payload.embed.description


@pytest.mark.asyncio
async def test_tick_abandoned_when_store_unavailable(reconciler, redis_server):
    redis_server.connected = False

    with pytest.raises(StoreUnavailableError):
        await reconciler.tick()


@pytest.mark.asyncio
async def test_loop_survives_store_outage(reconciler, redis_server, channel, post_squad):
    await post_squad(2)
    redis_server.connected = False

    reconciler.start()
    await asyncio.sleep(0.05)
    redis_server.connected = True
    await asyncio.sleep(0.05)
    await reconciler.stop()

    assert channel.edits


@pytest.mark.asyncio
async def test_expired_posting_is_sealed_once(reconciler, channel, post_squad, redis_client):
    """
    A posting whose clock ran out loses its buttons on the next tick.
    """
    await post_squad(2, message_id=1001, channel_id=2001)
    await reconciler.tick()
    assert len(channel.edits) == 1

    await redis_client.delete(keys.posting_key(1001))
    report = await reconciler.tick()

    assert report.sealed == 1
    assert len(channel.edits) == 2
    channel_id, message_id, payload = channel.edits[-1]
    assert (channel_id, message_id) == (2001, 1001)
    assert payload.components == []
    assert "expired" in payload.embed.description

    report = await reconciler.tick()

    assert report.sealed == 0
    assert len(channel.edits) == 2


@pytest.mark.asyncio
async def test_posting_expiring_mid_tick_is_not_a_failure(reconciler, store, channel, post_squad, redis_client, monkeypatch):
    await post_squad(2, message_id=1001, channel_id=2001)
    await post_squad(2, message_id=1002, channel_id=2002)
    list_postings = store.list_postings

    async def list_then_expire():
        postings = await list_postings()
        await redis_client.delete(keys.posting_key(1001))
        return postings

    monkeypatch.setattr(store, "list_postings", list_then_expire)

    report = await reconciler.tick()

    assert report.postings == 2
    assert report.rendered == 1
    assert report.vanished == 1
    assert report.render_failures == 0
    assert report.sealed == 1
    [sealed] = [payload for _, message_id, payload in channel.edits if message_id == 1001]
    assert sealed.components == []


@pytest.mark.asyncio
async def test_failed_seal_is_counted(reconciler, channel, post_squad, redis_client):
    await post_squad(2, message_id=1001, channel_id=2001)
    await redis_client.delete(keys.posting_key(1001))
    channel.failing_postings.add(1001)

    report = await reconciler.tick()

    assert report.sealed == 0
    assert report.render_failures == 1
