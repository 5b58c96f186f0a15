import pytest

from squadbot.bot.plugins.squads import apply_choice
from squadbot.bot.plugins.squads import record_posting
from squadbot.bot.services import keys
from squadbot.bot.services.models import Hours
from squadbot.bot.services.models import Leave


@pytest.mark.asyncio
async def test_record_posting_links_and_renders(events, reconciler, store, channel):
    squad_id = await store.create_squad(3)

    assert await record_posting(events, reconciler, squad_id, 2001, 1001, None)

    assert await store.get_squad_id_for_posting(1001) == squad_id
    [(_, message_id, payload)] = channel.edits
    assert message_id == 1001
    assert payload.components


@pytest.mark.asyncio
async def test_record_posting_seals_message_of_lost_squad(events, reconciler, channel):
    assert not await record_posting(events, reconciler, "gone", 2001, 1001, None)

    [(channel_id, message_id, payload)] = channel.edits
    assert (channel_id, message_id) == (2001, 1001)
    assert payload.components == []
    assert "expired" in payload.embed.description


@pytest.mark.asyncio
async def test_record_posting_seals_message_when_store_is_down(events, reconciler, store, channel, redis_server):
    squad_id = await store.create_squad(3)
    redis_server.connected = False

    assert not await record_posting(events, reconciler, squad_id, 2001, 1001, None)

    [(_, _, payload)] = channel.edits
    assert payload.components == []


@pytest.mark.asyncio
async def test_record_posting_survives_failed_seal(events, reconciler, channel):
    channel.failing_postings.add(1001)

    assert not await record_posting(events, reconciler, "gone", 2001, 1001, None)
    assert channel.edits == []


@pytest.mark.asyncio
async def test_choice_joins_and_rerenders(events, reconciler, membership, channel, post_squad):
    squad_id = await post_squad(3, message_id=1001, channel_id=2001)

    reason = await apply_choice(events, reconciler, 2001, 1001, 11, Hours(2).custom_id)

    assert reason is None
    assert 11 in await membership.get_members(squad_id)
    _, _, payload = channel.edits[-1]
    assert "<@11>" in payload.embed.description


@pytest.mark.asyncio
async def test_choice_on_full_squad_tells_the_user(events, reconciler, membership, post_squad):
    squad_id = await post_squad(1, message_id=1001, channel_id=2001)
    await membership.add_member(squad_id, 11, 3600)

    reason = await apply_choice(events, reconciler, 2001, 1001, 12, Hours(1).custom_id)

    assert reason == "This squad is already full."


@pytest.mark.asyncio
async def test_choice_on_expired_posting_seals_message(events, reconciler, channel, post_squad, redis_client):
    """
    Clicking a button of an expired posting strips the buttons from it.
    """
    await post_squad(2, message_id=1001, channel_id=2001)
    await redis_client.delete(keys.posting_key(1001))

    for custom_id in (Hours(3).custom_id, Leave().custom_id):
        assert await apply_choice(events, reconciler, 2001, 1001, 11, custom_id) is None

    assert len(channel.edits) == 2
    for channel_id, message_id, payload in channel.edits:
        assert (channel_id, message_id) == (2001, 1001)
        assert payload.components == []
        assert "expired" in payload.embed.description
