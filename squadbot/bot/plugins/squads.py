"""Discord commands and button handling for squad postings."""

from __future__ import annotations

import logging

import hikari
import lightbulb

from squadbot.bot.services.exceptions import MalformedArgumentError
from squadbot.bot.services.exceptions import NotFoundError
from squadbot.bot.services.exceptions import ServiceError
from squadbot.bot.services.models import CreateSquad
from squadbot.bot.services.models import Hours
from squadbot.bot.services.models import JoinOutcome
from squadbot.bot.services.models import JoinSquad
from squadbot.bot.services.models import LeaveSquad
from squadbot.bot.services.models import SquadStatus
from squadbot.bot.services.models import is_squad_component
from squadbot.bot.services.models import parse_component_id

plugin = lightbulb.Plugin("squads")

logger = logging.getLogger(__name__)


def get_services(bot: lightbulb.BotApp):
    """Get the squad event handler, reconciliation loop and presenter."""
    return bot.d.squad_events, bot.d.squad_reconciler, bot.d.squad_presenter


async def seal_quietly(reconciler, channel_id: int, message_id: int) -> bool:
    """Strip the buttons from a message no squad stands behind."""
    try:
        await reconciler.seal_posting(channel_id, message_id)
        return True
    except Exception as e:
        logger.error(f"Failed to seal message {message_id} in {channel_id}: {e}")
        return False


async def record_posting(
    events,
    reconciler,
    squad_id: str,
    channel_id: int,
    message_id: int,
    role_id: int | None,
) -> bool:
    """Link a sent message to its squad and render it.

    If the link cannot be stored the message is sealed, so it does not keep
    buttons that lead nowhere.

    Returns:
        True if the posting was recorded
    """
    try:
        await events.attach_posting(squad_id, channel_id, message_id, role_id)
    except ServiceError as e:
        logger.error(f"Failed to record posting {message_id} for squad {squad_id}: {e}")
        await seal_quietly(reconciler, channel_id, message_id)
        return False

    try:
        await reconciler.refresh_posting(channel_id, message_id)
    except ServiceError as e:
        # The reconciliation tick renders it on its next pass
        logger.warning(f"Failed to render new posting {message_id}: {e}")
    return True


async def apply_choice(
    events,
    reconciler,
    channel_id: int,
    message_id: int,
    user_id: int,
    custom_id: str,
) -> str | None:
    """Apply a posting button press and re-render the posting.

    A press on a posting that has already expired seals the message.

    Returns:
        A message to show only to the user, if any
    """
    reason = None
    try:
        choice = parse_component_id(custom_id, events.max_hours)
        if isinstance(choice, Hours):
            outcome = await events.join(JoinSquad(message_id, user_id, choice.hours))
            logger.info(f"User {user_id} chose {choice.hours}h on posting {message_id}: {outcome.value}")
            if outcome is JoinOutcome.CAPACITY_EXCEEDED:
                reason = "This squad is already full."
        else:
            left = await events.leave(LeaveSquad(message_id, user_id))
            logger.info(f"User {user_id} left posting {message_id} (was member: {left})")
        await reconciler.refresh_posting(channel_id, message_id)
    except NotFoundError:
        logger.debug(f"Posting {message_id} expired before interaction from {user_id}")
        await seal_quietly(reconciler, channel_id, message_id)
    return reason


@plugin.command
@lightbulb.option(
    "squad",
    "ID of an existing squad to cross-post",
    type=str,
    required=False,
    default=None,
)
@lightbulb.option(
    "role",
    "Role to mention in the posting",
    type=hikari.Role,
    required=False,
    default=None,
)
@lightbulb.option(
    "size",
    "Number from 1 to 10",
    type=int,
    min_value=1,
    max_value=10,
    required=True,
)
@lightbulb.command("squad", "Create a new squad posting")
@lightbulb.implements(lightbulb.SlashCommand)
async def squad_command(ctx: lightbulb.SlashContext) -> None:
    """Post a squad and start its expiry clock."""
    events, reconciler, presenter = get_services(ctx.bot)
    role = ctx.options.role
    event = CreateSquad(
        capacity=ctx.options.size,
        role_id=role.id if role else None,
        cross_squad_id=ctx.options.squad,
    )

    try:
        squad_id, capacity = await events.open_squad(event)
    except MalformedArgumentError as e:
        await ctx.respond(f"❌ {e.message}", flags=hikari.MessageFlag.EPHEMERAL)
        return
    except NotFoundError:
        await ctx.respond(
            "❌ That squad has expired or is already filled.",
            flags=hikari.MessageFlag.EPHEMERAL,
        )
        return
    except ServiceError as e:
        logger.error(f"Failed to open squad: {e}")
        await ctx.respond(
            "❌ Squads are unavailable right now, please try again later.",
            flags=hikari.MessageFlag.EPHEMERAL,
        )
        return

    payload = presenter.render(
        SquadStatus.FORMING, capacity, {}, None, squad_id=squad_id
    )
    response = await ctx.respond(
        role.mention if role else hikari.UNDEFINED,
        embed=payload.embed,
        components=payload.components,
        role_mentions=[role.id] if role else hikari.UNDEFINED,
    )
    message = await response.message()

    await record_posting(events, reconciler, squad_id, ctx.channel_id, message.id, event.role_id)


@plugin.listener(hikari.InteractionCreateEvent)
async def on_squad_button(event: hikari.InteractionCreateEvent) -> None:
    """Join or leave a squad from its posting buttons."""
    interaction = event.interaction
    if not isinstance(interaction, hikari.ComponentInteraction):
        return
    if not is_squad_component(interaction.custom_id):
        return

    events, reconciler, _ = get_services(plugin.bot)
    message_id = interaction.message.id
    user_id = interaction.user.id

    await interaction.create_initial_response(hikari.ResponseType.DEFERRED_MESSAGE_UPDATE)

    try:
        reason = await apply_choice(
            events, reconciler, interaction.channel_id, message_id, user_id, interaction.custom_id
        )
        if reason:
            await interaction.execute(reason, flags=hikari.MessageFlag.EPHEMERAL)
    except ServiceError as e:
        logger.error(f"Error handling squad interaction {interaction.custom_id}: {e}")


def load(bot: lightbulb.BotApp) -> None:
    """Load the squads plugin."""
    bot.add_plugin(plugin)


def unload(bot: lightbulb.BotApp) -> None:
    """Unload the squads plugin."""
    bot.remove_plugin(plugin)
