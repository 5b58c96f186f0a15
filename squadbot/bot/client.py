"""Discord bot client setup and configuration."""

from __future__ import annotations

import asyncio
import logging

import hikari
import lightbulb

from squadbot.bot.messaging import HikariMessageChannel
from squadbot.bot.presenter import EmbedPresenter
from squadbot.bot.services.membership import MembershipEngine
from squadbot.bot.services.reconciliation import ReconciliationLoop
from squadbot.bot.services.squad_events import SquadEventHandler
from squadbot.bot.services.squad_store import SquadStore
from squadbot.bot.services.status import StatusResolver
from squadbot.shared.config import Settings
from squadbot.shared.config import get_settings
from squadbot.shared.redis_client import close_redis_client
from squadbot.shared.redis_client import create_redis_client

logger = logging.getLogger(__name__)


def create_bot(settings: Settings | None = None) -> lightbulb.BotApp:
    """Create and configure the Discord bot.

    Returns:
        BotApp instance
    """
    if settings is None:
        settings = get_settings()

    # Slash commands and button clicks only; no message content needed
    intents = hikari.Intents.GUILDS | hikari.Intents.DM_MESSAGES

    bot = lightbulb.BotApp(
        token=settings.discord_bot_token,
        intents=intents,
        logs={
            "version": 1,
            "incremental": True,
            "loggers": {
                "hikari": {"level": "INFO"},
                "lightbulb": {"level": "INFO"},
                "squadbot": {"level": settings.log_level.upper()},
            },
        },
        banner=None,
    )

    return bot


def setup_bot_services(bot: lightbulb.BotApp, settings: Settings) -> None:
    """Build the squad services and expose them on ``bot.d``."""
    logger.info("Setting up bot services...")

    redis_client = create_redis_client(settings)
    store = SquadStore(
        redis_client,
        posting_ttl=settings.posting_ttl_seconds,
        squad_ttl=settings.squad_ttl_seconds,
        min_capacity=settings.min_capacity,
        max_capacity=settings.max_capacity,
    )
    resolver = StatusResolver(redis_client, store)
    membership = MembershipEngine(redis_client, resolver)
    presenter = EmbedPresenter(max_hours=settings.max_hours)

    bot.d.redis = redis_client
    bot.d.squad_presenter = presenter
    bot.d.squad_events = SquadEventHandler(
        store, resolver, membership, max_hours=settings.max_hours
    )
    bot.d.squad_reconciler = ReconciliationLoop(
        store,
        resolver,
        membership,
        presenter,
        HikariMessageChannel(bot.rest),
        interval=settings.reconcile_interval_seconds,
    )

    logger.info("✓ Bot services setup complete")


async def cleanup_bot_services(bot: lightbulb.BotApp) -> None:
    """Stop background work and release the Redis connection pool."""
    logger.info("Cleaning up bot services...")

    try:
        reconciler = bot.d.get("squad_reconciler")
        if reconciler is not None:
            await reconciler.stop()

        redis_client = bot.d.get("redis")
        if redis_client is not None:
            await close_redis_client(redis_client)

        logger.info("Bot services cleanup complete")

    except Exception as e:
        logger.error(f"Error cleaning up bot services: {e}")


def load_plugins(bot: lightbulb.BotApp) -> None:
    """Load all bot plugins."""
    logger.info("Loading squads plugin...")
    bot.load_extensions("squadbot.bot.plugins.squads")
    logger.info("✓ Loaded squads plugin")


async def run_bot() -> None:
    """Run the Discord bot until interrupted."""
    settings = get_settings()

    if not settings.discord_bot_token:
        logger.error("Discord bot token not provided")
        return

    bot = create_bot(settings)

    @bot.listen()
    async def on_starting(event: hikari.StartingEvent) -> None:
        """Handle bot starting event."""
        logger.info("Bot is starting...")

    @bot.listen()
    async def on_started(event: hikari.StartedEvent) -> None:
        """Handle bot started event."""
        bot_user = event.app.get_me()
        if bot_user:
            logger.info(f"Bot started as {bot_user.username}")
        else:
            logger.info("Bot started")

        bot.d.squad_reconciler.start()

    @bot.listen()
    async def on_stopping(event: hikari.StoppingEvent) -> None:
        """Handle bot stopping event."""
        logger.info("Bot is stopping...")
        await cleanup_bot_services(bot)

    setup_bot_services(bot, settings)
    load_plugins(bot)

    try:
        await bot.start()

        logger.info("Bot is now running. Press Ctrl+C to stop.")

        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            logger.info("Bot shutdown requested")

    except KeyboardInterrupt:
        logger.info("Bot shutdown requested via keyboard interrupt")
    except Exception as e:
        logger.error(f"Bot crashed: {e}")
        raise
    finally:
        logger.info("Shutting down bot...")
        await bot.close()


if __name__ == "__main__":
    asyncio.run(run_bot())
