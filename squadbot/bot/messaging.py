"""Delivery of rendered squad content through the Discord REST API."""

from __future__ import annotations

import logging

import hikari

from squadbot.bot.services.models import DisplayPayload

logger = logging.getLogger(__name__)


class HikariMessageChannel:
    """Edits postings and sends direct messages using hikari's REST client."""

    def __init__(self, rest: hikari.api.RESTClient):
        self._rest = rest

    async def edit_posting(
        self, channel_id: int, message_id: int, payload: DisplayPayload
    ) -> None:
        await self._rest.edit_message(
            channel_id,
            message_id,
            payload.content if payload.content is not None else hikari.UNDEFINED,
            embed=payload.embed if payload.embed is not None else hikari.UNDEFINED,
            components=payload.components,
        )
        logger.debug(f"Edited posting {message_id} in channel {channel_id}")

    async def send_direct_message(self, user_id: int, payload: DisplayPayload) -> None:
        dm_channel = await self._rest.create_dm_channel(user_id)
        await self._rest.create_message(
            dm_channel,
            payload.content if payload.content is not None else hikari.UNDEFINED,
            embed=payload.embed if payload.embed is not None else hikari.UNDEFINED,
        )
        logger.debug(f"Sent direct message to user {user_id}")
