"""Periodic reconciliation of squad state into postings and notifications.

Every tick re-renders all live postings, seals the messages of postings
whose clock ran out, then notifies the members of each squad that has
reached capacity and flags it as filled so it is notified only once. A
failure on one posting or squad is logged and skipped; a store outage
abandons the tick, which is retried on the next interval.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from squadbot.bot.services.exceptions import NotFoundError
from squadbot.bot.services.exceptions import StoreUnavailableError
from squadbot.bot.services.membership import MembershipEngine
from squadbot.bot.services.models import DisplayPayload
from squadbot.bot.services.models import SquadSnapshot
from squadbot.bot.services.models import SquadStatus
from squadbot.bot.services.squad_store import SquadStore
from squadbot.bot.services.status import StatusResolver

logger = logging.getLogger(__name__)


class Presenter(Protocol):
    """Turns squad state into display content."""

    def render(
        self,
        status: SquadStatus,
        capacity: int | None,
        members: dict[int, int],
        time_remaining: int | None,
        squad_id: str | None = None,
    ) -> DisplayPayload: ...

    def render_notification(
        self, members: dict[int, int], channels: set[int]
    ) -> DisplayPayload: ...


class MessageChannel(Protocol):
    """Delivers content to the chat platform."""

    async def edit_posting(
        self, channel_id: int, message_id: int, payload: DisplayPayload
    ) -> None: ...

    async def send_direct_message(self, user_id: int, payload: DisplayPayload) -> None: ...


@dataclass
class TickReport:
    """Counters for one reconciliation pass."""

    postings: int = 0
    rendered: int = 0
    render_failures: int = 0
    vanished: int = 0
    sealed: int = 0
    squads_notified: int = 0
    notify_failures: int = 0


class NotificationDispatcher:
    """Sends the "squad is ready" message to every member of a squad."""

    def __init__(self, channel: MessageChannel, presenter: Presenter):
        self._channel = channel
        self._presenter = presenter

    async def notify(
        self, squad_id: str, members: dict[int, int], channels: set[int]
    ) -> int:
        """Direct-message each member once.

        Returns:
            Number of members the message was delivered to
        """
        payload = self._presenter.render_notification(members, channels)
        delivered = 0
        for user_id in members:
            try:
                await self._channel.send_direct_message(user_id, payload)
                delivered += 1
            except Exception as e:
                logger.error(f"Failed to notify user {user_id} of squad {squad_id}: {e}")
        return delivered


class ReconciliationLoop:
    """Drives renders and fill notifications on a fixed interval."""

    def __init__(
        self,
        store: SquadStore,
        resolver: StatusResolver,
        membership: MembershipEngine,
        presenter: Presenter,
        channel: MessageChannel,
        interval: float = 30.0,
    ):
        self._store = store
        self._resolver = resolver
        self._membership = membership
        self._presenter = presenter
        self._channel = channel
        self._dispatcher = NotificationDispatcher(channel, presenter)
        self.interval = interval
        self._task: asyncio.Task | None = None

    async def snapshot(self, message_id: int) -> SquadSnapshot:
        """Collect the state shown on one posting.

        Raises:
            NotFoundError: If the posting itself is gone
        """
        squad_id = await self._store.get_squad_id_for_posting(message_id)
        status = await self._resolver.get_status(squad_id)
        if status is SquadStatus.EXPIRED:
            return SquadSnapshot(squad_id=squad_id, status=status)

        members = await self._membership.get_members(squad_id)
        try:
            capacity = await self._store.get_capacity(squad_id)
        except NotFoundError:
            # Expired since the status check
            return SquadSnapshot(squad_id=squad_id, status=SquadStatus.EXPIRED)
        time_remaining = await self._store.get_posting_ttl(message_id)
        return SquadSnapshot(
            squad_id=squad_id,
            status=status,
            capacity=capacity,
            members=members,
            time_remaining=time_remaining,
        )

    async def refresh_posting(self, channel_id: int, message_id: int) -> SquadStatus:
        """Re-render a single posting from current state."""
        snapshot = await self.snapshot(message_id)
        payload = self._presenter.render(
            snapshot.status,
            snapshot.capacity,
            snapshot.members,
            snapshot.time_remaining,
            squad_id=snapshot.squad_id,
        )
        await self._channel.edit_posting(channel_id, message_id, payload)
        return snapshot.status

    async def seal_posting(self, channel_id: int, message_id: int) -> None:
        """Render a message whose posting record is gone as expired, without buttons."""
        payload = self._presenter.render(SquadStatus.EXPIRED, None, {}, None)
        await self._channel.edit_posting(channel_id, message_id, payload)
        logger.info(f"Sealed expired posting {message_id} in channel {channel_id}")

    async def notify_if_full(self, squad_id: str) -> bool:
        """Notify and seal a forming squad that has reached capacity.

        Returns:
            True if the squad was notified during this call
        """
        if await self._resolver.get_status(squad_id) is not SquadStatus.FORMING:
            return False
        capacity = await self._store.get_capacity(squad_id)
        members = await self._membership.get_members(squad_id)
        if len(members) < capacity:
            return False

        channels = await self._store.get_channels(squad_id)
        delivered = await self._dispatcher.notify(squad_id, members, channels)
        await self._store.mark_filled(squad_id)
        logger.info(
            f"Squad {squad_id} filled: notified {delivered}/{len(members)} members"
        )
        return True

    async def tick(self) -> TickReport:
        """Run one reconciliation pass.

        Raises:
            StoreUnavailableError: If the store cannot be reached; the pass
                is abandoned
        """
        report = TickReport()
        postings = await self._store.list_postings()
        report.postings = len(postings)

        for message_id, channel_id in postings.items():
            try:
                await self.refresh_posting(channel_id, message_id)
                report.rendered += 1
            except NotFoundError:
                # Expired since the scan; sealed below
                report.vanished += 1
                logger.debug(f"Posting {message_id} expired before it was rendered")
            except StoreUnavailableError:
                raise
            except Exception as e:
                report.render_failures += 1
                logger.error(f"Failed to render posting {message_id} in {channel_id}: {e}")

        for message_id, channel_id in (await self._store.pop_lapsed_postings()).items():
            try:
                await self.seal_posting(channel_id, message_id)
                report.sealed += 1
            except Exception as e:
                report.render_failures += 1
                logger.error(f"Failed to seal posting {message_id} in {channel_id}: {e}")

        for squad_id in await self._store.list_squad_ids():
            try:
                if await self.notify_if_full(squad_id):
                    report.squads_notified += 1
            except StoreUnavailableError:
                raise
            except Exception as e:
                report.notify_failures += 1
                logger.error(f"Failed to notify squad {squad_id}: {e}")

        logger.debug(f"Reconciliation tick complete: {report}")
        return report

    async def run(self) -> None:
        """Tick forever, every ``interval`` seconds."""
        while True:
            try:
                await self.tick()
            except StoreUnavailableError as e:
                logger.warning(f"Skipping reconciliation tick, store unavailable: {e}")
            except Exception as e:
                logger.error(f"Error in reconciliation tick: {e}")
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self.run())
        logger.info(f"Started squad reconciliation ({self.interval:g}-second intervals)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Stopped squad reconciliation")
