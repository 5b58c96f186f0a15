"""Embed rendering for squad postings and fill notifications."""

from __future__ import annotations

import hikari

from squadbot.bot.services.models import DisplayPayload
from squadbot.bot.services.models import Hours
from squadbot.bot.services.models import Leave
from squadbot.bot.services.models import SquadStatus

POSTING_TITLE = "Assemble your squad!"
NOTIFICATION_TITLE = "**Your squad is ready!**"
SQUAD_COLOR = hikari.Color.from_rgb(59, 165, 93)
BUTTONS_PER_ROW = 5

FORMING_LINE = "🟡 This squad is still forming."
FILLED_LINE = "🟢 This squad has been filled!"
EXPIRED_LINE = "🔴 This squad has expired."


def format_ttl(seconds: int) -> str:
    """Format seconds as ``"Nm"`` or ``"Hh Mm"``."""
    minutes = seconds // 60
    hours, minutes = divmod(minutes, 60)
    if hours == 0:
        return f"{minutes}m"
    return f"{hours}h {minutes}m"


def user_mention(user_id: int) -> str:
    return f"<@{user_id}>"


def channel_mention(channel_id: int) -> str:
    return f"<#{channel_id}>"


def roster_lines(members: dict[int, int], with_ttl: bool = True) -> str:
    lines = []
    for user_id in sorted(members):
        if with_ttl:
            lines.append(f"{user_mention(user_id)} available for {format_ttl(members[user_id])}")
        else:
            lines.append(user_mention(user_id))
    return "\n".join(lines)


class EmbedPresenter:
    """Renders squads as hikari embeds with hours/leave buttons."""

    def __init__(self, max_hours: int = 10):
        self.max_hours = max_hours

    def intro(self, capacity: int | None) -> str:
        return (
            "✅ Click a button below to ready up!\n"
            "1️⃣ Choose for how many hours you are available.\n\n"
            f"SquadBot will message you when at least {capacity} people are ready.\n\n"
        )

    def buttons(self) -> list[hikari.api.ComponentBuilder]:
        rows = []
        choices = [Hours(hours) for hours in range(1, self.max_hours + 1)]
        for start in range(0, len(choices), BUTTONS_PER_ROW):
            row = hikari.impl.MessageActionRowBuilder()
            for choice in choices[start:start + BUTTONS_PER_ROW]:
                row.add_interactive_button(
                    hikari.ButtonStyle.PRIMARY, choice.custom_id, label=str(choice.hours)
                )
            rows.append(row)

        leave_row = hikari.impl.MessageActionRowBuilder()
        leave_row.add_interactive_button(
            hikari.ButtonStyle.DANGER, Leave().custom_id, label="Leave Squad"
        )
        rows.append(leave_row)
        return rows

    def render(
        self,
        status: SquadStatus,
        capacity: int | None,
        members: dict[int, int],
        time_remaining: int | None,
        squad_id: str | None = None,
    ) -> DisplayPayload:
        if status is SquadStatus.FORMING:
            description = (
                f"{self.intro(capacity)}**Current Squad** ({len(members)}/{capacity})\n"
                f"{roster_lines(members)}\n\n{FORMING_LINE}"
            )
            components = self.buttons()
        elif status is SquadStatus.FILLED:
            description = f"**Squad**\n{roster_lines(members, with_ttl=False)}\n\n{FILLED_LINE}"
            components = []
        else:
            description = EXPIRED_LINE
            components = []

        embed = hikari.Embed(title=POSTING_TITLE, description=description, color=SQUAD_COLOR)
        footer = []
        if squad_id and status is not SquadStatus.EXPIRED:
            footer.append(f"Squad {squad_id}")
        if time_remaining is not None and status is SquadStatus.FORMING:
            footer.append(f"expires in {format_ttl(time_remaining)}")
        if footer:
            embed.set_footer(" · ".join(footer))
        return DisplayPayload(embed=embed, components=components)

    def render_notification(
        self, members: dict[int, int], channels: set[int]
    ) -> DisplayPayload:
        channel_refs = " ".join(channel_mention(channel_id) for channel_id in sorted(channels))
        embed = hikari.Embed(
            title=NOTIFICATION_TITLE,
            description=f"Members:\n{roster_lines(members)}\n\n{channel_refs}",
            color=SQUAD_COLOR,
        )
        return DisplayPayload(embed=embed)
