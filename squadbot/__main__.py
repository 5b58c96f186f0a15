"""Entry point: ``python -m squadbot``."""

from __future__ import annotations

import asyncio

from squadbot.bot.client import run_bot


def main() -> None:
    asyncio.run(run_bot())


if __name__ == "__main__":
    main()
