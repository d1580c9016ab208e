"""Background sweep cog: runs :class:`SweepScheduler` for the bot's lifetime."""

from __future__ import annotations

import discord
from discord.ext import commands

from synapsebot.scheduler.sweep_scheduler import SweepScheduler
from synapsebot.util.logger import get_logger

logger = get_logger("scheduler_cog")

STOP_TIMEOUT_SECONDS = 10.0


class SweepSchedulerCog(commands.Cog):
    """
    Owns the lifetime of the sweep scheduler.

    The scheduler is started on the first ``on_ready`` (reconnects fire
    ``on_ready`` again; ``start`` ignores those) and cancelled when the cog
    is unloaded. The graceful stop that lets an in-progress sweep finish
    belongs to ``main.shutdown_runtime``, which waits up to
    ``STOP_TIMEOUT_SECONDS``.
    """

    def __init__(self, bot: discord.Bot, scheduler: SweepScheduler) -> None:
        self.bot = bot
        self.scheduler = scheduler

    @commands.Cog.listener()
    async def on_ready(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("[SWEEP_SCHEDULER] Ready (interval=%.1fs)", self.scheduler.interval_seconds)

    def cog_unload(self) -> None:
        self.scheduler.cancel()
        logger.info("[SWEEP_SCHEDULER] Stopped")


def setup(bot: discord.Bot, scheduler: SweepScheduler) -> None:
    bot.add_cog(SweepSchedulerCog(bot, scheduler))
