from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

import discord

from synapsebot.util.logger import get_logger

logger = get_logger("moderation_gateway")


def to_snowflake(value: object) -> int | None:
    """Convert a stored id (usually a string) to an int, or None if it is not one."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


class ModerationGateway(ABC):
    """Lifts punishments on the external platform."""

    @abstractmethod
    async def unban(self, user_id: str | int, guild_id: str | int | None = None, *, reason: str) -> bool:
        """Lift a ban. Returns True if at least one ban was actually removed."""

    @abstractmethod
    async def clear_timeout(self, user_id: str | int, guild_id: str | int | None = None, *, reason: str) -> bool:
        """Remove a communication timeout. Returns True if a member was updated."""


class DiscordModerationGateway(ModerationGateway):
    """
    Gateway backed by a ``discord.Bot``.

    Acts on the record's guild when it has one, otherwise on every guild the
    bot is in (older records did not store a guild). Missing bans, departed
    members and permission errors are logged, never raised.
    """

    def __init__(self, bot: discord.Bot) -> None:
        self.bot = bot

    def _guilds(self, guild_id: str | int | None) -> List[discord.Guild]:
        if guild_id is None:
            return list(self.bot.guilds)

        snowflake = to_snowflake(guild_id)
        guild = self.bot.get_guild(snowflake) if snowflake is not None else None
        if guild is None:
            logger.warning("[MODERATION GATEWAY] Guild %s not available", guild_id)
            return []
        return [guild]

    async def unban(self, user_id: str | int, guild_id: str | int | None = None, *, reason: str) -> bool:
        snowflake = to_snowflake(user_id)
        if snowflake is None:
            logger.warning("[MODERATION GATEWAY] Cannot unban %r: not a user id", user_id)
            return False

        lifted = False
        for guild in self._guilds(guild_id):
            try:
                await guild.unban(discord.Object(id=snowflake), reason=reason)
                lifted = True
                logger.info("[MODERATION GATEWAY] Unbanned %s in guild %s", snowflake, guild.id)
            except discord.NotFound:
                logger.debug("[MODERATION GATEWAY] %s was not banned in guild %s", snowflake, guild.id)
            except discord.HTTPException as exc:
                logger.warning("[MODERATION GATEWAY] Could not unban %s in guild %s: %s", snowflake, guild.id, exc)
        return lifted

    async def clear_timeout(self, user_id: str | int, guild_id: str | int | None = None, *, reason: str) -> bool:
        snowflake = to_snowflake(user_id)
        if snowflake is None:
            logger.warning("[MODERATION GATEWAY] Cannot clear timeout for %r: not a user id", user_id)
            return False

        cleared = False
        for guild in self._guilds(guild_id):
            member = guild.get_member(snowflake)
            try:
                if member is None:
                    member = await guild.fetch_member(snowflake)
                await member.remove_timeout(reason=reason)
                cleared = True
                logger.info("[MODERATION GATEWAY] Cleared timeout for %s in guild %s", snowflake, guild.id)
            except discord.NotFound:
                logger.debug("[MODERATION GATEWAY] %s is not a member of guild %s", snowflake, guild.id)
            except discord.HTTPException as exc:
                logger.warning("[MODERATION GATEWAY] Could not clear timeout for %s in guild %s: %s", snowflake, guild.id, exc)
        return cleared
