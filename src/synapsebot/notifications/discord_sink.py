"""
Discord-backed notification delivery.

Direct messages fail routinely (closed DMs, user left every shared server),
so a target with both a user and a channel gets exactly one channel attempt
after the DM fails. Every Discord error is logged and turned into ``False``.
"""

from __future__ import annotations

import discord

from synapsebot.notifications.sink import COLOUR_WARNING, Notification, NotificationSink, NotificationTarget
from synapsebot.util.logger import get_logger

logger = get_logger("discord_sink")

FALLBACK_FOOTER = "Could not send DM - sent here instead"


def build_notification_embed(notification: Notification, *, fallback: bool = False) -> discord.Embed:
    """Render a notification as an embed; ``fallback`` selects the channel variant."""
    title = notification.title
    colour = notification.colour
    footer = notification.footer
    if fallback:
        title = notification.fallback_title or f"{notification.title} (DM Failed)"
        colour = COLOUR_WARNING
        footer = FALLBACK_FOOTER

    embed = discord.Embed(
        title=title,
        description=notification.description or None,
        colour=colour,
        timestamp=notification.timestamp,
    )
    for name, value in notification.fields:
        embed.add_field(name=name, value=value or "-", inline=True)
    if footer:
        embed.set_footer(text=footer)
    return embed


class DiscordNotificationSink(NotificationSink):
    """Delivers notifications through a connected ``discord.Bot``."""

    def __init__(self, bot: discord.Bot) -> None:
        self.bot = bot

    async def deliver(self, target: NotificationTarget, notification: Notification) -> bool:
        try:
            if target.user_id is not None:
                if await self._send_direct(target.user_id, notification):
                    return True
                if target.channel_id is None:
                    return False
                return await self._send_channel(target.channel_id, notification, mention_user_id=target.user_id)

            if target.channel_id is not None:
                return await self._send_channel(target.channel_id, notification)
        except Exception as exc:
            logger.error("[NOTIFY] Unexpected error delivering %r to %s: %s", notification.title, target.describe(), exc)
            return False

        logger.warning("[NOTIFY] Notification %r has no user or channel to go to", notification.title)
        return False

    async def _send_direct(self, user_id: int, notification: Notification) -> bool:
        try:
            user = self.bot.get_user(user_id) or await self.bot.fetch_user(user_id)
            await user.send(embed=build_notification_embed(notification))
        except discord.HTTPException as exc:
            logger.info("[NOTIFY] Could not DM user %s: %s", user_id, exc)
            return False
        except Exception as exc:
            logger.warning("[NOTIFY] Could not DM user %s: %s", user_id, exc)
            return False

        logger.debug("[NOTIFY] Sent %r to user %s", notification.title, user_id)
        return True

    async def _send_channel(
        self,
        channel_id: int,
        notification: Notification,
        *,
        mention_user_id: int | None = None,
    ) -> bool:
        fallback = mention_user_id is not None
        try:
            channel = self.bot.get_channel(channel_id) or await self.bot.fetch_channel(channel_id)
            if not hasattr(channel, "send"):
                logger.warning("[NOTIFY] Channel %s cannot receive messages", channel_id)
                return False

            content = f"<@{mention_user_id}>" if fallback and notification.fallback_mention else None
            await channel.send(content=content, embed=build_notification_embed(notification, fallback=fallback))
        except Exception as exc:
            logger.warning("[NOTIFY] Could not post %r to channel %s: %s", notification.title, channel_id, exc)
            return False

        logger.debug("[NOTIFY] Posted %r to channel %s", notification.title, channel_id)
        return True
