"""
The bot's sweep registrations: expiring punishments and due reminders.

Document shapes
---------------
``moderation``::

    {"temp_bans": [{"user_id", "guild_id"?, "reason", "duration",
                    "expires_at", "active", "unbanned_at"?}],
     "mutes":     [{..., "expires_at", "active", "unmuted_at"?}],
     "timeouts":  [{..., "expires_at", "active", "completed_at"?}],
     "warnings":  [...]}

``remindme``::

    {"reminders": [{"id", "user_id", "guild_id", "channel_id", "message",
                    "remind_at", "active", "completed_at"?, ...}]}

The mod-log channel is looked up on every fire from the ``config``
document's ``modlog_channel`` so a change made by a command takes effect on
the next tick; the configured channel is the fallback.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List

from synapsebot.configuration.storage_settings import SweepSettings
from synapsebot.moderation.gateway import ModerationGateway, to_snowflake
from synapsebot.notifications.sink import Notification, NotificationSink, NotificationTarget
from synapsebot.scheduler.sweep_scheduler import SweepContext, SweepRegistration
from synapsebot.storage.errors import StorageError
from synapsebot.storage.file_store import FileStore
from synapsebot.util.logger import get_logger
from synapsebot.util.time_utils import parse_timestamp

logger = get_logger("sweep_jobs")

CONFIG_DOCUMENT = "config"

TEMP_BAN_REASON = "Temporary ban expired"
MUTE_REASON = "Mute duration expired"


def discord_timestamp(value: Any, style: str = "F") -> str:
    """Render a stored timestamp as Discord's ``<t:unix:style>`` markup."""
    moment = parse_timestamp(value)
    if moment is None:
        return "Unknown"
    return f"<t:{int(moment.timestamp())}:{style}>"


class ExpiryJobs:
    """
    Handlers for every time-triggered record the bot stores.

    Args:
        store: File store, used to look up the mod-log channel.
        sink: Where user and mod-log notices go.
        gateway: Lifts bans and timeouts.
        modlog_channel_id: Fallback mod-log channel when the ``config``
            document does not name one.
    """

    def __init__(
        self,
        store: FileStore,
        sink: NotificationSink,
        gateway: ModerationGateway,
        *,
        modlog_channel_id: int | None = None,
    ) -> None:
        self.store = store
        self.sink = sink
        self.gateway = gateway
        self.modlog_channel_id = modlog_channel_id

    async def resolve_modlog_channel(self) -> int | None:
        try:
            config = await self.store.read(CONFIG_DOCUMENT)
        except StorageError as exc:
            logger.warning("[SWEEP JOBS] Could not read %s document: %s", CONFIG_DOCUMENT, exc)
            config = None

        if isinstance(config, dict):
            channel_id = to_snowflake(config.get("modlog_channel"))
            if channel_id is not None:
                return channel_id
        return self.modlog_channel_id

    async def _post_modlog(self, notification: Notification) -> None:
        channel_id = await self.resolve_modlog_channel()
        if channel_id is None:
            return
        if not await self.sink.deliver(NotificationTarget(channel_id=channel_id), notification):
            logger.warning("[SWEEP JOBS] Mod-log notice %r was not delivered", notification.title)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def expire_temp_ban(self, record: Dict[str, Any], context: SweepContext) -> None:
        user_id = record.get("user_id")
        if user_id is None:
            raise ValueError("temporary ban record has no user_id")

        await self.gateway.unban(user_id, record.get("guild_id"), reason=TEMP_BAN_REASON)
        await self._post_modlog(Notification(
            title="Temporary Ban Expired",
            description=f"<@{user_id}>'s temporary ban has expired",
            fields=[
                ("User ID", str(user_id)),
                ("Original Reason", str(record.get("reason") or "No reason provided")),
                ("Ban Duration", str(record.get("duration") or "Unknown")),
            ],
            timestamp=context.now,
        ))

    async def expire_mute(self, record: Dict[str, Any], context: SweepContext) -> None:
        user_id = record.get("user_id")
        if user_id is None:
            raise ValueError("mute record has no user_id")

        await self.gateway.clear_timeout(user_id, record.get("guild_id"), reason=MUTE_REASON)
        await self._post_modlog(Notification(
            title="Mute Expired",
            description=f"<@{user_id}>'s mute has expired",
            fields=[
                ("User ID", str(user_id)),
                ("Original Reason", str(record.get("reason") or "No reason provided")),
                ("Mute Duration", str(record.get("duration") or "Unknown")),
            ],
            timestamp=context.now,
        ))

    async def expire_timeout(self, record: Dict[str, Any], context: SweepContext) -> None:
        # Discord lifts native timeouts by itself; only the bookkeeping changes.
        logger.debug("[SWEEP JOBS] Timeout for %s ended", record.get("user_id"))

    async def deliver_reminder(self, record: Dict[str, Any], context: SweepContext) -> None:
        channel_id = record.get("channel_id")
        channel_name = record.get("channel_name")
        target = NotificationTarget(
            user_id=to_snowflake(record.get("user_id")),
            channel_id=to_snowflake(channel_id),
            guild_id=to_snowflake(record.get("guild_id")),
        )
        notification = Notification(
            title="⏰ Reminder!",
            description=f"**{record.get('message', '')}**",
            fields=[
                ("📍 Server", str(record.get("guild_name") or "Unknown Server")),
                ("📢 Channel", f"#{channel_name}" if channel_name else "Unknown Channel"),
                ("🆔 Reminder ID", f"`{record.get('id', '?')}`"),
                ("📅 Set On", discord_timestamp(record.get("created_at"))),
                ("⏱️ Duration", str(record.get("duration_str") or "Unknown")),
                ("🔗 Jump to Channel", f"<#{channel_id}>" if channel_id else "Unknown"),
            ],
            footer="Reminder completed",
            timestamp=context.now,
            fallback_title="⏰ Reminder (DM Failed)",
        )

        delivered = await self.sink.deliver(target, notification)
        record["delivered"] = delivered
        if not delivered:
            logger.warning("[SWEEP JOBS] Reminder %s for user %s could not be delivered", record.get("id"), record.get("user_id"))

    # ------------------------------------------------------------------
    # Registrations
    # ------------------------------------------------------------------

    def registrations(self, settings: SweepSettings) -> List[SweepRegistration]:
        moderation = settings.moderation_document
        moderation_retention = timedelta(days=settings.moderation_retention_days)
        return [
            SweepRegistration(
                document_key=moderation,
                collection="temp_bans",
                due_field="expires_at",
                handler=self.expire_temp_ban,
                completed_field="unbanned_at",
                retention=moderation_retention,
                name="temp_bans",
            ),
            SweepRegistration(
                document_key=moderation,
                collection="mutes",
                due_field="expires_at",
                handler=self.expire_mute,
                completed_field="unmuted_at",
                retention=moderation_retention,
                name="mutes",
            ),
            SweepRegistration(
                document_key=moderation,
                collection="timeouts",
                due_field="expires_at",
                handler=self.expire_timeout,
                retention=moderation_retention,
                name="timeouts",
            ),
            SweepRegistration(
                document_key=settings.reminders_document,
                collection="reminders",
                due_field="remind_at",
                handler=self.deliver_reminder,
                retention=timedelta(days=settings.reminder_retention_days),
                name="reminders",
            ),
        ]


def build_default_registrations(
    store: FileStore,
    sink: NotificationSink,
    gateway: ModerationGateway,
    settings: SweepSettings,
    *,
    modlog_channel_id: int | None = None,
) -> List[SweepRegistration]:
    """Every registration the bot runs, wired to the given sink and gateway."""
    jobs = ExpiryJobs(store, sink, gateway, modlog_channel_id=modlog_channel_id)
    return jobs.registrations(settings)
