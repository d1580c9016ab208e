"""
Personal reminders stored in the ``remindme`` document.

Delivery and cleanup belong to the sweep scheduler; this module only creates,
lists and cancels records.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List

from synapsebot.repositories.base_repo import DocumentRepo
from synapsebot.util.logger import get_logger
from synapsebot.util.time_utils import format_duration, parse_timestamp, to_iso, utcnow

logger = get_logger("reminder_repo")

MAX_ACTIVE_REMINDERS = 10


class ReminderLimitError(Exception):
    """Raised when a user already has the maximum number of active reminders."""

    def __init__(self, user_id: str, limit: int) -> None:
        self.user_id = user_id
        self.limit = limit
        super().__init__(f"User {user_id} already has {limit} active reminders")


@dataclass(frozen=True)
class ReminderStats:
    active: int
    completed: int
    total: int


class ReminderRepo(DocumentRepo):
    document_key = "remindme"
    collections = ("reminders",)

    def __init__(self, store, document_key: str | None = None, *, max_active: int = MAX_ACTIVE_REMINDERS) -> None:
        super().__init__(store, document_key)
        self.max_active = max_active

    async def add_reminder(
        self,
        user_id: str,
        message: str,
        duration: timedelta,
        *,
        guild_id: str | None = None,
        channel_id: str | None = None,
        guild_name: str | None = None,
        channel_name: str | None = None,
        duration_str: str | None = None,
        now: datetime | None = None,
    ) -> Dict[str, Any]:
        """
        Create a reminder due ``duration`` from now.

        Raises:
            ReminderLimitError: The user already has ``max_active`` active reminders.
        """
        now = now or utcnow()
        user_id = str(user_id)
        record: Dict[str, Any] = {
            "id": f"{int(now.timestamp() * 1000)}_{user_id}",
            "user_id": user_id,
            "guild_id": str(guild_id) if guild_id is not None else None,
            "channel_id": str(channel_id) if channel_id is not None else None,
            "guild_name": guild_name,
            "channel_name": channel_name,
            "message": message,
            "duration_str": duration_str or format_duration(duration),
            "created_at": to_iso(now),
            "remind_at": to_iso(now + duration),
            "active": True,
        }

        async with self._edit() as document:
            active = sum(
                1 for r in document["reminders"]
                if isinstance(r, dict) and r.get("active") and str(r.get("user_id")) == user_id
            )
            if active >= self.max_active:
                raise ReminderLimitError(user_id, self.max_active)
            document["reminders"].append(record)

        logger.info("[REMINDER REPO] Reminder %s set for %s", record["id"], record["remind_at"])
        return record

    async def list_active(self, user_id: str) -> List[Dict[str, Any]]:
        """Active reminders for the user, soonest first."""
        reminders = [
            r for r in await self._collection("reminders")
            if r.get("active") and str(r.get("user_id")) == str(user_id)
        ]
        far_future = datetime.max.replace(tzinfo=utcnow().tzinfo)
        return sorted(reminders, key=lambda r: parse_timestamp(r.get("remind_at")) or far_future)

    async def cancel(self, user_id: str, reminder_id: str) -> bool:
        """Remove one of the user's active reminders. Returns False if there was none."""
        async with self._edit() as document:
            for index, record in enumerate(document["reminders"]):
                if (
                    isinstance(record, dict)
                    and record.get("id") == reminder_id
                    and str(record.get("user_id")) == str(user_id)
                    and record.get("active")
                ):
                    del document["reminders"][index]
                    return True
        return False

    async def stats(self) -> ReminderStats:
        reminders = await self._collection("reminders")
        active = sum(1 for r in reminders if r.get("active"))
        completed = sum(1 for r in reminders if not r.get("active") and r.get("completed_at"))
        return ReminderStats(active=active, completed=completed, total=len(reminders))
