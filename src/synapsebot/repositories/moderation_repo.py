"""
Punishment records: temporary bans, mutes, timeouts and warnings.

Time-limited records are written with ``active: true`` and an
``expires_at`` timestamp; the sweep scheduler lifts them when due. Manual
early lifts (unban, unmute) mark the record inactive here so the sweep never
fires it.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List

from synapsebot.repositories.base_repo import DocumentRepo
from synapsebot.util.logger import get_logger
from synapsebot.util.time_utils import format_duration, to_iso, utcnow

logger = get_logger("moderation_repo")

TIMED_COLLECTIONS = ("temp_bans", "mutes", "timeouts")


class ModerationRepo(DocumentRepo):
    """Punishment history stored in the ``moderation`` document."""

    document_key = "moderation"
    collections = ("temp_bans", "mutes", "timeouts", "warnings")

    async def _add_timed(
        self,
        collection: str,
        user_id: str,
        moderator_id: str,
        reason: str,
        duration: timedelta,
        *,
        duration_text: str | None,
        guild_id: str | None,
        now: datetime | None,
    ) -> Dict[str, Any]:
        now = now or utcnow()
        record: Dict[str, Any] = {
            "user_id": str(user_id),
            "moderator_id": str(moderator_id),
            "reason": reason or "No reason provided",
            "duration": duration_text or format_duration(duration),
            "expires_at": to_iso(now + duration),
            "timestamp": to_iso(now),
            "active": True,
        }
        if guild_id is not None:
            record["guild_id"] = str(guild_id)

        async with self._edit() as document:
            document[collection].append(record)

        logger.info("[MODERATION REPO] Recorded %s for %s until %s", collection, user_id, record["expires_at"])
        return record

    async def add_temp_ban(self, user_id: str, moderator_id: str, reason: str, duration: timedelta, *,
                           duration_text: str | None = None, guild_id: str | None = None,
                           now: datetime | None = None) -> Dict[str, Any]:
        return await self._add_timed("temp_bans", user_id, moderator_id, reason, duration,
                                     duration_text=duration_text, guild_id=guild_id, now=now)

    async def add_mute(self, user_id: str, moderator_id: str, reason: str, duration: timedelta, *,
                       duration_text: str | None = None, guild_id: str | None = None,
                       now: datetime | None = None) -> Dict[str, Any]:
        return await self._add_timed("mutes", user_id, moderator_id, reason, duration,
                                     duration_text=duration_text, guild_id=guild_id, now=now)

    async def add_timeout(self, user_id: str, moderator_id: str, reason: str, duration: timedelta, *,
                          duration_text: str | None = None, guild_id: str | None = None,
                          now: datetime | None = None) -> Dict[str, Any]:
        return await self._add_timed("timeouts", user_id, moderator_id, reason, duration,
                                     duration_text=duration_text, guild_id=guild_id, now=now)

    async def _lift(self, collection: str, user_id: str, moderator_id: str, stamp_field: str,
                    by_field: str, now: datetime | None) -> bool:
        stamp = to_iso(now or utcnow())
        lifted = False
        async with self._edit() as document:
            for record in document[collection]:
                if isinstance(record, dict) and record.get("active") and str(record.get("user_id")) == str(user_id):
                    record["active"] = False
                    record[stamp_field] = stamp
                    record[by_field] = str(moderator_id)
                    lifted = True
        return lifted

    async def lift_temp_ban(self, user_id: str, moderator_id: str, *, now: datetime | None = None) -> bool:
        """Mark every active temporary ban for the user as lifted early."""
        return await self._lift("temp_bans", user_id, moderator_id, "unbanned_at", "unbanned_by", now)

    async def lift_mute(self, user_id: str, moderator_id: str, *, now: datetime | None = None) -> bool:
        """Mark every active mute for the user as lifted early."""
        return await self._lift("mutes", user_id, moderator_id, "unmuted_at", "unmuted_by", now)

    async def active_punishments(self, user_id: str) -> Dict[str, List[Dict[str, Any]]]:
        document = await self._load()
        return {
            name: [
                record for record in document[name]
                if isinstance(record, dict) and record.get("active") and str(record.get("user_id")) == str(user_id)
            ]
            for name in TIMED_COLLECTIONS
        }

    # ------------------------------------------------------------------
    # Warnings
    # ------------------------------------------------------------------

    async def add_warning(self, user_id: str, moderator_id: str, reason: str, *,
                          guild_id: str | None = None, now: datetime | None = None) -> int:
        """Record a warning and return how many warnings the user now has."""
        now = now or utcnow()
        warning: Dict[str, Any] = {
            "id": int(now.timestamp() * 1000),
            "user_id": str(user_id),
            "moderator_id": str(moderator_id),
            "reason": reason or "No reason provided",
            "timestamp": to_iso(now),
        }
        if guild_id is not None:
            warning["guild_id"] = str(guild_id)

        async with self._edit() as document:
            document["warnings"].append(warning)
            return sum(1 for w in document["warnings"] if isinstance(w, dict) and str(w.get("user_id")) == str(user_id))

    async def get_warnings(self, user_id: str) -> List[Dict[str, Any]]:
        return [w for w in await self._collection("warnings") if str(w.get("user_id")) == str(user_id)]

    async def clear_warnings(self, user_id: str) -> int:
        """Delete every warning for the user; returns how many were removed."""
        async with self._edit() as document:
            before = len(document["warnings"])
            document["warnings"] = [
                w for w in document["warnings"]
                if not (isinstance(w, dict) and str(w.get("user_id")) == str(user_id))
            ]
            removed = before - len(document["warnings"])

        if removed:
            logger.info("[MODERATION REPO] Cleared %d warning(s) for %s", removed, user_id)
        return removed
