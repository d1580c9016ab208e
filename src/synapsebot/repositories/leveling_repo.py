"""XP and level storage in the ``levels`` document. Level curves live in the commands."""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from synapsebot.repositories.base_repo import DocumentRepo


class LevelingRepo(DocumentRepo):
    document_key = "levels"
    collections = ("users",)
    mapping_collections = ("users",)

    @staticmethod
    def _entry(document: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        entry = document["users"].get(str(user_id))
        if not isinstance(entry, dict):
            entry = {"xp": 0, "messages": 0, "level": 0}
            document["users"][str(user_id)] = entry
        entry.setdefault("xp", 0)
        entry.setdefault("messages", 0)
        entry.setdefault("level", 0)
        return entry

    async def get_xp(self, user_id: str) -> int:
        document = await self._load()
        entry = document["users"].get(str(user_id))
        return int(entry.get("xp") or 0) if isinstance(entry, dict) else 0

    async def get_level(self, user_id: str) -> int:
        document = await self._load()
        entry = document["users"].get(str(user_id))
        return int(entry.get("level") or 0) if isinstance(entry, dict) else 0

    async def add_xp(self, user_id: str, amount: int, *, count_message: bool = False) -> int:
        """Add XP (negative amounts subtract, floored at zero) and return the new total."""
        async with self._edit() as document:
            entry = self._entry(document, user_id)
            entry["xp"] = max(0, int(entry["xp"] or 0) + amount)
            if count_message:
                entry["messages"] = int(entry["messages"] or 0) + 1
            return entry["xp"]

    async def set_level(self, user_id: str, level: int) -> None:
        if level < 0:
            raise ValueError("level must not be negative")
        async with self._edit() as document:
            self._entry(document, user_id)["level"] = level

    async def leaderboard(self, limit: int = 10) -> List[Tuple[str, int]]:
        document = await self._load()
        ranking = [
            (user_id, int(entry.get("xp") or 0))
            for user_id, entry in document["users"].items()
            if isinstance(entry, dict)
        ]
        ranking.sort(key=lambda item: item[1], reverse=True)
        return ranking[:limit]
