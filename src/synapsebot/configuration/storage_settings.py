from pathlib import Path
from typing import Any, Dict


class StorageSettings:
    """Typed accessors for the ``storage`` configuration section.

    Relative directories are kept relative; they resolve against the working
    directory, which ``main`` pins to the project home before anything is
    opened.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return self.data

    @property
    def data_dir(self) -> Path:
        return Path(str(self.data.get("data_dir") or "./data"))

    @property
    def backup_dir(self) -> Path:
        value = self.data.get("backup_dir")
        return Path(str(value)) if value else self.data_dir / "backups"

    @property
    def backup_retention(self) -> int:
        return max(int(self.data.get("backup_retention", 5)), 1)

    @property
    def max_cache_entries(self) -> int:
        return max(int(self.data.get("max_cache_entries", 1000)), 1)

    @property
    def snapshot_retention(self) -> int:
        return max(int(self.data.get("snapshot_retention", 30)), 1)

    @property
    def indent(self) -> int | None:
        value = self.data.get("indent", 2)
        return None if value is None else int(value)


class SweepSettings:
    """Typed accessors for the ``sweeps`` configuration section."""

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    @property
    def interval_seconds(self) -> float:
        return max(float(self.data.get("interval_seconds", 60.0)), 1.0)

    @property
    def reminder_retention_days(self) -> float:
        return float(self.data.get("reminder_retention_days", 7))

    @property
    def moderation_retention_days(self) -> float:
        return float(self.data.get("moderation_retention_days", 30))

    @property
    def reminders_document(self) -> str:
        return str(self.data.get("reminders_document") or "remindme")

    @property
    def moderation_document(self) -> str:
        return str(self.data.get("moderation_document") or "moderation")
