"""
Rolling backups and whole-store snapshots.

Every write of an existing document first copies its current bytes to
``<backup_dir>/<key>.<timestamp>.bak``. Backups are kept after the write
succeeds; once more than ``retention`` exist for a key the oldest are
removed. Timestamps are UTC ISO-8601 with ``:`` and ``.`` replaced by ``-``
so names are filesystem safe and sort chronologically.

All methods here are blocking and are called from worker threads by
:class:`~synapsebot.storage.file_store.FileStore`.
"""

from __future__ import annotations

import re
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List

from synapsebot.util.logger import get_logger

logger = get_logger("backups")

BACKUP_SUFFIX = ".bak"
SNAPSHOT_DIRNAME = "snapshots"

_STAMP_FORMAT = "%Y-%m-%dT%H-%M-%S-%fZ"
_STAMP_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{6}Z$")


_SNAPSHOT_KEY = "__snapshot__"


def format_stamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime(_STAMP_FORMAT)


def parse_stamp(stamp: str) -> datetime | None:
    try:
        return datetime.strptime(stamp, _STAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


class BackupManager:
    """Creates, lists, prunes and snapshots backups under one directory."""

    def __init__(self, backup_dir: Path, retention: int = 5, snapshot_retention: int = 30) -> None:
        self.backup_dir = backup_dir
        self.retention = max(int(retention), 1)
        self.snapshot_retention = max(int(snapshot_retention), 1)
        self._last_stamp: Dict[str, datetime] = {}

    # ------------------------------------------------------------------
    # Per-document backups
    # ------------------------------------------------------------------

    def _newest_on_disk(self, key: str) -> datetime | None:
        """Stamp of the newest existing backup (or snapshot) for ``key``."""
        existing = self.list_snapshots() if key == _SNAPSHOT_KEY else self.list_backups(key)
        if not existing:
            return None
        name = existing[-1].name
        if name.endswith(BACKUP_SUFFIX):
            name = name[len(key) + 1:-len(BACKUP_SUFFIX)]
        return parse_stamp(name)

    def _next_stamp(self, key: str) -> str:
        """Return a timestamp strictly later than every stamp already used for ``key``.

        The first call for a key looks at the backups on disk, so a clock that
        runs behind stamps left by an earlier process still sorts new backups last.
        """
        now = datetime.now(timezone.utc)
        if key in self._last_stamp:
            last = self._last_stamp[key]
        else:
            last = self._newest_on_disk(key)
        if last is not None and now <= last:
            now = last + timedelta(microseconds=1)
        self._last_stamp[key] = now
        return format_stamp(now)

    def backup_path(self, key: str, stamp: str) -> Path:
        return self.backup_dir / f"{key}.{stamp}{BACKUP_SUFFIX}"

    def create(self, key: str, source: Path) -> Path:
        """Copy ``source`` to a new timestamped backup for ``key`` and return its path."""
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        target = self.backup_path(key, self._next_stamp(key))
        shutil.copy2(source, target)
        logger.debug("[BACKUPS] Backed up %s to %s", key, target.name)
        return target

    def list_backups(self, key: str) -> List[Path]:
        """Backups for ``key``, oldest first."""
        if not self.backup_dir.is_dir():
            return []

        prefix = f"{key}."
        found = []
        for path in self.backup_dir.iterdir():
            name = path.name
            if not (path.is_file() and name.startswith(prefix) and name.endswith(BACKUP_SUFFIX)):
                continue
            stamp = name[len(prefix):-len(BACKUP_SUFFIX)]
            if _STAMP_PATTERN.match(stamp):
                found.append(path)
        return sorted(found, key=lambda p: p.name)

    def latest(self, key: str) -> Path | None:
        backups = self.list_backups(key)
        return backups[-1] if backups else None

    def find(self, key: str, name: str) -> Path | None:
        for path in self.list_backups(key):
            if path.name == name:
                return path
        return None

    def prune(self, key: str) -> List[Path]:
        """Delete the oldest backups beyond the retention count; return what was removed."""
        backups = self.list_backups(key)
        excess = backups[:-self.retention] if len(backups) > self.retention else []

        removed = []
        for path in excess:
            try:
                path.unlink()
                removed.append(path)
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("[BACKUPS] Could not remove old backup %s: %s", path.name, exc)

        if removed:
            logger.debug("[BACKUPS] Pruned %d old backup(s) for %s", len(removed), key)
        return removed

    def count(self) -> int:
        if not self.backup_dir.is_dir():
            return 0
        return sum(1 for p in self.backup_dir.glob(f"*{BACKUP_SUFFIX}") if p.is_file())

    # ------------------------------------------------------------------
    # Whole-store snapshots
    # ------------------------------------------------------------------

    @property
    def snapshot_root(self) -> Path:
        return self.backup_dir / SNAPSHOT_DIRNAME

    def list_snapshots(self) -> List[Path]:
        root = self.snapshot_root
        if not root.is_dir():
            return []
        return sorted((p for p in root.iterdir() if p.is_dir() and _STAMP_PATTERN.match(p.name)), key=lambda p: p.name)

    def snapshot(self, data_dir: Path) -> Path:
        """Copy every ``*.json`` document in ``data_dir`` into a new snapshot folder.

        Only the newest ``snapshot_retention`` folders are kept.
        """
        folder = self.snapshot_root / self._next_stamp(_SNAPSHOT_KEY)
        folder.mkdir(parents=True, exist_ok=False)

        copied = 0
        if data_dir.is_dir():
            for document in sorted(data_dir.glob("*.json")):
                if document.is_file():
                    shutil.copy2(document, folder / document.name)
                    copied += 1

        snapshots = self.list_snapshots()
        for old in snapshots[:-self.snapshot_retention]:
            shutil.rmtree(old, ignore_errors=True)

        logger.info("[BACKUPS] Snapshot %s holds %d document(s)", folder.name, copied)
        return folder
