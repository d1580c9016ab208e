"""
Cached, crash-safe storage of named JSON documents.

Disk layout
-----------
One file per document key, ``<data_dir>/<key>.json``. Rolling backups live
in ``<backup_dir>`` (see :mod:`synapsebot.storage.backups`).

Write path
----------
1. Serialise the document (nothing touches disk if this fails).
2. Copy the current file, if any, to a timestamped backup.
3. Write the payload to a hidden temp file in the data directory and fsync it.
4. ``os.replace`` the temp file over the canonical path.
5. Prune backups beyond the retention count and update the cache. A failed
   prune is logged and does not fail the write.

If step 2-4 raises, the temp file is removed and the canonical file is
restored from the backup taken in step 2, so the canonical path only ever
holds a complete JSON document.

Concurrency model
-----------------
Each key has its own ``asyncio.Lock``. Writes, deletes, restores and
cache-miss reads of a key are serialised on it; different keys never wait on
each other. Blocking disk work runs in ``asyncio.to_thread`` so the event
loop keeps serving Discord while a file is written. Multiple processes
sharing one data directory are not coordinated.

Cache
-----
Documents are cached after the first read or write, bounded by
``max_cache_entries`` with least-recently-used eviction. ``read`` hands out
deep copies and ``write`` caches the parsed payload it just wrote, so a
caller mutating a document it read does not change what other callers see
until it calls ``write``.

Usage
-----
    store = FileStore(Path("./data"), Path("./data/backups"))

    economy = await store.read("economy") or {}
    economy["123"] = 500
    await store.write("economy", economy)

    # Read-modify-write under the key lock; only writes if something changed
    async with store.edit("economy", default=dict) as economy:
        economy["123"] = economy.get("123", 0) + 100
"""

from __future__ import annotations

import asyncio
import copy
import json
import os
import re
import uuid
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List

from synapsebot.configuration.storage_settings import StorageSettings
from synapsebot.storage.backups import BackupManager
from synapsebot.storage.errors import CorruptDataError, NotFoundError, StorageError, WriteFailureError
from synapsebot.util.logger import get_logger

logger = get_logger("file_store")

DOCUMENT_SUFFIX = ".json"

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_MISSING = object()


@dataclass
class StoreStats:
    """Point-in-time summary of the store, used by the admin commands."""
    total_documents: int
    total_bytes: int
    cached_documents: int
    total_backups: int


def validate_key(key: str) -> str:
    """Return ``key`` unchanged if it is a safe document name, else raise ``ValueError``."""
    if not isinstance(key, str) or not _KEY_PATTERN.match(key):
        raise ValueError(f"Invalid document key {key!r}: use letters, digits, '_' or '-'")
    return key


class FileStore:
    """
    Named JSON documents on disk with write-through caching and rolling backups.

    Args:
        data_dir: Directory holding one ``<key>.json`` file per document.
        backup_dir: Directory for rolling backups and snapshots.
        backup_retention: Backups kept per key after each write.
        max_cache_entries: Documents held in memory before LRU eviction.
        snapshot_retention: Whole-store snapshot folders kept by ``snapshot()``.
        indent: JSON indentation on disk; ``None`` writes compact JSON.
    """

    def __init__(
        self,
        data_dir: Path,
        backup_dir: Path,
        *,
        backup_retention: int = 5,
        max_cache_entries: int = 1000,
        snapshot_retention: int = 30,
        indent: int | None = 2,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.backup_dir = Path(backup_dir)
        self.max_cache_entries = max(int(max_cache_entries), 1)
        self.indent = indent
        self.backups = BackupManager(self.backup_dir, backup_retention, snapshot_retention)

        self._cache: "OrderedDict[str, Any]" = OrderedDict()
        self._locks: Dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Paths, locks and cache bookkeeping
    # ------------------------------------------------------------------

    def path_for(self, key: str) -> Path:
        return self.data_dir / f"{validate_key(key)}{DOCUMENT_SUFFIX}"

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _remember(self, key: str, document: Any) -> None:
        self._cache[key] = document
        self._cache.move_to_end(key)
        while len(self._cache) > self.max_cache_entries:
            evicted, _ = self._cache.popitem(last=False)
            logger.debug("[FILE STORE] Evicted %s from cache", evicted)

    def _cached(self, key: str) -> Any:
        document = self._cache.get(key, _MISSING)
        if document is not _MISSING:
            self._cache.move_to_end(key)
        return document

    def _serialize(self, document: Any) -> str:
        # NaN and Infinity are not JSON; refuse them rather than write them
        return json.dumps(document, indent=self.indent, ensure_ascii=False, allow_nan=False)

    # ------------------------------------------------------------------
    # Blocking helpers (run in worker threads)
    # ------------------------------------------------------------------

    def _load(self, key: str) -> Any:
        path = self.path_for(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return _MISSING
        except UnicodeDecodeError as exc:
            raise CorruptDataError(key, path, str(exc)) from exc
        except OSError as exc:
            raise StorageError(f"Could not read document '{key}' at {path}: {exc}") from exc

        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptDataError(key, path, str(exc)) from exc

    def _write_temp(self, path: Path, payload: str) -> Path:
        """Write ``payload`` to a hidden temp file beside ``path`` and fsync it."""
        temp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        with temp_path.open("w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        return temp_path

    def _replace_with(self, path: Path, payload: str) -> None:
        temp_path = None
        try:
            temp_path = self._write_temp(path, payload)
            os.replace(temp_path, path)
            temp_path = None
        finally:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)

    def _restore(self, key: str, path: Path, backup: Path) -> None:
        """Put ``backup``'s bytes back at ``path`` unless they are already there."""
        try:
            original = backup.read_bytes()
            try:
                if path.read_bytes() == original:
                    return
            except FileNotFoundError:
                pass
            self._replace_with(path, original.decode("utf-8"))
            logger.warning("[FILE STORE] Restored %s from backup %s", key, backup.name)
        except OSError as exc:
            raise WriteFailureError(key, f"Write of '{key}' failed and restoring {backup.name} also failed: {exc}") from exc

    def _commit(self, key: str, payload: str) -> bool:
        path = self.path_for(key)
        backup = None
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            if path.exists():
                backup = self.backups.create(key, path)
            self._replace_with(path, payload)
        except OSError as exc:
            logger.error("[FILE STORE] Failed to write %s: %s", key, exc)
            if backup is not None:
                self._restore(key, path, backup)
            return False

        self._prune_quietly(key)
        return True

    def _prune_quietly(self, key: str) -> None:
        """Prune old backups; the write already succeeded, so a failure here is only logged."""
        try:
            self.backups.prune(key)
        except OSError as exc:
            logger.warning("[FILE STORE] Could not prune backups of %s: %s", key, exc)

    def _remove(self, key: str) -> bool:
        path = self.path_for(key)
        if not path.exists():
            return False
        try:
            self.backups.create(key, path)
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.error("[FILE STORE] Failed to delete %s: %s", key, exc)
            return False
        self._prune_quietly(key)
        return True

    def _restore_named(self, key: str, name: str | None) -> tuple[str, Any]:
        backup = self.backups.latest(key) if name is None else self.backups.find(key, name)
        if backup is None:
            detail = f"No backup named {name} for '{key}'" if name else f"No backups for '{key}'"
            raise NotFoundError(key, detail)

        raw = backup.read_text(encoding="utf-8")
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptDataError(key, backup, str(exc)) from exc

        if not self._commit(key, raw):
            raise WriteFailureError(key, f"Could not restore '{key}' from {backup.name}")
        return backup.name, document

    def _stats(self) -> tuple[int, int, int]:
        documents = 0
        size = 0
        if self.data_dir.is_dir():
            for path in self.data_dir.glob(f"*{DOCUMENT_SUFFIX}"):
                if path.is_file() and not path.name.startswith("."):
                    documents += 1
                    size += path.stat().st_size
        return documents, size, self.backups.count()

    def _list_keys(self) -> List[str]:
        if not self.data_dir.is_dir():
            return []
        return sorted(
            path.stem
            for path in self.data_dir.glob(f"*{DOCUMENT_SUFFIX}")
            if path.is_file() and _KEY_PATTERN.match(path.stem)
        )

    # ------------------------------------------------------------------
    # Core API
    # ------------------------------------------------------------------

    async def _read_unlocked(self, key: str) -> Any:
        cached = self._cached(key)
        if cached is not _MISSING:
            return copy.deepcopy(cached)

        document = await asyncio.to_thread(self._load, key)
        if document is _MISSING:
            return None

        self._remember(key, document)
        return copy.deepcopy(document)

    async def read(self, key: str) -> Any | None:
        """
        Return a copy of the document stored under ``key``.

        Served from the cache when possible, otherwise loaded from disk and
        cached.

        Returns:
            The parsed document, or ``None`` if no file exists for ``key``.

        Raises:
            CorruptDataError: The file exists but is not valid JSON.
            ValueError: ``key`` is not a valid document name.
        """
        validate_key(key)
        cached = self._cached(key)
        if cached is not _MISSING:
            return copy.deepcopy(cached)

        async with self._lock_for(key):
            return await self._read_unlocked(key)

    async def _write_unlocked(self, key: str, document: Any) -> bool:
        try:
            payload = self._serialize(document)
        except (TypeError, ValueError) as exc:
            logger.error("[FILE STORE] Refusing to write %s: document is not JSON serialisable (%s)", key, exc)
            return False

        committed = await asyncio.to_thread(self._commit, key, payload)
        if committed:
            self._remember(key, json.loads(payload))
            logger.debug("[FILE STORE] Wrote %s (%d bytes)", key, len(payload))
        return committed

    async def write(self, key: str, document: Any) -> bool:
        """
        Persist ``document`` under ``key`` atomically and update the cache.

        Returns:
            ``True`` on success. ``False`` if the document could not be
            serialised or an I/O error occurred; the previous on-disk
            contents and the cache are left as they were.

        Raises:
            WriteFailureError: The write failed and the previous contents
                could not be restored from the backup.
            ValueError: ``key`` is not a valid document name.
        """
        validate_key(key)
        async with self._lock_for(key):
            return await self._write_unlocked(key, document)

    async def delete(self, key: str) -> bool:
        """
        Remove the document and its cache entry.

        A final backup is taken first, so a deleted document can be brought
        back with :meth:`restore_backup`.

        Returns:
            ``False`` if no file existed for ``key`` (or it could not be removed).
        """
        validate_key(key)
        async with self._lock_for(key):
            self._cache.pop(key, None)
            removed = await asyncio.to_thread(self._remove, key)
        if removed:
            logger.info("[FILE STORE] Deleted %s", key)
        return removed

    def clear_cache(self, key: str | None = None) -> None:
        """Evict one document, or the entire cache when ``key`` is None."""
        if key is None:
            self._cache.clear()
            logger.debug("[FILE STORE] Cache cleared")
        else:
            self._cache.pop(key, None)

    @asynccontextmanager
    async def edit(self, key: str, default: Callable[[], Any] | None = None) -> AsyncIterator[Any]:
        """
        Read-modify-write ``key`` while holding its lock.

        Yields the current document, or ``default()`` when there is none. If
        there is no document and no default, yields ``None`` and writes
        nothing. On clean exit the document is written back only when it
        differs from what was read (a freshly created default is always
        written). An exception inside the block skips the write.

        Raises:
            CorruptDataError: The stored document is not valid JSON.
            WriteFailureError: The write-back failed.
        """
        validate_key(key)
        async with self._lock_for(key):
            document = await self._read_unlocked(key)
            if document is None:
                if default is None:
                    yield None
                    return
                document = default()
                original = _MISSING
            else:
                original = copy.deepcopy(document)

            yield document

            if original is _MISSING or document != original:
                if not await self._write_unlocked(key, document):
                    raise WriteFailureError(key)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def exists(self, key: str) -> bool:
        validate_key(key)
        if self._cached(key) is not _MISSING:
            return True
        return await asyncio.to_thread(self.path_for(key).is_file)

    async def keys(self) -> List[str]:
        """Sorted keys of every document on disk."""
        return await asyncio.to_thread(self._list_keys)

    async def list_backups(self, key: str) -> List[str]:
        """Backup file names for ``key``, oldest first."""
        validate_key(key)
        paths = await asyncio.to_thread(self.backups.list_backups, key)
        return [path.name for path in paths]

    async def restore_backup(self, key: str, name: str | None = None) -> str:
        """
        Replace the document with its latest backup, or the backup called ``name``.

        The current contents are themselves backed up first, so a restore can
        be undone the same way.

        Returns:
            The name of the backup that was restored.

        Raises:
            NotFoundError: No matching backup exists.
            CorruptDataError: The chosen backup is not valid JSON.
            WriteFailureError: The restored contents could not be written.
        """
        validate_key(key)
        async with self._lock_for(key):
            restored, document = await asyncio.to_thread(self._restore_named, key, name)
            self._remember(key, document)
        logger.info("[FILE STORE] Restored %s from %s", key, restored)
        return restored

    async def snapshot(self) -> Path:
        """Copy every document into a new timestamped snapshot folder and return its path."""
        return await asyncio.to_thread(self.backups.snapshot, self.data_dir)

    async def get_stats(self) -> StoreStats:
        documents, size, backups = await asyncio.to_thread(self._stats)
        return StoreStats(
            total_documents=documents,
            total_bytes=size,
            cached_documents=len(self._cache),
            total_backups=backups,
        )


def build_file_store(settings: StorageSettings) -> FileStore:
    """Create a store from the ``storage`` configuration section."""
    store = FileStore(
        settings.data_dir,
        settings.backup_dir,
        backup_retention=settings.backup_retention,
        max_cache_entries=settings.max_cache_entries,
        snapshot_retention=settings.snapshot_retention,
        indent=settings.indent,
    )
    logger.info(
        "[FILE STORE] Using %s (backups in %s, keeping %d per document)",
        store.data_dir, store.backup_dir, store.backups.retention,
    )
    return store
