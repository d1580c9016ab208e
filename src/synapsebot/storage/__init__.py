"""
Flat-file persistence for SynapseBot.

- **file_store.py**: :class:`FileStore`, named JSON documents with atomic
  temp-file-and-rename writes, a bounded write-through cache, per-key
  locking and a read-modify-write ``edit()`` context manager.

- **backups.py**: Rolling per-document backups taken before every write
  (newest N kept) and whole-store snapshot folders.

- **errors.py**: ``StorageError`` and its subclasses ``NotFoundError``,
  ``CorruptDataError`` and ``WriteFailureError``.
"""

from synapsebot.storage.errors import CorruptDataError, NotFoundError, StorageError, WriteFailureError
from synapsebot.storage.file_store import FileStore, StoreStats, build_file_store

__all__ = [
    "CorruptDataError",
    "FileStore",
    "NotFoundError",
    "StorageError",
    "StoreStats",
    "WriteFailureError",
    "build_file_store",
]
