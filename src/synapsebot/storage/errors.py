"""Exception types raised by the file store."""

from __future__ import annotations

from pathlib import Path


class StorageError(RuntimeError):
    """Base class for every storage failure surfaced to callers."""


class NotFoundError(StorageError):
    """An operation needed a document or backup that does not exist.

    Plain reads never raise this; ``FileStore.read`` returns ``None`` for a
    missing document.
    """

    def __init__(self, key: str, message: str | None = None) -> None:
        self.key = key
        super().__init__(message or f"No stored data for '{key}'")


class CorruptDataError(StorageError):
    """The bytes on disk for a document are not valid JSON."""

    def __init__(self, key: str, path: Path, reason: str = "") -> None:
        self.key = key
        self.path = path
        detail = f": {reason}" if reason else ""
        super().__init__(f"Document '{key}' at {path} is not valid JSON{detail}")


class WriteFailureError(StorageError):
    """A write could not be completed.

    Raised by ``FileStore.edit`` when its write-back fails, and by
    ``FileStore.write`` only when restoring the previous contents also fails.
    """

    def __init__(self, key: str, message: str | None = None) -> None:
        self.key = key
        super().__init__(message or f"Failed to write document '{key}'")
