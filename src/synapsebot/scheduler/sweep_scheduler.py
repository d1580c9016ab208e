"""
Periodic sweep over time-stamped records stored in the file store.

Each registration names a document, a collection inside it (a list of
records, or a mapping of id -> record) and the field holding the due
timestamp. On every tick, records that are ``active`` and due are handed to
the registration's handler, then stamped ``active: false`` plus a completion
timestamp. A record fires at most once: a handler that raises is logged and
the record is still marked inactive, so an unreachable target cannot be
retried forever.

A tick works in two phases per document so no file lock is held while
handlers talk to Discord:

1. Read a snapshot of the document and run handlers for due records.
2. Under ``FileStore.edit`` re-read the latest document, swap each fired
   record in (matched by its pre-fire contents, so records added or removed
   by commands in the meantime are preserved), prune expired inactive
   records, and write once if anything changed.
"""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Tuple

from synapsebot.storage.errors import StorageError
from synapsebot.storage.file_store import FileStore, validate_key
from synapsebot.util.logger import get_logger
from synapsebot.util.time_utils import parse_timestamp, to_iso, utcnow

logger = get_logger("sweep_scheduler")

DEFAULT_INTERVAL_SECONDS = 60.0


@dataclass(frozen=True)
class SweepContext:
    """What a handler knows about the sweep that fired its record.

    ``document`` is the snapshot the sweep read. Only changes to the fired
    record itself are saved.
    """
    now: datetime
    registration: "SweepRegistration"
    document: Dict[str, Any] = field(default_factory=dict)

    @property
    def document_key(self) -> str:
        return self.registration.document_key

    @property
    def collection(self) -> str:
        return self.registration.collection


SweepHandler = Callable[[Dict[str, Any], SweepContext], Awaitable[None]]


@dataclass(frozen=True)
class SweepRegistration:
    """
    One kind of time-triggered record the scheduler watches.

    Attributes:
        document_key: File store key of the document holding the records.
        collection: Name of the list or mapping of records inside the document.
        due_field: Record field holding the trigger timestamp.
        handler: Coroutine run once for each due record. It may add fields
            to the record it is given; those are persisted with it.
        completed_field: Field stamped with the fire time.
        retention: Inactive records older than this are pruned. ``None``
            keeps them forever.
        name: Label used in logs.
    """
    document_key: str
    collection: str
    due_field: str
    handler: SweepHandler
    completed_field: str = "completed_at"
    retention: timedelta | None = None
    name: str = ""

    def __post_init__(self) -> None:
        validate_key(self.document_key)

    @property
    def label(self) -> str:
        return self.name or f"{self.document_key}.{self.collection}"


@dataclass
class SweepReport:
    """Counters for one tick."""
    fired: int = 0
    failed: int = 0
    skipped: int = 0
    pruned: int = 0
    documents_written: int = 0
    errors: List[str] = field(default_factory=list)


def _describe(record: Dict[str, Any]) -> str:
    for name in ("id", "user_id"):
        if record.get(name) is not None:
            return f"{name}={record[name]}"
    return "<no id>"


class SweepScheduler:
    """
    Runs the registered sweeps on a fixed interval.

    Args:
        store: File store holding the swept documents.
        registrations: Initial registrations; more can be added with ``register``.
        interval_seconds: Delay between the end of one tick and the start of
            the next. The first tick runs as soon as the scheduler starts.
    """

    def __init__(
        self,
        store: FileStore,
        registrations: List[SweepRegistration] | None = None,
        *,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self.store = store
        self.interval_seconds = interval_seconds
        self._registrations: List[SweepRegistration] = list(registrations or [])
        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None
        self._tick_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, registration: SweepRegistration) -> None:
        self._registrations.append(registration)
        logger.debug("[SWEEP] Registered %s", registration.label)

    @property
    def registrations(self) -> List[SweepRegistration]:
        return list(self._registrations)

    def _grouped(self) -> Dict[str, List[SweepRegistration]]:
        grouped: Dict[str, List[SweepRegistration]] = {}
        for registration in self._registrations:
            grouped.setdefault(registration.document_key, []).append(registration)
        return grouped

    # ------------------------------------------------------------------
    # One tick
    # ------------------------------------------------------------------

    async def tick(self, now: datetime | None = None) -> SweepReport:
        """
        Sweep every registered document once.

        Document-level failures (unreadable or unwritable files) are logged
        at ERROR and recorded in the report; they do not stop other documents
        from being swept. A naive ``now`` is taken to be UTC.
        """
        async with self._tick_lock:
            now = parse_timestamp(now) if now is not None else utcnow()
            report = SweepReport()
            for document_key, registrations in self._grouped().items():
                try:
                    await self._sweep_document(document_key, registrations, now, report)
                except asyncio.CancelledError:
                    raise
                except StorageError as exc:
                    logger.error("[SWEEP] Storage failure while sweeping %s: %s", document_key, exc)
                    report.errors.append(f"{document_key}: {exc}")
                except Exception as exc:
                    logger.exception("[SWEEP] Unexpected error while sweeping %s", document_key)
                    report.errors.append(f"{document_key}: {exc}")

            if report.fired or report.pruned or report.errors:
                logger.info(
                    "[SWEEP] Tick done: fired=%d failed=%d pruned=%d written=%d errors=%d",
                    report.fired, report.failed, report.pruned, report.documents_written, len(report.errors),
                )
            return report

    def _records(self, document: Dict[str, Any], collection: str) -> Iterator[Tuple[Any, Dict[str, Any]]]:
        container = document.get(collection)
        if container is None:
            return
        if isinstance(container, list):
            items = enumerate(container)
        elif isinstance(container, dict):
            items = container.items()
        else:
            logger.warning("[SWEEP] %s is neither a list nor a mapping; skipping", collection)
            return

        for slot, record in items:
            if isinstance(record, dict):
                yield slot, record

    def _is_due(self, record: Dict[str, Any], registration: SweepRegistration, now: datetime, report: SweepReport) -> bool:
        if not record.get("active"):
            return False

        due_at = parse_timestamp(record.get(registration.due_field))
        if due_at is None:
            logger.warning(
                "[SWEEP] %s record %s has no usable %s; leaving it alone",
                registration.label, _describe(record), registration.due_field,
            )
            report.skipped += 1
            return False
        return due_at <= now

    async def _fire(
        self,
        record: Dict[str, Any],
        registration: SweepRegistration,
        now: datetime,
        document: Dict[str, Any],
        report: SweepReport,
    ) -> None:
        report.fired += 1
        try:
            await registration.handler(record, SweepContext(now=now, registration=registration, document=document))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            report.failed += 1
            logger.error("[SWEEP] %s handler failed for %s: %s", registration.label, _describe(record), exc)

        record["active"] = False
        record[registration.completed_field] = to_iso(now)

    async def _sweep_document(
        self,
        document_key: str,
        registrations: List[SweepRegistration],
        now: datetime,
        report: SweepReport,
    ) -> None:
        document = await self.store.read(document_key)
        if document is None:
            return
        if not isinstance(document, dict):
            logger.warning("[SWEEP] Document %s is not a mapping; skipping", document_key)
            return

        fired: List[Tuple[SweepRegistration, Any, Dict[str, Any], Dict[str, Any]]] = []
        for registration in registrations:
            due = [
                (slot, record)
                for slot, record in self._records(document, registration.collection)
                if self._is_due(record, registration, now, report)
            ]
            for slot, record in due:
                before = copy.deepcopy(record)
                await self._fire(record, registration, now, document, report)
                fired.append((registration, slot, before, record))

        if not fired and not any(r.retention is not None for r in registrations):
            return

        changed = False
        async with self.store.edit(document_key) as latest:
            if not isinstance(latest, dict):
                logger.warning("[SWEEP] Document %s vanished or changed shape mid-sweep", document_key)
                return

            for registration, slot, before, after in fired:
                if self._apply(latest, registration.collection, slot, before, after):
                    changed = True
                else:
                    logger.warning(
                        "[SWEEP] %s record %s changed during the sweep; its fired state was not saved",
                        registration.label, _describe(before),
                    )

            for registration in registrations:
                pruned = self._prune(latest, registration, now)
                if pruned:
                    report.pruned += pruned
                    changed = True

        if changed:
            report.documents_written += 1

    # ------------------------------------------------------------------
    # Merge and prune helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _apply(document: Dict[str, Any], collection: str, slot: Any, before: Dict[str, Any], after: Dict[str, Any]) -> bool:
        container = document.get(collection)
        if isinstance(container, list):
            if isinstance(slot, int) and slot < len(container) and container[slot] == before:
                container[slot] = after
                return True
            for index, candidate in enumerate(container):
                if candidate == before:
                    container[index] = after
                    return True
            return False

        if isinstance(container, dict) and container.get(slot) == before:
            container[slot] = after
            return True
        return False

    @staticmethod
    def _expired(record: Any, registration: SweepRegistration, cutoff: datetime) -> bool:
        if not isinstance(record, dict) or record.get("active"):
            return False
        stamp = parse_timestamp(record.get(registration.completed_field)) or parse_timestamp(record.get(registration.due_field))
        return stamp is not None and stamp < cutoff

    def _prune(self, document: Dict[str, Any], registration: SweepRegistration, now: datetime) -> int:
        if registration.retention is None:
            return 0

        cutoff = now - registration.retention
        container = document.get(registration.collection)
        if isinstance(container, list):
            kept = [r for r in container if not self._expired(r, registration, cutoff)]
            removed = len(container) - len(kept)
            if removed:
                document[registration.collection] = kept
            return removed

        if isinstance(container, dict):
            stale = [slot for slot, r in container.items() if self._expired(r, registration, cutoff)]
            for slot in stale:
                del container[slot]
            return len(stale)
        return 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run_loop(self, stop_event: asyncio.Event) -> None:
        logger.info(
            "[SWEEP] Starting (interval=%.1fs, %d registration(s))",
            self.interval_seconds, len(self._registrations),
        )
        try:
            while not stop_event.is_set():
                try:
                    await self.tick()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.error("[SWEEP] Tick failed: %s", exc)

                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:
            logger.info("[SWEEP] Cancelled")
            raise
        logger.info("[SWEEP] Stopped")

    def start(self) -> None:
        """Start the background loop; the first tick runs immediately."""
        if self.running:
            logger.warning("[SWEEP] Already running")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop(self._stop_event), name="synapsebot-sweep-scheduler")

    def cancel(self) -> None:
        """Cancel the background loop immediately, without waiting for it."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._stop_event = None

    async def stop(self, timeout: float | None = None) -> None:
        """
        Stop the loop, letting an in-progress tick finish first.

        If ``timeout`` is given and the tick has not finished by then, the
        task is cancelled. Safe to call when not running.
        """
        task = self._task
        if task is None:
            return
        if task.done():
            self._task = None
            self._stop_event = None
            return

        if self._stop_event is not None:
            self._stop_event.set()
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
            self._stop_event = None
