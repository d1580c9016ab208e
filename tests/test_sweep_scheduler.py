"""Tests for the sweep scheduler."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from synapsebot.scheduler.sweep_scheduler import SweepRegistration, SweepScheduler
from synapsebot.util.time_utils import to_iso

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
PAST = to_iso(NOW - timedelta(minutes=5))
FUTURE = to_iso(NOW + timedelta(hours=1))


def _registration(handler, **overrides):
    options = {
        "document_key": "remindme",
        "collection": "reminders",
        "due_field": "remind_at",
        "handler": handler,
    }
    options.update(overrides)
    return SweepRegistration(**options)


class Recorder:
    """Sweep handler that remembers the records it was given."""

    def __init__(self, fail_for=()):
        self.seen = []
        self.fail_for = set(fail_for)

    async def __call__(self, record, context):
        self.seen.append(dict(record))
        if record.get("id") in self.fail_for:
            raise RuntimeError(f"cannot deliver {record['id']}")


class TestRegistration:
    """Tests for SweepRegistration."""

    def test_invalid_document_key_rejected(self):
        with pytest.raises(ValueError):
            _registration(AsyncMock(), document_key="../moderation")

    def test_label_defaults_to_location(self):
        assert _registration(AsyncMock()).label == "remindme.reminders"
        assert _registration(AsyncMock(), name="reminders").label == "reminders"

    def test_register_adds_to_registrations(self, store):
        scheduler = SweepScheduler(store)
        registration = _registration(AsyncMock())

        scheduler.register(registration)

        assert scheduler.registrations == [registration]


class TestTick:
    """Tests for a single sweep pass."""

    @pytest.mark.asyncio
    async def test_due_record_fires_once_and_is_stamped(self, store):
        await store.write("remindme", {"reminders": [{"id": "r1", "remind_at": PAST, "active": True}]})
        handler = Recorder()
        scheduler = SweepScheduler(store, [_registration(handler)])

        report = await scheduler.tick(NOW)

        assert report.fired == 1
        assert report.documents_written == 1
        assert [r["id"] for r in handler.seen] == ["r1"]

        store.clear_cache()
        record = (await store.read("remindme"))["reminders"][0]
        assert record["active"] is False
        assert record["completed_at"] == to_iso(NOW)

    @pytest.mark.asyncio
    async def test_second_tick_does_not_refire(self, store):
        await store.write("remindme", {"reminders": [{"id": "r1", "remind_at": PAST, "active": True}]})
        handler = Recorder()
        scheduler = SweepScheduler(store, [_registration(handler)])

        await scheduler.tick(NOW)
        report = await scheduler.tick(NOW + timedelta(minutes=1))

        assert len(handler.seen) == 1
        assert report.fired == 0
        assert report.documents_written == 0

    @pytest.mark.asyncio
    async def test_future_and_inactive_records_untouched(self, store):
        document = {"reminders": [
            {"id": "future", "remind_at": FUTURE, "active": True},
            {"id": "done", "remind_at": PAST, "active": False, "completed_at": PAST},
        ]}
        await store.write("remindme", document)
        handler = Recorder()
        scheduler = SweepScheduler(store, [_registration(handler)])

        report = await scheduler.tick(NOW)

        assert handler.seen == []
        assert report.fired == 0
        assert await store.read("remindme") == document
        assert await store.list_backups("remindme") == []

    @pytest.mark.asyncio
    async def test_record_due_exactly_now_fires(self, store):
        await store.write("remindme", {"reminders": [{"id": "r1", "remind_at": to_iso(NOW), "active": True}]})
        handler = Recorder()

        await SweepScheduler(store, [_registration(handler)]).tick(NOW)

        assert len(handler.seen) == 1

    @pytest.mark.asyncio
    async def test_naive_now_is_read_as_utc(self, store):
        await store.write("remindme", {"reminders": [
            {"id": "due", "remind_at": PAST, "active": True},
            {"id": "later", "remind_at": FUTURE, "active": True},
        ]})
        handler = Recorder()

        report = await SweepScheduler(store, [_registration(handler)]).tick(NOW.replace(tzinfo=None))

        assert report.errors == []
        assert [r["id"] for r in handler.seen] == ["due"]
        record = (await store.read("remindme"))["reminders"][0]
        assert record["completed_at"] == to_iso(NOW)

    @pytest.mark.asyncio
    async def test_epoch_and_offset_timestamps_are_understood(self, store):
        await store.write("remindme", {"reminders": [
            {"id": "epoch", "remind_at": (NOW - timedelta(minutes=1)).timestamp(), "active": True},
            {"id": "offset", "remind_at": "2026-10-19T13:30:00+02:00", "active": True},
        ]})
        handler = Recorder()

        report = await SweepScheduler(store, [_registration(handler)]).tick(NOW)

        assert report.fired == 2

    @pytest.mark.asyncio
    async def test_unparseable_due_time_is_skipped(self, store):
        await store.write("remindme", {"reminders": [
            {"id": "bad", "remind_at": "whenever", "active": True},
            {"id": "missing", "active": True},
        ]})
        handler = Recorder()

        report = await SweepScheduler(store, [_registration(handler)]).tick(NOW)

        assert handler.seen == []
        assert report.skipped == 2
        assert (await store.read("remindme"))["reminders"][0]["active"] is True

    @pytest.mark.asyncio
    async def test_handler_failure_marks_record_and_continues(self, store):
        await store.write("remindme", {"reminders": [
            {"id": "r1", "remind_at": PAST, "active": True},
            {"id": "r2", "remind_at": PAST, "active": True},
        ]})
        handler = Recorder(fail_for={"r1"})

        report = await SweepScheduler(store, [_registration(handler)]).tick(NOW)

        assert [r["id"] for r in handler.seen] == ["r1", "r2"]
        assert report.fired == 2
        assert report.failed == 1

        reminders = (await store.read("remindme"))["reminders"]
        assert all(r["active"] is False for r in reminders)
        assert all(r["completed_at"] == to_iso(NOW) for r in reminders)

    @pytest.mark.asyncio
    async def test_context_describes_the_sweep(self, store):
        await store.write("remindme", {"reminders": [{"id": "r1", "remind_at": PAST, "active": True}], "owner": "bot"})
        contexts = []

        async def handler(record, context):
            contexts.append(context)

        await SweepScheduler(store, [_registration(handler)]).tick(NOW)

        context = contexts[0]
        assert context.now == NOW
        assert context.document_key == "remindme"
        assert context.collection == "reminders"
        assert context.document["owner"] == "bot"

    @pytest.mark.asyncio
    async def test_handler_changes_are_persisted(self, store):
        await store.write("remindme", {"reminders": [{"id": "r1", "remind_at": PAST, "active": True}]})

        async def handler(record, context):
            record["delivered"] = True

        await SweepScheduler(store, [_registration(handler)]).tick(NOW)

        assert (await store.read("remindme"))["reminders"][0]["delivered"] is True

    @pytest.mark.asyncio
    async def test_custom_completed_field(self, store):
        await store.write("moderation", {"temp_bans": [{"user_id": "U1", "expires_at": PAST, "active": True}]})
        registration = _registration(
            Recorder(),
            document_key="moderation",
            collection="temp_bans",
            due_field="expires_at",
            completed_field="unbanned_at",
        )

        await SweepScheduler(store, [registration]).tick(NOW)

        record = (await store.read("moderation"))["temp_bans"][0]
        assert record["active"] is False
        assert record["unbanned_at"] == to_iso(NOW)
        assert "completed_at" not in record

    @pytest.mark.asyncio
    async def test_mapping_collection(self, store):
        await store.write("remindme", {"reminders": {
            "a": {"remind_at": PAST, "active": True},
            "b": {"remind_at": FUTURE, "active": True},
        }})
        handler = Recorder()

        report = await SweepScheduler(store, [_registration(handler)]).tick(NOW)

        assert report.fired == 1
        reminders = (await store.read("remindme"))["reminders"]
        assert reminders["a"]["active"] is False
        assert reminders["b"]["active"] is True

    @pytest.mark.asyncio
    async def test_one_write_per_document(self, store):
        await store.write("moderation", {"value": 0})
        await store.write("moderation", {
            "temp_bans": [{"user_id": "U1", "expires_at": PAST, "active": True}],
            "mutes": [{"user_id": "U2", "expires_at": PAST, "active": True}],
        })
        backups_before = len(await store.list_backups("moderation"))
        scheduler = SweepScheduler(store, [
            _registration(Recorder(), document_key="moderation", collection="temp_bans", due_field="expires_at"),
            _registration(Recorder(), document_key="moderation", collection="mutes", due_field="expires_at"),
        ])

        report = await scheduler.tick(NOW)

        assert report.fired == 2
        assert report.documents_written == 1
        assert len(await store.list_backups("moderation")) == backups_before + 1

    @pytest.mark.asyncio
    async def test_records_added_during_handlers_are_kept(self, store):
        await store.write("remindme", {"reminders": [{"id": "r1", "remind_at": PAST, "active": True}]})

        async def handler(record, context):
            async with store.edit("remindme") as document:
                document["reminders"].append({"id": "r2", "remind_at": FUTURE, "active": True})

        await SweepScheduler(store, [_registration(handler)]).tick(NOW)

        reminders = (await store.read("remindme"))["reminders"]
        assert [r["id"] for r in reminders] == ["r1", "r2"]
        assert reminders[0]["active"] is False
        assert reminders[1]["active"] is True

    @pytest.mark.asyncio
    async def test_pruning_removes_old_inactive_records(self, store):
        old = to_iso(NOW - timedelta(days=8))
        recent = to_iso(NOW - timedelta(days=2))
        await store.write("remindme", {"reminders": [
            {"id": "old", "remind_at": old, "active": False, "completed_at": old},
            {"id": "recent", "remind_at": recent, "active": False, "completed_at": recent},
            {"id": "pending", "remind_at": FUTURE, "active": True},
        ]})
        registration = _registration(Recorder(), retention=timedelta(days=7))

        report = await SweepScheduler(store, [registration]).tick(NOW)

        assert report.pruned == 1
        assert [r["id"] for r in (await store.read("remindme"))["reminders"]] == ["recent", "pending"]

    @pytest.mark.asyncio
    async def test_missing_document_is_skipped(self, store):
        handler = Recorder()

        report = await SweepScheduler(store, [_registration(handler)]).tick(NOW)

        assert report.fired == 0
        assert report.errors == []
        assert await store.exists("remindme") is False

    @pytest.mark.asyncio
    async def test_corrupt_document_does_not_stop_others(self, store):
        store.data_dir.mkdir(parents=True)
        (store.data_dir / "moderation.json").write_text("{oops", encoding="utf-8")
        await store.write("remindme", {"reminders": [{"id": "r1", "remind_at": PAST, "active": True}]})
        handler = Recorder()
        scheduler = SweepScheduler(store, [
            _registration(Recorder(), document_key="moderation", collection="temp_bans", due_field="expires_at"),
            _registration(handler),
        ])

        report = await scheduler.tick(NOW)

        assert len(report.errors) == 1
        assert report.errors[0].startswith("moderation")
        assert [r["id"] for r in handler.seen] == ["r1"]

    @pytest.mark.asyncio
    async def test_punishments_scenario(self, store):
        """Expired ban is lifted and stamped; a second sweep does nothing."""
        expires = to_iso(NOW - timedelta(seconds=1))
        await store.write("punishments", {"temp_bans": [{"user_id": "U1", "expires_at": expires, "active": True}]})
        lifted = []

        async def lift(record, context):
            lifted.append(record["user_id"])

        registration = SweepRegistration(
            document_key="punishments",
            collection="temp_bans",
            due_field="expires_at",
            handler=lift,
            completed_field="unbanned_at",
        )
        scheduler = SweepScheduler(store, [registration])

        await scheduler.tick(NOW)
        await scheduler.tick(NOW + timedelta(seconds=30))

        assert lifted == ["U1"]
        record = (await store.read("punishments"))["temp_bans"][0]
        assert record == {"user_id": "U1", "expires_at": expires, "active": False, "unbanned_at": to_iso(NOW)}


class TestLifecycle:
    """Tests for start and stop."""

    @pytest.mark.asyncio
    async def test_start_runs_first_tick_immediately(self, store):
        await store.write("remindme", {"reminders": [{"id": "r1", "remind_at": PAST, "active": True}]})
        fired = asyncio.Event()

        async def handler(record, context):
            fired.set()

        scheduler = SweepScheduler(store, [_registration(handler)], interval_seconds=3600)
        scheduler.start()
        try:
            await asyncio.wait_for(fired.wait(), timeout=5)
            assert scheduler.running is True
        finally:
            await scheduler.stop(timeout=5)

        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_task(self, store):
        scheduler = SweepScheduler(store, interval_seconds=3600)
        scheduler.start()
        task = scheduler._task
        scheduler.start()

        assert scheduler._task is task
        await scheduler.stop(timeout=5)

    @pytest.mark.asyncio
    async def test_stop_when_not_running_is_a_no_op(self, store):
        scheduler = SweepScheduler(store)
        await scheduler.stop()
        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_stop_waits_for_tick_in_progress(self, store):
        await store.write("remindme", {"reminders": [{"id": "r1", "remind_at": PAST, "active": True}]})
        entered = asyncio.Event()
        release = asyncio.Event()

        async def slow_handler(record, context):
            entered.set()
            await release.wait()

        scheduler = SweepScheduler(store, [_registration(slow_handler)], interval_seconds=3600)
        scheduler.start()
        await asyncio.wait_for(entered.wait(), timeout=5)

        stopping = asyncio.create_task(scheduler.stop())
        await asyncio.sleep(0)
        assert not stopping.done()

        release.set()
        await asyncio.wait_for(stopping, timeout=5)

        assert (await store.read("remindme"))["reminders"][0]["active"] is False

    @pytest.mark.asyncio
    async def test_cancel_stops_loop_without_waiting(self, store):
        scheduler = SweepScheduler(store, interval_seconds=3600)
        scheduler.start()
        task = scheduler._task

        scheduler.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert scheduler.running is False
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_timeout_cancels_stuck_tick(self, store):
        await store.write("remindme", {"reminders": [{"id": "r1", "remind_at": PAST, "active": True}]})
        entered = asyncio.Event()

        async def stuck_handler(record, context):
            entered.set()
            await asyncio.Event().wait()

        scheduler = SweepScheduler(store, [_registration(stuck_handler)], interval_seconds=3600)
        scheduler.start()
        await asyncio.wait_for(entered.wait(), timeout=5)

        await scheduler.stop(timeout=0.05)

        assert scheduler.running is False
