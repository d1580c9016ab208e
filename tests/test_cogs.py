from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from synapsebot.cogs import scheduler_cog, storage_cmds
from synapsebot.scheduler.sweep_scheduler import SweepScheduler
from synapsebot.storage.errors import StorageError


class AppCtx:
    def __init__(self, administrator: bool = True):
        self.author = SimpleNamespace(guild_permissions=SimpleNamespace(administrator=administrator))
        self.responses = []
        self.followups = []
        self.deferred = False

    async def respond(self, *args, **kwargs):
        self.responses.append(kwargs)

    async def defer(self, *args, **kwargs):
        self.deferred = True

    async def send_followup(self, *args, **kwargs):
        self.followups.append(kwargs)


def _fake_scheduler(running: bool = False) -> MagicMock:
    scheduler = MagicMock()
    scheduler.running = running
    scheduler.interval_seconds = 60.0
    scheduler.stop = AsyncMock()
    return scheduler


class TestSweepSchedulerCog:
    def test_setup_registers_cog(self):
        captured = {}
        fake_bot = SimpleNamespace(add_cog=lambda cog: captured.setdefault("cog", cog))

        scheduler_cog.setup(fake_bot, _fake_scheduler())

        assert isinstance(captured["cog"], scheduler_cog.SweepSchedulerCog)

    @pytest.mark.asyncio
    async def test_on_ready_starts_scheduler_once(self):
        scheduler = _fake_scheduler()
        cog = scheduler_cog.SweepSchedulerCog(SimpleNamespace(), scheduler)

        await cog.on_ready()
        scheduler.running = True
        await cog.on_ready()

        scheduler.start.assert_called_once()

    def test_cog_unload_cancels_scheduler(self):
        scheduler = _fake_scheduler(running=True)
        cog = scheduler_cog.SweepSchedulerCog(SimpleNamespace(), scheduler)

        cog.cog_unload()

        scheduler.cancel.assert_called_once_with()
        scheduler.stop.assert_not_awaited()

    def test_cog_unload_outside_event_loop(self, store):
        """Unloading works without a running loop and leaves the scheduler stopped."""
        scheduler = SweepScheduler(store)
        cog = scheduler_cog.SweepSchedulerCog(SimpleNamespace(), scheduler)

        cog.cog_unload()

        assert scheduler.running is False


class TestStorageCog:
    def test_setup_registers_cog(self, store):
        captured = {}
        fake_bot = SimpleNamespace(add_cog=lambda cog: captured.setdefault("cog", cog))

        storage_cmds.setup(fake_bot, store)

        assert isinstance(captured["cog"], storage_cmds.StorageCog)

    @pytest.mark.asyncio
    async def test_stats_embed(self, store):
        await store.write("economy", {"users": {}})
        await store.write("economy", {"users": {"1": {}}})
        cog = storage_cmds.StorageCog(SimpleNamespace(), store)
        ctx = AppCtx()

        await storage_cmds.StorageCog.stats.callback(cog, ctx)

        response = ctx.responses[0]
        assert response["ephemeral"] is True
        fields = {f.name: f.value for f in response["embed"].fields}
        assert fields["Documents"] == "1"
        assert fields["Cached"] == "1"
        assert fields["Backups"] == "1"

    @pytest.mark.asyncio
    async def test_non_admin_is_refused(self, store):
        store.clear_cache = MagicMock()
        cog = storage_cmds.StorageCog(SimpleNamespace(), store)
        ctx = AppCtx(administrator=False)

        await storage_cmds.StorageCog.clear_cache.callback(cog, ctx)

        store.clear_cache.assert_not_called()
        assert ctx.responses == [{"content": storage_cmds.ADMIN_ONLY, "ephemeral": True}]

    @pytest.mark.asyncio
    async def test_clear_cache(self, store):
        await store.write("economy", {})
        cog = storage_cmds.StorageCog(SimpleNamespace(), store)
        ctx = AppCtx()

        await storage_cmds.StorageCog.clear_cache.callback(cog, ctx)

        assert (await store.get_stats()).cached_documents == 0
        assert ctx.responses[0]["ephemeral"] is True

    @pytest.mark.asyncio
    async def test_snapshot(self, store):
        await store.write("economy", {})
        cog = storage_cmds.StorageCog(SimpleNamespace(), store)
        ctx = AppCtx()

        await storage_cmds.StorageCog.snapshot.callback(cog, ctx)

        assert ctx.deferred is True
        assert len(store.backups.list_snapshots()) == 1
        assert ctx.followups[0]["content"].startswith("✅ Snapshot")

    @pytest.mark.asyncio
    async def test_failures_use_generic_message(self, store):
        store.get_stats = AsyncMock(side_effect=StorageError("/secret/path unreadable"))
        store.snapshot = AsyncMock(side_effect=OSError("/secret/path full"))
        cog = storage_cmds.StorageCog(SimpleNamespace(), store)
        ctx = AppCtx()

        await storage_cmds.StorageCog.stats.callback(cog, ctx)
        await storage_cmds.StorageCog.snapshot.callback(cog, ctx)

        assert ctx.responses[0]["content"] == storage_cmds.GENERIC_ERROR
        assert ctx.followups[0]["content"] == storage_cmds.GENERIC_ERROR

    def test_group_defaults_to_administrators(self):
        permissions = storage_cmds.StorageCog.storage.default_member_permissions
        assert permissions == discord.Permissions(administrator=True)

    def test_format_bytes(self):
        assert storage_cmds._format_bytes(512) == "512 B"
        assert storage_cmds._format_bytes(2048) == "2.0 KB"
        assert storage_cmds._format_bytes(3 * 1024 * 1024) == "3.0 MB"
