"""
Storage administration commands.

All responses are ephemeral. Failures are logged with detail and answered
with a generic message so file paths never reach Discord.
"""

import discord
from discord.ext import commands

from synapsebot.storage.errors import StorageError
from synapsebot.storage.file_store import FileStore
from synapsebot.util.logger import get_logger

logger = get_logger("storage_commands")

GENERIC_ERROR = "❌ Storage operation failed. Check the bot logs for details."
ADMIN_ONLY = "❌ Only server administrators can use storage commands."


async def _ensure_admin(application_context: discord.ApplicationContext) -> bool:
    permissions = getattr(application_context.author, "guild_permissions", None)
    if permissions is not None and permissions.administrator:
        return True
    await application_context.respond(content=ADMIN_ONLY, ephemeral=True)
    return False


def _format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


class StorageCog(commands.Cog):
    """Cog for inspecting and maintaining the file store."""

    storage = discord.SlashCommandGroup(
        "storage",
        "Inspect and maintain the bot's data files",
        default_member_permissions=discord.Permissions(administrator=True),
    )

    def __init__(self, bot: discord.Bot, store: FileStore):
        self.bot = bot
        self.store = store

    @storage.command(name="stats", description="Show document, cache and backup counts")
    async def stats(self, application_context: discord.ApplicationContext) -> None:
        if not await _ensure_admin(application_context):
            return
        try:
            stats = await self.store.get_stats()
        except StorageError as exc:
            logger.error("[STORAGE] Failed to collect stats: %s", exc)
            await application_context.respond(content=GENERIC_ERROR, ephemeral=True)
            return

        embed = discord.Embed(title="Storage Stats", color=discord.Color.blue())
        embed.add_field(name="Documents", value=str(stats.total_documents))
        embed.add_field(name="Size", value=_format_bytes(stats.total_bytes))
        embed.add_field(name="Cached", value=str(stats.cached_documents))
        embed.add_field(name="Backups", value=str(stats.total_backups))
        await application_context.respond(embed=embed, ephemeral=True)

    @storage.command(name="clear_cache", description="Drop cached documents so the next read hits disk")
    async def clear_cache(self, application_context: discord.ApplicationContext) -> None:
        if not await _ensure_admin(application_context):
            return
        self.store.clear_cache()
        logger.info("[STORAGE] Cache cleared by %s", application_context.author)
        await application_context.respond(content="✅ Storage cache cleared.", ephemeral=True)

    @storage.command(name="snapshot", description="Copy every document into a new snapshot folder")
    async def snapshot(self, application_context: discord.ApplicationContext) -> None:
        if not await _ensure_admin(application_context):
            return
        await application_context.defer(ephemeral=True)
        try:
            folder = await self.store.snapshot()
        except (StorageError, OSError) as exc:
            logger.error("[STORAGE] Snapshot failed: %s", exc)
            await application_context.send_followup(content=GENERIC_ERROR, ephemeral=True)
            return

        logger.info("[STORAGE] Snapshot %s created by %s", folder.name, application_context.author)
        await application_context.send_followup(content=f"✅ Snapshot `{folder.name}` created.", ephemeral=True)


def setup(bot: discord.Bot, store: FileStore) -> None:
    bot.add_cog(StorageCog(bot, store))
