"""
SynapseBot
==========

A Discord community bot whose moderation records, reminders, economy and
levels live in flat JSON documents. A background sweep lifts expired
punishments and delivers due reminders.
"""

import os
import sys
from pathlib import Path

def resolve_base_dir() -> Path:
    """Determine the base directory of the project.
    Resolution order:
    1. SYNAPSE_HOME environment variable, if set.
    2. If running in a frozen/compiled context (e.g., PyInstaller, Nuitka), use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("SYNAPSE_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]

BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
from dataclasses import dataclass

import discord
from dotenv import load_dotenv

from synapsebot.cogs import scheduler_cog, storage_cmds
from synapsebot.configuration.app_configuration import AppConfig, app_config
from synapsebot.moderation.gateway import DiscordModerationGateway
from synapsebot.notifications.discord_sink import DiscordNotificationSink
from synapsebot.scheduler.sweep_jobs import build_default_registrations
from synapsebot.scheduler.sweep_scheduler import SweepScheduler
from synapsebot.storage.file_store import FileStore, build_file_store
from synapsebot.util.logger import get_logger, handle_exception


logger = get_logger("main")


@dataclass
class Runtime:
    """Everything the running bot owns, so shutdown can reach it."""
    bot: discord.Bot
    store: FileStore
    scheduler: SweepScheduler


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Intents for guild, member and message events."""
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True
    intents.messages = True
    intents.message_content = True
    return intents


def build_runtime(config: AppConfig = app_config) -> Runtime:
    """Create the bot and its services and register every cog."""
    bot = discord.Bot(intents=build_intents())
    store = build_file_store(config.storage)

    sweeps = config.sweeps
    registrations = build_default_registrations(
        store,
        DiscordNotificationSink(bot),
        DiscordModerationGateway(bot),
        sweeps,
        modlog_channel_id=config.modlog_channel_id,
    )
    scheduler = SweepScheduler(store, registrations, interval_seconds=sweeps.interval_seconds)

    scheduler_cog.setup(bot, scheduler)
    storage_cmds.setup(bot, store)
    logger.info("All cogs loaded successfully.")

    return Runtime(bot=bot, store=store, scheduler=scheduler)


async def start_bot(bot: discord.Bot, token: str) -> None:
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(runtime: Runtime) -> None:
    """Stop the sweep scheduler, then close the Discord connection."""
    try:
        await runtime.scheduler.stop(timeout=scheduler_cog.STOP_TIMEOUT_SECONDS)
    except Exception as exc:
        logger.exception("Error while stopping the sweep scheduler: %s", exc)

    if not runtime.bot.is_closed():
        try:
            await runtime.bot.close()
        except Exception as exc:
            logger.exception("Error while closing the Discord connection: %s", exc)

    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the bot and its services, returning an exit code."""
    token = load_environment()

    try:
        runtime = build_runtime()
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        return 1

    exit_code = 0
    try:
        await start_bot(runtime.bot, token)
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(runtime)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process exit code."""
    logger.info("Starting SynapseBot…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.excepthook = handle_exception
    print(f"Exited with code: {main()}")
