"""Async bootstrapper for TierlistBot."""

from __future__ import annotations

import asyncio
import logging
import os

import discord
from discord.ext import commands
from dotenv import load_dotenv

from tierlist_bot.config import TierlistBotConfig
from tierlist_bot.core.error_engine import ErrorEngine
from tierlist_bot.core.event_bus import EventBus
from tierlist_bot.core.event_topics import HOOK_ERROR
from tierlist_bot.core.intake_gate import IntakeGate
from tierlist_bot.core.logging_utils import configure_library_logging
from tierlist_bot.core.rating_store import RatingStore
from tierlist_bot.core.storage_engine import TierlistStorageEngine
from tierlist_bot.core.submission_engine import SubmissionEngine
from tierlist_bot.core.tierlist_ui_engine import TierlistUIEngine
from tierlist_bot.cogs.submission_cog import SubmissionCog
from tierlist_bot.cogs.tierlist_cog import TierlistCog


logger = logging.getLogger(__name__)


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


class TierlistBotRunner:
    """Full lifecycle manager for the discord.py bot instance."""

    def __init__(self) -> None:
        load_dotenv()
        self.config = TierlistBotConfig.from_env()
        configure_library_logging(level=self.config.log_level)
        self.error_engine = ErrorEngine()
        self.error_engine.catch_uncaught()

        intents = discord.Intents.default()
        intents.message_content = True
        intents.members = True
        intents.guilds = True

        self.bot = commands.Bot(
            command_prefix=self.config.command_prefix,
            intents=intents,
            help_command=None,
        )

        thresholds = self.config.thresholds
        self.storage = TierlistStorageEngine(self.config.db_path)
        self.event_bus = EventBus()
        self.ratings = RatingStore(self.storage, thresholds, self.event_bus)
        self.intake = IntakeGate(self.storage, thresholds, cooldown=self.config.cooldown)
        self.engine = SubmissionEngine(
            self.storage,
            self.ratings,
            thresholds,
            self.event_bus,
            expiry=self.config.expiry,
            retention=self.config.retention,
        )
        ui_engine = TierlistUIEngine(
            submit_channel_hint=f"<#{self.config.submit_channel_id}>" if self.config.submit_channel_id else "",
            review_channel_hint=f"<#{self.config.review_channel_id}>" if self.config.review_channel_id else "",
        )

        self.submission_cog = SubmissionCog(self.bot, self.config, self.intake, self.engine, ui_engine)
        self.tierlist_cog = TierlistCog(
            self.bot,
            self.config,
            self.storage,
            self.ratings,
            self.engine,
            ui_engine,
            self.event_bus,
        )

        async def setup_hook() -> None:
            guild = discord.Object(id=self.config.guild_id) if self.config.guild_id else None
            try:
                if _env_flag("TIERLIST_WIPE_COMMANDS"):
                    logger.warning(
                        "TIERLIST_WIPE_COMMANDS is enabled – clearing all registered "
                        "slash commands for TierlistBot from Discord."
                    )
                    self.bot.tree.clear_commands(guild=None)
                    await self.bot.tree.sync()
                    if guild is not None:
                        self.bot.tree.clear_commands(guild=guild)
                        await self.bot.tree.sync(guild=guild)
                    logger.info(
                        "TierlistBot slash commands wiped from Discord. "
                        "Restart without TIERLIST_WIPE_COMMANDS to resync fresh commands."
                    )
                    return

                await self.event_bus.subscribe(HOOK_ERROR, self.error_engine.on_hook_error)
                await self.bot.add_cog(self.submission_cog)
                await self.bot.add_cog(self.tierlist_cog)
                await self.submission_cog.register_hooks(self.event_bus)
                await self.tierlist_cog.register_hooks(self.event_bus)

                if guild is not None:
                    self.bot.tree.copy_global_to(guild=guild)
                    await self.bot.tree.sync(guild=guild)
                else:
                    await self.bot.tree.sync()
                logger.info("Slash commands synced")
            except discord.HTTPException as exc:
                logger.warning("Failed to sync slash commands: %s", exc)

        self.bot.setup_hook = setup_hook  # type: ignore[assignment]

        @self.bot.event  # type: ignore[misc]
        async def on_ready() -> None:
            guild_names = ", ".join(guild.name for guild in self.bot.guilds)
            bot_user = self.bot.user
            user_id = bot_user.id if bot_user else "unknown"
            logger.info("TierlistBot connected as %s (%s) in %s", bot_user, user_id, guild_names)
            await self.on_ready_tasks()

    async def on_ready_tasks(self) -> None:
        """Bring the tierlist channel and roles back in line with the database."""
        removed = await self.ratings.reconcile_tiers()
        if removed:
            logger.warning("Unpublished %d ratings below the current tier floors", len(removed))
        try:
            await self.tierlist_cog.refresh_leaderboard()
        except discord.HTTPException as exc:
            logger.warning("Initial leaderboard refresh failed: %s", exc)
        await self.tierlist_cog.sync_roles()
        self.engine.prune_resolved()

    async def start(self) -> None:
        await self.bot.start(self.config.discord_token)

    async def close(self) -> None:
        await self.bot.close()
        self.storage.close()


def run_tierlist_bot() -> None:
    runner = TierlistBotRunner()
    try:
        asyncio.run(runner.start())
    except KeyboardInterrupt:
        logger.info("TierlistBot interrupted by user")
    finally:
        runner.storage.close()


__all__ = ["TierlistBotRunner", "run_tierlist_bot"]
