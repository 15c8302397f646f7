"""
Tierlist Cog - published ratings, leaderboard and the /elo commands.

Commands:
- /elo me - Show my rating
- /elo user - Show a player's rating
- /elo pending - List pending submissions (moderators)
- /elo rebuild - Re-render the pinned leaderboard (moderators)
- /elo remove - Remove a player from the tierlist (moderators)
- /elo wipe - Clear all ratings, soft or hard (moderators)
- /elo labels - Rename the five tiers (moderators)
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from tierlist_bot.config import TierlistBotConfig
from tierlist_bot.core.errors import Forbidden, TierlistError
from tierlist_bot.core.event_bus import EventBus
from tierlist_bot.core.event_topics import (
    RATING_CARDS_PURGE,
    RATING_REMOVED,
    RATING_RETIERED,
    RATINGS_WIPED,
    SUBMISSION_APPROVED,
    TIER_LABELS_UPDATED,
)
from tierlist_bot.core.leaderboard import build_leaderboard
from tierlist_bot.core.models import Rating, Reviewer, Submission, WipeMode
from tierlist_bot.core.rating_store import RatingStore
from tierlist_bot.core.role_utils import is_moderator
from tierlist_bot.core.storage_engine import TierlistStorageEngine
from tierlist_bot.core.submission_engine import SubmissionEngine
from tierlist_bot.core.tierlist_ui_engine import LEADERBOARD_TITLE, TierlistUIEngine


logger = logging.getLogger(__name__)

PENDING_PAGE_SIZE = 15
EMPTY_LEADERBOARD_TEXT = "Empty so far."


class TierlistCog(commands.Cog):
    """Owns the tierlist channel: rating cards, the pinned board and tier roles."""

    elo = app_commands.Group(name="elo", description="Score tierlist commands")

    def __init__(
        self,
        bot: commands.Bot,
        config: TierlistBotConfig,
        storage: TierlistStorageEngine,
        ratings: RatingStore,
        engine: SubmissionEngine,
        ui_engine: TierlistUIEngine,
        event_bus: EventBus,
    ) -> None:
        self.bot = bot
        self.config = config
        self.storage = storage
        self.ratings = ratings
        self.engine = engine
        self.ui = ui_engine
        self.event_bus = event_bus

    async def register_hooks(self, event_bus: EventBus) -> None:
        await event_bus.subscribe(SUBMISSION_APPROVED, self.upsert_card)
        await event_bus.subscribe(SUBMISSION_APPROVED, self.grant_role)
        await event_bus.subscribe(SUBMISSION_APPROVED, self.refresh_leaderboard_hook)
        await event_bus.subscribe(RATING_REMOVED, self.delete_card)
        await event_bus.subscribe(RATING_REMOVED, self.release_role)
        await event_bus.subscribe(RATING_REMOVED, self.refresh_leaderboard_hook)
        await event_bus.subscribe(RATING_RETIERED, self.upsert_card)
        await event_bus.subscribe(RATING_CARDS_PURGE, self.purge_cards)
        await event_bus.subscribe(RATINGS_WIPED, self.release_roles)
        await event_bus.subscribe(RATINGS_WIPED, self.refresh_leaderboard_hook)
        await event_bus.subscribe(RATINGS_WIPED, self.audit_wipe)
        await event_bus.subscribe(TIER_LABELS_UPDATED, self.refresh_leaderboard_hook)

    # --------------------------------------------------------------
    # Slash commands
    # --------------------------------------------------------------

    @elo.command(name="me", description="Show my rating")
    async def me(self, interaction: discord.Interaction) -> None:
        rating = self.ratings.get(interaction.user.id)
        if rating is None:
            await self._reply(interaction, "You are not on the tierlist.")
            return
        labels = self.storage.get_tier_labels()
        await self._reply(interaction, self.ui.format_rating_line(rating, labels, include_name=False))

    @elo.command(name="user", description="Show a player's rating")
    @app_commands.describe(target="Player")
    async def user(self, interaction: discord.Interaction, target: discord.User) -> None:
        rating = self.ratings.get(target.id)
        if rating is None:
            await self._reply(interaction, "This player is not on the tierlist.")
            return
        labels = self.storage.get_tier_labels()
        await self._reply(interaction, self.ui.format_rating_line(rating, labels))

    @elo.command(name="pending", description="List pending submissions (moderators)")
    async def pending(self, interaction: discord.Interaction) -> None:
        if not await self._ensure_moderator(interaction):
            return
        page = self.engine.list_pending(PENDING_PAGE_SIZE)
        if not page.submissions:
            await self._reply(interaction, "No pending submissions.")
            return
        lines = self.ui.format_pending_lines(page.submissions)
        await self._reply(
            interaction,
            f"Pending ({len(page.submissions)} of {page.total}):\n" + "\n".join(lines),
        )

    @elo.command(name="rebuild", description="Re-render the pinned leaderboard (moderators)")
    async def rebuild(self, interaction: discord.Interaction) -> None:
        if not await self._ensure_moderator(interaction):
            return
        await interaction.response.defer(ephemeral=True)
        try:
            message = await self.refresh_leaderboard()
        except discord.HTTPException as exc:
            logger.warning("Leaderboard rebuild failed: %s", exc)
            await self._reply(interaction, f"Rebuild failed: {exc}")
            return
        if message is None:
            await self._reply(interaction, "Tierlist channel is not configured or not reachable.")
            return
        await self._reply(interaction, "Leaderboard rebuilt.")

    @elo.command(name="remove", description="Remove a player from the tierlist (moderators)")
    @app_commands.describe(target="Player")
    async def remove(self, interaction: discord.Interaction, target: discord.User) -> None:
        if not await self._ensure_moderator(interaction):
            return
        await interaction.response.defer(ephemeral=True)
        rating = await self.ratings.remove(target.id, actor=str(interaction.user))
        if rating is None:
            await self._reply(interaction, "This player is not on the tierlist.")
            return
        await self._reply(interaction, f"Removed <@{target.id}> from the tierlist.")

    @elo.command(name="wipe", description="Clear all ratings (moderators)")
    @app_commands.describe(
        mode="soft = data only, hard = data and rating cards",
        confirm="Type WIPE to confirm",
    )
    @app_commands.choices(
        mode=[
            app_commands.Choice(name="soft", value=WipeMode.SOFT.value),
            app_commands.Choice(name="hard", value=WipeMode.HARD.value),
        ]
    )
    async def wipe(
        self,
        interaction: discord.Interaction,
        mode: app_commands.Choice[str],
        confirm: str,
    ) -> None:
        if not await self._ensure_moderator(interaction):
            return
        await interaction.response.defer(ephemeral=True)
        try:
            removed = await self.ratings.wipe_all(WipeMode(mode.value), confirm, actor=str(interaction.user))
        except TierlistError as exc:
            await self._reply(interaction, exc.user_message)
            return
        await self._reply(interaction, f"Ratings cleared ({len(removed)}). mode={mode.value}")

    @elo.command(name="labels", description="Rename the tiers (moderators)")
    @app_commands.describe(
        t1="Tier 1 name",
        t2="Tier 2 name",
        t3="Tier 3 name",
        t4="Tier 4 name",
        t5="Tier 5 name",
    )
    async def labels(
        self,
        interaction: discord.Interaction,
        t1: str,
        t2: str,
        t3: str,
        t4: str,
        t5: str,
    ) -> None:
        if not await self._ensure_moderator(interaction):
            return
        await interaction.response.defer(ephemeral=True)
        labels = self.storage.set_tier_labels({1: t1, 2: t2, 3: t3, 4: t4, 5: t5})
        await self.event_bus.emit(TIER_LABELS_UPDATED, labels=labels)
        await self._reply(interaction, "Tier names updated.")

    # --------------------------------------------------------------
    # Leaderboard
    # --------------------------------------------------------------

    async def refresh_leaderboard(self) -> Optional[discord.Message]:
        """Re-render the pinned board from the current ratings."""
        channel = await self._tierlist_channel()
        if channel is None:
            return None
        message = await self._ensure_index_message(channel)
        groups = build_leaderboard(self.ratings.all(), self.storage.get_tier_labels())
        await message.edit(embed=self.ui.build_leaderboard_embed(groups))
        return message

    async def refresh_leaderboard_hook(self, **_: object) -> None:
        await self.refresh_leaderboard()

    async def _ensure_index_message(self, channel: discord.abc.Messageable) -> discord.Message:
        message_id = self.storage.get_index_message_id()
        if message_id:
            try:
                return await channel.fetch_message(message_id)
            except discord.NotFound:
                logger.info("Leaderboard message %s is gone; posting a new one", message_id)

        embed = discord.Embed(title=LEADERBOARD_TITLE, description=EMPTY_LEADERBOARD_TEXT)
        message = await channel.send(embed=embed)
        try:
            await message.pin()
        except discord.HTTPException as exc:
            logger.warning("Could not pin leaderboard message: %s", exc)
        self.storage.set_index_message_id(message.id)
        return message

    # --------------------------------------------------------------
    # Rating cards
    # --------------------------------------------------------------

    async def upsert_card(
        self,
        *,
        submission: Optional[Submission] = None,
        reviewer: Optional[Reviewer] = None,
        rating: Optional[Rating] = None,
        **_: object,
    ) -> None:
        if rating is None and submission is not None:
            rating = self.ratings.get(submission.member_id)
        if rating is None:
            return
        channel = await self._tierlist_channel()
        if channel is None:
            return

        avatar_url = await self._avatar_url(rating.member_id)
        if avatar_url:
            rating.avatar_url = avatar_url
        embed = self.ui.build_rating_card(
            rating,
            self.storage.get_tier_labels(),
            approved_by=reviewer.tag if reviewer is not None else None,
        )

        if rating.card_message_id:
            try:
                card = await channel.fetch_message(rating.card_message_id)
                await card.edit(embed=embed)
                self.ratings.attach_card(rating.member_id, card.id, avatar_url=avatar_url)
                return
            except discord.NotFound:
                logger.info("Rating card for %s is gone; posting a new one", rating.member_id)

        card = await channel.send(embed=embed)
        self.ratings.attach_card(rating.member_id, card.id, avatar_url=avatar_url)

    async def delete_card(self, *, rating: Rating, **_: object) -> None:
        await self._delete_cards([rating])

    async def purge_cards(self, *, ratings: List[Rating], **_: object) -> None:
        await self._delete_cards(ratings)

    async def _delete_cards(self, ratings: Iterable[Rating]) -> None:
        with_cards = [rating for rating in ratings if rating.card_message_id]
        if not with_cards:
            return
        channel = await self._tierlist_channel()
        if channel is None:
            return
        for rating in with_cards:
            try:
                card = await channel.fetch_message(rating.card_message_id)
                await card.delete()
            except discord.HTTPException as exc:
                logger.warning("Could not delete rating card for %s: %s", rating.member_id, exc)

    # --------------------------------------------------------------
    # Tierlist role
    # --------------------------------------------------------------

    async def grant_role(self, *, submission: Submission, **_: object) -> None:
        await self.set_tierlist_role(submission.member_id, True, reason="Approved to tierlist")

    async def release_role(self, *, rating: Rating, **_: object) -> None:
        await self.set_tierlist_role(rating.member_id, False, reason="Removed from tierlist")

    async def release_roles(self, *, ratings: List[Rating], **_: object) -> None:
        for rating in ratings:
            await self.set_tierlist_role(rating.member_id, False, reason="Wipe ratings")

    async def sync_roles(self) -> None:
        """Give every rated member the tierlist role (used at startup)."""
        for rating in self.ratings.all():
            await self.set_tierlist_role(rating.member_id, True, reason="Sync from database")

    async def set_tierlist_role(self, member_id: int, should_have: bool, *, reason: str) -> None:
        if not self.config.tierlist_role_id:
            return
        guild = await self._guild()
        if guild is None:
            return
        role = guild.get_role(self.config.tierlist_role_id)
        if role is None:
            logger.warning("Tierlist role %s not found in guild %s", self.config.tierlist_role_id, guild.id)
            return
        member = guild.get_member(member_id)
        if member is None:
            try:
                member = await guild.fetch_member(member_id)
            except discord.HTTPException:
                return

        has_role = any(getattr(r, "id", None) == role.id for r in member.roles)
        try:
            if should_have and not has_role:
                await member.add_roles(role, reason=reason)
            elif not should_have and has_role:
                await member.remove_roles(role, reason=reason)
        except discord.Forbidden:
            logger.warning("Missing permissions to manage tierlist role in guild %s", guild.id)
        except discord.HTTPException as exc:
            logger.warning("Failed to update tierlist role for %s: %s", member_id, exc)

    # --------------------------------------------------------------
    # Audit
    # --------------------------------------------------------------

    async def audit_wipe(self, *, ratings: List[Rating], mode: str, actor: Optional[str] = None, **_: object) -> None:
        if not self.config.log_channel_id:
            return
        channel = await self._channel(self.config.log_channel_id)
        if channel is None:
            return
        await channel.send(f"WIPE_RATINGS ({mode}, {len(ratings)} ratings) by {actor or 'unknown'}")

    # --------------------------------------------------------------
    # Internal helpers
    # --------------------------------------------------------------

    async def _ensure_moderator(self, interaction: discord.Interaction) -> bool:
        if is_moderator(interaction.user, mod_role_id=self.config.mod_role_id, owner_ids=self.config.owner_ids):
            return True
        await self._reply(interaction, Forbidden().user_message)
        return False

    async def _reply(self, interaction: discord.Interaction, content: str) -> None:
        if interaction.response.is_done():
            await interaction.followup.send(content, ephemeral=True)
        else:
            await interaction.response.send_message(content, ephemeral=True)

    async def _channel(self, channel_id: Optional[int]):
        if not channel_id:
            return None
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.bot.fetch_channel(channel_id)
            except discord.HTTPException as exc:
                logger.warning("Unable to fetch channel %s: %s", channel_id, exc)
                return None
        return channel

    async def _tierlist_channel(self):
        return await self._channel(self.config.tierlist_channel_id)

    async def _guild(self) -> Optional[discord.Guild]:
        if not self.config.guild_id:
            return None
        guild = self.bot.get_guild(self.config.guild_id)
        if guild is None:
            try:
                guild = await self.bot.fetch_guild(self.config.guild_id)
            except discord.HTTPException:
                return None
        return guild

    async def _avatar_url(self, member_id: int) -> Optional[str]:
        user = self.bot.get_user(member_id)
        if user is None:
            try:
                user = await self.bot.fetch_user(member_id)
            except discord.HTTPException:
                return None
        return user.display_avatar.replace(size=128).url


async def setup(bot: commands.Bot) -> None:  # pragma: no cover - dynamic loading guard
    raise RuntimeError("Use TierlistBotRunner to load TierlistCog")


__all__ = ["TierlistCog"]
