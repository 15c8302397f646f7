"""Discord cog for the submit channel and the moderator review cards."""

from __future__ import annotations

import logging
import re
from typing import Optional, Union

import discord
from discord.ext import commands

from tierlist_bot.config import TierlistBotConfig
from tierlist_bot.core.errors import TierlistError
from tierlist_bot.core.event_bus import EventBus
from tierlist_bot.core.event_topics import (
    SUBMISSION_APPROVED,
    SUBMISSION_EDITED,
    SUBMISSION_EXPIRED,
    SUBMISSION_REJECTED,
)
from tierlist_bot.core.intake_gate import IntakeGate
from tierlist_bot.core.models import (
    Approve,
    EditScore,
    ProofAttachment,
    Reject,
    ReviewAction,
    ReviewButton,
    ReviewRequest,
    Reviewer,
    Submission,
    SubmissionCandidate,
    SubmissionStatus,
    parse_custom_id,
)
from tierlist_bot.core.role_utils import reviewer_from
from tierlist_bot.core.submission_engine import REJECT_REASON_MAX_LENGTH, SubmissionEngine
from tierlist_bot.core.tierlist_ui_engine import TierlistUIEngine


logger = logging.getLogger(__name__)

REPLY_LIFETIME_SECONDS = 8.0
ACCEPTED_MESSAGE = "Submission sent to the moderators for review."

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]+")
_HAS_EXTENSION = re.compile(r"\.[a-z0-9]{2,5}$", re.IGNORECASE)


def sanitize_file_name(name: Optional[str], fallback_ext: str = "png") -> str:
    base = _UNSAFE_FILENAME_CHARS.sub("_", name or "").strip("_")[:80]
    if not base:
        return f"screenshot.{fallback_ext}"
    if not _HAS_EXTENSION.search(base):
        return f"{base}.{fallback_ext}"
    return base


class EditScoreModal(discord.ui.Modal, title="Edit score"):
    def __init__(self, cog: "SubmissionCog", submission: Submission) -> None:
        super().__init__()
        self.cog = cog
        self.submission_id = submission.id
        self.score = discord.ui.TextInput(
            label=f"New score (minimum {cog.intake.thresholds.floor})",
            style=discord.TextStyle.short,
            default=str(submission.score),
            required=True,
            max_length=10,
        )
        self.add_item(self.score)

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await self.cog.submit_review_action(interaction, EditScore(self.submission_id, str(self.score.value)))


class RejectReasonModal(discord.ui.Modal, title="Reject reason"):
    def __init__(self, cog: "SubmissionCog", submission: Submission) -> None:
        super().__init__()
        self.cog = cog
        self.submission_id = submission.id
        self.reason = discord.ui.TextInput(
            label="Reason (short)",
            style=discord.TextStyle.paragraph,
            required=True,
            max_length=REJECT_REASON_MAX_LENGTH,
        )
        self.add_item(self.reason)

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await self.cog.submit_review_action(interaction, Reject(self.submission_id, str(self.reason.value)))


class SubmissionCog(commands.Cog):
    """Turns submit-channel posts into review cards and handles their buttons."""

    def __init__(
        self,
        bot: commands.Bot,
        config: TierlistBotConfig,
        intake: IntakeGate,
        engine: SubmissionEngine,
        ui_engine: TierlistUIEngine,
    ) -> None:
        self.bot = bot
        self.config = config
        self.intake = intake
        self.engine = engine
        self.ui = ui_engine

    async def register_hooks(self, event_bus: EventBus) -> None:
        for topic in (SUBMISSION_EDITED, SUBMISSION_APPROVED, SUBMISSION_REJECTED, SUBMISSION_EXPIRED):
            await event_bus.subscribe(topic, self.refresh_review_card)
        for topic in (SUBMISSION_APPROVED, SUBMISSION_REJECTED, SUBMISSION_EXPIRED):
            await event_bus.subscribe(topic, self.notify_member)
            await event_bus.subscribe(topic, self.audit_decision)

    # --------------------------------------------------------------
    # Submit channel
    # --------------------------------------------------------------

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or not self.config.submit_channel_id:
            return
        if message.channel.id != self.config.submit_channel_id:
            return

        attachment = message.attachments[0] if message.attachments else None
        candidate = SubmissionCandidate(
            member_id=message.author.id,
            display_name=getattr(message.author, "display_name", None) or message.author.name,
            text=message.content or "",
            proof=(
                ProofAttachment(
                    url=attachment.url,
                    content_type=attachment.content_type,
                    filename=attachment.filename,
                )
                if attachment is not None
                else None
            ),
            message_url=message.jump_url,
        )

        try:
            submission = self.intake.submit(candidate)
        except TierlistError as exc:
            await self._reply_briefly(message, exc.user_message)
            await self._delete_quietly(message)
            return

        await self.post_review_card(submission, attachment)
        await self._reply_briefly(message, ACCEPTED_MESSAGE)
        await self._delete_quietly(message)

    async def post_review_card(
        self,
        submission: Submission,
        attachment: Optional[discord.Attachment] = None,
    ) -> Optional[discord.Message]:
        """Post the review card; the submission is already committed either way."""
        channel = await self._resolve_channel(self.config.review_channel_id)
        if channel is None:
            logger.warning("Review channel unavailable; submission %s has no review card", submission.id)
            return None

        # Re-host the screenshot on the review card.
        file: Optional[discord.File] = None
        if attachment is not None:
            file_name = sanitize_file_name(f"{submission.id}_{attachment.filename or 'screenshot'}")
            try:
                file = await attachment.to_file(filename=file_name)
                submission.review_image = file_name
            except discord.HTTPException as exc:
                logger.warning("Could not re-host proof for %s, using original URL: %s", submission.id, exc)

        kwargs = {"embed": self.ui.build_review_embed(submission)}
        view = self.ui.build_review_view(submission)
        if view is not None:
            kwargs["view"] = view
        if file is not None:
            kwargs["file"] = file
        try:
            sent = await channel.send(**kwargs)
        except discord.HTTPException as exc:
            logger.warning("Failed to post review card for %s: %s", submission.id, exc)
            return None

        self.engine.link_review_surface(
            submission.id,
            sent.channel.id,
            sent.id,
            review_image=submission.review_image,
        )
        return sent

    # --------------------------------------------------------------
    # Review buttons + modals
    # --------------------------------------------------------------

    @commands.Cog.listener()
    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type is not discord.InteractionType.component:
            return
        request = parse_custom_id((interaction.data or {}).get("custom_id"))
        if request is None:
            return
        await self.handle_review_request(interaction, request)

    async def handle_review_request(self, interaction: discord.Interaction, request: ReviewRequest) -> None:
        reviewer = self._reviewer(interaction.user)
        if request.button is ReviewButton.APPROVE:
            await self.submit_review_action(interaction, Approve(request.submission_id), reviewer=reviewer)
            return

        try:
            submission = await self.engine.check_reviewable(request.submission_id, reviewer)
        except TierlistError as exc:
            await self._reply(interaction, exc.user_message)
            return

        if request.button is ReviewButton.EDIT:
            modal: discord.ui.Modal = EditScoreModal(self, submission)
        else:
            modal = RejectReasonModal(self, submission)
        await interaction.response.send_modal(modal)

    async def submit_review_action(
        self,
        interaction: discord.Interaction,
        action: ReviewAction,
        *,
        reviewer: Optional[Reviewer] = None,
    ) -> None:
        reviewer = reviewer or self._reviewer(interaction.user)
        # Post-commit hooks make several REST calls; answer Discord first.
        if not interaction.response.is_done():
            await interaction.response.defer(ephemeral=True)
        try:
            outcome = await self.engine.handle(action, reviewer)
        except TierlistError as exc:
            await self._reply(interaction, exc.user_message)
            return

        submission = outcome.submission
        if isinstance(action, Approve):
            if outcome.status is SubmissionStatus.APPROVED:
                text = "Approved. Tierlist updated."
            else:
                text = f"Score below {self.intake.thresholds.floor}. Rejected."
        elif isinstance(action, EditScore):
            text = f"Score updated: {submission.score} (tier {submission.tier})."
        else:
            text = "Rejected."
        await self._reply(interaction, text)

    # --------------------------------------------------------------
    # Post-commit hooks
    # --------------------------------------------------------------

    async def refresh_review_card(
        self,
        *,
        submission: Submission,
        reviewer: Optional[Reviewer] = None,
        **_: object,
    ) -> None:
        message = await self._fetch_review_message(submission)
        if message is None:
            return
        edited_by = reviewer.tag if reviewer is not None and submission.is_pending else None
        embed = self.ui.build_review_embed(
            submission,
            extra_fields=self.ui.review_extra_fields(submission, edited_by=edited_by),
        )
        await message.edit(embed=embed, view=self.ui.build_review_view(submission))

    async def notify_member(self, *, submission: Submission, **_: object) -> None:
        user = self.bot.get_user(submission.member_id)
        if user is None:
            try:
                user = await self.bot.fetch_user(submission.member_id)
            except discord.HTTPException:
                return
        delivered = await self.ui.notify_user(member=user, content=self.ui.format_decision_dm(submission))
        if not delivered:
            logger.info("DM delivery failed for %s (DMs closed)", submission.member_id)

    async def audit_decision(
        self,
        *,
        submission: Submission,
        reviewer: Optional[Reviewer] = None,
        **_: object,
    ) -> None:
        by = reviewer.tag if reviewer is not None else "system"
        if submission.status is SubmissionStatus.APPROVED:
            line = (
                f"APPROVE: <@{submission.member_id}> score {submission.score} -> tier {submission.tier} "
                f"(id {submission.id}) by {by}"
            )
        elif submission.status is SubmissionStatus.REJECTED:
            line = (
                f"REJECT: <@{submission.member_id}> score {submission.score} (id {submission.id}) "
                f"by {by} | reason: {submission.reject_reason}"
            )
        else:
            line = f"EXPIRED: <@{submission.member_id}> score {submission.score} (id {submission.id})"
        await self.send_audit_line(line)

    async def send_audit_line(self, text: str) -> None:
        channel = await self._resolve_channel(self.config.log_channel_id)
        if channel is None:
            return
        try:
            await channel.send(text)
        except discord.HTTPException as exc:
            logger.warning("Failed to write audit line: %s", exc)

    # --------------------------------------------------------------
    # Internal helpers
    # --------------------------------------------------------------

    def _reviewer(self, user: Union[discord.User, discord.Member]) -> Reviewer:
        return reviewer_from(user, mod_role_id=self.config.mod_role_id, owner_ids=self.config.owner_ids)

    async def _resolve_channel(self, channel_id: Optional[int]) -> Optional[discord.abc.Messageable]:
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

    async def _fetch_review_message(self, submission: Submission) -> Optional[discord.Message]:
        if not submission.review_channel_id or not submission.review_message_id:
            return None
        channel = await self._resolve_channel(submission.review_channel_id)
        if channel is None:
            return None
        try:
            return await channel.fetch_message(submission.review_message_id)
        except discord.NotFound:
            return None

    async def _reply(self, interaction: discord.Interaction, content: str) -> None:
        if interaction.response.is_done():
            await interaction.followup.send(content, ephemeral=True)
        else:
            await interaction.response.send_message(content, ephemeral=True)

    async def _reply_briefly(self, message: discord.Message, content: str) -> None:
        try:
            await message.reply(content, delete_after=REPLY_LIFETIME_SECONDS)
        except discord.HTTPException as exc:
            logger.debug("Could not reply in submit channel: %s", exc)

    async def _delete_quietly(self, message: discord.Message) -> None:
        try:
            await message.delete()
        except discord.HTTPException as exc:
            logger.debug("Could not delete submit-channel message %s: %s", message.id, exc)


async def setup(bot: commands.Bot) -> None:  # pragma: no cover - dynamic loading guard
    raise RuntimeError("Use TierlistBotRunner to load SubmissionCog")


__all__ = ["EditScoreModal", "RejectReasonModal", "SubmissionCog", "sanitize_file_name"]
