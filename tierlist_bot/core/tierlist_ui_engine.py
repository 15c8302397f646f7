"""UI helpers for presenting submissions, rating cards and the leaderboard."""

from __future__ import annotations

from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

import discord

from .leaderboard import TierGroup
from .models import Rating, ReviewButton, ReviewRequest, Submission, SubmissionStatus

LEADERBOARD_TITLE = "TIERLIST (auto)"
EMPTY_TIER_MARKER = "—"
FIELD_VALUE_LIMIT = 1024

_STATUS_COLOURS = {
    SubmissionStatus.PENDING: discord.Colour.blurple(),
    SubmissionStatus.APPROVED: discord.Colour.green(),
    SubmissionStatus.REJECTED: discord.Colour.red(),
    SubmissionStatus.EXPIRED: discord.Colour.dark_grey(),
}

ExtraField = Tuple[str, str]


class TierlistUIEngine:
    """Formatting helpers that keep discord.py concerns outside the engines."""

    def __init__(self, *, submit_channel_hint: str = "", review_channel_hint: str = "") -> None:
        self.submit_channel_hint = submit_channel_hint
        self.review_channel_hint = review_channel_hint

    # --------------------------------------------------------------
    # Review cards
    # --------------------------------------------------------------

    def build_review_embed(
        self,
        submission: Submission,
        *,
        extra_fields: Sequence[ExtraField] = (),
    ) -> discord.Embed:
        lines = [
            f"Player: <@{submission.member_id}> ({submission.display_name})",
            f"Score: **{submission.score}**",
            f"Tier (by score): **{submission.tier if submission.tier is not None else EMPTY_TIER_MARKER}**",
        ]
        if submission.message_url:
            lines.append(f"Message: [link]({submission.message_url})")
        lines.append(f"ID: `{submission.id}`")

        embed = discord.Embed(
            title=f"Score submission ({submission.status.value})",
            description="\n".join(lines),
            colour=_STATUS_COLOURS[submission.status],
        )
        if submission.review_image:
            embed.set_image(url=f"attachment://{submission.review_image}")
        else:
            embed.set_image(url=submission.proof_url)
        for name, value in extra_fields:
            embed.add_field(name=name, value=self._truncate(value), inline=False)
        if submission.reviewed_by:
            embed.set_footer(text=f"Reviewed by {submission.reviewed_by}")
        return embed

    def build_review_view(self, submission: Submission) -> Optional[discord.ui.View]:
        """Buttons for a pending card; resolved cards get no components."""
        if not submission.is_pending:
            return None
        view = discord.ui.View(timeout=None)
        for button, label, style in (
            (ReviewButton.APPROVE, "Approve", discord.ButtonStyle.success),
            (ReviewButton.EDIT, "Edit score", discord.ButtonStyle.primary),
            (ReviewButton.REJECT, "Reject", discord.ButtonStyle.danger),
        ):
            request = ReviewRequest(button=button, submission_id=submission.id)
            view.add_item(discord.ui.Button(label=label, style=style, custom_id=request.custom_id))
        return view

    def review_extra_fields(self, submission: Submission, *, edited_by: Optional[str] = None) -> List[ExtraField]:
        fields: List[ExtraField] = []
        if submission.status is SubmissionStatus.REJECTED and submission.reject_reason:
            fields.append(("Reason", submission.reject_reason))
        if edited_by:
            fields.append(("Edited", f"Score corrected by {edited_by}"))
        return fields

    # --------------------------------------------------------------
    # Leaderboard + rating cards
    # --------------------------------------------------------------

    def build_leaderboard_embed(self, groups: Iterable[TierGroup]) -> discord.Embed:
        embed = discord.Embed(title=LEADERBOARD_TITLE, colour=discord.Colour.gold())
        hints = [hint for hint in (self.submit_channel_hint, self.review_channel_hint) if hint]
        if hints:
            embed.set_footer(text=" • ".join(hints))
        for group in groups:
            embed.add_field(name=group.label, value=self.format_tier_group(group), inline=False)
        return embed

    def format_tier_group(self, group: TierGroup) -> str:
        if group.is_empty:
            return EMPTY_TIER_MARKER
        lines: List[str] = []
        used = 0
        for index, rating in enumerate(group.entries, start=1):
            line = f"{index}. <@{rating.member_id}> ({rating.display_name}) — **{rating.score}**"
            hidden = group.total - index
            # Room for the overflow line has to stay free while rows remain.
            reserve = len(f"\n+{hidden} more") if hidden else 0
            if used + len(line) + (1 if lines else 0) + reserve > FIELD_VALUE_LIMIT:
                break
            used += len(line) + (1 if lines else 0)
            lines.append(line)
        hidden = group.total - len(lines)
        if hidden:
            lines.append(f"+{hidden} more")
        return "\n".join(lines)

    def build_rating_card(
        self,
        rating: Rating,
        labels: Mapping[int, str],
        *,
        approved_by: Optional[str] = None,
    ) -> discord.Embed:
        embed = discord.Embed(title=f"Score: {rating.score}", colour=discord.Colour.gold())
        embed.set_author(
            name=f"{rating.display_name} • {labels.get(rating.tier, str(rating.tier))}",
            icon_url=rating.avatar_url or None,
        )
        embed.add_field(name="Tier", value=f"**{rating.tier}**", inline=True)
        embed.add_field(name="Score", value=f"**{rating.score}**", inline=True)
        embed.add_field(
            name="Proof",
            value=f"[screenshot]({rating.proof_url})" if rating.proof_url else EMPTY_TIER_MARKER,
            inline=True,
        )
        if rating.proof_url:
            embed.set_image(url=rating.proof_url)
        if approved_by:
            embed.set_footer(text=f"Approved by {approved_by}")
        return embed

    def format_rating_line(self, rating: Rating, labels: Mapping[int, str], *, include_name: bool = True) -> str:
        who = f"<@{rating.member_id}>"
        if include_name:
            who = f"{who} ({rating.display_name})"
        label = labels.get(rating.tier, str(rating.tier))
        return f"Player: {who}\nScore: **{rating.score}**\nTier: **{rating.tier}** ({label})"

    def format_pending_lines(self, submissions: Iterable[Submission]) -> List[str]:
        return [
            f"• <@{submission.member_id}> score **{submission.score}** (id `{submission.id}`)"
            for submission in submissions
        ]

    # --------------------------------------------------------------
    # Member notifications
    # --------------------------------------------------------------

    def format_decision_dm(self, submission: Submission) -> str:
        if submission.status is SubmissionStatus.APPROVED:
            return (
                f"Approved.\nScore: {submission.score}\nTier: {submission.tier}\n"
                f"Proof: {submission.proof_url}"
            )
        if submission.status is SubmissionStatus.REJECTED:
            return f"Rejected.\nReason: {submission.reject_reason}\nProof: {submission.proof_url}"
        return f"Your submission `{submission.id}` expired before review. Please submit again."

    async def notify_user(
        self,
        *,
        member: discord.abc.Messageable,
        content: Optional[str] = None,
        embed: Optional[discord.Embed] = None,
    ) -> bool:
        """Send a DM; returns False when delivery fails (DMs disabled)."""

        try:
            await member.send(content=content, embed=embed)
            return True
        except discord.Forbidden:
            return False
        except discord.HTTPException:
            return False

    @staticmethod
    def _truncate(text: str, limit: int = 1000) -> str:
        if len(text) <= limit:
            return text
        return text[: limit - 3] + "..."


__all__ = ["EMPTY_TIER_MARKER", "LEADERBOARD_TITLE", "TierlistUIEngine"]
