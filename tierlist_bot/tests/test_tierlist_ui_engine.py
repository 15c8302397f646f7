import types
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import discord
import pytest

from tierlist_bot.core.leaderboard import build_leaderboard
from tierlist_bot.core.models import Rating, Submission, SubmissionStatus
from tierlist_bot.core.tierlist_ui_engine import (
    EMPTY_TIER_MARKER,
    FIELD_VALUE_LIMIT,
    LEADERBOARD_TITLE,
    TierlistUIEngine,
)

NOW = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _submission(**overrides):
    values = dict(
        id="ABC123",
        member_id=42,
        display_name="Player",
        score=73,
        tier=3,
        proof_url="https://cdn/a.png",
        created_at=NOW,
        message_url="https://discord.com/channels/1/10/99",
    )
    values.update(overrides)
    return Submission(**values)


def _rating(member_id=42, score=73, tier=3):
    return Rating(
        member_id=member_id,
        display_name="Player",
        score=score,
        tier=tier,
        proof_url="https://cdn/a.png",
        last_updated=NOW,
        avatar_url="https://cdn/avatar.png",
    )


def test_review_embed_prefers_rehosted_image():
    ui = TierlistUIEngine()

    embed = ui.build_review_embed(_submission(review_image="ABC123_shot.png"))

    assert embed.image.url == "attachment://ABC123_shot.png"
    assert "**73**" in embed.description
    assert "`ABC123`" in embed.description
    assert embed.title == "Score submission (pending)"


def test_resolved_review_embed_shows_reason_and_reviewer():
    ui = TierlistUIEngine()
    submission = _submission(status=SubmissionStatus.REJECTED, reject_reason="blurry", reviewed_by="mod#1")

    embed = ui.build_review_embed(submission, extra_fields=ui.review_extra_fields(submission))

    assert embed.image.url == "https://cdn/a.png"
    assert embed.fields[0].name == "Reason"
    assert embed.fields[0].value == "blurry"
    assert embed.footer.text == "Reviewed by mod#1"
    assert embed.colour == discord.Colour.red()


@pytest.mark.asyncio
async def test_review_view_only_for_pending():
    ui = TierlistUIEngine()

    view = ui.build_review_view(_submission())

    assert [item.custom_id for item in view.children] == ["approve:ABC123", "edit:ABC123", "reject:ABC123"]
    assert view.timeout is None
    assert ui.build_review_view(_submission(status=SubmissionStatus.APPROVED)) is None


def test_leaderboard_embed_lists_all_tiers():
    ui = TierlistUIEngine(submit_channel_hint="<#10>")
    groups = build_leaderboard([_rating(1, 130, 5), _rating(2, 75, 3)], {5: "Legend"})

    embed = ui.build_leaderboard_embed(groups)

    assert embed.title == LEADERBOARD_TITLE
    assert [field.name for field in embed.fields] == ["Legend", "4", "3", "2", "1"]
    assert "<@1>" in embed.fields[0].value
    assert embed.fields[1].value == EMPTY_TIER_MARKER
    assert embed.footer.text == "<#10>"


def test_long_tier_keeps_whole_lines_and_counts_the_rest():
    ratings = [_rating(member_id=100000000000000000 + offset, score=100, tier=4) for offset in range(60)]
    tier4 = {group.tier: group for group in build_leaderboard(ratings)}[4]

    value = TierlistUIEngine().format_tier_group(tier4)
    lines = value.split("\n")
    rows = lines[:-1]

    assert len(value) <= FIELD_VALUE_LIMIT
    assert all(row.endswith("**100**") for row in rows)
    assert rows[-1].startswith(f"{len(rows)}. ")
    assert lines[-1] == f"+{60 - len(rows)} more"


def test_capped_tier_that_fits_still_counts_hidden_entries():
    ratings = [_rating(member_id=member_id, score=100, tier=4) for member_id in (1, 2, 3)]
    tier4 = {group.tier: group for group in build_leaderboard(ratings, limit=2)}[4]

    value = TierlistUIEngine().format_tier_group(tier4)

    assert value.split("\n")[-1] == "+1 more"
    assert value.count("**100**") == 2


def test_rating_card_and_line_use_labels():
    ui = TierlistUIEngine()
    labels = {3: "Gold"}

    card = ui.build_rating_card(_rating(), labels, approved_by="mod#1")
    line = ui.format_rating_line(_rating(), labels, include_name=False)

    assert card.author.name == "Player • Gold"
    assert card.author.icon_url == "https://cdn/avatar.png"
    assert card.footer.text == "Approved by mod#1"
    assert line == "Player: <@42>\nScore: **73**\nTier: **3** (Gold)"


def test_decision_dm_texts():
    ui = TierlistUIEngine()
    approved = _submission(status=SubmissionStatus.APPROVED)
    rejected = _submission(status=SubmissionStatus.REJECTED, reject_reason="blurry")
    expired = _submission(status=SubmissionStatus.EXPIRED)

    assert ui.format_decision_dm(approved).startswith("Approved.")
    assert "Reason: blurry" in ui.format_decision_dm(rejected)
    assert "expired" in ui.format_decision_dm(expired)


@pytest.mark.asyncio
async def test_notify_user_reports_closed_dms():
    ui = TierlistUIEngine()
    member = AsyncMock()
    response = types.SimpleNamespace(status=403, reason="Forbidden", headers={})
    member.send.side_effect = discord.Forbidden(response=response, message="Cannot send messages to this user")

    assert await ui.notify_user(member=member, content="hi") is False

    member.send.side_effect = None
    assert await ui.notify_user(member=member, content="hi") is True
