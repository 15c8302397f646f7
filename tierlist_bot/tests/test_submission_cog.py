import types
from unittest.mock import AsyncMock

import discord
import pytest

from tierlist_bot.cogs.submission_cog import (
    ACCEPTED_MESSAGE,
    EditScoreModal,
    RejectReasonModal,
    SubmissionCog,
    sanitize_file_name,
)
from tierlist_bot.core.event_topics import SUBMISSION_APPROVED
from tierlist_bot.core.models import Approve, EditScore, Reject, SubmissionStatus
from tierlist_bot.core.tierlist_ui_engine import TierlistUIEngine
from tierlist_bot.tests.conftest import DummyMember, DummyRole, make_candidate


class StubChannel:
    def __init__(self, channel_id: int) -> None:
        self.id = channel_id
        self.sent = []
        self.messages = {}

    async def send(self, content=None, **kwargs):
        message = types.SimpleNamespace(
            id=1000 + len(self.sent),
            channel=self,
            content=content,
            kwargs=kwargs,
            edit=AsyncMock(),
        )
        self.sent.append(message)
        self.messages[message.id] = message
        return message

    async def fetch_message(self, message_id):
        try:
            return self.messages[message_id]
        except KeyError:
            response = types.SimpleNamespace(status=404, reason="Not Found", headers={})
            raise discord.NotFound(response=response, message="Unknown Message")


class StubBot:
    def __init__(self, channels, users=None) -> None:
        self.channels = {channel.id: channel for channel in channels}
        self.users = users or {}
        self.fetch_channel = AsyncMock(side_effect=lambda channel_id: self.channels[channel_id])
        self.fetch_user = AsyncMock(side_effect=lambda user_id: self.users[user_id])

    def get_channel(self, channel_id):
        return self.channels.get(channel_id)

    def get_user(self, user_id):
        return self.users.get(user_id)


def _interaction(user, custom_id=None):
    state = {"done": False}

    async def mark_done(*args, **kwargs):
        state["done"] = True

    return types.SimpleNamespace(
        user=user,
        type=discord.InteractionType.component,
        data={"custom_id": custom_id} if custom_id else {},
        response=types.SimpleNamespace(
            is_done=lambda: state["done"],
            send_message=AsyncMock(side_effect=mark_done),
            defer=AsyncMock(side_effect=mark_done),
            send_modal=AsyncMock(),
        ),
        followup=types.SimpleNamespace(send=AsyncMock()),
    )


def _reply_text(interaction):
    if interaction.response.send_message.await_args is not None:
        return interaction.response.send_message.await_args.args[0]
    return interaction.followup.send.await_args.args[0]


def _message(content="73", *, author_id=42, channel_id=10, attachments=None):
    attachment = types.SimpleNamespace(
        url="https://cdn.example.com/shot.png",
        content_type="image/png",
        filename="shot.png",
        to_file=AsyncMock(return_value="FILE"),
    )
    return types.SimpleNamespace(
        id=99,
        author=types.SimpleNamespace(id=author_id, bot=False, display_name="Player", name="player"),
        channel=types.SimpleNamespace(id=channel_id),
        content=content,
        attachments=[attachment] if attachments is None else attachments,
        jump_url="https://discord.com/channels/1/10/99",
        reply=AsyncMock(),
        delete=AsyncMock(),
    )


@pytest.fixture()
def review_channel():
    return StubChannel(20)


@pytest.fixture()
def log_channel():
    return StubChannel(40)


@pytest.fixture()
def player_user():
    return types.SimpleNamespace(id=42, send=AsyncMock())


@pytest.fixture()
def cog(sample_config, intake, engine, review_channel, log_channel, player_user):
    bot = StubBot([review_channel, log_channel], users={42: player_user})
    return SubmissionCog(bot, sample_config, intake, engine, TierlistUIEngine())


@pytest.fixture()
def mod_member():
    return DummyMember(id=900, roles=[DummyRole(id=500)], display_name="mod#0900")


def test_sanitize_file_name():
    assert sanitize_file_name("my shot (1).PNG") == "my_shot_1_.PNG"
    assert sanitize_file_name("") == "screenshot.png"
    assert sanitize_file_name("noext", fallback_ext="jpg") == "noext.jpg"


@pytest.mark.asyncio
async def test_on_message_posts_review_card(cog, engine, review_channel):
    message = _message("73")

    await cog.on_message(message)

    (card,) = review_channel.sent
    assert card.kwargs["file"] == "FILE"
    assert card.kwargs["embed"].image.url.startswith("attachment://")
    assert [item.custom_id.split(":")[0] for item in card.kwargs["view"].children] == ["approve", "edit", "reject"]
    message.reply.assert_awaited_once_with(ACCEPTED_MESSAGE, delete_after=8.0)
    message.delete.assert_awaited_once()

    (pending,) = engine.list_pending().submissions
    assert pending.review_message_id == card.id
    assert pending.review_channel_id == 20
    assert pending.review_image.startswith(pending.id)


@pytest.mark.asyncio
async def test_on_message_rejects_invalid_post(cog, engine, review_channel):
    message = _message("great run", attachments=[])

    await cog.on_message(message)

    assert review_channel.sent == []
    assert engine.list_pending().total == 0
    reply_text = message.reply.await_args.args[0]
    assert "screenshot" in reply_text
    message.delete.assert_awaited_once()


@pytest.mark.asyncio
async def test_on_message_ignores_other_channels_and_bots(cog, review_channel):
    await cog.on_message(_message(channel_id=11))
    bot_message = _message()
    bot_message.author.bot = True
    await cog.on_message(bot_message)

    assert review_channel.sent == []


@pytest.mark.asyncio
async def test_rehost_failure_falls_back_to_url(cog, review_channel):
    message = _message("73")
    response = types.SimpleNamespace(status=500, reason="boom", headers={})
    message.attachments[0].to_file.side_effect = discord.HTTPException(response=response, message="fail")

    await cog.on_message(message)

    (card,) = review_channel.sent
    assert "file" not in card.kwargs
    assert card.kwargs["embed"].image.url == "https://cdn.example.com/shot.png"


@pytest.mark.asyncio
async def test_approve_button_by_moderator(cog, intake, engine, mod_member):
    submission = intake.submit(make_candidate("73"))
    interaction = _interaction(mod_member, f"approve:{submission.id}")

    await cog.on_interaction(interaction)

    assert _reply_text(interaction) == "Approved. Tierlist updated."
    assert engine.get(submission.id).status is SubmissionStatus.APPROVED


@pytest.mark.asyncio
async def test_approve_defers_before_hooks_run(cog, intake, event_bus, mod_member):
    submission = intake.submit(make_candidate("73"))
    interaction = _interaction(mod_member, f"approve:{submission.id}")
    answered_before_hook = []

    async def slow_hook(**payload):
        answered_before_hook.append(interaction.response.is_done())

    await event_bus.subscribe(SUBMISSION_APPROVED, slow_hook)
    await cog.on_interaction(interaction)

    assert answered_before_hook == [True]
    interaction.response.defer.assert_awaited_once_with(ephemeral=True)
    interaction.response.send_message.assert_not_called()
    assert interaction.followup.send.await_args.args[0] == "Approved. Tierlist updated."


@pytest.mark.asyncio
async def test_buttons_refuse_non_moderators(cog, intake, engine):
    submission = intake.submit(make_candidate("73"))
    outsider = DummyMember(id=7, roles=[DummyRole(id=1)])

    for custom_id in (f"approve:{submission.id}", f"reject:{submission.id}"):
        interaction = _interaction(outsider, custom_id)
        await cog.on_interaction(interaction)
        assert _reply_text(interaction) == "You do not have permission to do that."
        interaction.response.send_modal.assert_not_called()

    assert engine.get(submission.id).is_pending


@pytest.mark.asyncio
async def test_edit_and_reject_buttons_open_modals(cog, intake, mod_member):
    submission = intake.submit(make_candidate("73"))

    edit = _interaction(mod_member, f"edit:{submission.id}")
    await cog.on_interaction(edit)
    modal = edit.response.send_modal.await_args.args[0]
    assert isinstance(modal, EditScoreModal)
    assert modal.submission_id == submission.id
    assert modal.score.default == "73"

    reject = _interaction(mod_member, f"reject:{submission.id}")
    await cog.on_interaction(reject)
    assert isinstance(reject.response.send_modal.await_args.args[0], RejectReasonModal)


@pytest.mark.asyncio
async def test_foreign_custom_ids_are_ignored(cog, mod_member):
    interaction = _interaction(mod_member, "lang:fr")
    await cog.on_interaction(interaction)
    interaction.response.send_message.assert_not_called()


@pytest.mark.asyncio
async def test_submit_review_action_replies(cog, intake, mod_member):
    submission = intake.submit(make_candidate("73"))

    edit = _interaction(mod_member)
    await cog.submit_review_action(edit, EditScore(submission.id, "95"))
    assert _reply_text(edit) == "Score updated: 95 (tier 4)."

    too_low = _interaction(mod_member)
    await cog.submit_review_action(too_low, EditScore(submission.id, "3"))
    assert _reply_text(too_low) == "Need a score of at least 15."

    reject = _interaction(mod_member)
    await cog.submit_review_action(reject, Reject(submission.id, "blurry"))
    assert _reply_text(reject) == "Rejected."

    again = _interaction(mod_member)
    await cog.submit_review_action(again, Approve(submission.id))
    assert _reply_text(again) == "Already resolved: rejected"


@pytest.mark.asyncio
async def test_hooks_refresh_card_notify_and_audit(
    cog, event_bus, engine, review_channel, log_channel, player_user, mod_member
):
    await cog.register_hooks(event_bus)
    await cog.on_message(_message("73"))
    (card,) = review_channel.sent
    (pending,) = engine.list_pending().submissions

    await cog.on_interaction(_interaction(mod_member, f"approve:{pending.id}"))

    card.edit.assert_awaited_once()
    edit_kwargs = card.edit.await_args.kwargs
    assert edit_kwargs["view"] is None
    assert edit_kwargs["embed"].title == "Score submission (approved)"
    dm_text = player_user.send.await_args.kwargs["content"]
    assert dm_text.startswith("Approved.")
    assert log_channel.sent[0].content.startswith("APPROVE: <@42> score 73 -> tier 3")
    assert not event_bus.failures


@pytest.mark.asyncio
async def test_edit_refreshes_card_with_editor(cog, event_bus, engine, review_channel, mod_member):
    await cog.register_hooks(event_bus)
    await cog.on_message(_message("73"))
    (card,) = review_channel.sent
    (pending,) = engine.list_pending().submissions

    await cog.submit_review_action(_interaction(mod_member), EditScore(pending.id, "95"))

    kwargs = card.edit.await_args.kwargs
    assert kwargs["view"] is not None
    assert kwargs["embed"].fields[-1].value == "Score corrected by mod#0900"
