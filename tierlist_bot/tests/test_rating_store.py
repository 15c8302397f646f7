import pytest

from tierlist_bot.core.classifier import TierThresholds
from tierlist_bot.core.errors import InvalidInput, RejectReason
from tierlist_bot.core.event_topics import RATING_CARDS_PURGE, RATING_REMOVED, RATINGS_WIPED
from tierlist_bot.core.leaderboard import build_leaderboard
from tierlist_bot.core.models import WipeMode
from tierlist_bot.core.rating_store import RECONCILE_ACTOR, RatingStore
from tierlist_bot.tests.conftest import Recorder


def test_upsert_recomputes_tier_and_keeps_card(ratings, clock):
    first = ratings.upsert(42, 73, 3, "https://cdn/a.png", "Player", avatar_url="https://cdn/avatar.png")
    ratings.attach_card(42, 777)
    clock.advance(minutes=1)

    updated = ratings.upsert(42, 95, 1, "https://cdn/b.png", "Player")

    assert first.tier == 3
    assert updated.tier == 4
    assert updated.card_message_id == 777
    assert updated.avatar_url == "https://cdn/avatar.png"
    assert updated.last_updated == clock.now
    assert ratings.get(42) == updated


def test_upsert_refuses_scores_below_floor(ratings):
    with pytest.raises(InvalidInput) as excinfo:
        ratings.upsert(42, 10, None, "https://cdn/a.png", "Player")
    assert excinfo.value.reason is RejectReason.SCORE_BELOW_FLOOR
    assert ratings.all() == []


def test_attach_card_for_unknown_member(ratings):
    assert ratings.attach_card(1, 5) is None


@pytest.mark.asyncio
async def test_remove_emits_removed_rating(ratings, event_bus):
    recorder = Recorder()
    await event_bus.subscribe(RATING_REMOVED, recorder)
    ratings.upsert(42, 73, 3, "https://cdn/a.png", "Player")

    removed = await ratings.remove(42, actor="mod#0001")

    assert removed.member_id == 42
    assert ratings.get(42) is None
    assert recorder.calls == [{"rating": removed, "actor": "mod#0001"}]
    assert await ratings.remove(42) is None
    assert len(recorder.calls) == 1


@pytest.mark.asyncio
async def test_wipe_requires_exact_confirmation(ratings):
    ratings.upsert(42, 73, 3, "https://cdn/a.png", "Player")

    for confirm in ("", "wipe", "WIPE "):
        with pytest.raises(InvalidInput) as excinfo:
            await ratings.wipe_all(WipeMode.SOFT, confirm)
        assert excinfo.value.reason is RejectReason.CONFIRMATION_REQUIRED

    assert len(ratings.all()) == 1


@pytest.mark.asyncio
async def test_soft_wipe_keeps_cards(ratings, event_bus):
    purge = Recorder()
    wiped = Recorder()
    await event_bus.subscribe(RATING_CARDS_PURGE, purge)
    await event_bus.subscribe(RATINGS_WIPED, wiped)
    ratings.upsert(1, 73, 3, "https://cdn/a.png", "A")
    ratings.upsert(2, 20, 1, "https://cdn/b.png", "B")

    removed = await ratings.wipe_all(WipeMode.SOFT, "WIPE", actor="mod")

    assert [rating.member_id for rating in removed] == [1, 2]
    assert ratings.all() == []
    assert purge.calls == []
    assert wiped.calls[0]["mode"] == "soft"
    assert wiped.calls[0]["actor"] == "mod"


@pytest.mark.asyncio
async def test_hard_wipe_purges_cards_before_clearing(ratings, event_bus):
    seen_during_purge = []

    async def purge(**payload):
        seen_during_purge.append((len(payload["ratings"]), len(ratings.all())))

    await event_bus.subscribe(RATING_CARDS_PURGE, purge)
    ratings.upsert(1, 73, 3, "https://cdn/a.png", "A")
    ratings.attach_card(1, 111)

    removed = await ratings.wipe_all("hard", "WIPE")

    assert removed[0].card_message_id == 111
    assert seen_during_purge == [(1, 1)]
    assert ratings.all() == []


def test_equal_scores_keep_publish_order_not_member_id(ratings):
    ratings.upsert(300, 50, 2, "https://cdn/a.png", "first-published")
    ratings.upsert(100, 50, 2, "https://cdn/b.png", "second-published")
    ratings.upsert(300, 50, 2, "https://cdn/c.png", "first-published")

    groups = {group.tier: group for group in build_leaderboard(ratings.all())}

    assert [rating.display_name for rating in groups[2].entries] == ["first-published", "second-published"]


@pytest.mark.asyncio
async def test_reconcile_moves_tiers_after_floors_change(storage, event_bus, clock, ratings):
    ratings.upsert(42, 50, 2, "https://cdn/a.png", "Player")
    ratings.attach_card(42, 777)

    store = RatingStore(storage, TierThresholds((10, 20, 30, 40, 50)), event_bus, clock=clock)
    removed = await store.reconcile_tiers()

    assert removed == []
    reconciled = store.get(42)
    assert reconciled.tier == 5
    assert reconciled.card_message_id == 777
    assert await store.reconcile_tiers() == []


@pytest.mark.asyncio
async def test_reconcile_unpublishes_scores_below_new_floor(storage, event_bus, clock, ratings):
    recorder = Recorder()
    await event_bus.subscribe(RATING_REMOVED, recorder)
    ratings.upsert(1, 20, 1, "https://cdn/a.png", "Low")
    ratings.upsert(2, 130, 5, "https://cdn/b.png", "High")

    store = RatingStore(storage, TierThresholds((25, 50, 75, 100, 125)), event_bus, clock=clock)
    removed = await store.reconcile_tiers()

    assert [rating.member_id for rating in removed] == [1]
    assert [rating.member_id for rating in store.all()] == [2]
    assert recorder.calls == [{"rating": removed[0], "actor": RECONCILE_ACTOR}]


@pytest.mark.asyncio
async def test_hard_wipe_keeps_rating_published_during_purge(ratings, event_bus):
    async def purge(**payload):
        ratings.upsert(2, 80, 3, "https://cdn/late.png", "Late")

    await event_bus.subscribe(RATING_CARDS_PURGE, purge)
    ratings.upsert(1, 73, 3, "https://cdn/a.png", "A")

    removed = await ratings.wipe_all(WipeMode.HARD, "WIPE")

    assert [rating.member_id for rating in removed] == [1]
    assert [rating.member_id for rating in ratings.all()] == [2]
