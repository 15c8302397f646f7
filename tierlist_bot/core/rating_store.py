"""Published ratings: one per member, written by approvals."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .classifier import TierThresholds
from .errors import InvalidInput, RejectReason
from .event_bus import EventBus
from .event_topics import RATING_CARDS_PURGE, RATING_REMOVED, RATING_RETIERED, RATINGS_WIPED
from .models import Rating, WipeMode
from .storage_engine import TierlistStorageEngine

logger = logging.getLogger(__name__)

WIPE_CONFIRMATION = "WIPE"
RECONCILE_ACTOR = "tier floors changed"

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RatingStore:
    """Owns Rating records; the leaderboard is projected from ``all()``."""

    def __init__(
        self,
        storage: TierlistStorageEngine,
        thresholds: TierThresholds,
        event_bus: EventBus,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self.storage = storage
        self.thresholds = thresholds
        self.event_bus = event_bus
        self._clock = clock

    def get(self, member_id: int) -> Optional[Rating]:
        return self.storage.get_rating(member_id)

    def all(self) -> List[Rating]:
        return self.storage.list_ratings()

    def upsert(
        self,
        member_id: int,
        score: int,
        tier: Optional[int],
        proof_url: str,
        display_name: str,
        *,
        avatar_url: Optional[str] = None,
    ) -> Rating:
        """Create or overwrite the member's rating.

        ``tier`` is accepted for call-site symmetry but always recomputed from
        ``score``. The existing card link is kept so the card can be edited in
        place. Runs inside the caller's transaction when there is one.
        """
        computed = self.thresholds.tier_of(score)
        if computed is None:
            raise InvalidInput(
                RejectReason.SCORE_BELOW_FLOOR,
                f"Score must be at least {self.thresholds.floor}.",
            )
        if tier is not None and tier != computed:
            logger.debug("Ignoring stale tier %s for member %s (score %s -> tier %s)", tier, member_id, score, computed)

        existing = self.storage.get_rating(member_id)
        rating = Rating(
            member_id=member_id,
            display_name=display_name,
            score=score,
            tier=computed,
            proof_url=proof_url,
            last_updated=self._clock(),
            avatar_url=avatar_url or (existing.avatar_url if existing else None),
            card_message_id=existing.card_message_id if existing else None,
        )
        self.storage.save_rating(rating)
        return rating

    def attach_card(
        self,
        member_id: int,
        message_id: Optional[int],
        *,
        avatar_url: Optional[str] = None,
    ) -> Optional[Rating]:
        rating = self.storage.get_rating(member_id)
        if rating is None:
            return None
        rating.card_message_id = message_id
        if avatar_url:
            rating.avatar_url = avatar_url
        self.storage.save_rating(rating)
        return rating

    async def remove(self, member_id: int, *, actor: Optional[str] = None) -> Optional[Rating]:
        """Delete the member's rating; hooks release the tier role and the card."""
        rating = self.storage.get_rating(member_id)
        if rating is None:
            return None
        self.storage.delete_rating(member_id)
        logger.info("Removed rating for member %s (score %s) by %s", member_id, rating.score, actor)
        await self.event_bus.emit(RATING_REMOVED, rating=rating, actor=actor)
        return rating

    async def reconcile_tiers(self, *, actor: str = RECONCILE_ACTOR) -> List[Rating]:
        """Re-derive every stored tier from its score under the current floors.

        Moved ratings are saved and announced on ``RATING_RETIERED`` so their
        card is re-rendered. Ratings whose score now falls under the lowest
        floor are unpublished through ``remove``. Returns the removed ratings.
        """
        removed: List[Rating] = []
        for rating in self.storage.list_ratings():
            tier = self.thresholds.tier_of(rating.score)
            if tier is None:
                dropped = await self.remove(rating.member_id, actor=actor)
                if dropped is not None:
                    removed.append(dropped)
            elif tier != rating.tier:
                previous = rating.tier
                logger.info("Rating for %s moved from tier %s to %s", rating.member_id, previous, tier)
                rating.tier = tier
                self.storage.save_rating(rating)
                await self.event_bus.emit(RATING_RETIERED, rating=rating, previous_tier=previous)
        return removed

    async def wipe_all(self, mode: WipeMode, confirm: str, *, actor: Optional[str] = None) -> List[Rating]:
        if confirm != WIPE_CONFIRMATION:
            raise InvalidInput(
                RejectReason.CONFIRMATION_REQUIRED,
                f"Not confirmed. Type exactly: {WIPE_CONFIRMATION}",
            )
        mode = WipeMode(mode)
        ratings = self.storage.list_ratings()
        if mode is WipeMode.HARD:
            await self.event_bus.emit(RATING_CARDS_PURGE, ratings=ratings, actor=actor)
        # Only the snapshot; ratings approved while cards were purged survive.
        self.storage.delete_ratings(rating.member_id for rating in ratings)
        logger.warning("Wiped %d ratings (mode=%s) by %s", len(ratings), mode.value, actor)
        await self.event_bus.emit(RATINGS_WIPED, ratings=ratings, mode=mode.value, actor=actor)
        return ratings


__all__ = ["RECONCILE_ACTOR", "RatingStore", "WIPE_CONFIRMATION", "utcnow"]
