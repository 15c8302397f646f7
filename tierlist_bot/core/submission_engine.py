"""
Submission state machine.

    pending --approve--> approved
    pending --reject---> rejected
    pending --expire---> expired
    pending --edit-----> pending (score/tier recomputed)

Every moderator action re-reads the submission and re-checks its
preconditions inside the write transaction, with no ``await`` between the
check and the write. Two moderators clicking Approve on the same card
therefore produce one approval and one ``AlreadyResolved``. Hooks (review
card refresh, DM, audit, leaderboard) run only after the commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from .classifier import TierThresholds, classify
from .errors import (
    AlreadyResolved,
    Forbidden,
    InvalidInput,
    NotFound,
    RejectReason,
    SubmissionExpired,
)
from .event_bus import EventBus
from .event_topics import (
    SUBMISSION_APPROVED,
    SUBMISSION_EDITED,
    SUBMISSION_EXPIRED,
    SUBMISSION_REJECTED,
)
from .models import (
    Approve,
    EditScore,
    Expire,
    PendingPage,
    Rating,
    Reject,
    ReviewAction,
    Reviewer,
    Submission,
    SubmissionStatus,
)
from .rating_store import RatingStore, utcnow
from .storage_engine import TierlistStorageEngine

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY = timedelta(hours=48)
REJECT_REASON_MAX_LENGTH = 800
BELOW_FLOOR_REASON = "below floor"


@dataclass(slots=True)
class ReviewOutcome:
    """What a review action actually did (an approval can end as a rejection)."""

    submission: Submission
    rating: Optional[Rating] = None

    @property
    def status(self) -> SubmissionStatus:
        return self.submission.status


class SubmissionEngine:
    def __init__(
        self,
        storage: TierlistStorageEngine,
        ratings: RatingStore,
        thresholds: TierThresholds,
        event_bus: EventBus,
        *,
        expiry: timedelta = DEFAULT_EXPIRY,
        retention: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.storage = storage
        self.ratings = ratings
        self.thresholds = thresholds
        self.event_bus = event_bus
        self.expiry = expiry
        self.retention = retention
        self._clock = clock

    # --------------------------------------------------------------
    # Queries
    # --------------------------------------------------------------

    def get(self, submission_id: str) -> Optional[Submission]:
        return self.storage.get_submission(submission_id)

    def list_pending(self, limit: int = 15) -> PendingPage:
        pending = self.storage.list_submissions(SubmissionStatus.PENDING)
        return PendingPage(submissions=pending[:limit], total=len(pending))

    def is_expired(self, submission: Submission, now: Optional[datetime] = None) -> bool:
        now = now or self._clock()
        return now - submission.created_at > self.expiry

    # --------------------------------------------------------------
    # Review surface bookkeeping
    # --------------------------------------------------------------

    def link_review_surface(
        self,
        submission_id: str,
        channel_id: int,
        message_id: int,
        *,
        review_image: Optional[str] = None,
    ) -> Optional[Submission]:
        with self.storage.transaction():
            submission = self.storage.get_submission(submission_id)
            if submission is None:
                return None
            submission.review_channel_id = channel_id
            submission.review_message_id = message_id
            if review_image:
                submission.review_image = review_image
            self.storage.save_submission(submission)
        return submission

    # --------------------------------------------------------------
    # Moderator actions
    # --------------------------------------------------------------

    async def check_reviewable(self, submission_id: str, reviewer: Reviewer) -> Submission:
        """Run the shared preconditions without changing anything but expiry."""
        with self.storage.transaction():
            submission = self._load_for_review(submission_id, reviewer)
            expired = self._expire_if_stale(submission)
        if expired:
            await self._emit(SUBMISSION_EXPIRED, submission, reviewer)
            raise SubmissionExpired(submission)
        return submission

    async def handle(self, action: ReviewAction, reviewer: Optional[Reviewer] = None) -> ReviewOutcome:
        if isinstance(action, Approve):
            return await self.approve(action.submission_id, self._require(reviewer))
        if isinstance(action, Reject):
            return await self.reject(action.submission_id, self._require(reviewer), action.reason)
        if isinstance(action, EditScore):
            return await self.edit_score(action.submission_id, self._require(reviewer), action.raw)
        if isinstance(action, Expire):
            return await self.expire(action.submission_id)
        raise TypeError(f"Unknown review action: {action!r}")

    async def approve(self, submission_id: str, reviewer: Reviewer) -> ReviewOutcome:
        rating: Optional[Rating] = None
        with self.storage.transaction():
            submission = self._load_for_review(submission_id, reviewer)
            expired = self._expire_if_stale(submission)
            if not expired:
                tier = self.thresholds.tier_of(submission.score)
                self._stamp(submission, reviewer)
                if tier is None:
                    submission.status = SubmissionStatus.REJECTED
                    submission.reject_reason = BELOW_FLOOR_REASON
                else:
                    submission.tier = tier
                    submission.status = SubmissionStatus.APPROVED
                    rating = self.ratings.upsert(
                        submission.member_id,
                        submission.score,
                        tier,
                        submission.proof_url,
                        submission.display_name,
                    )
                self.storage.save_submission(submission)
        if expired:
            await self._emit(SUBMISSION_EXPIRED, submission, reviewer)
            raise SubmissionExpired(submission)

        if rating is None:
            logger.info("Submission %s below floor at approval; rejected by %s", submission.id, reviewer.tag)
            await self._emit(SUBMISSION_REJECTED, submission, reviewer)
        else:
            logger.info(
                "Approved submission %s: member %s score %s tier %s by %s",
                submission.id,
                submission.member_id,
                submission.score,
                submission.tier,
                reviewer.tag,
            )
            await self._emit(SUBMISSION_APPROVED, submission, reviewer, rating=rating)
        return ReviewOutcome(submission=submission, rating=rating)

    async def reject(self, submission_id: str, reviewer: Reviewer, reason: str) -> ReviewOutcome:
        reason = (reason or "").strip()[:REJECT_REASON_MAX_LENGTH]
        with self.storage.transaction():
            submission = self._load_for_review(submission_id, reviewer)
            expired = self._expire_if_stale(submission)
            if not expired:
                if not reason:
                    raise InvalidInput(RejectReason.REASON_REQUIRED, "A reject reason is required.")
                self._stamp(submission, reviewer)
                submission.status = SubmissionStatus.REJECTED
                submission.reject_reason = reason
                self.storage.save_submission(submission)
        if expired:
            await self._emit(SUBMISSION_EXPIRED, submission, reviewer)
            raise SubmissionExpired(submission)

        logger.info("Rejected submission %s by %s: %s", submission.id, reviewer.tag, reason)
        await self._emit(SUBMISSION_REJECTED, submission, reviewer)
        return ReviewOutcome(submission=submission)

    async def edit_score(self, submission_id: str, reviewer: Reviewer, raw: str) -> ReviewOutcome:
        with self.storage.transaction():
            submission = self._load_for_review(submission_id, reviewer)
            expired = self._expire_if_stale(submission)
            if not expired:
                score, tier = classify(raw, self.thresholds)
                if score is None or tier is None:
                    raise InvalidInput(
                        RejectReason.SCORE_BELOW_FLOOR,
                        f"Need a score of at least {self.thresholds.floor}.",
                    )
                submission.score = score
                submission.tier = tier
                self.storage.save_submission(submission)
        if expired:
            await self._emit(SUBMISSION_EXPIRED, submission, reviewer)
            raise SubmissionExpired(submission)

        logger.info("Submission %s edited to %s (tier %s) by %s", submission.id, submission.score, submission.tier, reviewer.tag)
        await self._emit(SUBMISSION_EDITED, submission, reviewer)
        return ReviewOutcome(submission=submission)

    async def expire(self, submission_id: str) -> ReviewOutcome:
        """System-triggered expiry, independent of age."""
        with self.storage.transaction():
            submission = self.storage.get_submission(submission_id)
            if submission is None:
                raise NotFound()
            if not submission.is_pending:
                raise AlreadyResolved(submission.status)
            submission.status = SubmissionStatus.EXPIRED
            self.storage.save_submission(submission)
        logger.info("Submission %s expired", submission.id)
        await self._emit(SUBMISSION_EXPIRED, submission, None)
        return ReviewOutcome(submission=submission)

    def prune_resolved(self) -> int:
        """Drop resolved submissions older than the retention window."""
        if not self.retention:
            return 0
        removed = self.storage.delete_resolved_before(self._clock() - self.retention)
        if removed:
            logger.info("Pruned %d resolved submissions", removed)
        return removed

    # --------------------------------------------------------------
    # Internal helpers
    # --------------------------------------------------------------

    def _load_for_review(self, submission_id: str, reviewer: Reviewer) -> Submission:
        submission = self.storage.get_submission(submission_id)
        if submission is None:
            raise NotFound()
        if not reviewer.is_moderator:
            raise Forbidden()
        if not submission.is_pending:
            raise AlreadyResolved(submission.status)
        return submission

    def _expire_if_stale(self, submission: Submission) -> bool:
        if not self.is_expired(submission):
            return False
        submission.status = SubmissionStatus.EXPIRED
        self.storage.save_submission(submission)
        logger.info("Submission %s expired on moderator action", submission.id)
        return True

    def _stamp(self, submission: Submission, reviewer: Reviewer) -> None:
        submission.reviewed_by = reviewer.tag
        submission.reviewed_at = self._clock()

    async def _emit(
        self,
        topic: str,
        submission: Submission,
        reviewer: Optional[Reviewer],
        *,
        rating: Optional[Rating] = None,
    ) -> None:
        await self.event_bus.emit(topic, submission=submission, reviewer=reviewer, rating=rating)

    @staticmethod
    def _require(reviewer: Optional[Reviewer]) -> Reviewer:
        if reviewer is None:
            raise Forbidden()
        return reviewer


__all__ = [
    "BELOW_FLOOR_REASON",
    "DEFAULT_EXPIRY",
    "REJECT_REASON_MAX_LENGTH",
    "ReviewOutcome",
    "SubmissionEngine",
]
