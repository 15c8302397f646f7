"""
Intake gate for score claims posted in the submit channel.

Checks run in a fixed order and the first failure wins:

1. proof missing or not an image
2. score unparseable or below the tier floor
3. identical score already published for the member
4. member already has a pending submission
5. member's last accepted submission is inside the cooldown window

An accepted candidate is persisted together with the cooldown stamp in one
transaction before ``submit`` returns, so posting the review card afterwards
can fail without the gate ever seeing the same claim twice.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from .classifier import TierThresholds, classify
from .errors import DuplicateState, InvalidInput, RejectReason
from .models import Submission, SubmissionCandidate, new_submission_id
from .rating_store import utcnow
from .storage_engine import TierlistStorageEngine

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN = timedelta(seconds=120)


class IntakeGate:
    def __init__(
        self,
        storage: TierlistStorageEngine,
        thresholds: TierThresholds,
        *,
        cooldown: timedelta = DEFAULT_COOLDOWN,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_submission_id,
    ) -> None:
        self.storage = storage
        self.thresholds = thresholds
        self.cooldown = cooldown
        self._clock = clock
        self._id_factory = id_factory

    def submit(self, candidate: SubmissionCandidate) -> Submission:
        needs_input = InvalidInput(
            RejectReason.NEEDS_IMAGE_AND_SCORE,
            f"Invalid. Post a **screenshot (image)** and your **score as a number from "
            f"{self.thresholds.floor}**. Example: `73`",
        )
        if candidate.proof is None or not candidate.proof.is_image:
            raise needs_input
        score, tier = classify(candidate.text, self.thresholds)
        if score is None or tier is None:
            raise needs_input

        now = self._clock()
        with self.storage.transaction():
            current = self.storage.get_rating(candidate.member_id)
            if current is not None and current.score == score:
                raise DuplicateState(
                    RejectReason.DUPLICATE_SCORE,
                    "You already have **this exact score** on the tierlist. "
                    "Send a new screenshot when it changes.",
                )

            if self.storage.find_pending_for_member(candidate.member_id) is not None:
                raise DuplicateState(
                    RejectReason.ALREADY_PENDING,
                    "You already have a submission under review. Wait for a moderator decision.",
                )

            remaining = self.cooldown_remaining(candidate.member_id, now)
            if remaining > 0:
                raise DuplicateState(
                    RejectReason.COOLDOWN,
                    f"Cooldown. Wait {remaining} s and try again.",
                    remaining_seconds=remaining,
                )

            submission = Submission(
                id=self._id_factory(),
                member_id=candidate.member_id,
                display_name=candidate.display_name,
                score=score,
                tier=tier,
                proof_url=candidate.proof.url,
                created_at=now,
                message_url=candidate.message_url,
            )
            self.storage.save_submission(submission)
            self.storage.set_cooldown(candidate.member_id, now)

        logger.info(
            "Accepted submission %s from member %s: score %s, tier %s",
            submission.id,
            submission.member_id,
            score,
            tier,
        )
        return submission

    def cooldown_remaining(self, member_id: int, now: datetime) -> int:
        """Whole seconds left before the member may submit again (0 when free)."""
        last = self.storage.get_cooldown(member_id)
        if last is None:
            return 0
        elapsed = int((now - last).total_seconds())
        return max(0, int(self.cooldown.total_seconds()) - elapsed)


__all__ = ["DEFAULT_COOLDOWN", "IntakeGate"]
