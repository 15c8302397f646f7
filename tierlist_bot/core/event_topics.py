"""
Catalog of post-commit hook topics and their payload keys.

Design rules:
- Topics are dotted with a domain prefix, e.g. "submission.approved".
- Payloads are keyword arguments; keys documented here for traceability.
- No imports from discord.* so engines stay testable without a client.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, TypedDict


# -----------------------
# Topic name constants
# -----------------------
SUBMISSION_EDITED = "submission.edited"
SUBMISSION_APPROVED = "submission.approved"
SUBMISSION_REJECTED = "submission.rejected"
SUBMISSION_EXPIRED = "submission.expired"

RATING_REMOVED = "rating.removed"
RATING_RETIERED = "rating.retiered"
RATING_CARDS_PURGE = "rating.cards_purge"
RATINGS_WIPED = "ratings.wiped"

TIER_LABELS_UPDATED = "tier_labels.updated"

HOOK_ERROR = "hook.error"


# -----------------------
# Payload contracts
# -----------------------
class SubmissionEvent(TypedDict, total=False):
    submission: Any  # models.Submission
    reviewer: Optional[Any]  # models.Reviewer, None for system expiry
    rating: Optional[Any]  # models.Rating, approvals only


class RatingRemoved(TypedDict, total=False):
    rating: Any
    actor: Optional[str]


class RatingRetiered(TypedDict, total=False):
    rating: Any
    previous_tier: int


class RatingsWiped(TypedDict, total=False):
    ratings: List[Any]
    mode: str
    actor: Optional[str]


class TierLabelsUpdated(TypedDict, total=False):
    labels: Dict[int, str]


class HookError(TypedDict, total=False):
    event: str
    handler: Any
    exc: Exception


__all__ = [
    "HOOK_ERROR",
    "RATINGS_WIPED",
    "RATING_CARDS_PURGE",
    "RATING_REMOVED",
    "RATING_RETIERED",
    "SUBMISSION_APPROVED",
    "SUBMISSION_EDITED",
    "SUBMISSION_EXPIRED",
    "SUBMISSION_REJECTED",
    "TIER_LABELS_UPDATED",
    "HookError",
    "RatingRemoved",
    "RatingRetiered",
    "RatingsWiped",
    "SubmissionEvent",
    "TierLabelsUpdated",
]
