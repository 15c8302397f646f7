"""Exception taxonomy for the submission pipeline.

Every error carries a ``user_message`` that cogs can show as-is to whoever
triggered the action.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import Submission, SubmissionStatus


class RejectReason(str, Enum):
    NEEDS_IMAGE_AND_SCORE = "needs_image_and_score"
    SCORE_BELOW_FLOOR = "score_below_floor"
    REASON_REQUIRED = "reason_required"
    CONFIRMATION_REQUIRED = "confirmation_required"
    DUPLICATE_SCORE = "duplicate_score"
    ALREADY_PENDING = "already_pending"
    COOLDOWN = "cooldown"


class TierlistError(Exception):
    """Base class for errors surfaced to the acting Discord user."""

    default_message = "Something went wrong."

    def __init__(self, user_message: Optional[str] = None) -> None:
        self.user_message = user_message or self.default_message
        super().__init__(self.user_message)


class InvalidInput(TierlistError):
    default_message = "Invalid input."

    def __init__(self, reason: RejectReason, user_message: Optional[str] = None) -> None:
        self.reason = reason
        super().__init__(user_message)


class DuplicateState(TierlistError):
    default_message = "Nothing to do."

    def __init__(
        self,
        reason: RejectReason,
        user_message: Optional[str] = None,
        *,
        remaining_seconds: int = 0,
    ) -> None:
        self.reason = reason
        self.remaining_seconds = remaining_seconds
        super().__init__(user_message)


class Forbidden(TierlistError):
    default_message = "You do not have permission to do that."


class NotFound(TierlistError):
    default_message = "Submission not found."


class AlreadyResolved(TierlistError):
    def __init__(self, status: "SubmissionStatus") -> None:
        self.status = status
        super().__init__(f"Already resolved: {status.value}")


class SubmissionExpired(TierlistError):
    default_message = "This submission has expired."

    def __init__(self, submission: "Submission") -> None:
        self.submission = submission
        super().__init__()


class StorageError(TierlistError):
    default_message = "Could not save changes, nothing was applied. Try again."


__all__ = [
    "AlreadyResolved",
    "DuplicateState",
    "Forbidden",
    "InvalidInput",
    "NotFound",
    "RejectReason",
    "StorageError",
    "SubmissionExpired",
    "TierlistError",
]
