"""Domain records and review actions."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple, Union

IMAGE_EXTENSIONS: Tuple[str, ...] = (".png", ".jpg", ".jpeg", ".webp", ".gif")


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class WipeMode(str, Enum):
    SOFT = "soft"  # data only
    HARD = "hard"  # data + rendered cards


def new_submission_id() -> str:
    return uuid.uuid4().hex[:12].upper()


@dataclass(slots=True)
class ProofAttachment:
    url: str
    content_type: Optional[str] = None
    filename: Optional[str] = None

    @property
    def is_image(self) -> bool:
        if (self.content_type or "").lower().startswith("image/"):
            return True
        for candidate in (self.url, self.filename):
            name = (candidate or "").lower().split("?", 1)[0]
            if name.endswith(IMAGE_EXTENSIONS):
                return True
        return False


@dataclass(slots=True)
class SubmissionCandidate:
    """Raw intake input as read off a submit-channel message."""

    member_id: int
    display_name: str
    text: str
    proof: Optional[ProofAttachment]
    message_url: Optional[str] = None


@dataclass(slots=True)
class Submission:
    id: str
    member_id: int
    display_name: str
    score: int
    tier: Optional[int]
    proof_url: str
    created_at: datetime
    status: SubmissionStatus = SubmissionStatus.PENDING
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    reject_reason: Optional[str] = None
    message_url: Optional[str] = None
    review_channel_id: Optional[int] = None
    review_message_id: Optional[int] = None
    review_image: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status is SubmissionStatus.PENDING


@dataclass(slots=True)
class Rating:
    member_id: int
    display_name: str
    score: int
    tier: int
    proof_url: str
    last_updated: datetime
    avatar_url: Optional[str] = None
    card_message_id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class Reviewer:
    """Whoever is acting on a review card."""

    user_id: int
    tag: str
    is_moderator: bool = False


# --------------------------------------------------------------
# Review actions
# --------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Approve:
    submission_id: str


@dataclass(frozen=True, slots=True)
class Reject:
    submission_id: str
    reason: str


@dataclass(frozen=True, slots=True)
class EditScore:
    submission_id: str
    raw: str


@dataclass(frozen=True, slots=True)
class Expire:
    submission_id: str


ReviewAction = Union[Approve, Reject, EditScore, Expire]


class ReviewButton(str, Enum):
    APPROVE = "approve"
    EDIT = "edit"
    REJECT = "reject"


@dataclass(frozen=True, slots=True)
class ReviewRequest:
    """A clicked review button, before any modal input is collected."""

    button: ReviewButton
    submission_id: str

    @property
    def custom_id(self) -> str:
        return f"{self.button.value}:{self.submission_id}"


def parse_custom_id(custom_id: Optional[str]) -> Optional[ReviewRequest]:
    """Turn ``approve:<id>``-style component ids into a ``ReviewRequest``."""
    if not custom_id or ":" not in custom_id:
        return None
    prefix, submission_id = custom_id.split(":", 1)
    try:
        button = ReviewButton(prefix)
    except ValueError:
        return None
    if not submission_id:
        return None
    return ReviewRequest(button=button, submission_id=submission_id)


@dataclass(slots=True)
class PendingPage:
    submissions: List[Submission] = field(default_factory=list)
    total: int = 0


__all__ = [
    "Approve",
    "EditScore",
    "Expire",
    "IMAGE_EXTENSIONS",
    "PendingPage",
    "ProofAttachment",
    "Rating",
    "Reject",
    "ReviewAction",
    "ReviewButton",
    "ReviewRequest",
    "Reviewer",
    "Submission",
    "SubmissionCandidate",
    "SubmissionStatus",
    "WipeMode",
    "new_submission_id",
    "parse_custom_id",
]
