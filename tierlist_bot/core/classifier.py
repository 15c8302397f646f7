"""
Score parsing and tier classification.

Every place that (re)classifies a score (intake, moderator edit, approval,
rating upsert) goes through the same ``TierThresholds`` instance so the tier
shown on a review card can never drift from the tier written to the board.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

TIER_COUNT = 5
DEFAULT_TIER_FLOORS: Tuple[int, ...] = (15, 35, 60, 90, 120)

_SCORE_PATTERN = re.compile(r"(\d{1,4})\+?")


def parse_score(text: Optional[str]) -> Optional[int]:
    """Return the first 1-4 digit number in ``text`` (a trailing ``+`` is allowed)."""
    if not text:
        return None
    match = _SCORE_PATTERN.search(text)
    if not match:
        return None
    value = int(match.group(1))
    if value <= 0:
        return None
    return value


@dataclass(frozen=True, slots=True)
class TierThresholds:
    """Lower bounds for tiers 1..5. A score equal to a bound belongs to that tier."""

    floors: Tuple[int, ...] = DEFAULT_TIER_FLOORS

    def __post_init__(self) -> None:
        floors = tuple(int(value) for value in self.floors)
        if len(floors) != TIER_COUNT:
            raise ValueError(f"expected {TIER_COUNT} tier floors, got {len(floors)}")
        if floors[0] <= 0:
            raise ValueError("tier floors must be positive")
        if any(lower >= upper for lower, upper in zip(floors, floors[1:])):
            raise ValueError(f"tier floors must be strictly increasing: {floors}")
        object.__setattr__(self, "floors", floors)

    @property
    def floor(self) -> int:
        return self.floors[0]

    def tier_of(self, score: Optional[int]) -> Optional[int]:
        if score is None:
            return None
        for tier in range(TIER_COUNT, 0, -1):
            if score >= self.floors[tier - 1]:
                return tier
        return None


DEFAULT_THRESHOLDS = TierThresholds()


def classify(
    text: Optional[str],
    thresholds: TierThresholds = DEFAULT_THRESHOLDS,
) -> Tuple[Optional[int], Optional[int]]:
    """Parse ``text`` and return ``(score, tier)``; tier is None below the floor."""
    score = parse_score(text)
    return score, thresholds.tier_of(score)


__all__ = [
    "DEFAULT_THRESHOLDS",
    "DEFAULT_TIER_FLOORS",
    "TIER_COUNT",
    "TierThresholds",
    "classify",
    "parse_score",
]
