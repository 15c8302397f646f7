"""Leaderboard projection: ratings grouped by tier, best first."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from .classifier import TIER_COUNT
from .models import Rating

TIER_ENTRY_LIMIT = 50


@dataclass(frozen=True, slots=True)
class TierGroup:
    tier: int
    label: str
    entries: List[Rating] = field(default_factory=list)
    total: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.entries


def build_leaderboard(
    ratings: Iterable[Rating],
    labels: Optional[Mapping[int, str]] = None,
    *,
    limit: int = TIER_ENTRY_LIMIT,
) -> List[TierGroup]:
    """Group ``ratings`` into all five tiers, highest tier first.

    Each group is sorted by score descending; ``sorted`` is stable so equal
    scores keep their input order. Ratings with a tier outside 1..5 are
    skipped. Empty tiers are still returned.
    """
    buckets: Dict[int, List[Rating]] = {tier: [] for tier in range(1, TIER_COUNT + 1)}
    for rating in ratings:
        if rating.tier in buckets:
            buckets[rating.tier].append(rating)

    labels = labels or {}
    groups: List[TierGroup] = []
    for tier in range(TIER_COUNT, 0, -1):
        ordered = sorted(buckets[tier], key=lambda rating: rating.score, reverse=True)
        groups.append(
            TierGroup(
                tier=tier,
                label=labels.get(tier) or str(tier),
                entries=ordered[:limit],
                total=len(ordered),
            )
        )
    return groups


__all__ = ["TIER_ENTRY_LIMIT", "TierGroup", "build_leaderboard"]
