"""
Tier classification.

Tiers derive purely from lifetime points. Thresholds are inclusive lower
bounds:

    bronze     0 - 499
    silver   500 - 999
    gold    1000+

Gold is the top tier: progress is reported as 100% with no next tier.
"""
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

from ..models.points import Tier
from ..utils.exceptions import InvalidAmountError


# Lowest first
TIER_ORDER = (Tier.BRONZE, Tier.SILVER, Tier.GOLD)

TIER_THRESHOLDS = {
    Tier.BRONZE: 0,
    Tier.SILVER: 500,
    Tier.GOLD: 1000,
}


@dataclass(frozen=True)
class TierStatus:
    """Result of classifying a lifetime points total."""
    tier: Tier
    progress_percent: int
    next_tier: Optional[Tier]
    points_to_next: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['tier'] = self.tier.value
        data['next_tier'] = self.next_tier.value if self.next_tier else None
        data['next_threshold'] = TIER_THRESHOLDS[self.next_tier] if self.next_tier else None
        return data


def coerce_tier(value) -> Tier:
    """Accept a Tier or its string value (case-insensitive)."""
    if isinstance(value, Tier):
        return value
    try:
        return Tier(str(value).strip().lower())
    except ValueError:
        raise ValueError(f"Unknown tier '{value}'. Must be one of: {[t.value for t in TIER_ORDER]}")


def tier_rank(tier) -> int:
    """Ordinal rank of a tier: bronze=0, silver=1, gold=2."""
    return TIER_ORDER.index(coerce_tier(tier))


def next_tier_of(tier) -> Optional[Tier]:
    rank = tier_rank(tier)
    if rank + 1 >= len(TIER_ORDER):
        return None
    return TIER_ORDER[rank + 1]


def tier_for_points(lifetime_points: int) -> Tier:
    """Highest tier whose threshold is met."""
    for tier in reversed(TIER_ORDER):
        if lifetime_points >= TIER_THRESHOLDS[tier]:
            return tier
    return Tier.BRONZE


def classify(lifetime_points: int) -> TierStatus:
    """
    Map lifetime points to a tier and progress toward the next one.

    progress_percent = min(100, floor(lifetime_points / next_threshold * 100))

    Raises:
        InvalidAmountError: lifetime_points is negative
    """
    if lifetime_points is None or lifetime_points < 0:
        raise InvalidAmountError(
            f"Lifetime points cannot be negative: {lifetime_points}",
            amount=lifetime_points
        )

    tier = tier_for_points(lifetime_points)
    next_tier = next_tier_of(tier)

    if next_tier is None:
        return TierStatus(tier=tier, progress_percent=100, next_tier=None, points_to_next=0)

    next_threshold = TIER_THRESHOLDS[next_tier]
    progress = min(100, (lifetime_points * 100) // next_threshold)

    return TierStatus(
        tier=tier,
        progress_percent=int(progress),
        next_tier=next_tier,
        points_to_next=next_threshold - lifetime_points
    )
