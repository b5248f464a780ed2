"""
Reward eligibility.

A reward is redeemable right now when all of these hold:
- the reward is active
- the customer's tier ranks at or above the reward's minimum tier
- the customer's spendable balance covers the point cost

These functions are side-effect free and take any customer/reward snapshot
exposing ``current_tier``/``total_points`` and ``is_active``/``min_tier``/
``points_required``. Results are never cached: callers recompute after every
balance or tier change.
"""
from typing import Iterable, List

from .tiers import tier_rank

REASON_INACTIVE = 'inactive'
REASON_TIER = 'tier_too_low'
REASON_POINTS = 'insufficient_points'


def ineligibility_reasons(customer, reward) -> List[str]:
    """Every rule the customer/reward pair fails, in check order."""
    reasons = []
    if not reward.is_active:
        reasons.append(REASON_INACTIVE)
    if tier_rank(customer.current_tier) < tier_rank(reward.min_tier):
        reasons.append(REASON_TIER)
    if (customer.total_points or 0) < reward.points_required:
        reasons.append(REASON_POINTS)
    return reasons


def is_redeemable(customer, reward) -> bool:
    """Single-reward form of the eligibility predicate."""
    return not ineligibility_reasons(customer, reward)


def list_eligible(customer, all_rewards: Iterable) -> list:
    """Rewards the customer can redeem now, in catalog order."""
    return [reward for reward in all_rewards if is_redeemable(customer, reward)]


def points_needed(customer, reward) -> int:
    """Points still missing before the balance covers the reward."""
    return max(0, reward.points_required - (customer.total_points or 0))
