"""
Reward redemption.

A redemption moves through explicit states:

    INITIATED -> VALIDATED -> COMMITTED
    INITIATED -> REJECTED
    VALIDATED -> ROLLED_BACK

When the commit loses a race with another balance change (the customer's
version moved), the attempt is rolled back and validated once more against
fresh state:

    ROLLED_BACK -> VALIDATED -> COMMITTED
    ROLLED_BACK -> REJECTED

A second lost race fails with ConcurrentModificationError. Any error raised
from ``redeem`` carries the attempt as ``error.attempt``.

Eligibility is always re-evaluated here against stored state, whatever the
caller showed the customer.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, List, Tuple

from flask import current_app

from ..models import Customer, Reward, PointsTransaction
from ..utils.exceptions import (
    LoyaltyError,
    IneligibleRedemptionError,
    RewardExhaustedError,
    ConcurrentModificationError,
)
from .eligibility import ineligibility_reasons
from .loyalty_store import LoyaltyStore, customer_lock


class RedemptionState(str, Enum):
    INITIATED = 'initiated'
    VALIDATED = 'validated'
    COMMITTED = 'committed'
    REJECTED = 'rejected'
    ROLLED_BACK = 'rolled_back'


ALLOWED_TRANSITIONS = {
    RedemptionState.INITIATED: {RedemptionState.VALIDATED, RedemptionState.REJECTED},
    RedemptionState.VALIDATED: {RedemptionState.COMMITTED, RedemptionState.ROLLED_BACK},
    RedemptionState.ROLLED_BACK: {RedemptionState.VALIDATED, RedemptionState.REJECTED},
    RedemptionState.COMMITTED: set(),
    RedemptionState.REJECTED: set(),
}


class RedemptionAttempt:
    """One customer's attempt to redeem one reward."""

    def __init__(self, customer_id: int, reward_id: int):
        self.customer_id = customer_id
        self.reward_id = reward_id
        self.state = RedemptionState.INITIATED
        self.history: List[RedemptionState] = [RedemptionState.INITIATED]
        self.revalidations = 0
        self.transaction: Optional[PointsTransaction] = None
        self.started_at = datetime.utcnow()

    def advance(self, state: RedemptionState) -> None:
        if state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal redemption transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    @property
    def is_final(self) -> bool:
        return not ALLOWED_TRANSITIONS[self.state]

    def to_dict(self):
        return {
            'customer_id': self.customer_id,
            'reward_id': self.reward_id,
            'state': self.state.value,
            'history': [state.value for state in self.history],
            'revalidations': self.revalidations,
            'transaction_id': self.transaction.id if self.transaction else None,
        }


def _identity(value) -> int:
    return value.id if isinstance(value, (Customer, Reward)) else int(value)


class RedemptionService:
    """
    Debits points for rewards, all or nothing.

    Usage:
        service = RedemptionService(restaurant_id)
        transaction = service.redeem(customer_id, reward_id)
    """

    max_revalidations = 1

    def __init__(self, restaurant_id: int, store: LoyaltyStore = None):
        self.restaurant_id = restaurant_id
        self.store = store or LoyaltyStore(restaurant_id)

    def redeem(self, customer, reward, created_by: str = 'customer') -> PointsTransaction:
        """
        Redeem ``reward`` for ``customer`` (models or ids).

        The caller's customer object is not relied on for balances; reload
        it after this returns.

        Raises:
            CustomerNotFoundError / RewardNotFoundError
            IneligibleRedemptionError: inactive, tier too low or not enough points
            RewardExhaustedError: availability cap reached
            ConcurrentModificationError: lost the race twice
            PersistenceFailureError: commit failed; nothing was written
        """
        return self.execute(customer, reward, created_by=created_by).transaction

    def execute(self, customer, reward, created_by: str = 'customer') -> RedemptionAttempt:
        """Run a redemption and return the committed attempt."""
        attempt = RedemptionAttempt(_identity(customer), _identity(reward))

        with customer_lock(self.restaurant_id, attempt.customer_id):
            try:
                self._run(attempt, created_by)
            except LoyaltyError as e:
                e.attempt = attempt
                current_app.logger.warning(
                    f"Redemption failed: customer {attempt.customer_id} reward {attempt.reward_id} "
                    f"[{' -> '.join(s.value for s in attempt.history)}]: {e.message}"
                )
                raise

        current_app.logger.info(
            f"Redemption committed: customer {attempt.customer_id} reward {attempt.reward_id} "
            f"{attempt.transaction.points:+d} pts, balance {attempt.transaction.balance_after}"
        )
        return attempt

    def _run(self, attempt: RedemptionAttempt, created_by: str) -> None:
        while True:
            customer, reward = self._validate(attempt)
            try:
                attempt.transaction = self.store.commit_redemption(customer, reward, created_by=created_by)
            except ConcurrentModificationError:
                attempt.advance(RedemptionState.ROLLED_BACK)
                if attempt.revalidations >= self.max_revalidations:
                    raise
                attempt.revalidations += 1
                current_app.logger.info(
                    f"Customer {attempt.customer_id} changed during redemption, re-validating"
                )
                continue
            except LoyaltyError:
                attempt.advance(RedemptionState.ROLLED_BACK)
                raise

            attempt.advance(RedemptionState.COMMITTED)
            return

    def _validate(self, attempt: RedemptionAttempt) -> Tuple[Customer, Reward]:
        """Check the redemption against freshly loaded state."""
        try:
            customer = self.store.load_customer(attempt.customer_id, for_update=True)
            reward = self.store.load_reward(attempt.reward_id, for_update=True)
        except LoyaltyError:
            self.store.rollback()
            attempt.advance(RedemptionState.REJECTED)
            raise

        reasons = ineligibility_reasons(customer, reward)
        if reasons:
            error = IneligibleRedemptionError(
                reasons,
                customer_id=customer.id,
                reward_id=reward.id,
                total_points=customer.total_points,
                points_required=reward.points_required,
                current_tier=customer.current_tier,
                min_tier=reward.min_tier,
            )
            self.store.rollback()
            attempt.advance(RedemptionState.REJECTED)
            raise error

        if reward.is_exhausted():
            error = RewardExhaustedError(reward.id, reward.total_available, reward.total_redeemed)
            self.store.rollback()
            attempt.advance(RedemptionState.REJECTED)
            raise error

        attempt.advance(RedemptionState.VALIDATED)
        return customer, reward
