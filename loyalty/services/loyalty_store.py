"""
Durable store for loyalty state.

All reads and writes of customers, rewards and ledger entries go through
LoyaltyStore so that restaurant scoping, conditional updates and commit
failure handling live in one place.

Concurrency model:
- Within one process, operations on the same customer are serialized by
  ``customer_lock``.
- Across processes, balance writes are conditional on the customer's
  ``version`` column (compare-and-swap). A write that loses the race updates
  zero rows and raises ConcurrentModificationError.
- On databases that support it, ``load_customer(for_update=True)`` also takes
  a row lock for the rest of the transaction.
"""
import threading
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Tuple

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Restaurant, Customer, Reward, PointsTransaction, TransactionType
from ..utils.exceptions import (
    LoyaltyError,
    CustomerNotFoundError,
    RewardNotFoundError,
    RestaurantNotFoundError,
    InvalidAmountError,
    RewardExhaustedError,
    ConcurrentModificationError,
    PersistenceFailureError,
)


_locks_guard = threading.Lock()
_customer_locks: Dict[Tuple[int, int], threading.RLock] = {}


@contextmanager
def customer_lock(restaurant_id: int, customer_id: int):
    """Serialize balance reads and writes for one customer in this process."""
    with _locks_guard:
        lock = _customer_locks.setdefault((restaurant_id, customer_id), threading.RLock())
    with lock:
        yield


class LoyaltyStore:
    """
    Restaurant-scoped persistence operations.

    Write methods stage changes in the current session; nothing is durable
    until ``commit`` succeeds.

    Usage:
        store = LoyaltyStore(restaurant_id)
        customer = store.load_customer(customer_id, for_update=True)
        store.update_customer_balances(customer.id, 150, 650, customer.version)
        store.commit('redemption')
    """

    def __init__(self, restaurant_id: int):
        self.restaurant_id = restaurant_id

    # ==================== Reads ====================

    def load_restaurant(self) -> Restaurant:
        restaurant = db.session.get(Restaurant, self.restaurant_id)
        if not restaurant:
            raise RestaurantNotFoundError(self.restaurant_id)
        return restaurant

    def load_customer(self, customer_id: int, for_update: bool = False, fresh: bool = False) -> Customer:
        """
        Load a customer of this restaurant.

        With ``fresh`` the row is re-read from the database, discarding any
        cached snapshot. ``for_update`` implies ``fresh`` and also locks the
        row where the backend supports it.

        Raises:
            CustomerNotFoundError: unknown id or another restaurant's customer
        """
        query = Customer.query.filter_by(id=customer_id, restaurant_id=self.restaurant_id)
        if for_update or fresh:
            query = query.populate_existing()
        if for_update:
            query = query.with_for_update()
        customer = query.first()
        if not customer:
            raise CustomerNotFoundError(customer_id)
        return customer

    def find_customer_by_email(self, email: str) -> Optional[Customer]:
        if not email:
            return None
        return Customer.query.filter(
            Customer.restaurant_id == self.restaurant_id,
            func.lower(Customer.email) == email.strip().lower()
        ).first()

    def load_reward(self, reward_id: int, for_update: bool = False) -> Reward:
        query = Reward.query.filter_by(id=reward_id, restaurant_id=self.restaurant_id)
        if for_update:
            query = query.populate_existing()
        reward = query.first()
        if not reward:
            raise RewardNotFoundError(reward_id)
        return reward

    def load_reward_catalog(self, include_inactive: bool = True) -> List[Reward]:
        """Rewards in catalog order: display_order, then cost, then id."""
        query = Reward.query.filter_by(restaurant_id=self.restaurant_id)
        if not include_inactive:
            query = query.filter_by(is_active=True)
        return query.order_by(
            Reward.display_order.asc(),
            Reward.points_required.asc(),
            Reward.id.asc()
        ).all()

    def list_customers(self) -> List[Customer]:
        return Customer.query.filter_by(restaurant_id=self.restaurant_id).order_by(Customer.id.asc()).all()

    def history_query(self, customer_id: int, transaction_type: str = None):
        """Ledger entries for a customer, newest first."""
        query = PointsTransaction.query.filter_by(
            restaurant_id=self.restaurant_id,
            customer_id=customer_id
        )
        if transaction_type:
            query = query.filter_by(transaction_type=transaction_type)
        return query.order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc())

    # ==================== Staged writes ====================

    def add(self, instance):
        db.session.add(instance)
        db.session.flush()
        return instance

    def append_transaction(self, entry: PointsTransaction) -> PointsTransaction:
        """Stage a ledger entry. Entries are never updated afterwards."""
        entry.restaurant_id = self.restaurant_id
        if entry.created_at is None:
            entry.created_at = datetime.utcnow()
        return self.add(entry)

    def apply_earned_points(self, customer_id: int, points: int) -> Customer:
        """
        Atomically add earned points to both balances and bump the version.

        Returns the customer re-read after the update.
        """
        if points < 0:
            raise InvalidAmountError(f"Earned points cannot be negative: {points}", amount=points)

        updated = Customer.query.filter_by(
            id=customer_id,
            restaurant_id=self.restaurant_id
        ).update({
            Customer.total_points: Customer.total_points + points,
            Customer.lifetime_points: Customer.lifetime_points + points,
            Customer.version: Customer.version + 1,
            Customer.updated_at: datetime.utcnow(),
        }, synchronize_session=False)

        if updated != 1:
            raise CustomerNotFoundError(customer_id)
        return self._refresh_customer(customer_id)

    def record_visit(self, customer_id: int, amount_spent: Decimal) -> None:
        now = datetime.utcnow()
        updated = Customer.query.filter_by(
            id=customer_id,
            restaurant_id=self.restaurant_id
        ).update({
            Customer.visit_count: Customer.visit_count + 1,
            Customer.total_spent: Customer.total_spent + amount_spent,
            Customer.last_visit: now,
            Customer.updated_at: now,
        }, synchronize_session=False)

        if updated != 1:
            raise CustomerNotFoundError(customer_id)

    def update_customer_balances(
        self,
        customer_id: int,
        total_points: int,
        lifetime_points: int,
        expected_version: int
    ) -> None:
        """
        Set both balances if the row still carries ``expected_version``.

        Raises:
            InvalidAmountError: total_points would go negative
            ConcurrentModificationError: the row changed since it was read
        """
        if total_points < 0:
            raise InvalidAmountError(
                f"Balance cannot go negative: {total_points}",
                amount=total_points
            )

        updated = Customer.query.filter(
            Customer.id == customer_id,
            Customer.restaurant_id == self.restaurant_id,
            Customer.version == expected_version,
            Customer.lifetime_points <= lifetime_points,
        ).update({
            Customer.total_points: total_points,
            Customer.lifetime_points: lifetime_points,
            Customer.version: expected_version + 1,
            Customer.updated_at: datetime.utcnow(),
        }, synchronize_session=False)

        if updated != 1:
            raise ConcurrentModificationError(customer_id, expected_version)

    def increment_reward_redeemed(self, reward_id: int) -> None:
        """
        Count one redemption against the reward's cap.

        Raises:
            RewardExhaustedError: the cap was reached before this increment
        """
        updated = Reward.query.filter(
            Reward.id == reward_id,
            Reward.restaurant_id == self.restaurant_id,
            or_(
                Reward.total_available.is_(None),
                Reward.total_redeemed < Reward.total_available
            )
        ).update({
            Reward.total_redeemed: Reward.total_redeemed + 1,
            Reward.updated_at: datetime.utcnow(),
        }, synchronize_session=False)

        if updated != 1:
            reward = self.load_reward(reward_id, for_update=True)
            raise RewardExhaustedError(reward.id, reward.total_available, reward.total_redeemed)

    # ==================== Units of work ====================

    @contextmanager
    def staged(self, operation: str):
        """
        Roll back the session if staging writes for ``operation`` fails.

        Raises:
            PersistenceFailureError: the database rejected a staged write
        """
        try:
            yield
        except LoyaltyError:
            db.session.rollback()
            raise
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"Staging failed for {operation} (restaurant {self.restaurant_id}): {e}")
            raise PersistenceFailureError(operation, e) from e

    def commit(self, operation: str) -> None:
        """
        Commit the session.

        Raises:
            PersistenceFailureError: the database rejected the commit; the
                session has been rolled back
        """
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"Commit failed for {operation} (restaurant {self.restaurant_id}): {e}")
            raise PersistenceFailureError(operation, e) from e

    def rollback(self) -> None:
        db.session.rollback()

    def commit_redemption(self, customer: Customer, reward: Reward, created_by: str = 'customer') -> PointsTransaction:
        """
        Debit the customer, count the redemption and append the ledger entry
        as one transaction.

        ``customer`` must be the snapshot the redemption was validated against;
        its version guards the debit.
        """
        new_total = customer.total_points - reward.points_required
        with self.staged('redemption'):
            self.update_customer_balances(
                customer.id,
                new_total,
                customer.lifetime_points,
                customer.version
            )
            self.increment_reward_redeemed(reward.id)
            entry = self.append_transaction(PointsTransaction(
                customer_id=customer.id,
                transaction_type=TransactionType.REDEMPTION.value,
                points=-reward.points_required,
                balance_after=new_total,
                reward_id=reward.id,
                description=f'Redeemed: {reward.name}',
                created_by=created_by,
            ))

        self.commit('redemption')
        return entry

    def _refresh_customer(self, customer_id: int) -> Customer:
        return db.session.get(Customer, customer_id, populate_existing=True)
