"""
Points Ledger for the restaurant loyalty program.

Append-only record of point-affecting events and the balances derived from it:
- ``total_points``: spendable balance, the sum of all entries
- ``lifetime_points``: the sum of all earned (positive) entries, never decreases

Every earn event recomputes the customer's tier and tier progress from
lifetime points. Redemption events are delegated to RedemptionService, which
re-checks eligibility before debiting.
"""
from decimal import Decimal, InvalidOperation, ROUND_FLOOR
from typing import Dict, Any, Iterator

from flask import current_app

from ..models import Customer, PointsTransaction, TransactionType
from ..utils.exceptions import InvalidAmountError, ValidationError
from .loyalty_store import LoyaltyStore, customer_lock
from .redemption_service import RedemptionService
from .tiers import classify


class TransactionHistory:
    """
    Newest-first view of a customer's ledger.

    Nothing is queried until iteration, and every iteration re-runs the query,
    so the same object can be iterated again after new events are recorded.
    """

    def __init__(self, query, limit: int = None, offset: int = 0):
        self._query = query
        self.limit = limit
        self.offset = offset

    def _bounded(self):
        query = self._query
        if self.offset:
            query = query.offset(self.offset)
        if self.limit is not None:
            query = query.limit(self.limit)
        return query

    def __iter__(self) -> Iterator[PointsTransaction]:
        return iter(self._bounded())

    def count(self) -> int:
        """Total entries matching, ignoring limit and offset."""
        return self._query.count()

    def to_list(self):
        return [entry.to_dict() for entry in self]


class PointsLedger:
    """
    Records earn events and reads balances for one restaurant.

    Usage:
        ledger = PointsLedger(restaurant_id)
        ledger.record_event(customer_id, 'bonus', 50, {'description': 'Birthday'})
        ledger.record_purchase(customer_id, Decimal('120.00'), points_per_currency=0.1)
        balance = ledger.get_balance(customer_id)
    """

    def __init__(self, restaurant_id: int, store: LoyaltyStore = None):
        self.restaurant_id = restaurant_id
        self.store = store or LoyaltyStore(restaurant_id)

    # ==================== Writes ====================

    def record_event(
        self,
        customer_id: int,
        transaction_type,
        points: int,
        metadata: Dict[str, Any] = None
    ) -> PointsTransaction:
        """
        Append a point-affecting event and update balances.

        Earn events add ``points`` to both balances. A redemption carries the
        negated cost of ``metadata['reward_id']`` and is handed to
        RedemptionService, so it gets the same eligibility checks and
        all-or-nothing commit as any other redemption.

        Args:
            customer_id: Customer to credit or debit
            transaction_type: purchase, bonus, referral, signup or redemption
            points: Signed delta. Earn types must be positive (signup also
                accepts 0); redemptions must be negative
            metadata: Optional ``description``, ``amount_spent``, ``created_by``;
                ``reward_id`` for redemptions

        Raises:
            ValidationError: unknown type, or a redemption without reward_id
            InvalidAmountError: malformed delta for the type
            CustomerNotFoundError: customer not in this restaurant
            IneligibleRedemptionError, RewardExhaustedError,
            ConcurrentModificationError: see RedemptionService
        """
        metadata = metadata or {}
        transaction_type = self._validate_event(transaction_type, points)
        if transaction_type == TransactionType.REDEMPTION:
            return self._record_redemption(customer_id, points, metadata)

        with customer_lock(self.restaurant_id, customer_id):
            self.store.load_customer(customer_id)
            with self.store.staged(f'{transaction_type.value} event'):
                entry = self._apply_event(customer_id, transaction_type, points, metadata)
            self.store.commit(f'{transaction_type.value} event')

        current_app.logger.info(
            f"Points recorded: customer {customer_id} {points:+d} pts "
            f"({transaction_type.value}), balance {entry.balance_after}"
        )
        return entry

    def stage_event(
        self,
        customer_id: int,
        transaction_type,
        points: int,
        metadata: Dict[str, Any] = None
    ) -> PointsTransaction:
        """Validate and stage an earn event without committing."""
        transaction_type = self._validate_event(transaction_type, points)
        if transaction_type == TransactionType.REDEMPTION:
            raise ValidationError("Redemptions cannot be staged", field='transaction_type')
        return self._apply_event(customer_id, transaction_type, points, metadata or {})

    def record_purchase(
        self,
        customer_id: int,
        amount_spent,
        points_per_currency,
        description: str = None,
        created_by: str = 'system'
    ) -> PointsTransaction:
        """
        Record a purchase visit and the points it earns.

        points = floor(amount_spent * points_per_currency). A purchase too
        small to earn a point is still recorded (0 points) with its amount.
        """
        amount = self._to_decimal(amount_spent, 'amount_spent')
        if amount <= 0:
            raise InvalidAmountError(
                f"Purchase amount must be positive: {amount_spent}",
                amount=amount_spent,
                transaction_type=TransactionType.PURCHASE.value
            )

        if points_per_currency is None:
            raise ValidationError("points_per_currency is required", field='points_per_currency')
        rate = self._to_decimal(points_per_currency, 'points_per_currency')
        if rate <= 0:
            raise ValidationError(
                f"points_per_currency must be positive: {points_per_currency}",
                field='points_per_currency'
            )

        points = int((amount * rate).to_integral_value(rounding=ROUND_FLOOR))

        with customer_lock(self.restaurant_id, customer_id):
            self.store.load_customer(customer_id)
            with self.store.staged('purchase'):
                self.store.record_visit(customer_id, amount)
                entry = self._apply_event(customer_id, TransactionType.PURCHASE, points, {
                    'amount_spent': amount,
                    'description': description or f'Purchase of {amount}',
                    'created_by': created_by,
                })
            self.store.commit('purchase')

        current_app.logger.info(
            f"Purchase recorded: customer {customer_id} spent {amount}, +{points} pts"
        )
        return entry

    # ==================== Reads ====================

    def get_balance(self, customer_id: int) -> Dict[str, Any]:
        """Current and lifetime points, synchronized with in-flight redemptions."""
        with customer_lock(self.restaurant_id, customer_id):
            customer = self.store.load_customer(customer_id, fresh=True)
            return {
                'customer_id': customer.id,
                'total_points': customer.total_points,
                'lifetime_points': customer.lifetime_points,
                'current_tier': customer.current_tier,
                'tier_progress': customer.tier_progress,
            }

    def get_history(
        self,
        customer_id: int,
        limit: int = None,
        offset: int = 0,
        transaction_type: str = None
    ) -> TransactionHistory:
        self.store.load_customer(customer_id)
        if limit is not None and limit < 0:
            raise ValidationError(f"limit cannot be negative: {limit}", field='limit')
        return TransactionHistory(
            self.store.history_query(customer_id, transaction_type),
            limit=limit,
            offset=offset
        )

    def recalculate_tiers(self) -> int:
        """Reclassify every customer from lifetime points. Returns how many changed."""
        changed = 0
        for customer in self.store.list_customers():
            before = (customer.current_tier, customer.tier_progress)
            self._reclassify(customer)
            if (customer.current_tier, customer.tier_progress) != before:
                changed += 1
        self.store.commit('tier recalculation')
        return changed

    # ==================== Internals ====================

    def _validate_event(self, transaction_type, points) -> TransactionType:
        try:
            transaction_type = TransactionType(transaction_type)
        except ValueError:
            raise ValidationError(
                f"Unknown transaction type '{transaction_type}'. "
                f"Must be one of: {TransactionType.values()}",
                field='transaction_type'
            )

        if isinstance(points, bool) or not isinstance(points, int):
            raise InvalidAmountError(
                f"Points must be a whole number: {points!r}",
                amount=points,
                transaction_type=transaction_type.value
            )

        if transaction_type == TransactionType.REDEMPTION:
            if points >= 0:
                raise InvalidAmountError(
                    f"Redemption points must be negative: {points}",
                    amount=points,
                    transaction_type=transaction_type.value
                )
            return transaction_type

        if points < 0:
            raise InvalidAmountError(
                f"{transaction_type.value} points cannot be negative: {points}",
                amount=points,
                transaction_type=transaction_type.value
            )
        if points == 0 and transaction_type != TransactionType.SIGNUP:
            raise InvalidAmountError(
                f"{transaction_type.value} points must be positive",
                amount=points,
                transaction_type=transaction_type.value
            )
        return transaction_type

    def _record_redemption(self, customer_id: int, points: int, metadata: Dict[str, Any]) -> PointsTransaction:
        reward_id = metadata.get('reward_id')
        if reward_id is None:
            raise ValidationError("Redemptions must reference a reward", field='reward_id')

        reward = self.store.load_reward(reward_id)
        if points != -reward.points_required:
            raise InvalidAmountError(
                f"Redemption of reward {reward.id} must debit {reward.points_required} points, got {points}",
                amount=points,
                transaction_type=TransactionType.REDEMPTION.value
            )

        return RedemptionService(self.restaurant_id, store=self.store).redeem(
            customer_id,
            reward.id,
            created_by=metadata.get('created_by') or 'system'
        )

    def _apply_event(
        self,
        customer_id: int,
        transaction_type: TransactionType,
        points: int,
        metadata: Dict[str, Any]
    ) -> PointsTransaction:
        """Stage balance, tier and ledger changes. The caller commits."""
        customer = self.store.apply_earned_points(customer_id, points)
        self._reclassify(customer)

        return self.store.append_transaction(PointsTransaction(
            customer_id=customer_id,
            transaction_type=transaction_type.value,
            points=points,
            balance_after=customer.total_points,
            amount_spent=metadata.get('amount_spent'),
            description=metadata.get('description') or f'{transaction_type.value.title()} points',
            created_by=metadata.get('created_by') or 'system',
        ))

    def _reclassify(self, customer: Customer) -> None:
        status = classify(customer.lifetime_points)
        if customer.current_tier != status.tier.value:
            current_app.logger.info(
                f"Tier change: customer {customer.id} {customer.current_tier} -> {status.tier.value}"
            )
        customer.current_tier = status.tier.value
        customer.tier_progress = status.progress_percent

    @staticmethod
    def _to_decimal(value, field: str) -> Decimal:
        if isinstance(value, bool):
            raise InvalidAmountError(f"{field} must be a number: {value!r}", amount=value)
        try:
            number = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise InvalidAmountError(f"{field} must be a number: {value!r}", amount=value)
        if not number.is_finite():
            raise InvalidAmountError(f"{field} must be a finite number: {value!r}", amount=value)
        return number
