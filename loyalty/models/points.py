"""
Points ledger model and loyalty enums.

The ledger is the authoritative audit trail of every point-affecting event:
- Purchases, bonuses, referrals and signup grants (positive points)
- Reward redemptions (negative points, always linked to a reward)

Entries are append-only. A customer's ``total_points`` equals the sum of its
entries' points, and ``lifetime_points`` equals the sum of its positive entries.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, Any

from ..extensions import db


class Tier(str, Enum):
    """Loyalty tiers, lowest first."""
    BRONZE = 'bronze'
    SILVER = 'silver'
    GOLD = 'gold'


class TransactionType(str, Enum):
    """Types of point-affecting events."""
    PURCHASE = 'purchase'       # Points earned from spend (positive)
    BONUS = 'bonus'             # Promotional/manual bonus (positive)
    REFERRAL = 'referral'       # Referral reward (positive)
    SIGNUP = 'signup'           # Signup grant (zero or positive)
    REDEMPTION = 'redemption'   # Reward redeemed (negative)

    @classmethod
    def values(cls):
        return [t.value for t in cls]


class PointsTransaction(db.Model):
    """
    Immutable ledger entry.

    Design notes:
    - Never updated or deleted once committed
    - ``points`` is signed: + for earn, - for redemption
    - ``reward_id`` is set if and only if transaction_type is 'redemption'
    - ``balance_after`` snapshots the spendable balance after this entry
    """
    __tablename__ = 'points_transactions'

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey('restaurants.id'), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=False)

    transaction_type = db.Column(db.String(20), nullable=False)  # TransactionType
    points = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer)
    amount_spent = db.Column(db.Numeric(12, 2))  # Purchases only

    reward_id = db.Column(db.Integer, db.ForeignKey('rewards.id'))
    description = db.Column(db.String(500))
    created_by = db.Column(db.String(100), default='system')
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    reward = db.relationship('Reward')

    __table_args__ = (
        db.Index('ix_points_transactions_customer_created', 'customer_id', 'created_at'),
        db.Index('ix_points_transactions_restaurant_created', 'restaurant_id', 'created_at'),
        db.Index('ix_points_transactions_type', 'transaction_type'),
    )

    def __repr__(self):
        return f'<PointsTransaction {self.id}: {self.points:+d} pts for customer {self.customer_id}>'

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for API responses."""
        return {
            'id': self.id,
            'customer_id': self.customer_id,
            'type': self.transaction_type,
            'points': self.points,
            'balance_after': self.balance_after,
            'amount_spent': float(self.amount_spent) if self.amount_spent is not None else None,
            'reward_id': self.reward_id,
            'reward_name': self.reward.name if self.reward else None,
            'description': self.description,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
