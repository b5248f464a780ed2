"""
Reward catalog model.
"""
from datetime import datetime
from typing import Optional, Dict, Any

from ..extensions import db
from .points import Tier


class Reward(db.Model):
    """
    Redeemable catalog entry.

    Design notes:
    - Configured by the restaurant; read-only from the customer's side
    - Gated by point cost and a minimum tier
    - ``total_available`` caps total redemptions (null = unlimited)
    - ``total_redeemed`` is only incremented by successful redemptions
    """
    __tablename__ = 'rewards'

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey('restaurants.id'), nullable=False)

    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(1000))
    category = db.Column(db.String(50), default='food')  # food, drink, experience, discount

    points_required = db.Column(db.Integer, nullable=False)
    min_tier = db.Column(db.String(20), default=Tier.BRONZE.value, nullable=False)

    total_available = db.Column(db.Integer)
    total_redeemed = db.Column(db.Integer, default=0, nullable=False)

    display_order = db.Column(db.Integer, default=0)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint('points_required > 0', name='ck_rewards_points_required_positive'),
        db.Index('ix_rewards_restaurant_active', 'restaurant_id', 'is_active'),
        db.Index('ix_rewards_display', 'restaurant_id', 'display_order'),
    )

    def __repr__(self):
        return f'<Reward {self.name}: {self.points_required} pts>'

    def remaining_quantity(self) -> Optional[int]:
        """Get remaining quantity available (None = unlimited)."""
        if self.total_available is None:
            return None
        return max(0, self.total_available - (self.total_redeemed or 0))

    def is_exhausted(self) -> bool:
        remaining = self.remaining_quantity()
        return remaining is not None and remaining <= 0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for API responses."""
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'category': self.category,
            'points_required': self.points_required,
            'min_tier': self.min_tier,
            'is_active': self.is_active,
            'total_available': self.total_available,
            'total_redeemed': self.total_redeemed or 0,
            'remaining': self.remaining_quantity(),
            'display_order': self.display_order or 0,
        }
