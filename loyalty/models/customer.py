"""
Customer model.
"""
from datetime import datetime
from decimal import Decimal

from ..extensions import db
from .points import Tier


class Customer(db.Model):
    """
    Loyalty program customer.

    ``total_points`` is the spendable balance and never goes below zero.
    ``lifetime_points`` only ever grows; tier and tier progress derive from it.
    ``version`` is bumped on every balance change and guards conditional
    updates against concurrent redemptions.
    """
    __tablename__ = 'customers'

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey('restaurants.id'), nullable=False)

    # Contact info
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(50))
    date_of_birth = db.Column(db.Date)

    # Loyalty state
    total_points = db.Column(db.Integer, default=0, nullable=False)
    lifetime_points = db.Column(db.Integer, default=0, nullable=False)
    current_tier = db.Column(db.String(20), default=Tier.BRONZE.value, nullable=False)
    tier_progress = db.Column(db.Integer, default=0, nullable=False)  # 0-100
    version = db.Column(db.Integer, default=1, nullable=False)

    # Visit stats
    visit_count = db.Column(db.Integer, default=0, nullable=False)
    total_spent = db.Column(db.Numeric(12, 2), default=Decimal('0'), nullable=False)
    last_visit = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('restaurant_id', 'email', name='uq_restaurant_customer_email'),
        db.CheckConstraint('total_points >= 0', name='ck_customers_total_points_non_negative'),
        db.Index('ix_customers_restaurant_created', 'restaurant_id', 'created_at'),
    )

    def __repr__(self):
        return f'<Customer {self.id}: {self.email}>'

    @property
    def name(self) -> str:
        return f'{self.first_name} {self.last_name}'.strip()

    def to_dict(self):
        return {
            'id': self.id,
            'restaurant_id': self.restaurant_id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'date_of_birth': self.date_of_birth.isoformat() if self.date_of_birth else None,
            'total_points': self.total_points,
            'lifetime_points': self.lifetime_points,
            'current_tier': self.current_tier,
            'tier_progress': self.tier_progress,
            'visit_count': self.visit_count,
            'total_spent': float(self.total_spent or 0),
            'last_visit': self.last_visit.isoformat() if self.last_visit else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
