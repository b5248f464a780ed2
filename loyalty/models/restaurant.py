"""
Restaurant model for the multi-restaurant loyalty program.
"""
from datetime import datetime
from flask import current_app

from ..extensions import db


class Restaurant(db.Model):
    """
    Restaurant running a loyalty program.
    Every customer, reward and ledger entry belongs to exactly one restaurant.
    """
    __tablename__ = 'restaurants'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)

    # Program settings (JSON for flexibility)
    settings = db.Column(db.JSON, default=dict)
    # Example: {"points_per_currency": 0.1, "point_value": 0.05, "signup_bonus_points": 0}

    # ROI calculation settings
    default_profit_margin = db.Column(db.Numeric(4, 2))       # 0.30
    estimated_cogs_percentage = db.Column(db.Numeric(4, 2))   # 0.40
    target_roi_percentage = db.Column(db.Numeric(6, 2))       # 200.00

    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<Restaurant {self.slug}>'

    def get_setting(self, key: str, default=None):
        """Read a program setting, falling back to app config defaults."""
        value = (self.settings or {}).get(key)
        if value is not None:
            return value
        return default

    @property
    def points_per_currency(self) -> float:
        return float(self.get_setting(
            'points_per_currency', current_app.config['DEFAULT_POINTS_PER_CURRENCY']))

    @property
    def point_value(self) -> float:
        return float(self.get_setting(
            'point_value', current_app.config['DEFAULT_POINT_VALUE']))

    @property
    def signup_bonus_points(self) -> int:
        return int(self.get_setting(
            'signup_bonus_points', current_app.config['DEFAULT_SIGNUP_BONUS_POINTS']))

    @property
    def currency(self) -> str:
        return self.get_setting('currency', current_app.config['DEFAULT_CURRENCY'])

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'settings': {
                'points_per_currency': self.points_per_currency,
                'point_value': self.point_value,
                'signup_bonus_points': self.signup_bonus_points,
                'currency': self.currency,
            },
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
