"""
Database models for the restaurant loyalty program.
"""
from .restaurant import Restaurant
from .customer import Customer
from .reward import Reward
from .points import (
    Tier,
    TransactionType,
    PointsTransaction,
)

__all__ = [
    'Restaurant',
    'Customer',
    'Reward',
    'Tier',
    'TransactionType',
    'PointsTransaction',
]
