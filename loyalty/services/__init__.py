"""
Business logic services for the restaurant loyalty program.
"""
from .loyalty_store import LoyaltyStore, customer_lock
from .tiers import classify, TierStatus, TIER_THRESHOLDS
from .eligibility import ineligibility_reasons, is_redeemable, list_eligible
from .points_ledger import PointsLedger, TransactionHistory
from .redemption_service import RedemptionService, RedemptionAttempt, RedemptionState
from .customer_service import CustomerService
from .reward_catalog import RewardCatalogService
from .analytics_service import LoyaltyAnalyticsService, resolve_date_range

__all__ = [
    'LoyaltyStore',
    'customer_lock',
    'classify',
    'TierStatus',
    'TIER_THRESHOLDS',
    'ineligibility_reasons',
    'is_redeemable',
    'list_eligible',
    'PointsLedger',
    'TransactionHistory',
    'RedemptionService',
    'RedemptionAttempt',
    'RedemptionState',
    'CustomerService',
    'RewardCatalogService',
    'LoyaltyAnalyticsService',
    'resolve_date_range',
]
