"""
Reward catalog management.

Restaurants configure their catalog here. Customers only ever read it,
through ``catalog_for_customer`` which annotates each reward with whether
it can be redeemed right now.
"""
from typing import Dict, Any, List

from flask import current_app

from ..models import Reward
from ..utils.exceptions import ValidationError
from .eligibility import ineligibility_reasons, list_eligible, points_needed
from .loyalty_store import LoyaltyStore
from .tiers import coerce_tier

EDITABLE_FIELDS = (
    'name', 'description', 'category', 'points_required', 'min_tier',
    'total_available', 'display_order', 'is_active',
)
VALID_CATEGORIES = ('food', 'drink', 'dessert', 'experience', 'discount', 'other')


class RewardCatalogService:
    """
    Usage:
        catalog = RewardCatalogService(restaurant_id)
        reward = catalog.create_reward({'name': 'Free Coffee', 'points_required': 100})
        rewards = catalog.eligible_rewards(customer_id)
    """

    def __init__(self, restaurant_id: int, store: LoyaltyStore = None):
        self.restaurant_id = restaurant_id
        self.store = store or LoyaltyStore(restaurant_id)

    def list_rewards(self, include_inactive: bool = False) -> List[Reward]:
        return self.store.load_reward_catalog(include_inactive=include_inactive)

    def get_reward(self, reward_id: int) -> Reward:
        return self.store.load_reward(reward_id)

    def create_reward(self, data: Dict[str, Any]) -> Reward:
        for field in ('name', 'points_required'):
            if data.get(field) in (None, ''):
                raise ValidationError(f'{field} is required', field=field)

        reward = Reward(restaurant_id=self.restaurant_id, total_redeemed=0)
        self._apply(reward, {
            'min_tier': 'bronze',
            'category': 'food',
            'display_order': 0,
            'is_active': True,
            **data,
        })
        self.store.add(reward)
        self.store.commit('reward create')

        current_app.logger.info(f"Reward created: {reward.name} ({reward.points_required} pts) "
                                f"for restaurant {self.restaurant_id}")
        return reward

    def update_reward(self, reward_id: int, data: Dict[str, Any]) -> Reward:
        reward = self.store.load_reward(reward_id)
        try:
            self._apply(reward, data)
        except ValidationError:
            self.store.rollback()
            raise
        self.store.commit('reward update')
        return reward

    def toggle_reward(self, reward_id: int) -> Reward:
        reward = self.store.load_reward(reward_id)
        reward.is_active = not reward.is_active
        self.store.commit('reward toggle')
        current_app.logger.info(f"Reward {reward.id} {'activated' if reward.is_active else 'deactivated'}")
        return reward

    def eligible_rewards(self, customer_id: int) -> List[Reward]:
        """Rewards the customer can redeem right now, in catalog order."""
        customer = self.store.load_customer(customer_id, fresh=True)
        return list_eligible(customer, self.store.load_reward_catalog(include_inactive=False))

    def catalog_for_customer(self, customer_id: int) -> List[Dict[str, Any]]:
        """Active catalog with per-reward redeemability for one customer."""
        customer = self.store.load_customer(customer_id, fresh=True)
        catalog = []
        for reward in self.store.load_reward_catalog(include_inactive=False):
            reasons = ineligibility_reasons(customer, reward)
            if reward.is_exhausted():
                reasons.append('exhausted')
            catalog.append({
                **reward.to_dict(),
                'can_redeem': not reasons,
                'reasons': reasons,
                'points_needed': points_needed(customer, reward),
            })
        return catalog

    def _apply(self, reward: Reward, data: Dict[str, Any]) -> None:
        unknown = set(data) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown reward fields: {sorted(unknown)}", field=sorted(unknown)[0])

        if 'name' in data:
            name = data['name']
            if name is not None and not isinstance(name, str):
                raise ValidationError('name must be a string', field='name')
            name = (name or '').strip()
            if not name:
                raise ValidationError('name is required', field='name')
            reward.name = name

        if 'description' in data:
            if data['description'] is not None and not isinstance(data['description'], str):
                raise ValidationError('description must be a string', field='description')
            reward.description = data['description']

        if 'category' in data:
            if data['category'] not in VALID_CATEGORIES:
                raise ValidationError(f'category must be one of: {list(VALID_CATEGORIES)}', field='category')
            reward.category = data['category']

        if 'points_required' in data:
            reward.points_required = self._positive_int(data['points_required'], 'points_required')

        if 'min_tier' in data:
            try:
                reward.min_tier = coerce_tier(data['min_tier']).value
            except ValueError as e:
                raise ValidationError(str(e), field='min_tier')

        if 'total_available' in data:
            if data['total_available'] is None:
                reward.total_available = None
            else:
                reward.total_available = self._positive_int(data['total_available'], 'total_available')

        if 'display_order' in data:
            try:
                reward.display_order = int(data['display_order'] or 0)
            except (TypeError, ValueError):
                raise ValidationError('display_order must be an integer', field='display_order')

        if 'is_active' in data:
            reward.is_active = bool(data['is_active'])

    @staticmethod
    def _positive_int(value, field: str) -> int:
        if isinstance(value, bool):
            raise ValidationError(f'{field} must be an integer', field=field)
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ValidationError(f'{field} must be an integer', field=field)
        if number != value and not isinstance(value, str):
            raise ValidationError(f'{field} must be a whole number', field=field)
        if number <= 0:
            raise ValidationError(f'{field} must be positive', field=field)
        return number
