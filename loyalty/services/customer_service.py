"""
Customer onboarding and lookup.

Signup creates the customer at bronze with empty balances and records the
restaurant's signup grant as the first ledger entry, in the same commit.
"""
import re
from datetime import date, datetime
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..models import Customer, Tier, TransactionType
from ..utils.exceptions import (
    ValidationError,
    DuplicateError,
    CustomerNotFoundError,
    PersistenceFailureError,
)
from .loyalty_store import LoyaltyStore
from .points_ledger import PointsLedger


EMAIL_PATTERN = re.compile(r'^\S+@\S+\.\S+$')


def clean_text(value, field: str) -> str:
    """Stripped string value; None becomes empty."""
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    return value.strip()


def normalize_email(email) -> str:
    return clean_text(email, 'email').lower()


class CustomerService:
    """Customer accounts for one restaurant."""

    def __init__(self, restaurant_id: int, store: LoyaltyStore = None):
        self.restaurant_id = restaurant_id
        self.store = store or LoyaltyStore(restaurant_id)
        self.ledger = PointsLedger(restaurant_id, store=self.store)

    def get_customer(self, customer_id: int) -> Customer:
        return self.store.load_customer(customer_id)

    def find_customer_by_email(self, email: str) -> Optional[Customer]:
        return self.store.find_customer_by_email(normalize_email(email))

    def login(self, email: str) -> Customer:
        """Existing customer for an email, or CustomerNotFoundError."""
        email = normalize_email(email)
        if not email:
            raise ValidationError("Email is required", field='email')
        customer = self.store.find_customer_by_email(email)
        if not customer:
            raise CustomerNotFoundError(email)
        return customer

    def create_customer(
        self,
        first_name: str,
        last_name: str,
        email: str,
        phone: str = None,
        date_of_birth=None
    ) -> Customer:
        """
        Sign up a new customer.

        Raises:
            ValidationError: missing name, malformed email or date of birth
            DuplicateError: email already registered with this restaurant
        """
        first_name = clean_text(first_name, 'first_name')
        last_name = clean_text(last_name, 'last_name')
        email = normalize_email(email)
        phone = clean_text(phone, 'phone') or None

        if not first_name:
            raise ValidationError("First name is required", field='first_name')
        if not last_name:
            raise ValidationError("Last name is required", field='last_name')
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Please enter a valid email address", field='email')

        birth_date = self._parse_date_of_birth(date_of_birth)

        if self.store.find_customer_by_email(email):
            raise DuplicateError("Customer", f"email {email}")

        restaurant = self.store.load_restaurant()
        signup_points = restaurant.signup_bonus_points

        try:
            with self.store.staged('signup'):
                customer = self.store.add(Customer(
                    restaurant_id=self.restaurant_id,
                    first_name=first_name,
                    last_name=last_name,
                    email=email,
                    phone=phone,
                    date_of_birth=birth_date,
                    total_points=0,
                    lifetime_points=0,
                    current_tier=Tier.BRONZE.value,
                    tier_progress=0,
                    version=1,
                ))
                self.ledger.stage_event(customer.id, TransactionType.SIGNUP, signup_points, {
                    'description': 'Welcome bonus' if signup_points else 'Joined the loyalty program',
                })
            self.store.commit('signup')
        except PersistenceFailureError as e:
            if isinstance(e.original_error, IntegrityError):
                raise DuplicateError("Customer", f"email {email}") from e
            raise

        current_app.logger.info(
            f"Customer signed up: {customer.id} ({email}) at restaurant {self.restaurant_id}, "
            f"{signup_points} signup pts"
        )
        return customer

    @staticmethod
    def _parse_date_of_birth(value) -> Optional[date]:
        if value in (None, ''):
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        try:
            parsed = datetime.strptime(str(value).strip(), '%Y-%m-%d').date()
        except ValueError:
            raise ValidationError("Date of birth must be YYYY-MM-DD", field='date_of_birth')
        if parsed > date.today():
            raise ValidationError("Date of birth cannot be in the future", field='date_of_birth')
        return parsed
