"""
CLI commands for loyalty program administration.

Usage:
    flask loyalty init-db                         # Create tables without migrations
    flask loyalty seed-demo                       # Demo restaurant, catalog and customer
    flask loyalty classify 650                    # Tier for a lifetime points total
    flask loyalty recalc-tiers --restaurant-id 1  # Reclassify every customer
"""
import click
from flask.cli import with_appcontext

from ..extensions import db
from ..models import Restaurant
from ..services import (
    CustomerService,
    PointsLedger,
    RedemptionService,
    RewardCatalogService,
    classify,
)
from ..utils.exceptions import InvalidAmountError

DEMO_SLUG = 'demo'

DEMO_REWARDS = [
    {'name': 'Free Coffee', 'description': 'Any hot coffee of your choice',
     'category': 'drink', 'points_required': 100, 'min_tier': 'bronze', 'display_order': 1},
    {'name': 'Free Dessert', 'description': 'Choose any dessert from our menu',
     'category': 'dessert', 'points_required': 150, 'min_tier': 'bronze', 'display_order': 2},
    {'name': 'Free Main Course', 'description': 'Any main course up to AED 80',
     'category': 'food', 'points_required': 300, 'min_tier': 'silver', 'display_order': 3},
    {'name': 'VIP Tasting Experience', 'description': "Chef's tasting menu for two",
     'category': 'experience', 'points_required': 800, 'min_tier': 'gold', 'display_order': 4},
]


@click.group('loyalty')
def loyalty_cli():
    """Loyalty program commands."""
    pass


@loyalty_cli.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo('Database tables created')


@loyalty_cli.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Create the demo restaurant, its reward catalog and a silver customer.

    The customer's balances are built through the ledger: a 6,500 AED
    purchase (650 pts) followed by two redemptions (400 pts), leaving
    250 available and 650 lifetime points.
    """
    if Restaurant.query.filter_by(slug=DEMO_SLUG).first():
        click.echo(f"Restaurant '{DEMO_SLUG}' already exists, nothing to do")
        return

    restaurant = Restaurant(
        name='Demo Bistro',
        slug=DEMO_SLUG,
        settings={'points_per_currency': 0.1, 'point_value': 0.05, 'currency': 'AED'},
        is_active=True,
    )
    db.session.add(restaurant)
    db.session.commit()

    catalog = RewardCatalogService(restaurant.id)
    rewards = {data['name']: catalog.create_reward(dict(data)) for data in DEMO_REWARDS}

    customer = CustomerService(restaurant.id).create_customer(
        first_name='Sarah',
        last_name='Ahmed',
        email='sarah@example.com',
        phone='+971501234567',
    )
    PointsLedger(restaurant.id).record_purchase(
        customer.id, '6500.00', restaurant.points_per_currency, description='Demo purchase history'
    )
    redemptions = RedemptionService(restaurant.id)
    redemptions.redeem(customer.id, rewards['Free Main Course'].id, created_by='seed')
    redemptions.redeem(customer.id, rewards['Free Coffee'].id, created_by='seed')

    balance = PointsLedger(restaurant.id).get_balance(customer.id)
    click.echo(f"Created restaurant '{DEMO_SLUG}' (id {restaurant.id}) with {len(rewards)} rewards")
    click.echo(
        f"Demo customer {customer.id}: {balance['total_points']} available, "
        f"{balance['lifetime_points']} lifetime, {balance['current_tier']}"
    )


@loyalty_cli.command('classify')
@click.argument('lifetime_points', type=int)
def classify_points(lifetime_points):
    """Show the tier for LIFETIME_POINTS."""
    try:
        status = classify(lifetime_points)
    except InvalidAmountError as e:
        raise click.BadParameter(e.message, param_hint='LIFETIME_POINTS')

    click.echo(f"Tier: {status.tier.value}")
    click.echo(f"Progress: {status.progress_percent}%")
    if status.next_tier:
        click.echo(f"Next tier: {status.next_tier.value} ({status.points_to_next} pts to go)")
    else:
        click.echo("Next tier: none (top tier)")


@loyalty_cli.command('recalc-tiers')
@click.option('--restaurant-id', type=int, help='Specific restaurant ID (or all if not specified)')
@with_appcontext
def recalc_tiers(restaurant_id):
    """Recompute tier and progress from lifetime points."""
    if restaurant_id:
        restaurants = [db.session.get(Restaurant, restaurant_id)]
        if not restaurants[0]:
            click.echo(f"Restaurant {restaurant_id} not found")
            return
    else:
        restaurants = Restaurant.query.all()

    total_changed = 0
    for restaurant in restaurants:
        changed = PointsLedger(restaurant.id).recalculate_tiers()
        click.echo(f"{restaurant.slug}: {changed} customers updated")
        total_changed += changed

    click.echo(f"TOTAL: {total_changed} customers updated")


def init_app(app):
    """Register CLI commands with the Flask app."""
    app.cli.add_command(loyalty_cli)
