"""
Tests for the loyalty CLI commands.
"""
from loyalty.models import Customer, PointsTransaction, Restaurant, Reward
from tests.factories import make_customer


class TestClassifyCommand:

    def test_silver(self, app):
        result = app.test_cli_runner().invoke(args=['loyalty', 'classify', '650'])
        assert result.exit_code == 0
        assert 'Tier: silver' in result.output
        assert 'Progress: 65%' in result.output
        assert 'gold (350 pts to go)' in result.output

    def test_top_tier(self, app):
        result = app.test_cli_runner().invoke(args=['loyalty', 'classify', '1200'])
        assert 'Tier: gold' in result.output
        assert 'top tier' in result.output

    def test_negative_points(self, app):
        result = app.test_cli_runner().invoke(args=['loyalty', 'classify', '--', '-5'])
        assert result.exit_code != 0


class TestSeedDemo:

    def test_seeds_silver_customer(self, app):
        result = app.test_cli_runner().invoke(args=['loyalty', 'seed-demo'])
        assert result.exit_code == 0, result.output

        restaurant = Restaurant.query.filter_by(slug='demo').one()
        assert Reward.query.filter_by(restaurant_id=restaurant.id).count() == 4

        customer = Customer.query.filter_by(restaurant_id=restaurant.id).one()
        assert customer.total_points == 250
        assert customer.lifetime_points == 650
        assert customer.current_tier == 'silver'

        types = [entry.transaction_type for entry in PointsTransaction.query.filter_by(customer_id=customer.id)]
        assert sorted(types) == ['purchase', 'redemption', 'redemption', 'signup']
        assert '250 available, 650 lifetime, silver' in result.output

    def test_is_idempotent(self, app):
        runner = app.test_cli_runner()
        runner.invoke(args=['loyalty', 'seed-demo'])
        result = runner.invoke(args=['loyalty', 'seed-demo'])

        assert 'already exists' in result.output
        assert Restaurant.query.filter_by(slug='demo').count() == 1


def test_recalc_tiers(app, restaurant):
    make_customer(restaurant, total_points=100, lifetime_points=700, tier='bronze')

    result = app.test_cli_runner().invoke(args=['loyalty', 'recalc-tiers', '--restaurant-id', str(restaurant.id)])

    assert result.exit_code == 0
    assert f'{restaurant.slug}: 1 customers updated' in result.output
    assert Customer.query.one().current_tier == 'silver'
