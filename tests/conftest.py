"""
Shared fixtures for the loyalty test suite.

The ``app`` fixture pushes one application context for the whole test, so
tests and fixtures share a single database session and never nest contexts.
"""
import pytest

from loyalty import create_app
from loyalty.extensions import db
from tests.factories import DEMO_CATALOG, make_restaurant, make_customer, make_reward


def _build_app(overrides=None):
    app = create_app('testing', overrides=overrides)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def app():
    """In-memory SQLite app."""
    yield from _build_app()


@pytest.fixture
def file_app(tmp_path):
    """
    File-backed SQLite app for tests that use several connections or threads.
    """
    yield from _build_app({
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'loyalty_test.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {
            'connect_args': {'check_same_thread': False, 'timeout': 15},
        },
    })


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def restaurant(app):
    return make_restaurant()


@pytest.fixture
def headers(restaurant):
    return {'X-Restaurant-Slug': restaurant.slug}


@pytest.fixture
def customer(restaurant):
    """Silver customer: 250 available, 650 lifetime."""
    return make_customer(restaurant, total_points=250, lifetime_points=650)


@pytest.fixture
def rewards(restaurant):
    """Demo catalog, cheapest first."""
    return [
        make_reward(restaurant, name=name, points_required=cost, min_tier=tier,
                    category=category, display_order=position)
        for position, (name, cost, tier, category) in enumerate(DEMO_CATALOG, start=1)
    ]
