"""
CLI Commands for the loyalty service.

Usage:
    flask loyalty init-db
    flask loyalty seed-demo
    flask loyalty classify 650
    flask loyalty recalc-tiers --restaurant-id 1
"""
from .loyalty import init_app as init_loyalty_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_loyalty_commands(app)
