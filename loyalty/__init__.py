"""
Restaurant Loyalty Service
Flask application factory
"""
import os
import logging
from typing import Mapping, Optional

from flask import Flask
from flask_cors import CORS

from .extensions import db, migrate
from .config import get_config, validate_config
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_name: str = None, overrides: Optional[Mapping] = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration environment (development, production, testing)
        overrides: Config values applied after the environment config

    Returns:
        Configured Flask application
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    # Setup logging before anything else
    setup_logging()
    validate_config(config_name)

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))
    if overrides:
        app.config.update(overrides)
    app.json.sort_keys = False

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    CORS(
        app,
        origins=app.config['CORS_ORIGINS'],
        supports_credentials=True,
        allow_headers=['Content-Type', 'Authorization', 'X-Restaurant-Slug']
    )

    register_blueprints(app)

    # Register CLI commands
    from .commands import init_app as init_commands
    init_commands(app)

    register_error_handlers(app)

    @app.route('/health')
    def health_check():
        return {'status': 'healthy', 'service': 'loyalty'}

    logger.info(f'Loyalty service created ({config_name})')
    return app


def register_blueprints(app: Flask) -> None:
    """Register API blueprints."""
    from .api.customers import customers_bp
    from .api.rewards import rewards_bp
    from .api.analytics import analytics_bp

    app.register_blueprint(customers_bp, url_prefix='/api/customers')
    app.register_blueprint(rewards_bp, url_prefix='/api/rewards')
    app.register_blueprint(analytics_bp, url_prefix='/api/analytics')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from .utils.errors import ErrorCode, error_response, loyalty_error_response, internal_error
    from .utils.exceptions import LoyaltyError

    @app.errorhandler(LoyaltyError)
    def handle_loyalty_error(error):
        return loyalty_error_response(error)

    @app.errorhandler(400)
    def bad_request(error):
        return error_response(str(error), ErrorCode.INVALID_REQUEST, 400, log_error=False)

    @app.errorhandler(404)
    def not_found(error):
        return error_response(str(error), ErrorCode.NOT_FOUND, 404, log_error=False)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response(str(error), ErrorCode.INVALID_REQUEST, 405, log_error=False)

    @app.errorhandler(500)
    def server_error(error):
        db.session.rollback()
        return internal_error()
