"""
portfolio_engine/__init__.py
Flask application factory with Flasgger OpenAPI support
"""

from flask import Flask
from flask_cors import CORS
from flasgger import Flasgger
import logging

from config.settings import get_config


def create_app(pricing_provider=None) -> Flask:
    """
    Application factory pattern

    Creates and configures Flask app with:
    - CORS support
    - Flasgger for OpenAPI/Swagger
    - JSON error handlers for the domain error kinds
    - Client and admin API blueprints

    Args:
        pricing_provider: Quote/fee provider used by the marketplace
            endpoints; defaults to the one selected by configuration
    """
    config = get_config()
    app = Flask(__name__)

    if config.CORS_ENABLED():
        CORS(app, resources={r"/api/*": {"origins": "*"}})

    # Configure Flask
    app.config["JSON_SORT_KEYS"] = False
    app.config["TESTING"] = getattr(config, "TESTING", False)

    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if pricing_provider is None:
        from portfolio_engine.core.price_feed import build_pricing_provider

        pricing_provider = build_pricing_provider()
    app.extensions["pricing_provider"] = pricing_provider

    swagger_config = {
        "headers": [],
        "specs": [
            {
                "endpoint": "apispec",
                "route": "/apispec.json",
                "rule_filter": lambda rule: True,
                "model_filter": lambda tag: True,
            }
        ],
        "static_url_path": "/flasgger_static",
        "swagger_ui": True,
        "specs_route": "/api/docs",
        "uiversion": 3,
        "info": {
            "title": "Portfolio Valuation Engine API",
            "version": "1.0.0",
            "description": (
                "Portfolio totals, investment order approval and marketplace "
                "buy/sell pricing. Decimal amounts are returned as strings."
            ),
        },
        "schemes": ["http", "https"],
    }

    Flasgger(app, config=swagger_config)

    from portfolio_engine.api import admin_bp, api_bp, register_error_handlers

    app.register_blueprint(api_bp, url_prefix="/api")
    app.register_blueprint(admin_bp)  # Already has /api/admin prefix
    register_error_handlers(app)

    return app
