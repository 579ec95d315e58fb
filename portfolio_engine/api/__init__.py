"""
portfolio_engine/api/__init__.py
API package initialization
"""

from .routes import api_bp
from .admin_routes import admin_bp
from .errors import register_error_handlers

__all__ = [
    "api_bp",
    "admin_bp",
    "register_error_handlers",
]
