"""
SQLAlchemy ORM models package

Provides data models for all database tables:
- Portfolio: Portfolio, Investment
- Orders: InvestmentApplication
- Marketplace: MarketplaceItem, TradeTransaction
- Audit: SystemAuditLog
"""

from portfolio_engine.models.base import Base, TimestampMixin
from portfolio_engine.models.portfolio import Portfolio, Investment
from portfolio_engine.models.orders import InvestmentApplication
from portfolio_engine.models.marketplace import MarketplaceItem, TradeTransaction
from portfolio_engine.models.audit import SystemAuditLog

__all__ = [
    "Base",
    "TimestampMixin",
    "Portfolio",
    "Investment",
    "InvestmentApplication",
    "MarketplaceItem",
    "TradeTransaction",
    "SystemAuditLog",
]
