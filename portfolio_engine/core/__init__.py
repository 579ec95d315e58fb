"""
portfolio_engine/core/__init__.py
Core business logic package
"""

from .errors import (
    CurrencyMismatch,
    InsufficientHolding,
    InvalidAdjustment,
    InvalidOrderState,
    InvalidQuantity,
    NotFound,
    PortfolioEngineError,
    PortfolioNotEmpty,
)
from .money import Money
from .positions import ChangeKind, InvestmentPosition, InvestmentType, OrderStatus, PositionChange
from .valuation import AggregateTotals, ValuationRecalculator
from .portfolio_aggregate import PortfolioAggregate, PortfolioMode
from .order_lifecycle import InvestmentOrder, OrderLifecycle
from .pricing import CatalogItem, PricingResult, TradePricingEngine, TradeSide

__all__ = [
    "PortfolioEngineError",
    "CurrencyMismatch",
    "InsufficientHolding",
    "InvalidAdjustment",
    "InvalidOrderState",
    "InvalidQuantity",
    "NotFound",
    "PortfolioNotEmpty",
    "Money",
    "ChangeKind",
    "InvestmentPosition",
    "InvestmentType",
    "OrderStatus",
    "PositionChange",
    "AggregateTotals",
    "ValuationRecalculator",
    "PortfolioAggregate",
    "PortfolioMode",
    "InvestmentOrder",
    "OrderLifecycle",
    "CatalogItem",
    "PricingResult",
    "TradePricingEngine",
    "TradeSide",
]
