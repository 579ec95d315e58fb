"""
Base model class for SQLAlchemy ORM

Provides:
- Base DeclarativeBase shared by every table of the valuation engine
- TimestampMixin for automatic created_at/updated_at tracking
- MONEY/QUANTITY/PERCENT column types used by the monetary tables
"""

from datetime import datetime
from sqlalchemy import DateTime, Numeric, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from portfolio_engine.core.money import PRICE_PLACES, QUANTITY_PLACES, RATE_PLACES

# Unit prices, quantities and rates are checked against these scales before
# writing; totals are quantized to the currency's minor unit.
MONEY = Numeric(20, PRICE_PLACES)
QUANTITY = Numeric(20, QUANTITY_PLACES)
PERCENT = Numeric(18, RATE_PLACES)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models"""

    pass


class TimestampMixin:
    """Mixin class for automatic timestamp tracking

    Adds created_at and updated_at columns to any model that uses this mixin.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
