"""
Portfolio models

Tables:
- portfolios: Per-user portfolio with persisted aggregate totals and mode flag
- investment_positions: Holdings belonging to a portfolio
"""

from datetime import date
from decimal import Decimal
from sqlalchemy import Boolean, Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portfolio_engine.models.base import Base, TimestampMixin, MONEY, PERCENT, QUANTITY


class Portfolio(Base, TimestampMixin):
    """Portfolio aggregate row

    Totals are owned by the valuation engine in AUTO mode and by an
    operator in MANUAL mode. `version` is an optimistic lock: a concurrent
    writer that loaded an older version fails with StaleDataError.
    """

    __tablename__ = "portfolios"
    __table_args__ = (Index("idx_portfolios_user_id", "user_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column()
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text, default=None)
    currency: Mapped[str] = mapped_column(String(3))
    mode: Mapped[str] = mapped_column(String(10), default="AUTO")  # AUTO, MANUAL
    total_value: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    total_invested: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    total_gain: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    gain_percentage: Mapped[Decimal] = mapped_column(PERCENT, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    investments: Mapped[list["Investment"]] = relationship(
        "Investment", back_populates="portfolio"
    )

    __mapper_args__ = {"version_id_col": version}


class Investment(Base, TimestampMixin):
    """Investment position

    Tracks a single holding: quantity, purchase and current price.
    Value and gain are never stored here; they are derived on read.
    """

    __tablename__ = "investment_positions"
    __table_args__ = (
        Index("idx_investment_positions_portfolio_id", "portfolio_id"),
        Index("idx_investment_positions_symbol", "symbol"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    portfolio_id: Mapped[int] = mapped_column(ForeignKey("portfolios.id"))
    order_id: Mapped[int | None] = mapped_column(
        ForeignKey("investment_applications.id"), default=None
    )
    type: Mapped[str] = mapped_column(String(20))
    name: Mapped[str] = mapped_column(String(255))
    symbol: Mapped[str | None] = mapped_column(String(20), default=None)
    quantity: Mapped[Decimal] = mapped_column(QUANTITY)
    purchase_price: Mapped[Decimal] = mapped_column(MONEY)
    current_price: Mapped[Decimal] = mapped_column(MONEY)
    currency: Mapped[str] = mapped_column(String(3))
    purchase_date: Mapped[date] = mapped_column(Date())
    maturity_date: Mapped[date | None] = mapped_column(Date(), default=None)
    interest_rate: Mapped[Decimal | None] = mapped_column(PERCENT, default=None)
    status: Mapped[str] = mapped_column(String(20), default="ACTIVE")

    portfolio: Mapped[Portfolio] = relationship("Portfolio", back_populates="investments")
