"""
Investment order models

Tables:
- investment_applications: Client orders awaiting (or past) admin approval
"""

from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import Date, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from portfolio_engine.models.base import Base, TimestampMixin, MONEY, PERCENT, QUANTITY


class InvestmentApplication(Base, TimestampMixin):
    """Investment order (pre-position form)

    Status values: PENDING, ACTIVE, COMPLETED, CANCELLED, MATURED.
    Status changes go through a conditional UPDATE on the expected status.
    """

    __tablename__ = "investment_applications"
    __table_args__ = (
        Index("idx_investment_applications_status", "status"),
        Index("idx_investment_applications_portfolio_id", "portfolio_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column()
    portfolio_id: Mapped[int] = mapped_column(ForeignKey("portfolios.id"))
    type: Mapped[str] = mapped_column(String(20))
    name: Mapped[str] = mapped_column(String(255))
    symbol: Mapped[str | None] = mapped_column(String(20), default=None)
    quantity: Mapped[Decimal] = mapped_column(QUANTITY)
    price: Mapped[Decimal] = mapped_column(MONEY)
    currency: Mapped[str] = mapped_column(String(3))
    maturity_date: Mapped[date | None] = mapped_column(Date(), default=None)
    interest_rate: Mapped[Decimal | None] = mapped_column(PERCENT, default=None)
    status: Mapped[str] = mapped_column(String(20), default="PENDING")
    rejection_reason: Mapped[str | None] = mapped_column(Text, default=None)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    position_id: Mapped[int | None] = mapped_column(default=None)
