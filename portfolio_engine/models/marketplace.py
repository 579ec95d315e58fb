"""
Marketplace and trade ledger models

Tables:
- marketplace_items: Buyable catalog with the latest known price
- trade_transactions: Executed buys and sells with their fee/proceeds figures
"""

from decimal import Decimal
from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from portfolio_engine.models.base import Base, TimestampMixin, MONEY, QUANTITY


class MarketplaceItem(Base, TimestampMixin):
    """Catalog entry a client can buy from"""

    __tablename__ = "marketplace_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    symbol: Mapped[str] = mapped_column(String(20), unique=True)
    name: Mapped[str] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(20), default="STOCK")
    current_price: Mapped[Decimal] = mapped_column(MONEY)
    currency: Mapped[str] = mapped_column(String(3))
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)


class TradeTransaction(Base, TimestampMixin):
    """Ledger row for an executed trade

    Amounts are rounded to the currency's minor unit when written.
    """

    __tablename__ = "trade_transactions"
    __table_args__ = (Index("idx_trade_transactions_portfolio_id", "portfolio_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    portfolio_id: Mapped[int] = mapped_column(ForeignKey("portfolios.id"))
    position_id: Mapped[int | None] = mapped_column(default=None)
    user_id: Mapped[int] = mapped_column()
    side: Mapped[str] = mapped_column(String(4))  # BUY, SELL
    quantity: Mapped[Decimal] = mapped_column(QUANTITY)
    unit_price: Mapped[Decimal] = mapped_column(MONEY)
    currency: Mapped[str] = mapped_column(String(3))
    gross_amount: Mapped[Decimal] = mapped_column(MONEY)
    fee: Mapped[Decimal] = mapped_column(MONEY)
    net_amount: Mapped[Decimal] = mapped_column(MONEY)
    gain_loss: Mapped[Decimal | None] = mapped_column(MONEY, default=None)
