"""
portfolio_engine/core/positions.py - Investment positions and their derived values
"""

import enum
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal

from portfolio_engine.core.money import Money, to_decimal


class InvestmentType(str, enum.Enum):
    STOCK = "STOCK"
    BOND = "BOND"
    MUTUAL_FUND = "MUTUAL_FUND"
    SAVINGS = "SAVINGS"
    FIXED_DEPOSIT = "FIXED_DEPOSIT"
    TERM_DEPOSIT = "TERM_DEPOSIT"
    IPO = "IPO"
    OTHER = "OTHER"


class OrderStatus(str, enum.Enum):
    """Lifecycle status shared by orders and the positions they create"""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    MATURED = "MATURED"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.MATURED)


class ChangeKind(str, enum.Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    REDUCED = "REDUCED"
    REMOVED = "REMOVED"
    REPRICED = "REPRICED"
    STATUS = "STATUS"


@dataclass(frozen=True)
class InvestmentPosition:
    """A single holding inside a portfolio

    Derived values (total_value, total_cost, total_gain, gain_percentage)
    are properties computed from the inputs on every read.
    """

    portfolio_id: int | None
    investment_type: InvestmentType
    name: str
    quantity: Decimal
    purchase_price: Money
    current_price: Money
    purchase_date: date
    status: OrderStatus = OrderStatus.ACTIVE
    symbol: str | None = None
    maturity_date: date | None = None
    interest_rate: Decimal | None = None
    id: int | None = None
    order_id: int | None = None

    def __post_init__(self) -> None:
        quantity = to_decimal(self.quantity)
        if not quantity.is_finite() or quantity < 0:
            raise ValueError(f"Quantity must be a non-negative number, got {self.quantity}")
        if self.purchase_price.amount <= 0:
            raise ValueError("Purchase price must be greater than 0")
        if self.current_price.amount < 0:
            raise ValueError("Current price must not be negative")
        if self.purchase_price.currency != self.current_price.currency:
            raise ValueError(
                f"Purchase and current price currencies differ: "
                f"{self.purchase_price.currency} vs {self.current_price.currency}"
            )
        if not self.name or not self.name.strip():
            raise ValueError("Investment name is required")

        object.__setattr__(self, "quantity", quantity)
        object.__setattr__(self, "investment_type", InvestmentType(self.investment_type))
        object.__setattr__(self, "status", OrderStatus(self.status))
        if self.interest_rate is not None:
            object.__setattr__(self, "interest_rate", to_decimal(self.interest_rate))

    @property
    def currency(self) -> str:
        return self.purchase_price.currency

    @property
    def total_value(self) -> Money:
        return self.current_price * self.quantity

    @property
    def total_cost(self) -> Money:
        """Amount invested: quantity x purchase price"""
        return self.purchase_price * self.quantity

    @property
    def total_gain(self) -> Money:
        return self.total_value - self.total_cost

    @property
    def gain_percentage(self) -> Decimal:
        return self.total_gain.ratio(self.total_cost) * 100

    @property
    def is_cancelled(self) -> bool:
        return self.status == OrderStatus.CANCELLED

    def with_changes(self, **changes) -> "InvestmentPosition":
        """Return a re-validated copy with the given attributes replaced"""
        return replace(self, **changes)


@dataclass(frozen=True)
class PositionChange:
    """Delta record describing one position mutation

    Feeds PortfolioAggregate.apply_position_change; in MANUAL mode the
    record is kept for audit instead of changing totals.
    """

    kind: ChangeKind
    position_id: int | None
    quantity_delta: Decimal = Decimal("0")
    value_delta: Decimal = Decimal("0")
    details: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def between(
        cls,
        kind: ChangeKind,
        before: InvestmentPosition | None,
        after: InvestmentPosition | None,
        details: str | None = None,
    ) -> "PositionChange":
        """Build a delta from the before/after state of a position"""
        before_qty = before.quantity if before else Decimal("0")
        after_qty = after.quantity if after else Decimal("0")
        before_value = before.total_value.amount if before else Decimal("0")
        after_value = after.total_value.amount if after else Decimal("0")
        ref = after or before
        return cls(
            kind=kind,
            position_id=ref.id if ref else None,
            quantity_delta=after_qty - before_qty,
            value_delta=after_value - before_value,
            details=details,
        )

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "position_id": self.position_id,
            "quantity_delta": str(self.quantity_delta),
            "value_delta": str(self.value_delta),
            "details": self.details,
            "occurred_at": self.occurred_at.isoformat(),
        }
