"""
portfolio_engine/core/order_lifecycle.py - Investment order state machine

PENDING -> ACTIVE (approve) -> COMPLETED | MATURED
PENDING -> CANCELLED (reject)

Terminal states have no outgoing transitions. The same transition table
is used by the store's compare-and-swap update, so a lost race surfaces
as InvalidOrderState exactly like a plain precondition failure.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, FrozenSet

from portfolio_engine.core.errors import InvalidOrderState, InvalidQuantity
from portfolio_engine.core.money import Money, to_decimal
from portfolio_engine.core.positions import (
    InvestmentPosition,
    InvestmentType,
    OrderStatus,
)

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ACTIVE, OrderStatus.CANCELLED}),
    OrderStatus.ACTIVE: frozenset({OrderStatus.COMPLETED, OrderStatus.MATURED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.MATURED: frozenset(),
}


@dataclass
class InvestmentOrder:
    """A client's request to invest, before it becomes a position"""

    user_id: int
    portfolio_id: int
    investment_type: InvestmentType
    name: str
    quantity: Decimal
    price: Money
    symbol: str | None = None
    maturity_date: date | None = None
    interest_rate: Decimal | None = None
    status: OrderStatus = OrderStatus.PENDING
    rejection_reason: str | None = None
    id: int | None = None
    position_id: int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    approved_at: datetime | None = None
    rejected_at: datetime | None = None

    def __post_init__(self) -> None:
        self.quantity = to_decimal(self.quantity)
        if not self.quantity.is_finite() or self.quantity <= 0:
            raise InvalidQuantity(f"Order quantity must be greater than 0, got {self.quantity}")
        if self.price.amount <= 0:
            raise ValueError("Order price must be greater than 0")
        self.investment_type = InvestmentType(self.investment_type)
        self.status = OrderStatus(self.status)
        if self.interest_rate is not None:
            self.interest_rate = to_decimal(self.interest_rate)

    @property
    def is_pending(self) -> bool:
        return self.status == OrderStatus.PENDING

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "portfolio_id": self.portfolio_id,
            "type": self.investment_type.value,
            "name": self.name,
            "symbol": self.symbol,
            "quantity": str(self.quantity),
            "price": str(self.price.amount),
            "currency": self.price.currency,
            "status": self.status.value,
            "rejection_reason": self.rejection_reason,
            "position_id": self.position_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "rejected_at": self.rejected_at.isoformat() if self.rejected_at else None,
        }


class OrderLifecycle:
    """Validates and applies order status transitions"""

    @staticmethod
    def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[OrderStatus(current)]

    @classmethod
    def ensure_transition(cls, current: OrderStatus, target: OrderStatus) -> None:
        if not cls.can_transition(current, target):
            raise InvalidOrderState(
                f"Cannot move order from {OrderStatus(current).value} to {OrderStatus(target).value}"
            )

    @staticmethod
    def ensure_editable(status: OrderStatus) -> None:
        """Positions can only be edited or deleted once the order left PENDING"""
        if OrderStatus(status) == OrderStatus.PENDING:
            raise InvalidOrderState(
                "Pending orders can only be approved or rejected, not edited or deleted"
            )

    @classmethod
    def approve(
        cls, order: InvestmentOrder, purchase_date: date | None = None
    ) -> InvestmentPosition:
        """
        Approve a pending order

        Sets the order ACTIVE and returns the new position built from the
        order's attributes (not yet persisted).

        Raises:
            InvalidOrderState: order is not PENDING
        """
        cls.ensure_transition(order.status, OrderStatus.ACTIVE)
        now = datetime.now(timezone.utc)

        position = InvestmentPosition(
            portfolio_id=order.portfolio_id,
            investment_type=order.investment_type,
            name=order.name,
            symbol=order.symbol,
            quantity=order.quantity,
            purchase_price=order.price,
            current_price=order.price,
            purchase_date=purchase_date or now.date(),
            maturity_date=order.maturity_date,
            interest_rate=order.interest_rate,
            status=OrderStatus.ACTIVE,
            order_id=order.id,
        )

        order.status = OrderStatus.ACTIVE
        order.approved_at = now
        return position

    @classmethod
    def reject(cls, order: InvestmentOrder, reason: str | None = None) -> None:
        """Cancel a pending order; no position exists so none is touched"""
        cls.ensure_transition(order.status, OrderStatus.CANCELLED)
        order.status = OrderStatus.CANCELLED
        order.rejection_reason = reason
        order.rejected_at = datetime.now(timezone.utc)

    @classmethod
    def complete(cls, order: InvestmentOrder) -> None:
        cls.ensure_transition(order.status, OrderStatus.COMPLETED)
        order.status = OrderStatus.COMPLETED

    @classmethod
    def mature(cls, order: InvestmentOrder) -> None:
        cls.ensure_transition(order.status, OrderStatus.MATURED)
        order.status = OrderStatus.MATURED
