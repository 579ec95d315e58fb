"""
Tests for portfolio_engine/core/order_lifecycle.py

Tests cover:
- Allowed and refused status transitions
- approve() building the position from the order
- Edit/delete guard for PENDING orders
"""

import pytest
from datetime import date
from decimal import Decimal

from portfolio_engine.core.errors import InvalidOrderState, InvalidQuantity
from portfolio_engine.core.money import Money
from portfolio_engine.core.order_lifecycle import InvestmentOrder, OrderLifecycle
from portfolio_engine.core.positions import InvestmentType, OrderStatus


def make_order(**overrides) -> InvestmentOrder:
    values = dict(
        id=11,
        user_id=3,
        portfolio_id=5,
        investment_type=InvestmentType.BOND,
        name="UK Gilt 2030",
        quantity="20",
        price=Money("98.25", "GBP"),
        maturity_date=date(2030, 1, 31),
        interest_rate="4.25",
    )
    values.update(overrides)
    return InvestmentOrder(**values)


class TestInvestmentOrder:
    """Tests for order construction"""

    def test_new_order_is_pending(self) -> None:
        """Test the initial state"""
        order = make_order()
        assert order.status == OrderStatus.PENDING
        assert order.is_pending
        assert order.quantity == Decimal("20")

    def test_zero_quantity_rejected(self) -> None:
        """Test InvalidQuantity for quantity <= 0"""
        with pytest.raises(InvalidQuantity):
            make_order(quantity="0")

    def test_non_positive_price_rejected(self) -> None:
        """Test that an order needs a positive price"""
        with pytest.raises(ValueError):
            make_order(price=Money("0", "GBP"))


class TestTransitions:
    """Tests for the state machine"""

    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.ACTIVE),
            (OrderStatus.PENDING, OrderStatus.CANCELLED),
            (OrderStatus.ACTIVE, OrderStatus.COMPLETED),
            (OrderStatus.ACTIVE, OrderStatus.MATURED),
        ],
    )
    def test_allowed(self, current, target) -> None:
        """Test the permitted edges"""
        assert OrderLifecycle.can_transition(current, target)

    @pytest.mark.parametrize("terminal", [OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.MATURED])
    def test_no_exit_from_terminal(self, terminal) -> None:
        """Test that terminal states have no outgoing transition"""
        assert terminal.is_terminal
        for target in OrderStatus:
            assert not OrderLifecycle.can_transition(terminal, target)

    def test_pending_cannot_complete(self) -> None:
        """Test that completion requires approval first"""
        with pytest.raises(InvalidOrderState):
            OrderLifecycle.complete(make_order())


class TestApproveReject:
    """Tests for admin actions"""

    def test_approve_creates_position(self) -> None:
        """Test that the position mirrors the order"""
        order = make_order()
        position = OrderLifecycle.approve(order, purchase_date=date(2026, 2, 1))

        assert order.status == OrderStatus.ACTIVE
        assert order.approved_at is not None
        assert position.status == OrderStatus.ACTIVE
        assert position.order_id == order.id
        assert position.portfolio_id == order.portfolio_id
        assert position.quantity == Decimal("20")
        assert position.purchase_price == Money("98.25", "GBP")
        assert position.current_price == Money("98.25", "GBP")
        assert position.maturity_date == date(2030, 1, 31)
        assert position.interest_rate == Decimal("4.25")
        assert position.purchase_date == date(2026, 2, 1)

    def test_approve_twice_fails(self) -> None:
        """Test approve then approve raises InvalidOrderState"""
        order = make_order()
        OrderLifecycle.approve(order)
        with pytest.raises(InvalidOrderState):
            OrderLifecycle.approve(order)

    def test_approve_then_reject_fails(self) -> None:
        """Test approve then reject raises InvalidOrderState"""
        order = make_order()
        OrderLifecycle.approve(order)
        with pytest.raises(InvalidOrderState):
            OrderLifecycle.reject(order, "too late")
        assert order.status == OrderStatus.ACTIVE

    def test_reject_stores_reason(self) -> None:
        """Test rejection fields"""
        order = make_order()
        OrderLifecycle.reject(order, "KYC incomplete")
        assert order.status == OrderStatus.CANCELLED
        assert order.rejection_reason == "KYC incomplete"
        assert order.rejected_at is not None

    def test_reject_then_approve_fails(self) -> None:
        """Test that a cancelled order stays cancelled"""
        order = make_order()
        OrderLifecycle.reject(order)
        with pytest.raises(InvalidOrderState):
            OrderLifecycle.approve(order)

    def test_mature_after_approval(self) -> None:
        """Test ACTIVE -> MATURED"""
        order = make_order()
        OrderLifecycle.approve(order)
        OrderLifecycle.mature(order)
        assert order.status == OrderStatus.MATURED

    def test_edit_guard(self) -> None:
        """Test that only non-PENDING rows may be edited or deleted"""
        with pytest.raises(InvalidOrderState):
            OrderLifecycle.ensure_editable(OrderStatus.PENDING)
        OrderLifecycle.ensure_editable(OrderStatus.ACTIVE)
        OrderLifecycle.ensure_editable("CANCELLED")
