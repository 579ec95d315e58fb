"""
Tests for portfolio_engine/core/store.py

Tests cover:
- Round trip of portfolios, positions and orders through the ORM
- Rounding of totals at persistence
- Compare-and-swap order transitions
- Optimistic versioning of portfolio rows
"""

import json
from datetime import date
from decimal import Decimal

from sqlalchemy.orm.exc import StaleDataError

from portfolio_engine.core.errors import InvalidOrderState, NotFound
from portfolio_engine.core.money import Money
from portfolio_engine.core.order_lifecycle import OrderLifecycle
from portfolio_engine.core.portfolio_aggregate import PortfolioMode
from portfolio_engine.core.positions import OrderStatus
from portfolio_engine.core.store import PortfolioStore
from portfolio_engine.core.valuation import AggregateTotals
from tests import BaseTestCase


class TestPortfolioPersistence(BaseTestCase):
    """Tests for portfolio rows"""

    def test_round_trip(self) -> None:
        """Test that a saved portfolio loads back unchanged"""
        created = self.create_portfolio(user_id=4, name="Income", currency="EUR")
        loaded = self.service.get_portfolio(created.id)

        assert loaded.user_id == 4
        assert loaded.name == "Income"
        assert loaded.currency == "EUR"
        assert loaded.mode == PortfolioMode.AUTO
        assert loaded.version == created.version
        assert loaded.total_value == Money("0", "EUR")

    def test_totals_rounded_half_even_on_save(self) -> None:
        """Test that sub-penny totals are quantized when written"""
        created = self.create_portfolio()
        with self.db_manager.session_context() as session:
            store = PortfolioStore(session)
            aggregate = store.get_portfolio(created.id)
            aggregate.totals = AggregateTotals.from_manual(
                Money("10.125", "GBP"), Money("10.135", "GBP"), Money("-0.01", "GBP")
            )
            store.save_portfolio(aggregate)

        loaded = self.service.get_portfolio(created.id)
        assert loaded.total_value.amount == Decimal("10.12")
        assert loaded.total_invested.amount == Decimal("10.14")

    def test_missing_portfolio(self) -> None:
        """Test NotFound for an unknown id"""
        with self.assertRaises(NotFound):
            self.service.get_portfolio(999)

    def test_stale_version_rejected(self) -> None:
        """Test that writing an aggregate read at an old version fails"""
        created = self.create_portfolio()
        stale = self.service.get_portfolio(created.id)

        # Another writer moves the row forward
        self.service.update_portfolio_details(created.id, description="changed")

        with self.assertRaises(StaleDataError):
            with self.db_manager.session_context() as session:
                stale.name = "Lost update"
                PortfolioStore(session).save_portfolio(stale)

        assert self.service.get_portfolio(created.id).name == "Growth"

    def test_version_increments_on_update(self) -> None:
        """Test that each save bumps the version"""
        created = self.create_portfolio()
        updated = self.service.update_portfolio_details(created.id, name="Renamed")
        assert updated.version == created.version + 1

    def test_manual_audit_trail_written(self) -> None:
        """Test that pending MANUAL deltas become audit rows"""
        portfolio = self.create_portfolio()
        self.service.set_manual_totals(portfolio.id, "100", "100", "0")
        position = self.create_position(portfolio.id)

        with self.db_manager.session_context() as session:
            rows = PortfolioStore(session).list_audit("portfolio", portfolio.id)
            actions = [row.action for row in rows]
            change = json.loads(rows[-1].changes)

        assert actions == ["manual_totals", "position_change"]
        assert change["kind"] == "CREATED"
        assert change["position_id"] == position.id


class TestOrderCompareAndSwap(BaseTestCase):
    """Tests for conditional order status updates"""

    def test_second_writer_loses(self) -> None:
        """Test that two admins acting on one order produce one winner"""
        portfolio = self.create_portfolio()
        order = self.submit_order(portfolio)

        # Both admins load the order while it is PENDING
        first = self.service.get_order(order.id)
        second = self.service.get_order(order.id)

        with self.db_manager.session_context() as session:
            OrderLifecycle.approve(first)
            PortfolioStore(session).transition_order(first, expected=OrderStatus.PENDING)

        OrderLifecycle.reject(second, "duplicate")
        with self.assertRaises(InvalidOrderState):
            with self.db_manager.session_context() as session:
                PortfolioStore(session).transition_order(second, expected=OrderStatus.PENDING)

        stored = self.service.get_order(order.id)
        assert stored.status == OrderStatus.ACTIVE
        assert stored.rejection_reason is None

    def test_transition_writes_status_fields(self) -> None:
        """Test that rejection fields are persisted with the status"""
        portfolio = self.create_portfolio()
        order = self.submit_order(portfolio)
        OrderLifecycle.reject(order, "Missing documents")

        with self.db_manager.session_context() as session:
            PortfolioStore(session).transition_order(order, expected=OrderStatus.PENDING)

        stored = self.service.get_order(order.id)
        assert stored.status == OrderStatus.CANCELLED
        assert stored.rejection_reason == "Missing documents"
        assert stored.rejected_at is not None

    def test_save_order_does_not_write_status(self) -> None:
        """Test that status only changes through transition_order"""
        portfolio = self.create_portfolio()
        order = self.submit_order(portfolio)
        order.status = OrderStatus.ACTIVE

        with self.db_manager.session_context() as session:
            PortfolioStore(session).save_order(order)

        assert self.service.get_order(order.id).status == OrderStatus.PENDING


class TestPositionQueries(BaseTestCase):
    """Tests for position lookups"""

    def test_positions_due_for_maturity(self) -> None:
        """Test that only ACTIVE positions past maturity are returned"""
        portfolio = self.create_portfolio()
        due = self.create_position(portfolio.id, symbol="GILT", maturity_date=date(2026, 1, 1))
        self.create_position(portfolio.id, symbol="LATER", maturity_date=date(2027, 1, 1))
        self.create_position(portfolio.id, symbol="NONE")

        with self.db_manager.session_context() as session:
            found = PortfolioStore(session).positions_due_for_maturity(date(2026, 6, 1))

        assert [p.id for p in found] == [due.id]

    def test_positions_for_symbol_case_insensitive(self) -> None:
        """Test symbol lookup ignores case"""
        portfolio = self.create_portfolio()
        position = self.create_position(portfolio.id, symbol="msft")

        with self.db_manager.session_context() as session:
            found = PortfolioStore(session).positions_for_symbol("Msft")

        assert position.symbol == "MSFT"
        assert [p.id for p in found] == [position.id]

    def test_quantity_precision_survives(self) -> None:
        """Test that fractional quantities load back exactly"""
        portfolio = self.create_portfolio()
        position = self.create_position(portfolio.id, quantity="0.12345678", purchase_price="8123.45")
        loaded = self.service.list_positions(portfolio.id)[0]
        assert loaded.id == position.id
        assert loaded.quantity == Decimal("0.12345678")
        assert loaded.purchase_price == Money("8123.45", "GBP")

    def test_list_orders_filters(self) -> None:
        """Test filtering orders by status string and portfolio"""
        first = self.create_portfolio()
        second = self.create_portfolio(name="Second")
        pending = self.submit_order(first)
        approved = self.submit_order(first, symbol="GILT")
        other = self.submit_order(second)
        self.service.approve_order(approved.id)

        assert [o.id for o in self.service.list_orders(status="PENDING")] == [pending.id, other.id]
        assert [o.id for o in self.service.list_orders(status=OrderStatus.ACTIVE)] == [approved.id]
        assert [o.id for o in self.service.list_orders(portfolio_id=second.id)] == [other.id]


class TestStorableScale(BaseTestCase):
    """Tests that values are stored exactly or refused"""

    def test_price_at_column_scale_round_trips(self) -> None:
        """Test that the returned position matches what is read back"""
        portfolio = self.create_portfolio()
        created = self.create_position(portfolio.id, quantity="1000", purchase_price="1.2345")

        loaded = self.service.list_positions(portfolio.id)[0]

        assert loaded.purchase_price == created.purchase_price
        assert loaded.total_cost == created.total_cost == Money("1234.5", "GBP")
        assert self.service.get_portfolio(portfolio.id).total_value == Money("1234.50", "GBP")

    def test_trailing_zeros_are_not_extra_places(self) -> None:
        """Test that 1.23450000 is accepted as 1.2345"""
        portfolio = self.create_portfolio()
        self.create_position(portfolio.id, quantity="2", purchase_price="1.23450000")
        assert self.service.list_positions(portfolio.id)[0].purchase_price == Money("1.2345", "GBP")

    def test_position_price_beyond_scale_rejected(self) -> None:
        """Test that a 5-place price is refused rather than rounded"""
        portfolio = self.create_portfolio()

        with self.assertRaises(ValueError):
            self.create_position(portfolio.id, quantity="1000", purchase_price="1.23456")

        assert self.service.list_positions(portfolio.id) == []
        assert self.service.get_portfolio(portfolio.id).total_value.is_zero()

    def test_position_quantity_beyond_scale_rejected(self) -> None:
        """Test that a 9-place quantity is refused"""
        portfolio = self.create_portfolio()
        with self.assertRaises(ValueError):
            self.create_position(portfolio.id, quantity="0.123456789")
        assert self.service.list_positions(portfolio.id) == []

    def test_update_beyond_scale_leaves_position(self) -> None:
        """Test that an edit with too many places changes nothing"""
        portfolio = self.create_portfolio()
        position = self.create_position(portfolio.id, quantity="10", purchase_price="100")

        with self.assertRaises(ValueError):
            self.service.update_position(position.id, current_price="101.00001")

        assert self.service.list_positions(portfolio.id)[0].current_price == Money("100", "GBP")
        assert self.service.get_portfolio(portfolio.id).total_value == Money("1000", "GBP")

    def test_order_beyond_scale_rejected(self) -> None:
        """Test order price and interest rate scales"""
        portfolio = self.create_portfolio()
        with self.assertRaises(ValueError):
            self.submit_order(portfolio, price="20.00001")
        with self.assertRaises(ValueError):
            self.submit_order(portfolio, interest_rate="4.1234567")
        assert self.service.list_orders(portfolio_id=portfolio.id) == []

    def test_catalog_price_beyond_scale_rejected(self) -> None:
        """Test that catalog prices follow the same rule"""
        with self.assertRaises(ValueError):
            self.create_catalog_item("ACME", price="450.12345")
        assert self.service.list_catalog(available_only=False) == []
