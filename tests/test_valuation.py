"""
Tests for positions and the valuation recalculator

Tests cover:
- InvestmentPosition validation and derived values
- Recalculation of aggregate totals (cancelled positions excluded)
- The gain identity and the zero-invested rule
"""

import pytest
from datetime import date
from decimal import Decimal

from portfolio_engine.core.errors import CurrencyMismatch
from portfolio_engine.core.money import Money
from portfolio_engine.core.positions import (
    ChangeKind,
    InvestmentPosition,
    InvestmentType,
    OrderStatus,
    PositionChange,
)
from portfolio_engine.core.valuation import AggregateTotals, ValuationRecalculator, recalculate


def make_position(quantity="10", purchase="100", current="110", status=OrderStatus.ACTIVE, currency="GBP"):
    return InvestmentPosition(
        portfolio_id=1,
        investment_type=InvestmentType.STOCK,
        name="Test holding",
        quantity=quantity,
        purchase_price=Money(purchase, currency),
        current_price=Money(current, currency),
        purchase_date=date(2026, 1, 2),
        status=status,
    )


class TestInvestmentPosition:
    """Tests for a single holding"""

    def test_derived_values(self) -> None:
        """Test total value, cost, gain and gain percentage"""
        position = make_position("10", "100", "110")
        assert position.total_value == Money("1100", "GBP")
        assert position.total_cost == Money("1000", "GBP")
        assert position.total_gain == Money("100", "GBP")
        assert position.gain_percentage == Decimal("10")

    def test_zero_quantity_has_zero_percentage(self) -> None:
        """Test that a fully sold position does not divide by zero"""
        position = make_position("0")
        assert position.total_cost.is_zero()
        assert position.gain_percentage == Decimal("0")

    def test_negative_quantity_rejected(self) -> None:
        """Test that negative quantity never reaches the recalculator"""
        with pytest.raises(ValueError):
            make_position("-1")

    def test_non_positive_purchase_price_rejected(self) -> None:
        """Test that a purchase price of 0 is invalid"""
        with pytest.raises(ValueError):
            make_position(purchase="0")

    def test_current_price_may_be_zero(self) -> None:
        """Test that a worthless holding is still a valid position"""
        position = make_position(current="0")
        assert position.total_value.is_zero()
        assert position.gain_percentage == Decimal("-100")

    def test_mixed_price_currencies_rejected(self) -> None:
        """Test that purchase and current price share a currency"""
        with pytest.raises(ValueError):
            InvestmentPosition(
                portfolio_id=1,
                investment_type="BOND",
                name="Gilt",
                quantity="1",
                purchase_price=Money("100", "GBP"),
                current_price=Money("100", "USD"),
                purchase_date=date(2026, 1, 2),
            )

    def test_with_changes_revalidates(self) -> None:
        """Test that copies are validated like new positions"""
        position = make_position()
        assert position.with_changes(quantity=Decimal("3")).quantity == Decimal("3")
        with pytest.raises(ValueError):
            position.with_changes(quantity=Decimal("-3"))

    def test_enum_values_coerced(self) -> None:
        """Test that string type and status become enums"""
        position = InvestmentPosition(
            portfolio_id=1,
            investment_type="FIXED_DEPOSIT",
            name="12m deposit",
            quantity="1",
            purchase_price=Money("5000", "GBP"),
            current_price=Money("5000", "GBP"),
            purchase_date=date(2026, 1, 2),
            status="MATURED",
        )
        assert position.investment_type is InvestmentType.FIXED_DEPOSIT
        assert position.status is OrderStatus.MATURED


class TestPositionChange:
    """Tests for the delta record"""

    def test_between_computes_deltas(self) -> None:
        """Test quantity and value deltas between two states"""
        before = make_position("10", "100", "110")
        after = before.with_changes(quantity=Decimal("4"))
        change = PositionChange.between(ChangeKind.REDUCED, before, after, "sold 6")
        assert change.quantity_delta == Decimal("-6")
        assert change.value_delta == Decimal("-660")
        assert change.to_dict()["kind"] == "REDUCED"

    def test_between_creation(self) -> None:
        """Test a delta from nothing"""
        change = PositionChange.between(ChangeKind.CREATED, None, make_position("2", "50", "50"))
        assert change.quantity_delta == Decimal("2")
        assert change.value_delta == Decimal("100")


class TestValuationRecalculator:
    """Tests for the pure recalculation function"""

    def test_empty_set_is_zero(self) -> None:
        """Test that no positions yield zero totals"""
        totals = recalculate([], "GBP")
        assert totals == AggregateTotals.zero("GBP")

    def test_sums_positions(self) -> None:
        """Test value, invested, gain and percentage over several positions"""
        totals = ValuationRecalculator.recalculate(
            [make_position("10", "100", "110"), make_position("5", "20", "18")], "GBP"
        )
        assert totals.total_value == Money("1190", "GBP")
        assert totals.total_invested == Money("1100", "GBP")
        assert totals.total_gain == Money("90", "GBP")
        assert totals.gain_percentage == Decimal("90") / Decimal("1100") * 100

    def test_cancelled_positions_excluded(self) -> None:
        """Test that CANCELLED positions do not count"""
        totals = recalculate(
            [
                make_position("10", "100", "110"),
                make_position("1000", "1", "1", status=OrderStatus.CANCELLED),
            ],
            "GBP",
        )
        assert totals.total_invested == Money("1000", "GBP")

    def test_matured_and_completed_positions_included(self) -> None:
        """Test that only CANCELLED is filtered out"""
        totals = recalculate(
            [
                make_position("1", "100", "100", status=OrderStatus.MATURED),
                make_position("1", "100", "100", status=OrderStatus.COMPLETED),
            ],
            "GBP",
        )
        assert totals.total_value == Money("200", "GBP")

    def test_gain_identity(self) -> None:
        """Test total_gain == total_value - total_invested for varied inputs"""
        samples = [
            [],
            [make_position("3", "33.33", "12.01")],
            [make_position("0.125", "8000", "8123.45"), make_position("7", "1.01", "0.99")],
            [make_position("1", "0.01", "0"), make_position("1000000", "1.2345", "1.2346")],
        ]
        for positions in samples:
            totals = recalculate(positions, "GBP")
            assert totals.total_gain == totals.total_value - totals.total_invested

    def test_no_intermediate_rounding(self) -> None:
        """Test that sub-penny amounts are kept until persistence"""
        totals = recalculate([make_position("3", "0.333", "0.333")] * 3, "GBP")
        assert totals.total_value == Money("2.997", "GBP")
        assert totals.rounded().total_value == Money("3.00", "GBP")

    def test_percentage_rounded_to_six_places(self) -> None:
        """Test that persisted percentages carry six decimal places"""
        totals = recalculate([make_position("3", "3", "4")], "GBP").rounded()
        assert totals.gain_percentage == Decimal("33.333333")

    def test_currency_mismatch_propagates(self) -> None:
        """Test that a foreign-currency position cannot be summed in"""
        with pytest.raises(CurrencyMismatch):
            recalculate([make_position(currency="USD")], "GBP")
