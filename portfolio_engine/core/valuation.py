"""
portfolio_engine/core/valuation.py - Portfolio valuation recalculator

Computes aggregate totals from a set of positions. Pure and
deterministic: no I/O and no rounding. Rounding to the currency's minor
unit happens once, when the totals are persisted.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from portfolio_engine.core.money import Money, quantize
from portfolio_engine.core.positions import InvestmentPosition

PERCENT_PLACES = 6


@dataclass(frozen=True)
class AggregateTotals:
    """Portfolio-level totals"""

    total_value: Money
    total_invested: Money
    total_gain: Money
    gain_percentage: Decimal

    @classmethod
    def zero(cls, currency: str) -> "AggregateTotals":
        return cls(
            total_value=Money.zero(currency),
            total_invested=Money.zero(currency),
            total_gain=Money.zero(currency),
            gain_percentage=Decimal("0"),
        )

    @classmethod
    def from_manual(
        cls, total_value: Money, total_invested: Money, total_gain: Money
    ) -> "AggregateTotals":
        """Operator-supplied totals; the percentage is always derived"""
        return cls(
            total_value=total_value,
            total_invested=total_invested,
            total_gain=total_gain,
            gain_percentage=gain_percentage(total_gain, total_invested),
        )

    @property
    def currency(self) -> str:
        return self.total_value.currency

    def rounded(self) -> "AggregateTotals":
        """Totals as persisted: money half-to-even to minor units"""
        return AggregateTotals(
            total_value=self.total_value.rounded(),
            total_invested=self.total_invested.rounded(),
            total_gain=self.total_gain.rounded(),
            gain_percentage=quantize(self.gain_percentage, PERCENT_PLACES),
        )

    def to_dict(self) -> dict:
        return {
            "currency": self.currency,
            "total_value": str(self.total_value.amount),
            "total_invested": str(self.total_invested.amount),
            "total_gain": str(self.total_gain.amount),
            "gain_percentage": str(self.gain_percentage),
        }


def gain_percentage(total_gain: Money, total_invested: Money) -> Decimal:
    """total_gain / total_invested x 100, or 0 when nothing is invested"""
    return total_gain.ratio(total_invested) * 100


class ValuationRecalculator:
    """Derives AggregateTotals from the positions of one portfolio"""

    @staticmethod
    def recalculate(
        positions: Iterable[InvestmentPosition], currency: str
    ) -> AggregateTotals:
        """
        Sum value and invested amount over all non-cancelled positions

        Args:
            positions: Positions of the portfolio (any status)
            currency: Portfolio currency, used for the empty set and to
                reject positions priced in another currency

        Returns:
            Unrounded AggregateTotals
        """
        total_value = Money.zero(currency)
        total_invested = Money.zero(currency)

        for position in positions:
            if position.is_cancelled:
                continue
            total_value = total_value + position.total_value
            total_invested = total_invested + position.total_cost

        total_gain = total_value - total_invested

        return AggregateTotals(
            total_value=total_value,
            total_invested=total_invested,
            total_gain=total_gain,
            gain_percentage=gain_percentage(total_gain, total_invested),
        )


def recalculate(positions: Iterable[InvestmentPosition], currency: str) -> AggregateTotals:
    """Module-level shortcut for ValuationRecalculator.recalculate"""
    return ValuationRecalculator.recalculate(positions, currency)
