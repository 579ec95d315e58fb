"""
portfolio_engine/core/portfolio_aggregate.py - Portfolio totals with AUTO/MANUAL mode

In AUTO mode the totals always equal ValuationRecalculator output for the
portfolio's current positions. In MANUAL mode an operator owns the totals;
position changes are recorded for audit but leave the totals untouched
until switch_to_auto() restores AUTO mode.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List

from portfolio_engine.core.errors import InvalidAdjustment
from portfolio_engine.core.money import Money, to_decimal
from portfolio_engine.core.positions import InvestmentPosition, PositionChange
from portfolio_engine.core.valuation import AggregateTotals, ValuationRecalculator

logger = logging.getLogger(__name__)


class PortfolioMode(str, enum.Enum):
    AUTO = "AUTO"
    MANUAL = "MANUAL"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PortfolioAggregate:
    """Per-portfolio totals and the mode flag that governs them"""

    user_id: int
    name: str
    currency: str
    totals: AggregateTotals
    mode: PortfolioMode = PortfolioMode.AUTO
    description: str | None = None
    is_active: bool = True
    id: int | None = None
    version: int | None = None
    updated_at: datetime = field(default_factory=_utcnow)
    audit_trail: List[PositionChange] = field(default_factory=list)

    @classmethod
    def new(
        cls,
        user_id: int,
        name: str,
        currency: str,
        description: str | None = None,
    ) -> "PortfolioAggregate":
        """A freshly provisioned, empty AUTO-mode portfolio"""
        if not name or not name.strip():
            raise ValueError("Portfolio name is required")
        return cls(
            user_id=user_id,
            name=name.strip(),
            currency=Money.zero(currency).currency,
            totals=AggregateTotals.zero(currency),
            description=description,
        )

    # Convenience accessors used by the request layer
    @property
    def total_value(self) -> Money:
        return self.totals.total_value

    @property
    def total_invested(self) -> Money:
        return self.totals.total_invested

    @property
    def total_gain(self) -> Money:
        return self.totals.total_gain

    @property
    def gain_percentage(self) -> Decimal:
        return self.totals.gain_percentage

    @property
    def is_auto(self) -> bool:
        return self.mode == PortfolioMode.AUTO

    def _touch(self) -> None:
        self.updated_at = _utcnow()

    def _replace_totals(self, positions: Iterable[InvestmentPosition]) -> None:
        # Compute first so a failure leaves the previous totals in place
        totals = ValuationRecalculator.recalculate(positions, self.currency)
        self.totals = totals

    def apply_position_change(
        self, change: PositionChange, positions: Iterable[InvestmentPosition]
    ) -> bool:
        """
        React to a position mutation

        Args:
            change: Delta describing what happened to the position
            positions: Full current position set of this portfolio,
                already reflecting the change

        Returns:
            True if totals were recalculated, False if the change was
            only recorded (MANUAL mode)
        """
        if self.mode == PortfolioMode.MANUAL:
            self.audit_trail.append(change)
            self._touch()
            logger.info(
                f"Portfolio {self.id} in MANUAL mode: recorded {change.kind.value} "
                f"of position {change.position_id} without touching totals"
            )
            return False

        self._replace_totals(positions)
        self._touch()
        return True

    def set_manual_totals(self, total_value, total_invested, total_gain) -> None:
        """
        Switch to MANUAL mode and store operator-supplied totals verbatim

        gain_percentage is derived from the supplied gain and invested
        amounts, never set directly.

        Raises:
            InvalidAdjustment: non-finite input, negative total value or
                negative total invested
            CurrencyMismatch: a Money argument in another currency
        """
        value = self._as_money(total_value, "total_value")
        invested = self._as_money(total_invested, "total_invested")
        gain = self._as_money(total_gain, "total_gain")

        if value.is_negative():
            raise InvalidAdjustment(f"total_value must not be negative, got {value.amount}")
        if invested.is_negative():
            raise InvalidAdjustment(
                f"total_invested must not be negative, got {invested.amount}"
            )

        self.totals = AggregateTotals.from_manual(value, invested, gain)
        self.mode = PortfolioMode.MANUAL
        self._touch()

    def switch_to_auto(self, positions: Iterable[InvestmentPosition]) -> None:
        """Restore AUTO mode and immediately recalculate the totals"""
        self._replace_totals(positions)
        self.mode = PortfolioMode.AUTO
        self._touch()

    def _as_money(self, value, field_name: str) -> Money:
        if isinstance(value, Money):
            if not value.amount.is_finite():
                raise InvalidAdjustment(f"{field_name} must be a finite number")
            # Equal currency is enforced through Money arithmetic
            return Money.zero(self.currency) + value
        try:
            amount = to_decimal(value)
        except (ValueError, TypeError):
            raise InvalidAdjustment(f"{field_name} must be a number, got {value!r}") from None
        if not amount.is_finite():
            raise InvalidAdjustment(f"{field_name} must be a finite number, got {value!r}")
        return Money(amount, self.currency)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "mode": self.mode.value,
            "is_active": self.is_active,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            **self.totals.rounded().to_dict(),
        }
