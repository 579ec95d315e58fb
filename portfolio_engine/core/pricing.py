"""
portfolio_engine/core/pricing.py - Buy/sell preview math

The same functions serve previews and executions: an execution re-runs
the formula against the latest price and fee rate at commit time, so the
executed numbers never come from a stale preview.
"""

import enum
from dataclasses import dataclass
from decimal import Decimal

from portfolio_engine.core.errors import (
    InsufficientHolding,
    InvalidOrderState,
    InvalidQuantity,
)
from portfolio_engine.core.money import Money, to_decimal
from portfolio_engine.core.positions import InvestmentPosition, InvestmentType, OrderStatus


class TradeSide(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class CatalogItem:
    """A buyable marketplace entry"""

    symbol: str
    name: str
    current_price: Money
    investment_type: InvestmentType = InvestmentType.STOCK
    is_available: bool = True
    id: int | None = None

    def __post_init__(self) -> None:
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Catalog symbol is required")
        if self.current_price.amount < 0:
            raise ValueError("Catalog price must not be negative")
        object.__setattr__(self, "symbol", self.symbol.strip().upper())
        object.__setattr__(self, "investment_type", InvestmentType(self.investment_type))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.name,
            "type": self.investment_type.value,
            "current_price": str(self.current_price.amount),
            "currency": self.current_price.currency,
            "is_available": self.is_available,
        }


@dataclass(frozen=True)
class PricingResult:
    """Outcome of a prospective or executed trade

    BUY:  gross = quantity x price (total cost), net = gross + fee (total amount)
    SELL: gross = quantity x price (proceeds),   net = gross - fee (net proceeds)
    """

    side: TradeSide
    quantity: Decimal
    unit_price: Money
    fee_rate: Decimal
    gross_amount: Money
    fee: Money
    net_amount: Money
    cost_basis: Money | None = None
    gain_loss: Money | None = None
    return_percent: Decimal | None = None

    @property
    def total_cost(self) -> Money:
        return self.gross_amount

    @property
    def total_amount(self) -> Money:
        return self.net_amount

    @property
    def proceeds(self) -> Money:
        return self.gross_amount

    @property
    def net_proceeds(self) -> Money:
        return self.net_amount

    def to_dict(self) -> dict:
        data = {
            "side": self.side.value,
            "quantity": str(self.quantity),
            "unit_price": str(self.unit_price.amount),
            "currency": self.unit_price.currency,
            "fee_rate": str(self.fee_rate),
            "fee": str(self.fee.amount),
        }
        if self.side == TradeSide.BUY:
            data["total_cost"] = str(self.gross_amount.amount)
            data["total_amount"] = str(self.net_amount.amount)
        else:
            data["proceeds"] = str(self.gross_amount.amount)
            data["net_proceeds"] = str(self.net_amount.amount)
            data["gain_loss"] = str(self.gain_loss.amount)
            data["return_percent"] = str(self.return_percent)
        return data


def _check_quantity(quantity) -> Decimal:
    try:
        quantity = to_decimal(quantity)
    except ValueError:
        raise InvalidQuantity(f"Quantity must be a number, got {quantity!r}") from None
    if not quantity.is_finite() or quantity <= 0:
        raise InvalidQuantity(f"Quantity must be greater than 0, got {quantity}")
    return quantity


def _check_fee_rate(fee_rate) -> Decimal:
    fee_rate = to_decimal(fee_rate)
    if not fee_rate.is_finite() or fee_rate < 0 or fee_rate >= 1:
        raise ValueError(f"Fee rate must be in [0, 1), got {fee_rate}")
    return fee_rate


class TradePricingEngine:
    """Computes buy and sell figures for a given fee rate"""

    @staticmethod
    def preview_buy(current_price: Money, quantity, fee_rate) -> PricingResult:
        """
        Price a purchase of `quantity` units at `current_price`

        Raises:
            InvalidQuantity: quantity <= 0
        """
        quantity = _check_quantity(quantity)
        fee_rate = _check_fee_rate(fee_rate)

        total_cost = current_price * quantity
        fee = total_cost * fee_rate
        return PricingResult(
            side=TradeSide.BUY,
            quantity=quantity,
            unit_price=current_price,
            fee_rate=fee_rate,
            gross_amount=total_cost,
            fee=fee,
            net_amount=total_cost + fee,
        )

    @staticmethod
    def preview_sell(
        position: InvestmentPosition,
        quantity,
        fee_rate,
        current_price: Money | None = None,
    ) -> PricingResult:
        """
        Price a sale of `quantity` units out of `position`

        Args:
            position: The holding being sold
            quantity: Units to sell
            fee_rate: Fractional fee applied to the proceeds
            current_price: Latest quote; defaults to the position's price

        Raises:
            InvalidQuantity: quantity <= 0
            InsufficientHolding: quantity exceeds units held, whatever the status
            InvalidOrderState: position is not ACTIVE
        """
        quantity = _check_quantity(quantity)
        fee_rate = _check_fee_rate(fee_rate)

        if quantity > position.quantity:
            raise InsufficientHolding(quantity, position.quantity)
        if position.status != OrderStatus.ACTIVE:
            raise InvalidOrderState(
                f"Only ACTIVE positions can be sold, position is {position.status.value}"
            )

        price = current_price or position.current_price
        proceeds = price * quantity
        fee = proceeds * fee_rate
        net_proceeds = proceeds - fee
        cost_basis = position.purchase_price * quantity
        gain_loss = net_proceeds - cost_basis

        return PricingResult(
            side=TradeSide.SELL,
            quantity=quantity,
            unit_price=price,
            fee_rate=fee_rate,
            gross_amount=proceeds,
            fee=fee,
            net_amount=net_proceeds,
            cost_basis=cost_basis,
            gain_loss=gain_loss,
            return_percent=gain_loss.ratio(cost_basis) * 100,
        )

    @classmethod
    def preview(cls, side: TradeSide, ref, quantity, fee_rate) -> PricingResult:
        """
        Dispatch on trade side

        For BUY `ref` is anything with a `current_price` Money attribute
        (a catalog item or a position); for SELL it must be the position.
        """
        side = TradeSide(side)
        if side == TradeSide.BUY:
            return cls.preview_buy(ref.current_price, quantity, fee_rate)
        return cls.preview_sell(ref, quantity, fee_rate)
