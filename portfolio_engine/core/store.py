"""
portfolio_engine/core/store.py - Persistence for portfolios, positions and orders

Maps ORM rows to domain objects and back. A store wraps one session; the
caller owns the transaction (see DatabaseManager.session_context).

Concurrency:
- Order status changes are compare-and-swap: UPDATE ... WHERE status =
  <expected>. Zero affected rows means someone else moved the order first.
- Portfolio rows carry an optimistic version; writing an aggregate read
  at an older version raises StaleDataError.
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from portfolio_engine.core.errors import InvalidOrderState, NotFound
from portfolio_engine.core.money import (
    PRICE_PLACES,
    QUANTITY_PLACES,
    RATE_PLACES,
    Money,
    check_places,
    minor_units,
    quantize,
)
from portfolio_engine.core.order_lifecycle import InvestmentOrder
from portfolio_engine.core.portfolio_aggregate import PortfolioAggregate, PortfolioMode
from portfolio_engine.core.positions import InvestmentPosition, OrderStatus
from portfolio_engine.core.pricing import CatalogItem, PricingResult
from portfolio_engine.core.valuation import AggregateTotals
from portfolio_engine.models import (
    Investment,
    InvestmentApplication,
    MarketplaceItem,
    Portfolio,
    SystemAuditLog,
    TradeTransaction,
)

logger = logging.getLogger(__name__)


def _portfolio_to_domain(row: Portfolio) -> PortfolioAggregate:
    currency = row.currency
    return PortfolioAggregate(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        description=row.description,
        currency=currency,
        mode=PortfolioMode(row.mode),
        is_active=row.is_active,
        version=row.version,
        updated_at=row.updated_at,
        totals=AggregateTotals(
            total_value=Money(row.total_value, currency),
            total_invested=Money(row.total_invested, currency),
            total_gain=Money(row.total_gain, currency),
            gain_percentage=Decimal(row.gain_percentage),
        ),
    )


def _position_to_domain(row: Investment) -> InvestmentPosition:
    return InvestmentPosition(
        id=row.id,
        portfolio_id=row.portfolio_id,
        order_id=row.order_id,
        investment_type=row.type,
        name=row.name,
        symbol=row.symbol,
        quantity=row.quantity,
        purchase_price=Money(row.purchase_price, row.currency),
        current_price=Money(row.current_price, row.currency),
        purchase_date=row.purchase_date,
        maturity_date=row.maturity_date,
        interest_rate=row.interest_rate,
        status=row.status,
    )


def _order_to_domain(row: InvestmentApplication) -> InvestmentOrder:
    return InvestmentOrder(
        id=row.id,
        user_id=row.user_id,
        portfolio_id=row.portfolio_id,
        investment_type=row.type,
        name=row.name,
        symbol=row.symbol,
        quantity=row.quantity,
        price=Money(row.price, row.currency),
        maturity_date=row.maturity_date,
        interest_rate=row.interest_rate,
        status=row.status,
        rejection_reason=row.rejection_reason,
        position_id=row.position_id,
        created_at=row.created_at,
        approved_at=row.approved_at,
        rejected_at=row.rejected_at,
    )


def _check_storable(quantity=None, prices=(), interest_rate=None) -> None:
    """Refuse values the Numeric columns would round on write"""
    if quantity is not None:
        check_places(quantity, QUANTITY_PLACES, "Quantity")
    for field_name, money in prices:
        check_places(money.amount, PRICE_PLACES, field_name)
    if interest_rate is not None:
        check_places(interest_rate, RATE_PLACES, "Interest rate")


def _catalog_to_domain(row: MarketplaceItem) -> CatalogItem:
    return CatalogItem(
        id=row.id,
        symbol=row.symbol,
        name=row.name,
        investment_type=row.type,
        current_price=Money(row.current_price, row.currency),
        is_available=row.is_available,
    )


class PortfolioStore:
    """Repository over one SQLAlchemy session"""

    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Portfolios
    # ------------------------------------------------------------------

    def _portfolio_row(self, portfolio_id: int, for_update: bool = False) -> Portfolio:
        row = self.session.get(Portfolio, portfolio_id, with_for_update=for_update)
        if row is None:
            raise NotFound(f"Portfolio {portfolio_id} not found")
        return row

    def get_portfolio(self, portfolio_id: int, for_update: bool = False) -> PortfolioAggregate:
        """Load a portfolio; `for_update` takes a row lock where supported"""
        return _portfolio_to_domain(self._portfolio_row(portfolio_id, for_update))

    def list_portfolios(self, user_id: int, active_only: bool = False) -> List[PortfolioAggregate]:
        stmt = select(Portfolio).where(Portfolio.user_id == user_id).order_by(Portfolio.id)
        if active_only:
            stmt = stmt.where(Portfolio.is_active.is_(True))
        return [_portfolio_to_domain(row) for row in self.session.scalars(stmt)]

    def save_portfolio(self, aggregate: PortfolioAggregate) -> PortfolioAggregate:
        """
        Insert or update a portfolio

        Totals are rounded half-to-even to the currency's minor unit here,
        at the point of persistence. Pending MANUAL-mode deltas in the
        aggregate's audit trail are written to the audit log.

        Raises:
            StaleDataError: the row changed since the aggregate was read
        """
        totals = aggregate.totals.rounded()

        if aggregate.id is None:
            row = Portfolio(user_id=aggregate.user_id, currency=aggregate.currency)
            self.session.add(row)
        else:
            row = self._portfolio_row(aggregate.id)
            if aggregate.version is not None and row.version != aggregate.version:
                raise StaleDataError(
                    f"Portfolio {aggregate.id} is at version {row.version}, "
                    f"update was based on version {aggregate.version}"
                )

        row.name = aggregate.name
        row.description = aggregate.description
        row.mode = aggregate.mode.value
        row.is_active = aggregate.is_active
        row.total_value = totals.total_value.amount
        row.total_invested = totals.total_invested.amount
        row.total_gain = totals.total_gain.amount
        row.gain_percentage = totals.gain_percentage
        row.updated_at = aggregate.updated_at
        self.session.flush()

        aggregate.id = row.id
        aggregate.version = row.version

        for change in aggregate.audit_trail:
            self.record_audit(
                action="position_change",
                resource_type="portfolio",
                resource_id=row.id,
                user_id=aggregate.user_id,
                changes=change.to_dict(),
                details=f"Recorded while portfolio in {aggregate.mode.value} mode",
            )
        aggregate.audit_trail.clear()
        return aggregate

    def delete_portfolio(self, portfolio_id: int) -> None:
        """Delete a portfolio together with its closed orders and trade history

        The caller checks there are no positions or pending orders left.
        """
        row = self._portfolio_row(portfolio_id)
        self.session.execute(
            delete(TradeTransaction).where(TradeTransaction.portfolio_id == portfolio_id)
        )
        self.session.execute(
            delete(InvestmentApplication)
            .where(InvestmentApplication.portfolio_id == portfolio_id)
            .where(InvestmentApplication.status != OrderStatus.PENDING.value)
        )
        self.session.delete(row)
        self.session.flush()

    def purge_portfolio(self, portfolio_id: int) -> dict:
        """Remove positions, orders, ledger rows and the portfolio itself"""
        row = self._portfolio_row(portfolio_id)
        removed_positions = self.session.execute(
            delete(Investment).where(Investment.portfolio_id == portfolio_id)
        ).rowcount
        removed_orders = self.session.execute(
            delete(InvestmentApplication).where(InvestmentApplication.portfolio_id == portfolio_id)
        ).rowcount
        self.session.execute(
            delete(TradeTransaction).where(TradeTransaction.portfolio_id == portfolio_id)
        )
        self.session.delete(row)
        self.session.flush()
        return {"positions": removed_positions, "orders": removed_orders}

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def _position_row(self, position_id: int) -> Investment:
        row = self.session.get(Investment, position_id)
        if row is None:
            raise NotFound(f"Position {position_id} not found")
        return row

    def load_positions(self, portfolio_id: int) -> List[InvestmentPosition]:
        stmt = (
            select(Investment)
            .where(Investment.portfolio_id == portfolio_id)
            .order_by(Investment.id)
        )
        return [_position_to_domain(row) for row in self.session.scalars(stmt)]

    def get_position(self, position_id: int) -> InvestmentPosition:
        return _position_to_domain(self._position_row(position_id))

    def save_position(self, position: InvestmentPosition) -> InvestmentPosition:
        """Insert or update a position; returns it with its id set"""
        _check_storable(
            position.quantity,
            [("Purchase price", position.purchase_price), ("Current price", position.current_price)],
            position.interest_rate,
        )
        if position.id is None:
            row = Investment(portfolio_id=position.portfolio_id)
            self.session.add(row)
        else:
            row = self._position_row(position.id)

        row.portfolio_id = position.portfolio_id
        row.order_id = position.order_id
        row.type = position.investment_type.value
        row.name = position.name
        row.symbol = position.symbol
        row.quantity = position.quantity
        row.purchase_price = position.purchase_price.amount
        row.current_price = position.current_price.amount
        row.currency = position.currency
        row.purchase_date = position.purchase_date
        row.maturity_date = position.maturity_date
        row.interest_rate = position.interest_rate
        row.status = position.status.value
        self.session.flush()

        if position.id is None:
            return position.with_changes(id=row.id)
        return position

    def delete_position(self, position_id: int) -> None:
        self.session.delete(self._position_row(position_id))
        self.session.flush()

    def count_positions(self, portfolio_id: int) -> int:
        stmt = select(func.count(Investment.id)).where(Investment.portfolio_id == portfolio_id)
        return self.session.scalar(stmt) or 0

    def positions_for_symbol(self, symbol: str) -> List[InvestmentPosition]:
        """Non-cancelled positions holding a symbol"""
        stmt = (
            select(Investment)
            .where(Investment.symbol == symbol.upper())
            .where(Investment.status != OrderStatus.CANCELLED.value)
            .order_by(Investment.id)
        )
        return [_position_to_domain(row) for row in self.session.scalars(stmt)]

    def positions_due_for_maturity(self, as_of: date) -> List[InvestmentPosition]:
        stmt = (
            select(Investment)
            .where(Investment.status == OrderStatus.ACTIVE.value)
            .where(Investment.maturity_date.is_not(None))
            .where(Investment.maturity_date <= as_of)
            .order_by(Investment.portfolio_id, Investment.id)
        )
        return [_position_to_domain(row) for row in self.session.scalars(stmt)]

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def _order_row(self, order_id: int) -> InvestmentApplication:
        row = self.session.get(InvestmentApplication, order_id)
        if row is None:
            raise NotFound(f"Order {order_id} not found")
        return row

    def get_order(self, order_id: int) -> InvestmentOrder:
        return _order_to_domain(self._order_row(order_id))

    def list_orders(self, status: Optional[OrderStatus] = None, portfolio_id: Optional[int] = None) -> List[InvestmentOrder]:
        stmt = select(InvestmentApplication).order_by(InvestmentApplication.id)
        if status is not None:
            stmt = stmt.where(InvestmentApplication.status == OrderStatus(status).value)
        if portfolio_id is not None:
            stmt = stmt.where(InvestmentApplication.portfolio_id == portfolio_id)
        return [_order_to_domain(row) for row in self.session.scalars(stmt)]

    def save_order(self, order: InvestmentOrder) -> InvestmentOrder:
        """
        Insert a new order, or update the non-status fields of an existing one

        Status is deliberately not written here; use transition_order.
        """
        _check_storable(order.quantity, [("Price", order.price)], order.interest_rate)
        if order.id is None:
            row = InvestmentApplication(status=order.status.value)
            self.session.add(row)
        else:
            row = self._order_row(order.id)

        row.user_id = order.user_id
        row.portfolio_id = order.portfolio_id
        row.type = order.investment_type.value
        row.name = order.name
        row.symbol = order.symbol
        row.quantity = order.quantity
        row.price = order.price.amount
        row.currency = order.price.currency
        row.maturity_date = order.maturity_date
        row.interest_rate = order.interest_rate
        row.position_id = order.position_id
        self.session.flush()

        order.id = row.id
        if row.created_at is not None:
            order.created_at = row.created_at
        return order

    def transition_order(self, order: InvestmentOrder, expected: OrderStatus) -> None:
        """
        Compare-and-swap the order's status from `expected` to `order.status`

        Writes the status together with the approval/rejection fields.

        Raises:
            InvalidOrderState: the stored status was no longer `expected`
        """
        result = self.session.execute(
            update(InvestmentApplication)
            .where(InvestmentApplication.id == order.id)
            .where(InvestmentApplication.status == OrderStatus(expected).value)
            .values(
                status=order.status.value,
                rejection_reason=order.rejection_reason,
                approved_at=order.approved_at,
                rejected_at=order.rejected_at,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                f"Order {order.id} was not {OrderStatus(expected).value}; "
                f"transition to {order.status.value} refused"
            )
            raise InvalidOrderState(
                f"Order {order.id} is no longer {OrderStatus(expected).value}"
            )
        # Keep any identity-mapped row in step with the database
        row = self.session.get(InvestmentApplication, order.id)
        if row is not None:
            self.session.refresh(row)

    def count_pending_orders(self, portfolio_id: int) -> int:
        stmt = (
            select(func.count(InvestmentApplication.id))
            .where(InvestmentApplication.portfolio_id == portfolio_id)
            .where(InvestmentApplication.status == OrderStatus.PENDING.value)
        )
        return self.session.scalar(stmt) or 0

    # ------------------------------------------------------------------
    # Marketplace catalog
    # ------------------------------------------------------------------

    def get_catalog_item(self, item_id: int) -> CatalogItem:
        row = self.session.get(MarketplaceItem, item_id)
        if row is None:
            raise NotFound(f"Marketplace item {item_id} not found")
        return _catalog_to_domain(row)

    def list_catalog_items(self, available_only: bool = False) -> List[CatalogItem]:
        stmt = select(MarketplaceItem).order_by(MarketplaceItem.symbol)
        if available_only:
            stmt = stmt.where(MarketplaceItem.is_available.is_(True))
        return [_catalog_to_domain(row) for row in self.session.scalars(stmt)]

    def save_catalog_item(self, item: CatalogItem) -> CatalogItem:
        """Insert or update by symbol"""
        _check_storable(prices=[("Price", item.current_price)])
        row = self.session.scalar(
            select(MarketplaceItem).where(MarketplaceItem.symbol == item.symbol)
        )
        if row is None:
            row = MarketplaceItem(symbol=item.symbol)
            self.session.add(row)

        row.name = item.name
        row.type = item.investment_type.value
        row.current_price = item.current_price.amount
        row.currency = item.current_price.currency
        row.is_available = item.is_available
        self.session.flush()
        return _catalog_to_domain(row)

    # ------------------------------------------------------------------
    # Ledger and audit
    # ------------------------------------------------------------------

    def record_trade(
        self,
        portfolio_id: int,
        position_id: int | None,
        user_id: int,
        pricing: PricingResult,
    ) -> int:
        """Write an executed trade, amounts rounded to minor units"""
        _check_storable(pricing.quantity, [("Unit price", pricing.unit_price)])
        places = minor_units(pricing.unit_price.currency)
        row = TradeTransaction(
            portfolio_id=portfolio_id,
            position_id=position_id,
            user_id=user_id,
            side=pricing.side.value,
            quantity=pricing.quantity,
            unit_price=pricing.unit_price.amount,
            currency=pricing.unit_price.currency,
            gross_amount=quantize(pricing.gross_amount.amount, places),
            fee=quantize(pricing.fee.amount, places),
            net_amount=quantize(pricing.net_amount.amount, places),
            gain_loss=(
                quantize(pricing.gain_loss.amount, places)
                if pricing.gain_loss is not None
                else None
            ),
        )
        self.session.add(row)
        self.session.flush()
        return row.id

    def list_trades(self, portfolio_id: int) -> List[TradeTransaction]:
        stmt = (
            select(TradeTransaction)
            .where(TradeTransaction.portfolio_id == portfolio_id)
            .order_by(TradeTransaction.id)
        )
        return list(self.session.scalars(stmt))

    def record_audit(
        self,
        action: str,
        resource_type: str,
        resource_id=None,
        user_id: int | None = None,
        changes: dict | None = None,
        details: str | None = None,
    ) -> None:
        self.session.add(
            SystemAuditLog(
                action=action,
                resource_type=resource_type,
                resource_id=str(resource_id) if resource_id is not None else None,
                user_id=user_id,
                changes=json.dumps(changes) if changes is not None else None,
                details=details,
            )
        )
        self.session.flush()

    def list_audit(self, resource_type: str, resource_id) -> List[SystemAuditLog]:
        stmt = (
            select(SystemAuditLog)
            .where(SystemAuditLog.resource_type == resource_type)
            .where(SystemAuditLog.resource_id == str(resource_id))
            .order_by(SystemAuditLog.id)
        )
        return list(self.session.scalars(stmt))
