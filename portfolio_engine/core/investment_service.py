"""
portfolio_engine/core/investment_service.py - Transactional use-cases

Each public method is one unit of work: it opens a session, performs every
effect (order status, position, portfolio totals, ledger, audit) and
commits once. Any exception rolls the whole unit back.

A unit of work that loses an optimistic-version race on a portfolio row
(StaleDataError) is retried from scratch up to `max_retries` times; all
other errors propagate unchanged.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional, TypeVar

from sqlalchemy.orm.exc import StaleDataError

from portfolio_engine.core.errors import (
    InvalidOrderState,
    NotFound,
    PortfolioEngineError,
    PortfolioNotEmpty,
)
from portfolio_engine.core.money import Money, to_decimal
from portfolio_engine.core.order_lifecycle import InvestmentOrder, OrderLifecycle
from portfolio_engine.core.portfolio_aggregate import PortfolioAggregate
from portfolio_engine.core.positions import (
    ChangeKind,
    InvestmentPosition,
    InvestmentType,
    OrderStatus,
    PositionChange,
)
from portfolio_engine.core.price_feed import PricingProvider
from portfolio_engine.core.pricing import CatalogItem, PricingResult, TradePricingEngine
from portfolio_engine.core.store import PortfolioStore
from portfolio_engine.core.valuation import AggregateTotals
from portfolio_engine.db import DatabaseManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Attributes an admin may change on an existing position
EDITABLE_POSITION_FIELDS = {
    "name",
    "symbol",
    "quantity",
    "purchase_price",
    "current_price",
    "purchase_date",
    "maturity_date",
    "interest_rate",
    "investment_type",
}


class InvestmentService:
    """Entry point used by the request handlers and the CLI"""

    def __init__(
        self,
        db_manager: DatabaseManager,
        pricing: Optional[PricingProvider] = None,
        default_currency: Optional[str] = None,
        max_retries: Optional[int] = None,
    ):
        from config.settings import Config

        self.db = db_manager
        self.pricing = pricing or PricingProvider()
        self.default_currency = default_currency or Config.DEFAULT_CURRENCY()
        self.max_retries = Config.TRANSACTION_RETRIES() if max_retries is None else max_retries

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _transaction(self, work: Callable[[PortfolioStore], T], label: str) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                with self.db.session_context() as session:
                    return work(PortfolioStore(session))
            except StaleDataError as e:
                if attempt > self.max_retries:
                    logger.error(f"{label}: giving up after {attempt} attempts: {e}")
                    raise
                logger.warning(f"{label}: concurrent portfolio update, retrying ({attempt}): {e}")

    def _read(self, work: Callable[[PortfolioStore], T]) -> T:
        with self.db.session_context() as session:
            return work(PortfolioStore(session))

    @staticmethod
    def _apply_change(
        store: PortfolioStore, portfolio_id: int, change: PositionChange
    ) -> PortfolioAggregate:
        """Feed a position change into its portfolio and persist the result"""
        aggregate = store.get_portfolio(portfolio_id, for_update=True)
        positions = store.load_positions(portfolio_id) if aggregate.is_auto else []
        aggregate.apply_position_change(change, positions)
        return store.save_portfolio(aggregate)

    def _money(self, amount, currency: str) -> Money:
        return amount if isinstance(amount, Money) else Money(to_decimal(amount), currency)

    # ------------------------------------------------------------------
    # Portfolios
    # ------------------------------------------------------------------

    def create_portfolio(
        self,
        user_id: int,
        name: str,
        currency: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PortfolioAggregate:
        aggregate = PortfolioAggregate.new(
            user_id, name, currency or self.default_currency, description
        )

        def work(store: PortfolioStore) -> PortfolioAggregate:
            return store.save_portfolio(aggregate)

        created = self._transaction(work, "create_portfolio")
        logger.info(f"Created portfolio {created.id} for user {user_id} ({created.currency})")
        return created

    def get_portfolio(self, portfolio_id: int) -> PortfolioAggregate:
        return self._read(lambda store: store.get_portfolio(portfolio_id))

    def list_portfolios(self, user_id: int) -> List[PortfolioAggregate]:
        return self._read(lambda store: store.list_portfolios(user_id))

    def list_positions(self, portfolio_id: int) -> List[InvestmentPosition]:
        def work(store: PortfolioStore) -> List[InvestmentPosition]:
            store.get_portfolio(portfolio_id)
            return store.load_positions(portfolio_id)

        return self._read(work)

    def update_portfolio_details(
        self,
        portfolio_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> PortfolioAggregate:
        """Rename, describe or (de)activate; never touches totals or mode"""

        def work(store: PortfolioStore) -> PortfolioAggregate:
            aggregate = store.get_portfolio(portfolio_id, for_update=True)
            if name is not None:
                if not name.strip():
                    raise ValueError("Portfolio name is required")
                aggregate.name = name.strip()
            if description is not None:
                aggregate.description = description
            if is_active is not None:
                aggregate.is_active = bool(is_active)
            aggregate.updated_at = datetime.now(timezone.utc)
            return store.save_portfolio(aggregate)

        return self._transaction(work, "update_portfolio_details")

    def portfolio_overview(self, user_id: int) -> Dict[str, dict]:
        """
        Dashboard totals across a user's active portfolios

        Reads the persisted aggregates (the single source of truth) and
        sums them per currency.

        Returns:
            {currency: {"portfolio_count", "total_value", "total_invested",
                        "total_gain", "gain_percentage"}}
        """
        portfolios = self._read(lambda store: store.list_portfolios(user_id, active_only=True))
        overview: Dict[str, AggregateTotals] = {}
        counts: Dict[str, int] = {}

        for portfolio in portfolios:
            currency = portfolio.currency
            running = overview.get(currency, AggregateTotals.zero(currency))
            overview[currency] = AggregateTotals.from_manual(
                running.total_value + portfolio.total_value,
                running.total_invested + portfolio.total_invested,
                running.total_gain + portfolio.total_gain,
            )
            counts[currency] = counts.get(currency, 0) + 1

        return {
            currency: {"portfolio_count": counts[currency], **totals.rounded().to_dict()}
            for currency, totals in overview.items()
        }

    def delete_portfolio(self, portfolio_id: int) -> None:
        """
        Delete an empty portfolio

        Raises:
            PortfolioNotEmpty: positions or pending orders still reference it
        """

        def work(store: PortfolioStore) -> None:
            store.get_portfolio(portfolio_id, for_update=True)
            positions = store.count_positions(portfolio_id)
            pending = store.count_pending_orders(portfolio_id)
            if positions or pending:
                raise PortfolioNotEmpty(
                    f"Portfolio {portfolio_id} holds {positions} position(s) and "
                    f"{pending} pending order(s); remove them or purge explicitly"
                )
            store.delete_portfolio(portfolio_id)

        self._transaction(work, "delete_portfolio")
        logger.info(f"Deleted portfolio {portfolio_id}")

    def purge_portfolio(self, portfolio_id: int, confirmed: bool = False) -> dict:
        """
        Cascading delete of a portfolio with everything in it

        Only runs when the caller passes confirmed=True; this is the
        explicit admin-confirmed path, delete_portfolio never cascades.
        """
        if not confirmed:
            raise ValueError("Purging a portfolio requires explicit confirmation")

        def work(store: PortfolioStore) -> dict:
            aggregate = store.get_portfolio(portfolio_id, for_update=True)
            removed = store.purge_portfolio(portfolio_id)
            store.record_audit(
                action="purge",
                resource_type="portfolio",
                resource_id=portfolio_id,
                user_id=aggregate.user_id,
                changes=removed,
            )
            return removed

        removed = self._transaction(work, "purge_portfolio")
        logger.info(
            f"Purged portfolio {portfolio_id}: {removed['positions']} position(s), "
            f"{removed['orders']} order(s)"
        )
        return removed

    def set_manual_totals(
        self, portfolio_id: int, total_value, total_invested, total_gain
    ) -> PortfolioAggregate:
        """Operator override: switch to MANUAL and store the given totals"""

        def work(store: PortfolioStore) -> PortfolioAggregate:
            aggregate = store.get_portfolio(portfolio_id, for_update=True)
            before = aggregate.totals.to_dict()
            aggregate.set_manual_totals(total_value, total_invested, total_gain)
            saved = store.save_portfolio(aggregate)
            store.record_audit(
                action="manual_totals",
                resource_type="portfolio",
                resource_id=portfolio_id,
                user_id=aggregate.user_id,
                changes={"before": before, "after": saved.totals.rounded().to_dict()},
            )
            return saved

        aggregate = self._transaction(work, "set_manual_totals")
        logger.info(f"Portfolio {portfolio_id} switched to MANUAL totals")
        return aggregate

    def switch_to_auto(self, portfolio_id: int) -> PortfolioAggregate:
        """Return to AUTO mode; totals are recalculated in the same transaction"""

        def work(store: PortfolioStore) -> PortfolioAggregate:
            aggregate = store.get_portfolio(portfolio_id, for_update=True)
            aggregate.switch_to_auto(store.load_positions(portfolio_id))
            saved = store.save_portfolio(aggregate)
            store.record_audit(
                action="switch_to_auto",
                resource_type="portfolio",
                resource_id=portfolio_id,
                user_id=aggregate.user_id,
                changes=saved.totals.rounded().to_dict(),
            )
            return saved

        aggregate = self._transaction(work, "switch_to_auto")
        logger.info(f"Portfolio {portfolio_id} switched to AUTO and recalculated")
        return aggregate

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def submit_order(
        self,
        user_id: int,
        portfolio_id: int,
        investment_type,
        name: str,
        quantity,
        price,
        symbol: Optional[str] = None,
        maturity_date: Optional[date] = None,
        interest_rate=None,
    ) -> InvestmentOrder:
        """Create a PENDING order awaiting admin approval"""

        def work(store: PortfolioStore) -> InvestmentOrder:
            portfolio = store.get_portfolio(portfolio_id)
            if portfolio.user_id != user_id:
                raise NotFound(f"Portfolio {portfolio_id} not found for user {user_id}")
            order = InvestmentOrder(
                user_id=user_id,
                portfolio_id=portfolio_id,
                investment_type=InvestmentType(investment_type),
                name=name,
                symbol=symbol.upper() if symbol else None,
                quantity=quantity,
                price=self._money(price, portfolio.currency),
                maturity_date=maturity_date,
                interest_rate=interest_rate,
            )
            # Order currency must match the portfolio's
            Money.zero(portfolio.currency) + order.price
            return store.save_order(order)

        order = self._transaction(work, "submit_order")
        logger.info(f"Order {order.id} submitted by user {user_id} into portfolio {portfolio_id}")
        return order

    def get_order(self, order_id: int) -> InvestmentOrder:
        return self._read(lambda store: store.get_order(order_id))

    def list_orders(self, status=None, portfolio_id: Optional[int] = None) -> List[InvestmentOrder]:
        return self._read(lambda store: store.list_orders(status, portfolio_id))

    def approve_order(self, order_id: int) -> InvestmentPosition:
        """
        Approve a PENDING order

        In one transaction: compare-and-swap the order to ACTIVE, create
        its position, link the two and update the portfolio.

        Raises:
            InvalidOrderState: the order is not (or no longer) PENDING
        """

        def work(store: PortfolioStore) -> InvestmentPosition:
            order = store.get_order(order_id)
            position = OrderLifecycle.approve(order)
            store.transition_order(order, expected=OrderStatus.PENDING)

            position = store.save_position(position)
            order.position_id = position.id
            store.save_order(order)

            self._apply_change(
                store,
                order.portfolio_id,
                PositionChange.between(ChangeKind.CREATED, None, position, f"order {order_id} approved"),
            )
            store.record_audit(
                action="approve",
                resource_type="order",
                resource_id=order_id,
                user_id=order.user_id,
                changes={"position_id": position.id},
            )
            return position

        position = self._transaction(work, "approve_order")
        logger.info(f"Order {order_id} approved, position {position.id} created")
        return position

    def reject_order(self, order_id: int, reason: Optional[str] = None) -> InvestmentOrder:
        """Cancel a PENDING order; no position is created or touched"""

        def work(store: PortfolioStore) -> InvestmentOrder:
            order = store.get_order(order_id)
            OrderLifecycle.reject(order, reason)
            store.transition_order(order, expected=OrderStatus.PENDING)
            store.record_audit(
                action="reject",
                resource_type="order",
                resource_id=order_id,
                user_id=order.user_id,
                details=reason,
            )
            return order

        order = self._transaction(work, "reject_order")
        logger.info(f"Order {order_id} rejected")
        return order

    def _close_order(self, store: PortfolioStore, order_id: int, target: OrderStatus) -> InvestmentOrder:
        order = store.get_order(order_id)
        if target == OrderStatus.COMPLETED:
            OrderLifecycle.complete(order)
        else:
            OrderLifecycle.mature(order)
        store.transition_order(order, expected=OrderStatus.ACTIVE)

        if order.position_id is not None:
            before = store.get_position(order.position_id)
            after = store.save_position(before.with_changes(status=target))
            self._apply_change(
                store,
                order.portfolio_id,
                PositionChange.between(ChangeKind.STATUS, before, after, f"order {order_id} {target.value}"),
            )
        return order

    def complete_order(self, order_id: int) -> InvestmentOrder:
        """ACTIVE -> COMPLETED, carried over to the order's position"""
        order = self._transaction(
            lambda store: self._close_order(store, order_id, OrderStatus.COMPLETED),
            "complete_order",
        )
        logger.info(f"Order {order_id} completed")
        return order

    def mature_due_positions(self, as_of: Optional[date] = None) -> List[int]:
        """
        Mark every ACTIVE position whose maturity date has passed as MATURED

        Each position (and its order, if any) is handled in its own
        transaction so one failure does not block the rest of the sweep.

        Returns:
            Ids of the positions that matured
        """
        as_of = as_of or datetime.now(timezone.utc).date()
        due = self._read(lambda store: store.positions_due_for_maturity(as_of))
        matured = []

        for position in due:

            def work(store: PortfolioStore, position_id: int = position.id) -> None:
                current = store.get_position(position_id)
                if current.status != OrderStatus.ACTIVE:
                    return
                if current.order_id is not None:
                    order = store.get_order(current.order_id)
                    if order.status == OrderStatus.ACTIVE:
                        self._close_order(store, order.id, OrderStatus.MATURED)
                        return
                after = store.save_position(current.with_changes(status=OrderStatus.MATURED))
                self._apply_change(
                    store,
                    current.portfolio_id,
                    PositionChange.between(ChangeKind.STATUS, current, after, "matured"),
                )

            try:
                self._transaction(work, "mature_position")
                matured.append(position.id)
            except (PortfolioEngineError, StaleDataError) as e:
                logger.warning(f"Position {position.id} not matured: {e}")

        logger.info(f"Maturity sweep as of {as_of}: {len(matured)} position(s) matured")
        return matured

    # ------------------------------------------------------------------
    # Direct position management (admin)
    # ------------------------------------------------------------------

    def create_position(
        self,
        portfolio_id: int,
        investment_type,
        name: str,
        quantity,
        purchase_price,
        current_price=None,
        purchase_date: Optional[date] = None,
        symbol: Optional[str] = None,
        maturity_date: Optional[date] = None,
        interest_rate=None,
        status: OrderStatus = OrderStatus.ACTIVE,
    ) -> InvestmentPosition:
        if OrderStatus(status) == OrderStatus.PENDING:
            raise InvalidOrderState("Positions cannot be created as PENDING; submit an order instead")

        def work(store: PortfolioStore) -> InvestmentPosition:
            portfolio = store.get_portfolio(portfolio_id)
            purchase = self._money(purchase_price, portfolio.currency)
            current = self._money(
                purchase_price if current_price is None else current_price, portfolio.currency
            )
            Money.zero(portfolio.currency) + purchase
            position = store.save_position(
                InvestmentPosition(
                    portfolio_id=portfolio_id,
                    investment_type=InvestmentType(investment_type),
                    name=name,
                    symbol=symbol.upper() if symbol else None,
                    quantity=quantity,
                    purchase_price=purchase,
                    current_price=current,
                    purchase_date=purchase_date or datetime.now(timezone.utc).date(),
                    maturity_date=maturity_date,
                    interest_rate=interest_rate,
                    status=status,
                )
            )
            self._apply_change(
                store,
                portfolio_id,
                PositionChange.between(ChangeKind.CREATED, None, position, "created by admin"),
            )
            return position

        position = self._transaction(work, "create_position")
        logger.info(f"Position {position.id} created in portfolio {portfolio_id}")
        return position

    def _ensure_editable(self, store: PortfolioStore, position: InvestmentPosition) -> None:
        OrderLifecycle.ensure_editable(position.status)
        if position.order_id is not None:
            OrderLifecycle.ensure_editable(store.get_order(position.order_id).status)

    def update_position(self, position_id: int, **changes) -> InvestmentPosition:
        """
        Edit a position's attributes

        Raises:
            InvalidOrderState: position (or its order) is still PENDING
            ValueError: unknown field or invalid value
        """
        unknown = set(changes) - EDITABLE_POSITION_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

        def work(store: PortfolioStore) -> InvestmentPosition:
            before = store.get_position(position_id)
            self._ensure_editable(store, before)

            values = dict(changes)
            for field_name in ("purchase_price", "current_price"):
                if field_name in values:
                    values[field_name] = self._money(values[field_name], before.currency)
            if "investment_type" in values:
                values["investment_type"] = InvestmentType(values["investment_type"])
            if values.get("symbol"):
                values["symbol"] = values["symbol"].upper()

            after = store.save_position(before.with_changes(**values))
            self._apply_change(
                store,
                after.portfolio_id,
                PositionChange.between(ChangeKind.UPDATED, before, after, ", ".join(sorted(changes))),
            )
            return after

        position = self._transaction(work, "update_position")
        logger.info(f"Position {position_id} updated: {', '.join(sorted(changes))}")
        return position

    def remove_position(self, position_id: int) -> None:
        """Delete a position and recalculate its portfolio when AUTO"""

        def work(store: PortfolioStore) -> None:
            before = store.get_position(position_id)
            self._ensure_editable(store, before)
            store.delete_position(position_id)
            self._apply_change(
                store,
                before.portfolio_id,
                PositionChange.between(ChangeKind.REMOVED, before, None, "removed"),
            )

        self._transaction(work, "remove_position")
        logger.info(f"Position {position_id} removed")

    # ------------------------------------------------------------------
    # Trading
    # ------------------------------------------------------------------

    def _latest_catalog_price(self, item: CatalogItem) -> Money:
        quote = self.pricing.current_price(item.symbol, item.current_price.currency)
        return quote if quote is not None else item.current_price

    def _latest_position_price(self, position: InvestmentPosition) -> Money:
        if position.symbol:
            quote = self.pricing.current_price(position.symbol, position.currency)
            if quote is not None:
                return quote
        return position.current_price

    def preview_buy(self, item_id: int, quantity) -> PricingResult:
        """Buy figures for a catalog item; performs no mutation"""
        item = self._read(lambda store: store.get_catalog_item(item_id))
        return TradePricingEngine.preview_buy(
            self._latest_catalog_price(item), quantity, self.pricing.fee_rate()
        )

    def preview_sell(self, position_id: int, quantity) -> PricingResult:
        """Sell figures for part or all of a position; performs no mutation"""
        position = self._read(lambda store: store.get_position(position_id))
        return TradePricingEngine.preview_sell(
            position, quantity, self.pricing.fee_rate(), self._latest_position_price(position)
        )

    def buy(self, portfolio_id: int, item_id: int, quantity) -> tuple[InvestmentPosition, PricingResult]:
        """
        Execute a purchase

        The formula is re-run here against the latest price and fee rate;
        a preview the client saw earlier is never reused.
        """

        def work(store: PortfolioStore):
            portfolio = store.get_portfolio(portfolio_id)
            item = store.get_catalog_item(item_id)
            if not item.is_available:
                raise NotFound(f"Marketplace item {item_id} is not available")

            price = self._latest_catalog_price(item)
            # Catalog currency must match the portfolio's
            Money.zero(portfolio.currency) + price
            pricing = TradePricingEngine.preview_buy(price, quantity, self.pricing.fee_rate())

            position = store.save_position(
                InvestmentPosition(
                    portfolio_id=portfolio_id,
                    investment_type=item.investment_type,
                    name=item.name,
                    symbol=item.symbol,
                    quantity=pricing.quantity,
                    purchase_price=price,
                    current_price=price,
                    purchase_date=datetime.now(timezone.utc).date(),
                    status=OrderStatus.ACTIVE,
                )
            )
            store.record_trade(portfolio_id, position.id, portfolio.user_id, pricing)
            self._apply_change(
                store,
                portfolio_id,
                PositionChange.between(ChangeKind.CREATED, None, position, f"bought {item.symbol}"),
            )
            return position, pricing

        position, pricing = self._transaction(work, "buy")
        logger.info(
            f"Bought {pricing.quantity} x {position.symbol} into portfolio {portfolio_id}: "
            f"total {pricing.total_amount}"
        )
        return position, pricing

    def sell(self, position_id: int, quantity) -> tuple[InvestmentPosition, PricingResult]:
        """
        Execute a sale out of a position

        The position keeps its row; selling every unit leaves quantity 0
        and status COMPLETED.
        """

        def work(store: PortfolioStore):
            before = store.get_position(position_id)
            portfolio = store.get_portfolio(before.portfolio_id)
            price = self._latest_position_price(before)
            pricing = TradePricingEngine.preview_sell(
                before, quantity, self.pricing.fee_rate(), price
            )

            remaining = before.quantity - pricing.quantity
            status = OrderStatus.COMPLETED if remaining == 0 else before.status
            after = store.save_position(
                before.with_changes(quantity=remaining, current_price=price, status=status)
            )
            store.record_trade(before.portfolio_id, position_id, portfolio.user_id, pricing)
            self._apply_change(
                store,
                before.portfolio_id,
                PositionChange.between(ChangeKind.REDUCED, before, after, f"sold {pricing.quantity}"),
            )
            return after, pricing

        position, pricing = self._transaction(work, "sell")
        logger.info(
            f"Sold {pricing.quantity} of position {position_id}: net {pricing.net_proceeds}, "
            f"gain/loss {pricing.gain_loss}"
        )
        return position, pricing

    def list_trades(self, portfolio_id: int) -> List[dict]:
        """Executed buys and sells of a portfolio, oldest first"""

        def work(store: PortfolioStore) -> List[dict]:
            store.get_portfolio(portfolio_id)
            return [
                {
                    "id": row.id,
                    "position_id": row.position_id,
                    "side": row.side,
                    "quantity": str(row.quantity),
                    "unit_price": str(row.unit_price),
                    "currency": row.currency,
                    "gross_amount": str(row.gross_amount),
                    "fee": str(row.fee),
                    "net_amount": str(row.net_amount),
                    "gain_loss": str(row.gain_loss) if row.gain_loss is not None else None,
                    "executed_at": row.created_at.isoformat() if row.created_at else None,
                }
                for row in store.list_trades(portfolio_id)
            ]

        return self._read(work)

    # ------------------------------------------------------------------
    # Catalog and prices
    # ------------------------------------------------------------------

    def upsert_catalog_item(
        self,
        symbol: str,
        name: str,
        current_price,
        currency: Optional[str] = None,
        investment_type=InvestmentType.STOCK,
        is_available: bool = True,
    ) -> CatalogItem:
        item = CatalogItem(
            symbol=symbol,
            name=name,
            current_price=self._money(current_price, currency or self.default_currency),
            investment_type=investment_type,
            is_available=is_available,
        )
        return self._transaction(lambda store: store.save_catalog_item(item), "upsert_catalog_item")

    def list_catalog(self, available_only: bool = True) -> List[CatalogItem]:
        return self._read(lambda store: store.list_catalog_items(available_only))

    def refresh_prices(self, feed: Optional[PricingProvider] = None) -> Dict[str, Decimal]:
        """
        Pull quotes for every catalog symbol and reprice matching positions

        Catalog prices are written first in their own transaction. Each
        affected portfolio is then repriced in a separate transaction that
        updates its positions and, when AUTO, its totals together.

        Returns:
            {symbol: new price} for the symbols that received a quote
        """
        feed = feed or self.pricing
        items = self._read(lambda store: store.list_catalog_items())
        currencies = {item.symbol: item.current_price.currency for item in items}
        quotes = feed.current_prices(currencies.keys(), currencies)

        if not quotes:
            logger.info("Price refresh: no quotes received")
            return {}

        def update_catalog(store: PortfolioStore) -> None:
            for item in items:
                if item.symbol in quotes:
                    store.save_catalog_item(
                        CatalogItem(
                            id=item.id,
                            symbol=item.symbol,
                            name=item.name,
                            investment_type=item.investment_type,
                            current_price=quotes[item.symbol],
                            is_available=item.is_available,
                        )
                    )

        self._transaction(update_catalog, "refresh_catalog_prices")

        by_portfolio: Dict[int, List[int]] = {}
        for symbol in quotes:
            for position in self._read(lambda store, s=symbol: store.positions_for_symbol(s)):
                by_portfolio.setdefault(position.portfolio_id, []).append(position.id)

        for portfolio_id, position_ids in by_portfolio.items():

            def reprice(store: PortfolioStore, ids=position_ids, pid=portfolio_id) -> None:
                for position_id in ids:
                    before = store.get_position(position_id)
                    quote = quotes.get(before.symbol)
                    if quote is None or before.is_cancelled or quote.currency != before.currency:
                        continue
                    after = store.save_position(before.with_changes(current_price=quote))
                    self._apply_change(
                        store,
                        pid,
                        PositionChange.between(ChangeKind.REPRICED, before, after, "price feed"),
                    )

            self._transaction(reprice, "reprice_portfolio")

        logger.info(
            f"Price refresh: {len(quotes)} quote(s), {len(by_portfolio)} portfolio(s) repriced"
        )
        return {symbol: price.amount for symbol, price in quotes.items()}
