"""
CLI commands for the portfolio valuation engine

Provides operator commands for:
- Database setup
- Portfolio creation, manual totals and deletion
- Order approval and rejection
- Buy/sell previews
- Price refresh and maturity sweeps
"""

import sys
import logging
import click
from datetime import date
from functools import wraps
from typing import Callable, Optional

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _service(ctx: click.Context):
    """InvestmentService over the database selected by --database-url"""
    from portfolio_engine.core.investment_service import InvestmentService
    from portfolio_engine.core.price_feed import build_pricing_provider
    from portfolio_engine.db import DatabaseManager

    if "service" not in ctx.obj:
        db_manager = DatabaseManager(ctx.obj.get("database_url"))
        db_manager.init_db()
        ctx.obj["service"] = InvestmentService(db_manager, build_pricing_provider())
    return ctx.obj["service"]


def handle_errors(description: str) -> Callable:
    """Print `Error: <message>` to stderr and exit 1 on failure"""

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            from portfolio_engine.core.errors import PortfolioEngineError

            try:
                return func(*args, **kwargs)
            except click.exceptions.Abort:
                raise
            except (PortfolioEngineError, ValueError) as e:
                click.echo(f"Error: {e}", err=True)
                logger.warning(f"{description} failed: {e}")
                sys.exit(1)
            except Exception as e:
                click.echo(f"Error: {e}", err=True)
                logger.exception(f"{description} failed")
                sys.exit(1)

        return wrapper

    return decorator


def _echo_totals(portfolio) -> None:
    totals = portfolio.totals.rounded()
    click.echo(f"Portfolio {portfolio.id}: {portfolio.name} [{portfolio.mode.value}]")
    click.echo(f"  Total value:     {totals.total_value}")
    click.echo(f"  Total invested:  {totals.total_invested}")
    click.echo(f"  Total gain:      {totals.total_gain}")
    click.echo(f"  Gain percentage: {totals.gain_percentage}%")


@click.group()
@click.option(
    "--database-url",
    envvar="DATABASE_URL",
    default=None,
    help="SQLAlchemy database URL (defaults to DATABASE_URL / DATABASE_PATH)",
)
@click.pass_context
def cli(ctx: click.Context, database_url: Optional[str]) -> None:
    """Portfolio Valuation Engine CLI - Operator commands"""
    ctx.ensure_object(dict)
    ctx.obj["database_url"] = database_url


@cli.command()
@click.pass_context
@handle_errors("Database initialization")
def init_db(ctx: click.Context) -> None:
    """
    Initialize the database schema

    Safe to run repeatedly; existing tables are left untouched.
    """
    from portfolio_engine.db import DatabaseManager

    click.echo("Initializing database...")
    db_manager = DatabaseManager(ctx.obj.get("database_url"))
    try:
        db_manager.init_db()
        info = db_manager.get_database_info()
    finally:
        db_manager.close()

    click.echo(f"✓ Tables created ({info['database_type']}): {', '.join(sorted(info['tables']))}")
    click.echo("\nDatabase initialized successfully!")


@cli.command()
@click.option("--user-id", type=int, required=True, help="Owning user id")
@click.option("--name", required=True, help="Portfolio name")
@click.option("--currency", default=None, help="ISO-4217 code (defaults to configuration)")
@click.option("--description", default=None)
@click.pass_context
@handle_errors("Portfolio creation")
def create_portfolio(
    ctx: click.Context, user_id: int, name: str, currency: Optional[str], description: Optional[str]
) -> None:
    """Create an empty AUTO-mode portfolio"""
    portfolio = _service(ctx).create_portfolio(user_id, name, currency, description)
    click.echo(f"✓ Portfolio {portfolio.id} created ({portfolio.currency})")


@cli.command()
@click.argument("portfolio_id", type=int)
@click.option("--total-value", required=True)
@click.option("--total-invested", required=True)
@click.option("--total-gain", required=True)
@click.pass_context
@handle_errors("Manual totals")
def set_manual_totals(
    ctx: click.Context, portfolio_id: int, total_value: str, total_invested: str, total_gain: str
) -> None:
    """Switch a portfolio to MANUAL mode with the given totals"""
    portfolio = _service(ctx).set_manual_totals(portfolio_id, total_value, total_invested, total_gain)
    _echo_totals(portfolio)


@cli.command()
@click.argument("portfolio_id", type=int)
@click.pass_context
@handle_errors("Switch to AUTO")
def switch_to_auto(ctx: click.Context, portfolio_id: int) -> None:
    """Return a portfolio to AUTO mode and recalculate its totals"""
    portfolio = _service(ctx).switch_to_auto(portfolio_id)
    _echo_totals(portfolio)


@cli.command()
@click.argument("order_id", type=int)
@click.pass_context
@handle_errors("Order approval")
def approve_order(ctx: click.Context, order_id: int) -> None:
    """Approve a PENDING order"""
    position = _service(ctx).approve_order(order_id)
    click.echo(f"✓ Order {order_id} approved, position {position.id} created")


@cli.command()
@click.argument("order_id", type=int)
@click.option("--reason", default=None, help="Rejection reason shown to the client")
@click.pass_context
@handle_errors("Order rejection")
def reject_order(ctx: click.Context, order_id: int, reason: Optional[str]) -> None:
    """Reject a PENDING order"""
    _service(ctx).reject_order(order_id, reason)
    click.echo(f"✓ Order {order_id} rejected")


@cli.command()
@click.option(
    "--as-of",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Sweep date (YYYY-MM-DD), defaults to today",
)
@click.pass_context
@handle_errors("Maturity sweep")
def mature_due(ctx: click.Context, as_of) -> None:
    """Mark ACTIVE positions past their maturity date as MATURED"""
    as_of_date: Optional[date] = as_of.date() if as_of else None
    matured = _service(ctx).mature_due_positions(as_of_date)
    click.echo(f"✓ {len(matured)} position(s) matured")
    for position_id in matured:
        click.echo(f"  - position {position_id}")


@cli.command()
@click.argument("item_id", type=int)
@click.argument("quantity")
@click.pass_context
@handle_errors("Buy preview")
def preview_buy(ctx: click.Context, item_id: int, quantity: str) -> None:
    """Show cost, fee and total for buying QUANTITY of catalog item ITEM_ID"""
    result = _service(ctx).preview_buy(item_id, quantity)
    click.echo(f"Quantity:     {result.quantity} @ {result.unit_price}")
    click.echo(f"Total cost:   {result.total_cost.rounded()}")
    click.echo(f"Fee:          {result.fee.rounded()} ({result.fee_rate * 100}%)")
    click.echo(f"Total amount: {result.total_amount.rounded()}")


@cli.command()
@click.argument("position_id", type=int)
@click.argument("quantity")
@click.pass_context
@handle_errors("Sell preview")
def preview_sell(ctx: click.Context, position_id: int, quantity: str) -> None:
    """Show proceeds, fee and gain for selling QUANTITY of position POSITION_ID"""
    result = _service(ctx).preview_sell(position_id, quantity)
    click.echo(f"Quantity:     {result.quantity} @ {result.unit_price}")
    click.echo(f"Proceeds:     {result.proceeds.rounded()}")
    click.echo(f"Fee:          {result.fee.rounded()} ({result.fee_rate * 100}%)")
    click.echo(f"Net proceeds: {result.net_proceeds.rounded()}")
    click.echo(f"Gain/loss:    {result.gain_loss.rounded()} ({round(result.return_percent, 4)}%)")


@cli.command()
@click.pass_context
@handle_errors("Price update")
def update_prices(ctx: click.Context) -> None:
    """Refresh catalog and position prices from the price feed"""
    prices = _service(ctx).refresh_prices()
    if not prices:
        click.echo("No prices updated.")
        return
    click.echo(f"✓ {len(prices)} price(s) updated")
    for symbol, price in sorted(prices.items()):
        click.echo(f"  {symbol}: {price}")


@cli.command()
@click.argument("portfolio_id", type=int)
@click.option(
    "--cascade",
    is_flag=True,
    help="Also delete every position and order of the portfolio",
)
@click.pass_context
@handle_errors("Portfolio deletion")
def delete_portfolio(ctx: click.Context, portfolio_id: int, cascade: bool) -> None:
    """
    Delete a portfolio

    Without --cascade only an empty portfolio can be deleted. With
    --cascade everything in it is removed after confirmation; this
    cannot be undone.
    """
    service = _service(ctx)
    if not cascade:
        service.delete_portfolio(portfolio_id)
        click.echo(f"✓ Portfolio {portfolio_id} deleted")
        return

    click.confirm(
        f"Delete portfolio {portfolio_id} with all of its positions and orders? "
        "This cannot be undone.",
        abort=True,
    )
    removed = service.purge_portfolio(portfolio_id, confirmed=True)
    click.echo(
        f"✓ Portfolio {portfolio_id} purged "
        f"({removed['positions']} position(s), {removed['orders']} order(s))"
    )


if __name__ == "__main__":
    cli()
