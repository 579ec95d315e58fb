"""
Admin API endpoints for order approval and portfolio management

Provides operator endpoints for approving and rejecting orders, overriding
portfolio totals, maintaining positions and the marketplace catalog, and
triggering price refreshes and maturity sweeps.
"""

import logging
from typing import Tuple

from flask import Blueprint, Response, jsonify, request

from portfolio_engine.api.common import get_service, json_body, parse_date, position_to_dict
from portfolio_engine.api.errors import BadRequest

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

POSITION_FIELDS = (
    "name",
    "symbol",
    "quantity",
    "purchase_price",
    "current_price",
    "interest_rate",
)


# ============================================================================
# ORDERS
# ============================================================================


@admin_bp.route("/orders", methods=["GET"])
def list_orders() -> Tuple[Response, int]:
    """List orders, optionally filtered

    Query parameters: status (PENDING, ACTIVE, ...), portfolio_id

    Returns:
    {"orders": [{"id": 1, "status": "PENDING", ...}]}
    """
    orders = get_service().list_orders(
        status=request.args.get("status"),
        portfolio_id=request.args.get("portfolio_id", type=int),
    )
    return jsonify({"orders": [order.to_dict() for order in orders]}), 200


@admin_bp.route("/orders/<int:order_id>/approve", methods=["POST"])
def approve_order(order_id: int) -> Tuple[Response, int]:
    """Approve a PENDING order and create its position

    Returns 409 if the order is no longer PENDING.
    """
    position = get_service().approve_order(order_id)
    return jsonify({"order_id": order_id, "position": position_to_dict(position)}), 200


@admin_bp.route("/orders/<int:order_id>/reject", methods=["POST"])
def reject_order(order_id: int) -> Tuple[Response, int]:
    """Reject a PENDING order

    Request body (optional):
    {"reason": "Insufficient documentation"}
    """
    order = get_service().reject_order(order_id, json_body().get("reason"))
    return jsonify(order.to_dict()), 200


@admin_bp.route("/orders/<int:order_id>/complete", methods=["POST"])
def complete_order(order_id: int) -> Tuple[Response, int]:
    """Mark an ACTIVE order (and its position) COMPLETED"""
    order = get_service().complete_order(order_id)
    return jsonify(order.to_dict()), 200


# ============================================================================
# PORTFOLIO TOTALS
# ============================================================================


@admin_bp.route("/portfolios/<int:portfolio_id>/manual-totals", methods=["PUT"])
def set_manual_totals(portfolio_id: int) -> Tuple[Response, int]:
    """Switch a portfolio to MANUAL mode with operator-supplied totals

    Request body:
    {"total_value": "1000.00", "total_invested": "900.00", "total_gain": "100.00"}

    gain_percentage is derived, never accepted from the caller.
    """
    data = json_body(required=("total_value", "total_invested", "total_gain"))
    portfolio = get_service().set_manual_totals(
        portfolio_id, data["total_value"], data["total_invested"], data["total_gain"]
    )
    return jsonify(portfolio.to_dict()), 200


@admin_bp.route("/portfolios/<int:portfolio_id>/auto", methods=["POST"])
def switch_to_auto(portfolio_id: int) -> Tuple[Response, int]:
    """Return a portfolio to AUTO mode and recalculate its totals"""
    portfolio = get_service().switch_to_auto(portfolio_id)
    return jsonify(portfolio.to_dict()), 200


@admin_bp.route("/portfolios/<int:portfolio_id>/purge", methods=["DELETE"])
def purge_portfolio(portfolio_id: int) -> Tuple[Response, int]:
    """Delete a portfolio with all of its positions and orders

    Requires ?confirm=true; without it nothing is removed.
    """
    if request.args.get("confirm", "").lower() != "true":
        raise BadRequest("Purging a portfolio requires confirm=true")
    removed = get_service().purge_portfolio(portfolio_id, confirmed=True)
    logger.warning(f"Portfolio {portfolio_id} purged via admin API")
    return jsonify({"success": True, "portfolio_id": portfolio_id, "removed": removed}), 200


# ============================================================================
# POSITIONS
# ============================================================================


@admin_bp.route("/portfolios/<int:portfolio_id>/positions", methods=["POST"])
def create_position(portfolio_id: int) -> Tuple[Response, int]:
    """Add a position directly (no order)

    Request body:
    {
        "type": "BOND",
        "name": "UK Gilt 2030",
        "quantity": "10",
        "purchase_price": "98.50",
        "current_price": "99.10",        (optional, defaults to purchase_price)
        "purchase_date": "2026-01-15",   (optional, defaults to today)
        "maturity_date": "2030-01-15",   (optional)
        "interest_rate": "4.25",         (optional)
        "symbol": "GILT30"               (optional)
    }
    """
    data = json_body(required=("type", "name", "quantity", "purchase_price"))
    position = get_service().create_position(
        portfolio_id=portfolio_id,
        investment_type=data["type"],
        name=data["name"],
        quantity=data["quantity"],
        purchase_price=data["purchase_price"],
        current_price=data.get("current_price"),
        purchase_date=parse_date(data.get("purchase_date"), "purchase_date"),
        symbol=data.get("symbol"),
        maturity_date=parse_date(data.get("maturity_date"), "maturity_date"),
        interest_rate=data.get("interest_rate"),
    )
    return jsonify(position_to_dict(position)), 201


@admin_bp.route("/positions/<int:position_id>", methods=["PATCH"])
def update_position(position_id: int) -> Tuple[Response, int]:
    """Edit a position's attributes

    Any of: type, name, symbol, quantity, purchase_price, current_price,
    purchase_date, maturity_date, interest_rate. Returns 409 while the
    position's order is still PENDING.
    """
    data = json_body()
    changes = {key: data[key] for key in POSITION_FIELDS if key in data}
    if "type" in data:
        changes["investment_type"] = data["type"]
    for key in ("purchase_date", "maturity_date"):
        if key in data:
            changes[key] = parse_date(data[key], key)
    if not changes:
        raise BadRequest("No editable fields provided")

    position = get_service().update_position(position_id, **changes)
    return jsonify(position_to_dict(position)), 200


@admin_bp.route("/positions/<int:position_id>", methods=["DELETE"])
def delete_position(position_id: int) -> Tuple[Response, int]:
    """Remove a position and recalculate its portfolio"""
    get_service().remove_position(position_id)
    return jsonify({"success": True, "message": f"Position {position_id} removed"}), 200


# ============================================================================
# MARKETPLACE AND SCHEDULED JOBS
# ============================================================================


@admin_bp.route("/marketplace", methods=["PUT"])
def upsert_catalog_item() -> Tuple[Response, int]:
    """Create or update a catalog item by symbol

    Request body:
    {"symbol": "AAPL", "name": "Apple Inc.", "current_price": "190.12",
     "currency": "USD", "type": "STOCK", "is_available": true}
    """
    data = json_body(required=("symbol", "name", "current_price"))
    item = get_service().upsert_catalog_item(
        symbol=data["symbol"],
        name=data["name"],
        current_price=data["current_price"],
        currency=data.get("currency"),
        investment_type=data.get("type", "STOCK"),
        is_available=bool(data.get("is_available", True)),
    )
    return jsonify(item.to_dict()), 200


@admin_bp.route("/update-prices", methods=["POST"])
def update_prices() -> Tuple[Response, int]:
    """Refresh catalog and position prices from the configured feed"""
    prices = get_service().refresh_prices()
    return (
        jsonify(
            {
                "success": True,
                "updated": len(prices),
                "prices": {symbol: str(price) for symbol, price in prices.items()},
            }
        ),
        200,
    )


@admin_bp.route("/maturity-sweep", methods=["POST"])
def maturity_sweep() -> Tuple[Response, int]:
    """Mature every ACTIVE position whose maturity date has passed

    Request body (optional):
    {"as_of": "2026-06-30"}    (defaults to today)
    """
    as_of = parse_date(json_body().get("as_of"), "as_of")
    matured = get_service().mature_due_positions(as_of)
    return jsonify({"success": True, "matured": matured}), 200
