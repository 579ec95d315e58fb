"""
portfolio_engine/api/routes.py - Client REST endpoints with Flasgger documentation

Domain errors raised by the service propagate to the handlers registered
in portfolio_engine.api.errors.
"""

from flask import Blueprint, request, jsonify, Response
from datetime import datetime, timezone
import logging
from typing import Tuple

from portfolio_engine.api.common import get_service, json_body, parse_date, position_to_dict
from portfolio_engine.api.errors import BadRequest
from portfolio_engine.db import get_db_manager

api_bp = Blueprint("api", __name__)
logger = logging.getLogger(__name__)


def _user_id_arg() -> int:
    user_id = request.args.get("user_id", type=int)
    if user_id is None:
        raise BadRequest("user_id query parameter is required")
    return user_id


# ============================================================================
# HEALTH ENDPOINTS
# ============================================================================


@api_bp.route("/health", methods=["GET"])
def health_check() -> Tuple[Response, int]:
    """
    Get service health status
    ---
    tags:
      - health
    responses:
      200:
        description: Service and database reachable
      503:
        description: Database unavailable
    """
    info = get_db_manager().get_database_info()
    status = "healthy" if info["is_connected"] else "unhealthy"
    return (
        jsonify(
            {
                "status": status,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "database": info["database_type"],
                "version": "1.0.0",
            }
        ),
        200 if info["is_connected"] else 503,
    )


# ============================================================================
# PORTFOLIO ENDPOINTS
# ============================================================================


@api_bp.route("/portfolios", methods=["GET"])
def list_portfolios() -> Tuple[Response, int]:
    """
    List a user's portfolios
    ---
    tags:
      - portfolios
    parameters:
      - name: user_id
        in: query
        type: integer
        required: true
    responses:
      200:
        description: Portfolios with their persisted totals
    """
    portfolios = get_service().list_portfolios(_user_id_arg())
    return jsonify({"portfolios": [p.to_dict() for p in portfolios]}), 200


@api_bp.route("/portfolios", methods=["POST"])
def create_portfolio() -> Tuple[Response, int]:
    """
    Create an empty AUTO-mode portfolio
    ---
    tags:
      - portfolios
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required: [user_id, name]
          properties:
            user_id:
              type: integer
            name:
              type: string
            currency:
              type: string
              description: ISO-4217 code, defaults to the configured currency
            description:
              type: string
    responses:
      201:
        description: Portfolio created
      400:
        description: Invalid input
    """
    data = json_body(required=("user_id", "name"))
    portfolio = get_service().create_portfolio(
        user_id=int(data["user_id"]),
        name=data["name"],
        currency=data.get("currency"),
        description=data.get("description"),
    )
    return jsonify(portfolio.to_dict()), 201


@api_bp.route("/portfolios/overview", methods=["GET"])
def portfolio_overview() -> Tuple[Response, int]:
    """
    Dashboard totals across a user's active portfolios, per currency
    ---
    tags:
      - portfolios
    parameters:
      - name: user_id
        in: query
        type: integer
        required: true
    responses:
      200:
        description: Totals keyed by currency
    """
    user_id = _user_id_arg()
    return jsonify({"user_id": user_id, "totals": get_service().portfolio_overview(user_id)}), 200


@api_bp.route("/portfolios/<int:portfolio_id>", methods=["GET"])
def get_portfolio(portfolio_id: int) -> Tuple[Response, int]:
    """
    Get one portfolio
    ---
    tags:
      - portfolios
    parameters:
      - name: portfolio_id
        in: path
        type: integer
        required: true
    responses:
      200:
        description: Portfolio with totals, mode and currency
      404:
        description: Unknown portfolio
    """
    return jsonify(get_service().get_portfolio(portfolio_id).to_dict()), 200


@api_bp.route("/portfolios/<int:portfolio_id>", methods=["PATCH"])
def update_portfolio(portfolio_id: int) -> Tuple[Response, int]:
    """
    Rename, describe or (de)activate a portfolio
    ---
    tags:
      - portfolios
    parameters:
      - name: portfolio_id
        in: path
        type: integer
        required: true
      - name: body
        in: body
        schema:
          type: object
          properties:
            name:
              type: string
            description:
              type: string
            is_active:
              type: boolean
    responses:
      200:
        description: Updated portfolio
    """
    data = json_body()
    portfolio = get_service().update_portfolio_details(
        portfolio_id,
        name=data.get("name"),
        description=data.get("description"),
        is_active=data.get("is_active"),
    )
    return jsonify(portfolio.to_dict()), 200


@api_bp.route("/portfolios/<int:portfolio_id>", methods=["DELETE"])
def delete_portfolio(portfolio_id: int) -> Tuple[Response, int]:
    """
    Delete an empty portfolio
    ---
    tags:
      - portfolios
    parameters:
      - name: portfolio_id
        in: path
        type: integer
        required: true
    responses:
      200:
        description: Portfolio deleted
      409:
        description: Portfolio still holds positions or pending orders
    """
    get_service().delete_portfolio(portfolio_id)
    return jsonify({"success": True, "message": f"Portfolio {portfolio_id} deleted"}), 200


@api_bp.route("/portfolios/<int:portfolio_id>/positions", methods=["GET"])
def list_positions(portfolio_id: int) -> Tuple[Response, int]:
    """
    List a portfolio's positions with derived values
    ---
    tags:
      - portfolios
    parameters:
      - name: portfolio_id
        in: path
        type: integer
        required: true
    responses:
      200:
        description: Positions
    """
    positions = get_service().list_positions(portfolio_id)
    return jsonify({"positions": [position_to_dict(p) for p in positions]}), 200


@api_bp.route("/portfolios/<int:portfolio_id>/trades", methods=["GET"])
def list_trades(portfolio_id: int) -> Tuple[Response, int]:
    """
    Executed buys and sells of a portfolio
    ---
    tags:
      - marketplace
    parameters:
      - name: portfolio_id
        in: path
        type: integer
        required: true
    responses:
      200:
        description: Trade ledger, oldest first
    """
    return jsonify({"trades": get_service().list_trades(portfolio_id)}), 200


# ============================================================================
# ORDER ENDPOINTS
# ============================================================================


@api_bp.route("/portfolios/<int:portfolio_id>/orders", methods=["POST"])
def submit_order(portfolio_id: int) -> Tuple[Response, int]:
    """
    Submit an investment order for admin approval
    ---
    tags:
      - orders
    parameters:
      - name: portfolio_id
        in: path
        type: integer
        required: true
      - name: body
        in: body
        required: true
        schema:
          type: object
          required: [user_id, type, name, quantity, price]
          properties:
            user_id:
              type: integer
            type:
              type: string
              enum: [STOCK, BOND, MUTUAL_FUND, SAVINGS, FIXED_DEPOSIT, TERM_DEPOSIT, IPO, OTHER]
            name:
              type: string
            symbol:
              type: string
            quantity:
              type: string
            price:
              type: string
            maturity_date:
              type: string
              format: date
            interest_rate:
              type: string
    responses:
      201:
        description: Order created in PENDING status
      400:
        description: Invalid quantity, price or currency
    """
    data = json_body(required=("user_id", "type", "name", "quantity", "price"))
    order = get_service().submit_order(
        user_id=int(data["user_id"]),
        portfolio_id=portfolio_id,
        investment_type=data["type"],
        name=data["name"],
        quantity=data["quantity"],
        price=data["price"],
        symbol=data.get("symbol"),
        maturity_date=parse_date(data.get("maturity_date"), "maturity_date"),
        interest_rate=data.get("interest_rate"),
    )
    return jsonify(order.to_dict()), 201


@api_bp.route("/orders/<int:order_id>", methods=["GET"])
def get_order(order_id: int) -> Tuple[Response, int]:
    """
    Get one order and its status
    ---
    tags:
      - orders
    parameters:
      - name: order_id
        in: path
        type: integer
        required: true
    responses:
      200:
        description: Order
      404:
        description: Unknown order
    """
    return jsonify(get_service().get_order(order_id).to_dict()), 200


# ============================================================================
# MARKETPLACE ENDPOINTS
# ============================================================================


@api_bp.route("/marketplace", methods=["GET"])
def list_catalog() -> Tuple[Response, int]:
    """
    Buyable catalog items
    ---
    tags:
      - marketplace
    responses:
      200:
        description: Available items with their latest stored price
    """
    items = get_service().list_catalog(available_only=True)
    return jsonify({"items": [item.to_dict() for item in items]}), 200


@api_bp.route("/marketplace/buy/preview", methods=["POST"])
def preview_buy() -> Tuple[Response, int]:
    """
    Price a prospective purchase without executing it
    ---
    tags:
      - marketplace
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required: [item_id, quantity]
          properties:
            item_id:
              type: integer
            quantity:
              type: string
    responses:
      200:
        description: total_cost, fee and total_amount
      400:
        description: Quantity not greater than zero
    """
    data = json_body(required=("item_id", "quantity"))
    result = get_service().preview_buy(int(data["item_id"]), data["quantity"])
    return jsonify(result.to_dict()), 200


@api_bp.route("/marketplace/buy", methods=["POST"])
def buy() -> Tuple[Response, int]:
    """
    Buy a catalog item into a portfolio
    ---
    tags:
      - marketplace
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required: [portfolio_id, item_id, quantity]
          properties:
            portfolio_id:
              type: integer
            item_id:
              type: integer
            quantity:
              type: string
    responses:
      201:
        description: Position created; figures recomputed at execution time
    """
    data = json_body(required=("portfolio_id", "item_id", "quantity"))
    position, pricing = get_service().buy(
        int(data["portfolio_id"]), int(data["item_id"]), data["quantity"]
    )
    return jsonify({"position": position_to_dict(position), "trade": pricing.to_dict()}), 201


@api_bp.route("/marketplace/sell/preview", methods=["POST"])
def preview_sell() -> Tuple[Response, int]:
    """
    Price a prospective sale out of a position
    ---
    tags:
      - marketplace
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required: [position_id, quantity]
          properties:
            position_id:
              type: integer
            quantity:
              type: string
    responses:
      200:
        description: proceeds, fee, net_proceeds, gain_loss and return_percent
      422:
        description: Quantity exceeds the units held
    """
    data = json_body(required=("position_id", "quantity"))
    result = get_service().preview_sell(int(data["position_id"]), data["quantity"])
    return jsonify(result.to_dict()), 200


@api_bp.route("/marketplace/sell", methods=["POST"])
def sell() -> Tuple[Response, int]:
    """
    Sell part or all of a position
    ---
    tags:
      - marketplace
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required: [position_id, quantity]
          properties:
            position_id:
              type: integer
            quantity:
              type: string
    responses:
      200:
        description: Updated position and executed figures
      422:
        description: Quantity exceeds the units held
    """
    data = json_body(required=("position_id", "quantity"))
    position, pricing = get_service().sell(int(data["position_id"]), data["quantity"])
    return jsonify({"position": position_to_dict(position), "trade": pricing.to_dict()}), 200
