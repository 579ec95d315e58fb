"""
portfolio_engine/api/common.py - Request helpers shared by the blueprints
"""

from datetime import date
from typing import Any, Dict, Iterable, Optional

from flask import current_app, request

from portfolio_engine.api.errors import BadRequest
from portfolio_engine.core.investment_service import InvestmentService
from portfolio_engine.db import get_db_manager


def get_service() -> InvestmentService:
    """Service bound to the global database and the app's pricing provider"""
    return InvestmentService(get_db_manager(), current_app.extensions["pricing_provider"])


def json_body(required: Iterable[str] = ()) -> Dict[str, Any]:
    """Request JSON object, checking that `required` keys are present"""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object")

    missing = [key for key in required if data.get(key) in (None, "")]
    if missing:
        raise BadRequest(f"Missing required field(s): {', '.join(missing)}")
    return data


def parse_date(value: Optional[str], field_name: str) -> Optional[date]:
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise BadRequest(f"{field_name} must be an ISO date (YYYY-MM-DD), got {value!r}") from None


def position_to_dict(position) -> dict:
    """Position attributes plus derived figures, Decimals as strings"""
    return {
        "id": position.id,
        "portfolio_id": position.portfolio_id,
        "order_id": position.order_id,
        "type": position.investment_type.value,
        "name": position.name,
        "symbol": position.symbol,
        "quantity": str(position.quantity),
        "purchase_price": str(position.purchase_price.amount),
        "current_price": str(position.current_price.amount),
        "currency": position.currency,
        "purchase_date": position.purchase_date.isoformat(),
        "maturity_date": position.maturity_date.isoformat() if position.maturity_date else None,
        "interest_rate": str(position.interest_rate) if position.interest_rate is not None else None,
        "status": position.status.value,
        "total_value": str(position.total_value.rounded().amount),
        "total_cost": str(position.total_cost.rounded().amount),
        "total_gain": str(position.total_gain.rounded().amount),
        "gain_percentage": str(round(position.gain_percentage, 6)),
    }
