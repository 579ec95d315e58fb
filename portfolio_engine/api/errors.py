"""
portfolio_engine/api/errors.py - Error kinds to HTTP responses

Domain errors are raised by the service layer; routes never catch them.
This module turns them into JSON bodies of the form
{"error": <kind>, "message": <text>} with a status per kind.
"""

import logging
from typing import Tuple

from flask import Flask, Response, jsonify
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.exceptions import HTTPException

from portfolio_engine.core.errors import (
    CurrencyMismatch,
    InsufficientHolding,
    InvalidAdjustment,
    InvalidOrderState,
    InvalidQuantity,
    NotFound,
    PortfolioEngineError,
    PortfolioNotEmpty,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = {
    InvalidQuantity: 400,
    InvalidAdjustment: 400,
    CurrencyMismatch: 400,
    NotFound: 404,
    InvalidOrderState: 409,
    PortfolioNotEmpty: 409,
    InsufficientHolding: 422,
}


class BadRequest(PortfolioEngineError):
    """Malformed or missing request payload"""

    code = "BadRequest"


STATUS_BY_ERROR[BadRequest] = 400


def status_for(error: PortfolioEngineError) -> int:
    for error_type, status in STATUS_BY_ERROR.items():
        if isinstance(error, error_type):
            return status
    return 400


def register_error_handlers(app: Flask) -> None:
    """Attach JSON error handlers to the app"""

    @app.errorhandler(PortfolioEngineError)
    def handle_domain_error(error: PortfolioEngineError) -> Tuple[Response, int]:
        status = status_for(error)
        logger.info(f"{error.code} ({status}): {error.message}")
        return jsonify(error.to_dict()), status

    @app.errorhandler(StaleDataError)
    def handle_stale(error: StaleDataError) -> Tuple[Response, int]:
        logger.warning(f"Concurrent update not resolved by retries: {error}")
        return (
            jsonify({"error": "ConcurrentUpdate", "message": "Portfolio changed concurrently, try again"}),
            409,
        )

    @app.errorhandler(ValueError)
    def handle_value_error(error: ValueError) -> Tuple[Response, int]:
        return jsonify({"error": "ValidationError", "message": str(error)}), 400

    @app.errorhandler(HTTPException)
    def handle_http(error: HTTPException) -> Tuple[Response, int]:
        return jsonify({"error": error.name, "message": error.description}), error.code or 500

    @app.errorhandler(Exception)
    def handle_unexpected(error: Exception) -> Tuple[Response, int]:
        logger.exception(f"Unhandled error: {error}")
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500
