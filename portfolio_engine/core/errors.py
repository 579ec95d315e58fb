"""Error taxonomy for the valuation engine.

Every kind is a terminal validation/state error: the caller has to change
the request, retrying the same call will fail the same way.
"""


class PortfolioEngineError(Exception):
    """Base exception for all valuation engine errors."""

    code = "PortfolioEngineError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class CurrencyMismatch(PortfolioEngineError, ValueError):
    """Arithmetic attempted between two different currencies."""

    code = "CurrencyMismatch"

    def __init__(self, left: str, right: str):
        super().__init__(f"Currency mismatch: {left} vs {right}")
        self.left = left
        self.right = right


class InvalidAdjustment(PortfolioEngineError):
    """Manual totals that cannot be stored (non-finite or negative value)."""

    code = "InvalidAdjustment"


class InvalidOrderState(PortfolioEngineError):
    """Transition not allowed from the order's (or position's) current status."""

    code = "InvalidOrderState"


class InvalidQuantity(PortfolioEngineError):
    """Trade quantity is zero or negative."""

    code = "InvalidQuantity"


class InsufficientHolding(PortfolioEngineError):
    """Sell quantity exceeds the units held."""

    code = "InsufficientHolding"

    def __init__(self, requested, held):
        super().__init__(f"Cannot sell {requested} units, only {held} held")
        self.requested = requested
        self.held = held


class PortfolioNotEmpty(PortfolioEngineError):
    """Portfolio still holds positions or pending orders."""

    code = "PortfolioNotEmpty"


class NotFound(PortfolioEngineError):
    """Referenced portfolio, order, position or catalog item does not exist."""

    code = "NotFound"
