"""
tests/__init__.py
Test package initialization with fixtures and sample data
"""

import os
import tempfile
import unittest
from datetime import date
from decimal import Decimal
from typing import Dict, Optional


class BaseTestCase(unittest.TestCase):
    """Base test case backed by a temporary SQLite file

    Provides a fresh database, an InvestmentService with a static price
    provider (1% fee, no network) and a Flask app wired to both.
    """

    FEE_RATE = "0.01"

    def setUp(self):
        """Set up test fixtures"""
        self.test_db = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
        self.test_db.close()
        self.test_db_path = self.test_db.name
        self.db_url = f"sqlite:///{self.test_db_path}"

        # Set test environment
        os.environ["FLASK_ENV"] = "testing"
        os.environ["DATABASE_PATH"] = self.test_db_path

        from portfolio_engine.db import init_db_manager
        from portfolio_engine.core.investment_service import InvestmentService
        from portfolio_engine.core.price_feed import StaticPricingProvider

        self.db_manager = init_db_manager(self.db_url)
        self.pricing = StaticPricingProvider(fee_rate=self.FEE_RATE)
        self.service = InvestmentService(
            self.db_manager, self.pricing, default_currency="GBP", max_retries=3
        )

        from portfolio_engine import create_app

        self.app = create_app(pricing_provider=self.pricing)
        self.app.config["TESTING"] = True

    def tearDown(self):
        """Clean up test fixtures"""
        from portfolio_engine.db import reset_db_manager

        reset_db_manager()

        if self.test_db_path and os.path.exists(self.test_db_path):
            try:
                os.unlink(self.test_db_path)
            except OSError:
                pass

    # ------------------------------------------------------------------
    # Sample data
    # ------------------------------------------------------------------

    def create_portfolio(self, user_id: int = 1, name: str = "Growth", currency: str = "GBP"):
        return self.service.create_portfolio(user_id, name, currency)

    def create_position(
        self,
        portfolio_id: int,
        quantity="10",
        purchase_price="100",
        current_price: Optional[str] = None,
        symbol: Optional[str] = "AAPL",
        maturity_date: Optional[date] = None,
        investment_type: str = "STOCK",
    ):
        return self.service.create_position(
            portfolio_id=portfolio_id,
            investment_type=investment_type,
            name=f"{symbol or 'Holding'} position",
            quantity=quantity,
            purchase_price=purchase_price,
            current_price=current_price,
            symbol=symbol,
            maturity_date=maturity_date,
        )

    def submit_order(self, portfolio, quantity="5", price="20", symbol="VWRL", **kwargs):
        return self.service.submit_order(
            user_id=portfolio.user_id,
            portfolio_id=portfolio.id,
            investment_type=kwargs.pop("investment_type", "MUTUAL_FUND"),
            name=kwargs.pop("name", "Vanguard FTSE All-World"),
            quantity=quantity,
            price=price,
            symbol=symbol,
            **kwargs,
        )

    def create_catalog_item(self, symbol: str = "AAPL", price="150.00", currency: str = "GBP"):
        return self.service.upsert_catalog_item(
            symbol=symbol, name=f"{symbol} Inc.", current_price=price, currency=currency
        )


class SampleDataGenerator:
    """Sample values used across domain tests"""

    @staticmethod
    def quote_table() -> Dict[str, Decimal]:
        return {
            "AAPL": Decimal("190.12"),
            "MSFT": Decimal("410.50"),
            "VWRL": Decimal("105.30"),
        }
