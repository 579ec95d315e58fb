"""
Tests for portfolio_engine/core/price_feed.py

Tests cover:
- Fee rate from the provider or configuration
- Static quote tables
- Yahoo Finance quotes (mocked), caching and failure handling
- Provider selection from configuration
"""

import pytest
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pandas as pd

from portfolio_engine.core.money import Money
from portfolio_engine.core.price_feed import (
    PricingProvider,
    StaticPricingProvider,
    YahooPricingProvider,
    build_pricing_provider,
)


def history_frame(closes) -> pd.DataFrame:
    index = pd.date_range("2026-01-05", periods=len(closes), freq="D")
    return pd.DataFrame({"Open": closes, "Close": closes, "Volume": [1000] * len(closes)}, index=index)


class TestPricingProvider:
    """Tests for the base and static providers"""

    def test_explicit_fee_rate(self) -> None:
        """Test a fee rate given to the constructor"""
        assert PricingProvider("0.005").fee_rate() == Decimal("0.005")

    def test_fee_rate_from_config(self, monkeypatch) -> None:
        """Test that the configured fee rate is used by default"""
        monkeypatch.setenv("TRADING_FEE_RATE", "0.02")
        assert PricingProvider().fee_rate() == Decimal("0.02")

    def test_base_has_no_quotes(self) -> None:
        """Test that the base provider never quotes"""
        assert PricingProvider("0").current_price("AAPL", "GBP") is None

    def test_static_quotes(self) -> None:
        """Test lookup in a fixed quote table"""
        provider = StaticPricingProvider("0.01", {"aapl": "190.12"})
        provider.set_price("msft", Decimal("410.50"))

        assert provider.current_price("AAPL", "GBP") == Money("190.12", "GBP")
        assert provider.current_prices(
            ["AAPL", "MSFT", "VWRL"], {"AAPL": "GBP", "MSFT": "USD", "VWRL": "GBP"}
        ) == {"AAPL": Money("190.12", "GBP"), "MSFT": Money("410.50", "USD")}

    def test_static_quote_beyond_price_scale(self) -> None:
        """Test that quotes the database could not store are refused"""
        with pytest.raises(ValueError):
            StaticPricingProvider("0.01", {"ACME": "1.23456"})
        provider = StaticPricingProvider("0.01")
        with pytest.raises(ValueError):
            provider.set_price("ACME", "450.00001")
        assert provider.current_price("ACME", "GBP") is None


class TestYahooPricingProvider:
    """Tests for live quotes with yfinance mocked out"""

    @pytest.fixture
    def provider(self) -> YahooPricingProvider:
        return YahooPricingProvider(fee_rate="0.01", cache_seconds=60, min_request_interval=0)

    @patch("portfolio_engine.core.price_feed.yf.Ticker")
    def test_last_close_used(self, mock_ticker, provider) -> None:
        """Test that the latest close becomes the quote"""
        mock_ticker.return_value.history.return_value = history_frame([101.5, 102.25])

        price = provider.current_price("aapl", "USD")

        assert price == Money("102.25", "USD")
        mock_ticker.assert_called_once_with("AAPL")

    @patch("portfolio_engine.core.price_feed.yf.Ticker")
    def test_quote_cached(self, mock_ticker, provider) -> None:
        """Test that a second request within the cache window skips the network"""
        mock_ticker.return_value.history.return_value = history_frame([50.0])

        provider.current_price("VWRL", "GBP")
        provider.current_price("VWRL", "GBP")

        assert mock_ticker.call_count == 1

    @patch("portfolio_engine.core.price_feed.yf.Ticker")
    def test_empty_history(self, mock_ticker, provider) -> None:
        """Test that no data yields no quote"""
        mock_ticker.return_value.history.return_value = pd.DataFrame()
        assert provider.current_price("NOPE", "GBP") is None

    @patch("portfolio_engine.core.price_feed.yf.Ticker")
    def test_nan_close(self, mock_ticker, provider) -> None:
        """Test that a missing close yields no quote"""
        mock_ticker.return_value.history.return_value = history_frame([float("nan")])
        assert provider.current_price("HALT", "GBP") is None

    @patch("portfolio_engine.core.price_feed.yf.Ticker")
    def test_download_error(self, mock_ticker, provider) -> None:
        """Test that network failures are logged, not raised"""
        mock_ticker.side_effect = ConnectionError("offline")
        assert provider.current_price("AAPL", "GBP") is None

    @patch("portfolio_engine.core.price_feed.yf.Ticker")
    def test_current_prices_skips_failures(self, mock_ticker, provider) -> None:
        """Test that one bad symbol does not block the others"""
        good = MagicMock()
        good.history.return_value = history_frame([10.0])
        bad = MagicMock()
        bad.history.return_value = pd.DataFrame()
        mock_ticker.side_effect = lambda symbol: good if symbol == "GOOD" else bad

        quotes = provider.current_prices(["GOOD", "BAD"], {"GOOD": "GBP", "BAD": "GBP"})

        assert quotes == {"GOOD": Money("10", "GBP")}


class TestBuildPricingProvider:
    """Tests for provider selection"""

    def test_feed_disabled(self, monkeypatch) -> None:
        """Test the offline provider when the feed is off"""
        monkeypatch.setenv("PRICE_FEED_ENABLED", "false")
        provider = build_pricing_provider()
        assert type(provider) is PricingProvider

    def test_feed_enabled(self, monkeypatch) -> None:
        """Test Yahoo Finance when the feed is on"""
        monkeypatch.setenv("PRICE_FEED_ENABLED", "true")
        assert isinstance(build_pricing_provider(), YahooPricingProvider)
