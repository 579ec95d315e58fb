"""
portfolio_engine/core/price_feed.py - Fee rate and quote providers

A pricing provider supplies the configured fee rate and, optionally, a
live quote per symbol. `current_price` returns None when no live quote is
available; callers then fall back to the last stored price.
"""

import logging
import time
from decimal import Decimal
from typing import Dict, Iterable, Optional

import pandas as pd
import yfinance as yf

from portfolio_engine.core.money import PRICE_PLACES, Money, check_places, to_decimal

logger = logging.getLogger(__name__)


class PricingProvider:
    """Base provider: fee rate only, no live quotes"""

    def __init__(self, fee_rate=None):
        self._fee_rate = None if fee_rate is None else to_decimal(fee_rate)

    def fee_rate(self) -> Decimal:
        if self._fee_rate is not None:
            return self._fee_rate
        from config.settings import Config

        return to_decimal(Config.TRADING_FEE_RATE())

    def current_price(self, symbol: str, currency: str) -> Optional[Money]:
        return None

    def current_prices(self, symbols: Iterable[str], currency_by_symbol: Dict[str, str]) -> Dict[str, Money]:
        """Quotes for several symbols, skipping those without a quote"""
        prices = {}
        for symbol in symbols:
            price = self.current_price(symbol, currency_by_symbol[symbol])
            if price is not None:
                prices[symbol] = price
        return prices


class StaticPricingProvider(PricingProvider):
    """Provider backed by a fixed quote table (admin-entered prices, tests)"""

    def __init__(self, fee_rate=None, prices: Optional[Dict[str, object]] = None):
        super().__init__(fee_rate)
        self.prices = {}
        for symbol, price in (prices or {}).items():
            self.set_price(symbol, price)

    def set_price(self, symbol: str, price) -> None:
        self.prices[symbol.upper()] = check_places(to_decimal(price), PRICE_PLACES, f"Quote for {symbol}")

    def current_price(self, symbol: str, currency: str) -> Optional[Money]:
        amount = self.prices.get(symbol.upper())
        if amount is None:
            return None
        return Money(amount, currency)


class YahooPricingProvider(PricingProvider):
    """Live quotes from Yahoo Finance

    Uses the last close of a one-day history. Quotes are cached for
    `cache_seconds` so a burst of previews does not hit the network for
    every request. A failed download yields None, never an exception.
    """

    def __init__(self, fee_rate=None, cache_seconds: int = 60, min_request_interval: float = 0.1):
        super().__init__(fee_rate)
        self.cache_seconds = cache_seconds
        self.min_request_interval = min_request_interval
        self._cache: Dict[str, tuple] = {}
        self._last_request_time = 0.0

    def _rate_limit(self) -> None:
        elapsed = time.time() - self._last_request_time
        if elapsed < self.min_request_interval:
            time.sleep(self.min_request_interval - elapsed)
        self._last_request_time = time.time()

    def _download_close(self, symbol: str) -> Optional[Decimal]:
        self._rate_limit()
        data = yf.Ticker(symbol).history(period="1d", interval="1d")
        if data is None or data.empty or "Close" not in data.columns:
            logger.warning(f"No quote returned for {symbol}")
            return None

        close = data["Close"].dropna()
        if close.empty:
            logger.warning(f"Quote for {symbol} has no close price")
            return None

        last = close.iloc[-1]
        if pd.isna(last) or last < 0:
            logger.warning(f"Discarding invalid close {last!r} for {symbol}")
            return None
        # str() keeps the printed precision instead of the binary float expansion
        return to_decimal(str(round(float(last), PRICE_PLACES)))

    def current_price(self, symbol: str, currency: str) -> Optional[Money]:
        symbol = symbol.upper()
        cached = self._cache.get(symbol)
        if cached and time.time() - cached[1] < self.cache_seconds:
            return Money(cached[0], currency)

        try:
            amount = self._download_close(symbol)
        except Exception as e:
            logger.error(f"Error retrieving quote for {symbol}: {e}")
            return None

        if amount is None:
            return None

        self._cache[symbol] = (amount, time.time())
        logger.info(f"Quote for {symbol}: {amount} {currency}")
        return Money(amount, currency)


def build_pricing_provider() -> PricingProvider:
    """Provider selected by configuration"""
    from config.settings import Config

    if Config.PRICE_FEED_ENABLED():
        logger.info("Using Yahoo Finance price feed")
        return YahooPricingProvider()
    return PricingProvider()
