"""
portfolio_engine/core/money.py - Fixed-point monetary value type

Money is an immutable (amount, currency) pair backed by Decimal.
Arithmetic between two Money values requires the same currency;
mixing currencies raises CurrencyMismatch.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from typing import Union

from portfolio_engine.core.errors import CurrencyMismatch

Number = Union[Decimal, int, str]

# Decimal places kept by the database for unit prices, quantities and rates
PRICE_PLACES = 4
QUANTITY_PLACES = 8
RATE_PLACES = 6

# Active ISO-4217 codes mapped to their minor-unit exponent
ISO_4217_MINOR_UNITS = {
    "AED": 2, "AFN": 2, "ALL": 2, "AMD": 2, "ANG": 2, "AOA": 2, "ARS": 2,
    "AUD": 2, "AWG": 2, "AZN": 2, "BAM": 2, "BBD": 2, "BDT": 2, "BGN": 2,
    "BHD": 3, "BIF": 0, "BMD": 2, "BND": 2, "BOB": 2, "BRL": 2, "BSD": 2,
    "BTN": 2, "BWP": 2, "BYN": 2, "BZD": 2, "CAD": 2, "CDF": 2, "CHF": 2,
    "CLP": 0, "CNY": 2, "COP": 2, "CRC": 2, "CUP": 2, "CVE": 2, "CZK": 2,
    "DJF": 0, "DKK": 2, "DOP": 2, "DZD": 2, "EGP": 2, "ERN": 2, "ETB": 2,
    "EUR": 2, "FJD": 2, "FKP": 2, "GBP": 2, "GEL": 2, "GHS": 2, "GIP": 2,
    "GMD": 2, "GNF": 0, "GTQ": 2, "GYD": 2, "HKD": 2, "HNL": 2, "HTG": 2,
    "HUF": 2, "IDR": 2, "ILS": 2, "INR": 2, "IQD": 3, "IRR": 2, "ISK": 0,
    "JMD": 2, "JOD": 3, "JPY": 0, "KES": 2, "KGS": 2, "KHR": 2, "KMF": 0,
    "KPW": 2, "KRW": 0, "KWD": 3, "KYD": 2, "KZT": 2, "LAK": 2, "LBP": 2,
    "LKR": 2, "LRD": 2, "LSL": 2, "LYD": 3, "MAD": 2, "MDL": 2, "MGA": 2,
    "MKD": 2, "MMK": 2, "MNT": 2, "MOP": 2, "MRU": 2, "MUR": 2, "MVR": 2,
    "MWK": 2, "MXN": 2, "MYR": 2, "MZN": 2, "NAD": 2, "NGN": 2, "NIO": 2,
    "NOK": 2, "NPR": 2, "NZD": 2, "OMR": 3, "PAB": 2, "PEN": 2, "PGK": 2,
    "PHP": 2, "PKR": 2, "PLN": 2, "PYG": 0, "QAR": 2, "RON": 2, "RSD": 2,
    "RUB": 2, "RWF": 0, "SAR": 2, "SBD": 2, "SCR": 2, "SDG": 2, "SEK": 2,
    "SGD": 2, "SHP": 2, "SLE": 2, "SOS": 2, "SRD": 2, "SSP": 2, "STN": 2,
    "SVC": 2, "SYP": 2, "SZL": 2, "THB": 2, "TJS": 2, "TMT": 2, "TND": 3,
    "TOP": 2, "TRY": 2, "TTD": 2, "TWD": 2, "TZS": 2, "UAH": 2, "UGX": 0,
    "USD": 2, "UYU": 2, "UZS": 2, "VES": 2, "VND": 0, "VUV": 0, "WST": 2,
    "XAF": 0, "XCD": 2, "XOF": 0, "XPF": 0, "YER": 2, "ZAR": 2, "ZMW": 2,
    "ZWL": 2,
}


def is_valid_currency(code: str) -> bool:
    return code in ISO_4217_MINOR_UNITS


def minor_units(currency: str) -> int:
    """Number of decimal places for the currency's minor unit (e.g. 2 for GBP)"""
    try:
        return ISO_4217_MINOR_UNITS[currency]
    except KeyError:
        raise ValueError(f"Unknown ISO-4217 currency code: {currency!r}") from None


def to_decimal(value: Number | float) -> Decimal:
    """Coerce user input to Decimal without going through binary floats"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid decimal value: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid decimal value: {value!r}") from None


def quantize(value: Decimal, places: int) -> Decimal:
    """Round half-to-even to a fixed number of decimal places"""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_EVEN)


def check_places(value: Decimal, places: int, field_name: str) -> Decimal:
    """
    Reject values that would lose digits when stored with `places` decimals

    Raises:
        ValueError: value has more significant decimal places than allowed
    """
    if quantize(value, places) != value:
        raise ValueError(
            f"{field_name} {value} has more than {places} decimal places"
        )
    return value


@dataclass(frozen=True)
class Money:
    """Monetary amount tagged with an ISO-4217 currency code"""

    amount: Decimal
    currency: str

    def __post_init__(self) -> None:
        amount = to_decimal(self.amount)
        if not amount.is_finite():
            raise ValueError(f"Money amount must be finite, got {self.amount!r}")
        currency = (self.currency or "").upper()
        if not is_valid_currency(currency):
            raise ValueError(f"Unknown ISO-4217 currency code: {self.currency!r}")
        object.__setattr__(self, "amount", amount)
        object.__setattr__(self, "currency", currency)

    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(Decimal("0"), currency)

    @classmethod
    def of(cls, amount: Number | float, currency: str) -> "Money":
        return cls(to_decimal(amount), currency)

    def _check(self, other: "Money") -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Expected Money, got {type(other).__name__}")
        if self.currency != other.currency:
            raise CurrencyMismatch(self.currency, other.currency)

    def __add__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, factor: Number) -> "Money":
        if isinstance(factor, Money):
            raise TypeError("Cannot multiply Money by Money")
        return Money(self.amount * to_decimal(factor), self.currency)

    __rmul__ = __mul__

    def __neg__(self) -> "Money":
        return Money(-self.amount, self.currency)

    def __lt__(self, other: "Money") -> bool:
        self._check(other)
        return self.amount < other.amount

    def __le__(self, other: "Money") -> bool:
        self._check(other)
        return self.amount <= other.amount

    def __gt__(self, other: "Money") -> bool:
        self._check(other)
        return self.amount > other.amount

    def __ge__(self, other: "Money") -> bool:
        self._check(other)
        return self.amount >= other.amount

    def ratio(self, other: "Money") -> Decimal:
        """self / other as a plain Decimal; 0 when other is zero"""
        self._check(other)
        if other.amount == 0:
            return Decimal("0")
        return self.amount / other.amount

    def is_zero(self) -> bool:
        return self.amount == 0

    def is_negative(self) -> bool:
        return self.amount < 0

    def rounded(self) -> "Money":
        """Round half-to-even to the currency's minor unit"""
        return Money(quantize(self.amount, minor_units(self.currency)), self.currency)

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"
