"""
config/settings.py - Configuration management
"""

import os
import json
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Any, cast


class ConfigBase:
    """Base configuration class: JSON file with environment overrides"""

    # Load from environment or config file
    _config_data = None

    @classmethod
    def _load_config(cls) -> Dict:
        """Load configuration from file"""
        if ConfigBase._config_data is None:
            config_path = os.getenv("CONFIG_PATH", "config.json")
            try:
                with open(config_path, "r") as f:
                    loaded = json.load(f)
            except FileNotFoundError:
                loaded = {}
            ConfigBase._config_data = cls._merge(cls._get_default_config(), loaded)
        return ConfigBase._config_data

    @staticmethod
    def _merge(defaults: Dict, overrides: Dict) -> Dict:
        """Overlay a partial config file on the defaults, section by section"""
        merged = {key: dict(value) if isinstance(value, dict) else value for key, value in defaults.items()}
        for key, value in overrides.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key].update(value)
            else:
                merged[key] = value
        return merged

    @classmethod
    def _get_default_config(cls) -> Dict:
        """Default configuration"""
        return {
            "trading": {
                # Fraction of the trade amount charged as fee (0.01 = 1%)
                "fee_rate": 0.01,
                "default_currency": "GBP",
                "transaction_retries": 3,
            },
            "prices": {
                "update_interval_minutes": 30,
                "feed_enabled": False,
            },
            "maturity": {
                "sweep_time": "00:30",
            },
            "data": {
                "database_path": "data/portfolio_engine.db",
            },
            "api": {
                # Note: Development mode overrides host to 127.0.0.1
                # This 0.0.0.0 is only used in production behind a WSGI server
                "host": "0.0.0.0",
                "port": 5000,
                "debug": False,
                "cors_enabled": True,
            },
        }

    # Configuration properties as class methods
    @classmethod
    def TRADING_FEE_RATE(cls) -> float:
        return float(os.getenv("TRADING_FEE_RATE", cls._load_config()["trading"]["fee_rate"]))

    @classmethod
    def DEFAULT_CURRENCY(cls) -> str:
        return os.getenv("DEFAULT_CURRENCY", cls._load_config()["trading"]["default_currency"]).upper()

    @classmethod
    def TRANSACTION_RETRIES(cls) -> int:
        return int(cls._load_config()["trading"]["transaction_retries"])

    @classmethod
    def PRICE_UPDATE_INTERVAL(cls) -> int:
        return cast(int, cls._load_config()["prices"]["update_interval_minutes"])

    @classmethod
    def PRICE_FEED_ENABLED(cls) -> bool:
        env = os.getenv("PRICE_FEED_ENABLED")
        if env is not None:
            return env.lower() == "true"
        return cast(bool, cls._load_config()["prices"]["feed_enabled"])

    @classmethod
    def MATURITY_SWEEP_TIME(cls) -> str:
        return cast(str, cls._load_config()["maturity"]["sweep_time"])

    @classmethod
    def DATABASE_PATH(cls) -> str:
        return os.getenv("DATABASE_PATH", cls._load_config()["data"]["database_path"])

    @classmethod
    def API_HOST(cls) -> str:
        return os.getenv("HOST", cls._load_config()["api"]["host"])

    @classmethod
    def API_PORT(cls) -> int:
        return int(os.getenv("PORT", cls._load_config()["api"]["port"]))

    @classmethod
    def CORS_ENABLED(cls) -> bool:
        return cast(bool, cls._load_config()["api"]["cors_enabled"])

    @classmethod
    def get(cls, path: str, default: Any = None) -> Any:
        """Get configuration value by dot-separated path"""
        keys = path.split(".")
        value = cls._load_config()

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    @classmethod
    def validate_config(cls) -> List[str]:
        """Validate configuration and return list of issues"""
        from portfolio_engine.core.money import is_valid_currency

        issues = []

        try:
            fee_rate = Decimal(str(cls.TRADING_FEE_RATE()))
            if not fee_rate.is_finite() or fee_rate < 0 or fee_rate >= 1:
                issues.append(f"Fee rate must be in [0, 1), got {fee_rate}")
        except (ValueError, InvalidOperation):
            issues.append("Fee rate is not a number")

        currency = cls.DEFAULT_CURRENCY()
        if not is_valid_currency(currency):
            issues.append(f"Unknown default currency: {currency}")

        try:
            if cls.TRANSACTION_RETRIES() < 0:
                issues.append("transaction_retries must not be negative")
        except (ValueError, TypeError):
            issues.append("transaction_retries is not an integer")

        if cls.PRICE_UPDATE_INTERVAL() <= 0:
            issues.append("Invalid price update interval")

        return issues

    @classmethod
    def save_config(cls, config_data: Dict) -> bool:
        """Save configuration to file"""
        try:
            config_path = os.getenv("CONFIG_PATH", "config.json")
            with open(config_path, "w") as f:
                json.dump(config_data, f, indent=2)
            # Clear cached config so next access reloads from file
            ConfigBase._config_data = None
            return True
        except OSError:
            return False

    @classmethod
    def reload(cls) -> None:
        """Drop the cached file contents so the next access rereads it"""
        ConfigBase._config_data = None


class Config(ConfigBase):
    """Configuration class with database support

    Database configuration via environment variables:
    - DATABASE_TYPE: sqlite (default), postgresql, or mysql
    - DATABASE_URL: full connection string (optional)
    - DB_USER, DB_PASSWORD, DB_HOST, DB_PORT, DB_NAME: individual params
    """

    DATABASE_TYPE: str = os.getenv("DATABASE_TYPE", "sqlite")
    DATABASE_URL: str | None = os.getenv("DATABASE_URL")

    # SQL debugging
    SQL_ECHO: bool = os.getenv("SQL_ECHO", "False").lower() == "true"


# Environment-specific configurations
class DevelopmentConfig(Config):
    """Development configuration"""

    DEBUG = True
    TESTING = False

    @classmethod
    def DATABASE_PATH(cls) -> str:
        return os.getenv("DATABASE_PATH", "data/dev_portfolio_engine.db")

    @classmethod
    def API_HOST(cls) -> str:
        return "127.0.0.1"


class ProductionConfig(Config):
    """Production configuration"""

    DEBUG = False
    TESTING = False

    @classmethod
    def API_PORT(cls) -> int:
        return int(os.getenv("PORT", 8080))


class TestingConfig(Config):
    """Testing configuration"""

    DEBUG = True
    TESTING = True

    @classmethod
    def DATABASE_PATH(cls) -> str:
        return os.getenv("DATABASE_PATH", "data/test_portfolio_engine.db")

    @classmethod
    def PRICE_FEED_ENABLED(cls) -> bool:
        return False  # Never hit the network from tests


def get_config() -> type[Config]:
    """Get configuration based on environment"""
    env = os.getenv("FLASK_ENV", "production")

    if env == "development":
        return DevelopmentConfig
    elif env == "testing":
        return TestingConfig
    else:
        return ProductionConfig
