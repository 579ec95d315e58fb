"""
tests/conftest.py
Pytest configuration and fixtures
"""

import warnings
import pytest
import sys


def pytest_configure(config):
    """Configure pytest with custom settings"""
    # Suppress ResourceWarnings from third-party libraries
    warnings.filterwarnings("ignore", category=ResourceWarning)
    warnings.filterwarnings("ignore", category=DeprecationWarning)
    warnings.filterwarnings("ignore", category=FutureWarning)

    import os

    os.environ["PYTHONWARNINGS"] = "ignore::ResourceWarning"

    config.addinivalue_line("filterwarnings", "ignore::ResourceWarning")
    config.addinivalue_line("filterwarnings", "ignore::DeprecationWarning")
    config.addinivalue_line("filterwarnings", "ignore::FutureWarning")
    # SQLite stores Numeric columns as floats; the values are quantized before writing
    config.addinivalue_line(
        "filterwarnings", "ignore:Dialect sqlite\\+pysqlite does \\*not\\* support Decimal"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test items to ensure proper warning filtering"""
    for item in items:
        item.add_marker(pytest.mark.filterwarnings("ignore::ResourceWarning"))


@pytest.fixture(autouse=True)
def fresh_config():
    """Each test reads configuration from scratch"""
    from config.settings import Config

    Config.reload()
    yield
    Config.reload()


# Override Python's default unraisable exception hook to ignore ResourceWarning
_original_hook = sys.unraisablehook


def custom_unraisable_hook(unraisable_msg):
    """Custom hook that ignores ResourceWarning unraisable exceptions"""
    if "unclosed database" not in str(unraisable_msg.exc_value):
        _original_hook(unraisable_msg)


sys.unraisablehook = custom_unraisable_hook
