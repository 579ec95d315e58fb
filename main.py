#!/usr/bin/env python3
"""
main.py - Main application entry point

Sets up logging, initializes the database, starts the background
scheduler (price refresh and daily maturity sweep) and serves the API.
"""

import os
import sys
import logging
import threading
import schedule
import time
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from portfolio_engine import create_app
from portfolio_engine.db import init_db_manager, get_db_manager
from config.settings import get_config, Config


def setup_logging():
    """Setup application logging"""
    # Create logs directory
    os.makedirs("logs", exist_ok=True)

    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler("logs/portfolio_engine.log", mode="a"),
        ],
    )

    return logging.getLogger(__name__)


def initialize_database():
    """Initialize database"""
    logger = logging.getLogger(__name__)

    try:
        db_manager = init_db_manager()
        info = db_manager.get_database_info()
        if not info["is_connected"]:
            logger.error("Database initialization failed: not connected")
            return False

        logger.info(f"Database initialized successfully ({info['database_type']})")
        return True

    except Exception as e:
        logger.error(f"Database initialization error: {e}")
        return False


def _build_service():
    from portfolio_engine.core.investment_service import InvestmentService
    from portfolio_engine.core.price_feed import build_pricing_provider

    return InvestmentService(get_db_manager(), build_pricing_provider())


def run_scheduled_tasks():
    """Run scheduled background tasks"""
    logger = logging.getLogger(__name__)

    def update_prices():
        """Refresh catalog and position prices"""
        try:
            logger.info("Running scheduled price update")
            prices = _build_service().refresh_prices()
            logger.info(f"Scheduled price update completed: {len(prices)} prices")

        except Exception as e:
            logger.error(f"Scheduled price update failed: {e}")

    def maturity_sweep():
        """Daily maturity sweep"""
        try:
            logger.info("Running daily maturity sweep")
            matured = _build_service().mature_due_positions()
            logger.info(f"Maturity sweep completed: {len(matured)} positions matured")

        except Exception as e:
            logger.error(f"Maturity sweep failed: {e}")

    # Schedule tasks
    if Config.PRICE_FEED_ENABLED():
        schedule.every(Config.PRICE_UPDATE_INTERVAL()).minutes.do(update_prices)
    schedule.every().day.at(Config.MATURITY_SWEEP_TIME()).do(maturity_sweep)

    # Run scheduler
    while True:
        schedule.run_pending()
        time.sleep(60)


def start_scheduler():
    """Start background scheduler"""
    logger = logging.getLogger(__name__)

    try:
        logger.info("Starting background scheduler")
        scheduler_thread = threading.Thread(target=run_scheduled_tasks, daemon=True)
        scheduler_thread.start()
        logger.info("Background scheduler started")

    except Exception as e:
        logger.error(f"Failed to start scheduler: {e}")


def check_environment():
    """Check environment and configuration"""
    logger = logging.getLogger(__name__)

    if sys.version_info < (3, 10):
        logger.error("Python 3.10 or higher required")
        return False

    for directory in ["data", "logs"]:
        os.makedirs(directory, exist_ok=True)

    config_issues = Config.validate_config()
    if config_issues:
        logger.error("Configuration issues found:")
        for issue in config_issues:
            logger.error(f"  - {issue}")
        return False

    logger.info("Environment check passed")
    return True


def print_startup_info():
    """Print startup information"""
    logger = logging.getLogger(__name__)

    config_name = get_config().__name__

    startup_info = f"""
{'=' * 60}
>> Portfolio Valuation Engine Starting
{'=' * 60}
Configuration: {config_name}
Database: {os.getenv("DATABASE_URL") or Config.DATABASE_PATH()}
Default Currency: {Config.DEFAULT_CURRENCY()}
Trading Fee Rate: {Config.TRADING_FEE_RATE():.2%}
Price Feed: {"enabled every " + str(Config.PRICE_UPDATE_INTERVAL()) + " minutes" if Config.PRICE_FEED_ENABLED() else "disabled"}
Maturity Sweep: daily at {Config.MATURITY_SWEEP_TIME()}
Host: {get_config().API_HOST()}:{get_config().API_PORT()}
{'=' * 60}
    """

    print(startup_info)
    logger.info("Portfolio engine startup initiated")


def main():
    """Main application function"""
    # Setup logging first
    logger = setup_logging()

    try:
        print_startup_info()

        if not check_environment():
            logger.error("Environment check failed, aborting startup")
            return 1

        if not initialize_database():
            logger.error("Database initialization failed, aborting startup")
            return 1

        config_class = get_config()
        app = create_app()

        start_scheduler()

        # Disable reloader to avoid scheduler conflicts
        logger.info(
            f"Starting Flask application on {config_class.API_HOST()}:{config_class.API_PORT()}"
        )
        app.run(
            host=config_class.API_HOST(),
            port=config_class.API_PORT(),
            debug=getattr(config_class, "DEBUG", False),
            use_reloader=False,
        )
        return 0

    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
        return 0

    except Exception as e:
        logger.error(f"Application startup failed: {e}")
        return 1


def create_wsgi_app():
    """Create WSGI application for a production server"""
    logger = setup_logging()

    if not check_environment():
        raise RuntimeError("Environment check failed")

    if not initialize_database():
        raise RuntimeError("Database initialization failed")

    app = create_app()
    start_scheduler()

    logger.info("WSGI application created successfully")
    return app


if __name__ == "__main__":
    sys.exit(main())
