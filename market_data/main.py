"""
Market Data: Application Entrypoint

Configures structlog, creates the async SQLAlchemy engine and starts the
batch scheduler.

Run via:
    python -m market_data.main
"""

from __future__ import annotations

import asyncio
import logging
import sys

import structlog
from sqlalchemy import text

from market_data import __version__
from market_data.config import settings
from market_data.db import create_db_engine
from market_data.pipeline.scheduler import run_scheduler


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def _configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    # stdlib logging carries third-party output (httpx, sqlalchemy)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application Startup
# ---------------------------------------------------------------------------


async def main() -> None:
    """
    Application entrypoint.

    Execution order:
    1. Configure logging (structlog JSON)
    2. Create async database engine and session factory
    3. Verify database connection (health check)
    4. Run the scheduler until a shutdown signal arrives
    """
    _configure_logging(log_level=settings.LOG_LEVEL)
    logger = structlog.get_logger(__name__)

    logger.info("market_data_startup_begin", version=__version__)

    if not settings.EBAY_RAPIDAPI_KEY:
        logger.warning("config_ebay_api_key_missing", note="using empty API key")
    if not settings.CARDMARKET_RAPIDAPI_KEY:
        logger.warning("config_cardmarket_api_key_missing", note="using empty API key")
    if not settings.PRICECHARTING_API_KEY:
        logger.warning("config_pricecharting_api_key_missing", note="using empty API key")

    engine, session_factory = create_db_engine()

    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        logger.info("database_health_check_passed")
    except Exception as e:
        logger.error(
            "database_health_check_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        await engine.dispose()
        raise

    logger.info(
        "market_data_startup_complete",
        sources=settings.INGEST_SOURCES,
        categories=settings.SCHEDULER_CATEGORIES,
    )

    try:
        await run_scheduler(engine, session_factory)
    except KeyboardInterrupt:
        logger.info("market_data_interrupted_by_user")
    finally:
        await engine.dispose()
        logger.info("market_data_shutdown_complete")


if __name__ == "__main__":
    asyncio.run(main())
