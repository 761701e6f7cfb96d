"""
Health check module for container health checks and monitoring.
Verifies database connectivity and that price data is not stale.
"""

import asyncio
import sys
from datetime import datetime, timedelta

import pytz

from src.database.base import PriceStore
from src.database.service import db_service
from src.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

MAX_DATA_AGE = timedelta(hours=25)


async def health_check(store: PriceStore = db_service) -> bool:
    """
    Check that the store answers and was written within the last day.
    """
    try:
        if not await store.health_check():
            return False

        last_update = await store.get_latest_update()
        if last_update is None:
            logger.warning("No price data stored yet")
            return True

        if last_update.tzinfo is None:
            last_update = last_update.replace(tzinfo=pytz.UTC)

        age = datetime.now(pytz.UTC) - last_update
        if age > MAX_DATA_AGE:
            logger.error("Price data is stale", last_update=last_update.isoformat())
            return False

        return True

    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return False


async def main():
    """
    Main health check entry point for command line usage.
    """
    setup_logging()
    is_healthy = await health_check()
    await db_service.close()

    if is_healthy:
        logger.info("Health check passed")
        sys.exit(0)
    else:
        logger.error("Health check failed")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
