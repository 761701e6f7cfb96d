#!/usr/bin/env python3
"""
Development helper scripts for the Electricity Price Window service.
Provides utilities for database setup, manual ingestion and ad-hoc queries.
"""

import asyncio
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytz

# Add src to Python path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import settings
from src.database.service import db_service
from src.exceptions import PriceAPIException
from src.logging_config import setup_logging
from src.services.ingestion import ingestion_service
from src.services.price_service import price_service


def _today_span(hours: int = 48):
    local_tz = pytz.timezone(settings.fetch_timezone)
    start = local_tz.localize(datetime.combine(datetime.now(local_tz).date(), datetime.min.time()))
    return start, start + timedelta(hours=hours)


async def init_db():
    """Initialize the database with required tables and providers."""
    print("Initializing database...")
    setup_logging()
    await db_service.init()
    await db_service.close()
    print("Database initialized")


async def ingest_manual(provider: str = None):
    """Run one ingestion cycle for a provider."""
    provider = provider or settings.price_provider
    print(f"Starting ingestion for {provider}...")
    setup_logging()
    await db_service.init()

    try:
        report = await ingestion_service.run_cycle(provider)
        print(f"Fetched {report.fetched}, stored {report.stored}, "
              f"skipped {report.skipped}, corrected {report.corrected}")
    except PriceAPIException as e:
        print(f"Ingestion failed: {e}")
    finally:
        await db_service.close()


async def show_samples():
    """Display stored samples for today and tomorrow."""
    setup_logging()
    start, end = _today_span()

    try:
        samples = await price_service.get_prices(start, end)
    except PriceAPIException as e:
        print(f"No samples: {e}")
        return
    finally:
        await db_service.close()

    print(f"\nFound {len(samples)} samples for {settings.price_provider}:")
    print("-" * 60)
    print(f"{'Start':<26} {'End':<26} {'Price':>8}")
    print("-" * 60)

    for sample in samples:
        print(f"{sample.starts_at.isoformat():<26} {sample.ends_at.isoformat():<26} {sample.price:>8.4f}")


async def show_time_slots(durations: str):
    """Find the cheapest windows for today and tomorrow."""
    setup_logging()
    start, end = _today_span()

    try:
        slots = await price_service.get_time_slots(durations, start, end)
    except PriceAPIException as e:
        print(f"Query failed: {e}")
        return
    finally:
        await db_service.close()

    for slot in slots:
        if slot.available:
            print(f"{slot.duration_hours:>5}h: {slot.starts_at.isoformat()} -> "
                  f"{slot.ends_at.isoformat()} avg {slot.average_price}")
        else:
            print(f"{slot.duration_hours:>5}h: unavailable")


def show_config():
    """Display current configuration settings."""
    print("Current Configuration:")
    print("-" * 40)
    print(f"API Host: {settings.api_host}")
    print(f"API Port: {settings.api_port}")
    print(f"Debug Mode: {settings.api_debug}")
    print(f"Provider: {settings.price_provider}")
    print(f"Feed Timeout: {settings.feed_timeout_seconds}s")
    print(f"Scheduler: {'enabled' if settings.scheduler_enabled else 'disabled'} "
          f"({settings.fetch_hour}:{settings.fetch_minute:02d} {settings.fetch_timezone})")
    print(f"TimescaleDB: {settings.timescale_enabled}")
    print(f"Log Level: {settings.log_level}")


def main():
    """Main script entry point with command selection."""
    if len(sys.argv) < 2:
        print("Electricity Price Window Development Scripts")
        print("Usage: python scripts/dev.py <command> [argument]")
        print("\nAvailable commands:")
        print("  init-db              - Initialize database")
        print("  ingest [provider]    - Run one ingestion cycle")
        print("  show-samples         - Display stored samples for today and tomorrow")
        print("  time-slots <hours>   - Cheapest windows, e.g. time-slots 1,3")
        print("  show-config          - Display current configuration")
        return

    command = sys.argv[1]
    argument = sys.argv[2] if len(sys.argv) > 2 else None

    if command == "init-db":
        asyncio.run(init_db())
    elif command == "ingest":
        asyncio.run(ingest_manual(argument))
    elif command == "show-samples":
        asyncio.run(show_samples())
    elif command == "time-slots":
        asyncio.run(show_time_slots(argument or "1"))
    elif command == "show-config":
        show_config()
    else:
        print(f"Unknown command: {command}")
        print("Run without arguments to see available commands")


if __name__ == "__main__":
    main()
