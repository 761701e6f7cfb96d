"""
Simple in-process scheduler that triggers one ingestion cycle per day.
Deployments with an external orchestrator leave it disabled and call POST /ingest.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional

import pytz

from src.config import settings
from src.exceptions import PriceAPIException
from src.logging_config import get_logger
from src.services.ingestion import IngestionService, ingestion_service

logger = get_logger(__name__)


class SimpleScheduler:
    """Simple background task scheduler for price ingestion."""

    def __init__(
        self,
        service: IngestionService,
        provider_name: str,
        fetch_hour: int,
        fetch_minute: int,
        timezone_name: str,
    ):
        self.service = service
        self.provider_name = provider_name
        self.fetch_hour = fetch_hour
        self.fetch_minute = fetch_minute
        self.timezone = pytz.timezone(timezone_name)
        self._running = False
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Start the scheduler background task."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._scheduler_loop())
        logger.info("Scheduler started",
                    provider=self.provider_name,
                    fetch_time=f"{self.fetch_hour}:{self.fetch_minute:02d}")

    async def stop(self) -> None:
        """Stop the scheduler."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        logger.info("Scheduler stopped")

    async def _scheduler_loop(self) -> None:
        """Main scheduler loop."""
        while self._running:
            try:
                now = datetime.now(self.timezone)
                next_run = self.calculate_next_run(now)
                sleep_seconds = (next_run - now).total_seconds()

                if sleep_seconds > 0:
                    logger.debug("Next ingestion scheduled", next_run=next_run.isoformat(), sleep_seconds=sleep_seconds)
                    await asyncio.sleep(sleep_seconds)

                if not self._running:
                    break

                await self.run_job()

                # Sleep for at least 1 hour to avoid duplicate runs
                await asyncio.sleep(3600)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Scheduler loop error", error=str(e))
                await asyncio.sleep(300)

    def calculate_next_run(self, now: datetime) -> datetime:
        """Calculate the next scheduled run time in the scheduler timezone."""
        local_now = now.astimezone(self.timezone)
        today_run = self.timezone.localize(datetime.combine(
            local_now.date(),
            datetime.min.time().replace(hour=self.fetch_hour, minute=self.fetch_minute),
        ))

        if local_now >= today_run:
            tomorrow = local_now.date() + timedelta(days=1)
            return self.timezone.localize(datetime.combine(tomorrow, today_run.time()))
        return today_run

    async def run_job(self) -> None:
        """Execute one ingestion cycle; failures are logged and retried next run."""
        logger.info("Starting scheduled ingestion", provider=self.provider_name)

        try:
            report = await self.service.run_cycle(self.provider_name)
            logger.info("Completed scheduled ingestion", provider=self.provider_name, stored=report.stored)

        except PriceAPIException as e:
            logger.error(
                "Scheduled ingestion failed",
                provider=self.provider_name,
                error_type=type(e).__name__,
                error=str(e),
            )

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running


# Global scheduler instance
simple_scheduler = SimpleScheduler(
    ingestion_service,
    settings.price_provider,
    settings.fetch_hour,
    settings.fetch_minute,
    settings.fetch_timezone,
)
