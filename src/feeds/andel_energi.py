"""
Andel Energi price feed using the public CSV export.
Prices are hourly, published with Danish decimal commas and naive local times.
"""

from datetime import date, datetime, timedelta
from io import StringIO
from typing import List, Optional
from urllib.parse import urlencode

import httpx
import pandas as pd
import pytz

from src.exceptions import FeedUnavailableError
from src.feeds.base import PriceFeed
from src.logging_config import get_logger
from src.models.price import ProviderProfile, RawQuote

logger = get_logger(__name__)

ANDEL_ENERGI_PROFILE = ProviderProfile(
    name="andel_energi",
    timezone="Europe/Copenhagen",
    declared_granularity=timedelta(hours=1),
    default_granularity=timedelta(hours=1),
)

EXPECTED_COLUMNS = ["Start", "Total"]


class AndelEnergiFeed(PriceFeed):
    """Andel Energi CSV price feed."""

    profile = ANDEL_ENERGI_PROFILE

    def __init__(
        self,
        base_url: str,
        region: str = "east",
        tax: int = 0,
        product_id: str = "1#1#TIMEENERGI",
        timeout: float = 30,
    ):
        self.base_url = base_url
        self.region = region
        self.tax = tax
        self.product_id = product_id
        self.timeout = timeout

    async def fetch_quotes(self, start: datetime, end: datetime) -> List[RawQuote]:
        """Download and parse the CSV export covering [start, end)."""
        first_day, last_day = self._local_days(start, end)
        url = self._build_csv_url(first_day, last_day)
        csv_content = await self._fetch_csv_data(url)
        quotes = self._parse_danish_csv(csv_content)

        logger.info("Fetched prices from andel energi",
                    start_date=first_day.isoformat(),
                    end_date=last_day.isoformat(),
                    count=len(quotes))
        return quotes

    def _local_days(self, start: datetime, end: datetime):
        """Local calendar days covering the span; the export end date is exclusive."""
        local_tz = pytz.timezone(self.profile.timezone)
        local_start = start.astimezone(local_tz)
        local_end = end.astimezone(local_tz)

        last_day = local_end.date()
        if local_end.time() != datetime.min.time():
            last_day += timedelta(days=1)

        return local_start.date(), last_day

    def _build_csv_url(self, start_day: date, end_day: date) -> str:
        """Build Andel Energi CSV URL for the given local days."""
        params = {
            'obexport_format': 'csv',
            'obexport_start': start_day.strftime('%Y-%m-%d'),
            'obexport_end': end_day.strftime('%Y-%m-%d'),
            'obexport_region': self.region,
            'obexport_tax': self.tax,
            'obexport_product_id': self.product_id,
        }

        logger.debug("Built CSV URL", url_params=params)

        return f"{self.base_url}?{urlencode(params)}"

    async def _fetch_csv_data(self, url: str) -> str:
        """Download CSV data."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.text
        except httpx.HTTPError as e:
            raise FeedUnavailableError(f"HTTP error: {e}")

    def _parse_danish_csv(self, csv_content: str) -> List[RawQuote]:
        """Parse Danish CSV format into raw quotes.

        Rows with unparseable values become quotes with a missing field so the
        normalizer can skip them individually.
        """
        try:
            df = pd.read_csv(
                StringIO(csv_content),
                sep=',',
                dtype=str,
                parse_dates=False,
            )
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise FeedUnavailableError(f"CSV parsing failed: {e}")

        if not all(col in df.columns for col in EXPECTED_COLUMNS):
            missing = set(EXPECTED_COLUMNS) - set(df.columns)
            raise FeedUnavailableError(f"CSV parsing failed: missing columns {missing}")

        return [
            RawQuote(
                moment=self._parse_danish_datetime(row['Start']),
                price=self._parse_danish_decimal(row['Total']),
            )
            for _, row in df.iterrows()
        ]

    def _parse_danish_decimal(self, value) -> Optional[float]:
        """Parse '1,09' style numbers."""
        try:
            return float(str(value).strip().replace('.', '').replace(',', '.'))
        except ValueError:
            return None

    def _parse_danish_datetime(self, datetime_str) -> Optional[datetime]:
        """Parse Danish datetime: '07.08.2025 - 23:00' (naive, Copenhagen time)"""
        try:
            date_part, time_part = str(datetime_str).strip().split(' - ')
            day, month, year = date_part.split('.')
            hour, minute = time_part.split(':')

            return datetime(
                year=int(year),
                month=int(month),
                day=int(day),
                hour=int(hour),
                minute=int(minute),
            )
        except ValueError:
            logger.warning("Invalid Danish datetime format", value=str(datetime_str))
            return None
