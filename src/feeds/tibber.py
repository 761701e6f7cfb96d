"""
Tibber price feed using the GraphQL API.
Returns today's and (after publication) tomorrow's prices of the first home.
"""

from datetime import datetime, timedelta
from typing import List, Optional

import httpx

from src.exceptions import FeedUnavailableError
from src.feeds.base import PriceFeed
from src.logging_config import get_logger
from src.models.price import ProviderProfile, RawQuote

logger = get_logger(__name__)

PRICE_INFO_QUERY = (
    "{ viewer { homes { currentSubscription { priceInfo { "
    "today { total startsAt } tomorrow { total startsAt } "
    "} } } } }"
)

TIBBER_PROFILE = ProviderProfile(
    name="tibber",
    timezone="Europe/Oslo",
    # Tibber serves hourly or quarter-hourly depending on the market
    declared_granularity=None,
    default_granularity=timedelta(hours=1),
)


class TibberFeed(PriceFeed):
    """Tibber GraphQL price feed."""

    profile = TIBBER_PROFILE

    def __init__(self, api_key: str, api_url: str, timeout: float = 30):
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout

    async def fetch_quotes(self, start: datetime, end: datetime) -> List[RawQuote]:
        """Fetch today's and tomorrow's prices; the span is decided by Tibber."""
        logger.info("Fetching prices from tibber")
        payload = await self._post_query()
        quotes = self.parse_price_info(payload)
        logger.info("Fetched prices from tibber", count=len(quotes))
        return quotes

    async def _post_query(self) -> dict:
        """Run the price info query and return the decoded JSON body."""
        if not self.api_key:
            raise FeedUnavailableError("Tibber API key is not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.api_url,
                    json={"query": PRICE_INFO_QUERY},
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as e:
            raise FeedUnavailableError(f"HTTP error: {e}")
        except ValueError as e:
            raise FeedUnavailableError(f"Invalid JSON from tibber: {e}")

    @staticmethod
    def parse_price_info(payload: dict) -> List[RawQuote]:
        """Extract raw quotes from a priceInfo response."""
        try:
            home = payload["data"]["viewer"]["homes"][0]
            price_info = home["currentSubscription"]["priceInfo"]
        except (KeyError, IndexError, TypeError) as e:
            errors = payload.get("errors") if isinstance(payload, dict) else None
            raise FeedUnavailableError(f"Unexpected tibber response: {errors or e}")

        entries = (price_info.get("today") or []) + (price_info.get("tomorrow") or [])

        return [
            RawQuote(
                moment=_parse_starts_at(entry.get("startsAt")),
                price=_as_float(entry.get("total")),
            )
            for entry in entries
        ]


def _as_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_starts_at(value: Optional[str]) -> Optional[datetime]:
    """Parse Tibber's startsAt, e.g. '2024-06-15T00:00:00.000+02:00'."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.warning("Unparseable tibber timestamp", starts_at=value)
        return None
