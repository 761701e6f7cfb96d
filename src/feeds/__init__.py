"""
Price feed adapters for the Electricity Price Window service.
Each adapter yields raw quotes for one provider.
"""

from typing import Dict

from src.config import Settings
from .andel_energi import AndelEnergiFeed
from .base import PriceFeed
from .tibber import TibberFeed


def build_feeds(config: Settings) -> Dict[str, PriceFeed]:
    """Create all configured feed adapters keyed by provider name."""
    feeds = [
        TibberFeed(
            api_key=config.tibber_api_key,
            api_url=config.tibber_api_url,
            timeout=config.feed_timeout_seconds,
        ),
        AndelEnergiFeed(
            base_url=config.andel_energi_base_url,
            region=config.andel_energi_region,
            tax=config.andel_energi_tax,
            product_id=config.andel_energi_product_id,
            timeout=config.feed_timeout_seconds,
        ),
    ]
    return {feed.name: feed for feed in feeds}


__all__ = [
    "AndelEnergiFeed",
    "PriceFeed",
    "TibberFeed",
    "build_feeds",
]
