"""
Test configuration and fixtures for the Electricity Price Window tests.
Contains shared fixtures and test utilities.
"""

import asyncio
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Sequence

import pytest
import pytz
from fastapi.testclient import TestClient

from src.database.memory import InMemoryPriceStore
from src.feeds.base import PriceFeed
from src.main import create_app
from src.models.price import PriceSample, ProviderProfile, RawQuote

BASE_TIME = datetime(2025, 8, 7, 0, 0, tzinfo=pytz.UTC)

HOURLY_PROFILE = ProviderProfile(
    name="tibber",
    timezone="Europe/Copenhagen",
    declared_granularity=None,
    default_granularity=timedelta(hours=1),
)


def make_samples(prices: Sequence, start: datetime = BASE_TIME, length: timedelta = timedelta(hours=1),
                 provider_id: int = 1) -> List[PriceSample]:
    """
    Create back-to-back samples of equal length.

    A price of None leaves a gap of one interval.
    """
    samples = []
    for index, price in enumerate(prices):
        if price is None:
            continue
        samples.append(PriceSample(
            provider_id=provider_id,
            interval_start=start + index * length,
            interval_length=length,
            price=Decimal(str(price)),
        ))
    return samples


class FakeFeed(PriceFeed):
    """Feed returning canned quotes, optionally failing or hanging."""

    def __init__(self, quotes: List[RawQuote] = None, profile: ProviderProfile = HOURLY_PROFILE,
                 error: Exception = None, delay: float = 0):
        self.profile = profile
        self.quotes = quotes or []
        self.error = error
        self.delay = delay
        self.calls = 0

    async def fetch_quotes(self, start, end):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.quotes)


@pytest.fixture
def test_app():
    """
    Create a test instance of the FastAPI application.
    """
    app = create_app()
    return app


@pytest.fixture
def test_client(test_app):
    """
    Create a test client for the FastAPI application.
    """
    return TestClient(test_app)


@pytest.fixture
def memory_store() -> InMemoryPriceStore:
    """
    Create an empty in-memory store with the seeded providers.
    """
    return InMemoryPriceStore()


@pytest.fixture
def example_samples() -> List[PriceSample]:
    """
    Four hourly samples from midnight: 10, 5, 20, 8.
    """
    return make_samples([10, 5, 20, 8])
