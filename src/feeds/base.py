"""
Price feed contract.
A feed turns a vendor API into raw quotes; vendor details stay inside the adapter.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List

from src.models.price import ProviderProfile, RawQuote


class PriceFeed(ABC):
    """Fetches raw price quotes for one provider."""

    profile: ProviderProfile

    @property
    def name(self) -> str:
        return self.profile.name

    @abstractmethod
    async def fetch_quotes(self, start: datetime, end: datetime) -> List[RawQuote]:
        """
        Fetch quotes published for the span [start, end).

        Raises:
            FeedUnavailableError: If the vendor cannot be reached or answers garbage
        """
