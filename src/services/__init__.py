"""
Services package for the Electricity Price Window service.
Contains ingestion, the window cost engine and the query facade.
"""

from .ingestion import ingestion_service, IngestionService, normalize_quotes
from .price_service import price_service, PriceService
from .window_engine import find_cheapest_windows

__all__ = [
    "find_cheapest_windows",
    "ingestion_service",
    "IngestionService",
    "normalize_quotes",
    "price_service",
    "PriceService",
]
