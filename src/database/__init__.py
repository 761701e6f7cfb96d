"""
Database package for the Electricity Price Window service.
Contains the storage contract, the PostgreSQL service and an in-memory store.
"""

from .base import PriceStore, SEEDED_PROVIDERS
from .memory import InMemoryPriceStore
from .service import db_service, DatabaseService

__all__ = [
    "db_service",
    "DatabaseService",
    "InMemoryPriceStore",
    "PriceStore",
    "SEEDED_PROVIDERS",
]
