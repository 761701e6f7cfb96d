"""
Electricity Price Windows - cheapest time slots for flexible loads

Ingests published spot prices from a provider feed into a time series and
answers queries for the cheapest contiguous window of a given duration.

Main components:
- Price feed adapters (Tibber, Andel Energi)
- Ingestion normalizer with idempotent upserts
- PostgreSQL and in-memory price stores
- Window cost engine
- FastAPI query facade and optional daily scheduler
"""

__version__ = "1.0.0"
