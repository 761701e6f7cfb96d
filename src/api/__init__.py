"""
API package for the Electricity Price Window service.
Contains FastAPI route handlers and API-related utilities.
"""

from .routes import router

__all__ = [
    "router",
]
