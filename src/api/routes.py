"""
FastAPI route handlers for the main API endpoints.
Exposes cheapest time slots, stored prices, ingestion triggering and health.
"""

from datetime import datetime
from typing import List, Optional

import pytz
from fastapi import APIRouter, HTTPException, Query

from src.config import settings
from src.database.service import db_service
from src.exceptions import (
    FeedUnavailableError,
    IngestionInProgressError,
    InvalidQueryError,
    NoDataInRangeError,
    PriceAPIException,
    UnknownProviderError,
)
from src.logging_config import get_logger
from src.models.price import HealthResponse, IngestionReport, PriceSampleResponse, TimeSlotResponse
from src.services.ingestion import ingestion_service
from src.services.price_service import price_service

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint for monitoring and load balancers.
    Returns health status with the last sample write to monitor data freshness.
    """
    try:
        last_update = await db_service.get_latest_update()

        data_age_hours = None
        data_status = "unknown"

        if last_update:
            if last_update.tzinfo is None:
                last_update = last_update.replace(tzinfo=pytz.UTC)

            data_age = datetime.now(pytz.UTC) - last_update
            data_age_hours = round(data_age.total_seconds() / 3600, 1)

            # Day-ahead prices are published once a day
            if data_age_hours <= 3:
                data_status = "fresh"
            elif data_age_hours <= 25:
                data_status = "acceptable"
            else:
                data_status = "stale"

        details = {
            "service": "electricity-price-windows",
            "provider": settings.price_provider,
            "last_update": last_update.isoformat() if last_update else None,
            "data_age_hours": data_age_hours,
            "data_status": data_status,
        }

        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(pytz.UTC),
            details=details
        )

    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return HealthResponse(
            status="unhealthy",
            timestamp=datetime.now(pytz.UTC),
            details={"service": "electricity-price-windows", "error": str(e)}
        )


@router.get("/time-slots", response_model=List[TimeSlotResponse])
async def get_time_slots(
    durations: str = Query(
        description="Comma-separated window lengths in hours, e.g. '1,2.5'",
        min_length=1,
    ),
    moment_start: datetime = Query(
        description="Earliest window start, ISO 8601 with UTC offset"
    ),
    moment_end: datetime = Query(
        description="Latest window end (exclusive), ISO 8601 with UTC offset"
    ),
):
    """
    Find the cheapest gap-free window for each requested duration.

    Every requested duration gets one entry. Durations that do not fit any
    gap-free stretch of stored prices are returned with available=false.

    Raises:
        HTTPException: 400 for invalid parameters, 404 for an unknown
        provider, 500 for server errors.
    """
    try:
        return await price_service.get_time_slots(durations, moment_start, moment_end)

    except InvalidQueryError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UnknownProviderError as e:
        logger.error("Configured provider is not seeded", error=str(e), provider=settings.price_provider)
        raise HTTPException(status_code=404, detail=str(e))
    except PriceAPIException as e:
        logger.error("Price API error", error=str(e), durations=durations)
        raise HTTPException(status_code=500, detail="Internal server error")
    except Exception as e:
        logger.error("Unexpected error", error=str(e), durations=durations)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/prices", response_model=List[PriceSampleResponse])
async def get_prices(
    moment_start: datetime = Query(description="Range start, ISO 8601 with UTC offset"),
    moment_end: datetime = Query(description="Range end (exclusive), ISO 8601 with UTC offset"),
):
    """
    List the stored price samples overlapping the range.

    Raises:
        HTTPException: 400 for invalid parameters, 404 if no data is stored.
    """
    try:
        return await price_service.get_prices(moment_start, moment_end)

    except InvalidQueryError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UnknownProviderError as e:
        logger.error("Configured provider is not seeded", error=str(e), provider=settings.price_provider)
        raise HTTPException(status_code=404, detail=str(e))
    except NoDataInRangeError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PriceAPIException as e:
        logger.error("Price API error", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/ingest", response_model=IngestionReport)
async def ingest_prices(
    provider: Optional[str] = Query(
        default=None,
        description="Provider to ingest. Defaults to the configured provider."
    ),
):
    """
    Run one ingestion cycle. Meant to be called by an external scheduler.

    Raises:
        HTTPException: 404 for unknown providers, 409 if a cycle is already
        running, 502 if the price feed is unavailable.
    """
    provider_name = provider or settings.price_provider
    try:
        return await ingestion_service.run_cycle(provider_name)

    except UnknownProviderError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except IngestionInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except FeedUnavailableError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except PriceAPIException as e:
        logger.error("Ingestion failed", error=str(e), provider=provider_name)
        raise HTTPException(status_code=500, detail="Internal server error")
