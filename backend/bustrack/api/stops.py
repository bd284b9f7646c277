"""Stop search, radius search and live discovery endpoints."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError

from bustrack.api.deps import get_services
from bustrack.core import geo
from bustrack.core.stop_directory import clamp_near_radius
from bustrack.core.stop_discovery import clamp_radius
from bustrack.schemas.stop import (
    DiscoveredStopOut,
    NearbyStopOut,
    NearbyStopsResponse,
    RealtimeStopsResponse,
    StopListResponse,
    StopOut,
)
from bustrack.services import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bus/stops", tags=["stops"])


@router.get("/search", response_model=StopListResponse)
async def search_stops(
    q: str | None = None,
    city: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    services: Services = Depends(get_services),
):
    stops = await services.stops.search(q, city, limit=limit)
    out = [StopOut.model_validate(s) for s in stops]
    return StopListResponse(count=len(out), stops=out)


@router.get("/near", response_model=NearbyStopsResponse)
async def stops_near(
    lat: float,
    lng: float,
    radius: float | None = None,
    services: Services = Depends(get_services),
):
    """Known stops around a point, nearest first."""
    nearby = await services.stops.near(lat, lng, radius)
    out = [
        NearbyStopOut(
            **StopOut.model_validate(n.stop).model_dump(),
            distance_meters=n.distance_meters,
            distance_display=geo.format_distance(n.distance_meters),
        )
        for n in nearby
    ]
    return NearbyStopsResponse(count=len(out), radius=clamp_near_radius(radius), stops=out)


@router.get("/realtime", response_model=RealtimeStopsResponse)
async def stops_realtime(
    lat: float,
    lng: float,
    radius: float | None = None,
    services: Services = Depends(get_services),
):
    """Bus stops from OpenStreetMap around a point, deduplicated."""
    found = await services.discovery.find_stops_near(lat, lng, radius)
    try:
        await services.stops.absorb(found)
    except SQLAlchemyError:
        # Stops are still returned; they get stored on a later lookup
        logger.exception("Failed to store %d discovered stops", len(found))
    out = [DiscoveredStopOut.model_validate(s) for s in found]
    return RealtimeStopsResponse(count=len(out), radius=clamp_radius(radius), stops=out)
