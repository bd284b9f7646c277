"""Route detail and live route progress endpoints."""

from fastapi import APIRouter, Depends

from bustrack.api.deps import get_services
from bustrack.schemas.route import LiveStatusResponse, RouteOut, RouteResponse
from bustrack.services import Services

router = APIRouter(prefix="/api/bus/route", tags=["routes"])


@router.get("/live/{route_number}", response_model=LiveStatusResponse)
async def live_status(route_number: str, services: Services = Depends(get_services)):
    """Stops, active buses with their progress, and the approaching-bus count."""
    status = await services.progress.get_live_status(route_number)
    return LiveStatusResponse.from_status(status)


@router.get("/{route_number}", response_model=RouteResponse)
async def get_route(route_number: str, services: Services = Depends(get_services)):
    """Route detail with stops, synthesized when no explicit list is stored."""
    route = await services.catalog.get_route(route_number)
    return RouteResponse(route=RouteOut.from_view(route))
