"""Bus service lifecycle, position ingest and active bus queries."""

from fastapi import APIRouter, Depends, Query

from bustrack.api.deps import current_driver, get_services
from bustrack.errors import VehicleNotFound
from bustrack.models.tables import Driver
from bustrack.schemas.bus import (
    ActiveBusesResponse,
    ActiveBusOut,
    BusOut,
    BusSearchResponse,
    BusServiceResponse,
    BusStatusResponse,
    PositionResponse,
    PositionUpdate,
    StartServiceRequest,
)
from bustrack.schemas.route import RouteSummary
from bustrack.services import Services

router = APIRouter(prefix="/api/bus", tags=["bus"])


@router.post("/start", response_model=BusServiceResponse, status_code=201)
async def start_service(
    req: StartServiceRequest,
    driver: Driver = Depends(current_driver),
    services: Services = Depends(get_services),
):
    bus = await services.registry.start_service(driver, req)
    return BusServiceResponse(message="Bus service started successfully!", bus=BusOut.from_bus(bus))


@router.post("/stop", response_model=BusServiceResponse)
async def stop_service(
    driver: Driver = Depends(current_driver),
    services: Services = Depends(get_services),
):
    bus = await services.registry.stop_service(driver)
    return BusServiceResponse(message="Bus service stopped successfully!", bus=BusOut.from_bus(bus))


@router.get("/status", response_model=BusStatusResponse)
async def service_status(
    driver: Driver = Depends(current_driver),
    services: Services = Depends(get_services),
):
    """Current active bus of the logged-in driver, if any."""
    bus = await services.registry.get_active_for_driver(driver.id)
    if bus is None:
        return BusStatusResponse(is_active=False, bus=None)
    return BusStatusResponse(is_active=True, bus=BusOut.from_bus(bus))


@router.post("/location", response_model=PositionResponse)
async def update_location(
    update: PositionUpdate,
    driver: Driver = Depends(current_driver),
    services: Services = Depends(get_services),
):
    """Position update from the driver's device; only the owning driver may send it."""
    active = await services.registry.get_active_for_driver(driver.id)
    if active is None or active.id != update.bus_id:
        raise VehicleNotFound("No active bus service with this id for the current driver")
    bus = await services.ingest.update_position(
        update.bus_id, update.lat, update.lng, update.heading, update.speed,
    )
    return PositionResponse(
        bus_id=bus.id, bus_number=bus.bus_number,
        lat=bus.lat, lng=bus.lng, last_updated=bus.last_updated,
    )


@router.get("/active", response_model=ActiveBusesResponse)
async def active_buses(
    route_number: str | None = Query(default=None, alias="routeNumber"),
    services: Services = Depends(get_services),
):
    """All active buses with a known position."""
    buses = await services.registry.list_active(route_number)
    out = [ActiveBusOut.model_validate(b) for b in buses]
    return ActiveBusesResponse(count=len(out), buses=out)


@router.get("/search", response_model=BusSearchResponse)
async def search(
    origin: str | None = Query(default=None, alias="from"),
    destination: str | None = Query(default=None, alias="to"),
    services: Services = Depends(get_services),
):
    """Active buses and catalog routes matching a from/to pair."""
    buses = await services.registry.search(origin, destination)
    routes = []
    for term in (origin, destination):
        if term and term.strip():
            routes.extend(await services.catalog.search_routes(term))
    # Keep routes matching both terms first, then the rest, without repeats
    seen: dict[str, RouteSummary] = {}
    counts: dict[str, int] = {}
    for r in routes:
        counts[r.route_number] = counts.get(r.route_number, 0) + 1
        seen.setdefault(r.route_number, RouteSummary.model_validate(r))
    ordered = sorted(seen.values(), key=lambda s: (-counts[s.route_number], s.route_number))

    out = [ActiveBusOut.model_validate(b) for b in buses]
    return BusSearchResponse(count=len(out), buses=out, routes=ordered)
