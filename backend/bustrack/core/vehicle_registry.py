"""Current state of every bus and the driver service lifecycle.

A bus record is created when a driver starts a service and flipped to
inactive (never deleted) when the service stops. Each driver has at most one
active bus at a time.
"""

import asyncio
import datetime
import logging
from collections import defaultdict

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from bustrack.core.route_catalog import RouteCatalog, normalize_route_number
from bustrack.errors import ConflictError, NotFoundError, ValidationError, VehicleNotFound
from bustrack.models.tables import Bus, Driver
from bustrack.schemas.bus import StartServiceRequest

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"

ACTIVE_CONFLICT = "You already have an active bus service. Please stop it first."


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _same_place(a: str | None, b: str | None) -> bool:
    return bool(a and b) and a.strip().lower() == b.strip().lower()


class VehicleRegistry:
    def __init__(self, session_factory: async_sessionmaker, catalog: RouteCatalog) -> None:
        self.session_factory = session_factory
        self.catalog = catalog
        # Serializes starts per driver within this process; the partial unique
        # index on buses covers other processes
        self._start_locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def start_service(self, driver: Driver, req: StartServiceRequest) -> Bus:
        bus_number = _clean(req.bus_number) or driver.bus_number
        if not bus_number:
            raise ValidationError("Bus number is required")

        route_type = self._resolve_route_type(driver, req)
        bus = Bus(
            bus_number=bus_number.upper(),
            route_type=route_type,
            driver_id=driver.id,
            status=STATUS_ACTIVE,
            scheduled_departure=req.scheduled_departure,
        )
        if route_type == "city":
            await self._fill_city_trip(bus, driver, req)
        else:
            await self._fill_express_trip(bus, driver, req)

        async with self._start_locks[driver.id], self.session_factory() as session:
            existing = await session.execute(
                select(Bus.id).where(Bus.driver_id == driver.id, Bus.status == STATUS_ACTIVE).limit(1)
            )
            if existing.scalar_one_or_none() is not None:
                raise ConflictError(ACTIVE_CONFLICT)

            now = _utcnow()
            bus.started_at = now
            bus.last_updated = now
            session.add(bus)
            try:
                await session.commit()
            except IntegrityError:
                # Another process started a service for this driver first
                await session.rollback()
                raise ConflictError(ACTIVE_CONFLICT)

        logger.info(
            "Driver %d started bus %s (id=%d, %s %s)",
            driver.id, bus.bus_number, bus.id, route_type,
            bus.route_number or f"{bus.source_city}->{bus.destination_city}",
        )
        return bus

    async def stop_service(self, driver: Driver) -> Bus:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Bus).where(Bus.driver_id == driver.id, Bus.status == STATUS_ACTIVE)
            )
            buses = list(result.scalars().all())
            if not buses:
                raise NotFoundError("No active bus service found")
            now = _utcnow()
            for bus in buses:
                bus.status = STATUS_INACTIVE
                bus.ended_at = now
            await session.commit()

        logger.info("Driver %d stopped bus %s (id=%d)", driver.id, buses[0].bus_number, buses[0].id)
        return buses[0]

    async def get_active_for_driver(self, driver_id: int) -> Bus | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Bus)
                .where(Bus.driver_id == driver_id, Bus.status == STATUS_ACTIVE)
                .order_by(Bus.started_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get(self, bus_id: int) -> Bus:
        async with self.session_factory() as session:
            bus = await session.get(Bus, bus_id)
        if bus is None:
            raise VehicleNotFound()
        return bus

    async def list_active(self, route_number: str | None = None) -> list[Bus]:
        """Active buses that have reported at least one position."""
        stmt = select(Bus).where(
            Bus.status == STATUS_ACTIVE,
            Bus.lat.is_not(None),
            Bus.lng.is_not(None),
        )
        if route_number:
            stmt = stmt.where(Bus.route_number == normalize_route_number(route_number))
        stmt = stmt.order_by(Bus.bus_number)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def search(self, origin: str | None, destination: str | None) -> list[Bus]:
        """Active buses whose trip endpoints contain the given place names."""
        stmt = select(Bus).where(Bus.status == STATUS_ACTIVE)
        if origin and origin.strip():
            pattern = f"%{origin.strip().lower()}%"
            stmt = stmt.where(or_(
                func.lower(Bus.source_city).like(pattern),
                func.lower(Bus.start_location).like(pattern),
            ))
        if destination and destination.strip():
            pattern = f"%{destination.strip().lower()}%"
            stmt = stmt.where(or_(
                func.lower(Bus.destination_city).like(pattern),
                func.lower(Bus.end_location).like(pattern),
            ))
        stmt = stmt.order_by(Bus.bus_number)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def update_position(
        self, bus_id: int, lat: float, lng: float, heading: float, speed: float
    ) -> Bus:
        """Last write wins; no ordering is enforced between updates."""
        async with self.session_factory() as session:
            bus = await session.get(Bus, bus_id)
            if bus is None:
                raise VehicleNotFound()
            bus.lat = lat
            bus.lng = lng
            bus.heading = heading
            bus.speed = speed
            bus.last_updated = _utcnow()
            await session.commit()
        return bus

    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_route_type(driver: Driver, req: StartServiceRequest) -> str:
        if driver.route_type in ("city", "express"):
            if req.route_type and req.route_type != driver.route_type:
                raise ValidationError(f"You are registered for {driver.route_type} routes only")
            return driver.route_type
        if req.route_type:
            return req.route_type
        return "city" if _clean(req.route_number) else "express"

    async def _fill_city_trip(self, bus: Bus, driver: Driver, req: StartServiceRequest) -> None:
        route_number = normalize_route_number(req.route_number or "")
        if not route_number:
            raise ValidationError("Route number is required for city buses")
        route = await self.catalog.get_route(route_number)  # RouteNotFound propagates

        start = _clean(req.start_location)
        end = _clean(req.end_location)
        names = [s.name for s in route.stops]
        for label, place in (("Start", start), ("End", end)):
            if place and names and not any(_same_place(place, n) for n in names):
                raise ValidationError(f"{label} location '{place}' is not a stop on route {route_number}")

        bus.route_number = route_number
        bus.operating_city = _clean(req.operating_city) or driver.home_city or route.city
        bus.start_location = start or route.from_ or (names[0] if names else None)
        bus.end_location = end or route.to or (names[-1] if names else None)

    async def _fill_express_trip(self, bus: Bus, driver: Driver, req: StartServiceRequest) -> None:
        source = _clean(req.source_city)
        destination = _clean(req.destination_city)
        if not source or not destination:
            raise ValidationError("Source and destination cities are required for express buses")

        allowed = driver.operating_cities or []
        if allowed:
            for city in (source, destination):
                if not any(_same_place(city, c) for c in allowed):
                    raise ValidationError(f"{city} is not one of your operating cities")

        bus.source_city = source
        bus.destination_city = destination
        if _clean(req.route_number):
            route = await self.catalog.get_route(req.route_number)
            bus.route_number = route.route_number
        bus.start_location = _clean(req.start_location) or source
        bus.end_location = _clean(req.end_location) or destination
