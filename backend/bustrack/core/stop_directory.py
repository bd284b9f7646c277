"""Catalog of known stops: text search, radius search, and absorption of discovered stops."""

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from bustrack.core import geo
from bustrack.core.stop_discovery import DiscoveredStop
from bustrack.errors import ValidationError
from bustrack.models.tables import Stop, StopRoute

logger = logging.getLogger(__name__)

MIN_NEAR_RADIUS_M = 50
MAX_NEAR_RADIUS_M = 10_000
DEFAULT_NEAR_RADIUS_M = 1000
ABSORB_ATTEMPTS = 2


def clamp_near_radius(radius: float | None) -> float:
    if radius is None:
        return DEFAULT_NEAR_RADIUS_M
    return max(MIN_NEAR_RADIUS_M, min(MAX_NEAR_RADIUS_M, radius))


@dataclass
class NearbyStop:
    stop: Stop
    distance_meters: int


class StopDirectory:
    def __init__(self, session_factory: async_sessionmaker) -> None:
        self.session_factory = session_factory
        self._absorb_lock = asyncio.Lock()

    async def search(self, query: str | None = None, city: str | None = None, limit: int = 50) -> list[Stop]:
        """Stops whose name contains ``query`` (case-insensitive), optionally in ``city``."""
        stmt = select(Stop)
        if query and query.strip():
            stmt = stmt.where(func.lower(Stop.name).like(f"%{query.strip().lower()}%"))
        if city and city.strip():
            stmt = stmt.where(func.lower(Stop.city) == city.strip().lower())
        stmt = stmt.order_by(Stop.name, Stop.id).limit(limit)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def near(self, lat: float, lng: float, radius: float | None = None) -> list[NearbyStop]:
        """Stops within ``radius`` meters, nearest first."""
        if not geo.valid_coordinates(lat, lng):
            raise ValidationError("Invalid coordinates: lat must be in [-90, 90] and lng in [-180, 180]")
        radius_m = clamp_near_radius(radius)

        min_lat, max_lat, min_lng, max_lng = geo.bounding_box(lat, lng, radius_m)
        stmt = select(Stop).where(
            Stop.lat.between(min_lat, max_lat),
            Stop.lng.between(min_lng, max_lng),
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            candidates = result.scalars().all()

        nearby = []
        for s in candidates:
            d = geo.distance(lat, lng, s.lat, s.lng)
            if d <= radius_m:
                nearby.append(NearbyStop(stop=s, distance_meters=d))
        nearby.sort(key=lambda n: n.distance_meters)
        return nearby

    async def absorb(self, discovered: list[DiscoveredStop], city: str | None = None) -> int:
        """Upsert discovered stops by external reference; route tags only grow.

        Returns the number of newly created stops.
        """
        if not discovered:
            return 0
        async with self._absorb_lock:
            for attempt in range(1, ABSORB_ATTEMPTS + 1):
                try:
                    created = await self._merge(discovered, city)
                    break
                except IntegrityError:
                    # Another process inserted one of the same refs; merge again
                    if attempt == ABSORB_ATTEMPTS:
                        raise
                    logger.info("Discovered stop merge collided, retrying")
        if created:
            logger.info("Absorbed %d new discovered stops", created)
        return created

    async def _merge(self, discovered: list[DiscoveredStop], city: str | None) -> int:
        refs = [d.id for d in discovered]
        created = 0
        async with self.session_factory() as session:
            result = await session.execute(select(Stop).where(Stop.external_ref.in_(refs)))
            existing = {s.external_ref: s for s in result.scalars().all()}

            for d in discovered:
                stop = existing.get(d.id)
                if stop is None:
                    stop = Stop(name=d.name, lat=d.lat, lng=d.lng, city=city, external_ref=d.id)
                    stop.route_links = []
                    session.add(stop)
                    existing[d.id] = stop
                    created += 1
                known = set(stop.routes)
                for code in d.routes:
                    if code not in known:
                        stop.route_links.append(StopRoute(route_number=code))
                        known.add(code)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise
        return created
