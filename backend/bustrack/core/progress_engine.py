"""Live route progress: place each active bus on its route's stop sequence.

For every active bus on a route the engine finds the nearest stop that has
coordinates, the stop after it, and a discrete status. Proximity is checked
before direction of travel, so a bus close to any stop (including one it
already passed, e.g. on a loop) is reported by proximity.
"""

import datetime
import logging
from dataclasses import dataclass, field
from functools import cmp_to_key

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from bustrack.core import geo
from bustrack.core.route_catalog import RouteCatalog, RouteStopView, RouteView, normalize_route_number
from bustrack.models.tables import Bus

logger = logging.getLogger(__name__)

AT_STATION_M = 50
ARRIVING_M = 300

STATUS_AT_STATION = "at-station"
STATUS_ARRIVING = "arriving"
STATUS_DEPARTED = "departed"
STATUS_IN_TRANSIT = "in-transit"

# Statuses of buses still converging on a stop
QUEUE_STATUSES = frozenset({STATUS_IN_TRANSIT, STATUS_ARRIVING})


@dataclass
class ProgressRecord:
    bus_id: int
    bus_number: str
    lat: float | None
    lng: float | None
    last_stop_sequence: int
    next_stop_sequence: int | None
    status: str
    distance_to_nearest_stop: int | None  # None = unknown position or no located stop
    nearest_stop_name: str | None = None
    speed: float = 0.0
    heading: float = 0.0
    scheduled_start_time: str | None = None
    last_updated: datetime.datetime | None = None
    start_location: str | None = None
    end_location: str | None = None


@dataclass
class LiveStatus:
    route: RouteView
    active_buses: list[ProgressRecord] = field(default_factory=list)
    queue_count: int = 0

    @property
    def stops(self) -> list[RouteStopView]:
        return self.route.stops


def find_nearest_stop(
    lat: float | None, lng: float | None, stops: list[RouteStopView]
) -> tuple[RouteStopView | None, int | None]:
    """Nearest located stop and its distance in meters.

    Placeholders without coordinates are skipped. Returns ``(None, None)``
    when the position is unknown or no stop is located.
    """
    if lat is None or lng is None:
        return None, None
    best: RouteStopView | None = None
    best_dist: int | None = None
    for s in stops:
        if not s.has_coordinates:
            continue
        d = geo.distance(lat, lng, s.lat, s.lng)
        if best_dist is None or d < best_dist:
            best = s
            best_dist = d
    return best, best_dist


def infer_status(distance_m: int | None, nearest_sequence: int | None) -> str:
    """First matching rule wins: proximity, then direction of travel."""
    if distance_m is not None:
        if distance_m < AT_STATION_M:
            return STATUS_AT_STATION
        if distance_m < ARRIVING_M:
            return STATUS_ARRIVING
    if nearest_sequence is not None and nearest_sequence > 1:
        return STATUS_DEPARTED
    return STATUS_IN_TRANSIT


def build_progress(bus: Bus, stops: list[RouteStopView]) -> ProgressRecord:
    nearest, dist = find_nearest_stop(bus.lat, bus.lng, stops)

    if nearest is None:
        last_seq, next_seq = 1, 2
    else:
        last_seq = nearest.sequence
        following = next((s for s in stops if s.sequence == nearest.sequence + 1), None)
        next_seq = following.sequence if following else None

    return ProgressRecord(
        bus_id=bus.id,
        bus_number=bus.bus_number,
        lat=bus.lat,
        lng=bus.lng,
        last_stop_sequence=last_seq,
        next_stop_sequence=next_seq,
        status=infer_status(dist, nearest.sequence if nearest else None),
        distance_to_nearest_stop=dist,
        nearest_stop_name=nearest.name if nearest else None,
        speed=bus.speed or 0.0,
        heading=bus.heading or 0.0,
        scheduled_start_time=bus.scheduled_departure,
        last_updated=bus.last_updated,
        start_location=bus.start_location,
        end_location=bus.end_location,
    )


def _compare(a: ProgressRecord, b: ProgressRecord) -> int:
    if a.scheduled_start_time and b.scheduled_start_time:
        ka, kb = a.scheduled_start_time, b.scheduled_start_time
    else:
        ka, kb = a.bus_number, b.bus_number
    return (ka > kb) - (ka < kb)


def order_queue(records: list[ProgressRecord]) -> list[ProgressRecord]:
    """Scheduled time when both records have one, bus number otherwise."""
    return sorted(records, key=cmp_to_key(_compare))


def queue_count(records: list[ProgressRecord]) -> int:
    return sum(1 for r in records if r.status in QUEUE_STATUSES)


class RouteProgressEngine:
    """Computes the live status of a route from the registry and catalog."""

    def __init__(self, session_factory: async_sessionmaker, catalog: RouteCatalog) -> None:
        self.session_factory = session_factory
        self.catalog = catalog

    async def get_live_status(self, route_number: str) -> LiveStatus:
        number = normalize_route_number(route_number)
        route = await self.catalog.get_route(number)
        buses = await self._active_buses(number)

        records = order_queue([build_progress(b, route.stops) for b in buses])
        status = LiveStatus(route=route, active_buses=records, queue_count=queue_count(records))
        logger.debug(
            "Route %s live: %d stops, %d active, queue=%d",
            number, len(route.stops), len(records), status.queue_count,
        )
        return status

    async def _active_buses(self, number: str) -> list[Bus]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Bus).where(Bus.status == "active", Bus.route_number == number)
            )
            return list(result.scalars().all())
