"""Resolve a route number into its ordered stop sequence.

Stop-to-route associations are entered incrementally, so resolution falls
back through three sources before giving up:

1. the route's explicit, stored stop list;
2. a sequence synthesized from the route's free-text ``from``/``via``/``to``
   description, each name matched against the stops of the route's city;
3. a virtual route made of every stop tagged with the route number.

Synthesized sequences are never persisted; they are rebuilt on each call.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bustrack.errors import RouteNotFound
from bustrack.models.tables import Route, Stop, StopRoute

logger = logging.getLogger(__name__)

# Placeholder schedule spacing (minutes between consecutive stops)
VIA_STOP_INTERVAL_MIN = 10
VIRTUAL_STOP_INTERVAL_MIN = 15


@dataclass
class RouteStopView:
    name: str
    sequence: int
    is_major: bool = False
    eta_minutes: int = 0
    stop_id: int | None = None  # None for placeholders
    lat: float | None = None
    lng: float | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None


@dataclass
class RouteView:
    route_number: str
    route_name: str
    city: str | None = None
    from_: str | None = None
    to: str | None = None
    via_text: str | None = None
    notes: str | None = None
    stops: list[RouteStopView] = field(default_factory=list)
    source: str = "explicit"  # explicit, via, virtual


def normalize_route_number(route_number: str) -> str:
    return (route_number or "").strip().upper()


def waypoint_names(from_: str | None, via_text: str | None, to: str | None) -> list[str]:
    """Ordered waypoint names: from, each comma-separated via segment, to."""
    names = [seg.strip() for seg in (via_text or "").split(",")]
    names = [n for n in names if n]
    if from_ and from_.strip():
        names.insert(0, from_.strip())
    if to and to.strip():
        names.append(to.strip())
    return names


def synthesize_stops(names: list[str], known_stops: list[Stop]) -> list[RouteStopView]:
    """Bind each waypoint name to a known stop by case-insensitive name.

    Unmatched names become coordinate-less placeholders.
    """
    by_name: dict[str, Stop] = {}
    for s in known_stops:
        by_name.setdefault(s.name.strip().lower(), s)

    result = []
    last = len(names) - 1
    for i, name in enumerate(names):
        stop = by_name.get(name.lower())
        view = RouteStopView(
            name=stop.name if stop else name,
            sequence=i + 1,
            is_major=i == 0 or i == last,
            eta_minutes=i * VIA_STOP_INTERVAL_MIN,
        )
        if stop:
            view.stop_id = stop.id
            view.lat = stop.lat
            view.lng = stop.lng
        result.append(view)
    return result


def virtual_stops(tagged: list[Stop]) -> list[RouteStopView]:
    """Route made of tagged stops, ordered by name (not geography)."""
    ordered = sorted(tagged, key=lambda s: (s.name.lower(), s.id or 0))
    return [
        RouteStopView(
            name=s.name,
            sequence=i + 1,
            eta_minutes=i * VIRTUAL_STOP_INTERVAL_MIN,
            stop_id=s.id,
            lat=s.lat,
            lng=s.lng,
        )
        for i, s in enumerate(ordered)
    ]


class RouteCatalog:
    """Route lookup with graceful synthesis of missing stop sequences."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self.session_factory = session_factory

    async def get_route(self, route_number: str) -> RouteView:
        """Route metadata plus its resolved stop sequence.

        Raises ``RouteNotFound`` when neither a route record nor any stop
        tagged with the number exists.
        """
        number = normalize_route_number(route_number)
        async with self.session_factory() as session:
            return await self._resolve(session, number)

    async def get_route_stops(self, route_number: str) -> list[RouteStopView]:
        return (await self.get_route(route_number)).stops

    async def search_routes(self, query: str | None = None, city: str | None = None, limit: int = 50) -> list[Route]:
        """Routes whose number, name, endpoints or via-text contain ``query``."""
        stmt = select(Route)
        if query:
            pattern = f"%{query.strip().lower()}%"
            stmt = stmt.where(or_(
                func.lower(Route.route_number).like(pattern),
                func.lower(Route.route_name).like(pattern),
                func.lower(Route.from_).like(pattern),
                func.lower(Route.to).like(pattern),
                func.lower(Route.via_text).like(pattern),
            ))
        if city:
            stmt = stmt.where(func.lower(Route.city) == city.strip().lower())
        stmt = stmt.order_by(Route.route_number).limit(limit)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ------------------------------------------------------------------

    async def _resolve(self, session: AsyncSession, number: str) -> RouteView:
        result = await session.execute(select(Route).where(Route.route_number == number))
        route = result.scalar_one_or_none()

        if route is not None:
            view = RouteView(
                route_number=route.route_number,
                route_name=route.route_name,
                city=route.city,
                from_=route.from_,
                to=route.to,
                via_text=route.via_text,
                notes=route.notes,
            )
            if route.stops:
                view.stops = [
                    RouteStopView(
                        name=rs.stop.name,
                        sequence=rs.sequence,
                        is_major=rs.is_major,
                        eta_minutes=rs.estimated_time_from_start,
                        stop_id=rs.stop.id,
                        lat=rs.stop.lat,
                        lng=rs.stop.lng,
                    )
                    for rs in route.stops
                ]
                return view

            if route.via_text and route.via_text.strip():
                names = waypoint_names(route.from_, route.via_text, route.to)
                known = await self._stops_in_city(session, route.city)
                view.stops = synthesize_stops(names, known)
                view.source = "via"
                unresolved = [s.name for s in view.stops if not s.has_coordinates]
                if unresolved:
                    logger.debug(
                        "Route %s: %d/%d via stops unresolved: %s",
                        number, len(unresolved), len(view.stops), unresolved[:10],
                    )
                return view

        tagged = await self._tagged_stops(session, number)
        if route is None and not tagged:
            raise RouteNotFound(number)

        stops = virtual_stops(tagged)
        if route is not None:
            view.stops = stops
            view.source = "virtual"
            return view

        return RouteView(
            route_number=number,
            route_name=f"Route {number}",
            city=next((s.city for s in tagged if s.city), None),
            stops=stops,
            source="virtual",
        )

    @staticmethod
    async def _stops_in_city(session: AsyncSession, city: str | None) -> list[Stop]:
        if not city:
            return []
        result = await session.execute(
            select(Stop).where(func.lower(Stop.city) == city.strip().lower()).order_by(Stop.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def _tagged_stops(session: AsyncSession, number: str) -> list[Stop]:
        result = await session.execute(
            select(Stop)
            .join(StopRoute, StopRoute.stop_id == Stop.id)
            .where(StopRoute.route_number == number)
        )
        return list(result.scalars().unique().all())
