"""Seed the catalog with a sample Hyderabad network.

Usage: ``python -m bustrack.seed``. Safe to re-run: stops are upserted by
name and city, routes by route number, and a route's stop list is replaced.
"""

import asyncio
import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from bustrack.config import Settings
from bustrack.db.session import create_engine, create_session_factory
from bustrack.models.base import Base
from bustrack.models.tables import Route, RouteStop, Stop, StopRoute

logger = logging.getLogger(__name__)

CITY = "Hyderabad"

# name -> (lat, lng, landmark)
STOPS = {
    "Ameerpet": (17.4375, 78.4483, "Metro Station"),
    "SR Nagar": (17.4410, 78.4420, None),
    "ESI": (17.4470, 78.4300, "ESI Hospital"),
    "Erragadda": (17.4570, 78.4270, None),
    "Hitech City": (17.4474, 78.3762, "Cyber Towers"),
    "Secunderabad": (17.4399, 78.4983, "Railway Station"),
    "Paradise": (17.4435, 78.4867, None),
    "Begumpet": (17.4440, 78.4620, None),
    "Punjagutta": (17.4260, 78.4510, None),
    "Mehdipatnam": (17.3950, 78.4400, None),
    "Koti": (17.3850, 78.4800, "Women's College"),
    "Abids": (17.3930, 78.4760, None),
    "Nampally": (17.3920, 78.4680, None),
}

# Explicit stop lists: (name, is_major, minutes from start)
ROUTES = [
    {
        "route_number": "222R",
        "route_name": "Ameerpet - Hitech City",
        "from_": "Ameerpet",
        "to": "Hitech City",
        "via_text": "SR Nagar, ESI, Erragadda",
        "stops": [
            ("Ameerpet", True, 0),
            ("SR Nagar", False, 6),
            ("ESI", False, 12),
            ("Erragadda", False, 18),
            ("Hitech City", True, 35),
        ],
    },
    {
        "route_number": "10H",
        "route_name": "Secunderabad - Mehdipatnam",
        "from_": "Secunderabad",
        "to": "Mehdipatnam",
        "via_text": "Paradise, Begumpet, Ameerpet, Punjagutta, Masab Tank",
        "stops": [],  # synthesized from via text; Masab Tank stays a placeholder
    },
]

# Stops tagged with a route that has no route record
TAGGED = {"47L": ["Koti", "Abids", "Nampally"]}


async def _upsert_stop(session: AsyncSession, name: str) -> Stop:
    lat, lng, landmark = STOPS[name]
    result = await session.execute(select(Stop).where(Stop.name == name, Stop.city == CITY))
    stop = result.scalar_one_or_none()
    if stop is None:
        stop = Stop(name=name, lat=lat, lng=lng, city=CITY, landmark=landmark)
        stop.route_links = []
        session.add(stop)
        await session.flush()
    return stop


def _tag(stop: Stop, route_number: str) -> None:
    if route_number not in stop.routes:
        stop.route_links.append(StopRoute(route_number=route_number))


async def seed(session: AsyncSession) -> None:
    stops = {name: await _upsert_stop(session, name) for name in STOPS}

    for entry in ROUTES:
        result = await session.execute(select(Route).where(Route.route_number == entry["route_number"]))
        route = result.scalar_one_or_none()
        if route is None:
            route = Route(route_number=entry["route_number"], route_name=entry["route_name"], city=CITY)
            session.add(route)
        route.route_name = entry["route_name"]
        route.from_ = entry["from_"]
        route.to = entry["to"]
        route.via_text = entry["via_text"]
        await session.flush()

        await session.execute(delete(RouteStop).where(RouteStop.route_id == route.id))
        for seq, (name, is_major, eta) in enumerate(entry["stops"], start=1):
            session.add(RouteStop(
                route_id=route.id, stop_id=stops[name].id, sequence=seq,
                is_major=is_major, estimated_time_from_start=eta,
            ))
            _tag(stops[name], route.route_number)

    for route_number, names in TAGGED.items():
        for name in names:
            _tag(stops[name], route_number)

    await session.commit()
    logger.info("Seeded %d stops, %d routes, %d tagged-only routes", len(STOPS), len(ROUTES), len(TAGGED))


async def main() -> None:
    settings = Settings()
    engine = create_engine(settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = create_session_factory(engine)
    async with session_factory() as session:
        await seed(session)
    await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)-8s %(name)s: %(message)s")
    asyncio.run(main())
