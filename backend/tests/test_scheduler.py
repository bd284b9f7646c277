"""Tests for the periodic live route push."""

import asyncio

import orjson

from bustrack.core.broadcaster import Broadcaster
from bustrack.core.progress_engine import LiveStatus
from bustrack.core.route_catalog import RouteStopView, RouteView
from bustrack.core.scheduler import create_scheduler, push_route_status
from bustrack.errors import RouteNotFound
from conftest import make_settings


class FakeEngine:
    async def get_live_status(self, route_number: str) -> LiveStatus:
        if route_number != "222R":
            raise RouteNotFound(route_number)
        route = RouteView(
            route_number="222R", route_name="Ameerpet - Hitech City", city="Hyderabad",
            from_="Ameerpet", to="Hitech City",
            stops=[RouteStopView(name="Ameerpet", sequence=1, lat=17.4375, lng=78.4483)],
        )
        return LiveStatus(route=route)


def test_push_only_to_watched_existing_routes():
    async def _run():
        b = Broadcaster()
        q = b.subscribe()
        b.join("route:222R", q)
        b.join("route:999X", q)
        b.join("bus:1", q)
        pushed = await push_route_status(FakeEngine(), b)
        return pushed, q

    pushed, q = asyncio.run(_run())
    assert pushed == 1
    msg = orjson.loads(q.get_nowait())
    assert q.empty()
    assert msg["event"] == "routeStatus"
    assert msg["data"]["routeNumber"] == "222R"
    assert msg["data"]["from"] == "Ameerpet"
    assert msg["data"]["queueCount"] == 0
    assert msg["data"]["stops"][0]["estimatedTimeFromStart"] == 0


def test_scheduler_has_push_job():
    scheduler = create_scheduler(make_settings(live_push_interval_seconds=7), FakeEngine(), Broadcaster())
    job = scheduler.get_job("push_route_status")
    assert job is not None
    assert job.trigger.interval.total_seconds() == 7
