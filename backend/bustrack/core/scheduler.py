"""APScheduler setup for periodic tasks."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from bustrack.config import Settings
from bustrack.core.broadcaster import Broadcaster
from bustrack.core.progress_engine import RouteProgressEngine
from bustrack.errors import RouteNotFound
from bustrack.schemas.route import LiveStatusResponse

logger = logging.getLogger(__name__)

ROUTE_ROOM_PREFIX = "route:"


async def push_route_status(engine: RouteProgressEngine, broadcaster: Broadcaster) -> int:
    """Publish a fresh live status to every watched route room.

    Returns the number of routes pushed.
    """
    pushed = 0
    for room in broadcaster.rooms_with_prefix(ROUTE_ROOM_PREFIX):
        route_number = room[len(ROUTE_ROOM_PREFIX):]
        try:
            status = await engine.get_live_status(route_number)
        except RouteNotFound:
            logger.debug("Watched route %s does not exist", route_number)
            continue
        body = LiveStatusResponse.from_status(status).model_dump(mode="json", by_alias=True)
        await broadcaster.publish(room, "routeStatus", body)
        pushed += 1
    return pushed


def create_scheduler(settings: Settings, engine: RouteProgressEngine, broadcaster: Broadcaster) -> AsyncIOScheduler:
    """Create and configure the scheduler with all jobs."""
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        push_route_status,
        "interval",
        seconds=settings.live_push_interval_seconds,
        args=[engine, broadcaster],
        id="push_route_status",
        name="Push live route status to watchers",
        max_instances=1,
        coalesce=True,
    )

    return scheduler
