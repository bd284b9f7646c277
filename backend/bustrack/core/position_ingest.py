"""Accept position updates from driver devices and broadcast them."""

import logging

from bustrack.core import geo
from bustrack.core.broadcaster import Broadcaster, bus_room, route_room
from bustrack.core.vehicle_registry import VehicleRegistry
from bustrack.errors import ValidationError
from bustrack.models.tables import Bus

logger = logging.getLogger(__name__)


class PositionIngest:
    """Persist first, then publish to the bus room and the bus's route room."""

    def __init__(self, registry: VehicleRegistry, broadcaster: Broadcaster) -> None:
        self.registry = registry
        self.broadcaster = broadcaster

    async def update_position(
        self,
        bus_id: int | str | None,
        lat: float | str | None,
        lng: float | str | None,
        heading: float | str | None = None,
        speed: float | str | None = None,
    ) -> Bus:
        """Raw device values are coerced here; anything unusable is rejected."""
        if bus_id in (None, "") or lat is None or lng is None:
            raise ValidationError("Invalid location data")
        try:
            bus_id = int(bus_id)
            lat = float(lat)
            lng = float(lng)
            heading = float(heading or 0)
            speed = float(speed or 0)
        except (TypeError, ValueError):
            raise ValidationError("Invalid location data")
        if not geo.valid_coordinates(lat, lng):
            raise ValidationError("Invalid location data")

        bus = await self.registry.update_position(bus_id, lat, lng, heading, speed)

        payload = {
            "busId": bus.id,
            "busNumber": bus.bus_number,
            "lat": lat,
            "lng": lng,
            "heading": heading,
            "speed": speed,
            "timestamp": bus.last_updated.isoformat() if bus.last_updated else None,
        }
        await self.broadcaster.publish(bus_room(bus.id), "busLocationUpdated", payload)
        if bus.route_number:
            await self.broadcaster.publish(
                route_room(bus.route_number), "locationUpdated",
                {**payload, "routeNumber": bus.route_number},
            )
        logger.debug("Location updated for bus %s: %.5f, %.5f", bus.bus_number, lat, lng)
        return bus
