import datetime

from pydantic import Field

from bustrack.schemas.base import CamelModel


class RouteStopOut(CamelModel):
    stop_id: int | None = None
    name: str
    sequence: int
    is_major: bool = False
    estimated_time_from_start: int = 0  # minutes
    lat: float | None = None
    lng: float | None = None
    resolved: bool = True

    @classmethod
    def from_view(cls, view) -> "RouteStopOut":
        return cls(
            stop_id=view.stop_id,
            name=view.name,
            sequence=view.sequence,
            is_major=view.is_major,
            estimated_time_from_start=view.eta_minutes,
            lat=view.lat,
            lng=view.lng,
            resolved=view.has_coordinates,
        )


class RouteSummary(CamelModel):
    route_number: str
    route_name: str
    city: str | None = None
    from_: str | None = Field(default=None, alias="from")
    to: str | None = None
    via_text: str | None = None


class RouteOut(RouteSummary):
    notes: str | None = None
    source: str = "explicit"
    stops: list[RouteStopOut] = []

    @classmethod
    def from_view(cls, view) -> "RouteOut":
        return cls(
            route_number=view.route_number,
            route_name=view.route_name,
            city=view.city,
            from_=view.from_,
            to=view.to,
            via_text=view.via_text,
            notes=view.notes,
            source=view.source,
            stops=[RouteStopOut.from_view(s) for s in view.stops],
        )


class RouteResponse(CamelModel):
    success: bool = True
    route: RouteOut


class ProgressRecordOut(CamelModel):
    bus_id: int
    bus_number: str
    lat: float | None = None
    lng: float | None = None
    last_stop_sequence: int
    next_stop_sequence: int | None = None
    status: str
    distance_to_nearest_stop: int | None = None
    nearest_stop_name: str | None = None
    speed: float = 0.0
    heading: float = 0.0
    scheduled_start_time: str | None = None
    last_updated: datetime.datetime | None = None
    start_location: str | None = None
    end_location: str | None = None


class LiveStatusResponse(RouteSummary):
    success: bool = True
    stops: list[RouteStopOut] = []
    active_buses: list[ProgressRecordOut] = []
    queue_count: int = 0

    @classmethod
    def from_status(cls, status) -> "LiveStatusResponse":
        route = status.route
        return cls(
            route_number=route.route_number,
            route_name=route.route_name,
            city=route.city,
            from_=route.from_,
            to=route.to,
            via_text=route.via_text,
            stops=[RouteStopOut.from_view(s) for s in route.stops],
            active_buses=[ProgressRecordOut.model_validate(r) for r in status.active_buses],
            queue_count=status.queue_count,
        )
