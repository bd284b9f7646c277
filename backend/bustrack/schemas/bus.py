import datetime
from typing import Literal

from pydantic import Field

from bustrack.schemas.base import CamelModel
from bustrack.schemas.route import RouteSummary

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class StartServiceRequest(CamelModel):
    bus_number: str | None = None
    route_type: Literal["city", "express"] | None = None  # needed only for "both" drivers
    route_number: str | None = None
    operating_city: str | None = None
    source_city: str | None = None
    destination_city: str | None = None
    start_location: str | None = None
    end_location: str | None = None
    scheduled_departure: str | None = Field(default=None, pattern=HHMM_PATTERN)


class PositionUpdate(CamelModel):
    bus_id: int
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    heading: float | None = 0.0
    speed: float | None = 0.0


class Location(CamelModel):
    lat: float | None = None
    lng: float | None = None


class BusOut(CamelModel):
    id: int
    bus_number: str
    route_type: str
    status: str
    started_at: datetime.datetime | None = None
    ended_at: datetime.datetime | None = None
    last_updated: datetime.datetime | None = None
    operating_city: str | None = None
    route_number: str | None = None
    source_city: str | None = None
    destination_city: str | None = None
    start_location: str | None = None
    end_location: str | None = None
    scheduled_departure: str | None = None
    current_location: Location | None = None
    heading: float = 0.0
    speed: float = 0.0

    @classmethod
    def from_bus(cls, bus) -> "BusOut":
        out = cls.model_validate(bus)
        out.current_location = Location(lat=bus.lat, lng=bus.lng)
        return out


class ActiveBusOut(CamelModel):
    id: int
    bus_number: str
    route_type: str
    route_number: str | None = None
    source_city: str | None = None
    destination_city: str | None = None
    start_location: str | None = None
    end_location: str | None = None
    lat: float | None = None
    lng: float | None = None
    heading: float = 0.0
    speed: float = 0.0
    last_updated: datetime.datetime | None = None


class BusServiceResponse(CamelModel):
    success: bool = True
    message: str
    bus: BusOut


class BusStatusResponse(CamelModel):
    success: bool = True
    is_active: bool
    bus: BusOut | None = None


class ActiveBusesResponse(CamelModel):
    success: bool = True
    count: int
    buses: list[ActiveBusOut]


class BusSearchResponse(CamelModel):
    success: bool = True
    count: int
    buses: list[ActiveBusOut]
    routes: list[RouteSummary] = []


class PositionResponse(CamelModel):
    success: bool = True
    bus_id: int
    bus_number: str
    lat: float
    lng: float
    last_updated: datetime.datetime | None = None
