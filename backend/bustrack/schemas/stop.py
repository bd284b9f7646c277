from bustrack.schemas.base import CamelModel


class StopOut(CamelModel):
    id: int
    name: str
    lat: float
    lng: float
    city: str | None = None
    landmark: str | None = None
    routes: list[str] = []


class NearbyStopOut(StopOut):
    distance_meters: int
    distance_display: str


class DiscoveredStopOut(CamelModel):
    id: str
    name: str
    lat: float
    lng: float
    distance_meters: int
    distance_display: str
    kind: str
    routes: list[str] = []


class StopListResponse(CamelModel):
    success: bool = True
    count: int
    stops: list[StopOut]


class NearbyStopsResponse(CamelModel):
    success: bool = True
    count: int
    radius: float
    stops: list[NearbyStopOut]


class RealtimeStopsResponse(CamelModel):
    success: bool = True
    count: int
    radius: int
    stops: list[DiscoveredStopOut]
