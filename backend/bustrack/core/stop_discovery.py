"""Discover bus stops near a point from OpenStreetMap via the Overpass API."""

import logging
import re
from dataclasses import dataclass, field

import httpx

from bustrack.config import Settings
from bustrack.core import geo
from bustrack.errors import DiscoveryUnavailable, ValidationError

logger = logging.getLogger(__name__)

MIN_RADIUS_M = 200
MAX_RADIUS_M = 10_000
DEDUP_RADIUS_M = 30
MAX_RESULTS = 40
FALLBACK_NAME = "Bus Stop"

_ROUTE_SPLIT = re.compile(r"[;,]")


@dataclass
class DiscoveredStop:
    id: str  # "osm:node/123"
    name: str
    lat: float
    lng: float
    distance_meters: int
    kind: str = "bus_stop"  # bus_stop, bus_station, platform
    routes: list[str] = field(default_factory=list)
    has_name: bool = True  # bookkeeping, dropped from API output

    @property
    def distance_display(self) -> str:
        return geo.format_distance(self.distance_meters)


def clamp_radius(radius: float | None) -> int:
    if radius is None:
        return 1000
    return int(max(MIN_RADIUS_M, min(MAX_RADIUS_M, radius)))


def build_query(lat: float, lng: float, radius: int, timeout: float) -> str:
    """One union query so the mirror never splits the same stop across filters."""
    around = f"(around:{radius},{lat:.6f},{lng:.6f})"
    return f"""
[out:json][timeout:{int(timeout)}];
(
  nwr["highway"="bus_stop"]{around};
  nwr["amenity"="bus_station"]{around};
  nwr["public_transport"="platform"]["bus"="yes"]{around};
);
out center tags;
"""


def parse_route_codes(raw: str | None) -> list[str]:
    """'10; 10H,222r ;10' -> ['10', '10H', '222R']"""
    codes: list[str] = []
    for part in _ROUTE_SPLIT.split(raw or ""):
        code = part.strip().upper()
        if code and code not in codes:
            codes.append(code)
    return codes


def pick_name(tags: dict, name_keys: list[str]) -> str | None:
    for key in name_keys:
        value = (tags.get(key) or "").strip()
        if value:
            return value
    return None


def _kind(tags: dict) -> str:
    if tags.get("amenity") == "bus_station":
        return "bus_station"
    if tags.get("highway") == "bus_stop":
        return "bus_stop"
    return "platform"


def parse_elements(
    elements: list[dict], lat: float, lng: float, name_keys: list[str]
) -> list[DiscoveredStop]:
    """Turn raw Overpass elements into candidates; skips elements without coordinates."""
    candidates = []
    for el in elements:
        center = el.get("center") or {}
        el_lat = el.get("lat", center.get("lat"))
        el_lng = el.get("lon", center.get("lon"))
        try:
            el_lat = float(el_lat)
            el_lng = float(el_lng)
        except (TypeError, ValueError):
            continue
        if not geo.valid_coordinates(el_lat, el_lng):
            continue

        tags = el.get("tags") or {}
        name = pick_name(tags, name_keys)
        candidates.append(DiscoveredStop(
            id=f"osm:{el.get('type', 'node')}/{el.get('id')}",
            name=name or FALLBACK_NAME,
            lat=el_lat,
            lng=el_lng,
            distance_meters=geo.distance(lat, lng, el_lat, el_lng),
            kind=_kind(tags),
            routes=parse_route_codes(tags.get("route_ref")),
            has_name=name is not None,
        ))
    return candidates


def deduplicate(candidates: list[DiscoveredStop], radius_m: int = DEDUP_RADIUS_M) -> list[DiscoveredStop]:
    """Collapse candidates within ``radius_m`` of an already kept one.

    A named candidate replaces an unnamed kept entry; otherwise the first
    one seen wins.
    """
    kept: list[DiscoveredStop] = []
    for cand in candidates:
        match_idx = None
        for i, k in enumerate(kept):
            if geo.distance(cand.lat, cand.lng, k.lat, k.lng) <= radius_m:
                match_idx = i
                break
        if match_idx is None:
            kept.append(cand)
        elif not kept[match_idx].has_name and cand.has_name:
            kept[match_idx] = cand
    return kept


class StopDiscovery:
    """Overpass client with sequential mirror fallback."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.mirrors = list(settings.overpass_urls)
        self.timeout = settings.overpass_timeout_seconds
        self.name_keys = list(settings.discovery_name_keys)
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={"Accept": "application/json", "User-Agent": "bustrack/0.1"},
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def find_stops_near(self, lat: float, lng: float, radius: float | None = None) -> list[DiscoveredStop]:
        if not geo.valid_coordinates(lat, lng):
            raise ValidationError("Invalid coordinates: lat must be in [-90, 90] and lng in [-180, 180]")
        radius_m = clamp_radius(radius)

        data = await self._query(build_query(lat, lng, radius_m, self.timeout))
        candidates = parse_elements(data.get("elements", []), lat, lng, self.name_keys)
        stops = deduplicate(candidates)
        stops.sort(key=lambda s: s.distance_meters)
        logger.info(
            "Discovered %d stops (%d raw) within %dm of %.5f,%.5f",
            min(len(stops), MAX_RESULTS), len(candidates), radius_m, lat, lng,
        )
        return stops[:MAX_RESULTS]

    async def _query(self, query: str) -> dict:
        """POST the query to each mirror in turn until one answers."""
        timed_out = False
        for attempt, url in enumerate(self.mirrors, start=1):
            try:
                resp = await self._client.post(url, data={"data": query})
                resp.raise_for_status()
                return resp.json()
            except httpx.TimeoutException as e:
                timed_out = True
                logger.warning(
                    "Overpass mirror %d/%d (%s) timed out: %s",
                    attempt, len(self.mirrors), url, type(e).__name__,
                )
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(
                    "Overpass mirror %d/%d (%s) failed: %s",
                    attempt, len(self.mirrors), url, e,
                )
        logger.error("All %d Overpass mirrors failed (timed_out=%s)", len(self.mirrors), timed_out)
        raise DiscoveryUnavailable(timed_out=timed_out)
