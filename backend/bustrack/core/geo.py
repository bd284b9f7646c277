"""Great-circle distance helpers."""

import math

EARTH_RADIUS_M = 6_371_000

# Meters per degree of latitude on the same sphere
_LAT_M_PER_DEG = EARTH_RADIUS_M * math.pi / 180


def distance(lat1: float, lon1: float, lat2: float, lon2: float) -> int:
    """Haversine distance in whole meters between two lat/lon points."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlon / 2) ** 2)
    a = min(1.0, a)  # float noise near antipodes
    return round(EARTH_RADIUS_M * 2 * math.asin(math.sqrt(a)))


def format_distance(meters: float) -> str:
    """Human label, e.g. '850 m' or '1.25 km'."""
    if meters < 1000:
        return f"{round(meters)} m"
    return f"{meters / 1000:.2f} km"


def bounding_box(lat: float, lng: float, radius_m: float) -> tuple[float, float, float, float]:
    """(min_lat, max_lat, min_lng, max_lng) enclosing a circle of radius_m.

    Used as a cheap store-side prefilter; callers still check ``distance``.
    """
    dlat = radius_m / _LAT_M_PER_DEG
    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-6:
        dlng = 180.0
    else:
        dlng = min(180.0, radius_m / (_LAT_M_PER_DEG * cos_lat))
    return (lat - dlat, lat + dlat, lng - dlng, lng + dlng)


def valid_coordinates(lat: float, lng: float) -> bool:
    return -90 <= lat <= 90 and -180 <= lng <= 180
