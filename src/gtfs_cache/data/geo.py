"""Great-circle distance and bounding-box helpers (WGS-84 degrees, meters)."""

import math
from typing import Tuple

EARTH_RADIUS_METERS = 6371e3
METERS_PER_DEGREE = 111000
BBOX_SAFETY_FACTOR = 1.5


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in meters between two coordinates."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def bounding_box(lat: float, lon: float, radius_meters: float) -> Tuple[float, float, float, float]:
    """
    Coarse box guaranteed to contain every point within radius_meters.

    Longitude degrees shrink with cos(latitude); both offsets are inflated
    by BBOX_SAFETY_FACTOR.
    Known limitation: the box does not wrap at +/-180 degrees longitude, and
    close to the poles the cos-latitude offset can miss points.

    Returns:
        (min_lat, max_lat, min_lon, max_lon)
    """
    lat_offset = (radius_meters / METERS_PER_DEGREE) * BBOX_SAFETY_FACTOR

    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-12:
        # At the poles every longitude is within range
        lon_offset = 180.0
    else:
        lon_offset = (radius_meters / (METERS_PER_DEGREE * cos_lat)) * BBOX_SAFETY_FACTOR

    return lat - lat_offset, lat + lat_offset, lon - lon_offset, lon + lon_offset
