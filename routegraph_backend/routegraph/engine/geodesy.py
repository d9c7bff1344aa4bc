"""
RouteGraph: Geodesic helpers
Coordinates are (longitude, latitude) pairs in degrees (EPSG:4326).
"""

import math

from routegraph.core.exceptions import InvalidGeometry

EARTH_RADIUS_KM = 6371.0

Coordinate = tuple[float, float]


def great_circle_km(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in kilometres between two (lon, lat) pairs."""
    lon1, lat1 = a
    lon2, lat2 = b
    p1, p2 = math.radians(lat1), math.radians(lat2)
    dp = math.radians(lat2 - lat1)
    dl = math.radians(lon2 - lon1)
    h = math.sin(dp / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(max(0.0, 1 - h)))


def ensure_finite(coord, context: str = "coordinate") -> Coordinate:
    """Return ``coord`` as a float (lon, lat) tuple, rejecting NaN/inf."""
    try:
        lon, lat = float(coord[0]), float(coord[1])
    except (TypeError, ValueError, IndexError) as e:
        raise InvalidGeometry(f"Malformed {context}: {coord!r}") from e
    if not (math.isfinite(lon) and math.isfinite(lat)):
        raise InvalidGeometry(f"Non-finite {context}: {coord!r}")
    return lon, lat
