"""Distance and zone helpers"""

import math
from typing import Any, Optional, Sequence

EARTH_RADIUS_MILES = 3959


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in miles"""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def point_in_polygon(lng: float, lat: float, ring: Sequence[Sequence[float]]) -> bool:
    """Ray casting against a ring of (lng, lat) points"""
    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        if (yi > lat) != (yj > lat) and lng < (xj - xi) * (lat - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def outer_ring(polygon_geojson: Optional[dict[str, Any]]) -> Optional[list[tuple[float, float]]]:
    """First ring of a GeoJSON Polygon, None for anything else"""
    if not polygon_geojson:
        return None
    coordinates = polygon_geojson.get("coordinates") or []
    if not coordinates or not coordinates[0]:
        return None
    return [(float(point[0]), float(point[1])) for point in coordinates[0]]
