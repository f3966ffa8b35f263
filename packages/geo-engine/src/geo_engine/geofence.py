import math

from geo_engine.distance import EARTH_RADIUS_METERS
from geo_engine.models import Coordinates

# Below this cosine the longitude span covers the whole circle.
_POLAR_COS_EPSILON = 1e-12


def is_within_bounding_box(point: Coordinates, center: Coordinates, range_meters: float) -> bool:
    """Cheap rectangular pre-filter; use haversine_distance_meters for the real answer."""
    if range_meters < 0:
        raise ValueError("range_meters must be >= 0")
    lat_delta = math.degrees(range_meters / EARTH_RADIUS_METERS)
    if abs(point.latitude - center.latitude) > lat_delta:
        return False

    cos_lat = math.cos(math.radians(center.latitude))
    if cos_lat < _POLAR_COS_EPSILON:
        return True
    lng_delta = lat_delta / cos_lat
    if lng_delta >= 180:
        return True
    return _longitude_gap(point.longitude, center.longitude) <= lng_delta


def _longitude_gap(first: float, second: float) -> float:
    gap = abs(first - second) % 360
    return 360 - gap if gap > 180 else gap
