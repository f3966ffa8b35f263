"""Geo engine core package."""

from geo_engine.distance import EARTH_RADIUS_METERS, haversine_distance_meters
from geo_engine.formatting import format_distance
from geo_engine.geofence import is_within_bounding_box
from geo_engine.models import AccuracyTier, Coordinates, GpsVerificationResult
from geo_engine.scoring import DEFAULT_MAX_RANGE_METERS, GPS_MAX_SCORE, score_gps, verify_gps_location

__all__ = [
    "AccuracyTier",
    "Coordinates",
    "DEFAULT_MAX_RANGE_METERS",
    "EARTH_RADIUS_METERS",
    "GPS_MAX_SCORE",
    "GpsVerificationResult",
    "format_distance",
    "haversine_distance_meters",
    "is_within_bounding_box",
    "score_gps",
    "verify_gps_location",
]
