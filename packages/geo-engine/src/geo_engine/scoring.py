from __future__ import annotations

from geo_engine.distance import haversine_distance_meters
from geo_engine.models import AccuracyTier, Coordinates, GpsVerificationResult

DEFAULT_MAX_RANGE_METERS = 100
GPS_MAX_SCORE = 40

# (upper bound inclusive, score, tier), checked in order
GPS_SCORE_TIERS: tuple[tuple[float, int, AccuracyTier], ...] = (
    (20, GPS_MAX_SCORE, AccuracyTier.EXACT),
    (50, 35, AccuracyTier.CLOSE),
    (100, 25, AccuracyTier.NEAR),
)


def score_gps(
    distance_meters: float,
    max_range_meters: float = DEFAULT_MAX_RANGE_METERS,
) -> GpsVerificationResult:
    if distance_meters < 0:
        raise ValueError("distance_meters must be >= 0")
    if max_range_meters < 0:
        raise ValueError("max_range_meters must be >= 0")
    score, tier = 0, AccuracyTier.FAR
    for upper_bound, tier_score, tier_name in GPS_SCORE_TIERS:
        if distance_meters <= upper_bound:
            score, tier = tier_score, tier_name
            break
    return GpsVerificationResult(
        distance_meters=round(distance_meters),
        within_range=distance_meters <= max_range_meters,
        score=score,
        accuracy_tier=tier,
    )


def verify_gps_location(
    user_location: Coordinates,
    venue_location: Coordinates,
    max_range_meters: float | None = None,
) -> GpsVerificationResult:
    distance = haversine_distance_meters(user_location, venue_location)
    if max_range_meters is None:
        max_range_meters = DEFAULT_MAX_RANGE_METERS
    return score_gps(distance, max_range_meters)
