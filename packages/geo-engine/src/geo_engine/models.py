from __future__ import annotations

import math
from dataclasses import dataclass
from enum import StrEnum


@dataclass(frozen=True)
class Coordinates:
    """WGS-84 position in degrees."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not math.isfinite(self.latitude) or not -90 <= self.latitude <= 90:
            raise ValueError("latitude must be between -90 and 90")
        if not math.isfinite(self.longitude) or not -180 <= self.longitude <= 180:
            raise ValueError("longitude must be between -180 and 180")


class AccuracyTier(StrEnum):
    EXACT = "exact"
    CLOSE = "close"
    NEAR = "near"
    FAR = "far"


@dataclass(frozen=True)
class GpsVerificationResult:
    distance_meters: int
    within_range: bool
    score: int
    accuracy_tier: AccuracyTier
