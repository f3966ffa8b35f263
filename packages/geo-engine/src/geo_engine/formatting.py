import math
from decimal import ROUND_HALF_UP, Decimal

_ONE_DECIMAL = Decimal("0.1")


def format_distance(meters: float) -> str:
    if meters < 0:
        raise ValueError("meters must be >= 0")
    # Bucket on the raw value: 999.9 stays in meters and renders as "1000m".
    if meters < 1000:
        return f"{math.floor(meters + 0.5)}m"
    # Round the exact binary value of the quotient: 1150 m is 1.1499... km.
    kilometers = Decimal(meters / 1000).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP)
    return f"{kilometers}km"
