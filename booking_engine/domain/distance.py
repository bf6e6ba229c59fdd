"""
Distance calculation using the Haversine formula.

Assumption
----------
Great-circle distance stands in for road distance.  Technicians drive,
so the figure under-estimates the real route; the ETA derived from it is
a rough "as the crow flies" estimate, not a routing result.

Inputs are decimal degrees.  Ranges are NOT validated here: a latitude
outside [-90, 90] or longitude outside [-180, 180] yields a number with
no geographic meaning.  The API schemas reject such values at the edge.

Complexity: O(1) per call.
"""

import math

EARTH_RADIUS_M = 6_371_000.0


def distance_meters(
    lat1: float, lon1: float, lat2: float, lon2: float
) -> float:
    """Return the great-circle distance in **metres** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def estimate_travel_minutes(distance_m: float, average_speed_kmh: float) -> int:
    """
    Minutes needed to cover *distance_m* at a constant average speed.

    Halves round up, so 2.5 minutes is reported as 3.
    """
    minutes = distance_m * 60 / (average_speed_kmh * 1000)
    return math.floor(minutes + 0.5)


def round_km(distance_m: float) -> float:
    """Metres -> kilometres, rounded to one decimal place."""
    return math.floor(distance_m / 100 + 0.5) / 10
