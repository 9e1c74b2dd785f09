"""Great-circle geometry for station filtering and weighting.

Distances are on a spherical Earth of radius 6371 km.  The proximity weight
is a raised-cosine ("Hann") window: 1.0 at the reference point, falling to
0.0 at the filter radius.
"""

import math

EARTH_RADIUS_KM = 6371.0


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine great-circle distance in km between two lat/lon points."""
    rlat1, rlat2 = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlon / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.asin(math.sqrt(min(a, 1.0)))


def bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial bearing in degrees [0, 360) from point 1 to point 2."""
    dlon = math.radians(lon2 - lon1)
    rlat1, rlat2 = math.radians(lat1), math.radians(lat2)
    x = math.sin(dlon) * math.cos(rlat2)
    y = math.cos(rlat1) * math.sin(rlat2) - math.sin(rlat1) * math.cos(rlat2) * math.cos(dlon)
    bearing = math.degrees(math.atan2(x, y))
    if bearing < 0:
        bearing += 360.0
    return bearing


def proximity_weight(distance: float, radius: float) -> float:
    """Hann weight sin^2(pi * (radius - distance) / (2 * radius)).

    Gives 1.0 at distance 0 and 0.0 at distance == radius.  Beyond the
    radius the expression rises again, so callers must range-check the
    distance before using the weight.

    Raises:
        ValueError: if radius is not positive.
    """
    if radius <= 0:
        raise ValueError(f"radius must be positive, got {radius}")
    s = math.sin(math.pi * (radius - distance) / (2.0 * radius))
    return s * s
