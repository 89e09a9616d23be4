"""Great-circle distance between two coordinates."""

import math
from typing import Literal

from ..models import Coordinates

EARTH_RADIUS_KM = 6371.0

_UNIT_FACTORS = {"km": 1.0, "miles": 0.621371, "meters": 1000.0}


def is_valid_coordinate(coords: Coordinates | None) -> bool:
    if coords is None:
        return False
    lat, lon = coords.lat, coords.lon
    if math.isnan(lat) or math.isnan(lon):
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


def haversine_km(
    a: Coordinates,
    b: Coordinates,
    *,
    earth_radius_km: float = EARTH_RADIUS_KM,
) -> float:
    """Haversine distance in kilometres.

    Raises ``ValueError`` when either coordinate is out of range.
    """
    if not is_valid_coordinate(a) or not is_valid_coordinate(b):
        raise ValueError(
            "Invalid coordinates: latitude must be within [-90, 90] and "
            "longitude within [-180, 180]"
        )

    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.lon) - math.radians(a.lon)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return earth_radius_km * c


def distance(
    a: Coordinates,
    b: Coordinates,
    unit: Literal["km", "miles", "meters"] = "km",
) -> float:
    """Distance in the requested unit, rounded to two decimals for display."""
    return round(haversine_km(a, b) * _UNIT_FACTORS[unit], 2)
