"""Great-circle distance helpers."""

from __future__ import annotations

import math

from hazardscout.models.hazard import GeoPoint

#: Mean Earth radius in metres.
EARTH_RADIUS_M: float = 6371e3


def haversine_meters(a: GeoPoint, b: GeoPoint) -> float:
    """Distance between two points in metres (haversine formula)."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    d_phi = math.radians(b.latitude - a.latitude)
    d_lambda = math.radians(b.longitude - a.longitude)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def format_distance(meters: float) -> str:
    """``"350m"`` below one kilometre, ``"1.2km"`` above."""
    if meters < 1000:
        return f"{round(meters)}m"
    return f"{meters / 1000:.1f}km"
