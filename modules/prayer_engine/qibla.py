# modules/prayer_engine/qibla.py
"""
Qibla direction: initial great-circle bearing from a location to the Kaaba.
Pure math, no network - available even when every other layer is down.
"""

import math

__all__ = ['KAABA_LATITUDE', 'KAABA_LONGITUDE', 'qibla_bearing', 'compass_point']

KAABA_LATITUDE = 21.4225
KAABA_LONGITUDE = 39.8262

_COMPASS_POINTS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")


def qibla_bearing(latitude: float, longitude: float) -> float:
    """
    Bearing in degrees clockwise from true north, normalized to [0, 360).

    Args:
        latitude: Observer latitude in degrees
        longitude: Observer longitude in degrees
    """
    phi = math.radians(latitude)
    phi_k = math.radians(KAABA_LATITUDE)
    delta_lambda = math.radians(KAABA_LONGITUDE - longitude)

    y = math.sin(delta_lambda)
    x = math.cos(phi) * math.tan(phi_k) - math.sin(phi) * math.cos(delta_lambda)
    bearing = math.degrees(math.atan2(y, x)) % 360.0

    # Floating point can land exactly on 360.0 for tiny negative angles
    return 0.0 if bearing >= 360.0 else bearing


def compass_point(bearing: float) -> str:
    """Eight-point compass label for a bearing, e.g. 52.4 -> 'NE'."""
    return _COMPASS_POINTS[int(((bearing % 360.0) + 22.5) // 45.0) % 8]
