"""
Geo helpers for check-in/check-out location validation
"""
from math import asin, cos, radians, sin, sqrt

EARTH_RADIUS_METERS = 6371000.0


def distance_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle (haversine) distance between two WGS84 points, in meters."""
    d_lat = radians(lat2 - lat1)
    d_lng = radians(lng2 - lng1)
    a = sin(d_lat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(d_lng / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * asin(sqrt(a))
