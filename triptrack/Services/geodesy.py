# triptrack/Services/geodesy.py

from math import asin, cos, radians, sin, sqrt

EARTH_RADIUS_M = 6371000


def calculate_haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance in meters between two points given in decimal degrees.

    Assumes a spherical Earth of radius 6,371 km. Out-of-range coordinates
    are not rejected; they simply yield a meaningless distance.
    """
    lon1, lat1, lon2, lat2 = map(radians, [lon1, lat1, lon2, lat2])
    dlon = lon2 - lon1
    dlat = lat2 - lat1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Rounding can push a marginally above 1 for antipodal points
    c = 2 * asin(sqrt(min(1.0, a)))
    return c * EARTH_RADIUS_M


distance = calculate_haversine_distance
