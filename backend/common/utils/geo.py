"""
Geographic utility functions.

This module provides core geospatial calculations used throughout the application.
"""

from math import radians, cos, sin, asin, sqrt
from typing import Tuple

EARTH_RADIUS_KM = 6371.0

Coordinates = Tuple[float, float]


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points in kilometres using Haversine formula.
    
    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point
    
    Returns:
        Distance in kilometres
    """
    lat1, lon1, lat2, lon2 = map(radians, [float(lat1), float(lon1), float(lat2), float(lon2)])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Clamp against float drift for antipodal points
    c = 2 * asin(min(1.0, sqrt(a)))
    return c * EARTH_RADIUS_KM


def distance(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance in km between two (lat, lon) pairs."""
    return calculate_distance(a[0], a[1], b[0], b[1])
