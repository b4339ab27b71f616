"""Common utility functions."""

from .geo import EARTH_RADIUS_KM, calculate_distance, distance

__all__ = [
    "EARTH_RADIUS_KM",
    "calculate_distance",
    "distance",
]
