"""Spherical geodesy helpers (distance, bearing, interpolation, offsets)."""

import math

from ..constants import ErrorMessages

MEAN_EARTH_RADIUS_M = 6371008.8
METERS_PER_DEG_LAT = 111320.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute great-circle distance between two points in metres.

    Args:
        lat1, lon1: First point (degrees)
        lat2, lon2: Second point (degrees)

    Returns:
        Distance in metres
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return MEAN_EARTH_RADIUS_M * c


def initial_bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial compass bearing from point 1 to point 2, in [0, 360)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dlam = math.radians(lon2 - lon1)

    y = math.sin(dlam) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlam)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def interpolate(
    lat1: float, lon1: float, lat2: float, lon2: float, fraction: float
) -> tuple[float, float]:
    """Linear lat/lon interpolation; adequate over the short spans sampled here."""
    return lat1 + (lat2 - lat1) * fraction, lon1 + (lon2 - lon1) * fraction


def midpoint(lat1: float, lon1: float, lat2: float, lon2: float) -> tuple[float, float]:
    return (lat1 + lat2) / 2.0, (lon1 + lon2) / 2.0


def degree_offsets(lat: float, distance_m: float) -> tuple[float, float]:
    """Convert a ground distance to (lat, lon) degree offsets at ``lat``."""
    dlat = distance_m / METERS_PER_DEG_LAT
    cos_lat = max(math.cos(math.radians(lat)), 1e-6)
    dlon = distance_m / (METERS_PER_DEG_LAT * cos_lat)
    return dlat, dlon


def validate_lat_lon(lat: float, lon: float) -> None:
    if not (isinstance(lat, (int, float)) and -90.0 <= lat <= 90.0):
        raise ValueError(ErrorMessages.INVALID_LATITUDE.format(lat))
    if not (isinstance(lon, (int, float)) and -180.0 <= lon <= 180.0):
        raise ValueError(ErrorMessages.INVALID_LONGITUDE.format(lon))
