"""
Great-circle geometry for carrier matching.
"""

import math
from dataclasses import dataclass


EARTH_RADIUS_KM = 6371.0

# Inclusive radius boundary tolerance (one micrometre)
BOUNDARY_TOLERANCE_KM = 1e-9


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in kilometers
    """
    lat1_rad = math.radians(lat1)
    lon1_rad = math.radians(lon1)
    lat2_rad = math.radians(lat2)
    lon2_rad = math.radians(lon2)

    dlat = lat2_rad - lat1_rad
    dlon = lon2_rad - lon1_rad

    a = math.sin(dlat / 2)**2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def within_radius(distance_km: float, radius_km: float) -> bool:
    return distance_km <= radius_km + BOUNDARY_TOLERANCE_KM


def bounding_box(center: GeoPoint, radius_km: float) -> tuple[float, float, float, float]:
    """
    Conservative (min_lat, max_lat, min_lon, max_lon) box around a circle.

    Used as an index-friendly SQL prefilter; callers still filter by
    haversine distance. Near the poles, or when the circle crosses the
    antimeridian, the longitude range is widened to the full circle.
    """
    angular = radius_km / EARTH_RADIUS_KM
    # Pad so floating error never trims a point sitting on the boundary
    lat_delta = math.degrees(angular) * 1.01 + 1e-9

    min_lat = max(center.latitude - lat_delta, -90.0)
    max_lat = min(center.latitude + lat_delta, 90.0)

    cos_lat = math.cos(math.radians(center.latitude))
    if min_lat <= -90.0 or max_lat >= 90.0 or cos_lat <= 1e-12 or math.sin(angular) >= cos_lat:
        return min_lat, max_lat, -180.0, 180.0

    lon_delta = math.degrees(math.asin(math.sin(angular) / cos_lat)) * 1.01 + 1e-9
    min_lon = center.longitude - lon_delta
    max_lon = center.longitude + lon_delta
    if min_lon < -180.0 or max_lon > 180.0:
        return min_lat, max_lat, -180.0, 180.0

    return min_lat, max_lat, min_lon, max_lon


def estimate_travel_minutes(distance_km: float, minutes_per_km: float = 3.0) -> int:
    """Urban ETA estimate used when a carrier departs."""
    return math.ceil(distance_km * minutes_per_km)
