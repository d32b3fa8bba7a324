"""Geolocation utilities for attendance clock-in.

Great-circle distance between two latitude/longitude points using the
haversine formula.
"""
from math import atan2, cos, radians, sin, sqrt

from pydantic import BaseModel, ConfigDict, Field

# Mean Earth radius in meters
EARTH_RADIUS_METERS = 6_371_000


class GeoPoint(BaseModel):
    """Immutable latitude/longitude pair in degrees."""
    latitude: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in degrees")

    model_config = ConfigDict(frozen=True)

    def to_geo_dict(self) -> dict:
        """lat/lng dict in the shape stored on attendance records."""
        return {"lat": self.latitude, "lng": self.longitude}


def distance_meters(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in meters.

    Args:
        a: First point
        b: Second point

    Returns:
        Non-negative distance in meters

    Example:
        >>> round(distance_meters(GeoPoint(latitude=28.6139, longitude=77.2090),
        ...                       GeoPoint(latitude=28.6140, longitude=77.2091)))
        15
    """
    lat1, lat2 = radians(a.latitude), radians(b.latitude)
    dlat = radians(b.latitude - a.latitude)
    dlng = radians(b.longitude - a.longitude)

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    # rounding can push h a hair outside [0, 1] for antipodal points
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_METERS * atan2(sqrt(h), sqrt(1 - h))
