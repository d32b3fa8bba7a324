"""
Geofence gate: decides whether a clock-in position is within the admission
radius of the configured office location.
"""
import enum
import logging
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from attendance_tracker.utils.geo import GeoPoint, distance_meters

_log = logging.getLogger(__name__)


class LocationErrorCode(str, enum.Enum):
    PERMISSION_DENIED = "PERMISSION_DENIED"
    POSITION_UNAVAILABLE = "POSITION_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    UNSUPPORTED = "UNSUPPORTED"
    OUT_OF_RANGE = "OUT_OF_RANGE"  # produced by the gate only, never by a location query


# Codes a device/location query can fail with
LOCATION_FAILURE_CODES = frozenset({
    LocationErrorCode.PERMISSION_DENIED,
    LocationErrorCode.POSITION_UNAVAILABLE,
    LocationErrorCode.TIMEOUT,
    LocationErrorCode.UNSUPPORTED,
})

_FAILURE_MESSAGES = {
    LocationErrorCode.PERMISSION_DENIED: "Location permission denied. Allow location access to clock in.",
    LocationErrorCode.POSITION_UNAVAILABLE: "Location information is unavailable.",
    LocationErrorCode.TIMEOUT: "Location request timed out.",
    LocationErrorCode.UNSUPPORTED: "Geolocation is not supported on this device.",
}


class GeofenceConfig(BaseModel):
    """Office location and admission radius. No office location = geofencing disabled."""
    office_location: Optional[GeoPoint] = None
    radius_meters: float = Field(..., gt=0)

    model_config = ConfigDict(frozen=True)

    @property
    def enabled(self) -> bool:
        return self.office_location is not None


class LocationFailure(BaseModel):
    """A location query that produced no position."""
    code: LocationErrorCode
    message: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class Verdict(BaseModel):
    """Admit/deny decision. Deny carries the reason and, for OUT_OF_RANGE, distance and radius."""
    admitted: bool
    reason: Optional[LocationErrorCode] = None
    distance_meters: Optional[float] = None
    radius_meters: Optional[float] = None
    message: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def admit(cls, distance: Optional[float] = None, radius: Optional[float] = None) -> "Verdict":
        return cls(admitted=True, distance_meters=distance, radius_meters=radius)

    @classmethod
    def deny(cls, reason: LocationErrorCode, message: str, **kwargs) -> "Verdict":
        return cls(admitted=False, reason=reason, message=message, **kwargs)

    @property
    def meters_over_limit(self) -> Optional[int]:
        """Whole meters beyond the radius for an OUT_OF_RANGE deny."""
        if self.distance_meters is None or self.radius_meters is None or self.admitted:
            return None
        return round(self.distance_meters - self.radius_meters)


def failure_message(code: LocationErrorCode) -> str:
    return _FAILURE_MESSAGES.get(code, "Unable to determine location.")


def is_within_radius(point: GeoPoint, center: GeoPoint, radius_meters: float) -> bool:
    """True if point lies within radius_meters of center (boundary inclusive)."""
    return distance_meters(center, point) <= radius_meters


def check_admission(config: GeofenceConfig, position: Union[GeoPoint, LocationFailure]) -> Verdict:
    """
    Decide whether a clock-in at position is admitted.

    A LocationFailure always denies with its own code, even when geofencing is
    disabled, since there is no position to admit. With geofencing disabled any
    real position is admitted. Otherwise the haversine distance to the office
    must be <= radius_meters.

    Args:
        config: Office location and radius
        position: Device position or the failure the location query produced

    Returns:
        Verdict (admit, or deny with reason and a human-readable message)
    """
    if isinstance(position, LocationFailure):
        return Verdict.deny(position.code, position.message or failure_message(position.code))

    if not config.enabled:
        return Verdict.admit()

    distance = distance_meters(config.office_location, position)
    if distance <= config.radius_meters:
        return Verdict.admit(distance=distance, radius=config.radius_meters)

    message = (
        f"You are {round(distance)}m from office; "
        f"must be within {round(config.radius_meters)}m"
    )
    _log.info(
        "geofence deny: position=(%s, %s) distance=%.1fm radius=%.1fm",
        position.latitude, position.longitude, distance, config.radius_meters,
    )
    return Verdict.deny(
        LocationErrorCode.OUT_OF_RANGE,
        message,
        distance_meters=distance,
        radius_meters=config.radius_meters,
    )
