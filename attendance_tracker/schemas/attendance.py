"""
Attendance schemas (live session state, device location reports, ledger records).
"""
import json
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from attendance_tracker.services.attendance_session_service import SessionSnapshot, SessionState
from attendance_tracker.services.geofence_service import (
    LOCATION_FAILURE_CODES,
    GeofenceConfig,
    LocationErrorCode,
    LocationFailure,
    Verdict,
)
from attendance_tracker.services.location_provider import LocationRequestOptions
from attendance_tracker.utils.datetime_utils import iso_local
from attendance_tracker.utils.geo import GeoPoint


def _serialize_dt_local(dt: Optional[datetime]) -> Optional[str]:
    """Serialize datetime in the configured local timezone for API responses."""
    return iso_local(dt)


class GeoOut(BaseModel):
    lat: float
    lng: float

    @classmethod
    def from_point(cls, point: Optional[GeoPoint]) -> Optional["GeoOut"]:
        if point is None:
            return None
        return cls(lat=point.latitude, lng=point.longitude)


class LocationReportRequest(BaseModel):
    """
    Device answer to a location query: either a fix (lat, lng, optional accuracy)
    or the error the device reported (PERMISSION_DENIED, POSITION_UNAVAILABLE,
    TIMEOUT, UNSUPPORTED).
    """
    lat: Optional[float] = Field(None, ge=-90, le=90, description="GPS latitude")
    lng: Optional[float] = Field(None, ge=-180, le=180, description="GPS longitude")
    accuracy: Optional[float] = Field(None, gt=0, description="Accuracy in meters")
    error: Optional[LocationErrorCode] = Field(None, description="Device location error code")
    message: Optional[str] = None

    @field_validator("error")
    @classmethod
    def check_error_code(cls, v: Optional[LocationErrorCode]) -> Optional[LocationErrorCode]:
        if v is not None and v not in LOCATION_FAILURE_CODES:
            raise ValueError(f"{v.value} cannot be reported by a device")
        return v

    @model_validator(mode="after")
    def check_position_or_error(self) -> "LocationReportRequest":
        has_position = self.lat is not None and self.lng is not None
        if (self.lat is None) != (self.lng is None):
            raise ValueError("lat and lng must be provided together")
        if has_position == (self.error is not None):
            raise ValueError("Provide either lat/lng or error")
        return self

    def to_position(self) -> Union[GeoPoint, LocationFailure]:
        if self.error is not None:
            return LocationFailure(code=self.error, message=self.message)
        return GeoPoint(latitude=self.lat, longitude=self.lng)


class LocationOptionsOut(BaseModel):
    """Options the client should pass to its geolocation call."""
    high_accuracy: bool
    timeout_ms: int
    maximum_age_ms: int

    model_config = ConfigDict(from_attributes=True)


class VerdictOut(BaseModel):
    admitted: bool
    reason: Optional[LocationErrorCode] = None
    distance_meters: Optional[float] = None
    radius_meters: Optional[float] = None
    meters_over_limit: Optional[int] = None
    message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("distance_meters", when_used="always")
    def _round_distance(self, v: Optional[float]) -> Optional[float]:
        return round(v, 1) if v is not None else None

    @classmethod
    def from_verdict(cls, verdict: Optional[Verdict]) -> Optional["VerdictOut"]:
        if verdict is None:
            return None
        return cls.model_validate(verdict)


class SessionStateOut(BaseModel):
    """Live session state polled by the attendance view. Datetimes in the local timezone."""
    employee_id: int
    state: SessionState
    clock_in_at: Optional[datetime] = None
    elapsed_seconds: int
    working_seconds: int
    break_seconds: int
    accumulated_break_seconds: int
    current_break_seconds: int
    last_location_error: Optional[LocationErrorCode] = None
    last_verdict: Optional[VerdictOut] = None
    last_known_location: Optional[GeoOut] = None
    location_check_pending: bool
    # Present while the server is waiting for the device to report its position
    location_request: Optional[LocationOptionsOut] = None

    @field_serializer("clock_in_at", when_used="always")
    def _serialize_datetime_local(self, dt: Optional[datetime]) -> Optional[str]:
        return _serialize_dt_local(dt)

    @classmethod
    def from_snapshot(
        cls,
        employee_id: int,
        snapshot: SessionSnapshot,
        location_request: Optional[LocationRequestOptions] = None,
    ) -> "SessionStateOut":
        return cls(
            employee_id=employee_id,
            state=snapshot.state,
            clock_in_at=snapshot.clock_in_at,
            elapsed_seconds=snapshot.elapsed_seconds,
            working_seconds=snapshot.working_seconds,
            break_seconds=snapshot.break_seconds,
            accumulated_break_seconds=snapshot.accumulated_break_seconds,
            current_break_seconds=snapshot.current_break_seconds,
            last_location_error=snapshot.last_location_error,
            last_verdict=VerdictOut.from_verdict(snapshot.last_verdict),
            last_known_location=GeoOut.from_point(snapshot.last_known_location),
            location_check_pending=snapshot.location_check_pending,
            location_request=LocationOptionsOut.model_validate(location_request) if location_request else None,
        )


class GeofenceOut(BaseModel):
    """Active geofence and the options used for device location queries."""
    enabled: bool
    office_location: Optional[GeoOut] = None
    radius_meters: float
    location_request: LocationOptionsOut

    @classmethod
    def from_config(cls, config: GeofenceConfig, options: LocationRequestOptions) -> "GeofenceOut":
        return cls(
            enabled=config.enabled,
            office_location=GeoOut.from_point(config.office_location),
            radius_meters=config.radius_meters,
            location_request=LocationOptionsOut.model_validate(options),
        )


def _ensure_geo_dict(v: Any) -> Optional[Dict[str, Any]]:
    """Ensure geo is a dict for JSON response (ORM may return str for SQLite JSON column)."""
    if v is None:
        return None
    if isinstance(v, dict):
        return v
    if isinstance(v, str):
        try:
            return json.loads(v)
        except (TypeError, ValueError):
            return None
    return None


class AttendanceRecordDto(BaseModel):
    """Completed session from the ledger; datetimes in the local timezone."""
    id: int
    employee_id: int
    work_date: date
    clock_in_at: datetime
    clock_out_at: datetime
    elapsed_seconds: int
    break_seconds: int
    working_seconds: int
    clock_in_geo: Optional[Dict[str, Any]] = None
    is_late: bool
    minutes_late: int
    is_early_out: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("clock_in_geo", mode="before")
    @classmethod
    def geo_to_dict(cls, v: Any) -> Optional[Dict[str, Any]]:
        return _ensure_geo_dict(v)

    @field_serializer("clock_in_at", "clock_out_at", "created_at", when_used="always")
    def _serialize_datetime_local(self, dt: Optional[datetime]) -> Optional[str]:
        return _serialize_dt_local(dt)


class AttendanceRecordListResponse(BaseModel):
    """List of ledger records with total"""
    items: List[AttendanceRecordDto]
    total: int


class MonthlySummaryOut(BaseModel):
    year: int
    month: int
    days_present: int
    late_days: int
    early_out_days: int
    late_or_early_days: int
    total_working_seconds: int
    total_break_seconds: int
    sessions: int
