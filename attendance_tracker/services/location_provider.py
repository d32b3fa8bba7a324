"""
Location provider contract for clock-in location checks.

A provider answers one asynchronous "where is the device now" query. The
session machine bounds each query with options.timeout_ms and never issues a
second query while one is outstanding.
"""
import asyncio
import logging
from typing import Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from attendance_tracker.services.geofence_service import (
    LOCATION_FAILURE_CODES,
    LocationErrorCode,
    failure_message,
)
from attendance_tracker.utils.geo import GeoPoint

_log = logging.getLogger(__name__)


class LocationRequestOptions(BaseModel):
    """Options for a device location query (mirrors the browser geolocation options)."""
    high_accuracy: bool = True
    timeout_ms: int = Field(default=10000, gt=0)
    maximum_age_ms: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)


class LocationError(Exception):
    """Raised by a provider when the device could not produce a position."""

    def __init__(self, code: LocationErrorCode, message: Optional[str] = None):
        if code not in LOCATION_FAILURE_CODES:
            raise ValueError(f"{code} is not a location query failure code")
        self.code = LocationErrorCode(code)
        self.message = message or failure_message(self.code)
        super().__init__(self.message)


class LocationProvider(Protocol):
    async def request_current_position(self, options: LocationRequestOptions) -> GeoPoint:
        """Return the current position or raise LocationError."""
        ...


class ClientReportedLocationProvider:
    """
    Provider whose query is answered by the client device.

    request_current_position parks a future; the HTTP layer resolves it when the
    device posts its fix (report_position) or its error (report_failure).
    """

    def __init__(self):
        self._waiter: Optional[asyncio.Future] = None

    @property
    def awaiting_report(self) -> bool:
        return self._waiter is not None and not self._waiter.done()

    async def request_current_position(self, options: LocationRequestOptions) -> GeoPoint:
        if self.awaiting_report:
            raise RuntimeError("A location report is already pending")
        waiter = asyncio.get_running_loop().create_future()
        self._waiter = waiter
        try:
            return await waiter
        finally:
            # a cancelled query must not clear the waiter of the one that replaced it
            if self._waiter is waiter:
                self._waiter = None

    def report_position(self, point: GeoPoint) -> bool:
        """Deliver the device fix. Returns False when no query is waiting."""
        if not self.awaiting_report:
            _log.debug("position report ignored: no pending location query")
            return False
        self._waiter.set_result(point)
        return True

    def report_failure(self, code: LocationErrorCode, message: Optional[str] = None) -> bool:
        """Deliver the device error. Returns False when no query is waiting."""
        if not self.awaiting_report:
            _log.debug("failure report ignored: no pending location query")
            return False
        self._waiter.set_exception(LocationError(code, message))
        return True
