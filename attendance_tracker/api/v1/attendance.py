"""
Attendance endpoints: live clock-in / break / clock-out session per employee,
device location reports for the geofence check, and the completed-session ledger.
"""
import asyncio
import logging
from contextlib import contextmanager
from datetime import date
from typing import Iterator, Optional, Union

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from attendance_tracker.core.deps import get_db, get_session_registry
from attendance_tracker.schemas.attendance import (
    AttendanceRecordDto,
    AttendanceRecordListResponse,
    GeofenceOut,
    LocationReportRequest,
    MonthlySummaryOut,
    SessionStateOut,
    VerdictOut,
)
from attendance_tracker.services.attendance_ledger_service import (
    list_my_records,
    monthly_summary,
    record_completed_session,
)
from attendance_tracker.services.attendance_session_service import (
    AttendanceSessionMachine,
    CompletedSession,
    LocationCheckError,
    SessionSnapshot,
)
from attendance_tracker.services.geofence_service import LocationFailure, check_admission
from attendance_tracker.services.location_provider import ClientReportedLocationProvider
from attendance_tracker.services.session_registry import SessionRegistry
from attendance_tracker.utils.geo import GeoPoint

router = APIRouter()
_log = logging.getLogger(__name__)

_DELIVERY_ATTEMPTS = 5


def _state_out(employee_id: int, machine: AttendanceSessionMachine, snapshot: Optional[SessionSnapshot] = None) -> SessionStateOut:
    """Snapshot plus the location options while the device still owes a position."""
    snapshot = snapshot or machine.current_state()
    location_request = machine.location_options if snapshot.location_check_pending else None
    return SessionStateOut.from_snapshot(employee_id, snapshot, location_request)


def _deliver(provider: ClientReportedLocationProvider, position: Union[GeoPoint, LocationFailure]) -> bool:
    if isinstance(position, GeoPoint):
        return provider.report_position(position)
    return provider.report_failure(position.code, position.message)


# --- Geofence ---


@router.get("/geofence", response_model=GeofenceOut)
async def geofence_endpoint(registry: SessionRegistry = Depends(get_session_registry)):
    """Active geofence (office location, radius) and the options for device location queries."""
    return GeofenceOut.from_config(registry.config, registry.location_options)


@router.post("/geofence/check", response_model=VerdictOut)
async def geofence_check_endpoint(
    body: LocationReportRequest,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Stateless gate check: would this position (or device error) be admitted for clock-in?"""
    verdict = check_admission(registry.config, body.to_position())
    return VerdictOut.from_verdict(verdict)


# --- Live session ---


@contextmanager
def _session(registry: SessionRegistry, employee_id: int) -> Iterator[AttendanceSessionMachine]:
    """The employee's machine for one request; released again if it ends up idle."""
    machine = registry.get(employee_id)
    try:
        yield machine
    finally:
        registry.release_if_idle(employee_id)


@router.get("/{employee_id}/session", response_model=SessionStateOut)
async def session_state_endpoint(
    employee_id: int,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Current session state. Each poll also refreshes the timer counters."""
    with _session(registry, employee_id) as machine:
        machine.tick()
        return _state_out(employee_id, machine)


@router.post("/{employee_id}/session/clock-in", response_model=SessionStateOut)
async def clock_in_endpoint(
    employee_id: int,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """
    Request clock-in. With geofencing enabled the session waits for the device
    to POST its position to /session/location; location_request carries the
    options for that query.
    """
    with _session(registry, employee_id) as machine:
        snapshot = machine.request_clock_in()
        return _state_out(employee_id, machine, snapshot)


@router.post("/{employee_id}/session/location", response_model=SessionStateOut)
async def location_report_endpoint(
    employee_id: int,
    body: LocationReportRequest,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """
    Device answer to the pending location query: a fix (lat/lng) or an error code.
    Returns the state after the geofence verdict has been applied.
    """
    with _session(registry, employee_id) as machine:
        provider = machine.location_provider
        if not isinstance(provider, ClientReportedLocationProvider):
            raise LocationCheckError("This session does not accept device location reports")

        position = body.to_position()
        delivered = _deliver(provider, position)
        # the query task may not have reached the provider yet
        for _ in range(_DELIVERY_ATTEMPTS):
            if delivered or not machine.location_check_pending:
                break
            await asyncio.sleep(0)
            delivered = _deliver(provider, position)
        if not delivered:
            raise LocationCheckError("No location check is waiting for this session")

        _log.debug("location report delivered: employee_id=%s accuracy=%s", employee_id, body.accuracy)
        snapshot = await machine.wait_for_location_check()
        return _state_out(employee_id, machine, snapshot)


@router.post("/{employee_id}/session/retry", response_model=SessionStateOut)
async def retry_location_endpoint(
    employee_id: int,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Re-issue the location check after a deny."""
    with _session(registry, employee_id) as machine:
        snapshot = machine.retry_location_check()
        return _state_out(employee_id, machine, snapshot)


@router.post("/{employee_id}/session/cancel", response_model=SessionStateOut)
async def cancel_clock_in_endpoint(
    employee_id: int,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Abandon a clock-in that is awaiting its location check."""
    with _session(registry, employee_id) as machine:
        snapshot = machine.cancel_clock_in()
        return _state_out(employee_id, machine, snapshot)


@router.post("/{employee_id}/session/break", response_model=SessionStateOut)
async def break_endpoint(
    employee_id: int,
    registry: SessionRegistry = Depends(get_session_registry),
):
    with _session(registry, employee_id) as machine:
        snapshot = machine.request_break()
        return _state_out(employee_id, machine, snapshot)


@router.post("/{employee_id}/session/resume", response_model=SessionStateOut)
async def resume_endpoint(
    employee_id: int,
    registry: SessionRegistry = Depends(get_session_registry),
):
    with _session(registry, employee_id) as machine:
        snapshot = machine.resume_work()
        return _state_out(employee_id, machine, snapshot)


@router.post("/{employee_id}/session/clock-out", response_model=AttendanceRecordDto, status_code=201)
async def clock_out_endpoint(
    employee_id: int,
    db: Session = Depends(get_db),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """
    Clock out. The completed session is written to the attendance ledger first;
    the live session resets to NOT_CLOCKED_IN only once the write has committed.
    """
    saved = {}

    def persist(completed: CompletedSession) -> None:
        saved["record"] = record_completed_session(db, employee_id, completed)

    with _session(registry, employee_id) as machine:
        machine.request_clock_out(persist)
    return AttendanceRecordDto.model_validate(saved["record"])


# --- Ledger ---


@router.get("/{employee_id}/records", response_model=AttendanceRecordListResponse)
async def records_endpoint(
    employee_id: int,
    from_date: date = Query(..., alias="from", description="Start date (YYYY-MM-DD)"),
    to_date: date = Query(..., alias="to", description="End date (YYYY-MM-DD)"),
    db: Session = Depends(get_db),
):
    """List the employee's completed sessions in the date range."""
    records = list_my_records(db, employee_id, from_date, to_date)
    return AttendanceRecordListResponse(
        items=[AttendanceRecordDto.model_validate(r) for r in records],
        total=len(records),
    )


@router.get("/{employee_id}/summary", response_model=MonthlySummaryOut)
async def summary_endpoint(
    employee_id: int,
    year: int = Query(..., ge=1970, le=9999),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db),
):
    """Monthly summary: days present, late / early-out days, total working and break time."""
    return MonthlySummaryOut(**monthly_summary(db, employee_id, year, month))
