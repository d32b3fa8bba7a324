"""
Attendance session service: clock-in / break / clock-out lifecycle for one employee view.

NOT_CLOCKED_IN -> (AWAITING_LOCATION_CHECK) -> WORKING <-> ON_BREAK -> NOT_CLOCKED_IN.
Clock-in is gated by the geofence when an office location is configured. The
location query is the only asynchronous step; every other transition completes
before the event method returns. Clock-out hands back a CompletedSession and
resets the live session; nothing here persists it.
"""
import asyncio
import enum
import logging
import threading
from datetime import datetime
from typing import Callable, Optional, Union

from pydantic import BaseModel

from attendance_tracker.services.geofence_service import (
    GeofenceConfig,
    LocationErrorCode,
    LocationFailure,
    Verdict,
    check_admission,
)
from attendance_tracker.services.location_provider import (
    LocationError,
    LocationProvider,
    LocationRequestOptions,
)
from attendance_tracker.services.session_timer import SessionTimer
from attendance_tracker.utils.datetime_utils import now_utc
from attendance_tracker.utils.geo import GeoPoint

_log = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    NOT_CLOCKED_IN = "NOT_CLOCKED_IN"
    AWAITING_LOCATION_CHECK = "AWAITING_LOCATION_CHECK"
    WORKING = "WORKING"
    ON_BREAK = "ON_BREAK"


ACTIVE_STATES = (SessionState.WORKING, SessionState.ON_BREAK)


class AttendanceSessionError(Exception):
    """Base error for session events that cannot be applied."""


class InvalidTransitionError(AttendanceSessionError):
    """Event is not valid in the session's current state."""


class LocationCheckError(AttendanceSessionError):
    """A location check could not be issued or answered."""


class SessionSnapshot(BaseModel):
    """What the UI renders once per tick."""
    state: SessionState
    clock_in_at: Optional[datetime] = None
    elapsed_seconds: int = 0
    working_seconds: int = 0
    break_seconds: int = 0
    accumulated_break_seconds: int = 0
    current_break_seconds: int = 0
    current_break_started_at: Optional[datetime] = None
    last_location_error: Optional[LocationErrorCode] = None
    last_verdict: Optional[Verdict] = None
    last_known_location: Optional[GeoPoint] = None
    location_check_pending: bool = False


class CompletedSession(BaseModel):
    """Totals of a session at the moment it was clocked out."""
    clock_in_at: datetime
    clock_out_at: datetime
    elapsed_seconds: int
    break_seconds: int
    working_seconds: int
    clock_in_location: Optional[GeoPoint] = None


class AttendanceSessionMachine:
    """
    State machine for one employee's attendance session.

    Args:
        config: Geofence configuration (shared, read-only)
        location_provider: Answers device location queries
        clock: Returns the current aware UTC datetime
        location_options: Options sent with each location query
        tick_interval: Seconds between automatic ticks; None lets the host call tick()
        label: Identifies the session in log lines
    """

    def __init__(
        self,
        config: GeofenceConfig,
        location_provider: LocationProvider,
        *,
        clock: Callable[[], datetime] = now_utc,
        location_options: Optional[LocationRequestOptions] = None,
        tick_interval: Optional[float] = None,
        label: str = "session",
    ):
        self.config = config
        self.location_provider = location_provider
        self.location_options = location_options or LocationRequestOptions()
        self.tick_interval = tick_interval
        self.label = label
        self.timer = SessionTimer(clock)

        # tick and location resolution both read-modify-write the session fields
        self._lock = threading.RLock()
        self._check_generation = 0
        self._location_task: Optional[asyncio.Task] = None
        self._ticker: Optional[asyncio.Task] = None

        self.state = SessionState.NOT_CLOCKED_IN
        self.last_known_location: Optional[GeoPoint] = None
        self.last_location_error: Optional[LocationErrorCode] = None
        self.last_verdict: Optional[Verdict] = None
        self._clock_in_location: Optional[GeoPoint] = None

    # --- Read side ---

    @property
    def location_check_pending(self) -> bool:
        return self._location_task is not None and not self._location_task.done()

    @property
    def idle(self) -> bool:
        """NOT_CLOCKED_IN with no location check or ticker outstanding."""
        return (
            self.state == SessionState.NOT_CLOCKED_IN
            and not self.location_check_pending
            and self._ticker is None
        )

    def current_state(self) -> SessionSnapshot:
        with self._lock:
            timer = self.timer
            return SessionSnapshot(
                state=self.state,
                clock_in_at=timer.clock_in_at,
                elapsed_seconds=timer.elapsed_seconds,
                working_seconds=timer.working_seconds,
                break_seconds=timer.break_seconds,
                accumulated_break_seconds=timer.accumulated_break_seconds,
                current_break_seconds=timer.current_break_seconds,
                current_break_started_at=timer.current_break_started_at,
                last_location_error=self.last_location_error,
                last_verdict=self.last_verdict,
                last_known_location=self.last_known_location,
                location_check_pending=self.location_check_pending,
            )

    def tick(self) -> None:
        """Per-second handler: refresh timer counters while a session is active."""
        with self._lock:
            if self.state in ACTIVE_STATES:
                self.timer.tick()

    # --- Events ---

    def request_clock_in(self) -> SessionSnapshot:
        """
        Start clocking in.

        Geofencing disabled: straight to WORKING. Enabled: AWAITING_LOCATION_CHECK
        with a location query in flight. A repeat request while awaiting is a no-op.
        """
        with self._lock:
            if self.state == SessionState.AWAITING_LOCATION_CHECK:
                _log.debug("%s: clock-in already awaiting a location check; ignored", self.label)
                return self.current_state()
            if self.state != SessionState.NOT_CLOCKED_IN:
                raise InvalidTransitionError("Already clocked in")

            if not self.config.enabled:
                if self.tick_interval is not None:
                    self._require_loop()
                self._enter_working()
                return self.current_state()

            loop = self._require_loop()
            self.state = SessionState.AWAITING_LOCATION_CHECK
            self.last_location_error = None
            self.last_verdict = None
            self._issue_location_query(loop)
            _log.info("%s: clock-in requested, awaiting location check", self.label)
            return self.current_state()

    def retry_location_check(self) -> SessionSnapshot:
        """Re-issue the location query after a deny. No-op while a query is in flight."""
        with self._lock:
            if self.state != SessionState.AWAITING_LOCATION_CHECK:
                raise InvalidTransitionError("No clock-in is awaiting a location check")
            if self.location_check_pending:
                _log.debug("%s: location check already in flight; retry ignored", self.label)
                return self.current_state()
            loop = self._require_loop()
            self.last_location_error = None
            self.last_verdict = None
            self._issue_location_query(loop)
            _log.info("%s: location check retried", self.label)
            return self.current_state()

    def cancel_clock_in(self) -> SessionSnapshot:
        """Abandon a clock-in awaiting its location check."""
        with self._lock:
            if self.state != SessionState.AWAITING_LOCATION_CHECK:
                raise InvalidTransitionError("No clock-in is awaiting a location check")
            self._cancel_location_check()
            self._reset()
            _log.info("%s: clock-in cancelled", self.label)
            return self.current_state()

    def request_break(self) -> SessionSnapshot:
        with self._lock:
            if self.state != SessionState.WORKING:
                raise InvalidTransitionError("Can only start a break while working")
            self.timer.begin_break()
            self.state = SessionState.ON_BREAK
            _log.info("%s: break started", self.label)
            return self.current_state()

    def resume_work(self) -> SessionSnapshot:
        with self._lock:
            if self.state != SessionState.ON_BREAK:
                raise InvalidTransitionError("Not on break")
            self.timer.end_break()
            self.state = SessionState.WORKING
            _log.info(
                "%s: break ended, accumulated_break_seconds=%s",
                self.label, self.timer.accumulated_break_seconds,
            )
            return self.current_state()

    def request_clock_out(
        self,
        persist: Optional[Callable[[CompletedSession], None]] = None,
    ) -> CompletedSession:
        """
        End the session from WORKING or ON_BREAK.

        Returns the session totals (an in-progress break counts as break time),
        then stops the timer and resets every field to the NOT_CLOCKED_IN baseline.
        persist, when given, receives the totals before the reset; if it raises,
        the session is left running and the error propagates.
        """
        with self._lock:
            if self.state not in ACTIVE_STATES:
                if self.state == SessionState.AWAITING_LOCATION_CHECK:
                    raise InvalidTransitionError("Clock-in not completed; cancel it instead")
                raise InvalidTransitionError("Not clocked in")

            totals = self.timer.totals()
            completed = CompletedSession(
                clock_in_at=totals.clock_in_at,
                clock_out_at=totals.as_of,
                elapsed_seconds=totals.elapsed_seconds,
                break_seconds=totals.break_seconds,
                working_seconds=totals.working_seconds,
                clock_in_location=self._clock_in_location,
            )
            if persist is not None:
                persist(completed)
            self._stop_ticker()
            self.timer.stop()
            self._reset()
            _log.info(
                "%s: clocked out, elapsed=%ss working=%ss break=%ss",
                self.label, completed.elapsed_seconds, completed.working_seconds, completed.break_seconds,
            )
            return completed

    async def wait_for_location_check(self) -> SessionSnapshot:
        """Wait until the in-flight location query (if any) has been resolved or cancelled."""
        task = self._location_task
        if task is not None and not task.done():
            await asyncio.wait({task})
        return self.current_state()

    def close(self) -> None:
        """Cancel the ticker and any in-flight location query."""
        with self._lock:
            self._cancel_location_check()
            self._stop_ticker()

    # --- Internals ---

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            raise LocationCheckError("A running event loop is required for location checks and ticks") from None

    def _enter_working(self) -> None:
        self.timer.start()
        self.state = SessionState.WORKING
        self._start_ticker()
        _log.info("%s: clocked in at %s", self.label, self.timer.clock_in_at.isoformat())

    def _reset(self) -> None:
        self.state = SessionState.NOT_CLOCKED_IN
        self.last_known_location = None
        self.last_location_error = None
        self.last_verdict = None
        self._clock_in_location = None

    def _issue_location_query(self, loop: asyncio.AbstractEventLoop) -> None:
        self._check_generation += 1
        self._location_task = loop.create_task(self._run_location_check(self._check_generation))

    def _cancel_location_check(self) -> None:
        # any result still in flight now carries a stale generation
        self._check_generation += 1
        task, self._location_task = self._location_task, None
        if task is not None and not task.done():
            task.cancel()

    async def _run_location_check(self, generation: int) -> None:
        options = self.location_options
        try:
            result: Union[GeoPoint, LocationFailure] = await asyncio.wait_for(
                self.location_provider.request_current_position(options),
                timeout=options.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            result = LocationFailure(code=LocationErrorCode.TIMEOUT)
        except LocationError as exc:
            result = LocationFailure(code=exc.code, message=exc.message)
        except Exception:
            _log.exception("%s: location provider failed", self.label)
            result = LocationFailure(code=LocationErrorCode.POSITION_UNAVAILABLE)
        self._on_location_resolved(generation, result)

    def _on_location_resolved(self, generation: int, result: Union[GeoPoint, LocationFailure]) -> None:
        with self._lock:
            if generation != self._check_generation or self.state != SessionState.AWAITING_LOCATION_CHECK:
                _log.debug("%s: stale location result ignored", self.label)
                return
            self._location_task = None

            verdict = check_admission(self.config, result)
            self.last_verdict = verdict
            if isinstance(result, GeoPoint):
                self.last_known_location = result

            if verdict.admitted:
                self.last_location_error = None
                self._clock_in_location = self.last_known_location
                self._enter_working()
            else:
                self.last_location_error = verdict.reason
                _log.info("%s: location check denied: %s", self.label, verdict.reason.value)

    def _start_ticker(self) -> None:
        if self.tick_interval is None:
            return
        self._stop_ticker()
        self._ticker = asyncio.get_running_loop().create_task(self._tick_loop())

    def _stop_ticker(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is not None and not ticker.done():
            ticker.cancel()

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            self.tick()
