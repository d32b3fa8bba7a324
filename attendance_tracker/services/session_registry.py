"""
Session registry: one attendance session machine per employee view.

Each machine gets its own ClientReportedLocationProvider, since the device that
answers a location query belongs to that employee. The geofence config is
shared read-only across all machines.
"""
import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Optional

from attendance_tracker.services.attendance_session_service import AttendanceSessionMachine
from attendance_tracker.services.geofence_service import GeofenceConfig
from attendance_tracker.services.location_provider import (
    ClientReportedLocationProvider,
    LocationRequestOptions,
)
from attendance_tracker.utils.datetime_utils import now_utc

_log = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(
        self,
        config: GeofenceConfig,
        location_options: LocationRequestOptions,
        tick_interval: Optional[float] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.config = config
        self.location_options = location_options
        self.tick_interval = tick_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._machines: Dict[int, AttendanceSessionMachine] = {}

    def get(self, employee_id: int) -> AttendanceSessionMachine:
        """Return the employee's session machine, creating it at NOT_CLOCKED_IN on first use."""
        with self._lock:
            machine = self._machines.get(employee_id)
            if machine is None:
                machine = AttendanceSessionMachine(
                    self.config,
                    ClientReportedLocationProvider(),
                    clock=self._clock,
                    location_options=self.location_options,
                    tick_interval=self.tick_interval,
                    label=f"employee={employee_id}",
                )
                self._machines[employee_id] = machine
                _log.debug("session created for employee_id=%s", employee_id)
            return machine

    def release_if_idle(self, employee_id: int) -> bool:
        """Drop the employee's machine once it is back at an idle NOT_CLOCKED_IN."""
        with self._lock:
            machine = self._machines.get(employee_id)
            if machine is None or not machine.idle:
                return False
            del self._machines[employee_id]
        machine.close()
        _log.debug("idle session released for employee_id=%s", employee_id)
        return True

    def __len__(self) -> int:
        return len(self._machines)

    def close(self) -> None:
        """Cancel every machine's ticker and pending location query."""
        with self._lock:
            machines = list(self._machines.values())
            self._machines.clear()
        for machine in machines:
            machine.close()
        _log.info("session registry closed (%s sessions)", len(machines))


_registry: Optional[SessionRegistry] = None


def build_registry_from_settings() -> SessionRegistry:
    from attendance_tracker.core.config import settings

    return SessionRegistry(
        config=settings.get_geofence_config(),
        location_options=settings.get_location_options(),
        tick_interval=settings.TICK_INTERVAL_SECONDS,
    )


def get_registry() -> SessionRegistry:
    """Process-wide registry built from settings on first use."""
    global _registry
    if _registry is None:
        _registry = build_registry_from_settings()
    return _registry


def close_registry() -> None:
    global _registry
    if _registry is not None:
        _registry.close()
        _registry = None
