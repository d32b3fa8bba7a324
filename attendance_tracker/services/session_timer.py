"""
Session timer: elapsed / working / break counters for one attendance session.

Counters are derived from wall-clock timestamps on every tick rather than
incremented, so a host that suspends or skips ticks self-corrects on the next
one. Timestamps are truncated to whole seconds so all counters are exact ints.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from pydantic import BaseModel

from attendance_tracker.utils.datetime_utils import now_utc, truncate_to_second

_log = logging.getLogger(__name__)


class TimerTotals(BaseModel):
    """Read-only totals of a running session, any in-progress break included."""
    clock_in_at: datetime
    as_of: datetime
    elapsed_seconds: int
    break_seconds: int
    working_seconds: int


def _seconds_between(start: datetime, end: datetime) -> int:
    # clamp clock skew to zero
    return max(0, int((end - start).total_seconds()))


class SessionTimer:
    """Tick-driven elapsed/working/break counters."""

    def __init__(self, clock: Callable[[], datetime] = now_utc):
        self._clock = clock
        self.clock_in_at: Optional[datetime] = None
        self.current_break_started_at: Optional[datetime] = None
        self.elapsed_seconds = 0
        self.accumulated_break_seconds = 0
        self.current_break_seconds = 0

    def _now(self) -> datetime:
        return truncate_to_second(self._clock())

    @property
    def running(self) -> bool:
        return self.clock_in_at is not None

    @property
    def on_break(self) -> bool:
        return self.current_break_started_at is not None

    @property
    def break_seconds(self) -> int:
        return self.accumulated_break_seconds + self.current_break_seconds

    @property
    def working_seconds(self) -> int:
        return max(0, self.elapsed_seconds - self.break_seconds)

    def _refresh(self, now: datetime) -> None:
        self.elapsed_seconds = _seconds_between(self.clock_in_at, now)
        if self.current_break_started_at is not None:
            self.current_break_seconds = _seconds_between(self.current_break_started_at, now)

    def start(self) -> datetime:
        """Record clock_in_at = now and zero the counters."""
        if self.running:
            _log.debug("start ignored: timer already running since %s", self.clock_in_at)
            return self.clock_in_at
        now = self._now()
        self.clock_in_at = now
        self.current_break_started_at = None
        self.accumulated_break_seconds = 0
        self.current_break_seconds = 0
        self._refresh(now)
        return now

    def tick(self) -> None:
        """Recompute counters from the wall clock. No-op when not running."""
        if not self.running:
            return
        self._refresh(self._now())

    def begin_break(self) -> None:
        if not self.running or self.on_break:
            return
        now = self._now()
        self._refresh(now)
        self.current_break_started_at = now
        self.current_break_seconds = 0

    def end_break(self) -> None:
        """Fold the finished break into accumulated_break_seconds. No-op when not on break."""
        if not self.running or not self.on_break:
            return
        now = self._now()
        self._refresh(now)
        self.accumulated_break_seconds += self.current_break_seconds
        self.current_break_started_at = None
        self.current_break_seconds = 0

    def totals(self) -> Optional[TimerTotals]:
        """Totals as of now, any in-progress break included; None when not running."""
        if not self.running:
            return None
        now = self._now()
        self._refresh(now)
        return TimerTotals(
            clock_in_at=self.clock_in_at,
            as_of=now,
            elapsed_seconds=self.elapsed_seconds,
            break_seconds=self.break_seconds,
            working_seconds=self.working_seconds,
        )

    def stop(self) -> None:
        """Halt and zero all counters."""
        self.clock_in_at = None
        self.current_break_started_at = None
        self.elapsed_seconds = 0
        self.accumulated_break_seconds = 0
        self.current_break_seconds = 0
