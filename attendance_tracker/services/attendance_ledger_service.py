"""
Attendance ledger service: persist completed sessions, list history, monthly summary.
Timestamps stored in UTC; work_date and late / early-out flags use settings.TZ and the configured shift.
"""
import calendar
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from attendance_tracker.core.config import settings
from attendance_tracker.models.attendance_record import AttendanceRecord
from attendance_tracker.services.attendance_session_service import CompletedSession
from attendance_tracker.utils.datetime_utils import ensure_utc, local_tz, parse_hhmm, to_local

_log = logging.getLogger(__name__)


def _shift_bounds(shift_date: date):
    """Local shift start and end for shift_date; an end at or before start rolls to the next day."""
    tz = local_tz()
    start = datetime.combine(shift_date, parse_hhmm(settings.SHIFT_START), tzinfo=tz)
    end = datetime.combine(shift_date, parse_hhmm(settings.SHIFT_END), tzinfo=tz)
    if end <= start:
        end += timedelta(days=1)
    return start, end


def _shift_date(clock_in_local: datetime) -> date:
    """Date the shift containing clock_in_local started on.

    For an overnight shift (e.g. 22:00-07:00) a clock-in before the shift end
    belongs to the shift that started the previous evening.
    """
    shift_start = parse_hhmm(settings.SHIFT_START)
    shift_end = parse_hhmm(settings.SHIFT_END)
    if shift_end <= shift_start and clock_in_local.time() < shift_end:
        return clock_in_local.date() - timedelta(days=1)
    return clock_in_local.date()


def evaluate_punctuality(clock_in_at: datetime, clock_out_at: datetime) -> Dict[str, Any]:
    """
    Late / early-out flags for a session against the configured shift.

    Late: clock-in at or after shift start + GRACE_PERIOD_MINUTES (09:15 with the
    default 09:00 shift and 15 minutes grace is late); minutes_late counts from
    shift start. Early out: clock-out before shift end. work_date is the date the
    shift started on, so an after-midnight clock-in on a night shift books to the
    previous day.
    """
    clock_in_local = to_local(clock_in_at)
    work_date = _shift_date(clock_in_local)
    shift_start, shift_end = _shift_bounds(work_date)

    grace_until = shift_start + timedelta(minutes=settings.GRACE_PERIOD_MINUTES)
    is_late = clock_in_local >= grace_until and clock_in_local > shift_start
    minutes_late = int((clock_in_local - shift_start).total_seconds() // 60) if is_late else 0

    return {
        "work_date": work_date,
        "is_late": is_late,
        "minutes_late": minutes_late,
        "is_early_out": to_local(clock_out_at) < shift_end,
    }


def record_completed_session(
    db: Session,
    employee_id: int,
    completed: CompletedSession,
) -> AttendanceRecord:
    """Persist a clocked-out session to the ledger."""
    clock_in_at = ensure_utc(completed.clock_in_at)
    clock_out_at = ensure_utc(completed.clock_out_at)
    punctuality = evaluate_punctuality(clock_in_at, clock_out_at)

    record = AttendanceRecord(
        employee_id=employee_id,
        work_date=punctuality["work_date"],
        clock_in_at=clock_in_at,
        clock_out_at=clock_out_at,
        elapsed_seconds=completed.elapsed_seconds,
        break_seconds=completed.break_seconds,
        working_seconds=completed.working_seconds,
        clock_in_geo=completed.clock_in_location.to_geo_dict() if completed.clock_in_location else None,
        is_late=punctuality["is_late"],
        minutes_late=punctuality["minutes_late"],
        is_early_out=punctuality["is_early_out"],
    )
    db.add(record)
    db.commit()
    db.refresh(record)

    _log.info(
        "attendance recorded: employee_id=%s work_date=%s working_seconds=%s late=%s early_out=%s",
        employee_id, record.work_date, record.working_seconds, record.is_late, record.is_early_out,
    )
    return record


def list_my_records(
    db: Session,
    employee_id: int,
    from_date: date,
    to_date: date,
) -> List[AttendanceRecord]:
    """List the employee's completed sessions in the date range, newest first."""
    if from_date > to_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="from must be less than or equal to to",
        )
    return (
        db.query(AttendanceRecord)
        .filter(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.work_date >= from_date,
            AttendanceRecord.work_date <= to_date,
        )
        .order_by(AttendanceRecord.work_date.desc(), AttendanceRecord.clock_in_at.desc())
        .all()
    )


def monthly_summary(db: Session, employee_id: int, year: int, month: int) -> Dict[str, Any]:
    """
    Summarize one month of the employee's ledger.

    Args:
        db: Database session
        employee_id: Employee whose records are summarized
        year: Calendar year
        month: Calendar month (1-12)

    Returns:
        {
            "year", "month",
            "days_present": distinct work dates with at least one session,
            "late_days", "early_out_days", "late_or_early_days",
            "total_working_seconds", "total_break_seconds",
            "sessions": number of completed sessions
        }
    """
    if not 1 <= month <= 12:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="month must be between 1 and 12",
        )
    first_day = date(year, month, 1)
    last_day = date(year, month, calendar.monthrange(year, month)[1])
    records = list_my_records(db, employee_id, first_day, last_day)

    # a day counts once even when it holds several sessions
    late_dates = {r.work_date for r in records if r.is_late}
    early_dates = {r.work_date for r in records if r.is_early_out}

    return {
        "year": year,
        "month": month,
        "days_present": len({r.work_date for r in records}),
        "late_days": len(late_dates),
        "early_out_days": len(early_dates),
        "late_or_early_days": len(late_dates | early_dates),
        "total_working_seconds": sum(r.working_seconds for r in records),
        "total_break_seconds": sum(r.break_seconds for r in records),
        "sessions": len(records),
    }
