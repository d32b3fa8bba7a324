"""
Tests for the attendance ledger (completed sessions, punctuality, monthly summary)
"""
from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from attendance_tracker.core.config import settings
from attendance_tracker.services.attendance_ledger_service import (
    evaluate_punctuality,
    list_my_records,
    monthly_summary,
    record_completed_session,
)
from attendance_tracker.services.attendance_session_service import CompletedSession
from attendance_tracker.utils.geo import GeoPoint


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def _completed(clock_in_at: datetime, hours: float = 9, break_minutes: int = 30, location=None) -> CompletedSession:
    elapsed = int(hours * 3600)
    break_seconds = break_minutes * 60
    return CompletedSession(
        clock_in_at=clock_in_at,
        clock_out_at=clock_in_at + timedelta(seconds=elapsed),
        elapsed_seconds=elapsed,
        break_seconds=break_seconds,
        working_seconds=elapsed - break_seconds,
        clock_in_location=location,
    )


@pytest.fixture(autouse=True)
def general_shift(monkeypatch):
    """General shift 09:00-18:00 Asia/Kolkata with 15 minutes grace"""
    monkeypatch.setattr(settings, "TZ", "Asia/Kolkata")
    monkeypatch.setattr(settings, "SHIFT_START", "09:00")
    monkeypatch.setattr(settings, "SHIFT_END", "18:00")
    monkeypatch.setattr(settings, "GRACE_PERIOD_MINUTES", 15)


# --- Punctuality ---


def test_clock_in_within_grace_is_not_late():
    # 09:10 IST -> 18:10 IST
    result = evaluate_punctuality(_utc(2026, 3, 2, 3, 40), _utc(2026, 3, 2, 12, 40))

    assert result["work_date"] == date(2026, 3, 2)
    assert result["is_late"] is False
    assert result["minutes_late"] == 0
    assert result["is_early_out"] is False


def test_clock_in_after_grace_is_late_from_shift_start():
    # 09:20 IST
    result = evaluate_punctuality(_utc(2026, 3, 2, 3, 50), _utc(2026, 3, 2, 12, 30))

    assert result["is_late"] is True
    assert result["minutes_late"] == 20
    assert result["is_early_out"] is False


def test_clock_in_at_end_of_grace_is_late():
    # 09:15 IST
    result = evaluate_punctuality(_utc(2026, 3, 2, 3, 45), _utc(2026, 3, 2, 12, 30))

    assert result["is_late"] is True
    assert result["minutes_late"] == 15

    # 09:14:59 IST
    result = evaluate_punctuality(_utc(2026, 3, 2, 3, 44, 59), _utc(2026, 3, 2, 12, 30))
    assert result["is_late"] is False


def test_clock_in_at_shift_start_without_grace_is_on_time(monkeypatch):
    monkeypatch.setattr(settings, "GRACE_PERIOD_MINUTES", 0)

    result = evaluate_punctuality(_utc(2026, 3, 2, 3, 30), _utc(2026, 3, 2, 12, 30))
    assert result["is_late"] is False


def test_clock_out_before_shift_end_is_early():
    # out at 17:59 IST
    result = evaluate_punctuality(_utc(2026, 3, 2, 3, 30), _utc(2026, 3, 2, 12, 29))

    assert result["is_early_out"] is True


def test_work_date_is_local_calendar_date():
    # 01:30 IST on the 2nd is still the 1st in UTC
    result = evaluate_punctuality(_utc(2026, 3, 1, 20, 0), _utc(2026, 3, 2, 2, 0))

    assert result["work_date"] == date(2026, 3, 2)


def test_overnight_shift(monkeypatch):
    monkeypatch.setattr(settings, "SHIFT_START", "22:00")
    monkeypatch.setattr(settings, "SHIFT_END", "06:00")

    # 22:00 IST -> 06:00 IST next day
    result = evaluate_punctuality(_utc(2026, 3, 2, 16, 30), _utc(2026, 3, 3, 0, 30))
    assert result["is_late"] is False
    assert result["is_early_out"] is False

    # out at 02:00 IST
    result = evaluate_punctuality(_utc(2026, 3, 2, 16, 30), _utc(2026, 3, 2, 20, 30))
    assert result["is_early_out"] is True


def test_night_shift_clock_in_after_midnight_books_to_previous_evening(monkeypatch):
    monkeypatch.setattr(settings, "SHIFT_START", "22:00")
    monkeypatch.setattr(settings, "SHIFT_END", "07:00")

    # 00:30 IST on the 3rd -> 07:00 IST on the 3rd, shift began 22:00 on the 2nd
    result = evaluate_punctuality(_utc(2026, 3, 2, 19, 0), _utc(2026, 3, 3, 1, 30))

    assert result["work_date"] == date(2026, 3, 2)
    assert result["is_late"] is True
    assert result["minutes_late"] == 150
    assert result["is_early_out"] is False


def test_night_shift_early_arrival_stays_on_same_date(monkeypatch):
    monkeypatch.setattr(settings, "SHIFT_START", "22:00")
    monkeypatch.setattr(settings, "SHIFT_END", "07:00")

    # 21:50 IST on the 2nd
    result = evaluate_punctuality(_utc(2026, 3, 2, 16, 20), _utc(2026, 3, 3, 1, 30))

    assert result["work_date"] == date(2026, 3, 2)
    assert result["is_late"] is False
    assert result["is_early_out"] is False


# --- Records ---


def test_record_completed_session(db):
    location = GeoPoint(latitude=28.6140, longitude=77.2091)
    record = record_completed_session(db, 7, _completed(_utc(2026, 3, 2, 3, 50), location=location))

    assert record.id is not None
    assert record.employee_id == 7
    assert record.work_date == date(2026, 3, 2)
    assert record.elapsed_seconds == 9 * 3600
    assert record.break_seconds == 1800
    assert record.working_seconds == 9 * 3600 - 1800
    assert record.clock_in_geo == {"lat": 28.6140, "lng": 77.2091}
    assert record.is_late is True
    assert record.minutes_late == 20
    assert record.created_at is not None


def test_record_without_clock_in_location(db):
    record = record_completed_session(db, 7, _completed(_utc(2026, 3, 2, 3, 30)))

    assert record.clock_in_geo is None


def test_list_my_records_filters_by_employee_and_range(db):
    record_completed_session(db, 7, _completed(_utc(2026, 3, 2, 3, 30)))
    record_completed_session(db, 7, _completed(_utc(2026, 3, 3, 3, 30)))
    record_completed_session(db, 7, _completed(_utc(2026, 4, 1, 3, 30)))
    record_completed_session(db, 8, _completed(_utc(2026, 3, 2, 3, 30)))

    records = list_my_records(db, 7, date(2026, 3, 1), date(2026, 3, 31))

    assert [r.work_date for r in records] == [date(2026, 3, 3), date(2026, 3, 2)]
    assert all(r.employee_id == 7 for r in records)


def test_list_my_records_rejects_inverted_range(db):
    with pytest.raises(HTTPException) as exc_info:
        list_my_records(db, 7, date(2026, 3, 31), date(2026, 3, 1))
    assert exc_info.value.status_code == 400


# --- Monthly summary ---


def test_monthly_summary(db):
    # 2nd: on time, then a late second session the same day
    record_completed_session(db, 7, _completed(_utc(2026, 3, 2, 3, 30), hours=4, break_minutes=0))
    record_completed_session(db, 7, _completed(_utc(2026, 3, 2, 8, 0), hours=4.5, break_minutes=15))
    # 3rd: full day, on time
    record_completed_session(db, 7, _completed(_utc(2026, 3, 3, 3, 30)))
    # other month
    record_completed_session(db, 7, _completed(_utc(2026, 2, 27, 3, 30)))

    summary = monthly_summary(db, 7, 2026, 3)

    assert summary["year"] == 2026
    assert summary["month"] == 3
    assert summary["sessions"] == 3
    assert summary["days_present"] == 2
    assert summary["late_days"] == 1
    # first session of the 2nd ends at 13:00 IST
    assert summary["early_out_days"] == 1
    assert summary["late_or_early_days"] == 1
    assert summary["total_working_seconds"] == 4 * 3600 + (int(4.5 * 3600) - 900) + (9 * 3600 - 1800)
    assert summary["total_break_seconds"] == 900 + 1800


def test_monthly_summary_empty_month(db):
    summary = monthly_summary(db, 7, 2026, 2)

    assert summary["days_present"] == 0
    assert summary["sessions"] == 0
    assert summary["total_working_seconds"] == 0


def test_monthly_summary_rejects_invalid_month(db):
    with pytest.raises(HTTPException) as exc_info:
        monthly_summary(db, 7, 2026, 13)
    assert exc_info.value.status_code == 400
