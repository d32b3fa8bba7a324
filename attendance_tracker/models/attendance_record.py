"""
Attendance ledger model: one row per completed (clocked-out) session.
"""
from sqlalchemy import Boolean, Column, Date, DateTime, Integer, JSON
from sqlalchemy.sql import func
from attendance_tracker.db.base import Base


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, nullable=False, index=True)
    work_date = Column(Date, nullable=False, index=True)  # local (settings.TZ) date of clock-in
    clock_in_at = Column(DateTime(timezone=True), nullable=False)
    clock_out_at = Column(DateTime(timezone=True), nullable=False)
    elapsed_seconds = Column(Integer, nullable=False, default=0)
    break_seconds = Column(Integer, nullable=False, default=0)
    working_seconds = Column(Integer, nullable=False, default=0)
    clock_in_geo = Column(JSON, nullable=True)  # {"lat", "lng"} when the geofence checked a position
    is_late = Column(Boolean, nullable=False, default=False)
    minutes_late = Column(Integer, nullable=False, default=0)
    is_early_out = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)
