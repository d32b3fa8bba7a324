"""
Database models
"""
from attendance_tracker.models.attendance_record import AttendanceRecord

__all__ = [
    "AttendanceRecord",
]
