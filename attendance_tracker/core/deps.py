"""
Dependencies for FastAPI endpoints
"""
from typing import Generator
from attendance_tracker.db.session import SessionLocal
from attendance_tracker.services.session_registry import SessionRegistry, get_registry


def get_db() -> Generator:
    """Dependency for getting database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_registry() -> SessionRegistry:
    """Dependency for the process-wide attendance session registry"""
    return get_registry()
