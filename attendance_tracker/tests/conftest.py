"""
Pytest configuration and fixtures
"""
import os

# Must be set before the app (and its settings) are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_ENV"] = "local"
os.environ["TZ"] = "Asia/Kolkata"

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from attendance_tracker.core.deps import get_db, get_session_registry
from attendance_tracker.db.base import Base
from attendance_tracker.main import app
from attendance_tracker.services.geofence_service import GeofenceConfig
from attendance_tracker.services.location_provider import LocationRequestOptions
from attendance_tracker.services.session_registry import SessionRegistry
from attendance_tracker.utils.geo import GeoPoint

import attendance_tracker.models  # noqa: F401


# Connaught Place, New Delhi
OFFICE = GeoPoint(latitude=28.6139, longitude=77.2090)
RADIUS_METERS = 500.0

# 09:00 Asia/Kolkata on a Monday
SHIFT_START_UTC = datetime(2026, 3, 2, 3, 30, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for deterministic timer tests."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# Use in-memory SQLite for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def clock():
    return FakeClock(SHIFT_START_UTC)


@pytest.fixture
def geofence_config():
    return GeofenceConfig(office_location=OFFICE, radius_meters=RADIUS_METERS)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def registry(geofence_config, clock):
    """Session registry with the Delhi office geofence; ticks are driven by polls."""
    reg = SessionRegistry(
        config=geofence_config,
        location_options=LocationRequestOptions(timeout_ms=2000),
        tick_interval=None,
        clock=clock,
    )
    yield reg
    reg.close()


@pytest.fixture(scope="function")
def client(db, registry):
    """Test client with database and session registry overrides.

    Used as a context manager so one event loop serves every request of a test
    and pending location checks survive between requests.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_registry] = lambda: registry
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
