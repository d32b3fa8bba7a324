"""
Attendance Session Tracker - Main Application Entry Point
"""
from contextlib import asynccontextmanager
from urllib.parse import urlparse, urlunparse

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from attendance_tracker.api.router import api_router
from attendance_tracker.constants import DEFAULT_VERSION
from attendance_tracker.core.config import settings
from attendance_tracker.core.errors import (
    attendance_session_exception_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from attendance_tracker.core.logging import get_logger, setup_logging
from attendance_tracker.db.session import init_db
from attendance_tracker.services.attendance_session_service import AttendanceSessionError
from attendance_tracker.services.session_registry import close_registry

# Setup logging first
setup_logging()
logger = get_logger(__name__)


def _mask_database_url(url: str) -> str:
    """Mask password in DATABASE_URL for safe logging; sqlite paths are logged as-is."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return "***"
    if parsed.scheme.startswith("sqlite") or not parsed.password:
        return url
    netloc = f"{parsed.username}:****@{parsed.hostname or ''}"
    if parsed.port:
        netloc += f":{parsed.port}"
    return urlunparse(parsed._replace(netloc=netloc))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("DATABASE_URL (app): %s", _mask_database_url(settings.DATABASE_URL))
    init_db()
    yield
    # live sessions are in-memory only; cancel their tickers and pending location checks
    close_registry()


app = FastAPI(
    title="Attendance Session Tracker",
    description="Geofenced clock-in, break tracking and clock-out with an attendance ledger",
    version=settings.VERSION or DEFAULT_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register exception handlers
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(AttendanceSessionError, attendance_session_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Include all API routes under /api/v1
app.include_router(api_router, prefix="/api/v1")
