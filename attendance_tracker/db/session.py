"""
Database session management
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from attendance_tracker.core.config import settings
from attendance_tracker.db.base import Base

connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    echo=False,
    connect_args=connect_args,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create ledger tables if they do not exist."""
    # Import models so they are registered with Base.metadata
    import attendance_tracker.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
