"""
Configuration management for the Attendance Session Tracker
"""
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, model_validator
from typing import Optional, List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    DATABASE_URL: str = Field(
        default="sqlite:///./attendance.db",
        description="Database URL for the attendance ledger",
    )

    APP_ENV: str = Field(default="local", description="Application environment: local, staging, prod")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR")

    # CORS settings
    ALLOWED_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins. Use '*' for local only."
    )

    # Work date is the calendar date in this timezone; timestamps are stored in UTC
    TZ: str = Field(default="Asia/Kolkata", description="Timezone used to derive work_date")

    VERSION: Optional[str] = Field(default=None, description="Application version (git SHA or semver)")

    # Geofence: office location disabled when both coordinates are unset
    OFFICE_LATITUDE: Optional[float] = Field(default=None, description="Office latitude in degrees")
    OFFICE_LONGITUDE: Optional[float] = Field(default=None, description="Office longitude in degrees")
    GEOFENCE_RADIUS_METERS: float = Field(default=500.0, gt=0, description="Clock-in admission radius in meters")

    # Options passed to the device location query
    LOCATION_HIGH_ACCURACY: bool = Field(default=True, description="Ask the device for a high-accuracy fix")
    LOCATION_TIMEOUT_MS: int = Field(default=10000, gt=0, description="Location query timeout in milliseconds")
    LOCATION_MAX_CACHE_AGE_MS: int = Field(default=0, ge=0, description="Max age of a cached fix (0 = always fresh)")

    TICK_INTERVAL_SECONDS: float = Field(default=1.0, gt=0, description="Session timer tick period in seconds")

    # Shift used for late / early-out flags in the attendance ledger
    SHIFT_START: str = Field(default="09:00", description="Shift start time (HH:MM, local to TZ)")
    SHIFT_END: str = Field(default="18:00", description="Shift end time (HH:MM, local to TZ)")
    GRACE_PERIOD_MINUTES: int = Field(default=15, ge=0, description="Minutes after shift start before a clock-in is late")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @field_validator("APP_ENV")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Validate APP_ENV"""
        allowed = ["local", "staging", "prod"]
        if v not in allowed:
            raise ValueError(f"APP_ENV must be one of {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate LOG_LEVEL"""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}")
        return v.upper()

    @field_validator("OFFICE_LATITUDE")
    @classmethod
    def validate_office_latitude(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not (-90 <= v <= 90):
            raise ValueError("OFFICE_LATITUDE must be between -90 and 90")
        return v

    @field_validator("OFFICE_LONGITUDE")
    @classmethod
    def validate_office_longitude(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not (-180 <= v <= 180):
            raise ValueError("OFFICE_LONGITUDE must be between -180 and 180")
        return v

    @field_validator("SHIFT_START", "SHIFT_END")
    @classmethod
    def validate_shift_time(cls, v: str) -> str:
        """Validate HH:MM shift times"""
        parts = v.split(":")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError("Shift times must be HH:MM")
        hour, minute = int(parts[0]), int(parts[1])
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError("Shift times must be HH:MM")
        return f"{hour:02d}:{minute:02d}"

    @model_validator(mode="after")
    def validate_office_location(self) -> "Settings":
        """Office coordinates must be set together"""
        if (self.OFFICE_LATITUDE is None) != (self.OFFICE_LONGITUDE is None):
            raise ValueError("OFFICE_LATITUDE and OFFICE_LONGITUDE must be set together")
        return self

    @property
    def geofence_enabled(self) -> bool:
        return self.OFFICE_LATITUDE is not None and self.OFFICE_LONGITUDE is not None

    def validate_production(self) -> None:
        """
        Validate settings for production environment

        Raises:
            ValueError: If production settings are invalid
        """
        if self.APP_ENV == "prod":
            # ALLOWED_ORIGINS must not be wildcard in production
            if self.ALLOWED_ORIGINS == "*" or not self.ALLOWED_ORIGINS:
                raise ValueError(
                    "ALLOWED_ORIGINS must be explicitly set (not '*') in production environment"
                )

            if not self.geofence_enabled:
                raise ValueError(
                    "OFFICE_LATITUDE and OFFICE_LONGITUDE must be set in production environment"
                )

    def get_allowed_origins_list(self) -> List[str]:
        """
        Get list of allowed CORS origins

        Returns:
            List of allowed origins (or ['*'] for local)
        """
        if self.ALLOWED_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    def get_geofence_config(self):
        """Build the shared, read-only GeofenceConfig from settings."""
        from attendance_tracker.services.geofence_service import GeofenceConfig
        from attendance_tracker.utils.geo import GeoPoint

        office = None
        if self.geofence_enabled:
            office = GeoPoint(latitude=self.OFFICE_LATITUDE, longitude=self.OFFICE_LONGITUDE)
        return GeofenceConfig(office_location=office, radius_meters=self.GEOFENCE_RADIUS_METERS)

    def get_location_options(self):
        """Build the options sent with every device location query."""
        from attendance_tracker.services.location_provider import LocationRequestOptions

        return LocationRequestOptions(
            high_accuracy=self.LOCATION_HIGH_ACCURACY,
            timeout_ms=self.LOCATION_TIMEOUT_MS,
            maximum_age_ms=self.LOCATION_MAX_CACHE_AGE_MS,
        )


# Create settings instance
settings = Settings()

# Validate production settings if in prod
if settings.APP_ENV == "prod":
    settings.validate_production()
